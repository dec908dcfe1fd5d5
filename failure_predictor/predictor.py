"""
Failure Prediction
==================
Single-sample inference on a trained network with risk classification.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional, Tuple

import numpy as np
import pandas as pd

from .config import FEATURE_SPECS, HIGH_RISK_THRESHOLD, MEDIUM_RISK_THRESHOLD
from .data_processor import FeatureInput, coerce_features
from .errors import InvalidInputError, ModelNotTrainedError
from .trainer import TrainedModel


class RiskLevel(str, Enum):
    LOW = 'Low'
    MEDIUM = 'Medium'
    HIGH = 'High'

    @classmethod
    def from_probability(cls, probability: float) -> 'RiskLevel':
        if probability > HIGH_RISK_THRESHOLD:
            return cls.HIGH
        if probability > MEDIUM_RISK_THRESHOLD:
            return cls.MEDIUM
        return cls.LOW


def confidence_for(probability: float) -> float:
    """Distance from the decision boundary: 0 at 0.5, 1 at either extreme."""
    return abs(probability - 0.5) * 2


@dataclass(frozen=True)
class PredictionResult:
    """Outcome of one inference call."""
    probability: float
    risk_level: RiskLevel
    confidence: float
    input_features: Tuple[float, ...]

    @classmethod
    def from_probability(cls, probability: float,
                         features: Tuple[float, ...]) -> 'PredictionResult':
        probability = float(probability)
        return cls(
            probability=probability,
            risk_level=RiskLevel.from_probability(probability),
            confidence=confidence_for(probability),
            input_features=tuple(features),
        )

    def as_dict(self) -> Dict:
        return {
            'probability': self.probability,
            'risk': self.risk_level.value,
            'confidence': self.confidence,
            'features': list(self.input_features),
        }


class Predictor:
    """Runs a trained model in inference mode; dropout is never applied."""

    def __init__(self, model: Optional[TrainedModel] = None, specs=FEATURE_SPECS):
        self.model = model
        self.specs = tuple(specs)

    @property
    def is_ready(self) -> bool:
        return self.model is not None and self.model.network.is_trained

    def _require_model(self) -> TrainedModel:
        model = self.model
        if model is None or not model.network.is_trained:
            raise ModelNotTrainedError()
        return model

    def predict(self, features: FeatureInput) -> PredictionResult:
        """
        Predict failure probability for one feature vector.

        Args:
            features: sequence in feature order, or a name -> value mapping

        Raises:
            ModelNotTrainedError: no completed training run
            InvalidInputError: wrong width or out-of-domain values
        """
        model = self._require_model()
        values = coerce_features(features, self.specs)
        if len(values) != model.input_width:
            raise InvalidInputError(
                f"Model expects {model.input_width} features, got {len(values)}"
            )
        probability = model.predict_proba(np.array([values]))[0]
        return PredictionResult.from_probability(probability, values)

    def predict_frame(self, df: pd.DataFrame) -> pd.DataFrame:
        """Score every row of a DataFrame holding the feature columns."""
        model = self._require_model()
        names = [spec.name for spec in self.specs]
        missing = [name for name in names if name not in df.columns]
        if missing:
            raise InvalidInputError(f"Missing feature columns: {missing}")

        rows = [coerce_features(row, self.specs)
                for row in df[names].itertuples(index=False, name=None)]
        probabilities = model.predict_proba(np.array(rows).reshape(-1, len(names)))

        scored = df.copy()
        scored['probability'] = probabilities
        scored['risk'] = [RiskLevel.from_probability(p).value for p in probabilities]
        scored['confidence'] = [confidence_for(p) for p in probabilities]
        return scored
