"""
Model Evaluation
================
Scores a trained model on freshly synthesized samples and reports
classification metrics.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
from sklearn.metrics import (
    accuracy_score, precision_score, recall_score, f1_score,
    roc_auc_score, confusion_matrix, classification_report
)

from .config import DECISION_THRESHOLD
from .data_processor import Dataset, Sample
from .errors import InvalidInputError, ModelNotTrainedError
from .trainer import TrainedModel


@dataclass(frozen=True)
class PredictionRecord:
    """Predicted probability next to the true label of one sample."""
    actual: int
    predicted: float
    timestamp: datetime
    features: Tuple[float, ...]


@dataclass
class EvaluationReport:
    """Container for model evaluation results."""
    accuracy: float
    precision: float
    recall: float
    f1: float
    roc_auc: Optional[float]
    confusion_matrix: np.ndarray
    classification_report: str
    records: List[PredictionRecord] = field(default_factory=list)

    def records_frame(self) -> pd.DataFrame:
        return pd.DataFrame([{
            'actual': r.actual,
            'predicted': r.predicted,
            'timestamp': r.timestamp,
        } for r in self.records], columns=['actual', 'predicted', 'timestamp'])

    def as_dict(self) -> Dict:
        return {
            'accuracy': self.accuracy,
            'precision': self.precision,
            'recall': self.recall,
            'f1': self.f1,
            'roc_auc': self.roc_auc,
            'confusion_matrix': self.confusion_matrix.tolist(),
        }


def evaluate_model(model: TrainedModel, samples: Sequence[Sample],
                   threshold: float = DECISION_THRESHOLD) -> EvaluationReport:
    """
    Evaluate ``model`` on labeled samples it has not been trained on.

    ROC-AUC is undefined when only one class is present and is then None.
    """
    if model is None or not model.network.is_trained:
        raise ModelNotTrainedError()
    if not samples:
        raise InvalidInputError("Cannot evaluate on an empty sample set")

    X, y = Dataset(samples).arrays()
    y_true = y[:, 0].astype(int)
    y_prob = model.predict_proba(X)
    y_pred = (y_prob > threshold).astype(int)

    roc_auc = None
    if len(np.unique(y_true)) > 1:
        roc_auc = float(roc_auc_score(y_true, y_prob))

    return EvaluationReport(
        accuracy=float(accuracy_score(y_true, y_pred)),
        precision=float(precision_score(y_true, y_pred, zero_division=0)),
        recall=float(recall_score(y_true, y_pred, zero_division=0)),
        f1=float(f1_score(y_true, y_pred, zero_division=0)),
        roc_auc=roc_auc,
        confusion_matrix=confusion_matrix(y_true, y_pred, labels=[0, 1]),
        classification_report=classification_report(
            y_true, y_pred, labels=[0, 1], zero_division=0
        ),
        records=[
            PredictionRecord(
                actual=s.label,
                predicted=float(p),
                timestamp=s.created_at,
                features=s.features,
            )
            for s, p in zip(samples, y_prob)
        ],
    )
