"""
Data Processing Module for the Failure Predictor
================================================
Synthetic sensor sample generation, dataset partitioning and feature scaling.
"""

import math
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Mapping, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd
from sklearn.preprocessing import StandardScaler

from .config import FEATURE_NAMES, FEATURE_SPECS, FeatureSpec
from .errors import InvalidInputError
from .tensor import Matrix

FeatureInput = Union[Sequence[float], Mapping[str, float], np.ndarray]


@dataclass(frozen=True)
class Sample:
    """One labeled sensor reading. Immutable once created."""
    features: Tuple[float, ...]
    label: int
    created_at: datetime


def failure_label(features: Sequence[float],
                  specs: Sequence[FeatureSpec] = FEATURE_SPECS) -> int:
    """Threshold oracle: 1 if any feature is strictly above its failure threshold."""
    return int(any(value > spec.failure_threshold
                   for value, spec in zip(features, specs)))


class SampleSynthesizer:
    """
    Generates labeled sensor samples.

    Each feature is drawn uniformly from its sampling range and the label
    comes from the fixed threshold rule in ``failure_label``. Timestamps are
    one minute apart, the most recent sample last.
    """

    def __init__(self, rng: Optional[np.random.Generator] = None,
                 specs: Sequence[FeatureSpec] = FEATURE_SPECS,
                 interval: timedelta = timedelta(minutes=1)):
        self.rng = rng if rng is not None else np.random.default_rng()
        self.specs = tuple(specs)
        self.interval = interval
        self._lows = np.array([s.sample_range[0] for s in self.specs])
        self._highs = np.array([s.sample_range[1] for s in self.specs])

    def label_for(self, features: Sequence[float]) -> int:
        return failure_label(features, self.specs)

    def generate(self, n: int, now: Optional[datetime] = None) -> List[Sample]:
        """Draw ``n`` fresh samples; every call is independent of the last."""
        if n < 0:
            raise InvalidInputError(f"Sample count must be non-negative, got {n}")
        now = now or datetime.now(timezone.utc)
        values = self.rng.uniform(self._lows, self._highs, size=(n, len(self.specs)))

        samples = []
        for i, row in enumerate(values):
            features = tuple(float(v) for v in row)
            samples.append(Sample(
                features=features,
                label=self.label_for(features),
                created_at=now - (n - i) * self.interval,
            ))
        return samples


def to_frame(samples: Sequence[Sample],
             feature_names: Sequence[str] = FEATURE_NAMES) -> pd.DataFrame:
    """Samples as a DataFrame with one column per feature plus label and created_at."""
    columns = list(feature_names) + ['label', 'created_at']
    rows = [list(s.features) + [s.label, s.created_at] for s in samples]
    return pd.DataFrame(rows, columns=columns)


class Dataset:
    """Ordered sequence of samples with a fixed train/validation split."""

    def __init__(self, samples: Sequence[Sample]):
        self.samples: Tuple[Sample, ...] = tuple(samples)

    def __len__(self) -> int:
        return len(self.samples)

    def __iter__(self):
        return iter(self.samples)

    @property
    def width(self) -> int:
        return len(self.samples[0].features) if self.samples else 0

    def validate(self, expected_width: Optional[int] = None) -> Dict:
        """
        Check the dataset is usable for training.
        Returns a small quality report; raises InvalidInputError on hard problems.
        """
        if not self.samples:
            raise InvalidInputError("Dataset is empty")

        width = expected_width if expected_width is not None else self.width
        for index, sample in enumerate(self.samples):
            if len(sample.features) != width:
                raise InvalidInputError(
                    f"Sample {index} has {len(sample.features)} features, expected {width}"
                )
            if sample.label not in (0, 1):
                raise InvalidInputError(f"Sample {index} has label {sample.label!r}")
            if not all(math.isfinite(v) for v in sample.features):
                raise InvalidInputError(f"Sample {index} has non-finite features")

        labels = [s.label for s in self.samples]
        return {
            'total_records': len(self.samples),
            'width': width,
            'failures': sum(labels),
            'failure_rate': sum(labels) / len(labels),
        }

    def split(self, validation_split: float) -> Tuple['Dataset', 'Dataset']:
        """
        Hold out the last ``ceil(validation_split * n)`` samples for validation.
        Both partitions must be non-empty.
        """
        n = len(self.samples)
        n_val = math.ceil(round(validation_split * n, 9))
        if n_val < 1 or n - n_val < 1:
            raise InvalidInputError(
                f"Cannot split {n} samples with validation_split={validation_split}: "
                "both partitions must be non-empty"
            )
        return Dataset(self.samples[:n - n_val]), Dataset(self.samples[n - n_val:])

    def arrays(self) -> Tuple[np.ndarray, np.ndarray]:
        """Features as an (n, width) array and labels as an (n, 1) array."""
        X = np.array([s.features for s in self.samples], dtype=np.float64)
        y = np.array([[s.label] for s in self.samples], dtype=np.float64)
        return X.reshape(len(self.samples), -1), y.reshape(-1, 1)

    def to_frame(self) -> pd.DataFrame:
        return to_frame(self.samples)


class FeatureScaler:
    """
    Standardises features with statistics from the training partition.
    Wraps sklearn's StandardScaler; disabled scaling is the identity.
    """

    def __init__(self, enabled: bool = True):
        self.enabled = enabled
        self.scaler = StandardScaler() if enabled else None
        self.is_fitted = False

    def fit(self, X: np.ndarray) -> 'FeatureScaler':
        if self.enabled:
            self.scaler.fit(X)
        self.is_fitted = True
        return self

    def transform(self, X: np.ndarray) -> Matrix:
        if not self.is_fitted:
            raise RuntimeError("FeatureScaler must be fitted before transform")
        if self.enabled:
            X = self.scaler.transform(X)
        return Matrix(X)

    def fit_transform(self, X: np.ndarray) -> Matrix:
        return self.fit(X).transform(X)


def coerce_features(features: FeatureInput,
                    specs: Sequence[FeatureSpec] = FEATURE_SPECS) -> Tuple[float, ...]:
    """
    Turn a sequence or a name->value mapping into a validated feature tuple.
    Raises InvalidInputError on wrong width, unknown names, or values outside
    the feature's physical domain.
    """
    if isinstance(features, Mapping):
        names = [s.name for s in specs]
        missing = [name for name in names if name not in features]
        unknown = [name for name in features if name not in names]
        if missing or unknown:
            raise InvalidInputError(
                f"Feature mapping mismatch: missing={missing}, unknown={unknown}"
            )
        raw = [features[name] for name in names]
    elif isinstance(features, np.ndarray):
        raw = list(features.ravel())
    elif isinstance(features, (str, bytes)):
        raise InvalidInputError("Features must be numeric, not a string")
    else:
        try:
            raw = list(features)
        except TypeError:
            raise InvalidInputError(
                f"Features must be a sequence or mapping, got {type(features).__name__}"
            ) from None

    if len(raw) != len(specs):
        raise InvalidInputError(
            f"Expected {len(specs)} features, got {len(raw)}"
        )

    values = []
    for value, spec in zip(raw, specs):
        if isinstance(value, bool):
            raise InvalidInputError(f"{spec.name} must be numeric", field=spec.name)
        try:
            value = float(value)
        except (TypeError, ValueError):
            raise InvalidInputError(f"{spec.name} must be numeric, got {value!r}",
                                    field=spec.name) from None
        if not math.isfinite(value):
            raise InvalidInputError(f"{spec.name} must be finite, got {value}",
                                    field=spec.name)
        if not spec.in_domain(value):
            raise InvalidInputError(
                f"{spec.name}={value} outside domain {spec.domain}", field=spec.name
            )
        values.append(value)
    return tuple(values)


if __name__ == "__main__":
    synthesizer = SampleSynthesizer(np.random.default_rng(42))
    dataset = Dataset(synthesizer.generate(1000))

    report = dataset.validate()
    print("\n--- Synthetic Data Report ---")
    print(f"Records: {report['total_records']}")
    print(f"Failure rate: {report['failure_rate']:.2%}")

    train, validation = dataset.split(0.2)
    print(f"Train: {len(train)} | Validation: {len(validation)}")
    print(dataset.to_frame().describe())
