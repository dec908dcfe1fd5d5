"""
Predictive Failure Classifier
=============================
Neural-network failure prediction for equipment sensor data.

This package provides:
- Synthetic labeled sensor samples for training
- A dense feed-forward network trained with Adam and dropout
- Background training with progress reporting and cancellation
- Single-sample failure probability and risk classification
"""

from .config import DEFAULT_INPUT_FEATURES, FEATURE_NAMES, TrainingConfig
from .data_processor import Dataset, Sample, SampleSynthesizer
from .errors import (
    AlreadyRunningError, FailurePredictorError, InvalidInputError,
    ModelNotTrainedError, NumericDivergenceError
)
from .models import NetworkModel
from .predictor import PredictionResult, Predictor, RiskLevel
from .service import FailurePredictionService, PredictRequest, TrainRequest, TrainingSession
from .trainer import TrainedModel, Trainer, TrainingMetrics, TrainingResult, TrainingStatus

__version__ = "1.0.0"
