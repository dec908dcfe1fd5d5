"""
Error Taxonomy
==============
Structured errors raised by the failure predictor core.
"""

from typing import Optional


class FailurePredictorError(Exception):
    """Base class for all failure predictor errors."""


class InvalidInputError(FailurePredictorError, ValueError):
    """Malformed feature vector, out-of-domain values or unusable dataset."""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


class NumericDivergenceError(FailurePredictorError, ArithmeticError):
    """Non-finite loss encountered during training."""

    def __init__(self, epoch: int, batch: int, loss: float):
        super().__init__(
            f"Training diverged at epoch {epoch}, batch {batch}: loss={loss}"
        )
        self.epoch = epoch
        self.batch = batch
        self.loss = loss


class ModelNotTrainedError(FailurePredictorError, RuntimeError):
    """Prediction requested before any training run completed."""

    def __init__(self, message: str = "No trained model available. Run training first."):
        super().__init__(message)


class AlreadyRunningError(FailurePredictorError, RuntimeError):
    """A training run is already in progress."""

    def __init__(self, message: str = "A training run is already in progress."):
        super().__init__(message)
