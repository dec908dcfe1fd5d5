"""
Training Loop for the Failure Predictor
=======================================
Mini-batch training with binary cross-entropy, Adam updates, a fixed
validation hold-out and per-epoch metrics.
"""

import logging
import math
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from .config import DECISION_THRESHOLD, FEATURE_NAMES, TrainingConfig
from .data_processor import Dataset, FeatureScaler
from .errors import AlreadyRunningError, NumericDivergenceError
from .models import Activation, NetworkModel
from .optimizer import AdamOptimizer
from .tensor import Matrix

logger = logging.getLogger(__name__)


class TrainingStatus(str, Enum):
    IDLE = 'idle'
    RUNNING = 'running'
    COMPLETED = 'completed'
    FAILED = 'failed'
    CANCELLED = 'cancelled'


@dataclass(frozen=True)
class TrainingMetrics:
    """Snapshot taken after one completed epoch."""
    epoch: int
    train_loss: float
    val_loss: float
    val_accuracy: float
    elapsed_ms: float
    total_epochs: int

    @property
    def progress(self) -> float:
        """Percentage of the run completed."""
        return self.epoch / self.total_epochs * 100.0


@dataclass(frozen=True)
class TrainedModel:
    """Read-only handle on a network that finished training."""
    network: NetworkModel
    scaler: FeatureScaler
    feature_names: Tuple[str, ...]
    history: Tuple[TrainingMetrics, ...]
    training_size: int
    validation_size: int
    completed_at: datetime

    def __post_init__(self):
        if not self.network.is_trained:
            raise ValueError("TrainedModel requires a network in the trained state")

    @property
    def input_width(self) -> int:
        return self.network.input_width

    def predict_proba(self, X: np.ndarray) -> np.ndarray:
        """Failure probability for each row of ``X`` (dropout disabled)."""
        X = np.asarray(X, dtype=np.float64).reshape(-1, self.input_width)
        output = self.network.forward(self.scaler.transform(X), training=False)
        return output.to_numpy()[:, 0]


@dataclass
class TrainingResult:
    """Terminal outcome of one training run."""
    status: TrainingStatus
    final_model: Optional[TrainedModel] = None
    history: List[TrainingMetrics] = field(default_factory=list)
    error: Optional[Exception] = None
    training_size: int = 0
    validation_size: int = 0
    elapsed_ms: float = 0.0

    @property
    def succeeded(self) -> bool:
        return self.status is TrainingStatus.COMPLETED

    @property
    def final_metrics(self) -> Optional[TrainingMetrics]:
        return self.history[-1] if self.history else None

    def summary(self) -> Dict:
        """Headline numbers shown after training."""
        last = self.final_metrics
        return {
            'status': self.status.value,
            'accuracy': last.val_accuracy * 100 if last else 0.0,
            'loss': last.val_loss if last else 0.0,
            'epochs': last.epoch if last else 0,
            'training_time': self.elapsed_ms / 1000.0,
            'error': str(self.error) if self.error else None,
        }

    def history_frame(self) -> pd.DataFrame:
        return metrics_frame(self.history)


def metrics_frame(history: Sequence[TrainingMetrics]) -> pd.DataFrame:
    """Per-epoch metrics as a DataFrame indexed by epoch."""
    columns = ['epoch', 'train_loss', 'val_loss', 'val_accuracy', 'elapsed_ms', 'progress']
    data = [{
        'epoch': m.epoch,
        'train_loss': m.train_loss,
        'val_loss': m.val_loss,
        'val_accuracy': m.val_accuracy,
        'elapsed_ms': m.elapsed_ms,
        'progress': m.progress,
    } for m in history]
    return pd.DataFrame(data, columns=columns).set_index('epoch')


def binary_cross_entropy(probabilities: Matrix, labels: Matrix,
                         clip: float = 1e-7) -> float:
    """Mean BCE with probabilities clamped to [clip, 1 - clip]."""
    p = probabilities.apply(lambda a: np.clip(a, clip, 1.0 - clip))
    losses = labels * p.apply(np.log) + (1.0 - labels) * (1.0 - p).apply(np.log)
    return -losses.mean()


def loss_gradient(network: NetworkModel, probabilities: Matrix, labels: Matrix,
                  clip: float = 1e-7) -> Tuple[Matrix, bool]:
    """
    Gradient of the clamped mean BCE for the last layer.

    Returns the gradient and whether it is taken at the logits. That shortcut,
    (p - y) / n, holds only for an undropped sigmoid output; otherwise the
    gradient is with respect to the layer output and is zero wherever the
    clamp is active.
    """
    last = network.layers[-1]
    size = labels.rows
    if last.activation is Activation.SIGMOID and last.dropout_rate == 0.0:
        return (probabilities - labels) / size, True

    p = probabilities.to_numpy()
    y = labels.to_numpy()
    inside = (p >= clip) & (p <= 1.0 - clip)
    safe = np.clip(p, clip, 1.0 - clip)
    grad = np.where(inside, (safe - y) / (safe * (1.0 - safe)), 0.0) / size
    return Matrix(grad), False


def binary_accuracy(probabilities: Matrix, labels: Matrix,
                    threshold: float = DECISION_THRESHOLD) -> float:
    predicted = probabilities.apply(lambda a: (a > threshold).astype(np.float64))
    return float((predicted.to_numpy() == labels.to_numpy()).mean())


class Trainer:
    """
    Runs one training session at a time.

    States: IDLE -> RUNNING -> COMPLETED | FAILED | CANCELLED. Each run builds
    a fresh network and optimizer; cancellation is honoured between epochs.
    """

    def __init__(self, config: Optional[TrainingConfig] = None,
                 rng: Optional[np.random.Generator] = None):
        self.config = config or TrainingConfig()
        self.rng = rng if rng is not None else np.random.default_rng(self.config.seed)
        self.status = TrainingStatus.IDLE
        self.network: Optional[NetworkModel] = None
        self.optimizer: Optional[AdamOptimizer] = None
        self.history: List[TrainingMetrics] = []
        self._lock = threading.Lock()

    def run(self, dataset: Dataset,
            on_epoch: Optional[Callable[[TrainingMetrics], None]] = None,
            cancel_event: Optional[threading.Event] = None) -> TrainingResult:
        """
        Train on ``dataset`` and return the terminal result.

        Raises InvalidInputError for an unusable dataset and
        AlreadyRunningError if this trainer is mid-run. Divergence does not
        raise; it is reported as a FAILED result.
        """
        with self._lock:
            if self.status is TrainingStatus.RUNNING:
                raise AlreadyRunningError()
            dataset.validate()
            train_set, val_set = dataset.split(self.config.validation_split)
            self.status = TrainingStatus.RUNNING

        try:
            return self._run(train_set, val_set, on_epoch, cancel_event)
        except Exception:
            self._discard()
            self.status = TrainingStatus.FAILED
            raise

    def _run(self, train_set: Dataset, val_set: Dataset,
             on_epoch: Optional[Callable[[TrainingMetrics], None]],
             cancel_event: Optional[threading.Event]) -> TrainingResult:
        config = self.config
        start = time.perf_counter()

        X_train, y_train = train_set.arrays()
        X_val, y_val = val_set.arrays()
        scaler = FeatureScaler(enabled=config.scale_features)
        train_inputs = scaler.fit_transform(X_train)
        val_inputs = scaler.transform(X_val)
        val_labels = Matrix(y_val)

        self.network = NetworkModel.build(X_train.shape[1], config.topology, rng=self.rng)
        self.optimizer = AdamOptimizer(
            self.network, config.learning_rate, config.beta1, config.beta2, config.epsilon
        )
        self.history = []
        self.network.begin_training()

        n_train = len(train_set)
        logger.info(
            f"Training started: {n_train} train / {len(val_set)} validation samples, "
            f"{config.epochs} epochs, batch size {config.batch_size}"
        )

        def result(status: TrainingStatus, **kwargs) -> TrainingResult:
            return TrainingResult(
                status=status,
                history=list(self.history),
                training_size=n_train,
                validation_size=len(val_set),
                elapsed_ms=(time.perf_counter() - start) * 1000.0,
                **kwargs,
            )

        for epoch in range(1, config.epochs + 1):
            if cancel_event is not None and cancel_event.is_set():
                self.network.abandon_training()
                self.status = TrainingStatus.CANCELLED
                logger.warning(f"Training cancelled before epoch {epoch}")
                return result(TrainingStatus.CANCELLED)

            try:
                train_loss = self._train_epoch(epoch, train_inputs, y_train)
                val_probs = self.network.forward(val_inputs, training=False)
                val_loss = binary_cross_entropy(val_probs, val_labels, config.probability_clip)
                if not math.isfinite(val_loss):
                    raise NumericDivergenceError(epoch, -1, val_loss)
            except NumericDivergenceError as e:
                logger.error(f"✗ {e}")
                self._discard()
                self.status = TrainingStatus.FAILED
                return result(TrainingStatus.FAILED, error=e)

            metrics = TrainingMetrics(
                epoch=epoch,
                train_loss=train_loss,
                val_loss=val_loss,
                val_accuracy=binary_accuracy(val_probs, val_labels),
                elapsed_ms=(time.perf_counter() - start) * 1000.0,
                total_epochs=config.epochs,
            )
            self.history.append(metrics)
            logger.debug(
                f"Epoch {epoch}/{config.epochs} ({metrics.progress:.1f}%): "
                f"loss={train_loss:.4f} val_loss={val_loss:.4f} "
                f"val_acc={metrics.val_accuracy:.4f}"
            )
            if on_epoch is not None:
                on_epoch(metrics)

        self.network.mark_trained()
        self.status = TrainingStatus.COMPLETED
        final = self.history[-1]
        logger.info(
            f"✓ Training completed: val_acc={final.val_accuracy:.4f} "
            f"val_loss={final.val_loss:.4f} in {final.elapsed_ms / 1000:.2f}s"
        )
        trained = TrainedModel(
            network=self.network,
            scaler=scaler,
            feature_names=tuple(FEATURE_NAMES[:X_train.shape[1]]),
            history=tuple(self.history),
            training_size=n_train,
            validation_size=len(val_set),
            completed_at=datetime.now(timezone.utc),
        )
        return result(TrainingStatus.COMPLETED, final_model=trained)

    def _train_epoch(self, epoch: int, inputs: Matrix, labels: np.ndarray) -> float:
        """One shuffled pass over the training partition; returns the mean loss."""
        config = self.config
        network = self.network
        order = self.rng.permutation(inputs.rows)
        total_loss = 0.0

        for batch, begin in enumerate(range(0, inputs.rows, config.batch_size)):
            indices = order[begin:begin + config.batch_size]
            batch_labels = Matrix(labels[indices])
            probs = network.forward(inputs.take_rows(indices), training=True)

            loss = binary_cross_entropy(probs, batch_labels, config.probability_clip)
            if not math.isfinite(loss):
                raise NumericDivergenceError(epoch, batch, loss)

            size = len(indices)
            grad, from_logits = loss_gradient(network, probs, batch_labels,
                                              config.probability_clip)
            network.backward(grad, from_logits=from_logits)

            self.optimizer.step()
            total_loss += loss * size

        return total_loss / inputs.rows

    def _discard(self):
        if self.network is not None:
            self.network.abandon_training()
        self.network = None
        self.optimizer = None
