"""
Failure Prediction Service
==========================
In-process entry points used by the dashboard: start training, stream its
progress, cancel it, and score feature vectors against the latest trained
model.

Training runs on a single dedicated worker thread. Predictions read the
currently served model, which is only replaced once a run completes.
"""

import logging
import queue
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterator, Optional, Union

import numpy as np

from .config import DEFAULT_INPUT_FEATURES, TrainingConfig
from .data_processor import Dataset, FeatureInput, SampleSynthesizer
from .errors import AlreadyRunningError
from .evaluation import EvaluationReport, evaluate_model
from .predictor import PredictionResult, Predictor
from .trainer import (
    TrainedModel, Trainer, TrainingMetrics, TrainingResult, TrainingStatus
)

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

ProgressCallback = Callable[[TrainingMetrics], None]


@dataclass(frozen=True)
class TrainRequest:
    """Start a training run; every option falls back to the service config."""
    overrides: Dict = field(default_factory=dict)


@dataclass(frozen=True)
class PredictRequest:
    features: FeatureInput


class TrainingSession:
    """
    Handle on one in-flight training run.

    Progress arrives on an internal queue (iterate ``progress()``) and through
    an optional callback; the terminal TrainingResult is the ``future``. The
    progress stream ends only after the future is done.
    """

    _DONE = object()

    def __init__(self, on_progress: Optional[ProgressCallback] = None):
        self.future: Optional[Future] = None
        self.cancel_event = threading.Event()
        self.latest: Optional[TrainingMetrics] = None
        self._on_progress = on_progress
        self._queue: 'queue.Queue' = queue.Queue()

    def _publish(self, metrics: TrainingMetrics):
        self.latest = metrics
        self._queue.put(metrics)
        if self._on_progress is not None:
            self._on_progress(metrics)

    def _close(self):
        self._queue.put(self._DONE)

    def progress(self, timeout: Optional[float] = None) -> Iterator[TrainingMetrics]:
        """Yield per-epoch metrics until the run ends."""
        while True:
            item = self._queue.get(timeout=timeout)
            if item is self._DONE:
                return
            yield item

    @property
    def percent_complete(self) -> float:
        return self.latest.progress if self.latest else 0.0

    def cancel(self):
        """Ask the run to stop at the next epoch boundary."""
        self.cancel_event.set()

    def done(self) -> bool:
        return self.future.done()

    def result(self, timeout: Optional[float] = None) -> TrainingResult:
        return self.future.result(timeout=timeout)


class FailurePredictionService:
    """
    Owns the trainer, its worker thread and the currently served model.
    """

    def __init__(self, config: Optional[TrainingConfig] = None,
                 seed: Optional[int] = None):
        self.config = config or TrainingConfig()
        seed = seed if seed is not None else self.config.seed
        data_seed, model_seed = np.random.SeedSequence(seed).spawn(2)
        self.synthesizer = SampleSynthesizer(np.random.default_rng(data_seed))
        self._model_rng = np.random.default_rng(model_seed)

        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix='trainer')
        self._session: Optional[TrainingSession] = None
        self._session_lock = threading.Lock()
        self._predictor = Predictor()
        self.trainer: Optional[Trainer] = None
        self.last_result: Optional[TrainingResult] = None

    # ------------------------------------------------------------------
    # Training
    # ------------------------------------------------------------------

    @property
    def is_training(self) -> bool:
        session = self._session
        return session is not None and not session.done()

    def train(self, request: Optional[TrainRequest] = None,
              on_progress: Optional[ProgressCallback] = None,
              dataset: Optional[Dataset] = None) -> TrainingSession:
        """
        Start a training run on the worker thread.

        Synthesizes ``n_samples`` fresh samples unless a dataset is given.
        Raises AlreadyRunningError while another run is active and
        InvalidInputError for an unusable dataset.
        """
        request = request or TrainRequest()
        config = self.config
        if request.overrides:
            merged = config.to_dict()
            merged.update(request.overrides)
            config = TrainingConfig.from_dict(merged)

        with self._session_lock:
            if self.is_training:
                raise AlreadyRunningError()

            if dataset is None:
                dataset = Dataset(self.synthesizer.generate(config.n_samples))
            dataset.validate()
            dataset.split(config.validation_split)

            rng = (np.random.default_rng(config.seed)
                   if 'seed' in request.overrides else self._model_rng)
            trainer = Trainer(config, rng=rng)
            self.trainer = trainer
            session = TrainingSession(on_progress)
            session.future = self._executor.submit(self._execute, trainer, dataset, session)
            session.future.add_done_callback(lambda _: session._close())
            self._session = session

        logger.info(f"Training run submitted with {len(dataset)} samples")
        return session

    def _execute(self, trainer: Trainer, dataset: Dataset, session: TrainingSession):
        try:
            result = trainer.run(dataset, on_epoch=session._publish,
                                 cancel_event=session.cancel_event)
        except Exception as e:
            logger.exception(f"Training run failed: {e}")
            result = TrainingResult(status=TrainingStatus.FAILED, error=e,
                                    history=list(trainer.history))
        if result.succeeded:
            self._serve(result.final_model)
        self.last_result = result
        return result

    def _serve(self, model: TrainedModel):
        self._predictor = Predictor(model)
        logger.info("✓ Trained model is now serving predictions")

    def cancel(self) -> bool:
        """Request cancellation of the running session; no-op when idle."""
        session = self._session
        if session is None or session.done():
            return False
        session.cancel()
        logger.info("Cancellation requested")
        return True

    # ------------------------------------------------------------------
    # Inference
    # ------------------------------------------------------------------

    @property
    def model(self) -> Optional[TrainedModel]:
        return self._predictor.model

    def predict(self, request: Union[PredictRequest, FeatureInput]) -> PredictionResult:
        """Score one feature vector; raises ModelNotTrainedError before any completed run."""
        features = request.features if isinstance(request, PredictRequest) else request
        return self._predictor.predict(features)

    def evaluate(self, n_samples: int = 50) -> EvaluationReport:
        """Score the served model on freshly synthesized samples."""
        return evaluate_model(self.model, self.synthesizer.generate(n_samples))

    def shutdown(self, wait: bool = True):
        self.cancel()
        self._executor.shutdown(wait=wait)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.shutdown()


if __name__ == "__main__":
    with FailurePredictionService(seed=42) as service:
        session = service.train(
            on_progress=lambda m: print(
                f"  epoch {m.epoch:3d} ({m.progress:5.1f}%) "
                f"loss={m.train_loss:.4f} val_acc={m.val_accuracy:.4f}"
            )
        )
        result = session.result()
        print(f"\nTraining {result.status.value}: {result.summary()}")

        prediction = service.predict(PredictRequest(DEFAULT_INPUT_FEATURES))
        print(f"\nPrediction for default inputs: {prediction.as_dict()}")

        report = service.evaluate()
        print(f"\nHold-out evaluation: {report.as_dict()}")
        print(report.classification_report)
