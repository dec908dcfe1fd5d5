import threading

import numpy as np
import pandas as pd
import pytest

from failure_predictor import trainer as trainer_module
from failure_predictor.config import LayerConfig, TrainingConfig
from failure_predictor.data_processor import Dataset
from failure_predictor.errors import (
    AlreadyRunningError, InvalidInputError, NumericDivergenceError
)
from failure_predictor.models import ModelState, NetworkModel
from failure_predictor.tensor import Matrix
from failure_predictor.trainer import (
    Trainer, TrainingStatus, binary_accuracy, binary_cross_entropy, loss_gradient
)


class TestLossAndAccuracy:
    """Loss and accuracy helpers."""

    def test_bce_known_value(self):
        p = Matrix([[0.8], [0.3]])
        y = Matrix([[1.0], [0.0]])
        expected = -(np.log(0.8) + np.log(0.7)) / 2
        assert np.isclose(binary_cross_entropy(p, y), expected)

    def test_bce_clamps_extremes(self):
        p = Matrix([[0.0], [1.0]])
        y = Matrix([[1.0], [0.0]])
        loss = binary_cross_entropy(p, y, clip=1e-7)
        assert np.isfinite(loss)
        assert np.isclose(loss, -np.log(1e-7))

    def test_accuracy_uses_strict_threshold(self):
        p = Matrix([[0.5], [0.51], [0.2], [0.9]])
        y = Matrix([[1.0], [1.0], [0.0], [0.0]])
        assert binary_accuracy(p, y) == 0.5


class TestLossGradient:
    """Gradient handed to backpropagation."""

    def test_logit_shortcut_for_plain_sigmoid_output(self, rng):
        network = NetworkModel.build(3, [LayerConfig(1, 'sigmoid')], rng=rng)
        p = Matrix([[0.8], [0.3]])
        y = Matrix([[1.0], [0.0]])
        grad, from_logits = loss_gradient(network, p, y)
        assert from_logits is True
        assert np.allclose(grad.to_numpy(), [[-0.1], [0.15]])

    def test_output_gradient_when_output_is_dropped(self, rng):
        network = NetworkModel.build(3, [LayerConfig(1, 'sigmoid', 0.5)], rng=rng)
        p = Matrix([[0.8], [0.0], [1.6]])
        y = Matrix([[1.0], [1.0], [0.0]])
        grad, from_logits = loss_gradient(network, p, y)
        assert from_logits is False
        # clamped outputs contribute nothing
        expected = [[(0.8 - 1.0) / (0.8 * 0.2) / 3], [0.0], [0.0]]
        assert np.allclose(grad.to_numpy(), expected)

    def test_training_with_output_dropout(self, small_dataset):
        topology = (LayerConfig(16, 'relu'), LayerConfig(1, 'sigmoid', 0.2))
        result = Trainer(TrainingConfig(epochs=3, topology=topology, seed=4)).run(small_dataset)
        assert result.status is TrainingStatus.COMPLETED
        assert all(np.isfinite(m.train_loss) for m in result.history)


class TestTrainer:
    """Training state machine."""

    def test_completed_run(self, small_config, small_dataset):
        trainer = Trainer(small_config)
        seen = []
        result = trainer.run(small_dataset, on_epoch=seen.append)

        assert result.status is TrainingStatus.COMPLETED
        assert trainer.status is TrainingStatus.COMPLETED
        assert [m.epoch for m in result.history] == [1, 2, 3]
        assert seen == result.history
        assert [round(m.progress, 6) for m in seen] == [round(100 / 3, 6), round(200 / 3, 6), 100.0]
        assert result.training_size == 160
        assert result.validation_size == 40
        assert result.final_model is not None
        assert result.final_model.network.is_trained
        assert all(0.0 <= m.val_accuracy <= 1.0 for m in result.history)
        assert all(m.elapsed_ms >= 0 for m in result.history)

    def test_each_run_builds_a_fresh_model(self, small_config, small_dataset):
        trainer = Trainer(small_config)
        first = trainer.run(small_dataset).final_model.network
        second = trainer.run(small_dataset).final_model.network
        assert first is not second
        assert first.is_trained and second.is_trained

    def test_seeded_runs_are_reproducible(self, small_dataset):
        config = TrainingConfig(epochs=2, seed=3)
        a = Trainer(config).run(small_dataset)
        b = Trainer(config).run(small_dataset)
        assert [m.train_loss for m in a.history] == [m.train_loss for m in b.history]

    def test_final_batch_may_be_smaller(self, small_dataset):
        # 160 training samples in batches of 50 -> 50, 50, 50, 10
        trainer = Trainer(TrainingConfig(epochs=1, batch_size=50, seed=1))
        trainer.run(small_dataset)
        assert trainer.optimizer.t == 4

    def test_empty_dataset_rejected(self, small_config):
        trainer = Trainer(small_config)
        with pytest.raises(InvalidInputError):
            trainer.run(Dataset([]))
        assert trainer.status is TrainingStatus.IDLE

    def test_cancel_between_epochs(self, small_dataset):
        trainer = Trainer(TrainingConfig(epochs=10, seed=5))
        cancel = threading.Event()

        def on_epoch(metrics):
            if metrics.epoch == 2:
                cancel.set()

        result = trainer.run(small_dataset, on_epoch=on_epoch, cancel_event=cancel)

        assert result.status is TrainingStatus.CANCELLED
        assert result.final_model is None
        assert len(result.history) == 2
        assert trainer.network is not None
        assert trainer.network.state is ModelState.UNTRAINED
        assert trainer.optimizer.t > 0

    def test_cancel_before_first_epoch(self, small_config, small_dataset):
        cancel = threading.Event()
        cancel.set()
        result = Trainer(small_config).run(small_dataset, cancel_event=cancel)
        assert result.status is TrainingStatus.CANCELLED
        assert result.history == []

    def test_divergence_fails_and_discards_model(self, small_config, small_dataset, monkeypatch):
        monkeypatch.setattr(trainer_module, 'binary_cross_entropy',
                            lambda p, y, clip=1e-7: float('nan'))
        trainer = Trainer(small_config)
        result = trainer.run(small_dataset)

        assert result.status is TrainingStatus.FAILED
        assert isinstance(result.error, NumericDivergenceError)
        assert result.error.epoch == 1 and result.error.batch == 0
        assert result.final_model is None
        assert trainer.network is None
        assert trainer.status is TrainingStatus.FAILED

    def test_rejects_second_run_while_running(self, small_config, small_dataset):
        trainer = Trainer(small_config)
        errors = []

        def on_epoch(metrics):
            if metrics.epoch == 1:
                try:
                    trainer.run(small_dataset)
                except AlreadyRunningError as e:
                    errors.append(e)

        result = trainer.run(small_dataset, on_epoch=on_epoch)
        assert len(errors) == 1
        assert result.status is TrainingStatus.COMPLETED

    def test_callback_errors_propagate(self, small_config, small_dataset):
        trainer = Trainer(small_config)

        def on_epoch(metrics):
            raise KeyError('boom')

        with pytest.raises(KeyError):
            trainer.run(small_dataset, on_epoch=on_epoch)
        assert trainer.status is TrainingStatus.FAILED

    def test_summary_and_history_frame(self, small_config, small_dataset):
        result = Trainer(small_config).run(small_dataset)
        summary = result.summary()
        assert summary['status'] == 'completed'
        assert summary['epochs'] == 3
        assert summary['accuracy'] == result.history[-1].val_accuracy * 100

        frame = result.history_frame()
        assert isinstance(frame, pd.DataFrame)
        assert list(frame.index) == [1, 2, 3]
        assert 'val_loss' in frame.columns


class TestFullTrainingRun:
    """Default-sized run: 1000 samples, 50 epochs, batch size 32."""

    def test_holds_out_two_hundred_samples(self, full_run):
        _, result = full_run
        assert result.validation_size == 200
        assert result.training_size == 800

    def test_validation_accuracy(self, full_run):
        _, result = full_run
        assert result.status is TrainingStatus.COMPLETED
        assert len(result.history) == 50
        assert result.history[-1].val_accuracy > 0.85

    def test_loss_decreases_on_average(self, full_run):
        _, result = full_run
        losses = [m.train_loss for m in result.history]
        assert np.mean(losses[-10:]) < np.mean(losses[:10])

    def test_trained_weights_are_frozen(self, full_run):
        trainer, result = full_run
        assert result.final_model.network is trainer.network
        for param, _ in trainer.network.parameters():
            assert not param.writeable
