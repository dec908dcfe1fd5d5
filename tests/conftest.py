import numpy as np
import pytest

from failure_predictor.config import TrainingConfig
from failure_predictor.data_processor import Dataset, SampleSynthesizer
from failure_predictor.trainer import Trainer


@pytest.fixture
def rng():
    return np.random.default_rng(1234)


@pytest.fixture
def synthesizer(rng):
    return SampleSynthesizer(rng)


@pytest.fixture
def small_config():
    return TrainingConfig(n_samples=200, epochs=3, batch_size=32, seed=7)


@pytest.fixture
def small_dataset():
    return Dataset(SampleSynthesizer(np.random.default_rng(99)).generate(200))


@pytest.fixture(scope='session')
def full_run():
    """One complete default-size training run shared across tests."""
    dataset = Dataset(SampleSynthesizer(np.random.default_rng(2024)).generate(1000))
    trainer = Trainer(TrainingConfig(seed=11))
    result = trainer.run(dataset)
    return trainer, result


@pytest.fixture(scope='session')
def trained_model(full_run):
    return full_run[1].final_model
