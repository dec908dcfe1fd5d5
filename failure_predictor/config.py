"""
Configuration for the Failure Predictor
=======================================
Sensor feature definitions and training hyperparameters.
"""

import math
from dataclasses import dataclass, field, fields, asdict
from typing import Dict, List, Optional, Tuple


@dataclass(frozen=True)
class FeatureSpec:
    """Definition of one sensor feature."""
    name: str
    unit: str
    sample_range: Tuple[float, float]   # uniform [low, high) used for synthesis
    failure_threshold: float            # strictly above -> failure
    domain: Tuple[float, float] = (-math.inf, math.inf)

    def in_domain(self, value: float) -> bool:
        low, high = self.domain
        return low <= value <= high


FEATURE_SPECS: Tuple[FeatureSpec, ...] = (
    FeatureSpec('temperature', '°C', (60.0, 100.0), 90.0, domain=(-273.15, math.inf)),
    FeatureSpec('vibration', 'mm/s', (0.0, 0.5), 0.35, domain=(0.0, math.inf)),
    FeatureSpec('pressure', 'PSI', (80.0, 140.0), 140.0, domain=(0.0, math.inf)),
    FeatureSpec('speed', 'RPM', (1500.0, 2500.0), 2200.0, domain=(0.0, math.inf)),
    FeatureSpec('load', '%', (50.0, 100.0), 90.0, domain=(0.0, 100.0)),
)

FEATURE_NAMES: List[str] = [spec.name for spec in FEATURE_SPECS]

# Initial values of the dashboard's input sliders
DEFAULT_INPUT_FEATURES: Dict[str, float] = {
    'temperature': 75.0,
    'vibration': 0.2,
    'pressure': 120.0,
    'speed': 1800.0,
    'load': 85.0,
}

# Risk buckets: probability strictly above the bound
HIGH_RISK_THRESHOLD = 0.5
MEDIUM_RISK_THRESHOLD = 0.3
DECISION_THRESHOLD = 0.5


@dataclass(frozen=True)
class LayerConfig:
    """One dense layer of the network topology."""
    units: int
    activation: str = 'relu'
    dropout_rate: float = 0.0


DEFAULT_TOPOLOGY: Tuple[LayerConfig, ...] = (
    LayerConfig(64, 'relu', 0.2),
    LayerConfig(32, 'relu', 0.2),
    LayerConfig(16, 'relu'),
    LayerConfig(1, 'sigmoid'),
)


@dataclass
class TrainingConfig:
    """Hyperparameters for one training run."""
    n_samples: int = 1000
    epochs: int = 50
    batch_size: int = 32
    validation_split: float = 0.2
    learning_rate: float = 0.001
    beta1: float = 0.9
    beta2: float = 0.999
    epsilon: float = 1e-8
    probability_clip: float = 1e-7
    scale_features: bool = True
    topology: Tuple[LayerConfig, ...] = field(default=DEFAULT_TOPOLOGY)
    seed: Optional[int] = None

    def __post_init__(self):
        if self.epochs < 1:
            raise ValueError(f"epochs must be >= 1, got {self.epochs}")
        if self.batch_size < 1:
            raise ValueError(f"batch_size must be >= 1, got {self.batch_size}")
        if not 0.0 < self.validation_split < 1.0:
            raise ValueError(
                f"validation_split must be in (0, 1), got {self.validation_split}"
            )
        if self.learning_rate <= 0:
            raise ValueError(f"learning_rate must be positive, got {self.learning_rate}")
        if not self.topology:
            raise ValueError("topology must contain at least one layer")

    @classmethod
    def from_dict(cls, overrides: Optional[Dict] = None) -> 'TrainingConfig':
        """Build a config from defaults merged with a plain dict of overrides."""
        overrides = dict(overrides or {})
        known = {f.name for f in fields(cls)}
        unknown = set(overrides) - known
        if unknown:
            raise ValueError(f"Unknown training options: {sorted(unknown)}")
        if 'topology' in overrides:
            overrides['topology'] = tuple(
                layer if isinstance(layer, LayerConfig) else LayerConfig(**layer)
                for layer in overrides['topology']
            )
        return cls(**overrides)

    def to_dict(self) -> Dict:
        return asdict(self)
