"""
Neural Network Model for Failure Prediction
===========================================
Dense feed-forward network with ReLU/Sigmoid activations and inverted dropout,
implemented on the package's own Matrix primitive.
"""

import math
from enum import Enum
from typing import List, Optional, Sequence, Tuple

import numpy as np
from scipy.special import expit

from .config import DEFAULT_TOPOLOGY, LayerConfig
from .tensor import Matrix


class Activation(str, Enum):
    RELU = 'relu'
    SIGMOID = 'sigmoid'
    IDENTITY = 'identity'

    def forward(self, z: Matrix) -> Matrix:
        if self is Activation.RELU:
            return z.apply(lambda a: np.maximum(a, 0.0))
        if self is Activation.SIGMOID:
            return z.apply(expit)
        return z.copy()

    def derivative(self, z: Matrix, output: Matrix) -> Matrix:
        """d(activation)/dz, given the pre-activation and the activation output."""
        if self is Activation.RELU:
            return z.apply(lambda a: (a > 0.0).astype(np.float64))
        if self is Activation.SIGMOID:
            return output * (1.0 - output)
        return z.apply(np.ones_like)


class ModelState(str, Enum):
    UNTRAINED = 'untrained'
    TRAINING = 'training'
    TRAINED = 'trained'


class Layer:
    """
    Fully connected layer: ``activation(x · W + b)`` followed by inverted
    dropout when running in training mode.

    The layer exclusively owns its weight and bias buffers and the gradients
    computed for them by ``backward``.
    """

    def __init__(self, weights: Matrix, biases: Matrix,
                 activation: Activation = Activation.RELU,
                 dropout_rate: float = 0.0):
        if biases.shape != (1, weights.cols):
            raise ValueError(
                f"Bias shape {biases.shape} does not match weights {weights.shape}"
            )
        if not 0.0 <= dropout_rate < 1.0:
            raise ValueError(f"dropout_rate must be in [0, 1), got {dropout_rate}")
        self.weights = weights
        self.biases = biases
        self.activation = Activation(activation)
        self.dropout_rate = float(dropout_rate)

        self.grad_weights = Matrix.zeros_like(weights)
        self.grad_biases = Matrix.zeros_like(biases)
        self._cache: Optional[Tuple[Matrix, Matrix, Matrix, Optional[Matrix]]] = None

    @classmethod
    def initialize(cls, in_width: int, out_width: int, rng: np.random.Generator,
                   activation: Activation = Activation.RELU,
                   dropout_rate: float = 0.0) -> 'Layer':
        """Weights uniform in ±1/sqrt(fan_in), zero biases."""
        limit = 1.0 / math.sqrt(in_width)
        return cls(
            Matrix.uniform(in_width, out_width, limit, rng),
            Matrix.zeros(1, out_width),
            activation,
            dropout_rate,
        )

    @property
    def in_width(self) -> int:
        return self.weights.rows

    @property
    def out_width(self) -> int:
        return self.weights.cols

    def forward(self, x: Matrix, training: bool = False,
                rng: Optional[np.random.Generator] = None) -> Matrix:
        z = x.dot(self.weights).add_row(self.biases)
        output = self.activation.forward(z)

        mask = None
        if training and self.dropout_rate > 0.0:
            if rng is None:
                raise ValueError("Dropout in training mode requires a random generator")
            keep = 1.0 - self.dropout_rate
            mask = Matrix((rng.random(output.shape) < keep) / keep)
            dropped = output * mask
        else:
            dropped = output

        if training:
            self._cache = (x, z, output, mask)
        return dropped

    def backward(self, grad_output: Matrix, through_activation: bool = True) -> Matrix:
        """
        Propagate ``grad_output`` (dL/d layer output) back through the layer.
        Stores the weight and bias gradients and returns dL/d input.

        With ``through_activation=False`` the gradient is taken to be with
        respect to the pre-activation already.
        """
        if self._cache is None:
            raise RuntimeError("backward() called without a training-mode forward pass")
        x, z, output, mask = self._cache

        if through_activation:
            if mask is not None:
                grad_output = grad_output * mask
            grad_z = grad_output * self.activation.derivative(z, output)
        else:
            grad_z = grad_output

        self.grad_weights = x.T.dot(grad_z)
        self.grad_biases = grad_z.sum_rows()
        self._cache = None
        return grad_z.dot(self.weights.T)

    def freeze(self):
        self.weights.freeze()
        self.biases.freeze()
        self._cache = None

    def __repr__(self) -> str:
        return (f"Layer({self.in_width}->{self.out_width}, {self.activation.value}, "
                f"dropout={self.dropout_rate})")


class NetworkModel:
    """
    Ordered stack of dense layers with fixed input and output widths.

    Lifecycle: UNTRAINED -> TRAINING -> TRAINED. Only the trainer moves the
    model between states; a TRAINED model has read-only weights.
    """

    def __init__(self, layers: Sequence[Layer],
                 rng: Optional[np.random.Generator] = None):
        if not layers:
            raise ValueError("NetworkModel needs at least one layer")
        for i, (current, following) in enumerate(zip(layers, layers[1:])):
            if current.out_width != following.in_width:
                raise ValueError(
                    f"Layer {i} outputs {current.out_width} units but layer {i + 1} "
                    f"expects {following.in_width}"
                )
        self.layers: List[Layer] = list(layers)
        self.rng = rng if rng is not None else np.random.default_rng()
        self.state = ModelState.UNTRAINED

    @classmethod
    def build(cls, input_width: int = 5,
              topology: Sequence[LayerConfig] = DEFAULT_TOPOLOGY,
              rng: Optional[np.random.Generator] = None) -> 'NetworkModel':
        """Create a freshly initialised network for the given topology."""
        rng = rng if rng is not None else np.random.default_rng()
        layers = []
        width = input_width
        for spec in topology:
            layers.append(Layer.initialize(
                width, spec.units, rng, Activation(spec.activation), spec.dropout_rate
            ))
            width = spec.units
        return cls(layers, rng=rng)

    @property
    def input_width(self) -> int:
        return self.layers[0].in_width

    @property
    def output_width(self) -> int:
        return self.layers[-1].out_width

    @property
    def is_trained(self) -> bool:
        return self.state is ModelState.TRAINED

    @property
    def parameter_count(self) -> int:
        return sum(layer.weights.rows * layer.weights.cols + layer.biases.cols
                   for layer in self.layers)

    def forward(self, x: Matrix, training: bool = False) -> Matrix:
        """Run the network; dropout is only applied when ``training`` is set."""
        if x.cols != self.input_width:
            raise ValueError(f"Expected {self.input_width} input columns, got {x.cols}")
        if training and self.is_trained:
            raise RuntimeError("Cannot run a training pass on a trained model")
        for layer in self.layers:
            x = layer.forward(x, training=training, rng=self.rng)
        return x

    def backward(self, grad_output: Matrix, from_logits: bool = False):
        """
        Backpropagate through every layer after a training forward pass.

        ``from_logits`` means ``grad_output`` is already the gradient with
        respect to the last layer's pre-activation (sigmoid + cross-entropy).
        """
        if self.is_trained:
            raise RuntimeError("Cannot backpropagate through a trained model")
        if from_logits and self.layers[-1].dropout_rate > 0.0:
            raise ValueError("Logit gradients are undefined for a dropped-out output layer")
        grad = self.layers[-1].backward(grad_output, through_activation=not from_logits)
        for layer in reversed(self.layers[:-1]):
            grad = layer.backward(grad)

    def parameters(self) -> List[Tuple[Matrix, Matrix]]:
        """(parameter, gradient) pairs in a stable order."""
        pairs = []
        for layer in self.layers:
            pairs.append((layer.weights, layer.grad_weights))
            pairs.append((layer.biases, layer.grad_biases))
        return pairs

    def begin_training(self):
        if self.state is not ModelState.UNTRAINED:
            raise RuntimeError(f"Cannot start training from state {self.state.value}")
        self.state = ModelState.TRAINING

    def abandon_training(self):
        """Leave TRAINING without completing; weights stay as they are."""
        if self.state is ModelState.TRAINING:
            self.state = ModelState.UNTRAINED

    def mark_trained(self):
        if self.state is not ModelState.TRAINING:
            raise RuntimeError(f"Cannot mark a {self.state.value} model as trained")
        for layer in self.layers:
            layer.freeze()
        self.state = ModelState.TRAINED
