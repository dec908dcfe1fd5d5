"""
Adam Optimizer
==============
Adaptive per-parameter updates with bias-corrected moment estimates.
"""

from typing import List

import numpy as np

from .models import NetworkModel
from .tensor import Matrix


class AdamOptimizer:
    """
    Adam bound to one NetworkModel.

    Keeps first (``m``) and second (``v``) moment estimates for every
    parameter and a step counter shared by all of them. A new model gets a
    new optimizer; the state is never carried over.
    """

    def __init__(self, model: NetworkModel, learning_rate: float = 0.001,
                 beta1: float = 0.9, beta2: float = 0.999, epsilon: float = 1e-8):
        self.model = model
        self.learning_rate = learning_rate
        self.beta1 = beta1
        self.beta2 = beta2
        self.epsilon = epsilon
        self.t = 0
        self.m: List[Matrix] = [Matrix.zeros_like(p) for p, _ in model.parameters()]
        self.v: List[Matrix] = [Matrix.zeros_like(p) for p, _ in model.parameters()]

    def step(self):
        """Apply one update to every parameter from its current gradient."""
        self.t += 1
        correction1 = 1.0 - self.beta1 ** self.t
        correction2 = 1.0 - self.beta2 ** self.t

        for i, (param, grad) in enumerate(self.model.parameters()):
            self.m[i] = self.m[i] * self.beta1 + grad * (1.0 - self.beta1)
            self.v[i] = self.v[i] * self.beta2 + (grad * grad) * (1.0 - self.beta2)

            m_hat = self.m[i] / correction1
            v_hat = self.v[i] / correction2
            update = m_hat / (v_hat.apply(np.sqrt) + self.epsilon)
            param.iadd_scaled(update, -self.learning_rate)
