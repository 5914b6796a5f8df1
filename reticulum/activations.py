"""
Activation Functions
====================

Non-linear elementwise functions applied by the ReLU, Sigmoid and Tanh layers.

Each activation implements:
- forward(x): the function itself, applied to a flat array of values
- backward(output, grad_output): the input gradient, with the derivative
  expressed in terms of the forward *output* rather than the input

Expressing the derivative through the output lets a layer backpropagate
using only the volumes it cached during the forward pass:
- ReLU: f'(x) = 1 where f(x) > 0, else 0
- Sigmoid: f'(x) = f(x) * (1 - f(x))
- Tanh: f'(x) = 1 - f(x)^2
"""

import numpy as np


class Activation:
    """Base class for all activation functions."""

    name = None

    def forward(self, x):
        """Apply activation function."""
        raise NotImplementedError

    def backward(self, output, grad_output):
        """Gradient w.r.t. the input, given the forward output and its gradient."""
        raise NotImplementedError

    def __call__(self, x):
        return self.forward(x)


class ReLU(Activation):
    """
    Rectified Linear Unit: f(x) = max(0, x)

    Gradient passes through only where the output is strictly positive.
    """

    name = 'relu'

    def forward(self, x):
        return np.maximum(0.0, x)

    def backward(self, output, grad_output):
        return np.where(output > 0, grad_output, 0.0)


class Sigmoid(Activation):
    """
    Sigmoid: f(x) = 1 / (1 + exp(-x))

    Squashes output to (0, 1).
    """

    name = 'sigmoid'

    def forward(self, x):
        return 1.0 / (1.0 + np.exp(-x))

    def backward(self, output, grad_output):
        return output * (1.0 - output) * grad_output


class Tanh(Activation):
    """Hyperbolic Tangent: f(x) = tanh(x), output range (-1, 1)."""

    name = 'tanh'

    def forward(self, x):
        return np.tanh(x)

    def backward(self, output, grad_output):
        return (1.0 - output * output) * grad_output


# ====================================
# Activation Registry
# ====================================

ACTIVATIONS = {
    'relu': ReLU,
    'sigmoid': Sigmoid,
    'tanh': Tanh,
}


def get_activation(name):
    """
    Get activation function by name.

    Args:
        name: String name ('relu', 'sigmoid', 'tanh') or Activation instance

    Returns:
        Activation instance

    Example:
        >>> act = get_activation('relu')
        >>> act(np.array([-1.0, 0.0, 1.0]))
        array([0., 0., 1.])
    """
    if isinstance(name, Activation):
        return name

    name_lower = name.lower()
    if name_lower not in ACTIVATIONS:
        available = ', '.join(ACTIVATIONS.keys())
        raise ValueError(f"Unknown activation '{name}'. Available: {available}")

    return ACTIVATIONS[name_lower]()
