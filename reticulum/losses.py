"""
Loss Layers
===========

The terminal layer of a network measures how wrong its output is and seeds
the gradient that backpropagation carries to every earlier layer.

Each head writes dL/dinput straight into its cached input volume:
- SoftmaxLayer: class probabilities + negative log-likelihood
- SVMLayer: raw class scores + structured hinge loss (margin 1)
- RegressionLayer: raw values + half squared error

None of them support a label-free backward(); the gradient can only come
from a loss call.

Loss functions for Trainer.train are built with labeled_loss(),
regression_loss() or dimensional_loss().
"""

import numpy as np

from .definitions import LayerType, require_config
from .layers import Layer
from .volume import Dimensions, Volume


class LossLayer(Layer):
    """Classification head: loss against a class index."""

    def __init__(self, definition, input_dims, rng=None):
        super().__init__(definition, input_dims)
        self.config = require_config(definition)
        self.out_dims = Dimensions(1, 1, self.in_dims.size)
        self._check_output()
        if self.out_dims.z != self.config.classes:
            raise ValueError(f"{self.layer_type} layer expects {self.config.classes} inputs, "
                             f"got {self.out_dims.z}")

    def _check_label(self, index):
        if not 0 <= index < self.out_dims.size:
            raise IndexError(f"Invalid class index: {index}")

    def loss(self, index):
        """Loss against the true class `index`; sets the input gradient."""
        raise NotImplementedError


class RegressionLossLayer(Layer):
    """Regression head: loss against target values."""

    def multi_dimensional_loss(self, targets):
        raise NotImplementedError

    def dimensional_loss(self, index, value):
        raise NotImplementedError


class SoftmaxLayer(LossLayer):
    """
    Softmax classifier with N discrete classes.

    Forward: p_i = exp(x_i - max(x)) / sum_j exp(x_j - max(x))

    Subtracting the max keeps exp() from overflowing and leaves the
    probabilities unchanged.

    Loss(k) = -log(p_k), with gradient dL/dx_i = p_i - [i == k]
    """

    layer_type = LayerType.SOFTMAX

    def __init__(self, definition, input_dims, rng=None):
        super().__init__(definition, input_dims, rng)
        self.es = np.zeros(self.out_dims.z)

    def forward(self, vol, training=False):
        self.in_vol = vol
        out = Volume(self.out_dims, zeros=True)

        shifted = vol.values - np.max(vol.values)
        es = np.exp(shifted)
        es /= np.sum(es)
        out.values[:] = es

        # Saved for the loss
        self.es = es
        self.out_vol = out
        return out

    def loss(self, index):
        self._check_label(index)
        self.in_vol.zero_grad()

        indicator = np.zeros(self.out_dims.z)
        indicator[index] = 1.0
        self.in_vol.gradients[:] = -(indicator - self.es)

        return float(-np.log(self.es[index]))

    def prediction(self):
        """Index of the most probable class; ties go to the lowest index."""
        return int(np.argmax(self.out_vol.values))

    def __repr__(self):
        return f"SoftmaxLayer(classes={self.config.classes})"


class SVMLayer(LossLayer):
    """
    Multiclass SVM head.

    Forward passes the class scores through unchanged. The loss wants the
    true class to outscore every other class by a margin of 1:

        L = sum_{i != k} max(0, s_i - s_k + 1)
    """

    layer_type = LayerType.SVM
    margin = 1.0

    def forward(self, vol, training=False):
        self.in_vol = vol
        self.out_vol = vol
        return vol

    def loss(self, index):
        self._check_label(index)
        self.in_vol.zero_grad()

        scores = self.in_vol.values
        grads = self.in_vol.gradients
        y_score = scores[index]

        loss = 0.0
        for i in range(self.out_dims.size):
            if i == index:
                continue
            y_diff = -y_score + scores[i] + self.margin
            if y_diff > 0:
                # Violating dimension
                grads[i] += 1.0
                grads[index] -= 1.0
                loss += y_diff
        return float(loss)

    def __repr__(self):
        return f"SVMLayer(classes={self.config.classes})"


class RegressionLayer(RegressionLossLayer):
    """
    Regression head.

    Forward passes values through unchanged. Loss per dimension is
    0.5 * (prediction - target)^2 with gradient (prediction - target).
    """

    layer_type = LayerType.REGRESSION

    def __init__(self, definition, input_dims, rng=None):
        super().__init__(definition, input_dims)
        self.config = require_config(definition)
        self.out_dims = Dimensions(1, 1, self.in_dims.size)
        self._check_output()
        if self.out_dims.z != self.config.neurons:
            raise ValueError(f"Regression layer expects {self.config.neurons} inputs, "
                             f"got {self.out_dims.z}")

    def forward(self, vol, training=False):
        self.in_vol = vol
        self.out_vol = vol
        return vol

    def multi_dimensional_loss(self, targets):
        """Half squared error summed over every output dimension."""
        targets = np.asarray(targets, dtype=np.float64).ravel()
        if len(targets) != self.out_dims.size:
            raise ValueError(f"Invalid target length: {len(targets)} != {self.out_dims.size}")

        self.in_vol.zero_grad()
        dy = self.in_vol.values - targets
        self.in_vol.gradients[:] = dy
        return float(np.sum(0.5 * dy * dy))

    def dimensional_loss(self, index, value):
        """
        Half squared error of a single dimension.

        Every other dimension is left with zero gradient.
        """
        if not 0 <= index < self.out_dims.size:
            raise IndexError(f"Invalid dimension index: {index}")

        self.in_vol.zero_grad()
        dy = self.in_vol.values[index] - value
        self.in_vol.gradients[index] = dy
        return float(0.5 * dy * dy)

    def __repr__(self):
        return f"RegressionLayer(neurons={self.config.neurons})"


# ============================================================================
# Loss functions for Trainer.train
# ============================================================================

def labeled_loss(label):
    """Classification loss against `label`, backpropagated through the network."""
    def loss_fn(network):
        return network.backward(label)
    return loss_fn


def regression_loss(targets):
    """Regression loss against every target value, backpropagated through the network."""
    def loss_fn(network):
        return network.backward_regression(targets)
    return loss_fn


def dimensional_loss(index, value):
    """Regression loss on a single output dimension, backpropagated through the network."""
    def loss_fn(network):
        return network.backward_dimension(index, value)
    return loss_fn
