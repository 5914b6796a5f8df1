"""
Network - Layer Pipeline
========================

This is the class that ties everything together:
- Validating and expanding the layer definitions
- Building the concrete layers, each inheriting its input size from the
  previous layer's output
- Forward pass
- Backward pass from the loss head
- Collecting trainable parameters for the optimizer
- Prediction

Example:
    >>> from reticulum import Network, LayerDef, LayerType, FullyConnectedConfig, SoftmaxConfig, Volume
    >>> net = Network([
    ...     LayerDef(LayerType.INPUT, output=(1, 1, 2)),
    ...     LayerDef(LayerType.FULLY_CONNECTED, FullyConnectedConfig(6), activation='tanh'),
    ...     LayerDef(LayerType.SOFTMAX, SoftmaxConfig(2)),
    ... ])
    >>> probs = net.forward(Volume((1, 1, 2), values=[0.3, -0.5]))
    >>> net.get_prediction() in (0, 1)
    True
"""

import numpy as np

from .definitions import LayerType, activate_layers
from .layers import (InputLayer, FullyConnectedLayer, ConvLayer, PoolLayer,
                     ReLULayer, SigmoidLayer, TanhLayer, DropoutLayer, MaxoutLayer)
from .losses import LossLayer, RegressionLossLayer, SoftmaxLayer, SVMLayer, RegressionLayer
from .volume import Volume


# ====================================
# Layer Registry
# ====================================

LAYERS = {
    LayerType.INPUT: InputLayer,
    LayerType.FULLY_CONNECTED: FullyConnectedLayer,
    LayerType.CONV: ConvLayer,
    LayerType.POOL: PoolLayer,
    LayerType.RELU: ReLULayer,
    LayerType.SIGMOID: SigmoidLayer,
    LayerType.TANH: TanhLayer,
    LayerType.DROPOUT: DropoutLayer,
    LayerType.MAXOUT: MaxoutLayer,
    LayerType.SOFTMAX: SoftmaxLayer,
    LayerType.SVM: SVMLayer,
    LayerType.REGRESSION: RegressionLayer,
}


def build_layer(definition, input_dims=None, rng=None):
    """
    Instantiate the concrete layer for a definition.

    Args:
        definition: LayerDef
        input_dims: Output dimensions of the previous layer
        rng: numpy Generator for weight initialization and dropout

    Returns:
        Layer instance
    """
    if definition.layer_type not in LAYERS:
        raise ValueError(f"Unrecognized layer type '{definition.layer_type}'")
    return LAYERS[definition.layer_type](definition, input_dims, rng=rng)


class Network:
    """
    Ordered pipeline of layers ending in a loss head.

    Args:
        defs: List of LayerDef. The first must be an input layer and the last
              a SoftMax, SVM or Regression head.
        rng: numpy Generator shared by every layer that draws random numbers

    Not safe for concurrent use: every layer keeps references to the volumes
    of the latest forward pass.
    """

    def __init__(self, defs, rng=None):
        defs = list(defs)
        if len(defs) < 3:
            raise ValueError("At least one input and one loss layer are required")
        if defs[0].layer_type != LayerType.INPUT:
            raise ValueError("First layer must be the input layer, to declare size of inputs")
        if defs[-1].layer_type not in LayerType.LOSS:
            raise ValueError("Last layer must be a softmax, svm or regression layer")
        for definition in defs[1:-1]:
            if definition.layer_type == LayerType.INPUT:
                raise ValueError("Only the first layer can be an input layer")
            if definition.layer_type in LayerType.LOSS:
                raise ValueError("Only the last layer can be a loss layer")

        self.rng = rng if rng is not None else np.random.default_rng()
        self.definitions = activate_layers(defs)
        self.layers = self._build_network()

    def _build_network(self):
        layers = []
        dims = None
        for definition in self.definitions:
            layer = build_layer(definition, dims, rng=self.rng)
            dims = layer.out_dims
            layers.append(layer)
        return layers

    @property
    def size(self):
        return len(self.layers)

    def __len__(self):
        return len(self.layers)

    @property
    def input_dims(self):
        return self.layers[0].out_dims

    @property
    def output_layer(self):
        return self.layers[-1]

    @property
    def is_regression(self):
        return isinstance(self.output_layer, RegressionLossLayer)

    def forward(self, vol, training=False):
        """
        Forward pass through the network.

        Args:
            vol: Input volume
            training: Whether in training mode (affects dropout)

        Returns:
            Output volume of the last layer
        """
        for layer in self.layers:
            vol = layer.forward(vol, training=training)
        return vol

    def _propagate(self):
        """Backward through every layer between the input layer and the head."""
        for layer in reversed(self.layers[1:-1]):
            layer.backward()

    def _loss_layer(self):
        head = self.output_layer
        if not isinstance(head, LossLayer):
            raise NotImplementedError("Expecting a classification loss layer as last layer in network")
        return head

    def _regression_layer(self):
        head = self.output_layer
        if not isinstance(head, RegressionLossLayer):
            raise NotImplementedError("Expecting a regression layer as last layer in network")
        return head

    def backward(self, label):
        """
        Classification loss against `label`, then backpropagation.

        Returns:
            Loss value
        """
        loss = self._loss_layer().loss(label)
        self._propagate()
        return loss

    def backward_regression(self, targets):
        """Regression loss against every target, then backpropagation."""
        loss = self._regression_layer().multi_dimensional_loss(targets)
        self._propagate()
        return loss

    def backward_dimension(self, index, value):
        """Regression loss on one output dimension, then backpropagation."""
        loss = self._regression_layer().dimensional_loss(index, value)
        self._propagate()
        return loss

    def get_cost_loss(self, vol, label):
        """Inference forward pass followed by the classification loss."""
        self.forward(vol, training=False)
        return self._loss_layer().loss(label)

    def multi_dimensional_loss(self, targets):
        """Regression loss of the latest forward pass, without backpropagation."""
        return self._regression_layer().multi_dimensional_loss(targets)

    def dimensional_loss(self, index, value):
        """Single-dimension regression loss of the latest forward pass, without backpropagation."""
        return self._regression_layer().dimensional_loss(index, value)

    def get_prediction(self):
        """Argmax of the softmax probabilities from the latest forward pass."""
        head = self.output_layer
        if not isinstance(head, SoftmaxLayer):
            raise NotImplementedError("get_prediction assumes Softmax is the last layer in the network")
        return head.prediction()

    def predict(self, vol):
        """Predicted class of an input volume."""
        self.forward(vol, training=False)
        return self.get_prediction()

    def get_response(self):
        """Parameters and gradients of the entire network, in layer order."""
        response = []
        for layer in self.layers:
            response.extend(layer.get_response())
        return response

    def summary(self, verbose=True):
        """Print model summary; returns the number of trainable parameters."""
        lines = ["=" * 70, "Network Summary", "=" * 70]

        total_params = 0
        for i, layer in enumerate(self.layers):
            n_params = sum(len(r.values) for r in layer.get_response())
            total_params += n_params
            out = layer.out_dims
            lines.append(f"{i:3d}. {layer.layer_type:<12} "
                         f"{f'{out.x}x{out.y}x{out.z}':<16} Params: {n_params:,}")

        lines.append("-" * 70)
        lines.append(f"Total trainable parameters: {total_params:,}")
        lines.append("=" * 70)

        if verbose:
            print('\n'.join(lines))
        return total_params

    def __repr__(self):
        types = ', '.join(layer.layer_type for layer in self.layers)
        return f"Network([{types}])"
