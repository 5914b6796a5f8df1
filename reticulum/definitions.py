"""
Layer Definitions
=================

Declarative description of a network, consumed by Network:

- LayerType: the closed set of layer kinds
- one config class per layer family, carrying only the fields it needs
- LayerDef: layer type + config + follow-on activation/dropout/maxout options
- activate_layers(): expands a definition list into the concrete layer list

Example:
    >>> defs = [
    ...     LayerDef(LayerType.INPUT, output=(1, 1, 2)),
    ...     LayerDef(LayerType.FULLY_CONNECTED, FullyConnectedConfig(6), activation='tanh'),
    ...     LayerDef(LayerType.SOFTMAX, SoftmaxConfig(2)),
    ... ]
    >>> [d.layer_type for d in activate_layers(defs)]
    ['input', 'fc', 'tanh', 'fc', 'softmax']
"""

import copy

from .volume import Dimensions


class LayerType:
    """Names of every layer kind the network can build."""

    INPUT = 'input'
    FULLY_CONNECTED = 'fc'
    CONV = 'conv'
    POOL = 'pool'
    RELU = 'relu'
    SIGMOID = 'sigmoid'
    TANH = 'tanh'
    DROPOUT = 'dropout'
    MAXOUT = 'maxout'
    SOFTMAX = 'softmax'
    SVM = 'svm'
    REGRESSION = 'regression'

    ALL = (INPUT, FULLY_CONNECTED, CONV, POOL, RELU, SIGMOID, TANH,
           DROPOUT, MAXOUT, SOFTMAX, SVM, REGRESSION)
    LOSS = (SOFTMAX, SVM, REGRESSION)
    ACTIVATIONS = (RELU, SIGMOID, TANH, MAXOUT)


def _require_positive(value, what):
    if value is None or value <= 0:
        raise ValueError(f"{what} must be greater than 0, got {value}")


class FullyConnectedConfig:
    """
    Fully connected layer configuration.

    Args:
        neurons: Number of output neurons
        l1_decay_mul: L1 decay multiplier for the filters (default: 0)
        l2_decay_mul: L2 decay multiplier for the filters (default: 1)
        preferred_bias: Initial value of every bias (default: 0)
    """

    def __init__(self, neurons, l1_decay_mul=0.0, l2_decay_mul=1.0, preferred_bias=0.0):
        _require_positive(neurons, "Neuron count")
        self.neurons = neurons
        self.l1_decay_mul = l1_decay_mul
        self.l2_decay_mul = l2_decay_mul
        self.preferred_bias = preferred_bias

    def __repr__(self):
        return f"FullyConnectedConfig(neurons={self.neurons})"


class ConvConfig:
    """
    Convolution layer configuration.

    Args:
        filters: Number of filters (output depth)
        sx: Kernel width (default: same as filters)
        sy: Kernel height (default: same as sx)
        stride: Stride in both directions (default: 1)
        padding: Implicit zero padding on every side (default: 0)
        l1_decay_mul, l2_decay_mul, preferred_bias: as FullyConnectedConfig
    """

    def __init__(self, filters, sx=None, sy=None, stride=1, padding=0,
                 l1_decay_mul=0.0, l2_decay_mul=1.0, preferred_bias=0.0):
        _require_positive(filters, "Filter count")
        self.filters = filters
        self.sx = sx if sx is not None else filters
        self.sy = sy if sy is not None and sy > 0 else self.sx
        self.stride = stride
        self.padding = padding
        self.l1_decay_mul = l1_decay_mul
        self.l2_decay_mul = l2_decay_mul
        self.preferred_bias = preferred_bias

        _require_positive(self.sx, "Kernel width")
        _require_positive(self.stride, "Stride")
        if self.padding < 0:
            raise ValueError(f"Padding cannot be negative, got {padding}")

    def __repr__(self):
        return (f"ConvConfig(filters={self.filters}, kernel=({self.sx}, {self.sy}), "
                f"stride={self.stride}, padding={self.padding})")


class PoolConfig:
    """
    Max pooling configuration.

    Args:
        sx: Window width
        sy: Window height (default: same as sx)
        stride: Stride (default: 2)
        padding: Padding on every side (default: 0)
    """

    def __init__(self, sx, sy=None, stride=2, padding=0):
        _require_positive(sx, "Window width")
        _require_positive(stride, "Stride")
        if padding < 0:
            raise ValueError(f"Padding cannot be negative, got {padding}")
        self.sx = sx
        self.sy = sy if sy is not None and sy > 0 else sx
        self.stride = stride
        self.padding = padding

    def __repr__(self):
        return f"PoolConfig(window=({self.sx}, {self.sy}), stride={self.stride}, padding={self.padding})"


class DropoutConfig:
    """Dropout configuration: probability of dropping each element (default: 0.5)."""

    def __init__(self, probability=0.5):
        if not 0.0 <= probability <= 1.0:
            raise ValueError(f"Dropout probability must be in [0, 1], got {probability}")
        self.probability = probability

    def __repr__(self):
        return f"DropoutConfig(probability={self.probability})"


class MaxoutConfig:
    """Maxout configuration: number of input channels collapsed per output (default: 2)."""

    def __init__(self, group_size=2):
        _require_positive(group_size, "Group size")
        self.group_size = group_size

    def __repr__(self):
        return f"MaxoutConfig(group_size={self.group_size})"


class SoftmaxConfig:
    """Softmax classifier configuration."""

    def __init__(self, classes):
        _require_positive(classes, "Class count")
        self.classes = classes

    def __repr__(self):
        return f"SoftmaxConfig(classes={self.classes})"


class SVMConfig:
    """SVM classifier configuration."""

    def __init__(self, classes):
        _require_positive(classes, "Class count")
        self.classes = classes

    def __repr__(self):
        return f"SVMConfig(classes={self.classes})"


class RegressionConfig:
    """Regression head configuration."""

    def __init__(self, neurons):
        _require_positive(neurons, "Neuron count")
        self.neurons = neurons

    def __repr__(self):
        return f"RegressionConfig(neurons={self.neurons})"


CONFIG_TYPES = {
    LayerType.FULLY_CONNECTED: FullyConnectedConfig,
    LayerType.CONV: ConvConfig,
    LayerType.POOL: PoolConfig,
    LayerType.DROPOUT: DropoutConfig,
    LayerType.MAXOUT: MaxoutConfig,
    LayerType.SOFTMAX: SoftmaxConfig,
    LayerType.SVM: SVMConfig,
    LayerType.REGRESSION: RegressionConfig,
}


def require_config(definition):
    """Return the definition's config, checking it belongs to the right family."""
    expected = CONFIG_TYPES[definition.layer_type]
    if definition.config is None:
        raise ValueError(f"Config cannot be None for {definition.layer_type} layer")
    if not isinstance(definition.config, expected):
        raise TypeError(f"Invalid config for {definition.layer_type} layer: expected "
                        f"{expected.__name__}, got {type(definition.config).__name__}")
    return definition.config


class LayerDef:
    """
    Definition of a single layer.

    Args:
        layer_type: One of LayerType
        config: Family config (required for types listed in CONFIG_TYPES)
        output: Output dimensions, required for the input layer only
        activation: Activation layer to append ('relu', 'sigmoid', 'tanh', 'maxout')
        dropout: DropoutConfig of a dropout layer to append
        maxout: MaxoutConfig used when activation is 'maxout'
    """

    def __init__(self, layer_type, config=None, output=None, activation=None,
                 dropout=None, maxout=None):
        if layer_type not in LayerType.ALL:
            raise ValueError(f"Unknown layer type '{layer_type}'")
        self.layer_type = layer_type
        self.config = config
        self.output = Dimensions(*output) if output is not None else None
        self.activation = activation
        self.dropout = dropout
        self.maxout = maxout

    def __repr__(self):
        return f"LayerDef({self.layer_type!r}, {self.config!r})"


def activate_layers(defs):
    """
    Expand a definition list into the layers the network actually builds.

    - SoftMax/SVM get an implicit fully connected layer of `classes` neurons
      in front of them, Regression one of `neurons` neurons
    - fully connected/conv layers followed by ReLU start with a bias of 0.1
      so the units are active (and receive gradient) early on
    - an activation layer follows any def naming one
    - a dropout layer follows any def carrying a dropout config

    Args:
        defs: List of LayerDef

    Returns:
        New list of LayerDef; the input defs and configs are not modified
    """
    new_defs = []
    for definition in defs:
        layer_type = definition.layer_type

        if layer_type in (LayerType.SOFTMAX, LayerType.SVM):
            new_defs.append(LayerDef(LayerType.FULLY_CONNECTED,
                                     FullyConnectedConfig(require_config(definition).classes)))
        elif layer_type == LayerType.REGRESSION:
            new_defs.append(LayerDef(LayerType.FULLY_CONNECTED,
                                     FullyConnectedConfig(require_config(definition).neurons)))

        if (layer_type in (LayerType.FULLY_CONNECTED, LayerType.CONV)
                and definition.activation == LayerType.RELU
                and definition.config is not None):
            definition = copy.copy(definition)
            definition.config = copy.copy(definition.config)
            definition.config.preferred_bias = 0.1

        new_defs.append(definition)

        activation = definition.activation
        if activation:
            if activation not in LayerType.ACTIVATIONS:
                raise ValueError(f"Unsupported activation '{activation}'")
            if activation == LayerType.MAXOUT:
                maxout = definition.maxout if definition.maxout is not None else MaxoutConfig()
                new_defs.append(LayerDef(LayerType.MAXOUT, maxout))
            else:
                new_defs.append(LayerDef(activation))

        if definition.dropout is not None:
            new_defs.append(LayerDef(LayerType.DROPOUT, definition.dropout))

    return new_defs
