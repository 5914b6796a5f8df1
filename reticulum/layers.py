"""
Network Layers - From Scratch Implementation
============================================

Core building blocks of the network. Every layer works on Volumes and
implements:

- forward(vol, training): consume the previous layer's output volume and
  return a new output volume; both are cached on the layer
- backward(): read the cached output volume's gradients (the chain gradient)
  and write the cached input volume's gradients, plus the gradients of any
  filters and biases the layer owns
- get_response(): ParameterResponse views of the trainable parameters

Layers implemented:
- InputLayer: declares the input size, passes volumes through
- FullyConnectedLayer: one filter per output neuron
- ConvLayer: 2D convolution with implicit zero padding
- PoolLayer: max pooling with argmax switches
- ReLULayer, SigmoidLayer, TanhLayer: elementwise activations
- DropoutLayer: random element dropout during training
- MaxoutLayer: max over groups of input channels

The loss heads (SoftMax, SVM, Regression) live in losses.py.
"""

from collections import namedtuple

import numpy as np

from .activations import get_activation
from .definitions import LayerType, require_config
from .volume import Dimensions, Volume


ParameterResponse = namedtuple(
    'ParameterResponse', ['values', 'gradients', 'l1_decay_mul', 'l2_decay_mul'])
ParameterResponse.__doc__ = """
Trainable parameter handed to the optimizer.

`values` and `gradients` are the parameter volume's own arrays, so the
optimizer updates the layer in place.
"""


def pooled_size(size, padding, window, stride):
    """Output size along one axis: floor((size + 2*pad - window) / stride) + 1."""
    return (size + 2 * padding - window) // stride + 1


class Layer:
    """Base class for all layers."""

    layer_type = None

    def __init__(self, definition, input_dims=None):
        if definition.layer_type != self.layer_type:
            raise ValueError(f"Invalid layer type: {definition.layer_type} != {self.layer_type}")

        self.in_dims = Dimensions(*input_dims) if input_dims is not None else None
        self.out_dims = None

        # Volumes of the most recent forward pass
        self.in_vol = None
        self.out_vol = None

    def _check_output(self):
        if self.out_dims is None or self.out_dims.z == 0:
            raise ValueError(f"Output depth cannot be 0 for {self.layer_type} layer")

    def forward(self, vol, training=False):
        """Forward pass."""
        raise NotImplementedError

    def backward(self):
        """Backward pass."""
        raise NotImplementedError(f"Unsupported operation: backward on {self.layer_type} layer")

    def get_response(self):
        """Trainable parameters and their gradients."""
        return []

    def __call__(self, vol, training=False):
        return self.forward(vol, training)

    def __repr__(self):
        return f"{type(self).__name__}({self.in_dims} -> {self.out_dims})"


class InputLayer(Layer):
    """
    Input layer.

    Declares the size of the network's input. Forward returns the very same
    volume; there is nothing to backpropagate into.
    """

    layer_type = LayerType.INPUT

    def __init__(self, definition, input_dims=None, rng=None):
        super().__init__(definition, input_dims)
        if definition.output is None:
            raise ValueError("Output dimensions are required for the input layer")
        self.out_dims = definition.output
        self.in_dims = self.out_dims
        self._check_output()

    def forward(self, vol, training=False):
        self.in_vol = vol
        self.out_vol = vol
        return vol


class _ParameterLayer(Layer):
    """Shared parameter bookkeeping for FullyConnectedLayer and ConvLayer."""

    def get_response(self):
        response = [
            ParameterResponse(f.values, f.gradients,
                              self.config.l1_decay_mul, self.config.l2_decay_mul)
            for f in self.filters
        ]
        # Biases are never decayed
        response.append(ParameterResponse(self.biases.values, self.biases.gradients, 0.0, 0.0))
        return response


class FullyConnectedLayer(_ParameterLayer):
    """
    Fully Connected Layer.

    Each output neuron owns a filter the size of the flattened input.

    Forward: out[i] = dot(input, filter[i]) + bias[i]

    Backward, for chain gradient g[i] = dL/dout[i]:
        dL/dinput  += filter[i] * g[i]
        dL/dfilter[i] += input * g[i]
        dL/dbias[i] += g[i]
    """

    layer_type = LayerType.FULLY_CONNECTED

    def __init__(self, definition, input_dims, rng=None):
        super().__init__(definition, input_dims)
        self.config = require_config(definition)

        n = self.config.neurons
        self.out_dims = Dimensions(1, 1, n)
        self._check_output()

        num_inputs = self.in_dims.size
        self.filters = [Volume((1, 1, num_inputs), rng=rng) for _ in range(n)]
        self.biases = Volume((1, 1, n), initial_value=self.config.preferred_bias)

    def forward(self, vol, training=False):
        self.in_vol = vol
        out = Volume(self.out_dims, zeros=True)

        x = vol.values
        for i, f in enumerate(self.filters):
            out.values[i] = np.dot(x, f.values) + self.biases.values[i]

        self.out_vol = out
        return out

    def backward(self):
        self.in_vol.zero_grad()

        x = self.in_vol.values
        for i, f in enumerate(self.filters):
            chain_grad = self.out_vol.gradients[i]
            self.in_vol.gradients += f.values * chain_grad
            f.gradients += x * chain_grad
            self.biases.gradients[i] += chain_grad

    def __repr__(self):
        return f"FullyConnectedLayer({self.in_dims.size}, {self.config.neurons})"


class ConvLayer(_ParameterLayer):
    """
    2D Convolution Layer.

    One filter of shape (sx, sy, input depth) per output depth slice, plus
    one bias per filter.

    Output size per axis:
        floor((in + 2*padding - kernel) / stride) + 1

    Padding is never materialized: kernel taps that fall outside the input
    simply contribute nothing, in both the forward and backward passes.
    """

    layer_type = LayerType.CONV

    def __init__(self, definition, input_dims, rng=None):
        super().__init__(definition, input_dims)
        self.config = conf = require_config(definition)

        out_x = pooled_size(self.in_dims.x, conf.padding, conf.sx, conf.stride)
        out_y = pooled_size(self.in_dims.y, conf.padding, conf.sy, conf.stride)
        if out_x <= 0 or out_y <= 0:
            raise ValueError(f"Kernel ({conf.sx}, {conf.sy}) does not fit input {self.in_dims}")
        self.out_dims = Dimensions(out_x, out_y, conf.filters)
        self._check_output()

        self.filters = [Volume((conf.sx, conf.sy, self.in_dims.z), rng=rng)
                        for _ in range(conf.filters)]
        self.biases = Volume((1, 1, conf.filters), initial_value=conf.preferred_bias)

    def _taps(self, ax, ay):
        """
        Yield (filter index, input index) of the in-bounds kernel taps for the
        output position (ax, ay). Each index addresses the first depth
        element; depth is contiguous in both buffers.
        """
        conf = self.config
        in_x, in_y, depth = self.in_dims
        x0 = ax * conf.stride - conf.padding
        y0 = ay * conf.stride - conf.padding

        for fy in range(conf.sy):
            oy = y0 + fy
            if oy < 0 or oy >= in_y:
                continue
            for fx in range(conf.sx):
                ox = x0 + fx
                if ox < 0 or ox >= in_x:
                    continue
                yield (conf.sx * fy + fx) * depth, (in_x * oy + ox) * depth

    def forward(self, vol, training=False):
        self.in_vol = vol
        out = Volume(self.out_dims, zeros=True)

        depth = self.in_dims.z
        x = vol.values
        for d, f in enumerate(self.filters):
            w = f.values
            for ay in range(self.out_dims.y):
                for ax in range(self.out_dims.x):
                    a = 0.0
                    for fi, xi in self._taps(ax, ay):
                        a += np.dot(w[fi:fi + depth], x[xi:xi + depth])
                    a += self.biases.values[d]
                    out.set(ax, ay, d, a)

        self.out_vol = out
        return out

    def backward(self):
        self.in_vol.zero_grad()

        depth = self.in_dims.z
        x, dx = self.in_vol.values, self.in_vol.gradients
        for d, f in enumerate(self.filters):
            w, dw = f.values, f.gradients
            for ay in range(self.out_dims.y):
                for ax in range(self.out_dims.x):
                    chain_grad = self.out_vol.get_grad(ax, ay, d)
                    for fi, xi in self._taps(ax, ay):
                        dw[fi:fi + depth] += x[xi:xi + depth] * chain_grad
                        dx[xi:xi + depth] += w[fi:fi + depth] * chain_grad
                    self.biases.gradients[d] += chain_grad

    def __repr__(self):
        conf = self.config
        return (f"ConvLayer({self.in_dims} -> {self.out_dims}, kernel=({conf.sx}, {conf.sy}), "
                f"stride={conf.stride}, padding={conf.padding})")


class PoolLayer(Layer):
    """
    Max Pooling Layer.

    Pools each depth slice independently; output size uses the same formula
    as ConvLayer. Forward records where every maximum came from in switch
    buffers, and backward replays the identical traversal to route each
    output gradient to that position only.

    Window taps outside the input are never compared, so padding can never
    win the max.
    """

    layer_type = LayerType.POOL

    def __init__(self, definition, input_dims, rng=None):
        super().__init__(definition, input_dims)
        self.config = conf = require_config(definition)

        out_x = pooled_size(self.in_dims.x, conf.padding, conf.sx, conf.stride)
        out_y = pooled_size(self.in_dims.y, conf.padding, conf.sy, conf.stride)
        if out_x <= 0 or out_y <= 0:
            raise ValueError(f"Window ({conf.sx}, {conf.sy}) does not fit input {self.in_dims}")
        self.out_dims = Dimensions(out_x, out_y, self.in_dims.z)
        self._check_output()

        n = self.out_dims.size
        self.switch_x = np.full(n, -1, dtype=np.int64)
        self.switch_y = np.full(n, -1, dtype=np.int64)

    def _positions(self):
        """Traversal order shared by forward and backward: depth, x, y."""
        for d in range(self.out_dims.z):
            for ax in range(self.out_dims.x):
                for ay in range(self.out_dims.y):
                    yield d, ax, ay

    def forward(self, vol, training=False):
        self.in_vol = vol
        out = Volume(self.out_dims, zeros=True)

        conf = self.config
        in_x, in_y = self.in_dims.x, self.in_dims.y
        for n, (d, ax, ay) in enumerate(self._positions()):
            x0 = ax * conf.stride - conf.padding
            y0 = ay * conf.stride - conf.padding

            a = -np.inf
            win_x, win_y = -1, -1
            for fx in range(conf.sx):
                for fy in range(conf.sy):
                    ox, oy = x0 + fx, y0 + fy
                    if 0 <= ox < in_x and 0 <= oy < in_y:
                        v = vol.get(ox, oy, d)
                        if v > a:
                            a = v
                            win_x, win_y = ox, oy

            self.switch_x[n] = win_x
            self.switch_y[n] = win_y
            # A window lying entirely in the padding has no winner
            out.set(ax, ay, d, a if win_x >= 0 else 0.0)

        self.out_vol = out
        return out

    def backward(self):
        self.in_vol.zero_grad()

        for n, (d, ax, ay) in enumerate(self._positions()):
            if self.switch_x[n] < 0:
                continue
            chain_grad = self.out_vol.get_grad(ax, ay, d)
            self.in_vol.add_grad(self.switch_x[n], self.switch_y[n], d, chain_grad)

    def __repr__(self):
        conf = self.config
        return (f"PoolLayer({self.in_dims} -> {self.out_dims}, window=({conf.sx}, {conf.sy}), "
                f"stride={conf.stride})")


class ActivationLayer(Layer):
    """
    Elementwise activation layer.

    Wraps an activation function from activations.py. Backward uses the
    derivative expressed through the cached output values.
    """

    activation_name = None

    def __init__(self, definition, input_dims, rng=None):
        super().__init__(definition, input_dims)
        self.activation = get_activation(self.activation_name)
        self.out_dims = self.in_dims
        self._check_output()

    def forward(self, vol, training=False):
        self.in_vol = vol
        out = vol.clone()
        out.values[:] = self.activation.forward(vol.values)
        self.out_vol = out
        return out

    def backward(self):
        self.in_vol.zero_grad()
        self.in_vol.gradients[:] = self.activation.backward(self.out_vol.values,
                                                            self.out_vol.gradients)


class ReLULayer(ActivationLayer):
    """ReLU layer: max(0, x)."""

    layer_type = LayerType.RELU
    activation_name = 'relu'


class SigmoidLayer(ActivationLayer):
    """Sigmoid layer: 1 / (1 + exp(-x))."""

    layer_type = LayerType.SIGMOID
    activation_name = 'sigmoid'


class TanhLayer(ActivationLayer):
    """Tanh layer."""

    layer_type = LayerType.TANH
    activation_name = 'tanh'


class DropoutLayer(Layer):
    """
    Dropout Layer for regularization.

    Training: each element is independently zeroed with probability p and
    remembered as dropped.
    Inference: every value is multiplied by p, with no randomness.

    Backward copies the output gradient of every element that was not
    dropped; dropped elements keep a zero gradient.
    """

    layer_type = LayerType.DROPOUT

    def __init__(self, definition, input_dims, rng=None):
        super().__init__(definition, input_dims)
        self.config = require_config(definition)
        self.out_dims = self.in_dims
        self._check_output()

        self.rng = rng if rng is not None else np.random.default_rng()
        self.dropped = np.zeros(self.out_dims.size, dtype=bool)

    @property
    def probability(self):
        return self.config.probability

    def forward(self, vol, training=False):
        self.in_vol = vol
        out = vol.clone()

        if training:
            self.dropped = self.rng.random(vol.size) < self.probability
            out.values[self.dropped] = 0.0
        else:
            self.dropped = np.zeros(vol.size, dtype=bool)
            out.values *= self.probability

        self.out_vol = out
        return out

    def backward(self):
        self.in_vol.zero_grad()
        kept = ~self.dropped
        self.in_vol.gradients[kept] = self.out_vol.gradients[kept]

    def __repr__(self):
        return f"DropoutLayer(probability={self.probability})"


class MaxoutLayer(Layer):
    """
    Maxout Layer.

    Collapses every group of k consecutive input channels into one output
    channel holding the group's maximum. The winning channel of every output
    element is kept in a switch buffer, in the order forward visits them,
    so backward can route each gradient to that single channel.
    """

    layer_type = LayerType.MAXOUT

    def __init__(self, definition, input_dims, rng=None):
        super().__init__(definition, input_dims)
        self.config = require_config(definition)

        k = self.config.group_size
        if self.in_dims.z % k != 0:
            raise ValueError(f"Input depth {self.in_dims.z} is not divisible by group size {k}")
        self.out_dims = Dimensions(self.in_dims.x, self.in_dims.y, self.in_dims.z // k)
        self._check_output()

        self.switches = np.zeros(self.out_dims.size, dtype=np.int64)

    def _positions(self):
        for x in range(self.out_dims.x):
            for y in range(self.out_dims.y):
                for i in range(self.out_dims.z):
                    yield x, y, i

    def forward(self, vol, training=False):
        self.in_vol = vol
        out = Volume(self.out_dims, zeros=True)

        k = self.config.group_size
        for si, (x, y, i) in enumerate(self._positions()):
            ix = i * k
            a = vol.get(x, y, ix)
            ai = 0
            for j in range(1, k):
                a2 = vol.get(x, y, ix + j)
                if a2 > a:
                    a = a2
                    ai = j
            out.set(x, y, i, a)
            self.switches[si] = ix + ai

        self.out_vol = out
        return out

    def backward(self):
        self.in_vol.zero_grad()

        for si, (x, y, i) in enumerate(self._positions()):
            chain_grad = self.out_vol.get_grad(x, y, i)
            self.in_vol.set_grad(x, y, self.switches[si], chain_grad)

    def __repr__(self):
        return f"MaxoutLayer(group_size={self.config.group_size})"
