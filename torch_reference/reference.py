"""
PyTorch Reference Layers
========================

Computes what the reticulum layers compute, using torch.nn.functional on the
layers' own parameters. Volumes are (height, width, depth) in memory; torch
wants (batch, channels, height, width), so every conversion goes through
Volume.to_array().

Example:
    >>> conv = net.layers[1]
    >>> expected = conv_forward(conv, vol)
    >>> np.allclose(conv.forward(vol).values, expected.values)
    True
"""

import numpy as np
import torch
import torch.nn.functional as F

from reticulum.volume import Volume


def volume_to_tensor(vol):
    """Volume -> float64 tensor of shape (1, depth, height, width)."""
    array = vol.to_array()
    return torch.from_numpy(np.ascontiguousarray(array.transpose(2, 0, 1)))[None]


def tensor_to_volume(tensor):
    """Tensor of shape (1, depth, height, width) -> Volume."""
    array = tensor.detach()[0].numpy().transpose(1, 2, 0)
    return Volume.from_array(array)


def _filter_weights(layer):
    # Each filter volume is (sy, sx, depth) -> (out, in, kh, kw)
    weights = np.stack([f.to_array().transpose(2, 0, 1) for f in layer.filters])
    return torch.from_numpy(np.ascontiguousarray(weights))


def conv_forward(layer, vol):
    """
    Convolution of `vol` with the filters and biases of a ConvLayer.

    Returns:
        Volume with the layer's output dimensions
    """
    conf = layer.config
    x = volume_to_tensor(vol)
    weight = _filter_weights(layer)
    bias = torch.from_numpy(layer.biases.values.copy())

    out = F.conv2d(x, weight, bias, stride=conf.stride, padding=conf.padding)
    return tensor_to_volume(out)


def pool_forward(layer, vol):
    """
    Max pooling of `vol` with the window of a PoolLayer.

    Padding is filled with -inf so it never wins the max, matching the
    layer; the padding of F.max_pool2d is limited to half the window.
    """
    conf = layer.config
    x = volume_to_tensor(vol)
    if conf.padding:
        x = F.pad(x, (conf.padding,) * 4, value=-np.inf)

    out = F.max_pool2d(x, kernel_size=(conf.sy, conf.sx), stride=conf.stride)
    return tensor_to_volume(out)


def fully_connected_forward(layer, vol):
    """Fully connected forward pass using the filters and biases of the layer."""
    weight = torch.from_numpy(np.stack([f.values for f in layer.filters]))
    bias = torch.from_numpy(layer.biases.values.copy())
    x = torch.from_numpy(vol.values.copy())

    out = F.linear(x, weight, bias)
    return Volume(layer.out_dims, values=out.numpy())


def softmax_forward(vol):
    """Class probabilities of a 1x1xN score volume."""
    x = torch.from_numpy(vol.values.copy())
    return F.softmax(x, dim=0).numpy()


def softmax_loss_backward(vol, label):
    """
    Negative log-likelihood of `label` and its gradient w.r.t. the scores,
    computed with autograd.

    Returns:
        (loss, gradient)
    """
    x = torch.tensor(vol.values, requires_grad=True)
    loss = F.cross_entropy(x[None], torch.tensor([label]))
    loss.backward()
    return loss.item(), x.grad.numpy()
