"""
PyTorch Reference Implementation
================================

The layer computations of reticulum written with PyTorch.
This serves as an independent check of the from-scratch NumPy implementation.
"""

from .reference import (volume_to_tensor, tensor_to_volume, conv_forward, pool_forward,
                        fully_connected_forward, softmax_forward, softmax_loss_backward)

__all__ = ['volume_to_tensor', 'tensor_to_volume', 'conv_forward', 'pool_forward',
           'fully_connected_forward', 'softmax_forward', 'softmax_loss_backward']
