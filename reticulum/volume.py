"""
Volumes - Packed 3D Tensors
===========================

Every piece of data flowing through a network lives in a Volume: input
images, activations, filters and biases. A Volume is a 3D block of numbers
with a width, a height and a depth, stored as two flat NumPy arrays of equal
length:

- values: the numbers themselves
- gradients: d(loss)/d(value), written by the most recent backward pass

Memory layout:
    index(x, y, d) = (width * y + x) * depth + d

Depth is the fastest-varying axis, so the flat buffer reshapes directly to a
(height, width, depth) array in C order.

Initialization (mutually exclusive):
- zeros=True: everything zero
- initial_value=c: every value set to c
- values=[...]: explicit depth vector, requires width == height == 1
- default: Gaussian with std sqrt(1 / size), which keeps the output variance
  of a neuron independent of its fan-in
"""

from collections import namedtuple

import numpy as np


class Dimensions(namedtuple('Dimensions', ['x', 'y', 'z'])):
    """Volumetric size (width, height, depth) of a Volume."""

    __slots__ = ()

    @property
    def size(self):
        return self.x * self.y * self.z

    def __repr__(self):
        return f"Dimensions({self.x}x{self.y}x{self.z})"


class Volume:
    """
    3D block of values and their gradients.

    Args:
        dims: Dimensions (or a (width, height, depth) tuple)
        zeros: Initialize values to zero
        initial_value: Initialize every value to this constant
        values: Explicit values for a 1x1xD volume
        rng: numpy Generator used for the default Gaussian initialization

    Example:
        >>> vol = Volume((1, 1, 3), values=[1.0, 2.0, 3.0])
        >>> vol.get(0, 0, 2)
        3.0
    """

    def __init__(self, dims, zeros=False, initial_value=None, values=None, rng=None):
        self.dims = Dimensions(*dims)
        n = self.dims.size

        self.values = np.zeros(n, dtype=np.float64)
        self.gradients = np.zeros(n, dtype=np.float64)

        if zeros:
            pass
        elif initial_value is not None:
            self.values.fill(initial_value)
        elif values is not None:
            values = np.asarray(values, dtype=np.float64).ravel()
            if len(values) != self.dims.z:
                raise ValueError(f"Invalid input values: got {len(values)} values "
                                 f"for depth {self.dims.z}")
            if self.dims.x != 1 or self.dims.y != 1:
                raise ValueError(f"Invalid volume dimensions {self.dims}: width and "
                                 f"height must equal 1 when values are given")
            self.values[:] = values
        else:
            if rng is None:
                rng = np.random.default_rng()
            # Equalize the output variance of every neuron, otherwise neurons
            # with many incoming connections have outputs of larger variance
            std = np.sqrt(1.0 / n)
            self.values[:] = rng.standard_normal(n) * std

    @classmethod
    def from_array(cls, array):
        """
        Build a Volume from an array shaped (height, width, depth).

        2D arrays are treated as (height, width) with depth 1, 1D arrays
        as a 1x1xD vector.
        """
        array = np.asarray(array, dtype=np.float64)
        if array.ndim == 1:
            array = array.reshape(1, 1, -1)
        elif array.ndim == 2:
            array = array[:, :, np.newaxis]
        elif array.ndim != 3:
            raise ValueError(f"Expected 1D, 2D or 3D array, got shape {array.shape}")

        height, width, depth = array.shape
        vol = cls((width, height, depth), zeros=True)
        vol.values[:] = array.ravel()
        return vol

    def to_array(self):
        """Values as a (height, width, depth) view of the packed buffer."""
        return self.values.reshape(self.dims.y, self.dims.x, self.dims.z)

    @property
    def size(self):
        return self.dims.size

    def _index(self, x, y, d):
        if not (0 <= x < self.dims.x and 0 <= y < self.dims.y and 0 <= d < self.dims.z):
            raise IndexError(f"Position ({x}, {y}, {d}) out of range for {self.dims}")
        return (self.dims.x * y + x) * self.dims.z + d

    def _check(self, index):
        if not 0 <= index < self.dims.size:
            raise IndexError(f"Index {index} out of range for size {self.dims.size}")
        return index

    # Values

    def get(self, x, y, d):
        return self.values[self._index(x, y, d)]

    def set(self, x, y, d, value):
        self.values[self._index(x, y, d)] = value

    def add(self, x, y, d, value):
        self.values[self._index(x, y, d)] += value

    def mult(self, x, y, d, value):
        self.values[self._index(x, y, d)] *= value

    def get_by_index(self, index):
        return self.values[self._check(index)]

    def set_by_index(self, index, value):
        self.values[self._check(index)] = value

    def add_by_index(self, index, value):
        self.values[self._check(index)] += value

    def mult_by_index(self, index, value):
        self.values[self._check(index)] *= value

    # Gradients

    def get_grad(self, x, y, d):
        return self.gradients[self._index(x, y, d)]

    def set_grad(self, x, y, d, value):
        self.gradients[self._index(x, y, d)] = value

    def add_grad(self, x, y, d, value):
        self.gradients[self._index(x, y, d)] += value

    def get_grad_by_index(self, index):
        return self.gradients[self._check(index)]

    def set_grad_by_index(self, index, value):
        self.gradients[self._check(index)] = value

    def add_grad_by_index(self, index, value):
        self.gradients[self._check(index)] += value

    def zero_grad(self):
        """Reset every gradient entry to 0."""
        self.gradients.fill(0.0)

    # Whole-volume operations

    def clone(self):
        """Copy of the values with zeroed gradients."""
        vol = Volume(self.dims, zeros=True)
        vol.values[:] = self.values
        return vol

    def clone_and_zero(self):
        """Volume of the same dimensions with zero values and gradients."""
        return Volume(self.dims, zeros=True)

    def add_from(self, other, scale=1.0):
        """Element-wise add the values of another volume, optionally scaled."""
        if other.dims != self.dims:
            raise ValueError(f"Cannot add volume of {other.dims} to volume of {self.dims}")
        self.values += other.values * scale

    def set_const(self, value):
        self.values.fill(value)

    def __repr__(self):
        return f"Volume({self.dims.x}, {self.dims.y}, {self.dims.z})"
