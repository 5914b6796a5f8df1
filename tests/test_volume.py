"""
Tests for Volumes
=================

Unit tests for the packed 3D volume: memory layout, initialization modes,
element access and whole-volume operations.
"""

import numpy as np
import pytest
import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from reticulum.volume import Dimensions, Volume
from reticulum.utils import make_rng


class TestDimensions:
    """Tests for Dimensions."""

    def test_size(self):
        assert Dimensions(3, 4, 5).size == 60

    def test_equality_with_tuple(self):
        assert Dimensions(2, 2, 1) == (2, 2, 1)


class TestLayout:
    """Tests for the index mapping."""

    def test_index_formula(self):
        """set(x, y, d) must land on (width*y + x)*depth + d."""
        vol = Volume((3, 2, 4), zeros=True)
        vol.set(2, 1, 3, 7.0)

        assert vol.values[(3 * 1 + 2) * 4 + 3] == 7.0
        assert np.count_nonzero(vol.values) == 1

    def test_index_is_bijection(self):
        """Every (x, y, d) maps to a distinct index covering [0, size)."""
        vol = Volume((3, 4, 2), zeros=True)
        seen = set()
        for x in range(3):
            for y in range(4):
                for d in range(2):
                    seen.add(vol._index(x, y, d))

        assert seen == set(range(vol.size))

    def test_to_array_matches_get(self):
        vol = Volume((3, 2, 2), rng=make_rng(0))
        array = vol.to_array()

        assert array.shape == (2, 3, 2)
        assert array[1, 2, 0] == vol.get(2, 1, 0)

    def test_from_array_roundtrip(self):
        array = np.arange(24, dtype=float).reshape(2, 3, 4)
        vol = Volume.from_array(array)

        assert vol.dims == (3, 2, 4)
        assert vol.get(1, 1, 2) == array[1, 1, 2]
        np.testing.assert_array_equal(vol.to_array(), array)

    def test_from_array_1d_and_2d(self):
        assert Volume.from_array([1.0, 2.0]).dims == (1, 1, 2)
        assert Volume.from_array(np.zeros((4, 5))).dims == (5, 4, 1)

    def test_from_array_rejects_4d(self):
        with pytest.raises(ValueError):
            Volume.from_array(np.zeros((1, 1, 1, 1)))


class TestInitialization:
    """Tests for the initialization modes."""

    def test_zeros(self):
        vol = Volume((2, 2, 3), zeros=True)

        assert np.all(vol.values == 0)
        assert np.all(vol.gradients == 0)

    def test_initial_value(self):
        vol = Volume((2, 3, 1), initial_value=0.1)

        assert np.allclose(vol.values, 0.1)
        assert np.all(vol.gradients == 0)

    def test_explicit_values(self):
        vol = Volume((1, 1, 3), values=[1.0, 2.0, 3.0])

        assert vol.get(0, 0, 2) == 3.0
        assert vol.get_by_index(0) == 1.0

    def test_explicit_values_wrong_length(self):
        with pytest.raises(ValueError):
            Volume((1, 1, 3), values=[1.0, 2.0])

    def test_explicit_values_wrong_shape(self):
        with pytest.raises(ValueError):
            Volume((2, 1, 2), values=[1.0, 2.0])

    def test_gaussian_variance(self):
        """Default init draws from N(0, 1/size)."""
        vol = Volume((20, 20, 25), rng=make_rng(42))

        assert abs(np.mean(vol.values)) < 0.01
        assert np.var(vol.values) == pytest.approx(1.0 / vol.size, rel=0.1)

    def test_seeded_init_is_reproducible(self):
        a = Volume((4, 4, 2), rng=make_rng(7))
        b = Volume((4, 4, 2), rng=make_rng(7))

        np.testing.assert_array_equal(a.values, b.values)


class TestAccess:
    """Tests for element access."""

    def test_add_and_mult(self):
        vol = Volume((2, 2, 1), initial_value=2.0)
        vol.add(1, 1, 0, 3.0)
        vol.mult(0, 1, 0, 4.0)

        assert vol.get(1, 1, 0) == 5.0
        assert vol.get(0, 1, 0) == 8.0
        assert vol.get(1, 0, 0) == 2.0

    def test_by_index(self):
        vol = Volume((2, 2, 2), zeros=True)
        vol.set_by_index(5, 1.5)
        vol.add_by_index(5, 1.0)
        vol.mult_by_index(5, 2.0)

        assert vol.get_by_index(5) == 5.0

    def test_gradients(self):
        vol = Volume((2, 2, 2), zeros=True)
        vol.set_grad(1, 0, 1, 2.0)
        vol.add_grad(1, 0, 1, 0.5)
        vol.add_grad_by_index(0, 1.0)

        assert vol.get_grad(1, 0, 1) == 2.5
        assert vol.get_grad_by_index(0) == 1.0

        vol.zero_grad()
        assert np.all(vol.gradients == 0)

    def test_out_of_range(self):
        vol = Volume((2, 2, 2), zeros=True)

        with pytest.raises(IndexError):
            vol.get(2, 0, 0)
        with pytest.raises(IndexError):
            vol.set(0, 0, -1, 1.0)
        with pytest.raises(IndexError):
            vol.get_by_index(8)


class TestWholeVolume:
    """Tests for clone, add_from and set_const."""

    def test_clone_is_independent(self):
        vol = Volume((2, 2, 2), rng=make_rng(0))
        vol.gradients[:] = 1.0
        copy = vol.clone()

        np.testing.assert_array_equal(copy.values, vol.values)
        assert np.all(copy.gradients == 0)

        copy.set(0, 0, 0, 99.0)
        assert vol.get(0, 0, 0) != 99.0

    def test_clone_and_zero(self):
        vol = Volume((3, 1, 2), rng=make_rng(0))
        zeroed = vol.clone_and_zero()

        assert zeroed.dims == vol.dims
        assert np.all(zeroed.values == 0)

    def test_add_from(self):
        a = Volume((1, 1, 3), values=[1.0, 2.0, 3.0])
        b = Volume((1, 1, 3), values=[1.0, 1.0, 1.0])
        a.add_from(b, scale=2.0)

        np.testing.assert_allclose(a.values, [3.0, 4.0, 5.0])

    def test_add_from_dimension_mismatch(self):
        with pytest.raises(ValueError):
            Volume((1, 1, 3), zeros=True).add_from(Volume((1, 1, 2), zeros=True))

    def test_set_const(self):
        vol = Volume((2, 2, 2), rng=make_rng(0))
        vol.set_const(0.5)

        assert np.all(vol.values == 0.5)
