"""
Unit Tests for Veilpix Block Transforms
"""

import numpy as np

from veilpix.stego.transforms import forward_dct, forward_dwt, inverse_dct, inverse_dwt, to_samples


class TestDct:
    """Test cases for the 8x8 DCT."""

    def test_constant_block_has_only_dc(self):
        block = np.full((8, 8), 100, dtype=np.uint8)
        coefficients = forward_dct(block)

        # Orthonormal scaling: DC = sum / 8
        assert np.isclose(coefficients[0, 0], 800.0)
        coefficients[0, 0] = 0
        assert np.allclose(coefficients, 0)

    def test_inverse_restores_block(self):
        block = np.random.default_rng(3).integers(0, 256, size=(8, 8)).astype(np.float64)
        assert np.allclose(inverse_dct(forward_dct(block)), block)

    def test_accepts_non_contiguous_views(self):
        patch = np.random.default_rng(4).integers(0, 256, size=(8, 8, 4), dtype=np.uint8)
        coefficients = forward_dct(patch[:, :, 1])
        assert coefficients.shape == (8, 8)
        assert np.allclose(inverse_dct(coefficients), patch[:, :, 1])


class TestDwt:
    """Test cases for the Haar decomposition."""

    def test_band_shapes(self):
        bands = forward_dwt(np.zeros((8, 8)))
        assert all(band.shape == (4, 4) for band in bands)

        bands = forward_dwt(np.zeros((8, 8, 4)))
        assert all(band.shape == (4, 4, 4) for band in bands)

    def test_constant_patch_has_no_detail(self):
        bands = forward_dwt(np.full((8, 8, 4), 77.0))
        assert np.allclose(bands.hl, 0)
        assert np.allclose(bands.lh, 0)
        assert np.allclose(bands.hh, 0)

    def test_inverse_restores_patch(self):
        patch = np.random.default_rng(5).integers(0, 256, size=(8, 8, 4)).astype(np.float64)
        assert np.allclose(inverse_dwt(forward_dwt(patch)), patch)

    def test_channels_are_independent(self):
        patch = np.zeros((8, 8, 4))
        patch[:, :, 2] = np.arange(64).reshape(8, 8)
        bands = forward_dwt(patch)
        assert np.allclose(bands.hh[:, :, 0], 0)
        assert not np.allclose(bands.ll[:, :, 2], 0)


def test_to_samples_rounds_and_clips():
    values = np.array([-3.2, 0.4, 100.6, 254.5, 300.0])
    samples = to_samples(values)
    assert samples.dtype == np.uint8
    assert samples.tolist() == [0, 0, 101, 254, 255]
