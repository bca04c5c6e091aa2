"""
Block Transform Primitives.

Pure numeric kernels used by the frequency and wavelet codecs. Each function
works on a single fixed-size patch and has no side effects.

    - forward_dct / inverse_dct: orthonormal 8x8 DCT-II via OpenCV
    - forward_dwt / inverse_dwt: separable 2D Haar decomposition via PyWavelets
      (a row pass followed by a column pass), producing LL, HL, LH and HH
      sub-bands of half the patch size

Sub-band naming follows the usual image-coding convention: the first letter
is the horizontal filter, the second the vertical one. PyWavelets returns
(cA, (cH, cV, cD)), which maps to LL, LH, HL and HH respectively.
"""

from typing import NamedTuple

import cv2
import numpy as np
import pywt


BLOCK_SIZE = 8
WAVELET = "haar"


class SubBands(NamedTuple):
    """Wavelet sub-bands of one patch. Each array is (rows, cols[, channels])."""

    ll: np.ndarray
    hl: np.ndarray
    lh: np.ndarray
    hh: np.ndarray


def forward_dct(block: np.ndarray) -> np.ndarray:
    """
    Apply the 2D DCT-II to an 8x8 block.

    Args:
        block: 8x8 array of sample values (any numeric dtype)

    Returns:
        8x8 float64 array of coefficients; [0, 0] is the DC term
    """
    return cv2.dct(np.ascontiguousarray(block, dtype=np.float64))


def inverse_dct(coefficients: np.ndarray) -> np.ndarray:
    """
    Apply the inverse 2D DCT to an 8x8 coefficient block.

    The result is left as float64; callers round and clip when writing
    samples back.
    """
    return cv2.idct(np.ascontiguousarray(coefficients, dtype=np.float64))


def forward_dwt(patch: np.ndarray) -> SubBands:
    """
    Decompose a patch into four Haar sub-bands.

    Args:
        patch: (8, 8) or (8, 8, channels) array; the transform runs over the
               two spatial axes, channels are carried through independently

    Returns:
        SubBands with arrays of shape (4, 4[, channels])
    """
    ll, (lh, hl, hh) = pywt.dwt2(np.asarray(patch, dtype=np.float64), WAVELET, axes=(0, 1))
    return SubBands(ll=ll, hl=hl, lh=lh, hh=hh)


def inverse_dwt(bands: SubBands) -> np.ndarray:
    """Reconstruct a patch from its Haar sub-bands."""
    return pywt.idwt2((bands.ll, (bands.lh, bands.hl, bands.hh)), WAVELET, axes=(0, 1))


def to_samples(values: np.ndarray) -> np.ndarray:
    """Round and clip float samples back into the uint8 range."""
    return np.clip(np.rint(values), 0, 255).astype(np.uint8)
