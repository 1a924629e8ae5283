"""
Perceptual hashing for images.

A perceptual hash maps similar images to similar 64-bit values, so the
Hamming distance between two hashes is a usable measure of how alike two
images look. The transform follows the classic DCT pHash:

1. Resample the image to 32x32, ignoring the aspect ratio.
2. Reduce to average-intensity greyscale in [0, 1].
3. Take the orthonormal 2D DCT-II.
4. Threshold the low-frequency 8x8 block against its mean (DC excluded).
"""

from __future__ import annotations

import numpy as np
from scipy.fft import dctn

from ..core.errors import HashComputationError

HASH_BITS = 64
HASH_MASK = (1 << HASH_BITS) - 1

SAMPLE_SIZE = 32
BLOCK_SIZE = SAMPLE_SIZE // 4


def hash_distance(a: int, b: int) -> int:
    """Return the Hamming distance between two 64-bit hashes."""
    return bin((a ^ b) & HASH_MASK).count("1")


def to_unsigned(value: int) -> int:
    """Map a signed 64-bit hash onto its unsigned form."""
    return value & HASH_MASK


def to_grayscale(pixels: np.ndarray) -> np.ndarray:
    """
    Convert pixel data to brightness values in [0, 1].

    Accepts ``(H, W)`` brightness or ``(H, W, C)`` colour arrays. Colour is
    reduced by averaging the first three channels; alpha is ignored.
    """
    data = np.asarray(pixels)
    if data.ndim not in (2, 3) or data.size == 0:
        raise HashComputationError(
            f"Expected a non-empty 2D or 3D pixel array, got shape {data.shape}"
        )

    if np.issubdtype(data.dtype, np.integer):
        scale = float(np.iinfo(data.dtype).max)
        values = data.astype(np.float64) / scale
    else:
        values = data.astype(np.float64)

    if values.ndim == 3:
        channels = min(values.shape[2], 3)
        values = values[:, :, :channels].mean(axis=2)
    return values


def _area_weights(source: int, target: int) -> np.ndarray:
    """
    Weights for area-average resampling along one axis.

    Row ``i`` of the result holds the fraction of each source cell that
    falls inside target cell ``i``, normalised so each row sums to 1.
    """
    weights = np.zeros((target, source), dtype=np.float64)
    scale = source / target
    for i in range(target):
        start = i * scale
        end = (i + 1) * scale
        first = int(np.floor(start))
        last = min(int(np.ceil(end)), source)
        for j in range(first, last):
            overlap = min(end, j + 1) - max(start, j)
            if overlap > 0:
                weights[i, j] = overlap
    return weights / weights.sum(axis=1, keepdims=True)


def resample(values: np.ndarray, size: int = SAMPLE_SIZE) -> np.ndarray:
    """Stretch a 2D array to ``size`` x ``size`` by area averaging."""
    rows, cols = values.shape
    return _area_weights(rows, size) @ values @ _area_weights(cols, size).T


def dct2(values: np.ndarray) -> np.ndarray:
    """Orthonormal 2D DCT-II."""
    return dctn(values, type=2, norm="ortho")


def compute_hash(pixels: np.ndarray) -> int:
    """
    Compute the perceptual hash of decoded pixel data.

    Args:
        pixels: Brightness ``(H, W)`` or colour ``(H, W, C)`` array

    Returns:
        Unsigned 64-bit hash
    """
    gray = to_grayscale(pixels)
    coefficients = dct2(resample(gray, SAMPLE_SIZE))

    # Rows are y and columns are x, so bit i reads block[i // 8, i % 8]
    block = coefficients[:BLOCK_SIZE, :BLOCK_SIZE]
    # The DC term dwarfs the rest and is left out of the mean
    mean = (block.sum() - block[0, 0]) / (BLOCK_SIZE * BLOCK_SIZE - 1)

    bits = (block >= mean).ravel()
    result = 0
    for i, bit in enumerate(bits):
        if bit:
            result |= 1 << i
    return result
