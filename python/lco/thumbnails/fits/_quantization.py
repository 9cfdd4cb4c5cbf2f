# This file is part of lco-thumbnails.
#
# Developed for the LSST Data Management System.
# This product includes software developed by the LSST Project
# (https://www.lsst.org).
# See the COPYRIGHT file at the top-level directory of this distribution
# for details of code ownership.
#
# Use of this source code is governed by a 3-clause BSD-style
# license that can be found in the LICENSE file.

from __future__ import annotations

__all__ = ("N_RANDOM", "ZERO_VALUE", "dequantize", "dither_random_values", "dither_sequence")

import functools

import numpy as np
import numpy.typing as npt

from ._common import FitsDitherAlgorithm

N_RANDOM = 10000
"""Length of the FITS standard's dither random number table."""

ZERO_VALUE = -2147483646
"""Integer that ``SUBTRACTIVE_DITHER_2`` uses for pixels that were exactly
zero.
"""


@functools.cache
def dither_random_values() -> np.ndarray:
    """Return the FITS standard's table of uniform random numbers.

    This is the Park & Miller minimal standard generator, seeded with 1 and
    stored in single precision, exactly as the standard prescribes.  The
    result is read-only and shared by all callers.
    """
    a = 16807.0
    m = 2147483647.0
    seed = 1.0
    values = np.empty(N_RANDOM, dtype=np.float32)
    for i in range(N_RANDOM):
        temp = a * seed
        seed = temp - m * int(temp / m)
        values[i] = seed / m
    if int(seed) != 1043618065:
        raise AssertionError(f"Dither random number generator produced {int(seed)} as its final seed.")
    values.flags.writeable = False
    return values


def dither_sequence(tile_index: int, seed: int, n_pixels: int) -> np.ndarray:
    """Return the random offsets subtracted from each pixel of a tile.

    Parameters
    ----------
    tile_index
        Zero-based index of the tile (table row).
    seed
        ``ZDITHER0`` value.
    n_pixels
        Number of pixels in the tile.
    """
    rand = dither_random_values()
    iseed = (tile_index + seed - 1) % N_RANDOM
    start = int(rand[iseed] * 500)
    chunks: list[np.ndarray] = []
    remaining = n_pixels
    while remaining > 0:
        take = min(remaining, N_RANDOM - start)
        chunks.append(rand[start : start + take])
        remaining -= take
        iseed = (iseed + 1) % N_RANDOM
        start = int(rand[iseed] * 500)
    if not chunks:
        return np.zeros(0, dtype=np.float64)
    return np.concatenate(chunks).astype(np.float64)


def dequantize(
    values: np.ndarray,
    *,
    scale: float,
    zero: float,
    method: FitsDitherAlgorithm,
    tile_index: int,
    seed: int,
    blank: int | None,
    dtype: npt.DTypeLike,
) -> np.ndarray:
    """Convert a tile of quantized integers back to floating point.

    Parameters
    ----------
    values
        Integer tile values.
    scale, zero
        ``ZSCALE`` and ``ZZERO`` for this tile.
    method
        ``ZQUANTIZ`` dither method.
    tile_index
        Zero-based tile index, for the dither sequence.
    seed
        ``ZDITHER0``.
    blank
        Integer value that marks undefined pixels (``ZBLANK``), if any; these
        become NaN.
    dtype
        Floating-point output dtype.
    """
    result = values.astype(np.float64)
    if method is FitsDitherAlgorithm.NO_DITHER:
        result *= scale
        result += zero
    else:
        result -= dither_sequence(tile_index, seed, values.size)
        result += 0.5
        result *= scale
        result += zero
        if method is FitsDitherAlgorithm.SUBTRACTIVE_DITHER_2:
            result[values == ZERO_VALUE] = 0.0
    if blank is not None:
        result[values == blank] = np.nan
    return result.astype(dtype)
