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

__all__ = ("DecodedImage", "ImageShapeError")

from typing import final

import numpy as np
import numpy.typing as npt


class ImageShapeError(ValueError):
    """The number of decoded pixels does not match the declared dimensions."""

    kind = "shape_mismatch"


@final
class DecodedImage:
    """A single image plane decoded from a FITS file.

    Parameters
    ----------
    width
        Number of pixels per row (``ZNAXIS1``).
    height
        Number of rows (``ZNAXIS2``).
    pixels
        Row-major pixel values.  Always stored as a read-only, 1-d
        ``float32`` array.

    Notes
    -----
    The constructor does not require ``len(pixels) == width * height``, so
    that shape problems are reported separately from decoding problems; use
    `check_shape` (or `array`, which calls it) to enforce that.
    """

    def __init__(self, width: int, height: int, pixels: npt.ArrayLike):
        if width < 0 or height < 0:
            raise ValueError(f"Image dimensions must be non-negative; got {width}x{height}.")
        # Always an owned copy.
        array = np.array(pixels, dtype=np.float32).reshape(-1)
        array.flags.writeable = False
        self._width = int(width)
        self._height = int(height)
        self._pixels = array

    __slots__ = ("_width", "_height", "_pixels")

    @property
    def width(self) -> int:
        """Number of pixels per row."""
        return self._width

    @property
    def height(self) -> int:
        """Number of rows."""
        return self._height

    @property
    def pixels(self) -> np.ndarray:
        """Row-major pixel values (read-only ``float32``)."""
        return self._pixels

    @property
    def shape(self) -> tuple[int, int]:
        """Declared ``(height, width)``."""
        return (self._height, self._width)

    def check_shape(self) -> None:
        """Raise `ImageShapeError` if the pixel count does not match the
        declared dimensions.
        """
        if self._pixels.size != self._width * self._height:
            raise ImageShapeError(
                f"Image declares {self._width}x{self._height} pixels but {self._pixels.size} were decoded."
            )

    @property
    def array(self) -> np.ndarray:
        """A read-only 2-d ``(height, width)`` view of the pixels."""
        self.check_shape()
        return self._pixels.reshape(self.shape)

    def __len__(self) -> int:
        return self._pixels.size

    def __str__(self) -> str:
        return f"DecodedImage({self._width}x{self._height}, {self._pixels.size} pixels)"

    def __repr__(self) -> str:
        return f"DecodedImage(width={self._width}, height={self._height}, pixels=...)"
