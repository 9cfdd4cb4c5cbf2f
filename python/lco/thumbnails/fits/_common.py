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

__all__ = (
    "BLOCK_SIZE",
    "CARD_SIZE",
    "CorruptTileError",
    "FitsCompressionAlgorithm",
    "FitsDecodeError",
    "FitsDitherAlgorithm",
    "HeaderKeyNotFoundError",
    "HeaderTypeMismatchError",
    "InvalidHeaderError",
    "NoImageHDUError",
    "TruncatedDataError",
    "TruncatedHeaderError",
    "UnsupportedCompressionError",
    "UnsupportedDataTypeError",
    "padded_size",
)

import enum
from typing import ClassVar

BLOCK_SIZE = 2880
"""Size of a FITS logical record; headers and data blocks are padded to a
multiple of this.
"""

CARD_SIZE = 80
"""Size of a single header card."""


def padded_size(size: int) -> int:
    """Round a byte count up to the next multiple of `BLOCK_SIZE`."""
    return -(-size // BLOCK_SIZE) * BLOCK_SIZE


class FitsDecodeError(RuntimeError):
    """Base class for all errors raised while decoding a FITS buffer."""

    kind: ClassVar[str] = "invalid_fits"
    """Stable, machine-readable name for this kind of failure."""


class TruncatedHeaderError(FitsDecodeError):
    """A header block ended without an ``END`` card."""

    kind = "truncated_header"


class TruncatedDataError(FitsDecodeError):
    """A data block (or a heap read within one) extends past the end of the
    buffer.
    """

    kind = "truncated_data"


class HeaderKeyNotFoundError(FitsDecodeError, LookupError):
    """A required header keyword is absent."""

    kind = "header_key_not_found"

    def __init__(self, keyword: str):
        super().__init__(f"Required header keyword {keyword!r} not found.")
        self.keyword = keyword


class HeaderTypeMismatchError(FitsDecodeError, TypeError):
    """A header keyword is present but its value has an incompatible type."""

    kind = "header_type_mismatch"

    def __init__(self, keyword: str, expected: str, value: object):
        super().__init__(f"Header keyword {keyword!r} has value {value!r}; expected {expected}.")
        self.keyword = keyword


class InvalidHeaderError(FitsDecodeError):
    """Header values are well-typed but inconsistent with each other or with
    the FITS standard.
    """

    kind = "invalid_header"


class UnsupportedDataTypeError(FitsDecodeError, NotImplementedError):
    """Decoded table cells do not hold floating-point samples."""

    kind = "unsupported_data_type"


class UnsupportedCompressionError(FitsDecodeError, NotImplementedError):
    """The tile compression algorithm is not one this package can decode."""

    kind = "unsupported_compression"


class CorruptTileError(FitsDecodeError):
    """A compressed tile could not be decompressed to the expected size."""

    kind = "corrupt_tile"


class NoImageHDUError(FitsDecodeError, LookupError):
    """The buffer was scanned to the end without finding a binary table
    HDU.
    """

    kind = "no_image_hdu"


class FitsCompressionAlgorithm(enum.StrEnum):
    """FITS tile compression algorithms, as written to ``ZCMPTYPE``.

    See the FITS standard for definitions.
    """

    GZIP_1 = "GZIP_1"
    GZIP_2 = "GZIP_2"
    RICE_1 = "RICE_1"
    NOCOMPRESS = "NOCOMPRESS"
    PLIO_1 = "PLIO_1"
    HCOMPRESS_1 = "HCOMPRESS_1"

    @classmethod
    def from_header_value(cls, value: str) -> FitsCompressionAlgorithm:
        """Interpret a ``ZCMPTYPE`` value.

        ``RICE_ONE`` is an obsolete spelling of ``RICE_1`` that still shows
        up in old files.
        """
        value = value.strip().upper()
        if value == "RICE_ONE":
            return cls.RICE_1
        try:
            return cls(value)
        except ValueError:
            raise UnsupportedCompressionError(f"Unrecognized compression algorithm {value!r}.") from None


class FitsDitherAlgorithm(enum.StrEnum):
    """FITS quantization dither algorithms, as written to ``ZQUANTIZ``.

    See the FITS standard for definitions.
    """

    NO_DITHER = "NO_DITHER"
    SUBTRACTIVE_DITHER_1 = "SUBTRACTIVE_DITHER_1"
    SUBTRACTIVE_DITHER_2 = "SUBTRACTIVE_DITHER_2"

    @classmethod
    def from_header_value(cls, value: str) -> FitsDitherAlgorithm:
        """Interpret a ``ZQUANTIZ`` value."""
        try:
            return cls(value.strip().upper())
        except ValueError:
            raise InvalidHeaderError(f"Unrecognized quantization method {value!r}.") from None
