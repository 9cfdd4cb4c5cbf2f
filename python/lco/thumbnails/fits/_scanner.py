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

__all__ = ("HduDescriptor", "HduKind", "compute_data_size", "iter_hdus")

import dataclasses
import enum
import math
from collections.abc import Iterator
from logging import getLogger

from ._common import (
    BLOCK_SIZE,
    HeaderKeyNotFoundError,
    InvalidHeaderError,
    TruncatedDataError,
    padded_size,
)
from ._header import Header, read_header

_LOG = getLogger(__name__)


class HduKind(enum.Enum):
    """The kinds of HDU the scanner distinguishes."""

    PRIMARY = enum.auto()
    IMAGE = enum.auto()
    ASCII_TABLE = enum.auto()
    BINARY_TABLE = enum.auto()
    UNKNOWN = enum.auto()
    """A conforming extension of a type this package does not know about
    (e.g. ``FOREIGN``).  It is delimited but never interpreted.
    """

    @classmethod
    def from_header(cls, header: Header, index: int) -> HduKind:
        """Determine the kind of an HDU from its first card.

        Raises
        ------
        HeaderKeyNotFoundError
            Raised if the first HDU has no ``SIMPLE`` card, or a later one has
            no ``XTENSION`` card.
        """
        if index == 0:
            if "SIMPLE" not in header:
                raise HeaderKeyNotFoundError("SIMPLE")
            return cls.PRIMARY
        match header.get_str("XTENSION").strip().upper():
            case "IMAGE":
                return cls.IMAGE
            case "TABLE":
                return cls.ASCII_TABLE
            case "BINTABLE":
                return cls.BINARY_TABLE
            case _:
                return cls.UNKNOWN


@dataclasses.dataclass(frozen=True)
class HduDescriptor:
    """The location and header of one HDU within a buffer.

    Descriptors hold no reference to the buffer itself; use `data` to get a
    view of the data block.
    """

    index: int
    """Zero-based position of the HDU in the file."""

    kind: HduKind
    """What sort of HDU this is."""

    header: Header
    """The parsed header."""

    header_start: int
    """Offset of the first header card."""

    data_start: int
    """Offset of the first byte of the data block."""

    data_size: int
    """Size of the data block without padding (including any heap)."""

    @property
    def next_start(self) -> int:
        """Offset of the next HDU (after data block padding)."""
        return self.data_start + padded_size(self.data_size)

    def data(self, buffer: bytes | memoryview) -> memoryview:
        """Return a zero-copy view of the unpadded data block."""
        return memoryview(buffer)[self.data_start : self.data_start + self.data_size]


def compute_data_size(header: Header) -> int:
    """Compute the size in bytes of an HDU's data block from its header.

    This is ``|BITPIX| * GCOUNT * (PCOUNT + NAXIS1 * ... * NAXISn) / 8``; a
    zero ``NAXIS1`` in a random-groups primary HDU is left out of the
    product.
    """
    bitpix = header.get_int("BITPIX")
    if bitpix not in (8, 16, 32, 64, -32, -64):
        raise InvalidHeaderError(f"Invalid BITPIX value {bitpix}.")
    naxis = header.get_int("NAXIS")
    if naxis < 0 or naxis > 999:
        raise InvalidHeaderError(f"Invalid NAXIS value {naxis}.")
    if naxis == 0:
        return 0
    axes = [header.get_int(f"NAXIS{n}") for n in range(1, naxis + 1)]
    if any(a < 0 for a in axes):
        raise InvalidHeaderError(f"Negative axis length in {axes}.")
    if axes[0] == 0 and header.get_bool("GROUPS", False):
        axes = axes[1:]
    pcount = header.get_int("PCOUNT", 0)
    gcount = header.get_int("GCOUNT", 1)
    if pcount < 0 or gcount < 0:
        raise InvalidHeaderError(f"Invalid PCOUNT={pcount} or GCOUNT={gcount}.")
    return abs(bitpix) * gcount * (pcount + math.prod(axes)) // 8


def _at_end(view: memoryview, position: int) -> bool:
    if len(view) - position < BLOCK_SIZE:
        return True
    if bytes(view[position : position + BLOCK_SIZE]).strip(b"\x00 "):
        return False
    return not bytes(view[position:]).strip(b"\x00 ")


def iter_hdus(buffer: bytes | memoryview) -> Iterator[HduDescriptor]:
    """Iterate over the HDUs in a fully-loaded FITS file.

    Parameters
    ----------
    buffer
        The complete file contents.

    Yields
    ------
    HduDescriptor
        One descriptor per HDU, in file order.  The generator is lazy: each
        header is parsed only when the next descriptor is requested.

    Raises
    ------
    TruncatedHeaderError
        Raised if a header has no ``END`` card.
    TruncatedDataError
        Raised if a declared data block extends past the end of the buffer.
    HeaderKeyNotFoundError
        Raised if a mandatory keyword is missing.
    HeaderTypeMismatchError
        Raised if a mandatory keyword has the wrong type.
    InvalidHeaderError
        Raised if the mandatory keywords have impossible values.

    Notes
    -----
    Anything after the last HDU that is shorter than a block, or consists
    only of NUL or blank fill, ends the sequence silently.
    """
    view = memoryview(buffer)
    position = 0
    index = 0
    while True:
        if index > 0 and _at_end(view, position):
            return
        header, data_start = read_header(view, position)
        kind = HduKind.from_header(header, index)
        data_size = compute_data_size(header)
        if data_start + data_size > len(view):
            raise TruncatedDataError(
                f"HDU {index} declares {data_size} data bytes starting at {data_start}, "
                f"but the buffer ends at {len(view)}."
            )
        hdu = HduDescriptor(
            index=index,
            kind=kind,
            header=header,
            header_start=position,
            data_start=data_start,
            data_size=data_size,
        )
        _LOG.debug("HDU %d: %s, header at %d, %d data bytes.", index, kind.name, position, data_size)
        yield hdu
        position = hdu.next_start
        index += 1
