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

__all__ = ("Column", "TableLayout")

import dataclasses
import re
from collections.abc import Mapping

import numpy as np

from ._common import InvalidHeaderError, TruncatedDataError
from ._header import Header

_TFORM_RE = re.compile(r"\s*(\d*)\s*([LXBIJKAEDCMPQ])\s*([LXBIJKAEDCM]?)")

# Big-endian numpy type codes and byte widths for each TFORM type letter.
_ELEMENT_TYPES: Mapping[str, str] = {
    "L": "u1",
    "X": "u1",
    "B": "u1",
    "I": ">i2",
    "J": ">i4",
    "K": ">i8",
    "A": "S1",
    "E": ">f4",
    "D": ">f8",
    "C": ">c8",
    "M": ">c16",
    "P": ">i4",
    "Q": ">i8",
}


@dataclasses.dataclass(frozen=True)
class Column:
    """Layout of one binary table field, from its ``TFORMn`` and ``TTYPEn``
    cards.
    """

    name: str
    """Upper-case ``TTYPEn`` value, or ``COLn`` when there is none."""

    code: str
    """TFORM type letter."""

    repeat: int
    """TFORM repeat count."""

    heap_code: str | None
    """Element type letter of a variable-length array column; `None` for
    fixed-width columns.
    """

    offset: int
    """Byte offset of the field within a row."""

    @classmethod
    def parse(cls, tform: str, name: str, offset: int) -> Column:
        """Parse a ``TFORMn`` value such as ``1J``, ``16A`` or ``1PB(812)``."""
        match = _TFORM_RE.match(tform)
        if match is None:
            raise InvalidHeaderError(f"Unsupported TFORM {tform!r} for column {name!r}.")
        repeat_str, code, heap_code = match.groups()
        repeat = int(repeat_str) if repeat_str else 1
        if code in "PQ":
            if not heap_code:
                raise InvalidHeaderError(f"Variable-length TFORM {tform!r} has no element type.")
            return cls(name, code, min(repeat, 1), heap_code, offset)
        return cls(name, code, repeat, None, offset)

    @property
    def is_variable(self) -> bool:
        """Whether cells hold heap descriptors instead of values."""
        return self.heap_code is not None

    @property
    def width(self) -> int:
        """Size of the field in bytes."""
        if self.code == "X":
            return -(-self.repeat // 8)
        if self.is_variable:
            return self.repeat * 2 * np.dtype(_ELEMENT_TYPES[self.code]).itemsize
        return self.repeat * np.dtype(_ELEMENT_TYPES[self.code]).itemsize

    @property
    def numpy_format(self) -> np.dtype:
        """Numpy dtype of the field in a structured row."""
        if self.code == "A":
            return np.dtype(f"S{self.repeat}")
        if self.code == "X":
            return np.dtype(("u1", (self.width,)))
        element = _ELEMENT_TYPES[self.code]
        if self.is_variable:
            return np.dtype((element, (2,)))
        if self.repeat == 1:
            return np.dtype(element)
        return np.dtype((element, (self.repeat,)))

    @property
    def heap_dtype(self) -> np.dtype:
        """Numpy dtype of the elements a heap descriptor points to."""
        if self.heap_code is None:
            raise TypeError(f"Column {self.name!r} is not a variable-length array column.")
        return np.dtype(_ELEMENT_TYPES[self.heap_code])


@dataclasses.dataclass(frozen=True)
class TableLayout:
    """The row layout of a binary table HDU.

    Notes
    -----
    All offsets are relative to the start of the HDU's data block.
    """

    columns: tuple[Column, ...]
    """Fields in ``TFORMn`` order."""

    row_size: int
    """Bytes per row (``NAXIS1``)."""

    n_rows: int
    """Number of rows (``NAXIS2``)."""

    heap_start: int
    """Offset of the heap (``THEAP``, defaulting to the end of the rows)."""

    @classmethod
    def from_header(cls, header: Header) -> TableLayout:
        """Construct from a binary table header.

        Raises
        ------
        HeaderKeyNotFoundError
            Raised if ``TFIELDS``, ``NAXIS1``, ``NAXIS2`` or a ``TFORMn``
            card is missing.
        InvalidHeaderError
            Raised if the column widths do not add up to ``NAXIS1``, or if
            a table with rows has a zero ``NAXIS1``.
        """
        n_fields = header.get_int("TFIELDS")
        row_size = header.get_int("NAXIS1")
        n_rows = header.get_int("NAXIS2")
        columns: list[Column] = []
        offset = 0
        for n in range(1, n_fields + 1):
            name = header.get_str(f"TTYPE{n}", f"COL{n}").strip().upper()
            column = Column.parse(header.get_str(f"TFORM{n}"), name, offset)
            columns.append(column)
            offset += column.width
        if offset != row_size:
            raise InvalidHeaderError(f"Column widths add up to {offset} bytes, but NAXIS1={row_size}.")
        if row_size == 0 and n_rows > 0:
            raise InvalidHeaderError(f"Table has {n_rows} rows of zero width.")
        heap_start = header.get_int("THEAP", row_size * n_rows)
        return cls(tuple(columns), row_size, n_rows, heap_start)

    def __contains__(self, name: str) -> bool:
        return any(c.name == name for c in self.columns)

    def __getitem__(self, name: str) -> Column:
        for column in self.columns:
            if column.name == name:
                return column
        raise KeyError(name)

    @property
    def row_dtype(self) -> np.dtype:
        """Structured numpy dtype for a single row.

        Zero-width fields are left out.
        """
        used: dict[str, Column] = {}
        for column in self.columns:
            if column.width and column.name not in used:
                used[column.name] = column
        return np.dtype(
            {
                "names": list(used),
                "formats": [c.numpy_format for c in used.values()],
                "offsets": [c.offset for c in used.values()],
                "itemsize": self.row_size,
            }
        )

    def read_rows(self, data: memoryview) -> np.ndarray:
        """Return a read-only structured array view of all rows."""
        if self.row_size * self.n_rows > len(data):
            raise TruncatedDataError(
                f"Table needs {self.row_size * self.n_rows} bytes but the data block has {len(data)}."
            )
        return np.frombuffer(data, dtype=self.row_dtype, count=self.n_rows)

    def heap_bytes(self, data: memoryview, rows: np.ndarray, row: int, name: str) -> memoryview:
        """Return the raw bytes a variable-length array cell points to.

        Parameters
        ----------
        data
            The HDU's data block.
        rows
            Result of `read_rows`.
        row
            Zero-based row index.
        name
            Column name.

        Raises
        ------
        TruncatedDataError
            Raised if the descriptor points outside the data block.
        """
        column = self[name]
        if not column.width:
            return memoryview(b"")
        count, offset = (int(v) for v in rows[name][row])
        if count < 0 or offset < 0:
            raise TruncatedDataError(f"Invalid heap descriptor ({count}, {offset}) in column {name!r}.")
        start = self.heap_start + offset
        stop = start + count * column.heap_dtype.itemsize
        if stop > len(data):
            raise TruncatedDataError(
                f"Heap cell for row {row} of column {name!r} ends at {stop}, "
                f"past the end of the data block ({len(data)})."
            )
        return data[start:stop]

    def heap_array(self, data: memoryview, rows: np.ndarray, row: int, name: str) -> np.ndarray:
        """Return a variable-length array cell as a numpy array of its heap
        element type.
        """
        return np.frombuffer(self.heap_bytes(data, rows, row, name), dtype=self[name].heap_dtype)
