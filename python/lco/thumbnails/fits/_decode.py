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

__all__ = ("CompressedImageLayout", "decode", "decode_compressed_image")

import dataclasses
import math
from collections.abc import Iterator
from logging import getLogger

import numpy as np

from .._image import DecodedImage
from ._bintable import TableLayout
from ._codecs import decompress_tile, gunzip_tile
from ._common import (
    CorruptTileError,
    FitsCompressionAlgorithm,
    FitsDecodeError,
    FitsDitherAlgorithm,
    InvalidHeaderError,
    NoImageHDUError,
    UnsupportedDataTypeError,
)
from ._header import Header
from ._quantization import dequantize
from ._scanner import HduDescriptor, HduKind, iter_hdus

_LOG = getLogger(__name__)

_BITPIX_TYPES = {8: "u1", 16: ">i2", 32: ">i4", 64: ">i8", -32: ">f4", -64: ">f8"}


@dataclasses.dataclass(frozen=True)
class CompressedImageLayout:
    """Image and tiling parameters of a tile-compressed image HDU, from its
    ``Z*`` header keywords.
    """

    width: int
    """``ZNAXIS1``."""

    height: int
    """``ZNAXIS2``."""

    tile_width: int
    """``ZTILE1`` (defaults to the full width)."""

    tile_height: int
    """``ZTILE2`` (defaults to one row)."""

    bitpix: int
    """``ZBITPIX``, the pixel type of the uncompressed image."""

    algorithm: FitsCompressionAlgorithm
    """``ZCMPTYPE``."""

    block_size: int = 32
    """Rice ``BLOCKSIZE`` parameter."""

    bytepix: int = 4
    """Rice ``BYTEPIX`` parameter."""

    quantized: bool = False
    """Whether floating-point pixels were quantized to integers."""

    dither: FitsDitherAlgorithm = FitsDitherAlgorithm.NO_DITHER
    """``ZQUANTIZ``."""

    dither_seed: int = 1
    """``ZDITHER0``."""

    @classmethod
    def from_header(cls, header: Header) -> CompressedImageLayout:
        """Read the compressed-image keywords of a binary table header.

        Raises
        ------
        HeaderKeyNotFoundError
            Raised if ``ZNAXIS1``, ``ZNAXIS2``, ``ZBITPIX`` or ``ZCMPTYPE``
            is missing.
        HeaderTypeMismatchError
            Raised if any of those has the wrong type.
        """
        width = header.get_int("ZNAXIS1")
        height = header.get_int("ZNAXIS2")
        naxis = header.get_int("ZNAXIS", 2)
        tile_width = header.get_int("ZTILE1", width)
        tile_height = header.get_int("ZTILE2", 1 if naxis > 1 else height)
        for n in range(3, naxis + 1):
            if header.get_int(f"ZTILE{n}", 1) != 1:
                raise UnsupportedDataTypeError(
                    f"Tiles spanning more than one plane (ZTILE{n}={header[f'ZTILE{n}']}) are not supported."
                )
        if width < 0 or height < 0 or tile_width <= 0 or tile_height <= 0:
            raise InvalidHeaderError(
                f"Invalid image ({width}x{height}) or tile ({tile_width}x{tile_height}) dimensions."
            )
        bitpix = header.get_int("ZBITPIX")
        if bitpix not in _BITPIX_TYPES:
            raise InvalidHeaderError(f"Invalid ZBITPIX value {bitpix}.")
        algorithm = FitsCompressionAlgorithm.from_header_value(header.get_str("ZCMPTYPE"))
        parameters: dict[str, int] = {}
        n = 1
        while (name := header.get(f"ZNAME{n}")) is not None:
            value = header.get(f"ZVAL{n}")
            if isinstance(name, str) and type(value) is int:
                parameters[name.strip().upper()] = value
            n += 1
        quantize_method = header.get_str("ZQUANTIZ", FitsDitherAlgorithm.NO_DITHER.value)
        n_fields = header.get_int("TFIELDS", 0)
        column_names = {str(header.get(f"TTYPE{n}", "")).strip().upper() for n in range(1, n_fields + 1)}
        quantized = (
            bitpix < 0
            and quantize_method.strip().upper() != "NONE"
            and ("ZSCALE" in header or "ZSCALE" in column_names)
        )
        dither = FitsDitherAlgorithm.NO_DITHER
        if quantized:
            dither = FitsDitherAlgorithm.from_header_value(quantize_method)
        return cls(
            width=width,
            height=height,
            tile_width=tile_width,
            tile_height=tile_height,
            bitpix=bitpix,
            algorithm=algorithm,
            block_size=parameters.get("BLOCKSIZE", 32),
            bytepix=parameters.get("BYTEPIX", 4),
            quantized=quantized,
            dither=dither,
            dither_seed=header.get_int("ZDITHER0", 1),
        )

    @property
    def n_tiles(self) -> int:
        """Number of tiles in the first image plane."""
        return math.ceil(self.width / self.tile_width) * math.ceil(self.height / self.tile_height)

    def iter_tiles(self) -> Iterator[tuple[slice, slice]]:
        """Iterate over ``(y, x)`` slices of each tile in the first plane, in
        table row order.
        """
        for y in range(0, self.height, self.tile_height):
            for x in range(0, self.width, self.tile_width):
                yield slice(y, min(y + self.tile_height, self.height)), slice(
                    x, min(x + self.tile_width, self.width)
                )

    @property
    def pixel_dtype(self) -> np.dtype:
        """Big-endian dtype of uncompressed pixels, before dequantization."""
        if self.quantized:
            return np.dtype(">i4")
        return np.dtype(_BITPIX_TYPES[self.bitpix])

    @property
    def float_dtype(self) -> np.dtype:
        """Big-endian dtype of losslessly stored pixels."""
        return np.dtype(_BITPIX_TYPES[self.bitpix])


class _TileReader:
    """Decodes the tiles of one compressed image table, row by row."""

    def __init__(self, hdu: HduDescriptor, buffer: bytes | memoryview, layout: CompressedImageLayout):
        self._header = hdu.header
        self._layout = layout
        self._table = TableLayout.from_header(hdu.header)
        self._data = hdu.data(buffer)
        self._rows = self._table.read_rows(self._data)
        if self._table.n_rows < layout.n_tiles:
            raise InvalidHeaderError(
                f"Image needs {layout.n_tiles} tiles, but the table only has {self._table.n_rows} rows."
            )

    def _scalar(self, name: str, row: int, default: float | None) -> float | None:
        if name in self._table and self._table[name].width:
            column = self._rows[name]
            if column.dtype.kind not in "iuf":
                raise UnsupportedDataTypeError(f"Column {name} holds {column.dtype} values, not numbers.")
            return column[row].item()
        if name in self._header:
            return self._header.get_float(name)
        return default

    def read(self, row: int, n_pixels: int) -> np.ndarray:
        """Decode the tile stored in the given table row.

        The first non-empty cell among ``COMPRESSED_DATA``,
        ``GZIP_COMPRESSED_DATA`` and ``UNCOMPRESSED_DATA`` is used.
        """
        layout = self._layout
        if "COMPRESSED_DATA" in self._table:
            payload = self._table.heap_bytes(self._data, self._rows, row, "COMPRESSED_DATA")
            if len(payload):
                values = decompress_tile(
                    layout.algorithm,
                    bytes(payload),
                    layout.pixel_dtype,
                    n_pixels,
                    block_size=layout.block_size,
                    bytepix=layout.bytepix,
                )
                if not layout.quantized:
                    return values
                blank = self._scalar("ZBLANK", row, None)
                return dequantize(
                    values,
                    scale=self._scalar("ZSCALE", row, 1.0),
                    zero=self._scalar("ZZERO", row, 0.0),
                    method=layout.dither,
                    tile_index=row,
                    seed=layout.dither_seed,
                    blank=int(blank) if blank is not None else None,
                    dtype=layout.float_dtype.newbyteorder("="),
                )
        if "GZIP_COMPRESSED_DATA" in self._table:
            payload = self._table.heap_bytes(self._data, self._rows, row, "GZIP_COMPRESSED_DATA")
            if len(payload):
                return gunzip_tile(bytes(payload), layout.float_dtype, n_pixels)
        if "UNCOMPRESSED_DATA" in self._table:
            values = self._table.heap_array(self._data, self._rows, row, "UNCOMPRESSED_DATA")
            if values.size:
                if values.size != n_pixels:
                    raise CorruptTileError(
                        f"Uncompressed tile {row} has {values.size} pixels; expected {n_pixels}."
                    )
                return values.astype(values.dtype.newbyteorder("="))
        raise CorruptTileError(f"Table row {row} holds no data for its tile.")


def decode_compressed_image(hdu: HduDescriptor, buffer: bytes | memoryview) -> DecodedImage:
    """Decode the tile-compressed image held by a binary table HDU.

    Parameters
    ----------
    hdu
        Descriptor of a binary table HDU.
    buffer
        The buffer ``hdu`` was scanned from.

    Returns
    -------
    image
        The first image plane, as row-major ``float32`` pixels.

    Raises
    ------
    HeaderKeyNotFoundError
        Raised if ``ZNAXIS1``, ``ZNAXIS2`` or another required keyword is
        missing.
    HeaderTypeMismatchError
        Raised if a required keyword has the wrong type.
    UnsupportedDataTypeError
        Raised if the decoded samples are not floating point.
    UnsupportedCompressionError
        Raised if the compression algorithm is not supported.
    CorruptTileError
        Raised if a tile cannot be decompressed.
    TruncatedDataError
        Raised if a heap cell lies outside the data block.

    Notes
    -----
    This does not check that the number of decoded pixels matches
    ``ZNAXIS1 * ZNAXIS2``; see `DecodedImage.check_shape`.
    """
    layout = CompressedImageLayout.from_header(hdu.header)
    _LOG.debug(
        "Decoding %dx%d %s image (ZBITPIX=%d) in %dx%d tiles from HDU %d.",
        layout.width,
        layout.height,
        layout.algorithm,
        layout.bitpix,
        layout.tile_width,
        layout.tile_height,
        hdu.index,
    )
    reader = _TileReader(hdu, buffer, layout)
    tiles: list[tuple[slice, slice, np.ndarray]] = []
    for row, (y, x) in enumerate(layout.iter_tiles()):
        shape = (y.stop - y.start, x.stop - x.start)
        samples = reader.read(row, shape[0] * shape[1])
        if samples.dtype.kind != "f":
            raise UnsupportedDataTypeError(
                f"Tile {row} of HDU {hdu.index} decoded to {samples.dtype} samples, not floating point."
            )
        tiles.append((y, x, samples.reshape(shape)))
    # Only allocated once every tile has decoded to its declared size.
    plane = np.empty((layout.height, layout.width), dtype=np.float32)
    for y, x, samples in tiles:
        plane[y, x] = samples
    return DecodedImage(layout.width, layout.height, plane)


def decode(buffer: bytes | memoryview, *, skip_invalid: bool = False) -> DecodedImage:
    """Decode the first tile-compressed image in a FITS file.

    Parameters
    ----------
    buffer
        The complete file contents.
    skip_invalid
        If `False` (default), a failure to decode the first binary table HDU
        is raised immediately.  If `True`, the failure is logged and later
        binary table HDUs are tried; if none succeeds, the first failure is
        raised.

    Returns
    -------
    image
        The decoded image.

    Raises
    ------
    NoImageHDUError
        Raised if the file has no binary table HDU.
    FitsDecodeError
        Raised (as one of its subclasses) if the file is malformed or its
        image cannot be decoded.
    """
    first_error: FitsDecodeError | None = None
    for hdu in iter_hdus(buffer):
        if hdu.kind is not HduKind.BINARY_TABLE:
            continue
        try:
            return decode_compressed_image(hdu, buffer)
        except FitsDecodeError as err:
            if not skip_invalid:
                raise
            _LOG.warning("Skipping binary table HDU %d: %s", hdu.index, err)
            if first_error is None:
                first_error = err
    if first_error is not None:
        raise first_error
    raise NoImageHDUError("No binary table HDU found.")
