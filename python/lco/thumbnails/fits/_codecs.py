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

"""Decompression of individual FITS image tiles.

Each function takes the raw bytes of one ``COMPRESSED_DATA`` cell and
returns a 1-d numpy array of ``n_pixels`` values in native byte order.
"""

from __future__ import annotations

__all__ = ("decompress_tile", "gunzip_tile", "rice_decode")

import zlib

import numpy as np
import numpy.typing as npt

from ._common import (
    CorruptTileError,
    FitsCompressionAlgorithm,
    InvalidHeaderError,
    UnsupportedCompressionError,
)

# Bits used for the per-block 'fs' code, the 'fs' value that flags an
# uncompressed block, and the width of a raw pixel difference; by BYTEPIX.
_RICE_PARAMETERS = {1: (3, 6, 8), 2: (4, 14, 16), 4: (5, 25, 32)}

_RICE_OUTPUT_TYPES = {1: (np.uint8, np.uint8), 2: (np.uint16, np.int16), 4: (np.uint32, np.int32)}

# Accept both zlib and gzip framing.
_ZLIB_AUTO_HEADER = zlib.MAX_WBITS | 32


def _to_native(array: np.ndarray) -> np.ndarray:
    return array.astype(array.dtype.newbyteorder("="), copy=False)


def _read_bits(padded: bytes, position: int, width: int) -> int:
    # 'padded' must extend at least 5 bytes past the last bit read.
    start = position >> 3
    window = int.from_bytes(padded[start : start + 5], "big")
    return (window >> (40 - (position & 7) - width)) & ((1 << width) - 1)


def _read_bit_fields(padded: np.ndarray, positions: np.ndarray, widths: np.ndarray | int) -> np.ndarray:
    """Vectorized `_read_bits` for big-endian fields of at most 32 bits."""
    start = positions >> 3
    window = np.zeros(positions.shape, dtype=np.uint64)
    for k in range(5):
        window = (window << np.uint64(8)) | padded[start + k]
    shift = (40 - (positions & 7) - widths).astype(np.uint64)
    mask = (np.uint64(1) << np.asarray(widths, dtype=np.uint64)) - np.uint64(1)
    return ((window >> shift) & mask).astype(np.int64)


def gunzip_tile(payload: bytes, dtype: npt.DTypeLike, n_pixels: int, *, shuffled: bool = False) -> np.ndarray:
    """Decompress a ``GZIP_1`` or ``GZIP_2`` tile.

    Parameters
    ----------
    payload
        Compressed bytes.
    dtype
        Big-endian dtype of the uncompressed pixels.
    n_pixels
        Number of pixels in the tile.
    shuffled
        Whether the bytes were shuffled before compression (``GZIP_2``): all
        most-significant bytes first, then all second bytes, and so on.
    """
    dtype = np.dtype(dtype)
    expected = n_pixels * dtype.itemsize
    decompressor = zlib.decompressobj(_ZLIB_AUTO_HEADER)
    try:
        # Never inflate more than one byte past the declared tile size.
        raw = decompressor.decompress(payload, expected + 1)
    except zlib.error as err:
        raise CorruptTileError(f"Tile could not be decompressed: {err}.") from err
    if len(raw) > expected:
        raise CorruptTileError(f"Tile decompresses to more than the expected {expected} bytes.")
    if len(raw) != expected:
        raise CorruptTileError(f"Tile decompressed to {len(raw)} bytes; expected {expected}.")
    array = np.frombuffer(raw, dtype=np.uint8)
    if shuffled and dtype.itemsize > 1:
        array = np.ascontiguousarray(array.reshape(dtype.itemsize, n_pixels).T)
    return _to_native(array.view(dtype).reshape(n_pixels))


def rice_decode(payload: bytes, n_pixels: int, *, block_size: int = 32, bytepix: int = 4) -> np.ndarray:
    """Decode a ``RICE_1`` tile.

    Parameters
    ----------
    payload
        Compressed bytes: the first pixel value in ``bytepix`` big-endian
        bytes, then the coded differences.
    n_pixels
        Number of pixels in the tile.
    block_size
        Number of pixels sharing a single ``fs`` code (``ZVAL`` for
        ``BLOCKSIZE``).
    bytepix
        Bytes per integer pixel (``ZVAL`` for ``BYTEPIX``).

    Returns
    -------
    values
        Signed integers of width ``bytepix`` (unsigned for ``bytepix=1``).
    """
    try:
        fsbits, fsmax, bbits = _RICE_PARAMETERS[bytepix]
    except KeyError:
        raise InvalidHeaderError(f"Unsupported Rice BYTEPIX value {bytepix}.") from None
    if block_size <= 0:
        raise InvalidHeaderError(f"Invalid Rice BLOCKSIZE value {block_size}.")
    if len(payload) < bytepix:
        raise CorruptTileError(f"Rice tile of {len(payload)} bytes is too short.")
    first = int.from_bytes(payload[:bytepix], "big")
    coded = np.frombuffer(payload, dtype=np.uint8, offset=bytepix)
    n_bits = 8 * coded.size
    # Every block spends at least 'fsbits' bits on its code.
    if -(-n_pixels // block_size) * fsbits > n_bits:
        raise CorruptTileError(f"Rice tile of {len(payload)} bytes cannot hold {n_pixels} pixels.")
    padded = np.concatenate([coded, np.zeros(5, dtype=np.uint8)])
    padded_bytes = padded.tobytes()
    # One byte (0 or 1) per bit, so bytes.find locates the end of each unary run.
    find = np.unpackbits(coded).tobytes().find
    raw_pixels: list[int] = []
    raw_positions: list[int] = []
    split_pixels: list[int] = []
    split_fs: list[int] = []
    split_counts: list[int] = []
    split_starts: list[int] = []
    ones: list[int] = []
    append = ones.append
    position = 0
    for block_start in range(0, n_pixels, block_size):
        block_length = min(block_size, n_pixels - block_start)
        if position + fsbits > n_bits:
            raise CorruptTileError("Rice tile ended before all pixels were decoded.")
        fs = _read_bits(padded_bytes, position, fsbits) - 1
        position += fsbits
        if fs < 0:
            continue
        if fs == fsmax:
            raw_pixels.extend(range(block_start, block_start + block_length))
            raw_positions.extend(range(position, position + block_length * bbits, bbits))
            position += block_length * bbits
            continue
        split_pixels.extend(range(block_start, block_start + block_length))
        split_fs.append(fs)
        split_counts.append(block_length)
        split_starts.append(position)
        step = fs + 1
        for _ in range(block_length):
            one = find(1, position)
            if one < 0:
                raise CorruptTileError("Rice tile ended in the middle of a pixel.")
            append(one)
            position = one + step
    if position > n_bits:
        raise CorruptTileError("Rice tile ended before all pixels were decoded.")
    # Pixels of all-zero blocks keep a mapped difference of 0.
    codes = np.zeros(n_pixels, dtype=np.int64)
    if raw_pixels:
        raw_fields = _read_bit_fields(padded, np.array(raw_positions, dtype=np.int64), bbits)
        codes[np.array(raw_pixels)] = raw_fields
    if split_pixels:
        one_positions = np.array(ones, dtype=np.int64)
        counts = np.array(split_counts, dtype=np.int64)
        fs_values = np.repeat(np.array(split_fs, dtype=np.int64), counts)
        # Each pixel's unary run starts where the previous pixel's low bits
        # end, except for the first pixel of a block.
        starts = np.empty_like(one_positions)
        starts[1:] = one_positions[:-1] + 1 + fs_values[:-1]
        starts[np.cumsum(counts) - counts] = split_starts
        high = one_positions - starts
        low = _read_bit_fields(padded, one_positions + 1, fs_values)
        codes[np.array(split_pixels)] = (high << fs_values) | low
    differences = np.where(codes & 1, ~(codes >> 1), codes >> 1)
    unsigned, signed = _RICE_OUTPUT_TYPES[bytepix]
    mask = (1 << bbits) - 1
    values = (first + np.cumsum(differences)) & mask
    return values.astype(unsigned).view(signed)


def decompress_tile(
    algorithm: FitsCompressionAlgorithm,
    payload: bytes,
    dtype: npt.DTypeLike,
    n_pixels: int,
    *,
    block_size: int = 32,
    bytepix: int = 4,
) -> np.ndarray:
    """Decompress one tile with the given algorithm.

    Parameters
    ----------
    algorithm
        Value of ``ZCMPTYPE``.
    payload
        Raw bytes of the ``COMPRESSED_DATA`` cell.
    dtype
        Big-endian dtype of the uncompressed pixel values (ignored by
        ``RICE_1``, whose output type follows ``bytepix``).
    n_pixels
        Number of pixels in the tile.
    block_size, bytepix
        Rice parameters.

    Raises
    ------
    UnsupportedCompressionError
        Raised for ``PLIO_1`` and ``HCOMPRESS_1``.
    CorruptTileError
        Raised if the payload does not decompress to ``n_pixels`` values.
    """
    match algorithm:
        case FitsCompressionAlgorithm.RICE_1:
            return rice_decode(payload, n_pixels, block_size=block_size, bytepix=bytepix)
        case FitsCompressionAlgorithm.GZIP_1:
            return gunzip_tile(payload, dtype, n_pixels)
        case FitsCompressionAlgorithm.GZIP_2:
            return gunzip_tile(payload, dtype, n_pixels, shuffled=True)
        case FitsCompressionAlgorithm.NOCOMPRESS:
            dtype = np.dtype(dtype)
            if len(payload) != n_pixels * dtype.itemsize:
                raise CorruptTileError(
                    f"Uncompressed tile has {len(payload)} bytes; expected {n_pixels * dtype.itemsize}."
                )
            return _to_native(np.frombuffer(payload, dtype=dtype))
    raise UnsupportedCompressionError(f"Decompression of {algorithm} tiles is not supported.")
