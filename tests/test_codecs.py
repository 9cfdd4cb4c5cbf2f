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

import gzip
import io
import unittest
import zlib

import astropy.io.fits
import numpy as np

from lco.thumbnails.fits import (
    CorruptTileError,
    FitsCompressionAlgorithm,
    InvalidHeaderError,
    UnsupportedCompressionError,
    decompress_tile,
    gunzip_tile,
    rice_decode,
)
from lco.thumbnails.tests import FitsCompressionOptions, write_hdus


def _bits_to_bytes(bits: str) -> bytes:
    bits = bits.ljust(-(-len(bits) // 8) * 8, "0")
    return int(bits, 2).to_bytes(len(bits) // 8, "big")


def _compressed_cells(data: np.ndarray) -> tuple[list[bytes], astropy.io.fits.Header]:
    """Write ``data`` with RICE_1 and return the raw COMPRESSED_DATA cells."""
    options = FitsCompressionOptions(algorithm=FitsCompressionAlgorithm.RICE_1, quantization=None)
    buffer = write_hdus(options.make_hdu(data))
    with astropy.io.fits.open(io.BytesIO(buffer), disable_image_compression=True) as hdu_list:
        table = hdu_list[1]
        cells = [np.asarray(cell, dtype=np.uint8).tobytes() for cell in table.data["COMPRESSED_DATA"]]
        return cells, table.header.copy()


class RiceTestCase(unittest.TestCase):
    """Tests for rice_decode."""

    def test_constant_block(self) -> None:
        payload = (1234).to_bytes(4, "big") + b"\x00"
        values = rice_decode(payload, 10)
        self.assertEqual(values.dtype, np.int32)
        np.testing.assert_array_equal(values, np.full(10, 1234, dtype=np.int32))

    def test_raw_block(self) -> None:
        # fs code 26 flags a block of raw 32-bit mapped differences: 0, then
        # 5 (which unmaps to -3).
        bits = format(26, "05b") + format(0, "032b") + format(5, "032b")
        payload = (100).to_bytes(4, "big") + _bits_to_bytes(bits)
        np.testing.assert_array_equal(rice_decode(payload, 2), [100, 97])

    def test_split_block(self) -> None:
        # fs=1: mapped 5 is "00" "1" "1", mapped 0 is "1" "0".
        bits = format(2, "05b") + "0011" + "10"
        payload = (100).to_bytes(4, "big") + _bits_to_bytes(bits)
        np.testing.assert_array_equal(rice_decode(payload, 2), [97, 97])

    def test_multiple_blocks(self) -> None:
        # Two blocks of two pixels: one all-zero, one with fs=0 (unary).
        bits = format(0, "05b") + format(1, "05b") + "1" + "001"
        payload = (-7).to_bytes(4, "big", signed=True) + _bits_to_bytes(bits)
        np.testing.assert_array_equal(rice_decode(payload, 4, block_size=2), [-7, -7, -7, -6])

    def test_wraparound(self) -> None:
        payload = (0x7FFF).to_bytes(2, "big") + _bits_to_bytes(format(15, "04b") + format(2, "016b"))
        values = rice_decode(payload, 1, bytepix=2)
        self.assertEqual(values.dtype, np.int16)
        np.testing.assert_array_equal(values, [-0x8000])

    def test_astropy_int32(self) -> None:
        rng = np.random.default_rng(42)
        data = rng.integers(-5000, 5000, size=(12, 97), dtype=np.int32)
        data[3] = 17
        data[5, ::3] = 2**30
        cells, header = _compressed_cells(data)
        self.assertEqual(header["ZCMPTYPE"], "RICE_1")
        for row, cell in enumerate(cells):
            np.testing.assert_array_equal(rice_decode(cell, data.shape[1], bytepix=4), data[row])

    def test_astropy_int16(self) -> None:
        rng = np.random.default_rng(43)
        data = rng.integers(-300, 300, size=(4, 50), dtype=np.int16)
        cells, _ = _compressed_cells(data)
        for row, cell in enumerate(cells):
            np.testing.assert_array_equal(rice_decode(cell, 50, bytepix=2), data[row])

    def test_corrupt(self) -> None:
        with self.assertRaises(CorruptTileError):
            rice_decode(b"\x00", 10)
        with self.assertRaises(CorruptTileError):
            rice_decode((5).to_bytes(4, "big") + _bits_to_bytes(format(2, "05b")), 100)
        with self.assertRaises(CorruptTileError):
            rice_decode((5).to_bytes(4, "big") + _bits_to_bytes(format(26, "05b") + "1" * 20), 3)

    def test_pixel_count_bound(self) -> None:
        # Each 32-pixel block needs at least a 5-bit code, so 8 bytes cannot
        # hold a trillion pixels; this must fail before any allocation.
        with self.assertRaises(CorruptTileError) as cm:
            rice_decode(b"\x00" * 8, 10**12)
        self.assertIn("cannot hold", str(cm.exception))

    def test_mixed_blocks(self) -> None:
        # Zero, raw and split blocks interleaved, with a short final block.
        bits = (
            format(0, "05b")
            + format(26, "05b")
            + format(6, "032b")
            + format(1, "032b")
            + format(3, "05b")
            + "1" + "01"
            + "01" + "11"
            + format(0, "05b")
        )
        payload = (10).to_bytes(4, "big") + _bits_to_bytes(bits)
        # Mapped differences per pixel: 0 0 | 6 1 | 1 7 | 0; unmapped: 0 0 | 3 -1 | -1 -4 | 0.
        values = rice_decode(payload, 7, block_size=2)
        np.testing.assert_array_equal(values, [10, 10, 13, 12, 11, 7, 7])

    def test_invalid_parameters(self) -> None:
        with self.assertRaises(InvalidHeaderError):
            rice_decode(b"\x00" * 8, 4, bytepix=3)
        with self.assertRaises(InvalidHeaderError):
            rice_decode(b"\x00" * 8, 4, block_size=0)


class GzipTestCase(unittest.TestCase):
    """Tests for gunzip_tile."""

    def setUp(self) -> None:
        self.values = np.linspace(-3.0, 8.0, 37, dtype=np.float32)

    def test_gzip_1(self) -> None:
        raw = self.values.astype(">f4").tobytes()
        for payload in (zlib.compress(raw), gzip.compress(raw)):
            result = gunzip_tile(payload, ">f4", self.values.size)
            self.assertTrue(result.dtype.isnative)
            np.testing.assert_array_equal(result, self.values)

    def test_gzip_2(self) -> None:
        raw = np.frombuffer(self.values.astype(">f4").tobytes(), dtype=np.uint8)
        shuffled = raw.reshape(self.values.size, 4).T.tobytes()
        result = gunzip_tile(gzip.compress(shuffled), ">f4", self.values.size, shuffled=True)
        np.testing.assert_array_equal(result, self.values)
        result = decompress_tile(FitsCompressionAlgorithm.GZIP_2, gzip.compress(shuffled), ">f4", 37)
        np.testing.assert_array_equal(result, self.values)

    def test_corrupt(self) -> None:
        with self.assertRaises(CorruptTileError):
            gunzip_tile(b"not compressed at all", ">f4", 4)
        with self.assertRaises(CorruptTileError):
            gunzip_tile(zlib.compress(b"\x00" * 12), ">f4", 4)

    def test_output_bound(self) -> None:
        # A small payload that inflates far past the tile size is rejected
        # without being fully decompressed.
        payload = zlib.compress(b"\x00" * (1 << 24))
        self.assertLess(len(payload), 1 << 16)
        with self.assertRaises(CorruptTileError) as cm:
            gunzip_tile(payload, ">f4", 4)
        self.assertIn("more than", str(cm.exception))


class DecompressTileTestCase(unittest.TestCase):
    """Tests for decompress_tile dispatch."""

    def test_nocompress(self) -> None:
        values = np.arange(6, dtype=">i2")
        result = decompress_tile(FitsCompressionAlgorithm.NOCOMPRESS, values.tobytes(), ">i2", 6)
        np.testing.assert_array_equal(result, np.arange(6))
        with self.assertRaises(CorruptTileError):
            decompress_tile(FitsCompressionAlgorithm.NOCOMPRESS, values.tobytes(), ">i2", 7)

    def test_unsupported(self) -> None:
        for algorithm in (FitsCompressionAlgorithm.PLIO_1, FitsCompressionAlgorithm.HCOMPRESS_1):
            with self.assertRaises(UnsupportedCompressionError):
                decompress_tile(algorithm, b"\x00" * 16, ">i4", 4)

    def test_algorithm_names(self) -> None:
        self.assertIs(FitsCompressionAlgorithm.from_header_value("RICE_ONE"), FitsCompressionAlgorithm.RICE_1)
        self.assertIs(FitsCompressionAlgorithm.from_header_value("gzip_2 "), FitsCompressionAlgorithm.GZIP_2)
        with self.assertRaises(UnsupportedCompressionError):
            FitsCompressionAlgorithm.from_header_value("BZIP2")


if __name__ == "__main__":
    unittest.main()
