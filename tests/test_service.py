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

import unittest
from unittest import mock

import astropy.io.fits
import numpy as np
from fastapi.testclient import TestClient

from lco.thumbnails import DecodedImage
from lco.thumbnails.archive import (
    ArchiveClient,
    ArchiveRequestError,
    FrameDownloadError,
    FrameNotFoundError,
    FrameRecord,
)
from lco.thumbnails.config import ServiceConfig
from lco.thumbnails.service import MEGABYTE, WELCOME_MESSAGE, create_app, error_status
from lco.thumbnails.tests import FitsCompressionOptions, write_hdus

FRAME_URL = "https://files.example.org/frame.fits.fz"


class ServiceTestCase(unittest.TestCase):
    """Tests for the HTTP application, with a stubbed archive client."""

    @classmethod
    def setUpClass(cls) -> None:
        rng = np.random.default_rng(1)
        cls.data = rng.normal(100.0, 5.0, size=(30, 45)).astype(np.float32)
        cls.frame = write_hdus(FitsCompressionOptions().make_hdu(cls.data))

    def setUp(self) -> None:
        self.archive = mock.create_autospec(ArchiveClient, instance=True)
        self.archive.get_frame_record.return_value = FrameRecord(url=FRAME_URL, filter="ip")
        self.archive.download.return_value = self.frame
        self.client = TestClient(create_app(ServiceConfig(), client=self.archive))

    def test_welcome(self) -> None:
        response = self.client.get("/")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.text, WELCOME_MESSAGE)
        self.assertEqual(self.client.get("/healthz").json(), {"ok": True})

    def test_frame(self) -> None:
        with self.assertLogs("lco.thumbnails.service", level="DEBUG") as cm:
            response = self.client.get("/123/", headers={"Authorization": "Token secret"})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(
            response.json(),
            {"frame_id": 123, "frame_size_mb": 0, "width": 45, "height": 30, "filter": "ip"},
        )
        self.archive.get_frame_record.assert_called_once_with(123, auth_header="Token secret")
        self.archive.download.assert_called_once_with(FRAME_URL)
        self.assertTrue(any("Image width: 45, height: 30, pixels: 1350" in line for line in cm.output))

    def test_frame_size(self) -> None:
        data = np.zeros((1100, 1100), dtype=np.float32)
        frame = write_hdus(
            astropy.io.fits.ImageHDU(data),
            FitsCompressionOptions.LOSSLESS.make_hdu(self.data),
        )
        self.assertGreaterEqual(len(frame), 4 * MEGABYTE)
        self.archive.download.return_value = frame
        body = self.client.get("/5/").json()
        self.assertEqual(body["frame_size_mb"], len(frame) // MEGABYTE)
        self.assertEqual((body["width"], body["height"]), (45, 30))

    def test_no_auth_header(self) -> None:
        self.client.get("/123/")
        self.archive.get_frame_record.assert_called_once_with(123, auth_header=None)

    def test_invalid_frame_id(self) -> None:
        for path in ("/abc/", "/-1/", f"/{2**32}/"):
            with self.subTest(path=path):
                self.assertEqual(self.client.get(path).status_code, 422)
        self.archive.get_frame_record.assert_not_called()

    def test_archive_errors(self) -> None:
        cases = [
            (FrameNotFoundError("Frame 9 not found."), 404, "frame_not_found"),
            (ArchiveRequestError("boom"), 502, "archive_request_failed"),
        ]
        for err, status, kind in cases:
            with self.subTest(kind=kind):
                self.archive.get_frame_record.side_effect = err
                response = self.client.get("/9/")
                self.assertEqual(response.status_code, status)
                self.assertEqual(response.json()["detail"], {"error": kind, "message": str(err)})

    def test_download_error(self) -> None:
        self.archive.download.side_effect = FrameDownloadError("unreachable")
        response = self.client.get("/9/")
        self.assertEqual(response.status_code, 502)
        self.assertEqual(response.json()["detail"]["error"], "frame_download_failed")

    def test_decode_errors(self) -> None:
        cases = [
            (b"this is not a FITS file", "truncated_header"),
            (write_hdus(astropy.io.fits.ImageHDU(np.zeros((2, 2)))), "no_image_hdu"),
        ]
        for frame, kind in cases:
            with self.subTest(kind=kind):
                self.archive.download.return_value = frame
                response = self.client.get("/9/")
                self.assertEqual(response.status_code, 422)
                self.assertEqual(response.json()["detail"]["error"], kind)

    def test_shape_mismatch(self) -> None:
        with mock.patch(
            "lco.thumbnails.service.decode", return_value=DecodedImage(10, 10, np.zeros(99))
        ):
            response = self.client.get("/9/")
        self.assertEqual(response.status_code, 422)
        self.assertEqual(response.json()["detail"]["error"], "shape_mismatch")

    def test_error_status(self) -> None:
        self.assertEqual(error_status(FrameNotFoundError()), 404)
        self.assertEqual(error_status(FrameDownloadError()), 502)
        self.assertEqual(error_status(RuntimeError()), 500)


if __name__ == "__main__":
    unittest.main()
