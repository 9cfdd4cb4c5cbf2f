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

import json
import unittest
from unittest import mock

import requests

from lco.thumbnails.archive import (
    ArchiveClient,
    ArchiveRequestError,
    FrameDownloadError,
    FrameNotFoundError,
    FrameRecord,
)
from lco.thumbnails.config import ServiceConfig


def _response(status_code: int, content: bytes = b"", url: str = "https://example.org/") -> requests.Response:
    response = requests.Response()
    response.status_code = status_code
    response._content = content
    response.url = url
    response.reason = "Test"
    return response


class ArchiveClientTestCase(unittest.TestCase):
    """Tests for ArchiveClient, with a mocked HTTP session."""

    def setUp(self) -> None:
        self.session = mock.create_autospec(requests.Session, instance=True)
        self.client = ArchiveClient("https://archive.example.org/", timeout=5.0, session=self.session)
        self.record = {
            "id": 42,
            "url": "https://files.example.org/frame42.fits.fz",
            "FILTER": "rp",
            "SITEID": "ogg",
        }

    def test_get_frame_record(self) -> None:
        self.session.get.return_value = _response(200, json.dumps(self.record).encode())
        record = self.client.get_frame_record(42, auth_header="Token abc")
        self.assertEqual(record, FrameRecord(url=self.record["url"], filter="rp"))
        self.session.get.assert_called_once_with(
            "https://archive.example.org/frames/42/",
            headers={"Authorization": "Token abc"},
            timeout=5.0,
        )

    def test_no_auth_header(self) -> None:
        self.session.get.return_value = _response(200, json.dumps(self.record).encode())
        self.client.get_frame_record(7)
        self.assertEqual(self.session.get.call_args.kwargs["headers"], {})

    def test_not_found(self) -> None:
        self.session.get.return_value = _response(404, b'{"detail": "Not found."}')
        with self.assertRaises(FrameNotFoundError) as cm:
            self.client.get_frame_record(42)
        self.assertIsInstance(cm.exception, LookupError)
        self.assertEqual(cm.exception.kind, "frame_not_found")

    def test_request_failures(self) -> None:
        self.session.get.return_value = _response(503)
        with self.assertRaises(ArchiveRequestError):
            self.client.get_frame_record(42)
        self.session.get.side_effect = requests.ConnectionError("refused")
        with self.assertRaises(ArchiveRequestError):
            self.client.get_frame_record(42)

    def test_bad_record(self) -> None:
        for content in (b"not json", b'{"url": "https://files.example.org/x"}', b"[]"):
            with self.subTest(content=content):
                self.session.get.return_value = _response(200, content)
                with self.assertRaises(ArchiveRequestError):
                    self.client.get_frame_record(42)

    def test_download(self) -> None:
        self.session.get.return_value = _response(200, b"SIMPLE")
        self.assertEqual(self.client.download("https://files.example.org/x"), b"SIMPLE")
        self.session.get.assert_called_once_with("https://files.example.org/x", timeout=5.0)

    def test_download_failures(self) -> None:
        self.session.get.return_value = _response(500)
        with self.assertRaises(FrameDownloadError):
            self.client.download("https://files.example.org/x")
        self.session.get.side_effect = requests.Timeout("slow")
        with self.assertRaises(FrameDownloadError) as cm:
            self.client.download("https://files.example.org/x")
        self.assertEqual(cm.exception.kind, "frame_download_failed")

    def test_from_config(self) -> None:
        config = ServiceConfig(archive_api_url="http://localhost:1234/", request_timeout=3.0)
        client = ArchiveClient.from_config(config, session=self.session)
        self.assertEqual(client.base_url, "http://localhost:1234")


if __name__ == "__main__":
    unittest.main()
