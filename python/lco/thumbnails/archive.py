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

"""Client for the LCO archive API."""

from __future__ import annotations

__all__ = (
    "ArchiveClient",
    "ArchiveError",
    "ArchiveRequestError",
    "FrameDownloadError",
    "FrameNotFoundError",
    "FrameRecord",
)

from logging import getLogger
from typing import Annotated, ClassVar

import pydantic
import requests

from .config import ServiceConfig

_LOG = getLogger(__name__)


class ArchiveError(RuntimeError):
    """Base class for failures talking to the archive."""

    kind: ClassVar[str] = "archive_error"


class FrameNotFoundError(ArchiveError, LookupError):
    """The archive has no frame with the requested id (or it is not visible
    with the given credentials).
    """

    kind = "frame_not_found"


class ArchiveRequestError(ArchiveError):
    """The archive API could not be reached, returned an error status, or
    returned a response that is not a valid frame record.
    """

    kind = "archive_request_failed"


class FrameDownloadError(ArchiveError):
    """The file referenced by a frame record could not be downloaded."""

    kind = "frame_download_failed"


class FrameRecord(pydantic.BaseModel):
    """The parts of an archive frame record this package uses."""

    model_config = pydantic.ConfigDict(frozen=True, extra="ignore", validate_by_name=True)

    url: str
    """Download URL of the frame's file."""

    filter: Annotated[str, pydantic.Field(alias="FILTER")]
    """Name of the filter the frame was observed with."""


class ArchiveClient:
    """Looks up frame records and downloads frame files.

    Parameters
    ----------
    base_url
        Base URL of the archive API.
    timeout, optional
        Timeout in seconds for each request.
    session, optional
        Session to send requests with; a new one is created if not provided.
    """

    def __init__(self, base_url: str, *, timeout: float = 60.0, session: requests.Session | None = None):
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._session = session if session is not None else requests.Session()

    @classmethod
    def from_config(cls, config: ServiceConfig, session: requests.Session | None = None) -> ArchiveClient:
        """Construct from service configuration."""
        return cls(config.archive_api_url, timeout=config.request_timeout, session=session)

    @property
    def base_url(self) -> str:
        """Base URL of the archive API."""
        return self._base_url

    def get_frame_record(self, frame_id: int, auth_header: str | None = None) -> FrameRecord:
        """Fetch the record for a frame.

        Parameters
        ----------
        frame_id
            Numeric id of the frame.
        auth_header, optional
            Value of an ``Authorization`` header to forward verbatim.

        Returns
        -------
        record
            The validated frame record.

        Raises
        ------
        FrameNotFoundError
            Raised if the archive responds with 404.
        ArchiveRequestError
            Raised for any other failure.
        """
        url = f"{self._base_url}/frames/{frame_id}/"
        headers = {"Authorization": auth_header} if auth_header is not None else {}
        try:
            response = self._session.get(url, headers=headers, timeout=self._timeout)
        except requests.RequestException as err:
            raise ArchiveRequestError(f"Failed to send request to the archive API: {err}") from err
        if response.status_code == 404:
            raise FrameNotFoundError(f"Frame {frame_id} not found in the archive.")
        try:
            response.raise_for_status()
        except requests.HTTPError as err:
            raise ArchiveRequestError(f"Archive API returned an error for frame {frame_id}: {err}") from err
        try:
            return FrameRecord.model_validate_json(response.content)
        except pydantic.ValidationError as err:
            raise ArchiveRequestError(f"Failed to parse the archive record for frame {frame_id}.") from err

    def download(self, url: str) -> bytes:
        """Download a file in full.

        Raises
        ------
        FrameDownloadError
            Raised if the request fails or returns an error status.
        """
        _LOG.debug("Starting download of %s.", url)
        try:
            response = self._session.get(url, timeout=self._timeout)
            response.raise_for_status()
        except requests.RequestException as err:
            raise FrameDownloadError(f"Failed to download {url}: {err}") from err
        content = response.content
        _LOG.debug("Done downloading %s (%d bytes).", url, len(content))
        return content
