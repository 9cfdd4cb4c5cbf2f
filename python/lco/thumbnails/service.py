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

"""HTTP front end: look up a frame, download it, decode it, and summarize
it.
"""

from __future__ import annotations

__all__ = ("FrameSummary", "create_app", "error_status")

from logging import getLogger
from typing import Annotated

import pydantic
from fastapi import FastAPI, Header, Path, Request
from fastapi.responses import JSONResponse, PlainTextResponse

from ._image import ImageShapeError
from .archive import ArchiveClient, ArchiveError, FrameNotFoundError
from .config import ServiceConfig
from .fits import FitsDecodeError, decode
from .version import __version__

_LOG = getLogger(__name__)

WELCOME_MESSAGE = "Welcome to the Thumbnail Service!"

MEGABYTE = 1024 * 1024

MAX_FRAME_ID = 2**32 - 1


class FrameSummary(pydantic.BaseModel):
    """Response body of the frame endpoint."""

    frame_id: int
    """Archive id of the frame."""

    frame_size_mb: int
    """Size of the downloaded file in whole mebibytes (rounded down)."""

    width: int
    """Image width in pixels."""

    height: int
    """Image height in pixels."""

    filter: str
    """Filter name from the archive record."""


def error_status(err: Exception) -> int:
    """Return the HTTP status code used to report an exception."""
    match err:
        case FrameNotFoundError():
            return 404
        case ArchiveError():
            return 502
        case FitsDecodeError() | ImageShapeError():
            return 422
    return 500


def _error_response(err: ArchiveError | FitsDecodeError | ImageShapeError) -> JSONResponse:
    return JSONResponse(
        status_code=error_status(err),
        content={"detail": {"error": err.kind, "message": str(err)}},
    )


def create_app(config: ServiceConfig | None = None, client: ArchiveClient | None = None) -> FastAPI:
    """Create the FastAPI application.

    Parameters
    ----------
    config, optional
        Service configuration; defaults are used if not provided.
    client, optional
        Archive client; one is constructed from ``config`` if not provided.

    Returns
    -------
    app
        The application.
    """
    if config is None:
        config = ServiceConfig()
    if client is None:
        client = ArchiveClient.from_config(config)
    app = FastAPI(title="LCO Thumbnail Service", version=__version__)
    app.state.config = config
    app.state.archive = client

    @app.exception_handler(ArchiveError)
    async def _archive_error(request: Request, err: ArchiveError) -> JSONResponse:
        _LOG.warning("Archive failure for %s: %s", request.url.path, err)
        return _error_response(err)

    @app.exception_handler(FitsDecodeError)
    async def _decode_error(request: Request, err: FitsDecodeError) -> JSONResponse:
        _LOG.warning("Could not decode frame for %s: %s", request.url.path, err)
        return _error_response(err)

    @app.exception_handler(ImageShapeError)
    async def _shape_error(request: Request, err: ImageShapeError) -> JSONResponse:
        _LOG.warning("Inconsistent image for %s: %s", request.url.path, err)
        return _error_response(err)

    @app.get("/", response_class=PlainTextResponse)
    def hello() -> str:
        return WELCOME_MESSAGE

    @app.get("/healthz")
    def health() -> dict[str, bool]:
        return {"ok": True}

    # Must stay a plain 'def' so FastAPI runs it on its worker thread pool.
    @app.get("/{frame_id}/", response_model=FrameSummary)
    def thumbnail(
        frame_id: Annotated[int, Path(ge=0, le=MAX_FRAME_ID)],
        authorization: Annotated[str | None, Header()] = None,
    ) -> FrameSummary:
        record = client.get_frame_record(frame_id, auth_header=authorization)
        _LOG.debug("Starting download of frame %d.", frame_id)
        frame_bytes = client.download(record.url)
        _LOG.debug("Done downloading frame %d.", frame_id)
        image = decode(frame_bytes)
        image.check_shape()
        _LOG.debug(
            "Image width: %d, height: %d, pixels: %d", image.width, image.height, image.pixels.size
        )
        return FrameSummary(
            frame_id=frame_id,
            frame_size_mb=len(frame_bytes) // MEGABYTE,
            width=image.width,
            height=image.height,
            filter=record.filter,
        )

    return app
