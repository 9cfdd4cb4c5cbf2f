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

__all__ = ("main",)

import logging

import click
import fsspec

from .config import ServiceConfig
from .fits import FitsDecodeError, decode, iter_hdus

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(level: str) -> None:
    """Configure root logging for command-line use."""
    logging.basicConfig(level=level, format=LOG_FORMAT)


@click.group("lco-thumbnails")
def main() -> None:
    """Tools for decoding LCO archive frames."""


@main.command("serve")
@click.option("--host", default=None, help="Address to listen on [env: THUMBNAIL_HOST].")
@click.option("--port", type=int, default=None, help="Port to listen on [env: THUMBNAIL_PORT].")
@click.option("--archive-api-url", default=None, help="Base URL of the archive API [env: ARCHIVE_API_URL].")
@click.option("--log-level", default=None, help="Logging level [env: THUMBNAIL_LOG_LEVEL].")
def serve(host: str | None, port: int | None, archive_api_url: str | None, log_level: str | None) -> None:
    """Run the thumbnail HTTP service."""
    import uvicorn

    from .service import create_app

    config = ServiceConfig.from_environment(
        host=host, port=port, archive_api_url=archive_api_url, log_level=log_level
    )
    configure_logging(config.log_level)
    logging.getLogger(__name__).info(
        "Listening on %s:%d, archive API at %s.", config.host, config.port, config.archive_api_url
    )
    uvicorn.run(create_app(config), host=config.host, port=config.port, log_config=None)


@main.command("inspect")
@click.argument("path")
@click.option("--skip-invalid", is_flag=True, help="Keep scanning past binary tables that fail to decode.")
@click.option("-v", "--verbose", is_flag=True, help="Log each HDU and tile parameters.")
def inspect(path: str, skip_invalid: bool, verbose: bool) -> None:
    """Decode the first compressed image in a local or remote FITS file."""
    configure_logging("DEBUG" if verbose else "WARNING")
    with fsspec.open(path, "rb") as stream:
        buffer = stream.read()
    try:
        for hdu in iter_hdus(buffer):
            extname = hdu.header.get("EXTNAME", "")
            click.echo(f"HDU {hdu.index}: {hdu.kind.name} {extname} ({hdu.data_size} data bytes)")
        image = decode(buffer, skip_invalid=skip_invalid)
    except FitsDecodeError as err:
        raise click.ClickException(f"{err.kind}: {err}") from err
    click.echo(f"width={image.width} height={image.height} pixels={image.pixels.size}")


if __name__ == "__main__":
    main()
