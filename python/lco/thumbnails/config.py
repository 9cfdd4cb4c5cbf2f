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

__all__ = ("DEFAULT_ARCHIVE_API_URL", "ServiceConfig")

import os
from collections.abc import Mapping
from typing import Any, ClassVar, Self

import pydantic

DEFAULT_ARCHIVE_API_URL = "https://archive-api.lco.global"


class ServiceConfig(pydantic.BaseModel):
    """Configuration for the thumbnail service.

    Instances are immutable and are passed explicitly to the archive client
    and the application factory; nothing else in this package reads the
    environment.
    """

    model_config = pydantic.ConfigDict(frozen=True, extra="forbid")

    archive_api_url: str = DEFAULT_ARCHIVE_API_URL
    """Base URL of the archive API, without a trailing slash."""

    host: str = "0.0.0.0"
    """Address the HTTP server listens on."""

    port: int = pydantic.Field(default=8000, ge=0, le=65535)
    """Port the HTTP server listens on."""

    request_timeout: float = pydantic.Field(default=60.0, gt=0)
    """Timeout in seconds for each request to the archive or a frame
    download.
    """

    log_level: str = "INFO"
    """Name of the root logging level."""

    ENVIRONMENT_VARIABLES: ClassVar[Mapping[str, str]] = {
        "archive_api_url": "ARCHIVE_API_URL",
        "host": "THUMBNAIL_HOST",
        "port": "THUMBNAIL_PORT",
        "request_timeout": "THUMBNAIL_REQUEST_TIMEOUT",
        "log_level": "THUMBNAIL_LOG_LEVEL",
    }
    """Environment variable read for each field by `from_environment`."""

    @pydantic.field_validator("archive_api_url")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")

    @pydantic.field_validator("log_level")
    @classmethod
    def _normalize_log_level(cls, value: str) -> str:
        value = value.strip().upper()
        if value not in ("CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"):
            raise ValueError(f"Unrecognized log level {value!r}.")
        return value

    @classmethod
    def from_environment(cls, environ: Mapping[str, str] | None = None, **overrides: Any) -> Self:
        """Construct from environment variables.

        Parameters
        ----------
        environ, optional
            Mapping to read instead of `os.environ`.
        **overrides
            Field values that take precedence over the environment; `None`
            values are ignored.

        Returns
        -------
        config
            Validated configuration.
        """
        if environ is None:
            environ = os.environ
        values: dict[str, Any] = {}
        for field, variable in cls.ENVIRONMENT_VARIABLES.items():
            if (value := environ.get(variable)) is not None and value != "":
                values[field] = value
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls.model_validate(values)
