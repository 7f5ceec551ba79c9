"""Environment configuration, read at call time so imports never need it."""

from __future__ import annotations

import math
import os
from dataclasses import dataclass
from urllib.parse import urlparse

from eventhub.errors import ConfigurationError

DEFAULT_MAX_POOL_SIZE = 10
DEFAULT_TIMEOUT_SECONDS = 5.0
DEFAULT_UPLOAD_FOLDER = "eventhub-events"


@dataclass(frozen=True)
class ConnectionOptions:
    """Knobs applied when a store connection is established."""

    max_pool_size: int = DEFAULT_MAX_POOL_SIZE
    server_selection_timeout: float = DEFAULT_TIMEOUT_SECONDS


@dataclass(frozen=True)
class ImageStoreSettings:
    cloud_name: str
    api_key: str
    api_secret: str
    folder: str = DEFAULT_UPLOAD_FOLDER


def database_uri() -> str:
    """Return the store endpoint, failing when it is not configured."""
    uri = os.environ.get("DATABASE_URI", "").strip()
    if not uri:
        raise ConfigurationError(
            "Please define the DATABASE_URI environment variable"
        )
    return uri


def _positive(name: str, default: float, cast: type) -> float:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = cast(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}")
    if not math.isfinite(value) or value <= 0:
        raise ConfigurationError(f"{name} must be a finite positive number, got {raw!r}")
    return value


def connection_options() -> ConnectionOptions:
    return ConnectionOptions(
        max_pool_size=int(_positive("DATABASE_MAX_POOL_SIZE", DEFAULT_MAX_POOL_SIZE, int)),
        server_selection_timeout=float(
            _positive("DATABASE_TIMEOUT_SECONDS", DEFAULT_TIMEOUT_SECONDS, float)
        ),
    )


def image_store_settings() -> ImageStoreSettings:
    """Parse ``CLOUDINARY_URL`` (``cloudinary://<key>:<secret>@<cloud>``)."""
    raw = os.environ.get("CLOUDINARY_URL", "").strip()
    if not raw:
        raise ConfigurationError(
            "Please define the CLOUDINARY_URL environment variable"
        )
    parsed = urlparse(raw)
    if parsed.scheme != "cloudinary" or not (
        parsed.username and parsed.password and parsed.hostname
    ):
        raise ConfigurationError(
            "CLOUDINARY_URL must look like cloudinary://<key>:<secret>@<cloud>"
        )
    folder = os.environ.get("UPLOAD_FOLDER", "").strip() or DEFAULT_UPLOAD_FOLDER
    return ImageStoreSettings(
        cloud_name=parsed.hostname,
        api_key=parsed.username,
        api_secret=parsed.password,
        folder=folder,
    )


def log_level() -> str:
    return os.environ.get("LOG_LEVEL", "INFO")
