"""Configuration helpers bound to python-decouple."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path

from decouple import Config as DecoupleConfig, RepositoryEmpty, RepositoryEnv

ARCHIVE_COMPRESSION_CHOICES = ("stored", "deflated")


@dataclass(frozen=True, slots=True)
class ServerSettings:
    """Listening socket and request pool sizing."""

    host: str
    port: int
    request_workers: int


@dataclass(frozen=True, slots=True)
class TilingSettings:
    """Limits and encoder knobs for the tiling pipeline."""

    tile_workers: int
    default_tile_size: int
    max_tile_size: int
    max_tiles: int
    max_upload_bytes: int
    png_compression: int
    archive_compression: str


@dataclass(frozen=True, slots=True)
class TelemetrySettings:
    prometheus_port: int


@dataclass(frozen=True, slots=True)
class LoggingSettings:
    level: str


@dataclass(frozen=True, slots=True)
class Settings:
    """Process-wide settings, loaded once at startup."""

    env_path: str
    server: ServerSettings
    tiling: TilingSettings
    telemetry: TelemetrySettings
    logging: LoggingSettings


def load_config(env_path: str = ".env") -> DecoupleConfig:
    """Return a decouple config object anchored to the repository .env file.

    Environment variables always win; a missing .env file simply means there
    is nothing to fall back to.
    """

    if Path(env_path).is_file():
        return DecoupleConfig(RepositoryEnv(env_path))
    return DecoupleConfig(RepositoryEmpty())


def _positive(name: str, value: int) -> int:
    if value <= 0:
        raise ValueError(f"{name} must be a positive integer, got {value}")
    return value


def build_settings(env_path: str = ".env") -> Settings:
    """Parse every configuration value into typed settings objects."""

    config = load_config(env_path)

    server = ServerSettings(
        host=config("TYLER_HOST", default="0.0.0.0"),
        port=config("TYLER_PORT", default=8080, cast=int),
        request_workers=_positive(
            "TYLER_REQUEST_WORKERS", config("TYLER_REQUEST_WORKERS", default=8, cast=int)
        ),
    )

    compression = config("TYLER_ARCHIVE_COMPRESSION", default="stored").strip().lower()
    if compression not in ARCHIVE_COMPRESSION_CHOICES:
        msg = f"TYLER_ARCHIVE_COMPRESSION must be one of {ARCHIVE_COMPRESSION_CHOICES}, got '{compression}'"
        raise ValueError(msg)
    png_compression = config("TYLER_PNG_COMPRESSION", default=6, cast=int)
    if not 0 <= png_compression <= 9:
        raise ValueError(f"TYLER_PNG_COMPRESSION must be within 0-9, got {png_compression}")

    tiling = TilingSettings(
        tile_workers=_positive(
            "TYLER_TILE_WORKERS", config("TYLER_TILE_WORKERS", default=os.cpu_count() or 1, cast=int)
        ),
        default_tile_size=_positive(
            "TYLER_DEFAULT_TILE_SIZE", config("TYLER_DEFAULT_TILE_SIZE", default=128, cast=int)
        ),
        max_tile_size=_positive("TYLER_MAX_TILE_SIZE", config("TYLER_MAX_TILE_SIZE", default=16384, cast=int)),
        max_tiles=_positive("TYLER_MAX_TILES", config("TYLER_MAX_TILES", default=65536, cast=int)),
        max_upload_bytes=_positive(
            "TYLER_MAX_UPLOAD_BYTES", config("TYLER_MAX_UPLOAD_BYTES", default=50 * 1024 * 1024, cast=int)
        ),
        png_compression=png_compression,
        archive_compression=compression,
    )
    telemetry = TelemetrySettings(prometheus_port=config("PROMETHEUS_PORT", default=0, cast=int))
    logging_settings = LoggingSettings(level=config("LOG_LEVEL", default="INFO").upper())
    return Settings(
        env_path=env_path,
        server=server,
        tiling=tiling,
        telemetry=telemetry,
        logging=logging_settings,
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return build_settings()


settings = get_settings()
