from __future__ import annotations

from dataclasses import replace
from typing import Any

import pytest

from tyler.settings import (
    LoggingSettings,
    ServerSettings,
    Settings,
    TelemetrySettings,
    TilingSettings,
)


def build_test_settings(*, request_workers: int = 2, **tiling_overrides: Any) -> Settings:
    tiling = TilingSettings(
        tile_workers=4,
        default_tile_size=128,
        max_tile_size=4096,
        max_tiles=4096,
        max_upload_bytes=5_000_000,
        png_compression=6,
        archive_compression="stored",
    )
    return Settings(
        env_path=".env",
        server=ServerSettings(host="127.0.0.1", port=8080, request_workers=request_workers),
        tiling=replace(tiling, **tiling_overrides),
        telemetry=TelemetrySettings(prometheus_port=0),
        logging=LoggingSettings(level="INFO"),
    )


@pytest.fixture
def test_settings() -> Settings:
    return build_test_settings()
