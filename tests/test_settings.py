from __future__ import annotations

import os

import pytest

from tyler.settings import build_settings, load_config

_KEYS = (
    "TYLER_PORT",
    "TYLER_REQUEST_WORKERS",
    "TYLER_TILE_WORKERS",
    "TYLER_DEFAULT_TILE_SIZE",
    "TYLER_ARCHIVE_COMPRESSION",
    "TYLER_PNG_COMPRESSION",
    "PROMETHEUS_PORT",
    "LOG_LEVEL",
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for key in _KEYS:
        monkeypatch.delenv(key, raising=False)


def test_defaults_without_env_file(tmp_path):
    settings = build_settings(str(tmp_path / "missing.env"))

    assert settings.server.port == 8080
    assert settings.server.request_workers == 8
    assert settings.tiling.default_tile_size == 128
    assert settings.tiling.archive_compression == "stored"
    assert settings.tiling.tile_workers == (os.cpu_count() or 1)
    assert settings.telemetry.prometheus_port == 0


def test_env_file_values(tmp_path):
    env_path = tmp_path / ".env"
    env_path.write_text(
        "TYLER_PORT=9090\nTYLER_TILE_WORKERS=3\nTYLER_ARCHIVE_COMPRESSION=Deflated\nLOG_LEVEL=debug\n",
        encoding="utf-8",
    )

    settings = build_settings(str(env_path))

    assert settings.server.port == 9090
    assert settings.tiling.tile_workers == 3
    assert settings.tiling.archive_compression == "deflated"
    assert settings.logging.level == "DEBUG"


def test_environment_overrides_env_file(monkeypatch, tmp_path):
    env_path = tmp_path / ".env"
    env_path.write_text("TYLER_PORT=9090\n", encoding="utf-8")
    monkeypatch.setenv("TYLER_PORT", "7070")

    assert load_config(str(env_path))("TYLER_PORT", cast=int) == 7070


@pytest.mark.parametrize(
    "key,value",
    [
        ("TYLER_ARCHIVE_COMPRESSION", "bzip2"),
        ("TYLER_REQUEST_WORKERS", "0"),
        ("TYLER_PNG_COMPRESSION", "12"),
    ],
)
def test_invalid_values_rejected(monkeypatch, tmp_path, key, value):
    monkeypatch.setenv(key, value)

    with pytest.raises(ValueError):
        build_settings(str(tmp_path / "missing.env"))
