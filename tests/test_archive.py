"""Tests for tile archive assembly."""

from __future__ import annotations

import io
import zipfile
from dataclasses import dataclass

import pytest

from tyler.archive import build_archive, tile_entry_name, write_tile_zip
from tyler.errors import ArchiveWriteError


@dataclass
class FakeTile:
    row: int
    col: int
    png_bytes: bytes


def _grid(rows: int, cols: int) -> list[list[FakeTile]]:
    return [
        [FakeTile(row=r, col=c, png_bytes=f"tile-{r}-{c}".encode() * (r + c + 1)) for c in range(cols)]
        for r in range(rows)
    ]


class FailingBuffer(io.BytesIO):
    def write(self, data):  # noqa: ANN001
        raise OSError("disk full")


def test_entry_names_use_row_then_col() -> None:
    assert tile_entry_name(0, 0) == "tile_0_0.png"
    assert tile_entry_name(3, 12) == "tile_3_12.png"


def test_archive_contains_every_tile_verbatim() -> None:
    tiles = _grid(2, 3)

    payload = build_archive(tiles)

    with zipfile.ZipFile(io.BytesIO(payload)) as archive:
        names = archive.namelist()
        assert names == [
            "tile_0_0.png",
            "tile_0_1.png",
            "tile_0_2.png",
            "tile_1_0.png",
            "tile_1_1.png",
            "tile_1_2.png",
        ]
        for row in tiles:
            for tile in row:
                assert archive.read(tile_entry_name(tile.row, tile.col)) == tile.png_bytes
        assert archive.testzip() is None


def test_deflated_archive_keeps_tile_bytes() -> None:
    tiles = _grid(1, 2)

    payload = build_archive(tiles, compression="deflated")

    with zipfile.ZipFile(io.BytesIO(payload)) as archive:
        infos = archive.infolist()
        assert {info.compress_type for info in infos} == {zipfile.ZIP_DEFLATED}
        assert archive.read("tile_0_1.png") == tiles[0][1].png_bytes


def test_archive_is_reproducible() -> None:
    assert build_archive(_grid(2, 2)) == build_archive(_grid(2, 2))


def test_empty_grid_gives_empty_archive() -> None:
    payload = build_archive([])

    with zipfile.ZipFile(io.BytesIO(payload)) as archive:
        assert archive.namelist() == []


def test_write_tile_zip_reports_count() -> None:
    buffer = io.BytesIO()

    assert write_tile_zip(buffer, _grid(3, 2)) == 6


def test_duplicate_entry_rejected() -> None:
    tiles = [[FakeTile(row=0, col=0, png_bytes=b"a"), FakeTile(row=0, col=0, png_bytes=b"b")]]

    with pytest.raises(ArchiveWriteError, match="duplicate"):
        build_archive(tiles)


def test_write_failure_surfaces_as_archive_error() -> None:
    with pytest.raises(ArchiveWriteError):
        write_tile_zip(FailingBuffer(), _grid(1, 1))


def test_unknown_compression_rejected() -> None:
    with pytest.raises(ValueError, match="bzip"):
        build_archive(_grid(1, 1), compression="bzip")
