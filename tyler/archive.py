"""Zip packaging for encoded tiles."""

from __future__ import annotations

import io
import logging
import zipfile
from typing import BinaryIO, Iterable, Protocol

from tyler.errors import ArchiveWriteError

LOGGER = logging.getLogger(__name__)

ARCHIVE_FILENAME = "tiles.zip"
ARCHIVE_MEDIA_TYPE = "application/zip"
TILE_NAME_TEMPLATE = "tile_{row}_{col}.png"
# Zip timestamps start at 1980; pinning every entry keeps archives reproducible.
_ENTRY_TIMESTAMP = (1980, 1, 1, 0, 0, 0)
_COMPRESSION_MODES = {
    "stored": zipfile.ZIP_STORED,
    "deflated": zipfile.ZIP_DEFLATED,
}


class EncodedTile(Protocol):
    row: int
    col: int
    png_bytes: bytes


def tile_entry_name(row: int, col: int) -> str:
    return TILE_NAME_TEMPLATE.format(row=row, col=col)


def _resolve_compression(compression: str) -> int:
    try:
        return _COMPRESSION_MODES[compression]
    except KeyError:
        raise ValueError(f"Unsupported archive compression '{compression}'") from None


def write_tile_zip(
    handle: BinaryIO,
    tiles: Iterable[Iterable[EncodedTile]],
    *,
    compression: str = "stored",
) -> int:
    """Write one ``tile_{row}_{col}.png`` entry per tile, row by row.

    Returns the number of entries written. Tile bytes are copied verbatim;
    ``compression`` only affects how the container stores them.
    """

    mode = _resolve_compression(compression)
    written: set[str] = set()
    try:
        with zipfile.ZipFile(handle, mode="w", compression=mode) as archive:
            for row in tiles:
                for tile in row:
                    name = tile_entry_name(tile.row, tile.col)
                    if name in written:
                        raise ArchiveWriteError(f"duplicate archive entry {name}")
                    info = zipfile.ZipInfo(filename=name, date_time=_ENTRY_TIMESTAMP)
                    info.compress_type = mode
                    info.external_attr = 0o644 << 16
                    archive.writestr(info, tile.png_bytes)
                    written.add(name)
    except (OSError, ValueError, zipfile.LargeZipFile) as exc:
        raise ArchiveWriteError(f"failed to write tile archive: {exc}") from exc
    return len(written)


def build_archive(tiles: Iterable[Iterable[EncodedTile]], *, compression: str = "stored") -> bytes:
    """Assemble the tile grid into a finished zip and return its bytes."""

    buffer = io.BytesIO()
    count = write_tile_zip(buffer, tiles, compression=compression)
    payload = buffer.getvalue()
    LOGGER.debug("Packed %s tiles into %s archive bytes", count, len(payload))
    return payload
