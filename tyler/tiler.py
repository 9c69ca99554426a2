"""Tile slicing helpers backed by pyvips."""

from __future__ import annotations

import hashlib
import logging
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from typing import List, Optional

import pyvips

from tyler.errors import ImageDecodeError, TileEncodeError
from tyler.grid import GridSpec, TileCell, iter_cells

LOGGER = logging.getLogger(__name__)

DEFAULT_PNG_COMPRESSION = 6


@dataclass(slots=True)
class TileSlice:
    """A single encoded tile plus the grid cell it was cut from."""

    row: int
    col: int
    png_bytes: bytes
    sha256: str
    width: int
    height: int
    left: int
    top: int


TileGrid = List[List[TileSlice]]


def decode_image(image_bytes: bytes) -> pyvips.Image:
    """Decode uploaded bytes into an in-memory pixel buffer.

    The loader is picked from the content, not the filename. Pixels are pulled
    into memory up front so truncated files fail here instead of halfway
    through encoding, and so worker threads only ever read a finished image.
    """

    if not image_bytes:
        raise ImageDecodeError("uploaded file is empty")
    try:
        image = pyvips.Image.new_from_buffer(image_bytes, "", fail_on="truncated")
        return image.copy_memory()
    except pyvips.Error as exc:
        raise ImageDecodeError(f"could not decode image: {_vips_message(exc)}") from exc


def read_dimensions(image_bytes: bytes) -> tuple[int, int]:
    """Return ``(width, height)`` from the image header without decoding pixels."""

    if not image_bytes:
        raise ImageDecodeError("uploaded file is empty")
    try:
        image = pyvips.Image.new_from_buffer(image_bytes, "", fail_on="truncated")
    except pyvips.Error as exc:
        raise ImageDecodeError(f"could not decode image: {_vips_message(exc)}") from exc
    return image.width, image.height


def extract_tile(
    image: pyvips.Image,
    cell: TileCell,
    *,
    compression: int = DEFAULT_PNG_COMPRESSION,
) -> TileSlice:
    """Crop ``cell`` out of ``image`` and encode it as a standalone PNG."""

    try:
        cropped = image.crop(cell.left, cell.top, cell.width, cell.height)
        png_bytes = cropped.write_to_buffer(".png", compression=compression, interlace=False)
    except pyvips.Error as exc:
        msg = f"failed to encode tile ({cell.row}, {cell.col}): {_vips_message(exc)}"
        raise TileEncodeError(msg, row=cell.row, col=cell.col) from exc
    return TileSlice(
        row=cell.row,
        col=cell.col,
        png_bytes=png_bytes,
        sha256=hashlib.sha256(png_bytes).hexdigest(),
        width=cell.width,
        height=cell.height,
        left=cell.left,
        top=cell.top,
    )


def dispatch_tiles(
    image: pyvips.Image,
    grid: GridSpec,
    *,
    max_workers: int,
    compression: int = DEFAULT_PNG_COMPRESSION,
) -> TileGrid:
    """Encode every grid cell on a thread pool and return them row-major.

    Results land in a pre-sized ``rows x cols`` table indexed by cell, so the
    order in which workers finish never shows up in the output. The first
    failing cell cancels whatever has not started yet and is re-raised.
    """

    if grid.is_empty:
        return []

    slots: List[List[Optional[TileSlice]]] = [[None] * grid.cols for _ in range(grid.rows)]
    workers = max(1, min(max_workers, grid.tile_count))
    LOGGER.debug("Dispatching %s tiles across %s workers", grid.tile_count, workers)

    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="tyler-tile") as executor:
        futures: dict[Future[TileSlice], TileCell] = {
            executor.submit(extract_tile, image, cell, compression=compression): cell
            for cell in iter_cells(grid)
        }
        try:
            for future in as_completed(futures):
                tile = future.result()
                slots[tile.row][tile.col] = tile
        except Exception:
            for pending in futures:
                pending.cancel()
            raise

    tiles: TileGrid = []
    for row_index, row in enumerate(slots):
        filled: List[TileSlice] = []
        for col_index, tile in enumerate(row):
            if tile is None:
                raise TileEncodeError(
                    f"tile ({row_index}, {col_index}) was never produced",
                    row=row_index,
                    col=col_index,
                )
            filled.append(tile)
        tiles.append(filled)
    return tiles


def validate_tiles(tiles: TileGrid, grid: GridSpec) -> None:
    """Check that ``tiles`` covers ``grid`` exactly once with intact PNG payloads."""

    if len(tiles) != grid.rows:
        raise TileEncodeError(
            f"expected {grid.rows} tile rows, found {len(tiles)}",
            row=len(tiles),
            col=0,
        )
    for row_index, row in enumerate(tiles):
        if len(row) != grid.cols:
            raise TileEncodeError(
                f"row {row_index} has {len(row)} tiles, expected {grid.cols}",
                row=row_index,
                col=len(row),
            )
        for col_index, tile in enumerate(row):
            if (tile.row, tile.col) != (row_index, col_index):
                raise TileEncodeError(
                    f"tile ({tile.row}, {tile.col}) stored at position ({row_index}, {col_index})",
                    row=row_index,
                    col=col_index,
                )
            digest = hashlib.sha256(tile.png_bytes).hexdigest()
            if digest != tile.sha256:
                raise TileEncodeError(
                    f"Tile ({row_index}, {col_index}) checksum mismatch",
                    row=row_index,
                    col=col_index,
                )
            expected = grid.cell(row_index, col_index)
            try:
                header = pyvips.Image.new_from_buffer(tile.png_bytes, "")
            except pyvips.Error as exc:
                raise TileEncodeError(
                    f"Tile ({row_index}, {col_index}) is not a readable PNG: {_vips_message(exc)}",
                    row=row_index,
                    col=col_index,
                ) from exc
            if (header.width, header.height) != (expected.width, expected.height):
                msg = (
                    f"Tile ({row_index}, {col_index}) is {header.width}x{header.height}, "
                    f"expected {expected.width}x{expected.height}"
                )
                raise TileEncodeError(msg, row=row_index, col=col_index)


def _vips_message(exc: pyvips.Error) -> str:
    message = getattr(exc, "message", None) or str(exc)
    return message.strip()
