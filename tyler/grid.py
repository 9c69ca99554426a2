"""Grid arithmetic for splitting an image into fixed-size tiles."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterator

from tyler.errors import InvalidParameterError


@dataclass(frozen=True, slots=True)
class TileCell:
    """One grid cell and its crop rectangle, clamped to the image bounds."""

    row: int
    col: int
    left: int
    top: int
    width: int
    height: int


@dataclass(frozen=True, slots=True)
class GridSpec:
    """Row/column partition of a ``width`` x ``height`` image."""

    image_width: int
    image_height: int
    tile_size: int
    rows: int
    cols: int

    @property
    def tile_count(self) -> int:
        return self.rows * self.cols

    @property
    def is_empty(self) -> bool:
        return self.tile_count == 0

    def cell(self, row: int, col: int) -> TileCell:
        """Return the crop rectangle for ``(row, col)``.

        Edge cells shrink to whatever is left of the image; nothing is padded.
        """

        if not (0 <= row < self.rows and 0 <= col < self.cols):
            raise IndexError(f"cell ({row}, {col}) outside {self.rows}x{self.cols} grid")
        left = col * self.tile_size
        top = row * self.tile_size
        return TileCell(
            row=row,
            col=col,
            left=left,
            top=top,
            width=min(self.tile_size, self.image_width - left),
            height=min(self.tile_size, self.image_height - top),
        )


def validate_tile_size(tile_size: int, *, max_tile_size: int | None = None) -> int:
    """Reject tile sizes the grid cannot be derived from."""

    if isinstance(tile_size, bool) or not isinstance(tile_size, int):
        raise InvalidParameterError(f"tile size must be an integer, got {tile_size!r}")
    if tile_size <= 0:
        raise InvalidParameterError(f"tile size must be a positive integer, got {tile_size}")
    if max_tile_size is not None and tile_size > max_tile_size:
        raise InvalidParameterError(f"tile size {tile_size} exceeds the maximum of {max_tile_size}")
    return tile_size


def compute_grid(width: int, height: int, tile_size: int) -> GridSpec:
    """Return ``ceil(height / tile_size)`` rows by ``ceil(width / tile_size)`` columns.

    A zero-width or zero-height image yields an empty grid rather than an error.
    """

    validate_tile_size(tile_size)
    if width < 0 or height < 0:
        raise InvalidParameterError(f"image dimensions must be non-negative, got {width}x{height}")
    rows = -(-height // tile_size)
    cols = -(-width // tile_size)
    if rows == 0 or cols == 0:
        rows = cols = 0
    return GridSpec(image_width=width, image_height=height, tile_size=tile_size, rows=rows, cols=cols)


def enforce_tile_budget(grid: GridSpec, max_tiles: int) -> GridSpec:
    if grid.tile_count > max_tiles:
        msg = (
            f"{grid.rows}x{grid.cols} grid produces {grid.tile_count} tiles; "
            f"the limit is {max_tiles} (use a larger tile size)"
        )
        raise InvalidParameterError(msg)
    return grid


def iter_cells(grid: GridSpec) -> Iterator[TileCell]:
    """Yield every cell in row-major order."""

    for row in range(grid.rows):
        for col in range(grid.cols):
            yield grid.cell(row, col)
