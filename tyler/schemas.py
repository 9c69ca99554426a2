"""Pydantic DTOs shared across endpoints."""

from __future__ import annotations

from pydantic import BaseModel, Field

from tyler.archive import tile_entry_name
from tyler.grid import GridSpec, iter_cells


class TilePlanEntry(BaseModel):
    """Archive entry a grid cell will be written to, plus its crop box."""

    name: str = Field(description="Archive entry name (tile_{row}_{col}.png)")
    row: int = Field(ge=0)
    col: int = Field(ge=0)
    left: int = Field(ge=0, description="Left edge of the crop in source pixels")
    top: int = Field(ge=0, description="Top edge of the crop in source pixels")
    width: int = Field(ge=1)
    height: int = Field(ge=1)


class GridPlanResponse(BaseModel):
    """Grid an upload would be split into, without any encoded tiles."""

    image_width: int = Field(ge=0)
    image_height: int = Field(ge=0)
    tile_size: int = Field(ge=1)
    rows: int = Field(ge=0)
    cols: int = Field(ge=0)
    tile_count: int = Field(ge=0)
    tiles: list[TilePlanEntry] = Field(default_factory=list)

    @classmethod
    def from_grid(cls, grid: GridSpec) -> "GridPlanResponse":
        return cls(
            image_width=grid.image_width,
            image_height=grid.image_height,
            tile_size=grid.tile_size,
            rows=grid.rows,
            cols=grid.cols,
            tile_count=grid.tile_count,
            tiles=[
                TilePlanEntry(
                    name=tile_entry_name(cell.row, cell.col),
                    row=cell.row,
                    col=cell.col,
                    left=cell.left,
                    top=cell.top,
                    width=cell.width,
                    height=cell.height,
                )
                for cell in iter_cells(grid)
            ],
        )
