"""Tests for grid arithmetic."""

from __future__ import annotations

import math

import pytest

from tyler.errors import InvalidParameterError
from tyler.grid import compute_grid, enforce_tile_budget, iter_cells, validate_tile_size


@pytest.mark.parametrize(
    "width,height,tile_size",
    [(256, 256, 128), (10, 10, 128), (100, 50, 64), (1, 1, 1), (1000, 3, 7), (129, 257, 128)],
)
def test_grid_covers_every_cell_once(width: int, height: int, tile_size: int) -> None:
    grid = compute_grid(width, height, tile_size)

    assert grid.rows == math.ceil(height / tile_size)
    assert grid.cols == math.ceil(width / tile_size)
    coords = [(cell.row, cell.col) for cell in iter_cells(grid)]
    assert len(coords) == len(set(coords)) == grid.tile_count
    assert set(coords) == {(r, c) for r in range(grid.rows) for c in range(grid.cols)}


def test_cells_are_row_major() -> None:
    grid = compute_grid(300, 200, 100)

    coords = [(cell.row, cell.col) for cell in iter_cells(grid)]

    assert coords == [(0, 0), (0, 1), (0, 2), (1, 0), (1, 1), (1, 2)]


def test_edge_cells_are_truncated_not_padded() -> None:
    grid = compute_grid(100, 50, 64)

    assert (grid.rows, grid.cols) == (1, 2)
    edge = grid.cell(0, 1)
    assert (edge.left, edge.top, edge.width, edge.height) == (64, 0, 36, 50)
    first = grid.cell(0, 0)
    assert (first.width, first.height) == (64, 50)


def test_cells_tile_the_image_exactly() -> None:
    grid = compute_grid(130, 70, 32)

    area = sum(cell.width * cell.height for cell in iter_cells(grid))

    assert area == 130 * 70


@pytest.mark.parametrize("width,height", [(0, 10), (10, 0), (0, 0)])
def test_zero_dimension_yields_empty_grid(width: int, height: int) -> None:
    grid = compute_grid(width, height, 16)

    assert grid.is_empty
    assert grid.tile_count == 0
    assert list(iter_cells(grid)) == []


@pytest.mark.parametrize("tile_size", [0, -1, -128])
def test_non_positive_tile_size_rejected(tile_size: int) -> None:
    with pytest.raises(InvalidParameterError):
        compute_grid(100, 100, tile_size)


def test_invalid_parameter_is_a_value_error() -> None:
    with pytest.raises(ValueError, match="positive"):
        validate_tile_size(0)


def test_tile_size_limit() -> None:
    assert validate_tile_size(512, max_tile_size=512) == 512
    with pytest.raises(InvalidParameterError, match="maximum"):
        validate_tile_size(513, max_tile_size=512)


def test_non_integer_tile_size_rejected() -> None:
    with pytest.raises(InvalidParameterError):
        validate_tile_size(True)  # type: ignore[arg-type]
    with pytest.raises(InvalidParameterError):
        validate_tile_size(12.5)  # type: ignore[arg-type]


def test_tile_budget() -> None:
    grid = compute_grid(100, 100, 10)

    assert enforce_tile_budget(grid, 100) is grid
    with pytest.raises(InvalidParameterError, match="100 tiles"):
        enforce_tile_budget(grid, 99)


def test_cell_outside_grid() -> None:
    grid = compute_grid(64, 64, 32)

    with pytest.raises(IndexError):
        grid.cell(2, 0)
