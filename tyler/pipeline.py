"""Per-request orchestration: decode, grid, dispatch, archive."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, List

from tyler import metrics
from tyler.archive import build_archive
from tyler.grid import GridSpec, compute_grid, enforce_tile_budget, validate_tile_size
from tyler.settings import Settings, get_settings
from tyler.tiler import decode_image, dispatch_tiles, read_dimensions, validate_tiles

LOGGER = logging.getLogger(__name__)

Decoder = Callable[[bytes], Any]


class PipelineState(str, Enum):
    """Lifecycle of a single tiling request."""

    IDLE = "IDLE"
    DECODING = "DECODING"
    GRID_COMPUTED = "GRID_COMPUTED"
    DISPATCHING = "DISPATCHING"
    ASSEMBLING = "ASSEMBLING"
    DONE = "DONE"
    FAILED = "FAILED"


@dataclass(slots=True)
class StageTimings:
    decode_ms: int = 0
    tile_ms: int = 0
    archive_ms: int = 0

    @property
    def total_ms(self) -> int:
        return self.decode_ms + self.tile_ms + self.archive_ms


@dataclass(slots=True)
class TilingResult:
    """Finished archive plus the grid it was built from."""

    grid: GridSpec
    archive_bytes: bytes
    timings: StageTimings = field(default_factory=StageTimings)

    @property
    def tile_count(self) -> int:
        return self.grid.tile_count


def _elapsed_ms(started: float) -> int:
    return int((time.perf_counter() - started) * 1000)


class TilingPipeline:
    """Single-use pipeline for one request.

    Instances hold only request-local state; build a fresh one per upload.
    """

    def __init__(self, *, settings: Settings | None = None, decoder: Decoder | None = None) -> None:
        self._settings = settings or get_settings()
        self._decoder = decoder or decode_image
        self.state = PipelineState.IDLE
        self.history: List[PipelineState] = [PipelineState.IDLE]
        self.error: Exception | None = None

    def run(self, image_bytes: bytes, tile_size: int) -> TilingResult:
        """Decode ``image_bytes`` and tile it; blocks until the archive is ready."""

        self._ensure_idle()
        cfg = self._settings.tiling
        timings = StageTimings()
        try:
            validate_tile_size(tile_size, max_tile_size=cfg.max_tile_size)
            self._set_state(PipelineState.DECODING)
            started = time.perf_counter()
            image = self._decoder(image_bytes)
            timings.decode_ms = _elapsed_ms(started)
            metrics.observe_stage("decode", timings.decode_ms / 1000)
            return self._tile(image, tile_size, timings)
        except Exception as exc:
            self._fail(exc)
            raise

    def run_image(self, image: Any, tile_size: int) -> TilingResult:
        """Tile an already-decoded image (anything exposing ``width``, ``height`` and ``crop``)."""

        self._ensure_idle()
        try:
            validate_tile_size(tile_size, max_tile_size=self._settings.tiling.max_tile_size)
            return self._tile(image, tile_size, StageTimings())
        except Exception as exc:
            self._fail(exc)
            raise

    async def run_async(self, image_bytes: bytes, tile_size: int) -> TilingResult:
        return await asyncio.to_thread(self.run, image_bytes, tile_size)

    def _tile(self, image: Any, tile_size: int, timings: StageTimings) -> TilingResult:
        cfg = self._settings.tiling
        grid = enforce_tile_budget(compute_grid(image.width, image.height, tile_size), cfg.max_tiles)
        self._set_state(PipelineState.GRID_COMPUTED)
        LOGGER.debug(
            "Grid for %sx%s image at tile size %s: %s rows x %s cols",
            grid.image_width,
            grid.image_height,
            tile_size,
            grid.rows,
            grid.cols,
        )

        self._set_state(PipelineState.DISPATCHING)
        started = time.perf_counter()
        tiles = dispatch_tiles(
            image,
            grid,
            max_workers=cfg.tile_workers,
            compression=cfg.png_compression,
        )
        validate_tiles(tiles, grid)
        timings.tile_ms = _elapsed_ms(started)
        metrics.observe_stage("tile", timings.tile_ms / 1000)

        self._set_state(PipelineState.ASSEMBLING)
        started = time.perf_counter()
        archive_bytes = build_archive(tiles, compression=cfg.archive_compression)
        timings.archive_ms = _elapsed_ms(started)
        metrics.observe_stage("archive", timings.archive_ms / 1000)

        self._set_state(PipelineState.DONE)
        metrics.record_success(tiles=grid.tile_count, archive_bytes=len(archive_bytes))
        LOGGER.info(
            "Tiled %sx%s image into %s tiles (%sx%s grid, %s archive bytes) decode=%sms tile=%sms archive=%sms",
            grid.image_width,
            grid.image_height,
            grid.tile_count,
            grid.rows,
            grid.cols,
            len(archive_bytes),
            timings.decode_ms,
            timings.tile_ms,
            timings.archive_ms,
        )
        return TilingResult(grid=grid, archive_bytes=archive_bytes, timings=timings)

    def _ensure_idle(self) -> None:
        if self.state is not PipelineState.IDLE:
            raise RuntimeError(f"TilingPipeline is single-use (current state {self.state.value})")

    def _set_state(self, state: PipelineState) -> None:
        LOGGER.debug("Pipeline %s -> %s", self.state.value, state.value)
        self.state = state
        self.history.append(state)

    def _fail(self, exc: Exception) -> None:
        self.error = exc
        self._set_state(PipelineState.FAILED)
        metrics.record_failure(getattr(exc, "kind", "internal"))


def tile_image_bytes(image_bytes: bytes, tile_size: int, *, settings: Settings | None = None) -> TilingResult:
    """Run a fresh pipeline over ``image_bytes``."""

    return TilingPipeline(settings=settings).run(image_bytes, tile_size)


def plan_grid(image_bytes: bytes, tile_size: int, *, settings: Settings | None = None) -> GridSpec:
    """Compute the grid an upload would produce without encoding any tiles."""

    cfg = (settings or get_settings()).tiling
    validate_tile_size(tile_size, max_tile_size=cfg.max_tile_size)
    width, height = read_dimensions(image_bytes)
    return enforce_tile_budget(compute_grid(width, height, tile_size), cfg.max_tiles)
