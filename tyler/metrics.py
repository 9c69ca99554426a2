"""Prometheus metrics for the tiling pipeline."""

from __future__ import annotations

from prometheus_client import Counter, Histogram

REQUESTS_TOTAL = Counter(
    "tyler_requests_total",
    "Tiling requests by outcome",
    ["outcome"],
)
TILES_ENCODED_TOTAL = Counter(
    "tyler_tiles_encoded_total",
    "Tiles encoded and packed into archives",
)
ARCHIVE_BYTES = Histogram(
    "tyler_archive_bytes",
    "Size of finished tile archives in bytes",
    buckets=(1e4, 1e5, 5e5, 1e6, 5e6, 1e7, 5e7, 1e8, 5e8),
)
STAGE_SECONDS = Histogram(
    "tyler_stage_seconds",
    "Wall time spent per pipeline stage",
    ["stage"],
)


def observe_stage(stage: str, seconds: float) -> None:
    STAGE_SECONDS.labels(stage=stage).observe(seconds)


def record_success(*, tiles: int, archive_bytes: int) -> None:
    REQUESTS_TOTAL.labels(outcome="ok").inc()
    TILES_ENCODED_TOTAL.inc(tiles)
    ARCHIVE_BYTES.observe(archive_bytes)


def record_failure(kind: str) -> None:
    REQUESTS_TOTAL.labels(outcome=kind).inc()
