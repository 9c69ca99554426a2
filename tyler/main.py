"""Entry point for the FastAPI application."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, File, Form, HTTPException, Request, UploadFile, status
from fastapi.responses import HTMLResponse, Response
from prometheus_client import start_http_server
from prometheus_fastapi_instrumentator import Instrumentator

from tyler import metrics
from tyler.archive import ARCHIVE_FILENAME, ARCHIVE_MEDIA_TYPE
from tyler.errors import ImageDecodeError, InvalidParameterError, TilingError, UploadTooLargeError
from tyler.grid import validate_tile_size
from tyler.pipeline import TilingPipeline, plan_grid
from tyler.schemas import GridPlanResponse
from tyler.settings import settings

BASE_DIR = Path(__file__).resolve().parent.parent
WEB_ROOT = BASE_DIR / "web"

LOGGER = logging.getLogger(__name__)
_PROMETHEUS_EXPORTER_STARTED = False


async def _start_prometheus_exporter() -> None:
    """Expose Prometheus metrics on the configured auxiliary port."""

    global _PROMETHEUS_EXPORTER_STARTED
    if _PROMETHEUS_EXPORTER_STARTED:
        return
    port = settings.telemetry.prometheus_port
    if port <= 0:
        return
    try:
        start_http_server(port)
    except OSError as exc:  # pragma: no cover - system dependent
        LOGGER.warning("Prometheus exporter failed to bind on port %s: %s", port, exc)
        return
    _PROMETHEUS_EXPORTER_STARTED = True
    LOGGER.info("Prometheus exporter listening on port %s", port)


@asynccontextmanager
async def _lifespan(application: FastAPI):
    # Bounded request pool; a tiling request holds a slot until its archive is built.
    application.state.request_slots = asyncio.Semaphore(settings.server.request_workers)
    await _start_prometheus_exporter()
    yield


app = FastAPI(title="Tyler", lifespan=_lifespan)
instrumentator = Instrumentator(should_instrument_requests_inprogress=True)
instrumentator.instrument(app)
try:
    instrumentator.expose(app, include_in_schema=False, should_gzip=True)
except ValueError:  # pragma: no cover - already registered
    LOGGER.debug("Prometheus /metrics endpoint already exposed")


def _http_error(exc: TilingError) -> HTTPException:
    if isinstance(exc, UploadTooLargeError):
        code = 413
    elif isinstance(exc, (InvalidParameterError, ImageDecodeError)):
        code = status.HTTP_400_BAD_REQUEST
    else:
        code = status.HTTP_500_INTERNAL_SERVER_ERROR
    if code >= 500:
        LOGGER.error("Tiling failed (%s): %s", exc.kind, exc, exc_info=exc)
    else:
        LOGGER.warning("Rejected tiling request (%s): %s", exc.kind, exc)
    return HTTPException(status_code=code, detail=str(exc))


async def _read_single_upload(files: list[UploadFile]) -> bytes:
    """Return the bytes of the one uploaded file, enforcing the size ceiling."""

    if len(files) != 1:
        raise InvalidParameterError(f"expected exactly one uploaded file, received {len(files)}")
    limit = settings.tiling.max_upload_bytes
    payload = await files[0].read(limit + 1)
    if len(payload) > limit:
        raise UploadTooLargeError(f"upload exceeds the {limit} byte limit")
    return payload


async def _accept_form(files: list[UploadFile], width: int) -> bytes:
    try:
        validate_tile_size(width, max_tile_size=settings.tiling.max_tile_size)
        return await _read_single_upload(files)
    except InvalidParameterError as exc:
        metrics.record_failure(exc.kind)
        raise _http_error(exc) from exc


@app.get("/", response_class=HTMLResponse)
async def index() -> str:
    """Serve the upload form."""

    template = (WEB_ROOT / "index.html").read_text(encoding="utf-8")
    return template.replace("{{ default_tile_size }}", str(settings.tiling.default_tile_size))


@app.get("/health", tags=["health"])
async def healthcheck() -> dict[str, str]:
    """Return a simple status useful for smoke tests."""

    return {"status": "ok"}


@app.post("/submit")
async def submit(
    request: Request,
    files: list[UploadFile] = File(..., description="Image to tile (exactly one)"),
    width: int = Form(..., description="Tile edge length in pixels"),
) -> Response:
    """Split the uploaded image into tiles and return them as ``tiles.zip``."""

    image_bytes = await _accept_form(files, width)
    pipeline = TilingPipeline(settings=settings)
    async with request.app.state.request_slots:
        try:
            result = await pipeline.run_async(image_bytes, width)
        except TilingError as exc:
            raise _http_error(exc) from exc

    headers = {
        "Content-Disposition": f'attachment; filename="{ARCHIVE_FILENAME}"',
        "X-Tile-Rows": str(result.grid.rows),
        "X-Tile-Cols": str(result.grid.cols),
        "X-Tile-Count": str(result.tile_count),
    }
    return Response(content=result.archive_bytes, media_type=ARCHIVE_MEDIA_TYPE, headers=headers)


@app.post("/grid", response_model=GridPlanResponse)
async def grid_plan(
    files: list[UploadFile] = File(..., description="Image to inspect (exactly one)"),
    width: int = Form(..., description="Tile edge length in pixels"),
) -> GridPlanResponse:
    """Describe the tiles ``/submit`` would produce without encoding them."""

    image_bytes = await _accept_form(files, width)
    try:
        grid = await asyncio.to_thread(plan_grid, image_bytes, width, settings=settings)
    except TilingError as exc:
        metrics.record_failure(exc.kind)
        raise _http_error(exc) from exc
    return GridPlanResponse.from_grid(grid)
