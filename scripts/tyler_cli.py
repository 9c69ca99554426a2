#!/usr/bin/env python3
"""tyler CLI: tile images locally or through a running server."""

from __future__ import annotations

import json
import logging
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import httpx
import typer
from decouple import Config as DecoupleConfig, RepositoryEnv
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from tyler.archive import ARCHIVE_FILENAME, tile_entry_name
from tyler.errors import TilingError
from tyler.grid import GridSpec, iter_cells
from tyler.pipeline import TilingPipeline, plan_grid
from tyler.settings import get_settings

console = Console()
cli = typer.Typer(help="Split images into tile archives")


@dataclass
class APISettings:
    base_url: str


def _load_env_settings() -> APISettings:
    env_path = Path(".env")
    if env_path.exists():
        config = DecoupleConfig(RepositoryEnv(str(env_path)))
        return APISettings(base_url=config("TYLER_API_BASE_URL", default="http://localhost:8080"))
    return APISettings(base_url=os.environ.get("TYLER_API_BASE_URL", "http://localhost:8080"))


def _resolve_settings(override_base: Optional[str]) -> APISettings:
    api_settings = _load_env_settings()
    if override_base:
        api_settings.base_url = override_base
    return api_settings


def _client(api_settings: APISettings) -> httpx.Client:
    timeout = httpx.Timeout(connect=10.0, read=300.0, write=60.0, pool=10.0)
    return httpx.Client(base_url=api_settings.base_url, timeout=timeout)


def _read_image(path: Path) -> bytes:
    try:
        return path.read_bytes()
    except OSError as exc:
        raise typer.BadParameter(f"cannot read {path}: {exc}", param_hint="IMAGE") from exc


def _write_atomic(target: Path, payload: bytes) -> None:
    """Write ``payload`` next to ``target`` and rename it into place."""

    target.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{target.name}.", dir=target.parent)
    try:
        with os.fdopen(fd, "wb") as handle:
            handle.write(payload)
        os.replace(tmp_name, target)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


def _print_grid(grid: GridSpec) -> None:
    title = f"{grid.image_width}x{grid.image_height} @ {grid.tile_size}px: {grid.rows} rows x {grid.cols} cols"
    table = Table("Entry", "Left", "Top", "Width", "Height", title=title)
    for cell in iter_cells(grid):
        table.add_row(
            tile_entry_name(cell.row, cell.col),
            str(cell.left),
            str(cell.top),
            str(cell.width),
            str(cell.height),
        )
    console.print(table)


@cli.command()
def tile(
    image: Path = typer.Argument(..., help="Image to split"),
    tile_size: Optional[int] = typer.Option(None, "--tile-size", "-t", help="Tile edge length in pixels"),
    output: Path = typer.Option(Path(ARCHIVE_FILENAME), "--output", "-o", help="Where to write the zip"),
) -> None:
    """Tile an image on this machine and write the zip archive."""

    cfg = get_settings()
    size = tile_size if tile_size is not None else cfg.tiling.default_tile_size
    pipeline = TilingPipeline(settings=cfg)
    try:
        result = pipeline.run(_read_image(image), size)
    except TilingError as exc:
        console.print(f"[red]Tiling failed ({exc.kind}): {escape(str(exc))}[/]")
        raise typer.Exit(code=1) from exc
    _write_atomic(output, result.archive_bytes)
    console.print(
        f"[green]Wrote {result.tile_count} tiles ({result.grid.rows}x{result.grid.cols}) to {output}[/] "
        f"[dim]{result.timings.total_ms} ms[/]"
    )


@cli.command()
def grid(
    image: Path = typer.Argument(..., help="Image to inspect"),
    tile_size: Optional[int] = typer.Option(None, "--tile-size", "-t", help="Tile edge length in pixels"),
    as_json: bool = typer.Option(False, "--json", help="Emit the plan as JSON"),
) -> None:
    """Show the tile grid an image would produce."""

    cfg = get_settings()
    size = tile_size if tile_size is not None else cfg.tiling.default_tile_size
    try:
        plan = plan_grid(_read_image(image), size, settings=cfg)
    except TilingError as exc:
        console.print(f"[red]{escape(str(exc))}[/]")
        raise typer.Exit(code=1) from exc
    if as_json:
        payload = {
            "rows": plan.rows,
            "cols": plan.cols,
            "tiles": [tile_entry_name(cell.row, cell.col) for cell in iter_cells(plan)],
        }
        typer.echo(json.dumps(payload))
        return
    _print_grid(plan)


@cli.command()
def upload(
    image: Path = typer.Argument(..., help="Image to upload"),
    tile_size: Optional[int] = typer.Option(None, "--tile-size", "-t", help="Tile edge length in pixels"),
    output: Path = typer.Option(Path(ARCHIVE_FILENAME), "--output", "-o", help="Where to write the zip"),
    api_base: Optional[str] = typer.Option(None, help="Override API base URL"),
) -> None:
    """Send an image to a running server and save the returned archive."""

    api_settings = _resolve_settings(api_base)
    size = tile_size if tile_size is not None else get_settings().tiling.default_tile_size
    payload = _read_image(image)
    with _client(api_settings) as client:
        response = client.post(
            "/submit",
            files={"files": (image.name, payload, "application/octet-stream")},
            data={"width": str(size)},
        )
    if response.status_code >= 400:
        try:
            detail = response.json().get("detail")
        except ValueError:
            detail = response.text
        console.print(f"[red]Server rejected upload ({response.status_code}): {escape(str(detail))}[/]")
        raise typer.Exit(code=1)
    _write_atomic(output, response.content)
    count = response.headers.get("X-Tile-Count", "?")
    console.print(f"[green]Saved {count} tiles to {output}[/]")


@cli.command()
def serve(
    host: Optional[str] = typer.Option(None, help="Bind address (defaults to TYLER_HOST)"),
    port: Optional[int] = typer.Option(None, help="Port (defaults to TYLER_PORT)"),
) -> None:
    """Run the HTTP server."""

    import uvicorn

    cfg = get_settings()
    logging.basicConfig(
        level=cfg.logging.level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    uvicorn.run(
        "tyler.main:app",
        host=host or cfg.server.host,
        port=port or cfg.server.port,
        log_level=cfg.logging.level.lower(),
    )


if __name__ == "__main__":  # pragma: no cover
    cli()
