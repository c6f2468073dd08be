"""Tiler CLI.

Command-line access to the imaging engine: cut an image into tiles or
write out its Gaussian pyramid, without any storage backend.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Annotated

import typer

from tiler import __version__
from tiler.config import settings
from tiler.core.pyramid import PyramidBuilder, PyramidConfig
from tiler.core.tiling import Tiler
from tiler.exceptions import UnsupportedFormat
from tiler.raster.codec import ImageFormat, decode, encode, resolve_format
from tiler.utils.logging import configure_logging, get_logger

app = typer.Typer(
    name="tiler",
    help="Tiler: Gaussian pyramids and compressed tiles for large images",
    add_completion=False,
)


def _configure_logging(verbose: int) -> None:
    """Configure logging based on verbosity level."""
    if verbose == 0:
        level = "WARNING"
    elif verbose == 1:
        level = "INFO"
    else:  # verbose >= 2
        level = "DEBUG"

    configure_logging(level=level)


InputPath = Annotated[
    Path,
    typer.Argument(
        exists=True,
        file_okay=True,
        dir_okay=False,
        readable=True,
        help="Image file to read",
    ),
]
OutputDir = Annotated[
    Path,
    typer.Argument(file_okay=False, dir_okay=True, help="Directory to write into"),
]
Verbose = Annotated[
    int,
    typer.Option("--verbose", "-v", count=True, help="Increase verbosity (-v, -vv)"),
]
JsonOutput = Annotated[bool, typer.Option("--json", help="Output as JSON")]


def _parse_format(value: str | None) -> ImageFormat | None:
    if value is None:
        return None
    try:
        return ImageFormat.parse(value)
    except UnsupportedFormat as e:
        raise typer.BadParameter(str(e)) from None


# =============================================================================
# Commands
# =============================================================================


@app.command()
def version(json_output: JsonOutput = False) -> None:
    """Show version information."""
    if json_output:
        typer.echo(json.dumps({"version": __version__}))
    else:
        typer.echo(f"tiler {__version__}")


@app.command()
def tiles(
    input_path: InputPath,
    output_dir: OutputDir,
    tile_size: Annotated[
        int, typer.Option("--tile-size", "-t", min=1, help="Tile edge in pixels")
    ] = settings.TILE_SIZE,
    fmt: Annotated[
        str | None,
        typer.Option("--format", "-f", help="Output format (default: input format)"),
    ] = None,
    json_output: JsonOutput = False,
    verbose: Verbose = 0,
) -> None:
    """Cut an image into tiles written as tile_r{row}_c{col}.{ext}."""
    _configure_logging(verbose)
    logger = get_logger(__name__)
    target = _parse_format(fmt)

    try:
        data = input_path.read_bytes()
        source_format = resolve_format(data)
        raster = decode(data, source_format)
        out_format = target or source_format
        grid = Tiler(tile_size).tile(raster)

        output_dir.mkdir(parents=True, exist_ok=True)
        written = []
        for t in grid:
            path = output_dir / f"tile_r{t.row}_c{t.col}{out_format.extension}"
            path.write_bytes(encode(t.raster, out_format, jpeg_quality=settings.JPEG_QUALITY))
            written.append(path)
        logger.info("Tiles written", count=len(written), output_dir=str(output_dir))

        if json_output:
            typer.echo(
                json.dumps(
                    {
                        "rows": grid.rows,
                        "cols": grid.cols,
                        "tile_size": grid.tile_size,
                        "format": out_format.value,
                        "files": [p.name for p in written],
                    },
                    indent=2,
                )
            )
        else:
            typer.echo(
                f"Wrote {len(written)} tiles ({grid.rows} rows x {grid.cols} cols) "
                f"to {output_dir}"
            )
        raise typer.Exit(0)

    except typer.Exit:
        raise
    except Exception as e:
        logger.exception("Tiling failed")
        if json_output:
            typer.echo(json.dumps({"error": str(e)}))
        else:
            typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1) from None


@app.command()
def pyramid(
    input_path: InputPath,
    output_dir: OutputDir,
    min_level_size: Annotated[
        int, typer.Option("--min-level-size", min=1, help="Smallest allowed level edge")
    ] = settings.MIN_LEVEL_SIZE,
    fmt: Annotated[
        str | None,
        typer.Option("--format", "-f", help="Output format (default: input format)"),
    ] = None,
    json_output: JsonOutput = False,
    verbose: Verbose = 0,
) -> None:
    """Write every pyramid level of an image as level_{i}.{ext}."""
    _configure_logging(verbose)
    logger = get_logger(__name__)
    target = _parse_format(fmt)

    try:
        data = input_path.read_bytes()
        source_format = resolve_format(data)
        raster = decode(data, source_format)
        out_format = target or source_format
        config = PyramidConfig(min_level_size=min_level_size)
        levels = PyramidBuilder(config).build(raster)

        output_dir.mkdir(parents=True, exist_ok=True)
        rows = []
        for level in levels:
            path = output_dir / f"level_{level.index}{out_format.extension}"
            path.write_bytes(
                encode(level.raster, out_format, jpeg_quality=settings.JPEG_QUALITY)
            )
            rows.append(
                {
                    "level": level.index,
                    "width": level.width,
                    "height": level.height,
                    "file": path.name,
                }
            )
        logger.info("Pyramid written", levels=len(rows), output_dir=str(output_dir))

        if json_output:
            typer.echo(json.dumps({"format": out_format.value, "levels": rows}, indent=2))
        else:
            typer.echo(f"{'Level':<6} {'Width':>7} {'Height':>7}  File")
            for row in rows:
                typer.echo(
                    f"{row['level']:<6} {row['width']:>7} {row['height']:>7}  {row['file']}"
                )
        raise typer.Exit(0)

    except typer.Exit:
        raise
    except Exception as e:
        logger.exception("Pyramid build failed")
        if json_output:
            typer.echo(json.dumps({"error": str(e)}))
        else:
            typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1) from None


@app.callback(invoke_without_command=True)
def main(ctx: typer.Context) -> None:
    """Tiler: Gaussian pyramids and compressed tiles for large images."""
    if ctx.invoked_subcommand is None:
        typer.echo(ctx.get_help())
