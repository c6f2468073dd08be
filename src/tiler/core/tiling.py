"""Splitting a raster into a grid of fixed-size tiles.

The grid has ``ceil(height / T)`` rows and ``ceil(width / T)`` columns.
Edge tiles keep their true partial size instead of being padded, so
placing every tile at ``(col * T, row * T)`` rebuilds the raster exactly.

For a 1000x1000 raster and T = 300 there are sixteen tiles::

          300px       300px       300px   100px
      +-----------+-----------+-----------+-----+
 300px|  (0, 0)   |  (0, 1)   |  (0, 2)   |(0,3)|
      +-----------+-----------+-----------+-----+
 300px|  (1, 0)   |  (1, 1)   |  (1, 2)   |(1,3)|
      +-----------+-----------+-----------+-----+
 300px|  (2, 0)   |  (2, 1)   |  (2, 2)   |(2,3)|
      +-----------+-----------+-----------+-----+
 100px|  (3, 0)   |  (3, 1)   |  (3, 2)   |(3,3)|
      +-----------+-----------+-----------+-----+
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

import numpy as np

from tiler.exceptions import InvalidTileSize, TileNotFound
from tiler.raster.types import Raster

if TYPE_CHECKING:
    from collections.abc import Iterator


def _check_tile_size(tile_size: int) -> None:
    if isinstance(tile_size, bool) or not isinstance(tile_size, int) or tile_size <= 0:
        raise InvalidTileSize("Tile size must be a positive integer", tile_size=tile_size)


def grid_shape(width: int, height: int, tile_size: int) -> tuple[int, int]:
    """Return (rows, cols) of the tile grid for a width x height raster."""
    _check_tile_size(tile_size)
    return (-(-height // tile_size), -(-width // tile_size))


@dataclass(frozen=True)
class Tile:
    """A crop of one level.

    Attributes:
        row: Zero-based grid row.
        col: Zero-based grid column.
        x: Left edge in level pixels (col * tile_size).
        y: Top edge in level pixels (row * tile_size).
        raster: Tile pixels; edge tiles may be smaller than tile_size.
    """

    row: int
    col: int
    x: int
    y: int
    raster: Raster

    @property
    def width(self) -> int:
        """Return tile width."""
        return self.raster.width

    @property
    def height(self) -> int:
        """Return tile height."""
        return self.raster.height


@dataclass(frozen=True)
class TileGrid:
    """All tiles of one raster, in row-major order."""

    width: int
    height: int
    tile_size: int
    rows: int
    cols: int
    tiles: tuple[Tile, ...]

    @property
    def shape(self) -> tuple[int, int]:
        """Return (rows, cols)."""
        return (self.rows, self.cols)

    def __getitem__(self, key: tuple[int, int]) -> Tile:
        row, col = key
        if not (0 <= row < self.rows and 0 <= col < self.cols):
            raise TileNotFound(
                "Tile coordinate outside grid", row=row, col=col, shape=self.shape
            )
        return self.tiles[row * self.cols + col]

    def __iter__(self) -> Iterator[Tile]:
        return iter(self.tiles)

    def __len__(self) -> int:
        return len(self.tiles)


class Tiler:
    """Partitions rasters into tiles of a fixed nominal size."""

    __slots__ = ("_tile_size",)

    def __init__(self, tile_size: int) -> None:
        """Initialize the tiler.

        Raises:
            InvalidTileSize: If tile_size is not a positive integer.
        """
        _check_tile_size(tile_size)
        self._tile_size = tile_size

    @property
    def tile_size(self) -> int:
        """Return the nominal tile edge."""
        return self._tile_size

    def tile(self, raster: Raster) -> TileGrid:
        """Split a raster into its tile grid."""
        size = self._tile_size
        rows, cols = grid_shape(raster.width, raster.height, size)
        tiles = []
        for row in range(rows):
            y = row * size
            h = min(size, raster.height - y)
            for col in range(cols):
                x = col * size
                w = min(size, raster.width - x)
                tiles.append(Tile(row=row, col=col, x=x, y=y, raster=raster.crop(x, y, w, h)))
        return TileGrid(
            width=raster.width,
            height=raster.height,
            tile_size=size,
            rows=rows,
            cols=cols,
            tiles=tuple(tiles),
        )


def tile(raster: Raster, tile_size: int) -> TileGrid:
    """Split a raster into tiles of at most tile_size x tile_size."""
    return Tiler(tile_size).tile(raster)


def reassemble(grid: TileGrid) -> Raster:
    """Rebuild the raster a grid was cut from.

    Raises:
        ValueError: If the grid is empty or a tile does not fit its slot.
    """
    if not grid.tiles:
        raise ValueError("Cannot reassemble an empty tile grid")
    first = grid.tiles[0].raster
    canvas = np.zeros((grid.height, grid.width, first.channels), dtype=first.pixels.dtype)
    for t in grid.tiles:
        if t.x + t.width > grid.width or t.y + t.height > grid.height:
            raise ValueError(
                f"Tile ({t.row}, {t.col}) of size {t.width}x{t.height} "
                f"does not fit a {grid.width}x{grid.height} canvas"
            )
        canvas[t.y : t.y + t.height, t.x : t.x + t.width, :] = t.raster.pixels
    return Raster(canvas)
