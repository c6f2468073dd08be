"""Core algorithms for tiler.

This package contains the imaging engine: convolution, Gaussian pyramid
construction, tiling, and tile compression.

Public API:
    - convolve / gaussian_kernel / BorderMode: 2-D filtering of rasters.
    - PyramidBuilder: Builds the level sequence for a source raster.
    - PyramidConfig: Tile size, minimum level size, kernel and border policy.
    - Tiler / TileGrid / Tile: Deterministic tile addressing.
    - Compressor: Brotli compression of encoded tiles.
"""

from tiler.core.compressor import Compressor
from tiler.core.convolution import BorderMode, convolve, gaussian_kernel, validate_kernel
from tiler.core.pyramid import Level, Pyramid, PyramidBuilder, PyramidConfig
from tiler.core.tiling import Tile, TileGrid, Tiler, grid_shape, reassemble, tile

__all__ = [
    "BorderMode",
    "Compressor",
    "Level",
    "Pyramid",
    "PyramidBuilder",
    "PyramidConfig",
    "Tile",
    "TileGrid",
    "Tiler",
    "convolve",
    "gaussian_kernel",
    "grid_shape",
    "reassemble",
    "tile",
    "validate_kernel",
]
