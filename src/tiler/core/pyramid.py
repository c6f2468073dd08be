"""Gaussian pyramid construction.

Level 0 is the source raster. Each next level is the current one blurred
with a small Gaussian kernel and subsampled with stride 2, keeping rows
and columns 0, 2, 4, ... so that ``next = ceil(current / 2)``. Building
stops before the first level whose width or height would fall below
``min_level_size``; that candidate is discarded.

    1024x1024 -> 512x512 -> 256x256 -> 128x128   (min_level_size = 128)
    600x600   -> 300x300 -> 150x150
    100x900   -> (single level, already below the minimum)

The same input always yields the same level count and dimensions, and
``level_dimensions`` predicts them without touching pixels.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import numpy as np

from tiler.core.convolution import BorderMode, convolve, gaussian_kernel, validate_kernel
from tiler.exceptions import InvalidTileSize
from tiler.raster.types import Raster
from tiler.utils.logging import get_logger

if TYPE_CHECKING:
    from collections.abc import Iterator

    from tiler.config import Settings

logger = get_logger(__name__)

DEFAULT_TILE_SIZE = 512
DEFAULT_MIN_LEVEL_SIZE = 128


def _kernel_tuple(kernel: np.ndarray) -> tuple[tuple[float, ...], ...]:
    return tuple(tuple(float(v) for v in row) for row in kernel)


@dataclass(frozen=True)
class PyramidConfig:
    """Constants shared by the pyramid builder and the tiler.

    Attributes:
        tile_size: Nominal tile edge in pixels.
        min_level_size: Smallest allowed width/height of any level.
        kernel: Blur weights applied before each subsampling step.
        border: Padding policy for the blur.
        stride: Subsampling step in both axes.
    """

    tile_size: int = DEFAULT_TILE_SIZE
    min_level_size: int = DEFAULT_MIN_LEVEL_SIZE
    kernel: tuple[tuple[float, ...], ...] = field(
        default_factory=lambda: _kernel_tuple(gaussian_kernel(5))
    )
    border: BorderMode = BorderMode.REPLICATE
    stride: int = 2

    def __post_init__(self) -> None:
        size = self.tile_size
        if isinstance(size, bool) or not isinstance(size, int) or size <= 0:
            raise InvalidTileSize("Tile size must be a positive integer", tile_size=self.tile_size)
        if self.min_level_size < 1:
            raise ValueError(f"min_level_size must be >= 1, got {self.min_level_size}")
        if self.stride < 2:
            raise ValueError(f"stride must be >= 2, got {self.stride}")
        object.__setattr__(self, "kernel", _kernel_tuple(validate_kernel(self.kernel)))
        object.__setattr__(self, "border", BorderMode(self.border))

    @property
    def kernel_array(self) -> np.ndarray:
        """Return the kernel as a float64 array."""
        return np.asarray(self.kernel, dtype=np.float64)

    @classmethod
    def from_settings(cls, settings: Settings) -> PyramidConfig:
        """Build the configuration from application settings."""
        return cls(
            tile_size=settings.TILE_SIZE,
            min_level_size=settings.MIN_LEVEL_SIZE,
            kernel=_kernel_tuple(gaussian_kernel(settings.GAUSSIAN_KERNEL_SIZE)),
            border=BorderMode(settings.BORDER_MODE),
        )


@dataclass(frozen=True)
class Level:
    """One resolution tier of a pyramid.

    Attributes:
        index: Level index (0 = full resolution).
        raster: Pixels at this level.
    """

    index: int
    raster: Raster

    @property
    def width(self) -> int:
        """Return level width."""
        return self.raster.width

    @property
    def height(self) -> int:
        """Return level height."""
        return self.raster.height


@dataclass(frozen=True)
class Pyramid:
    """Ordered levels, finest first."""

    levels: tuple[Level, ...]

    @property
    def level_count(self) -> int:
        """Return number of levels."""
        return len(self.levels)

    @property
    def dimensions(self) -> tuple[tuple[int, int], ...]:
        """Return (width, height) per level."""
        return tuple((lvl.width, lvl.height) for lvl in self.levels)

    def __getitem__(self, index: int) -> Level:
        return self.levels[index]

    def __iter__(self) -> Iterator[Level]:
        return iter(self.levels)

    def __len__(self) -> int:
        return len(self.levels)


class PyramidBuilder:
    """Builds Gaussian pyramids with a fixed configuration.

    Example:
        >>> builder = PyramidBuilder(PyramidConfig())
        >>> builder.level_dimensions(1024, 1024)
        ((1024, 1024), (512, 512), (256, 256), (128, 128))
    """

    __slots__ = ("_config",)

    def __init__(self, config: PyramidConfig | None = None) -> None:
        """Initialize the builder.

        Args:
            config: Pyramid configuration. Defaults to PyramidConfig().
        """
        self._config = config or PyramidConfig()

    @property
    def config(self) -> PyramidConfig:
        """Return the builder configuration."""
        return self._config

    def _next_size(self, size: int) -> int:
        stride = self._config.stride
        return (size + stride - 1) // stride

    def level_dimensions(self, width: int, height: int) -> tuple[tuple[int, int], ...]:
        """Compute (width, height) of every level without building pixels."""
        dims = [(width, height)]
        minimum = self._config.min_level_size
        while True:
            w, h = dims[-1]
            nw, nh = self._next_size(w), self._next_size(h)
            if nw < minimum or nh < minimum or (nw, nh) == (w, h):
                break
            dims.append((nw, nh))
        return tuple(dims)

    def downsample(self, raster: Raster) -> Raster:
        """Blur then subsample a raster by the configured stride."""
        blurred = convolve(raster, self._config.kernel_array, self._config.border)
        stride = self._config.stride
        return Raster(blurred.pixels[::stride, ::stride, :].copy())

    def build(self, raster: Raster) -> Pyramid:
        """Build the pyramid for a source raster.

        Args:
            raster: Level-0 raster.

        Returns:
            Pyramid with at least one level.
        """
        expected = self.level_dimensions(raster.width, raster.height)
        levels = [Level(index=0, raster=raster)]
        current = raster
        for index in range(1, len(expected)):
            current = self.downsample(current)
            levels.append(Level(index=index, raster=current))
            logger.debug(
                "Built pyramid level",
                index=index,
                width=current.width,
                height=current.height,
            )
        return Pyramid(levels=tuple(levels))
