"""2-D convolution over Rasters.

Border handling pads the raster before the kernel slides over it, so the
output keeps the input's dimensions. Three policies are offered; the
pyramid uses REPLICATE, which avoids darkening the edges of each level.

    REPLICATE  aaa|abcd|ddd
    REFLECT    cba|abcd|dcb   (edge pixel repeated, numpy "symmetric")
    ZERO       000|abcd|000
"""

from __future__ import annotations

from enum import Enum

import numpy as np
import numpy.typing as npt

from tiler.exceptions import InvalidKernel
from tiler.raster.types import Raster


class BorderMode(str, Enum):
    """Padding policy applied before convolution."""

    REPLICATE = "replicate"
    REFLECT = "reflect"
    ZERO = "zero"


_NUMPY_PAD_MODES: dict[BorderMode, str] = {
    BorderMode.REPLICATE: "edge",
    BorderMode.REFLECT: "symmetric",
    BorderMode.ZERO: "constant",
}


def validate_kernel(kernel: npt.ArrayLike) -> np.ndarray:
    """Return the kernel as a float64 array, or raise InvalidKernel.

    A kernel must be a finite 2-D matrix with an odd number of rows and
    columns. Normalisation is the caller's responsibility.
    """
    try:
        k = np.asarray(kernel, dtype=np.float64)
    except (TypeError, ValueError) as e:
        raise InvalidKernel(f"Kernel is not numeric: {e}") from e
    if k.ndim != 2:
        raise InvalidKernel("Kernel must be a 2-D matrix", ndim=k.ndim)
    rows, cols = k.shape
    if rows % 2 == 0 or cols % 2 == 0:
        raise InvalidKernel(
            "Kernel must have an odd number of rows and columns", shape=k.shape
        )
    if not np.all(np.isfinite(k)):
        raise InvalidKernel("Kernel weights must be finite")
    return k


def gaussian_kernel(size: int = 5, sigma: float | None = None) -> np.ndarray:
    """Build a normalised size x size Gaussian kernel.

    With ``sigma=None`` the kernel is the binomial approximation (rows of
    Pascal's triangle), which for size 5 is ``outer([1,4,6,4,1]) / 256``.

    Raises:
        InvalidKernel: If size is not a positive odd integer or sigma <= 0.
    """
    if size < 1 or size % 2 == 0:
        raise InvalidKernel("Gaussian kernel size must be odd and positive", size=size)
    if sigma is None:
        row = np.array([1.0])
        for _ in range(size - 1):
            row = np.convolve(row, [1.0, 1.0])
    else:
        if sigma <= 0:
            raise InvalidKernel("Gaussian sigma must be positive", sigma=sigma)
        radius = size // 2
        xs = np.arange(-radius, radius + 1, dtype=np.float64)
        row = np.exp(-(xs**2) / (2.0 * sigma**2))
    row = row / row.sum()
    return np.outer(row, row)


def convolve(
    raster: Raster,
    kernel: npt.ArrayLike,
    border: BorderMode | str = BorderMode.REPLICATE,
) -> Raster:
    """Convolve every channel of a raster with a 2-D kernel.

    The kernel is flipped (true convolution, not correlation). Sums are
    accumulated in float64, rounded half-to-even and clipped to the
    sample range before converting back to the input dtype.

    Args:
        raster: Input raster.
        kernel: Odd x odd weights.
        border: Padding policy.

    Returns:
        New raster with the input's size, channels and dtype.

    Raises:
        InvalidKernel: If the kernel is malformed.
    """
    k = validate_kernel(kernel)[::-1, ::-1]
    mode = _NUMPY_PAD_MODES[BorderMode(border)]
    pad_y, pad_x = k.shape[0] // 2, k.shape[1] // 2

    src = raster.pixels.astype(np.float64)
    padded = np.pad(src, ((pad_y, pad_y), (pad_x, pad_x), (0, 0)), mode=mode)

    height, width = raster.height, raster.width
    out = np.zeros_like(src)
    for dy in range(k.shape[0]):
        for dx in range(k.shape[1]):
            weight = k[dy, dx]
            if weight == 0.0:
                continue
            out += weight * padded[dy : dy + height, dx : dx + width, :]

    info = np.iinfo(raster.pixels.dtype)
    out = np.clip(np.rint(out), info.min, info.max)
    return Raster(out.astype(raster.pixels.dtype))
