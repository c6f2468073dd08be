"""Raster type for the imaging engine.

A Raster is the decoded, in-memory form of an image: a row-major grid of
fixed-width unsigned samples with 1-4 interleaved channels. Every stage of
the pipeline (codec, convolution, pyramid, tiler) consumes and produces
Rasters, so the invariants are checked once here at construction.
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np
from PIL import Image

from tiler.exceptions import InvalidRaster

# Channel count -> Pillow mode
CHANNEL_MODES: dict[int, str] = {1: "L", 2: "LA", 3: "RGB", 4: "RGBA"}
_MODE_CHANNELS: dict[str, int] = {mode: c for c, mode in CHANNEL_MODES.items()}


@dataclass(frozen=True, eq=False)
class Raster:
    """Immutable pixel grid.

    Attributes:
        pixels: Read-only array of shape (height, width, channels) with an
            unsigned integer dtype.
    """

    pixels: np.ndarray

    def __post_init__(self) -> None:
        arr = np.asarray(self.pixels)
        if arr.ndim == 2:
            arr = arr[:, :, np.newaxis]
        if arr.ndim != 3:
            raise InvalidRaster(
                "Raster pixels must be a (height, width, channels) array",
                shape=arr.shape,
            )
        height, width, channels = arr.shape
        if width < 1 or height < 1:
            raise InvalidRaster(
                "Raster dimensions must be positive", width=width, height=height
            )
        if channels not in CHANNEL_MODES:
            raise InvalidRaster(
                "Raster must have 1-4 channels", channels=channels
            )
        if arr.dtype.kind != "u":
            raise InvalidRaster(
                "Raster samples must be unsigned integers", dtype=str(arr.dtype)
            )
        # A view keeps the caller's array writable while this one is not
        view = arr.view()
        view.flags.writeable = False
        object.__setattr__(self, "pixels", view)

    @property
    def width(self) -> int:
        """Return width in pixels."""
        return int(self.pixels.shape[1])

    @property
    def height(self) -> int:
        """Return height in pixels."""
        return int(self.pixels.shape[0])

    @property
    def channels(self) -> int:
        """Return number of interleaved channels per pixel."""
        return int(self.pixels.shape[2])

    @property
    def size(self) -> tuple[int, int]:
        """Return (width, height)."""
        return (self.width, self.height)

    @property
    def mode(self) -> str:
        """Return the Pillow mode name for this channel layout."""
        return CHANNEL_MODES[self.channels]

    @property
    def nbytes(self) -> int:
        """Return the buffer length: width * height * channels * itemsize."""
        return int(self.pixels.nbytes)

    def tobytes(self) -> bytes:
        """Return the row-major, channel-interleaved pixel buffer."""
        return self.pixels.tobytes()

    def crop(self, x: int, y: int, width: int, height: int) -> Raster:
        """Return the sub-raster at (x, y) with the given size.

        Raises:
            InvalidRaster: If the rectangle is empty or leaves the raster.
        """
        if (
            x < 0
            or y < 0
            or width < 1
            or height < 1
            or x + width > self.width
            or y + height > self.height
        ):
            raise InvalidRaster(
                "Crop rectangle outside raster",
                rect=(x, y, width, height),
                size=self.size,
            )
        return Raster(self.pixels[y : y + height, x : x + width, :].copy())

    def to_pil(self) -> Image.Image:
        """Convert to a Pillow image (8-bit samples only)."""
        if self.pixels.dtype != np.uint8:
            raise InvalidRaster(
                "Only 8-bit rasters convert to Pillow images",
                dtype=str(self.pixels.dtype),
            )
        if self.channels == 1:
            return Image.fromarray(self.pixels[:, :, 0])
        return Image.fromarray(self.pixels)

    @classmethod
    def from_pil(cls, image: Image.Image) -> Raster:
        """Create a Raster from a Pillow image in L, LA, RGB or RGBA mode."""
        if image.mode not in _MODE_CHANNELS:
            raise InvalidRaster(
                "Unsupported Pillow mode", mode=image.mode
            )
        return cls(np.asarray(image, dtype=np.uint8))

    @classmethod
    def blank(
        cls,
        width: int,
        height: int,
        channels: int = 3,
        dtype: type[np.unsignedinteger] = np.uint8,
    ) -> Raster:
        """Create a zero-filled raster."""
        if width < 1 or height < 1:
            raise InvalidRaster(
                "Raster dimensions must be positive", width=width, height=height
            )
        return cls(np.zeros((height, width, channels), dtype=dtype))

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Raster):
            return NotImplemented
        return self.pixels.dtype == other.pixels.dtype and np.array_equal(
            self.pixels, other.pixels
        )

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        """Return string representation."""
        return (
            f"Raster(width={self.width}, height={self.height}, "
            f"channels={self.channels}, dtype={self.pixels.dtype})"
        )
