"""Lossless compression of encoded tiles with brotli.

Tiles are stored as encoded images (PNG by default) wrapped in a brotli
stream. Defaults follow the tile pipeline's long-standing choice of
quality 10 and a 2**24-byte window.
"""

from __future__ import annotations

import brotli

from tiler.exceptions import DecompressError

_QUALITY_RANGE = (0, 11)
_LG_WINDOW_RANGE = (10, 24)


class Compressor:
    """Brotli compressor with fixed parameters.

    Example:
        >>> c = Compressor()
        >>> c.decompress(c.compress(b"tile"))
        b'tile'
    """

    __slots__ = ("_lg_window", "_quality")

    def __init__(self, quality: int = 10, lg_window: int = 24) -> None:
        """Initialize the compressor.

        Args:
            quality: Brotli quality, 0-11.
            lg_window: Base-2 log of the sliding window, 10-24.

        Raises:
            ValueError: If a parameter is out of range.
        """
        lo, hi = _QUALITY_RANGE
        if not lo <= quality <= hi:
            raise ValueError(f"Brotli quality must be between {lo} and {hi}, got {quality}")
        lo, hi = _LG_WINDOW_RANGE
        if not lo <= lg_window <= hi:
            raise ValueError(
                f"Brotli lg_window must be between {lo} and {hi}, got {lg_window}"
            )
        self._quality = quality
        self._lg_window = lg_window

    @property
    def name(self) -> str:
        """Return the compression scheme name recorded in documents."""
        return "brotli"

    def compress(self, data: bytes) -> bytes:
        """Compress bytes. Empty input yields a valid (non-empty) stream."""
        return brotli.compress(
            bytes(data),
            mode=brotli.MODE_GENERIC,
            quality=self._quality,
            lgwin=self._lg_window,
        )

    def decompress(self, data: bytes) -> bytes:
        """Decompress a brotli stream.

        Raises:
            DecompressError: If the stream is empty, malformed or truncated.
        """
        if not data:
            raise DecompressError("Compressed stream is empty")
        try:
            return brotli.decompress(bytes(data))
        except brotli.error as e:
            raise DecompressError(
                f"Malformed or truncated brotli stream: {e}", nbytes=len(data)
            ) from e
