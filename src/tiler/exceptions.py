"""Error taxonomy for tiler.

Every public operation either returns its artifact or raises one of the
exceptions below. Each carries optional keyword context (ids, levels,
coordinates, formats) that is appended to the message, so a log line or
an API response can report exactly which object failed.
"""

from __future__ import annotations

from typing import Any


class TilerError(Exception):
    """Base exception for all tiler errors."""

    def __init__(self, message: str, **context: Any) -> None:
        """Initialize error with optional context.

        Args:
            message: Human-readable error description.
            **context: Identifying values for the failed operation. Entries
                whose value is None are dropped.
        """
        self.message = message
        self.context = {k: v for k, v in context.items() if v is not None}
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        """Format error message with context if available."""
        if not self.context:
            return self.message
        details = ", ".join(f"{k}={v!r}" for k, v in self.context.items())
        return f"{self.message} ({details})"


# --- Codec -------------------------------------------------------------------


class UnsupportedFormat(TilerError):
    """Raised when a format is unknown or cannot represent the raster.

    This error is raised when:
    - A format hint names no known format
    - The bytes carry no recognised signature and no hint was given
    - The target format cannot hold the raster's channel layout
    """


class CorruptData(TilerError):
    """Raised when bytes of a known format cannot be decoded.

    Also raised when a stored tile fails its digest check.
    """


class EncodeError(TilerError):
    """Raised when an encoder fails on a raster it claims to support."""


# --- Caller misconfiguration -------------------------------------------------


class InvalidRaster(TilerError, ValueError):
    """Raised when a pixel array violates the Raster invariants."""


class InvalidTileSize(TilerError, ValueError):
    """Raised when a tile size is not a positive integer."""


class InvalidKernel(TilerError, ValueError):
    """Raised when a convolution kernel is not a finite odd x odd matrix."""


class InvalidMatrix(TilerError, ValueError):
    """Raised when a grid is empty, ragged, or holds non-finite numbers."""


class DimensionMismatch(TilerError, ValueError):
    """Raised when matrix operands have incompatible shapes."""


# --- Compression -------------------------------------------------------------


class DecompressError(TilerError):
    """Raised when a compressed blob is malformed or truncated."""


# --- Lookup and lifecycle ----------------------------------------------------


class NotFound(TilerError, LookupError):
    """Raised when an id is unknown or a coordinate is outside the grid."""


class BlobNotFound(NotFound):
    """Raised by storage backends for unknown blob ids."""


class DocumentNotFound(NotFound):
    """Raised by storage backends for unknown document ids."""


class TileNotFound(NotFound):
    """Raised when (level, row, col) is outside the image's current pyramid."""


class MatrixExists(TilerError):
    """Raised when creating a matrix whose name is already taken."""


class NotReady(TilerError):
    """Raised when an image's derivation has not completed yet."""


class DerivationFailed(TilerError):
    """Raised when reading an image whose derivation failed."""


# --- Storage -----------------------------------------------------------------


class StorageFailure(TilerError):
    """Raised when a storage backend fails. Never retried internally."""
