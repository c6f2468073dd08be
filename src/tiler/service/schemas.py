"""Document models persisted by the services.

Each model round-trips through ``model_dump(mode="json")`` and
``model_validate`` so that any StorageBackend holding plain JSON objects
can store it.
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum

from pydantic import BaseModel, Field


def utcnow() -> datetime:
    return datetime.now(UTC)


class ImageStatus(str, Enum):
    """Lifecycle of an image document."""

    PROCESSING = "processing"
    READY = "ready"
    FAILED = "failed"


class TileRecord(BaseModel):
    """Location and storage of one tile.

    Attributes:
        row: Grid row.
        col: Grid column.
        x: Left edge in level pixels.
        y: Top edge in level pixels.
        width: Tile width (partial at the right edge).
        height: Tile height (partial at the bottom edge).
        blob_id: Id of the compressed, encoded tile.
        digest: SHA-256 hex of the stored blob.
    """

    row: int = Field(..., ge=0)
    col: int = Field(..., ge=0)
    x: int = Field(..., ge=0)
    y: int = Field(..., ge=0)
    width: int = Field(..., gt=0)
    height: int = Field(..., gt=0)
    blob_id: str = Field(..., min_length=1)
    digest: str = Field(..., min_length=64, max_length=64)


class LevelRecord(BaseModel):
    """One pyramid level and its tiles, row-major."""

    index: int = Field(..., ge=0)
    width: int = Field(..., gt=0)
    height: int = Field(..., gt=0)
    rows: int = Field(..., gt=0)
    cols: int = Field(..., gt=0)
    tiles: list[TileRecord] = Field(default_factory=list)

    def tile_at(self, row: int, col: int) -> TileRecord | None:
        """Return the tile at (row, col), or None when outside the grid."""
        if not (0 <= row < self.rows and 0 <= col < self.cols):
            return None
        return self.tiles[row * self.cols + col]


class PyramidRecord(BaseModel):
    """Derivation parameters and the levels they produced."""

    tile_size: int = Field(..., gt=0)
    min_level_size: int = Field(..., gt=0)
    tile_format: str = Field(..., description="Encoded format of every tile")
    compression: str = Field(default="brotli", description="Tile blob compression")
    levels: list[LevelRecord] = Field(default_factory=list)

    @property
    def level_count(self) -> int:
        """Return number of levels."""
        return len(self.levels)

    def blob_ids(self) -> list[str]:
        """Return every tile blob id across all levels."""
        return [t.blob_id for level in self.levels for t in level.tiles]


class ImageRecord(BaseModel):
    """Stored image: metadata, original and pyramid references."""

    name: str = Field(..., min_length=1)
    source_format: str
    width: int = Field(..., gt=0)
    height: int = Field(..., gt=0)
    channels: int = Field(..., ge=1, le=4)
    version: int = Field(default=1, ge=1)
    status: ImageStatus = ImageStatus.PROCESSING
    original_blob_id: str | None = None
    pyramid: PyramidRecord | None = None
    error_message: str | None = Field(default=None, description="Why derivation failed")
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    def blob_ids(self) -> list[str]:
        """Return the original blob id (if any) and all tile blob ids."""
        ids = [self.original_blob_id] if self.original_blob_id else []
        if self.pyramid is not None:
            ids.extend(self.pyramid.blob_ids())
        return ids


class MatrixRecord(BaseModel):
    """Stored matrix."""

    name: str = Field(..., min_length=1)
    rows: int = Field(..., gt=0)
    cols: int = Field(..., gt=0)
    grid: list[list[float]]
