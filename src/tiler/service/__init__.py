"""Service layer: image and matrix operations over a storage backend."""

from tiler.service.images import ImageService
from tiler.service.matrices import MatrixService
from tiler.service.schemas import (
    ImageRecord,
    ImageStatus,
    LevelRecord,
    MatrixRecord,
    PyramidRecord,
    TileRecord,
)

__all__ = [
    "ImageRecord",
    "ImageService",
    "ImageStatus",
    "LevelRecord",
    "MatrixRecord",
    "MatrixService",
    "PyramidRecord",
    "TileRecord",
]
