"""Matrix resource: named numeric grids with CRUD and arithmetic by id."""

from __future__ import annotations

from pydantic import ValidationError

from tiler.exceptions import DocumentNotFound, MatrixExists
from tiler.matrix import engine
from tiler.matrix.engine import Grid
from tiler.service.schemas import MatrixRecord
from tiler.storage.protocol import StorageBackend
from tiler.utils.logging import get_logger

logger = get_logger(__name__)

MATRIX_KIND = "matrix"


def _record(name: str, grid: Grid) -> MatrixRecord:
    rows, cols = engine.dims(grid)
    return MatrixRecord(name=name, rows=rows, cols=cols, grid=engine.to_grid(engine.as_array(grid)))


class MatrixService:
    """Stores matrices and combines them by id."""

    def __init__(self, storage: StorageBackend) -> None:
        self._storage = storage

    async def _get(self, matrix_id: str) -> MatrixRecord:
        fields = await self._storage.get_document(matrix_id)
        try:
            return MatrixRecord.model_validate(fields)
        except ValidationError as e:
            raise DocumentNotFound("Document is not a matrix", matrix_id=matrix_id) from e

    async def _find_by_name(self, name: str) -> str | None:
        for doc_id, fields in await self._storage.list_documents(MATRIX_KIND):
            if fields.get("name") == name:
                return doc_id
        return None

    async def create(self, name: str, grid: Grid) -> str:
        """Store a new matrix.

        Raises:
            InvalidMatrix: If the grid is empty, ragged or non-finite.
            MatrixExists: If a matrix with this name already exists.
        """
        record = _record(name, grid)
        if await self._find_by_name(name) is not None:
            raise MatrixExists("Matrix name already in use", name=name)
        matrix_id = await self._storage.put_document(MATRIX_KIND, record.model_dump(mode="json"))
        logger.info("Matrix created", matrix_id=matrix_id, rows=record.rows, cols=record.cols)
        return matrix_id

    async def read(self, matrix_id: str) -> Grid:
        """Return the grid of a matrix."""
        return (await self._get(matrix_id)).grid

    async def describe(self, matrix_id: str) -> MatrixRecord:
        """Return the full matrix document."""
        return await self._get(matrix_id)

    async def list_matrices(self) -> list[tuple[str, MatrixRecord]]:
        """Return (id, record) for every stored matrix."""
        docs = await self._storage.list_documents(MATRIX_KIND)
        return [(doc_id, MatrixRecord.model_validate(fields)) for doc_id, fields in docs]

    async def update(self, matrix_id: str, grid: Grid) -> None:
        """Replace the grid of an existing matrix; dimensions may change.

        Raises:
            NotFound: If the id is unknown.
        """
        current = await self._get(matrix_id)
        record = _record(current.name, grid)
        await self._storage.update_document(matrix_id, record.model_dump(mode="json"))
        logger.info("Matrix updated", matrix_id=matrix_id, rows=record.rows, cols=record.cols)

    async def delete(self, matrix_id: str) -> None:
        """Delete a matrix.

        Raises:
            NotFound: If the id is unknown.
        """
        await self._get(matrix_id)
        await self._storage.delete_document(matrix_id)
        logger.info("Matrix deleted", matrix_id=matrix_id)

    async def dims(self, matrix_id: str) -> tuple[int, int]:
        """Return (rows, cols) of a matrix."""
        record = await self._get(matrix_id)
        return (record.rows, record.cols)

    async def add(self, a_id: str, b_id: str) -> Grid:
        """Return A + B."""
        a, b = await self._get(a_id), await self._get(b_id)
        return engine.add(a.grid, b.grid)

    async def subtract(self, a_id: str, b_id: str) -> Grid:
        """Return A - B."""
        a, b = await self._get(a_id), await self._get(b_id)
        return engine.subtract(a.grid, b.grid)

    async def multiply(self, a_id: str, b_id: str) -> Grid:
        """Return the matrix product A x B."""
        a, b = await self._get(a_id), await self._get(b_id)
        return engine.multiply(a.grid, b.grid)

    async def transpose(self, matrix_id: str) -> Grid:
        """Return the transpose of a matrix."""
        return engine.transpose((await self._get(matrix_id)).grid)
