"""Tests for MatrixService."""

from __future__ import annotations

import pytest

from tiler.exceptions import (
    DimensionMismatch,
    DocumentNotFound,
    InvalidMatrix,
    MatrixExists,
    NotFound,
)
from tiler.service.matrices import MatrixService
from tiler.storage.memory import InMemoryStorage


class TestMatrixCrud:
    """Tests for create, read, update and delete."""

    @pytest.mark.asyncio
    async def test_create_and_read(self, matrix_service: MatrixService) -> None:
        matrix_id = await matrix_service.create("a", [[1, 2], [3, 4]])

        assert await matrix_service.read(matrix_id) == [[1.0, 2.0], [3.0, 4.0]]
        assert await matrix_service.dims(matrix_id) == (2, 2)
        record = await matrix_service.describe(matrix_id)
        assert (record.name, record.rows, record.cols) == ("a", 2, 2)

    @pytest.mark.asyncio
    async def test_duplicate_name(self, matrix_service: MatrixService) -> None:
        await matrix_service.create("a", [[1]])
        with pytest.raises(MatrixExists, match="already in use"):
            await matrix_service.create("a", [[2]])

    @pytest.mark.asyncio
    async def test_invalid_grid_not_stored(
        self, matrix_service: MatrixService, storage: InMemoryStorage
    ) -> None:
        with pytest.raises(InvalidMatrix):
            await matrix_service.create("bad", [[1, 2], [3]])
        assert storage.document_count == 0

    @pytest.mark.asyncio
    async def test_update_replaces_grid(self, matrix_service: MatrixService) -> None:
        matrix_id = await matrix_service.create("a", [[1, 2]])

        await matrix_service.update(matrix_id, [[5], [6], [7]])

        assert await matrix_service.read(matrix_id) == [[5.0], [6.0], [7.0]]
        assert await matrix_service.dims(matrix_id) == (3, 1)
        assert (await matrix_service.describe(matrix_id)).name == "a"

    @pytest.mark.asyncio
    async def test_update_unknown(self, matrix_service: MatrixService) -> None:
        with pytest.raises(NotFound):
            await matrix_service.update("missing", [[1]])

    @pytest.mark.asyncio
    async def test_delete(self, matrix_service: MatrixService) -> None:
        matrix_id = await matrix_service.create("a", [[1]])

        await matrix_service.delete(matrix_id)

        with pytest.raises(NotFound):
            await matrix_service.read(matrix_id)
        with pytest.raises(NotFound):
            await matrix_service.delete(matrix_id)

    @pytest.mark.asyncio
    async def test_name_reusable_after_delete(self, matrix_service: MatrixService) -> None:
        matrix_id = await matrix_service.create("a", [[1]])
        await matrix_service.delete(matrix_id)
        assert await matrix_service.create("a", [[2]]) != matrix_id

    @pytest.mark.asyncio
    async def test_list_matrices(self, matrix_service: MatrixService) -> None:
        a = await matrix_service.create("a", [[1]])
        b = await matrix_service.create("b", [[2]])

        listed = dict(await matrix_service.list_matrices())

        assert set(listed) == {a, b}
        assert listed[b].grid == [[2.0]]

    @pytest.mark.asyncio
    async def test_image_document_is_not_a_matrix(
        self, matrix_service: MatrixService, storage: InMemoryStorage
    ) -> None:
        doc_id = await storage.put_document("image", {"name": "img", "width": 3})
        with pytest.raises(DocumentNotFound):
            await matrix_service.read(doc_id)


class TestMatrixArithmetic:
    """Tests for arithmetic by id."""

    @pytest.mark.asyncio
    async def test_identity_and_sum(self, matrix_service: MatrixService) -> None:
        a = await matrix_service.create("A", [[1, 0], [0, 1]])
        b = await matrix_service.create("B", [[3, 4], [5, 6]])

        assert await matrix_service.multiply(b, a) == [[3.0, 4.0], [5.0, 6.0]]
        assert await matrix_service.add(a, b) == [[4.0, 4.0], [5.0, 7.0]]
        assert await matrix_service.subtract(b, a) == [[2.0, 4.0], [5.0, 5.0]]

    @pytest.mark.asyncio
    async def test_operands_unchanged(self, matrix_service: MatrixService) -> None:
        a = await matrix_service.create("A", [[1, 2]])
        b = await matrix_service.create("B", [[3, 4]])

        await matrix_service.add(a, b)

        assert await matrix_service.read(a) == [[1.0, 2.0]]
        assert await matrix_service.read(b) == [[3.0, 4.0]]

    @pytest.mark.asyncio
    async def test_dimension_mismatch(self, matrix_service: MatrixService) -> None:
        a = await matrix_service.create("A", [[1, 2, 3]])
        b = await matrix_service.create("B", [[1, 2]])

        with pytest.raises(DimensionMismatch):
            await matrix_service.add(a, b)
        with pytest.raises(DimensionMismatch):
            await matrix_service.multiply(a, b)

    @pytest.mark.asyncio
    async def test_transpose(self, matrix_service: MatrixService) -> None:
        a = await matrix_service.create("A", [[1, 2, 3]])
        assert await matrix_service.transpose(a) == [[1.0], [2.0], [3.0]]

    @pytest.mark.asyncio
    async def test_unknown_operand(self, matrix_service: MatrixService) -> None:
        a = await matrix_service.create("A", [[1]])
        with pytest.raises(NotFound):
            await matrix_service.add(a, "missing")
