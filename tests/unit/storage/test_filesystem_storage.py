"""Tests for the filesystem storage backend and backend selection."""

from __future__ import annotations

from pathlib import Path

import pytest

from tiler.config import ConfigError, Settings
from tiler.exceptions import BlobNotFound, DocumentNotFound, StorageFailure
from tiler.storage import FilesystemStorage, InMemoryStorage, create_storage


@pytest.fixture
def fs_storage(tmp_path: Path) -> FilesystemStorage:
    return FilesystemStorage(tmp_path / "store")


class TestFilesystemBlobs:
    """Tests for blob operations on disk."""

    @pytest.mark.asyncio
    async def test_put_get_delete(self, fs_storage: FilesystemStorage) -> None:
        blob_id = await fs_storage.put_blob(b"\x00\x01tile")

        assert (fs_storage.root / "blobs" / blob_id).read_bytes() == b"\x00\x01tile"
        assert await fs_storage.get_blob(blob_id) == b"\x00\x01tile"

        await fs_storage.delete_blob(blob_id)
        with pytest.raises(BlobNotFound):
            await fs_storage.get_blob(blob_id)

    @pytest.mark.asyncio
    async def test_unknown_and_malformed_ids(self, fs_storage: FilesystemStorage) -> None:
        with pytest.raises(BlobNotFound):
            await fs_storage.get_blob("0" * 32)
        with pytest.raises(BlobNotFound):
            await fs_storage.get_blob("../../etc/passwd")
        with pytest.raises(BlobNotFound):
            await fs_storage.delete_blob("0" * 32)

    @pytest.mark.asyncio
    async def test_no_temporary_files_left(self, fs_storage: FilesystemStorage) -> None:
        await fs_storage.put_blob(b"data")
        await fs_storage.put_document("image", {"a": 1})
        leftovers = [p for p in fs_storage.root.rglob("*.tmp")]
        assert leftovers == []


class TestFilesystemDocuments:
    """Tests for document operations on disk."""

    @pytest.mark.asyncio
    async def test_put_get_update_delete(self, fs_storage: FilesystemStorage) -> None:
        doc_id = await fs_storage.put_document("image", {"name": "a", "levels": [1, 2]})

        assert (fs_storage.root / "documents" / "image" / f"{doc_id}.json").is_file()
        assert await fs_storage.get_document(doc_id) == {"name": "a", "levels": [1, 2]}

        await fs_storage.update_document(doc_id, {"name": "b"})
        assert await fs_storage.get_document(doc_id) == {"name": "b"}

        await fs_storage.delete_document(doc_id)
        with pytest.raises(DocumentNotFound):
            await fs_storage.get_document(doc_id)

    @pytest.mark.asyncio
    async def test_update_unknown_document(self, fs_storage: FilesystemStorage) -> None:
        with pytest.raises(DocumentNotFound):
            await fs_storage.update_document("f" * 32, {})

    @pytest.mark.asyncio
    async def test_list_documents(self, fs_storage: FilesystemStorage) -> None:
        a = await fs_storage.put_document("matrix", {"name": "a"})
        b = await fs_storage.put_document("matrix", {"name": "b"})
        await fs_storage.put_document("image", {"name": "c"})

        listed = dict(await fs_storage.list_documents("matrix"))

        assert listed == {a: {"name": "a"}, b: {"name": "b"}}
        assert await fs_storage.list_documents("nothing") == []

    @pytest.mark.asyncio
    async def test_corrupt_document(self, fs_storage: FilesystemStorage) -> None:
        doc_id = await fs_storage.put_document("image", {"name": "a"})
        (fs_storage.root / "documents" / "image" / f"{doc_id}.json").write_text("{oops")

        with pytest.raises(StorageFailure, match="not valid JSON"):
            await fs_storage.get_document(doc_id)

    @pytest.mark.asyncio
    async def test_unserialisable_document(self, fs_storage: FilesystemStorage) -> None:
        with pytest.raises(StorageFailure, match="JSON"):
            await fs_storage.put_document("image", {"value": object()})

    @pytest.mark.asyncio
    async def test_invalid_kind(self, fs_storage: FilesystemStorage) -> None:
        with pytest.raises(ValueError, match="kind"):
            await fs_storage.put_document("../escape", {})

    @pytest.mark.asyncio
    async def test_os_error_becomes_storage_failure(self, tmp_path: Path) -> None:
        blocker = tmp_path / "file"
        blocker.write_text("not a directory")
        storage = FilesystemStorage(blocker)

        with pytest.raises(StorageFailure, match="Filesystem error"):
            await storage.put_blob(b"data")


class TestCreateStorage:
    """Tests for create_storage."""

    def test_memory_backend(self) -> None:
        settings = Settings(_env_file=None, STORAGE_BACKEND="memory")  # type: ignore[call-arg]
        assert isinstance(create_storage(settings), InMemoryStorage)

    def test_filesystem_backend(self, tmp_path: Path) -> None:
        settings = Settings(
            _env_file=None,  # type: ignore[call-arg]
            STORAGE_BACKEND="filesystem",
            STORAGE_DIR=str(tmp_path),
        )
        storage = create_storage(settings)
        assert isinstance(storage, FilesystemStorage)
        assert storage.root == tmp_path

    def test_filesystem_backend_requires_dir(self) -> None:
        settings = Settings(
            _env_file=None,  # type: ignore[call-arg]
            STORAGE_BACKEND="filesystem",
            STORAGE_DIR="",
        )
        with pytest.raises(ConfigError):
            create_storage(settings)

    def test_unknown_backend(self) -> None:
        settings = Settings(_env_file=None, STORAGE_BACKEND="mongo")  # type: ignore[call-arg]
        with pytest.raises(ValueError, match="Unknown storage backend"):
            create_storage(settings)
