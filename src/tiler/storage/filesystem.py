"""Directory-backed storage backend.

Layout under the root directory::

    root/
        blobs/<id>
        documents/<kind>/<id>.json

Every write goes to a temporary sibling first and is moved into place
with ``Path.replace``, so a reader never sees a half-written file. The
blocking file operations run in worker threads.
"""

from __future__ import annotations

import asyncio
import json
import re
import uuid
from pathlib import Path

from tiler.exceptions import BlobNotFound, DocumentNotFound, StorageFailure
from tiler.storage.protocol import Fields
from tiler.utils.logging import get_logger

logger = get_logger(__name__)

_ID_PATTERN = re.compile(r"^[0-9a-f]{32}$")
_KIND_PATTERN = re.compile(r"^[a-z][a-z0-9_]*$")


def _write_atomic(path: Path, data: bytes) -> None:
    temp_path = path.with_name(f".{path.name}.{uuid.uuid4().hex}.tmp")
    try:
        temp_path.write_bytes(data)
        temp_path.replace(path)
    except OSError:
        temp_path.unlink(missing_ok=True)
        raise


class FilesystemStorage:
    """StorageBackend that keeps blobs and JSON documents on disk."""

    def __init__(self, root: Path | str) -> None:
        """Initialize storage rooted at a directory.

        The directory tree is created on first use.

        Args:
            root: Storage root directory.
        """
        self.root = Path(root)
        self._blob_dir = self.root / "blobs"
        self._doc_dir = self.root / "documents"

    def _ensure_dirs(self) -> None:
        self._blob_dir.mkdir(parents=True, exist_ok=True)
        self._doc_dir.mkdir(parents=True, exist_ok=True)

    def _blob_path(self, blob_id: str) -> Path | None:
        if not _ID_PATTERN.match(blob_id):
            return None
        return self._blob_dir / blob_id

    def _find_document(self, doc_id: str) -> Path | None:
        if not _ID_PATTERN.match(doc_id) or not self._doc_dir.exists():
            return None
        for kind_dir in self._doc_dir.iterdir():
            candidate = kind_dir / f"{doc_id}.json"
            if candidate.is_file():
                return candidate
        return None

    # --- Blobs ---------------------------------------------------------------

    def _put_blob(self, data: bytes) -> str:
        self._ensure_dirs()
        blob_id = uuid.uuid4().hex
        _write_atomic(self._blob_dir / blob_id, bytes(data))
        logger.debug("Blob stored", blob_id=blob_id, nbytes=len(data))
        return blob_id

    def _get_blob(self, blob_id: str) -> bytes:
        path = self._blob_path(blob_id)
        if path is None:
            raise BlobNotFound("Blob not found", blob_id=blob_id)
        try:
            return path.read_bytes()
        except FileNotFoundError:
            raise BlobNotFound("Blob not found", blob_id=blob_id) from None

    def _delete_blob(self, blob_id: str) -> None:
        path = self._blob_path(blob_id)
        if path is None:
            raise BlobNotFound("Blob not found", blob_id=blob_id)
        try:
            path.unlink()
        except FileNotFoundError:
            raise BlobNotFound("Blob not found", blob_id=blob_id) from None
        logger.debug("Blob deleted", blob_id=blob_id)

    # --- Documents -----------------------------------------------------------

    def _put_document(self, kind: str, fields: Fields) -> str:
        if not _KIND_PATTERN.match(kind):
            raise ValueError(f"Invalid document kind: {kind!r}")
        self._ensure_dirs()
        kind_dir = self._doc_dir / kind
        kind_dir.mkdir(exist_ok=True)
        doc_id = uuid.uuid4().hex
        _write_atomic(kind_dir / f"{doc_id}.json", self._dump(fields, doc_id))
        logger.debug("Document stored", doc_id=doc_id, kind=kind)
        return doc_id

    def _get_document(self, doc_id: str) -> Fields:
        path = self._find_document(doc_id)
        if path is None:
            raise DocumentNotFound("Document not found", doc_id=doc_id)
        try:
            text = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            raise DocumentNotFound("Document not found", doc_id=doc_id) from None
        return self._load(text, doc_id)

    def _update_document(self, doc_id: str, fields: Fields) -> None:
        path = self._find_document(doc_id)
        if path is None:
            raise DocumentNotFound("Document not found", doc_id=doc_id)
        _write_atomic(path, self._dump(fields, doc_id))
        logger.debug("Document updated", doc_id=doc_id)

    def _delete_document(self, doc_id: str) -> None:
        path = self._find_document(doc_id)
        if path is None:
            raise DocumentNotFound("Document not found", doc_id=doc_id)
        try:
            path.unlink()
        except FileNotFoundError:
            raise DocumentNotFound("Document not found", doc_id=doc_id) from None
        logger.debug("Document deleted", doc_id=doc_id)

    def _list_documents(self, kind: str) -> list[tuple[str, Fields]]:
        kind_dir = self._doc_dir / kind
        if not _KIND_PATTERN.match(kind) or not kind_dir.is_dir():
            return []
        docs = []
        for path in sorted(kind_dir.glob("*.json")):
            doc_id = path.stem
            try:
                text = path.read_text(encoding="utf-8")
            except FileNotFoundError:
                # Deleted between glob and read
                continue
            docs.append((doc_id, self._load(text, doc_id)))
        return docs

    @staticmethod
    def _dump(fields: Fields, doc_id: str) -> bytes:
        try:
            return json.dumps(fields, indent=2).encode("utf-8")
        except (TypeError, ValueError) as e:
            raise StorageFailure(f"Document is not JSON-serialisable: {e}", doc_id=doc_id) from e

    @staticmethod
    def _load(text: str, doc_id: str) -> Fields:
        try:
            fields = json.loads(text)
        except json.JSONDecodeError as e:
            raise StorageFailure(f"Stored document is not valid JSON: {e}", doc_id=doc_id) from e
        if not isinstance(fields, dict):
            raise StorageFailure("Stored document is not a JSON object", doc_id=doc_id)
        return fields

    # --- Async surface -------------------------------------------------------

    async def _run(self, func, *args):
        try:
            return await asyncio.to_thread(func, *args)
        except OSError as e:
            raise StorageFailure(f"Filesystem error: {e}", root=str(self.root)) from e

    async def put_blob(self, data: bytes) -> str:
        return await self._run(self._put_blob, data)

    async def get_blob(self, blob_id: str) -> bytes:
        return await self._run(self._get_blob, blob_id)

    async def delete_blob(self, blob_id: str) -> None:
        await self._run(self._delete_blob, blob_id)

    async def put_document(self, kind: str, fields: Fields) -> str:
        return await self._run(self._put_document, kind, fields)

    async def get_document(self, doc_id: str) -> Fields:
        return await self._run(self._get_document, doc_id)

    async def update_document(self, doc_id: str, fields: Fields) -> None:
        await self._run(self._update_document, doc_id, fields)

    async def delete_document(self, doc_id: str) -> None:
        await self._run(self._delete_document, doc_id)

    async def list_documents(self, kind: str) -> list[tuple[str, Fields]]:
        return await self._run(self._list_documents, kind)
