"""In-process storage backend.

Keeps blobs and documents in dictionaries. Documents are deep-copied on
the way in and out, so callers never share mutable state with the store.
Used by tests and as the default backend for local runs.
"""

from __future__ import annotations

import copy
import uuid

from tiler.exceptions import BlobNotFound, DocumentNotFound
from tiler.storage.protocol import Fields


class InMemoryStorage:
    """Dictionary-backed StorageBackend."""

    def __init__(self) -> None:
        self._blobs: dict[str, bytes] = {}
        self._documents: dict[str, tuple[str, Fields]] = {}

    @staticmethod
    def _new_id() -> str:
        return uuid.uuid4().hex

    @property
    def blob_count(self) -> int:
        """Return number of stored blobs."""
        return len(self._blobs)

    @property
    def document_count(self) -> int:
        """Return number of stored documents."""
        return len(self._documents)

    async def put_blob(self, data: bytes) -> str:
        blob_id = self._new_id()
        self._blobs[blob_id] = bytes(data)
        return blob_id

    async def get_blob(self, blob_id: str) -> bytes:
        try:
            return self._blobs[blob_id]
        except KeyError:
            raise BlobNotFound("Blob not found", blob_id=blob_id) from None

    async def delete_blob(self, blob_id: str) -> None:
        if self._blobs.pop(blob_id, None) is None:
            raise BlobNotFound("Blob not found", blob_id=blob_id)

    async def put_document(self, kind: str, fields: Fields) -> str:
        doc_id = self._new_id()
        self._documents[doc_id] = (kind, copy.deepcopy(fields))
        return doc_id

    async def get_document(self, doc_id: str) -> Fields:
        try:
            _, fields = self._documents[doc_id]
        except KeyError:
            raise DocumentNotFound("Document not found", doc_id=doc_id) from None
        return copy.deepcopy(fields)

    async def update_document(self, doc_id: str, fields: Fields) -> None:
        if doc_id not in self._documents:
            raise DocumentNotFound("Document not found", doc_id=doc_id)
        kind, _ = self._documents[doc_id]
        self._documents[doc_id] = (kind, copy.deepcopy(fields))

    async def delete_document(self, doc_id: str) -> None:
        if self._documents.pop(doc_id, None) is None:
            raise DocumentNotFound("Document not found", doc_id=doc_id)

    async def list_documents(self, kind: str) -> list[tuple[str, Fields]]:
        return [
            (doc_id, copy.deepcopy(fields))
            for doc_id, (doc_kind, fields) in self._documents.items()
            if doc_kind == kind
        ]
