"""Persistence interface consumed by the services.

Backends store two things: opaque binary blobs (encoded originals and
compressed tiles) and JSON-compatible documents grouped by kind
("image", "matrix"). Every method is a coroutine so that backends may
block on I/O without stalling the event loop; callers always await.
"""

from __future__ import annotations

from typing import Any, Protocol

Fields = dict[str, Any]


class StorageBackend(Protocol):
    """Protocol defining the document + blob storage interface.

    This protocol allows for dependency injection and testing with
    in-memory implementations.
    """

    async def put_blob(self, data: bytes) -> str:
        """Store bytes and return a new blob id.

        Raises:
            StorageFailure: If the backend cannot store the blob.
        """
        ...

    async def get_blob(self, blob_id: str) -> bytes:
        """Return the bytes for a blob id.

        Raises:
            BlobNotFound: If the id is unknown.
            StorageFailure: If the backend cannot read the blob.
        """
        ...

    async def delete_blob(self, blob_id: str) -> None:
        """Delete a blob.

        Raises:
            BlobNotFound: If the id is unknown.
            StorageFailure: If the backend cannot delete the blob.
        """
        ...

    async def put_document(self, kind: str, fields: Fields) -> str:
        """Store a document of the given kind and return its id."""
        ...

    async def get_document(self, doc_id: str) -> Fields:
        """Return the fields of a document.

        Raises:
            DocumentNotFound: If the id is unknown.
        """
        ...

    async def update_document(self, doc_id: str, fields: Fields) -> None:
        """Replace the fields of an existing document in a single step.

        Raises:
            DocumentNotFound: If the id is unknown.
        """
        ...

    async def delete_document(self, doc_id: str) -> None:
        """Delete a document.

        Raises:
            DocumentNotFound: If the id is unknown.
        """
        ...

    async def list_documents(self, kind: str) -> list[tuple[str, Fields]]:
        """Return (id, fields) for every document of a kind."""
        ...
