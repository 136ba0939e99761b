"""
Firestore adapter for the versioned document store.

A document's ``update_time`` is its version. Compare-and-set writes use a
``last_update_time`` precondition, which Firestore enforces server-side.
Any other API failure surfaces as StorageError.
"""

import logging
from contextlib import contextmanager
from typing import Any, Iterator, Optional

from google.api_core import exceptions as gcp_exceptions
from google.cloud import firestore
from google.cloud.firestore_v1.base_query import FieldFilter

from recruit_engine.errors import ConcurrentUpdateError, DocumentNotFoundError, StorageError
from recruit_engine.persistence.document_store import DocumentStore, VersionedDocument

logger = logging.getLogger(__name__)


@contextmanager
def _storage_errors(path: str) -> Iterator[None]:
    try:
        yield
    except gcp_exceptions.GoogleAPIError as exc:
        logger.error("Firestore call on %s failed: %s", path, exc)
        raise StorageError(f"Firestore call on {path} failed") from exc


class FirestoreDocumentStore(DocumentStore):
    """DocumentStore backed by ``google.cloud.firestore.AsyncClient``."""

    def __init__(self, client: Optional[firestore.AsyncClient] = None) -> None:
        self._client = client or firestore.AsyncClient()

    async def get(self, path: str) -> Optional[VersionedDocument]:
        with _storage_errors(path):
            snapshot = await self._client.document(path).get()
        if not snapshot.exists:
            return None
        return VersionedDocument(snapshot.id, snapshot.to_dict() or {}, snapshot.update_time)

    async def create(self, path: str, data: dict[str, Any]) -> Any:
        with _storage_errors(path):
            try:
                result = await self._client.document(path).create(data)
            except gcp_exceptions.AlreadyExists:
                raise ConcurrentUpdateError(f"Document already exists: {path}") from None
        return result.update_time

    async def replace(self, path: str, data: dict[str, Any], expected_version: Any) -> Any:
        option = self._client.write_option(last_update_time=expected_version)
        with _storage_errors(path):
            try:
                result = await self._client.document(path).update(data, option=option)
            except gcp_exceptions.NotFound:
                raise DocumentNotFoundError(path) from None
            except gcp_exceptions.FailedPrecondition:
                logger.debug("Precondition failed on %s", path)
                raise ConcurrentUpdateError(f"{path} changed since it was read") from None
        return result.update_time

    async def put(self, path: str, data: dict[str, Any]) -> Any:
        with _storage_errors(path):
            result = await self._client.document(path).set(data)
        return result.update_time

    async def list_collection(self, collection: str) -> list[VersionedDocument]:
        docs = []
        with _storage_errors(collection):
            async for snapshot in self._client.collection(collection).stream():
                docs.append(
                    VersionedDocument(snapshot.id, snapshot.to_dict() or {}, snapshot.update_time)
                )
        return docs

    async def query(
        self, collection: str, field: str, value: Any, limit: Optional[int] = None
    ) -> list[VersionedDocument]:
        query = self._client.collection(collection).where(filter=FieldFilter(field, "==", value))
        if limit is not None:
            query = query.limit(limit)
        docs = []
        with _storage_errors(collection):
            async for snapshot in query.stream():
                docs.append(
                    VersionedDocument(snapshot.id, snapshot.to_dict() or {}, snapshot.update_time)
                )
        return docs
