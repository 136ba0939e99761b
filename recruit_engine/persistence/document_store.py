"""
Versioned document store abstraction.

Every document carries an opaque version. Writes other than the initial
create are compare-and-set against the version the caller read, so two
deliveries racing on the same record cannot silently overwrite each other.
"""

import asyncio
import copy
import logging
from abc import ABC, abstractmethod
from typing import Any, NamedTuple, Optional

from recruit_engine.errors import ConcurrentUpdateError, DocumentNotFoundError

logger = logging.getLogger(__name__)


class VersionedDocument(NamedTuple):
    id: str
    data: dict[str, Any]
    version: Any


class DocumentStore(ABC):
    """Minimal keyed document storage used by every repository."""

    @abstractmethod
    async def get(self, path: str) -> Optional[VersionedDocument]:
        """Return the document at ``path`` or None."""

    @abstractmethod
    async def create(self, path: str, data: dict[str, Any]) -> Any:
        """Create a new document. Raises ConcurrentUpdateError if it already exists."""

    @abstractmethod
    async def replace(self, path: str, data: dict[str, Any], expected_version: Any) -> Any:
        """
        Overwrite a document only if its version still equals ``expected_version``.

        Raises:
            ConcurrentUpdateError: If another writer got there first.
            DocumentNotFoundError: If the document does not exist.
        """

    @abstractmethod
    async def put(self, path: str, data: dict[str, Any]) -> Any:
        """Unconditional write, used for seeding and administrative imports."""

    @abstractmethod
    async def list_collection(self, collection: str) -> list[VersionedDocument]:
        """Return every document directly under ``collection``."""

    @abstractmethod
    async def query(
        self, collection: str, field: str, value: Any, limit: Optional[int] = None
    ) -> list[VersionedDocument]:
        """Return documents under ``collection`` whose ``field`` equals ``value``."""


def _doc_id(path: str) -> str:
    return path.rsplit("/", 1)[-1]


class InMemoryDocumentStore(DocumentStore):
    """
    Process-local store with integer versions.

    Used by tests and the development server. All mutations happen under a
    single asyncio lock so compare-and-set is atomic within the event loop.
    """

    def __init__(self) -> None:
        self._docs: dict[str, tuple[dict[str, Any], int]] = {}
        self._lock = asyncio.Lock()

    async def get(self, path: str) -> Optional[VersionedDocument]:
        entry = self._docs.get(path)
        if entry is None:
            return None
        data, version = entry
        return VersionedDocument(_doc_id(path), copy.deepcopy(data), version)

    async def create(self, path: str, data: dict[str, Any]) -> int:
        async with self._lock:
            if path in self._docs:
                raise ConcurrentUpdateError(f"Document already exists: {path}")
            self._docs[path] = (copy.deepcopy(data), 1)
            return 1

    async def replace(self, path: str, data: dict[str, Any], expected_version: Any) -> int:
        async with self._lock:
            entry = self._docs.get(path)
            if entry is None:
                raise DocumentNotFoundError(path)
            current = entry[1]
            if current != expected_version:
                logger.debug(
                    "Version mismatch on %s: expected %s, found %s",
                    path, expected_version, current,
                )
                raise ConcurrentUpdateError(
                    f"{path} changed (expected version {expected_version}, found {current})"
                )
            self._docs[path] = (copy.deepcopy(data), current + 1)
            return current + 1

    async def put(self, path: str, data: dict[str, Any]) -> int:
        async with self._lock:
            version = self._docs[path][1] + 1 if path in self._docs else 1
            self._docs[path] = (copy.deepcopy(data), version)
            return version

    async def list_collection(self, collection: str) -> list[VersionedDocument]:
        prefix = collection.rstrip("/") + "/"
        docs = []
        for path in sorted(self._docs):
            if path.startswith(prefix) and "/" not in path[len(prefix):]:
                data, version = self._docs[path]
                docs.append(VersionedDocument(_doc_id(path), copy.deepcopy(data), version))
        return docs

    async def query(
        self, collection: str, field: str, value: Any, limit: Optional[int] = None
    ) -> list[VersionedDocument]:
        docs = await self.list_collection(collection)
        matches = [doc for doc in docs if doc.data.get(field) == value]
        return matches[:limit] if limit is not None else matches

    def clear(self) -> None:
        """Drop all documents. Used by test fixtures for isolation."""
        self._docs.clear()
