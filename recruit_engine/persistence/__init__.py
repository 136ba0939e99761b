from recruit_engine.persistence.document_store import (
    DocumentStore,
    InMemoryDocumentStore,
    VersionedDocument,
)

__all__ = [
    "DocumentStore",
    "InMemoryDocumentStore",
    "VersionedDocument",
    "build_document_store",
]


def build_document_store(backend: str) -> DocumentStore:
    """Create the configured backend. Firestore is imported only when selected."""
    if backend == "firestore":
        from recruit_engine.persistence.firestore_store import FirestoreDocumentStore

        return FirestoreDocumentStore()
    return InMemoryDocumentStore()
