"""Document persistence abstraction for the response ledger.

Documents are JSON-compatible dicts addressed by (collection, id). A single
document write or delete is atomic; nothing spanning several documents is.

Collections:
    assessments                          authored assessments
    allResponses                         global response copies
    userResponses/{studentId}/responses  scoped response copies
    userAnalytics                        cached weakness analysis snapshots
"""
import copy
import threading
from collections import defaultdict
from typing import Any, Dict, List, Optional, Tuple

from app.core.config import settings
from app.core.errors import StoreUnavailable
from app.core.logging import get_logger

logger = get_logger(__name__)

ASSESSMENTS = "assessments"
GLOBAL_RESPONSES = "allResponses"
USER_RESPONSES = "userResponses"
USER_ANALYTICS = "userAnalytics"

Document = Dict[str, Any]


def scoped_collection(student_id: str) -> str:
    """Collection path of one student's scoped responses."""
    return f"{USER_RESPONSES}/{student_id}/responses"


def partition_of(collection: str) -> Optional[Tuple[str, str]]:
    """Return (parent, partition id) for a partitioned collection path."""
    parts = collection.split("/")
    if len(parts) == 3:
        return parts[0], parts[1]
    return None


class DocumentStore:
    """Interface implemented by the Redis and in-memory backends."""

    def get(self, collection: str, doc_id: str) -> Optional[Document]:
        raise NotImplementedError

    def set(self, collection: str, doc_id: str, data: Document) -> None:
        raise NotImplementedError

    def update(self, collection: str, doc_id: str, patch: Document) -> Optional[Document]:
        """Shallow-merge ``patch`` into an existing document.

        Returns the merged document, or None when the document does not exist
        (nothing is created).
        """
        raise NotImplementedError

    def delete(self, collection: str, doc_id: str) -> bool:
        """Delete a document. Deleting a missing document is a no-op."""
        raise NotImplementedError

    def list(self, collection: str) -> List[Tuple[str, Document]]:
        raise NotImplementedError

    def list_partitions(self, parent: str) -> List[str]:
        """Ids of the partitions that have ever been written under ``parent``."""
        raise NotImplementedError

    def ping(self) -> bool:
        return True


class MemoryDocumentStore(DocumentStore):
    """Process-local store used for tests and as the development fallback."""

    def __init__(self):
        self._collections: Dict[str, Dict[str, Document]] = defaultdict(dict)
        self._partitions: Dict[str, set] = defaultdict(set)
        self._lock = threading.Lock()

    def get(self, collection: str, doc_id: str) -> Optional[Document]:
        with self._lock:
            data = self._collections.get(collection, {}).get(doc_id)
            return copy.deepcopy(data) if data is not None else None

    def set(self, collection: str, doc_id: str, data: Document) -> None:
        with self._lock:
            self._collections[collection][doc_id] = copy.deepcopy(data)
            partition = partition_of(collection)
            if partition:
                self._partitions[partition[0]].add(partition[1])

    def update(self, collection: str, doc_id: str, patch: Document) -> Optional[Document]:
        with self._lock:
            current = self._collections.get(collection, {}).get(doc_id)
            if current is None:
                return None
            merged = {**current, **copy.deepcopy(patch)}
            self._collections[collection][doc_id] = merged
            return copy.deepcopy(merged)

    def delete(self, collection: str, doc_id: str) -> bool:
        with self._lock:
            return self._collections.get(collection, {}).pop(doc_id, None) is not None

    def list(self, collection: str) -> List[Tuple[str, Document]]:
        with self._lock:
            docs = self._collections.get(collection, {})
            return [(doc_id, copy.deepcopy(data)) for doc_id, data in docs.items()]

    def list_partitions(self, parent: str) -> List[str]:
        with self._lock:
            return sorted(self._partitions.get(parent, set()))


# Lazily-built process-wide store
_store: Optional[DocumentStore] = None


def get_document_store() -> DocumentStore:
    """Get or create the configured document store.

    With ``STORE_BACKEND=redis`` an unreachable Redis falls back to the
    in-memory store outside production and raises StoreUnavailable in
    production.
    """
    global _store

    if _store is not None:
        return _store

    if settings.store_backend == "memory":
        logger.info("Using in-memory document store")
        _store = MemoryDocumentStore()
        return _store

    from app.infrastructure.redis import RedisDocumentStore, get_redis_client

    client = get_redis_client()
    if client is None:
        if settings.environment == "production":
            raise StoreUnavailable("Redis document store is unreachable")
        logger.warning("Redis unavailable, falling back to in-memory document store")
        _store = MemoryDocumentStore()
    else:
        _store = RedisDocumentStore(client, key_prefix=settings.redis_key_prefix)

    return _store


def reset_document_store() -> None:
    """Forget the cached store (tests and reconfiguration)."""
    global _store
    _store = None
