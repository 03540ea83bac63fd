"""Redis-backed document store.

Each document is a JSON string at ``{prefix}doc:{collection}:{id}``. Every
collection keeps an index set of its ids at ``{prefix}idx:{collection}`` and
partitioned collections (``userResponses/{studentId}/responses``) register
their partition id in ``{prefix}partitions:{parent}``.

A document write or delete and its index maintenance go through one MULTI
pipeline, so a single document is never half-written. Nothing spans
documents.

For Cloud Run with Memorystore:
- Set REDIS_HOST to the Memorystore instance IP
- Set REDIS_PASSWORD if authentication is enabled
"""
import json
from contextlib import contextmanager
from typing import List, Optional, Tuple

import redis

from app.core.config import settings
from app.core.errors import StoreUnavailable
from app.core.logging import get_logger
from app.infrastructure.document_store import Document, DocumentStore, partition_of

logger = get_logger(__name__)

# Redis connection pool (lazy initialization)
_redis_pool: Optional[redis.ConnectionPool] = None
_redis_client: Optional[redis.Redis] = None


def get_redis_client(
    host: Optional[str] = None,
    port: Optional[int] = None,
    db: Optional[int] = None,
    password: Optional[str] = None,
) -> Optional[redis.Redis]:
    """Get or create Redis client with connection pooling.

    Uses settings from environment variables if not explicitly provided.
    Returns None if Redis is not available so the caller can decide whether
    to fall back.
    """
    global _redis_pool, _redis_client

    host = host or settings.redis_host
    port = port or settings.redis_port
    db = db if db is not None else settings.redis_db
    password = password or settings.redis_password

    if _redis_client is None:
        logger.info(f"Initializing Redis connection pool: {host}:{port}")

        try:
            _redis_pool = redis.ConnectionPool(
                host=host,
                port=port,
                db=db,
                password=password,
                decode_responses=True,
                max_connections=50,
                socket_connect_timeout=5,
                socket_timeout=5,
            )

            _redis_client = redis.Redis(connection_pool=_redis_pool)

            _redis_client.ping()
            logger.info("Redis connection established successfully")

        except redis.ConnectionError as e:
            logger.error(f"Failed to connect to Redis: {e}", exc_info=True)
            _redis_client = None
            return None
        except Exception as e:
            logger.error(f"Redis initialization error: {e}", exc_info=True)
            _redis_client = None
            return None

    return _redis_client


@contextmanager
def _store_call(operation: str, collection: str):
    """Translate connectivity failures into StoreUnavailable."""
    try:
        yield
    except (redis.ConnectionError, redis.TimeoutError) as e:
        logger.error(
            f"Redis {operation} failed on {collection}: {e}",
            extra={"operation": operation, "collection": collection},
        )
        raise StoreUnavailable(f"Document store unreachable during {operation}") from e


class RedisDocumentStore(DocumentStore):
    """Document store on top of plain Redis strings and sets."""

    def __init__(self, redis_client: redis.Redis, key_prefix: str = "tracker:"):
        self.redis = redis_client
        self.key_prefix = key_prefix

    def _doc_key(self, collection: str, doc_id: str) -> str:
        return f"{self.key_prefix}doc:{collection}:{doc_id}"

    def _index_key(self, collection: str) -> str:
        return f"{self.key_prefix}idx:{collection}"

    def _partitions_key(self, parent: str) -> str:
        return f"{self.key_prefix}partitions:{parent}"

    def get(self, collection: str, doc_id: str) -> Optional[Document]:
        with _store_call("get", collection):
            raw = self.redis.get(self._doc_key(collection, doc_id))
        return json.loads(raw) if raw else None

    def set(self, collection: str, doc_id: str, data: Document) -> None:
        with _store_call("set", collection):
            pipe = self.redis.pipeline(transaction=True)
            pipe.set(self._doc_key(collection, doc_id), json.dumps(data, default=str))
            pipe.sadd(self._index_key(collection), doc_id)
            partition = partition_of(collection)
            if partition:
                pipe.sadd(self._partitions_key(partition[0]), partition[1])
            pipe.execute()

    def update(self, collection: str, doc_id: str, patch: Document) -> Optional[Document]:
        key = self._doc_key(collection, doc_id)
        merged: dict = {}

        def _apply(pipe):
            raw = pipe.get(key)
            if raw is None:
                merged.clear()
                return
            merged.clear()
            merged.update(json.loads(raw))
            merged.update(patch)
            pipe.multi()
            pipe.set(key, json.dumps(merged, default=str))

        with _store_call("update", collection):
            # WATCH/MULTI retries if the document changes between read and write
            self.redis.transaction(_apply, key)

        return dict(merged) if merged else None

    def delete(self, collection: str, doc_id: str) -> bool:
        with _store_call("delete", collection):
            pipe = self.redis.pipeline(transaction=True)
            pipe.delete(self._doc_key(collection, doc_id))
            pipe.srem(self._index_key(collection), doc_id)
            deleted, _ = pipe.execute()
        return bool(deleted)

    def list(self, collection: str) -> List[Tuple[str, Document]]:
        with _store_call("list", collection):
            doc_ids = sorted(self.redis.smembers(self._index_key(collection)))
            if not doc_ids:
                return []
            raws = self.redis.mget([self._doc_key(collection, d) for d in doc_ids])

        documents = []
        for doc_id, raw in zip(doc_ids, raws):
            if raw is None:
                logger.debug(f"Index entry without document: {collection}/{doc_id}")
                continue
            documents.append((doc_id, json.loads(raw)))
        return documents

    def list_partitions(self, parent: str) -> List[str]:
        with _store_call("list_partitions", parent):
            return sorted(self.redis.smembers(self._partitions_key(parent)))

    def ping(self) -> bool:
        try:
            return bool(self.redis.ping())
        except (redis.ConnectionError, redis.TimeoutError):
            return False
