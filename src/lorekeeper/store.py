"""
Campaign-scoped memory storage on top of ChromaDB.

One collection holds every campaign.  Each record's metadata carries its
``campaign_id`` and every read filters on it, so campaigns never see each
other's memories.  Embeddings are always supplied by the caller; the
collection is created without an embedding function and never embeds
anything itself.
"""

from __future__ import annotations

import json
import threading
from collections.abc import Iterable, Sequence
from datetime import datetime, timezone
from typing import Any

import chromadb

from .embeddings import is_finite_vector
from .errors import DimensionMismatchError, NotFoundError, OwnershipError, ValidationError
from .intelligence import MAX_IMPORTANCE, MIN_IMPORTANCE
from .log import get_logger
from .models import Memory, MemoryType

logger = get_logger(__name__)


_RECORD_FIELDS = ["embeddings", "documents", "metadatas"]


class MemoryStore:
    """
    Durable memory storage backed by a ChromaDB collection.

    Writes for one campaign are serialized by a per-campaign lock so that
    ownership checks and the write they guard happen together.  Reads take
    no lock.  Different campaigns never contend.

    Parameters
    ----------
    path:
        Filesystem path for the ChromaDB persistent store.
    collection_name:
        Name of the ChromaDB collection to use.
    dimension:
        Embedding dimension every record must have.  When omitted it is
        learned from the first record in the collection.
    """

    def __init__(
        self,
        path: str = "./chroma_db",
        collection_name: str = "memories",
        dimension: int | None = None,
        _client: chromadb.ClientAPI | None = None,
    ) -> None:
        self.client = _client or chromadb.PersistentClient(path=path)
        self.collection = self.client.get_or_create_collection(
            name=collection_name,
            embedding_function=None,
            metadata={"hnsw:space": "cosine"},
        )
        self._dimension = dimension
        if dimension is not None:
            stored = self._stored_dimension()
            if stored is not None and stored != dimension:
                raise DimensionMismatchError(stored, dimension)
        self._locks: dict[int, threading.RLock] = {}
        self._locks_guard = threading.Lock()

    # ------------------------------------------------------------------
    # Write operations
    # ------------------------------------------------------------------

    def create(self, memory: Memory) -> str:
        """
        Persist *memory* in one write: content, summary, embedding and
        metadata land together or not at all.

        Creating a record whose id already exists in the same campaign is
        a no-op that returns the id, which makes deterministic ids
        idempotent.
        """
        self.create_if_absent(memory)
        return memory.id

    def create_if_absent(self, memory: Memory) -> bool:
        """Like ``create`` but return whether this call wrote the record."""
        self._validate_new(memory)
        with self.lock_for(memory.campaign_id):
            existing = self._fetch_metadata(memory.id)
            if existing is not None:
                if existing.get("campaign_id") != memory.campaign_id:
                    raise OwnershipError(memory.id, memory.campaign_id)
                logger.debug("memory_exists", memory_id=memory.id, campaign_id=memory.campaign_id)
                return False

            self.collection.add(
                ids=[memory.id],
                embeddings=[list(memory.embedding)],
                documents=[memory.content],
                metadatas=[_to_metadata(memory)],
            )
            if self._dimension is None:
                self._dimension = memory.dimension

        logger.info(
            "memory_created",
            memory_id=memory.id,
            campaign_id=memory.campaign_id,
            memory_type=memory.memory_type.value,
        )
        return True

    def delete(self, memory_id: str, campaign_id: int) -> None:
        """Delete a memory.  Once this returns no read can see it."""
        with self.lock_for(campaign_id):
            self._check_owner(memory_id, campaign_id)
            self.collection.delete(ids=[memory_id])
        logger.info("memory_deleted", memory_id=memory_id, campaign_id=campaign_id)

    def update_importance(self, memory_id: str, campaign_id: int, boost: int) -> Memory:
        """
        Set the importance boost of a memory, the only mutable field.

        Only metadata is written; content and embedding are never passed
        to ChromaDB on this path.  Concurrent updates are last-writer-wins.
        """
        if not _is_int(boost) or not MIN_IMPORTANCE <= boost <= MAX_IMPORTANCE:
            raise ValidationError(
                f"Importance must be an integer between {MIN_IMPORTANCE} and {MAX_IMPORTANCE}",
                details={"importance_boost": boost},
            )
        with self.lock_for(campaign_id):
            memory = self.get_by_id(memory_id, campaign_id)
            if memory.importance_boost != boost:
                self.collection.update(
                    ids=[memory_id],
                    metadatas=[_to_metadata(memory.with_importance(boost))],
                )
        logger.info(
            "memory_importance_updated",
            memory_id=memory_id,
            campaign_id=campaign_id,
            importance_boost=boost,
        )
        return memory.with_importance(boost)

    # ------------------------------------------------------------------
    # Read operations
    # ------------------------------------------------------------------

    def get_by_id(self, memory_id: str, campaign_id: int) -> Memory:
        """Fetch one memory, enforcing that it belongs to *campaign_id*."""
        check_campaign_id(campaign_id)
        result = self.collection.get(ids=[memory_id], include=_RECORD_FIELDS)
        memories = _memories_from_result(result)
        if not memories:
            raise NotFoundError(memory_id)
        memory = memories[0]
        if memory.campaign_id != campaign_id:
            raise OwnershipError(memory_id, campaign_id)
        return memory

    def get_all(
        self,
        campaign_id: int,
        memory_types: Iterable[MemoryType | str] | None = None,
    ) -> list[Memory]:
        """Return every memory of a campaign, newest first."""
        result = self.collection.get(
            where=_campaign_filter(campaign_id, memory_types),
            include=_RECORD_FIELDS,
        )
        memories = _memories_from_result(result)
        memories.sort(key=lambda m: m.created_at, reverse=True)
        return memories

    def nearest(
        self,
        campaign_id: int,
        query_vector: Sequence[float],
        n_results: int,
        memory_types: Iterable[MemoryType | str] | None = None,
    ) -> list[Memory]:
        """
        Approximate nearest neighbours from ChromaDB's HNSW index.

        Used to pre-select candidates for very large campaigns; order of
        the returned list is not meaningful.
        """
        available = self.count(campaign_id)
        n = min(n_results, available)
        if n == 0:
            return []
        result = self.collection.query(
            query_embeddings=[list(query_vector)],
            n_results=n,
            where=_campaign_filter(campaign_id, memory_types),
            include=_RECORD_FIELDS,
        )
        flat = {key: (result.get(key) or [[]])[0] for key in ("ids", "documents", "metadatas")}
        embeddings = result.get("embeddings")
        flat["embeddings"] = embeddings[0] if embeddings is not None else None
        return _memories_from_result(flat)

    def count(self, campaign_id: int) -> int:
        """Return the number of memories stored for a campaign."""
        result = self.collection.get(where=_campaign_filter(campaign_id), include=[])
        return len(result["ids"])

    def exists(self, memory_id: str) -> bool:
        return self._fetch_metadata(memory_id) is not None

    def source_ids(self, campaign_id: int, source_table: str) -> set[str]:
        """Ids of the source entries already represented as memories."""
        result = self.collection.get(
            where={"$and": [{"campaign_id": campaign_id}, {"source_table": source_table}]},
            include=["metadatas"],
        )
        return {
            str(meta["source_id"])
            for meta in (result.get("metadatas") or [])
            if meta and meta.get("source_id") is not None
        }

    @property
    def dimension(self) -> int | None:
        """The embedding dimension records must have, if known yet."""
        if self._dimension is None:
            self._dimension = self._stored_dimension()
        return self._dimension

    def lock_for(self, campaign_id: int) -> threading.RLock:
        """Return the write lock of a campaign."""
        check_campaign_id(campaign_id)
        with self._locks_guard:
            lock = self._locks.get(campaign_id)
            if lock is None:
                lock = self._locks[campaign_id] = threading.RLock()
            return lock

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _stored_dimension(self) -> int | None:
        result = self.collection.get(limit=1, include=["embeddings"])
        embeddings = result.get("embeddings")
        if embeddings is not None and len(embeddings) > 0:
            return len(embeddings[0])
        return None

    def _validate_new(self, memory: Memory) -> None:
        check_campaign_id(memory.campaign_id)
        if not memory.content or not memory.content.strip():
            raise ValidationError("Memory content must not be empty")
        if not memory.embedding:
            raise ValidationError("Memory has no embedding")
        if not is_finite_vector(memory.embedding):
            raise ValidationError("Memory embedding contains non-numeric values")
        expected = self.dimension
        if expected is not None and memory.dimension != expected:
            raise DimensionMismatchError(expected, memory.dimension)
        if not _is_int(memory.importance_boost) or not (
            MIN_IMPORTANCE <= memory.importance_boost <= MAX_IMPORTANCE
        ):
            raise ValidationError(
                f"Importance must be an integer between {MIN_IMPORTANCE} and {MAX_IMPORTANCE}",
                details={"importance_boost": memory.importance_boost},
            )

    def _fetch_metadata(self, memory_id: str) -> dict[str, Any] | None:
        result = self.collection.get(ids=[memory_id], include=["metadatas"])
        if not result["ids"]:
            return None
        return dict((result.get("metadatas") or [{}])[0] or {})

    def _check_owner(self, memory_id: str, campaign_id: int) -> None:
        meta = self._fetch_metadata(memory_id)
        if meta is None:
            raise NotFoundError(memory_id)
        if meta.get("campaign_id") != campaign_id:
            raise OwnershipError(memory_id, campaign_id)


# ---------------------------------------------------------------------------
# Record <-> Memory conversion
# ---------------------------------------------------------------------------


def _to_metadata(memory: Memory) -> dict[str, Any]:
    meta: dict[str, Any] = {
        "campaign_id": memory.campaign_id,
        "memory_type": memory.memory_type.value,
        "importance_boost": memory.importance_boost,
        "created_at": memory.created_at.timestamp(),
        "tags": json.dumps(sorted(memory.tags)),
    }
    # ChromaDB metadata cannot hold None.
    optional = {
        "summary": memory.summary,
        "session_number": memory.session_number,
        "turn_number": memory.turn_number,
        "source_table": memory.source_table,
        "source_id": memory.source_id,
    }
    meta.update({k: v for k, v in optional.items() if v is not None})
    return meta


def _memories_from_result(result: dict[str, Any]) -> list[Memory]:
    ids = result.get("ids") or []
    docs = result.get("documents") or [None] * len(ids)
    metas = result.get("metadatas") or [{}] * len(ids)
    embeddings = result.get("embeddings")
    if embeddings is None:
        embeddings = [()] * len(ids)

    memories = []
    for i, mem_id in enumerate(ids):
        meta = metas[i] or {}
        memories.append(
            Memory(
                id=mem_id,
                campaign_id=int(meta["campaign_id"]),
                memory_type=MemoryType(meta.get("memory_type", "other")),
                content=docs[i] or "",
                embedding=tuple(float(x) for x in embeddings[i]),
                summary=meta.get("summary"),
                session_number=meta.get("session_number"),
                turn_number=meta.get("turn_number"),
                tags=frozenset(json.loads(meta.get("tags") or "[]")),
                importance_boost=int(meta.get("importance_boost", 0)),
                created_at=datetime.fromtimestamp(float(meta.get("created_at", 0.0)), tz=timezone.utc),
                source_table=meta.get("source_table"),
                source_id=meta.get("source_id"),
            )
        )
    return memories


def _campaign_filter(
    campaign_id: int,
    memory_types: Iterable[MemoryType | str] | None = None,
) -> dict[str, Any]:
    check_campaign_id(campaign_id)
    where: dict[str, Any] = {"campaign_id": campaign_id}
    if memory_types:
        values = sorted({MemoryType(t).value for t in memory_types})
        where = {"$and": [where, {"memory_type": {"$in": values}}]}
    return where


def check_campaign_id(campaign_id: int) -> None:
    if not _is_int(campaign_id):
        raise ValidationError(
            "Campaign id must be an integer", details={"campaign_id": campaign_id}
        )


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)
