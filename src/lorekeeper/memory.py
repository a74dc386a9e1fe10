"""
MemoryManager: the campaign memory surface offered to collaborators.

The DM orchestrator and any management UI go through this class.  It
validates input once, enforces campaign ownership, and wires the store,
the embedding generator, the search engine and the ingestion pipeline
together.

Usage example::

    from lorekeeper import MemoryManager

    memory = MemoryManager(db_path="./campaign_memory")

    memory.add_memory(
        campaign_id=1,
        memory_type="lore",
        content="The dragon Zephyrax sleeps beneath the Ironhold Mountains",
        importance_boost=8,
    )

    for hit in memory.search_memories(1, "dragon treasure", top_k=5):
        print(hit.relevance, hit.memory.content)
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

from .config import (
    DEFAULT_EMBED_TIMEOUT,
    DEFAULT_MIN_SCORE,
    DEFAULT_TOP_K,
    MAX_TOP_K,
    PROVIDER_DEFAULTS,
    Settings,
)
from .context import format_memories_for_context
from .embeddings import EmbeddingGenerator, get_embedding_function
from .errors import EmbeddingProviderError, ValidationError
from .intelligence import MAX_IMPORTANCE, MIN_IMPORTANCE
from .log import get_logger
from .models import Memory, MemoryType, SearchHit, TurnRecord
from .pipeline import IngestionPipeline, IngestionReport, ResyncReport
from .ranking import RankingPolicy
from .search import SimilaritySearchEngine
from .sources import ContextSource
from .store import MemoryStore

logger = get_logger(__name__)


class MemoryManager:
    """
    Long-term campaign memory backed by a local ChromaDB store.

    Responsibilities
    ----------------
    * **Add** – Validates and embeds a memory, then stores it.  Provider
      failures are raised to the caller and leave nothing behind.
    * **Search** – Embeds the query and ranks the campaign's memories by
      similarity blended with manual importance.
    * **Manage** – Lists, counts and deletes memories and updates their
      importance, always scoped to one campaign.
    * **Ingest** – Records gameplay turns and re-syncs context entries
      through the ingestion pipeline.

    Parameters
    ----------
    db_path:
        Filesystem path for the ChromaDB persistent store.
    collection_name:
        Name of the ChromaDB collection to use.
    embedding_provider:
        ``"sentence-transformers"`` (local, default) or ``"openai"``.
    embedding_model:
        Model identifier.  Defaults to the provider's default model.
    embedding_dim:
        Vector size of the model.  Defaults to the provider's default.
    embed_timeout:
        Seconds before an embedding call is abandoned.
    top_k:
        Default number of search results.
    min_score:
        Minimum relevance (0-100) for a memory to be returned.
    context_source:
        Campaign context store used by ``initialize_memories``.
    candidate_pool:
        When set, search pre-selects this many approximate neighbours
        instead of scanning the whole campaign.
    """

    def __init__(
        self,
        db_path: str = "./chroma_db",
        collection_name: str = "memories",
        embedding_provider: str = "sentence-transformers",
        embedding_model: str | None = None,
        embedding_dim: int | None = None,
        embed_timeout: float = DEFAULT_EMBED_TIMEOUT,
        top_k: int = DEFAULT_TOP_K,
        min_score: int = DEFAULT_MIN_SCORE,
        context_source: ContextSource | None = None,
        candidate_pool: int | None = None,
        _store: MemoryStore | None = None,
        _embedder: EmbeddingGenerator | None = None,
    ) -> None:
        if _embedder is None:
            default_model, default_dim = PROVIDER_DEFAULTS.get(
                embedding_provider, PROVIDER_DEFAULTS["sentence-transformers"]
            )
            _embedder = EmbeddingGenerator(
                get_embedding_function(embedding_provider, embedding_model or default_model),
                dimension=embedding_dim or default_dim,
                timeout=embed_timeout,
            )
        self._embedder = _embedder
        self._store = _store or MemoryStore(
            path=db_path,
            collection_name=collection_name,
            dimension=self._embedder.dimension,
        )
        self.top_k = top_k
        self.search_engine = SimilaritySearchEngine(
            self._store,
            policy=RankingPolicy(min_score=min_score),
            candidate_pool=candidate_pool,
        )
        self.pipeline = IngestionPipeline(self._store, self._embedder, context_source)

    @classmethod
    def from_settings(
        cls, settings: Settings, context_source: ContextSource | None = None
    ) -> "MemoryManager":
        return cls(
            db_path=settings.db_path,
            collection_name=settings.collection_name,
            embedding_provider=settings.embedding_provider,
            embedding_model=settings.embedding_model,
            embedding_dim=settings.embedding_dim,
            embed_timeout=settings.embed_timeout,
            top_k=settings.top_k,
            min_score=settings.min_score,
            context_source=context_source,
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def add_memory(
        self,
        campaign_id: int,
        memory_type: MemoryType | str,
        content: str,
        summary: str | None = None,
        tags: Iterable[str] | None = None,
        importance_boost: int = 0,
        session_number: int | None = None,
        turn_number: int | None = None,
    ) -> Memory:
        """
        Manually add a memory to a campaign.

        Parameters
        ----------
        memory_type:
            Category name.  Unknown names are stored as ``other``.
        content:
            The text to remember.  Must not be empty.
        summary:
            Short preview text.  Derived from *content* when omitted.
        tags:
            Short labels, order irrelevant.
        importance_boost:
            Integer 0-10 biasing retrieval towards this memory.

        Raises
        ------
        ValidationError
            Empty content, importance out of range, or malformed tags.
        EmbeddingProviderError
            The provider failed or timed out.  Nothing was stored.
        """
        _check_importance(importance_boost)
        try:
            return self.pipeline.remember(
                campaign_id,
                memory_type,
                content,
                summary=summary,
                tags=tags,
                importance_boost=importance_boost,
                session_number=session_number,
                turn_number=turn_number,
            )
        except EmbeddingProviderError as exc:
            logger.warning(
                "add_memory_failed",
                campaign_id=campaign_id,
                reason=exc.details.get("reason"),
                error=exc.message,
            )
            raise

    def search_memories(
        self,
        campaign_id: int,
        query: str,
        top_k: int | None = None,
        memory_types: Iterable[MemoryType | str] | None = None,
    ) -> list[SearchHit]:
        """
        Retrieve the memories of *campaign_id* most relevant to *query*.

        Returns at most *top_k* hits (default from configuration), best
        first.  A campaign with no memories returns ``[]`` without calling
        the embedding provider.
        """
        top_k = self.top_k if top_k is None else top_k
        if isinstance(top_k, bool) or not isinstance(top_k, int) or not 1 <= top_k <= MAX_TOP_K:
            raise ValidationError(
                f"top_k must be an integer between 1 and {MAX_TOP_K}", details={"top_k": top_k}
            )
        if not isinstance(query, str) or not query.strip():
            raise ValidationError("Search query must not be empty")
        if self._store.count(campaign_id) == 0:
            return []

        query_vector = self._embedder.embed(query)
        hits = self.search_engine.search(campaign_id, query_vector, top_k, memory_types)
        logger.debug("memories_searched", campaign_id=campaign_id, top_k=top_k, hits=len(hits))
        return hits

    def get_memories(
        self,
        campaign_id: int,
        memory_types: Iterable[MemoryType | str] | None = None,
    ) -> list[Memory]:
        """Return every memory of a campaign, newest first."""
        return self._store.get_all(campaign_id, memory_types)

    def get_memory(self, memory_id: str, campaign_id: int) -> Memory:
        return self._store.get_by_id(memory_id, campaign_id)

    def get_memory_count(self, campaign_id: int) -> int:
        """Return the number of memories stored for a campaign."""
        return self._store.count(campaign_id)

    def delete_memory(self, memory_id: str, campaign_id: int) -> None:
        """
        Delete a memory of *campaign_id*.

        Raises ``NotFoundError`` for unknown ids and ``OwnershipError``
        when the memory belongs to another campaign.
        """
        self._store.delete(memory_id, campaign_id)

    def update_memory_importance(self, memory_id: str, campaign_id: int, boost: int) -> Memory:
        """Set a memory's importance boost (0-10).  Repeating the call is a no-op."""
        _check_importance(boost)
        return self._store.update_importance(memory_id, campaign_id, boost)

    def initialize_memories(self, campaign_id: int) -> ResyncReport:
        """Embed the campaign's context entries that are not yet remembered."""
        return self.pipeline.initialize_memories(campaign_id)

    def ingest_turn(self, turn: TurnRecord) -> IngestionReport:
        """Remember a finished gameplay turn.  Never raises on provider failure."""
        return self.pipeline.ingest_turn(turn)

    def build_narrator_context(
        self, campaign_id: int, query: str, top_k: int | None = None
    ) -> str:
        """
        Search and format memories for the narrator prompt.

        Used inside the gameplay loop, so a provider failure yields an
        empty context instead of aborting the turn.
        """
        try:
            hits = self.search_memories(campaign_id, query, top_k)
        except EmbeddingProviderError as exc:
            logger.warning(
                "narrator_context_unavailable",
                campaign_id=campaign_id,
                reason=exc.details.get("reason"),
            )
            return ""
        return format_memories_for_context(hits)

    def close(self) -> None:
        self._embedder.close()


def _check_importance(boost: Any) -> None:
    if (
        isinstance(boost, bool)
        or not isinstance(boost, int)
        or not MIN_IMPORTANCE <= boost <= MAX_IMPORTANCE
    ):
        raise ValidationError(
            f"Importance must be an integer between {MIN_IMPORTANCE} and {MAX_IMPORTANCE}",
            details={"importance_boost": boost},
        )
