"""
Similarity search over one campaign's memories.

The default mode scans the campaign's whole memory set and scores every
record exactly with cosine similarity.  Campaigns stay in the low
thousands of memories, where a numpy scan is fast.  For campaigns that
outgrow that, ``candidate_pool`` lets ChromaDB's HNSW index pre-select the
nearest records before exact re-scoring.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence

import numpy as np

from .config import DEFAULT_TOP_K
from .embeddings import cosine_similarities
from .errors import DimensionMismatchError, ValidationError
from .log import get_logger
from .models import MemoryType, SearchHit
from .ranking import RankingPolicy
from .store import MemoryStore

logger = get_logger(__name__)


def similarity_score(cosine: float) -> int:
    """Scale a cosine similarity to an integer score in [0, 100]."""
    return int(round(max(0.0, min(1.0, cosine)) * 100))


class SimilaritySearchEngine:
    """
    Rank a campaign's memories by closeness to a query vector.

    Parameters
    ----------
    store:
        Where memories are read from.
    policy:
        Ranking policy applied to the scored hits.  Defaults to pure
        similarity ordering (importance, then recency, break ties).
    candidate_pool:
        When set, only this many approximate nearest neighbours are
        scored instead of the full campaign.
    """

    def __init__(
        self,
        store: MemoryStore,
        policy: RankingPolicy | None = None,
        candidate_pool: int | None = None,
    ) -> None:
        self._store = store
        self.policy = policy or RankingPolicy.similarity_only()
        self.candidate_pool = candidate_pool

    def search(
        self,
        campaign_id: int,
        query_vector: Sequence[float],
        top_k: int = DEFAULT_TOP_K,
        memory_types: Iterable[MemoryType | str] | None = None,
    ) -> list[SearchHit]:
        """
        Return at most *top_k* hits from *campaign_id*, best first.

        An empty campaign gives an empty list.
        """
        if isinstance(top_k, bool) or not isinstance(top_k, int) or top_k < 1:
            raise ValidationError("top_k must be a positive integer", details={"top_k": top_k})
        if not len(query_vector):
            raise ValidationError("Query vector is empty")
        expected = self._store.dimension
        if expected is not None and len(query_vector) != expected:
            raise DimensionMismatchError(expected, len(query_vector))

        if self.candidate_pool:
            pool = max(self.candidate_pool, top_k)
            memories = self._store.nearest(campaign_id, query_vector, pool, memory_types)
        else:
            memories = self._store.get_all(campaign_id, memory_types)
        usable = [m for m in memories if m.dimension == len(query_vector)]
        if len(usable) != len(memories):
            logger.warning(
                "memories_skipped_dimension",
                campaign_id=campaign_id,
                skipped=len(memories) - len(usable),
                dimension=len(query_vector),
            )
        memories = usable
        if not memories:
            return []

        matrix = np.array([m.embedding for m in memories], dtype=np.float64)
        sims = cosine_similarities(query_vector, matrix)
        hits = [
            SearchHit(
                memory=memory,
                similarity=similarity_score(float(sim)),
                relevance=similarity_score(float(sim)),
                cosine=float(sim),
            )
            for memory, sim in zip(memories, sims)
        ]
        return self.policy.rank(hits, top_k)
