"""
Ranking policy: how manual importance participates in search results.

Each importance point adds ``importance_weight`` to the 0-100 similarity
score (2 by default, i.e. 0.02 cosine per point), capped at 100.  Results
are ordered by that relevance, then importance, then recency, filtered
by ``min_score`` and cut to ``top_k``.  At equal similarity a more
important memory therefore always sorts first, and a high-importance
memory sitting just under the cutoff is lifted over it.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Iterable

from .models import SearchHit

DEFAULT_IMPORTANCE_WEIGHT: int = 2


@dataclass(frozen=True)
class RankingPolicy:
    importance_weight: int = DEFAULT_IMPORTANCE_WEIGHT
    min_score: int = 0

    @classmethod
    def similarity_only(cls) -> "RankingPolicy":
        """Pure similarity ordering; importance and recency only break ties."""
        return cls(importance_weight=0, min_score=0)

    def relevance(self, similarity: int, importance_boost: int) -> int:
        return min(100, similarity + self.importance_weight * importance_boost)

    def rank(self, hits: Iterable[SearchHit], top_k: int) -> list[SearchHit]:
        """Score, filter, order and bound *hits*.  Never returns more than *top_k*."""
        if top_k <= 0:
            return []
        scored = [
            replace(hit, relevance=self.relevance(hit.similarity, hit.memory.importance_boost))
            for hit in hits
        ]
        kept = [hit for hit in scored if hit.relevance >= self.min_score]
        kept.sort(
            key=lambda h: (h.relevance, h.memory.importance_boost, h.memory.created_at),
            reverse=True,
        )
        return kept[:top_k]
