"""
lorekeeper: long-term campaign memory for an AI narrator.

Turns gameplay events into embeddings, stores them per campaign in a
local ChromaDB vector database, and recalls a ranked, bounded set of
relevant memories for the narrator's next prompt.
"""

from .context import format_memories_for_context
from .embeddings import EmbeddingGenerator, cosine_similarity
from .errors import (
    DimensionMismatchError,
    EmbeddingFailure,
    EmbeddingProviderError,
    LorekeeperError,
    NotFoundError,
    OwnershipError,
    ValidationError,
)
from .memory import MemoryManager
from .models import ContextEntry, GameEvent, Memory, MemoryType, SearchHit, TurnRecord
from .pipeline import IngestionPipeline, IngestionReport, ResyncReport
from .ranking import RankingPolicy
from .search import SimilaritySearchEngine, similarity_score
from .sources import InMemoryContextSource, JsonContextSource
from .store import MemoryStore

__all__ = [
    "ContextEntry",
    "DimensionMismatchError",
    "EmbeddingFailure",
    "EmbeddingGenerator",
    "EmbeddingProviderError",
    "GameEvent",
    "InMemoryContextSource",
    "IngestionPipeline",
    "IngestionReport",
    "JsonContextSource",
    "LorekeeperError",
    "Memory",
    "MemoryManager",
    "MemoryStore",
    "MemoryType",
    "NotFoundError",
    "OwnershipError",
    "RankingPolicy",
    "ResyncReport",
    "SearchHit",
    "SimilaritySearchEngine",
    "TurnRecord",
    "ValidationError",
    "cosine_similarity",
    "format_memories_for_context",
    "similarity_score",
]
