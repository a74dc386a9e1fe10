"""
Runtime configuration resolved from environment variables.

Environment variables:
    LOREKEEPER_DB_PATH             - ChromaDB store path (default: ~/.cache/lorekeeper)
    LOREKEEPER_COLLECTION          - ChromaDB collection name (default: memories)
    LOREKEEPER_EMBEDDING_PROVIDER  - "sentence-transformers" (default) or "openai"
    LOREKEEPER_MODEL               - embedding model (default depends on provider)
    LOREKEEPER_EMBEDDING_DIM       - vector dimension (default depends on provider)
    LOREKEEPER_EMBED_TIMEOUT       - seconds before an embedding call is abandoned (default: 15)
    LOREKEEPER_TOP_K               - default number of search results (default: 8)
    LOREKEEPER_MIN_SCORE           - minimum relevance score 0-100 (default: 30)
    LOREKEEPER_CONTEXT_FILE        - JSON file of campaign context entries for re-sync
    LOREKEEPER_LOG_LEVEL           - log level (default: INFO)
    LOREKEEPER_LOG_JSON            - "1"/"true" to emit JSON logs
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping

from .errors import ValidationError

#: Default model and vector size for each supported embedding provider.
PROVIDER_DEFAULTS: dict[str, tuple[str, int]] = {
    "sentence-transformers": ("all-MiniLM-L6-v2", 384),
    "openai": ("text-embedding-3-small", 1536),
}

DEFAULT_DB_PATH = str(Path.home() / ".cache" / "lorekeeper")
DEFAULT_TOP_K = 8
MAX_TOP_K = 20
DEFAULT_MIN_SCORE = 30
DEFAULT_EMBED_TIMEOUT = 15.0

_PREFIX = "LOREKEEPER_"


@dataclass(frozen=True)
class Settings:
    db_path: str = DEFAULT_DB_PATH
    collection_name: str = "memories"
    embedding_provider: str = "sentence-transformers"
    embedding_model: str = "all-MiniLM-L6-v2"
    embedding_dim: int = 384
    embed_timeout: float = DEFAULT_EMBED_TIMEOUT
    top_k: int = DEFAULT_TOP_K
    min_score: int = DEFAULT_MIN_SCORE
    context_file: str | None = None
    log_level: str = "INFO"
    log_json: bool = False

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "Settings":
        """Build settings from ``environ`` (defaults to ``os.environ``)."""
        env = os.environ if environ is None else environ

        def get(name: str, default: str | None = None) -> str | None:
            value = env.get(_PREFIX + name)
            return value if value not in (None, "") else default

        provider = get("EMBEDDING_PROVIDER", "sentence-transformers")
        if provider not in PROVIDER_DEFAULTS:
            raise ValidationError(
                f"Unknown embedding provider {provider!r}",
                details={"choices": sorted(PROVIDER_DEFAULTS)},
            )
        default_model, default_dim = PROVIDER_DEFAULTS[provider]

        top_k = _parse_int("TOP_K", get("TOP_K"), DEFAULT_TOP_K)
        if not 1 <= top_k <= MAX_TOP_K:
            raise ValidationError(f"LOREKEEPER_TOP_K must be between 1 and {MAX_TOP_K}")
        min_score = _parse_int("MIN_SCORE", get("MIN_SCORE"), DEFAULT_MIN_SCORE)
        if not 0 <= min_score <= 100:
            raise ValidationError("LOREKEEPER_MIN_SCORE must be between 0 and 100")
        embedding_dim = _parse_int("EMBEDDING_DIM", get("EMBEDDING_DIM"), default_dim)
        if embedding_dim < 1:
            raise ValidationError("LOREKEEPER_EMBEDDING_DIM must be positive")

        timeout_raw = get("EMBED_TIMEOUT")
        try:
            embed_timeout = float(timeout_raw) if timeout_raw else DEFAULT_EMBED_TIMEOUT
        except ValueError as exc:
            raise ValidationError(f"LOREKEEPER_EMBED_TIMEOUT is not a number: {timeout_raw!r}") from exc
        if embed_timeout <= 0:
            raise ValidationError("LOREKEEPER_EMBED_TIMEOUT must be positive")

        return cls(
            db_path=get("DB_PATH", DEFAULT_DB_PATH),
            collection_name=get("COLLECTION", "memories"),
            embedding_provider=provider,
            embedding_model=get("MODEL", default_model),
            embedding_dim=embedding_dim,
            embed_timeout=embed_timeout,
            top_k=top_k,
            min_score=min_score,
            context_file=get("CONTEXT_FILE"),
            log_level=get("LOG_LEVEL", "INFO").upper(),
            log_json=get("LOG_JSON", "").lower() in ("1", "true", "yes"),
        )


def _parse_int(name: str, raw: str | None, default: int) -> int:
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ValidationError(f"{_PREFIX}{name} is not an integer: {raw!r}") from exc
