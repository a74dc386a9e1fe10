"""
Embedding generation and vector math.

``EmbeddingGenerator`` wraps any ChromaDB-compatible embedding function
(a callable taking ``list[str]`` and returning one vector per text) and
adds the guarantees the rest of the package relies on:

* every call is bounded by a timeout and never hangs gameplay;
* every returned vector has the configured dimension and finite values;
* any provider problem surfaces as ``EmbeddingProviderError``.

No retries happen here.  Callers that want them must bound them.
"""

from __future__ import annotations

import math
import os
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from typing import Any, Callable, Sequence

import numpy as np
from chromadb.utils import embedding_functions

from .config import DEFAULT_EMBED_TIMEOUT, PROVIDER_DEFAULTS
from .errors import EmbeddingProviderError, ValidationError
from .log import get_logger

logger = get_logger(__name__)

#: Texts longer than this many characters are truncated before embedding.
MAX_EMBED_LENGTH: int = 8000

EmbeddingFunction = Callable[[list[str]], Sequence[Any]]


def get_embedding_function(
    provider: str = "sentence-transformers",
    model_name: str | None = None,
) -> Any:
    """Return a ChromaDB embedding function for *provider*."""
    if provider not in PROVIDER_DEFAULTS:
        raise ValidationError(f"Unknown embedding provider {provider!r}")
    model_name = model_name or PROVIDER_DEFAULTS[provider][0]

    if provider == "openai":
        api_key = os.environ.get("OPENAI_API_KEY")
        if not api_key:
            raise ValidationError("OPENAI_API_KEY not set - cannot generate embeddings")
        return embedding_functions.OpenAIEmbeddingFunction(
            api_key=api_key,
            model_name=model_name,
        )
    return embedding_functions.SentenceTransformerEmbeddingFunction(model_name=model_name)


class EmbeddingGenerator:
    """
    Turn text into fixed-length vectors through an external provider.

    Parameters
    ----------
    embedding_function:
        ChromaDB-style embedding function.
    dimension:
        Expected vector length.  Output of any other length is treated as
        malformed.
    timeout:
        Seconds to wait for the provider before giving up.
    max_length:
        Texts are truncated to this many characters.
    """

    def __init__(
        self,
        embedding_function: EmbeddingFunction,
        dimension: int,
        timeout: float = DEFAULT_EMBED_TIMEOUT,
        max_length: int = MAX_EMBED_LENGTH,
        max_workers: int = 4,
    ) -> None:
        if dimension < 1:
            raise ValidationError("Embedding dimension must be positive")
        self._fn = embedding_function
        self.dimension = dimension
        self.timeout = timeout
        self.max_length = max_length
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="lorekeeper-embed"
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def embed(self, text: str) -> list[float]:
        """Embed a single non-empty text."""
        return self.embed_batch([text])[0]

    def embed_batch(self, texts: Sequence[str]) -> list[list[float]]:
        """
        Embed several texts with one provider call.

        The result is in input order.  An empty input returns ``[]``
        without contacting the provider.
        """
        if not texts:
            return []
        prepared = [self._prepare(t) for t in texts]

        future = self._executor.submit(self._fn, prepared)
        try:
            raw = future.result(timeout=self.timeout)
        except FutureTimeout as exc:
            future.cancel()
            logger.warning("embedding_timeout", timeout=self.timeout, texts=len(prepared))
            raise EmbeddingProviderError(
                f"Embedding provider timed out after {self.timeout}s",
                details={"reason": "timeout", "timeout": self.timeout},
            ) from exc
        except Exception as exc:
            raise EmbeddingProviderError(
                f"Embedding provider failed: {exc}",
                details={"reason": "provider_error", "error_type": type(exc).__name__},
            ) from exc

        return self._validate(raw, expected=len(prepared))

    def close(self) -> None:
        self._executor.shutdown(wait=False, cancel_futures=True)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _prepare(self, text: str) -> str:
        if not isinstance(text, str) or not text.strip():
            raise ValidationError("Cannot embed empty text")
        text = text.strip()
        return text[: self.max_length] if len(text) > self.max_length else text

    def _validate(self, raw: Any, expected: int) -> list[list[float]]:
        try:
            vectors = list(raw)
        except TypeError as exc:
            raise _malformed("provider returned a non-sequence") from exc
        if len(vectors) != expected:
            raise _malformed(f"expected {expected} vectors, got {len(vectors)}")

        result: list[list[float]] = []
        for vec in vectors:
            try:
                arr = np.asarray(vec, dtype=np.float64)
            except (TypeError, ValueError) as exc:
                raise _malformed("vector is not numeric") from exc
            if arr.ndim != 1 or arr.shape[0] != self.dimension:
                raise _malformed(
                    f"vector has shape {arr.shape}, expected ({self.dimension},)"
                )
            if not np.all(np.isfinite(arr)):
                raise _malformed("vector contains non-finite values")
            result.append(arr.tolist())
        return result


def _malformed(reason: str) -> EmbeddingProviderError:
    return EmbeddingProviderError(
        f"Embedding provider returned malformed output: {reason}",
        details={"reason": "malformed"},
    )


# ---------------------------------------------------------------------------
# Vector math
# ---------------------------------------------------------------------------


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """
    Cosine similarity of two vectors, in [-1, 1].

    Mismatched lengths or a zero vector give 0.0.
    """
    if len(a) != len(b):
        return 0.0
    vec_a = np.asarray(a, dtype=np.float64)
    vec_b = np.asarray(b, dtype=np.float64)
    norm = np.linalg.norm(vec_a) * np.linalg.norm(vec_b)
    if norm == 0:
        return 0.0
    sim = float(np.dot(vec_a, vec_b) / norm)
    return max(-1.0, min(1.0, sim))


def cosine_similarities(query: Sequence[float], matrix: Any) -> np.ndarray:
    """
    Cosine similarity of *query* against every row of *matrix*.

    Rows with zero norm score 0.0.  *matrix* must already have the
    query's width.
    """
    q = np.asarray(query, dtype=np.float64)
    m = np.asarray(matrix, dtype=np.float64)
    if m.size == 0:
        return np.zeros(0)
    q_norm = np.linalg.norm(q)
    row_norms = np.linalg.norm(m, axis=1)
    denom = row_norms * q_norm
    with np.errstate(divide="ignore", invalid="ignore"):
        sims = np.where(denom > 0, (m @ q) / denom, 0.0)
    return np.clip(sims, -1.0, 1.0)


def is_finite_vector(vec: Sequence[float]) -> bool:
    return all(isinstance(x, (int, float)) and math.isfinite(x) for x in vec)
