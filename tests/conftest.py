"""
Shared pytest fixtures for lorekeeper tests.

Uses ChromaDB in ephemeral (in-memory) mode and a deterministic
bag-of-words embedding function so that tests run fast without
downloading any ML models.
"""

from __future__ import annotations

import hashlib
import re
import threading
import uuid

import chromadb
import pytest

from lorekeeper.embeddings import EmbeddingGenerator
from lorekeeper.memory import MemoryManager
from lorekeeper.sources import InMemoryContextSource
from lorekeeper.store import MemoryStore

DIM = 512

_WORD_RE = re.compile(r"[a-z0-9]+")


class FakeEmbeddingFunction:
    """
    Deterministic embedding function: every lowercase word is hashed into
    one of ``DIM`` buckets and the counts are normalized to a unit vector.
    Texts that share words therefore have a positive cosine similarity,
    texts that share none have (almost always) zero.
    """

    def __init__(self) -> None:
        self.calls = 0

    def name(self) -> str:
        return "fake-bag-of-words"

    def _embed_one(self, text: str) -> list[float]:
        vec = [0.0] * DIM
        for word in _WORD_RE.findall(text.lower()):
            bucket = int(hashlib.md5(word.encode()).hexdigest(), 16) % DIM
            vec[bucket] += 1.0
        norm = sum(x * x for x in vec) ** 0.5
        if norm == 0:
            vec[0] = 1.0
            return vec
        return [x / norm for x in vec]

    def __call__(self, input: list[str]) -> list[list[float]]:  # noqa: A002
        self.calls += 1
        return [self._embed_one(t) for t in input]


class FailingEmbeddingFunction:
    """Embedding function whose provider is always unreachable."""

    def __call__(self, input: list[str]) -> list[list[float]]:  # noqa: A002
        raise ConnectionError("provider unreachable")


class SlowEmbeddingFunction:
    """Embedding function that blocks until released (or 5 s pass)."""

    def __init__(self) -> None:
        self.release = threading.Event()

    def __call__(self, input: list[str]) -> list[list[float]]:  # noqa: A002
        self.release.wait(5)
        return [[1.0] + [0.0] * (DIM - 1) for _ in input]


# A single shared EphemeralClient instance for the test session.
# Each fixture call creates a uniquely named collection so tests are isolated.
_EPHEMERAL_CLIENT = chromadb.EphemeralClient()


def make_store(dimension: int | None = DIM) -> MemoryStore:
    return MemoryStore(
        _client=_EPHEMERAL_CLIENT,
        collection_name=f"test_{uuid.uuid4().hex}",
        dimension=dimension,
    )


def make_embedder(fn=None, timeout: float = 2.0) -> EmbeddingGenerator:
    return EmbeddingGenerator(fn or FakeEmbeddingFunction(), dimension=DIM, timeout=timeout)


@pytest.fixture()
def ephemeral_store() -> MemoryStore:
    """In-memory MemoryStore in its own uniquely named collection."""
    return make_store()


@pytest.fixture()
def embedder():
    gen = make_embedder()
    yield gen
    gen.close()


@pytest.fixture()
def context_source() -> InMemoryContextSource:
    return InMemoryContextSource()


@pytest.fixture()
def memory_manager(
    ephemeral_store: MemoryStore,
    embedder: EmbeddingGenerator,
    context_source: InMemoryContextSource,
) -> MemoryManager:
    """MemoryManager wired to the ephemeral in-memory store."""
    return MemoryManager(
        _store=ephemeral_store,
        _embedder=embedder,
        context_source=context_source,
    )


@pytest.fixture()
def vector():
    """Build a unit-ish vector of the test dimension from a few leading values."""

    def _vector(*values: float) -> tuple[float, ...]:
        return tuple(values) + (0.0,) * (DIM - len(values))

    return _vector
