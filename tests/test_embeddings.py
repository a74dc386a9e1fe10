"""Tests for EmbeddingGenerator and the vector helpers."""

from __future__ import annotations

import math

import numpy as np
import pytest

from conftest import DIM, FailingEmbeddingFunction, FakeEmbeddingFunction, SlowEmbeddingFunction, make_embedder
from lorekeeper.embeddings import (
    EmbeddingGenerator,
    cosine_similarities,
    cosine_similarity,
    get_embedding_function,
    is_finite_vector,
)
from lorekeeper.errors import EmbeddingProviderError, ValidationError


class TestEmbed:
    def test_returns_vector_of_configured_dimension(self, embedder: EmbeddingGenerator):
        vec = embedder.embed("The dragon sleeps.")
        assert len(vec) == DIM
        assert all(isinstance(x, float) for x in vec)

    def test_deterministic(self, embedder: EmbeddingGenerator):
        assert embedder.embed("Same text") == embedder.embed("Same text")

    @pytest.mark.parametrize("text", ["", "   ", "\n\t"])
    def test_empty_text_rejected(self, embedder: EmbeddingGenerator, text):
        with pytest.raises(ValidationError):
            embedder.embed(text)

    def test_long_text_is_truncated(self):
        seen: list[list[str]] = []

        def _recording(texts):
            seen.append(list(texts))
            return FakeEmbeddingFunction()(texts)

        gen = EmbeddingGenerator(_recording, dimension=DIM, max_length=50)
        gen.embed("x" * 500)
        gen.close()
        assert len(seen[0][0]) == 50

    def test_batch_preserves_order(self, embedder: EmbeddingGenerator):
        texts = ["alpha beta", "gamma delta", "epsilon"]
        batch = embedder.embed_batch(texts)
        assert batch == [embedder.embed(t) for t in texts]

    def test_batch_empty_does_not_call_provider(self):
        fn = FakeEmbeddingFunction()
        gen = make_embedder(fn)
        assert gen.embed_batch([]) == []
        assert fn.calls == 0
        gen.close()

    def test_batch_uses_one_provider_call(self):
        fn = FakeEmbeddingFunction()
        gen = make_embedder(fn)
        gen.embed_batch(["one", "two", "three"])
        assert fn.calls == 1
        gen.close()

    def test_numpy_output_accepted(self):
        gen = EmbeddingGenerator(lambda texts: [np.ones(DIM) for _ in texts], dimension=DIM)
        assert gen.embed("numpy") == [1.0] * DIM
        gen.close()


class TestProviderFailures:
    def test_provider_error_wrapped(self):
        gen = make_embedder(FailingEmbeddingFunction())
        with pytest.raises(EmbeddingProviderError) as exc_info:
            gen.embed("hello")
        assert exc_info.value.details["reason"] == "provider_error"
        assert isinstance(exc_info.value.__cause__, ConnectionError)
        gen.close()

    def test_timeout(self):
        slow = SlowEmbeddingFunction()
        gen = make_embedder(slow, timeout=0.1)
        try:
            with pytest.raises(EmbeddingProviderError) as exc_info:
                gen.embed("hello")
            assert exc_info.value.details["reason"] == "timeout"
        finally:
            slow.release.set()
            gen.close()

    def test_wrong_dimension_is_malformed(self):
        gen = EmbeddingGenerator(lambda texts: [[0.5] * 3 for _ in texts], dimension=DIM)
        with pytest.raises(EmbeddingProviderError) as exc_info:
            gen.embed("hello")
        assert exc_info.value.details["reason"] == "malformed"
        gen.close()

    def test_wrong_vector_count_is_malformed(self):
        gen = EmbeddingGenerator(lambda texts: [], dimension=DIM)
        with pytest.raises(EmbeddingProviderError) as exc_info:
            gen.embed("hello")
        assert exc_info.value.details["reason"] == "malformed"
        gen.close()

    def test_non_finite_is_malformed(self):
        gen = EmbeddingGenerator(
            lambda texts: [[float("nan")] * DIM for _ in texts], dimension=DIM
        )
        with pytest.raises(EmbeddingProviderError):
            gen.embed("hello")
        gen.close()

    def test_non_numeric_is_malformed(self):
        gen = EmbeddingGenerator(lambda texts: [["a"] * DIM for _ in texts], dimension=DIM)
        with pytest.raises(EmbeddingProviderError):
            gen.embed("hello")
        gen.close()

    def test_invalid_dimension_rejected(self):
        with pytest.raises(ValidationError):
            EmbeddingGenerator(FakeEmbeddingFunction(), dimension=0)


class TestGetEmbeddingFunction:
    def test_unknown_provider(self):
        with pytest.raises(ValidationError):
            get_embedding_function("word2vec")

    def test_openai_requires_api_key(self, monkeypatch):
        monkeypatch.delenv("OPENAI_API_KEY", raising=False)
        with pytest.raises(ValidationError, match="OPENAI_API_KEY"):
            get_embedding_function("openai")


class TestCosineSimilarity:
    def test_identical_vectors(self):
        assert cosine_similarity([1.0, 2.0, 3.0], [1.0, 2.0, 3.0]) == pytest.approx(1.0)

    def test_orthogonal_vectors(self):
        assert cosine_similarity([1.0, 0.0], [0.0, 1.0]) == pytest.approx(0.0)

    def test_opposite_vectors(self):
        assert cosine_similarity([1.0, 0.0], [-1.0, 0.0]) == pytest.approx(-1.0)

    def test_zero_vector(self):
        assert cosine_similarity([0.0, 0.0], [1.0, 0.0]) == 0.0

    def test_length_mismatch(self):
        assert cosine_similarity([1.0, 0.0], [1.0, 0.0, 0.0]) == 0.0

    def test_batch_matches_scalar(self):
        query = [1.0, 1.0, 0.0]
        rows = [[1.0, 0.0, 0.0], [0.0, 0.0, 1.0], [0.0, 0.0, 0.0], [2.0, 2.0, 0.0]]
        sims = cosine_similarities(query, rows)
        expected = [cosine_similarity(query, r) for r in rows]
        assert sims.tolist() == pytest.approx(expected)

    def test_batch_empty(self):
        assert cosine_similarities([1.0], []).size == 0


class TestIsFiniteVector:
    def test_finite(self):
        assert is_finite_vector([0.0, 1.5, -2])

    @pytest.mark.parametrize("bad", [math.inf, math.nan, "1.0", None])
    def test_not_finite(self, bad):
        assert not is_finite_vector([0.0, bad])
