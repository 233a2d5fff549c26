"""Tests for the embedder, result types, failure policies and provider."""

from __future__ import annotations

import math
from unittest.mock import MagicMock, patch

import pytest

from docseek.indexer.embedder import (
    INVALID_VECTOR,
    PROVIDER_UNAVAILABLE,
    Embedder,
    EmbeddingFailure,
    EmbeddingOk,
    ProviderUnavailableError,
    is_valid_vector,
    placeholder_vector,
    resolve_embeddings,
)
from tests.helpers import DIMS, fake_embed, make_failing_provider


class TestIsValidVector:
    def test_valid(self) -> None:
        assert is_valid_vector([0.1] * 10)

    def test_too_short(self) -> None:
        assert not is_valid_vector([0.1] * 9)

    def test_not_a_list(self) -> None:
        assert not is_valid_vector("0.1,0.2")
        assert not is_valid_vector(None)

    def test_mostly_nan_but_ten_percent_finite(self) -> None:
        assert is_valid_vector([math.nan] * 9 + [1.0])

    def test_all_nan(self) -> None:
        assert not is_valid_vector([math.nan] * 10)

    def test_bools_are_not_numbers(self) -> None:
        assert not is_valid_vector([True] * 10)

    def test_custom_min_dims(self) -> None:
        assert is_valid_vector([0.5] * 3, min_dims=3)


class TestPlaceholderVector:
    def test_deterministic(self) -> None:
        assert placeholder_vector(7, 768) == placeholder_vector(7, 768)

    def test_distinct_positions(self) -> None:
        vectors = [tuple(placeholder_vector(i, 64)) for i in range(64)]
        assert len(set(vectors)) == 64

    def test_non_zero_and_valid(self) -> None:
        vec = placeholder_vector(3, 32)
        assert len(vec) == 32
        assert any(v != 0 for v in vec)
        assert is_valid_vector(vec)


class TestEmbedder:
    def test_all_ok(self) -> None:
        provider = MagicMock()
        provider.embed = MagicMock(side_effect=fake_embed)
        results = Embedder(provider, retry_delay=0).embed(["a", "b"])
        assert len(results) == 2
        assert all(isinstance(r, EmbeddingOk) for r in results)
        assert results[0].vector == fake_embed(["a"])[0]

    def test_empty_input(self) -> None:
        provider = MagicMock()
        assert Embedder(provider, retry_delay=0).embed([]) == []
        provider.embed.assert_not_called()

    def test_batching(self) -> None:
        provider = MagicMock()
        provider.embed = MagicMock(side_effect=fake_embed)
        results = Embedder(provider, batch_size=2, retry_delay=0).embed(["a", "b", "c", "d", "e"])
        assert len(results) == 5
        assert provider.embed.call_count == 3
        assert provider.embed.call_args_list[2].args[0] == ["e"]

    def test_retry_then_success(self) -> None:
        provider = MagicMock()
        provider.embed = MagicMock(side_effect=[RuntimeError("timeout"), fake_embed(["a"])])
        results = Embedder(provider, retry_delay=0).embed(["a"])
        assert isinstance(results[0], EmbeddingOk)
        assert provider.embed.call_count == 2

    def test_batch_failure_after_retry(self) -> None:
        provider = make_failing_provider()
        results = Embedder(provider, batch_size=2, retry_delay=0).embed(["a", "b", "c"])
        assert len(results) == 3
        assert all(isinstance(r, EmbeddingFailure) for r in results)
        assert all(r.reason == PROVIDER_UNAVAILABLE for r in results)
        # Two batches, each tried twice
        assert provider.embed.call_count == 4

    def test_one_failed_batch_does_not_affect_others(self) -> None:
        provider = MagicMock()
        provider.embed = MagicMock(
            side_effect=[RuntimeError("x"), RuntimeError("x"), fake_embed(["c"])]
        )
        results = Embedder(provider, batch_size=2, retry_delay=0).embed(["a", "b", "c"])
        assert [type(r) for r in results] == [EmbeddingFailure, EmbeddingFailure, EmbeddingOk]

    def test_auth_error_aborts(self) -> None:
        provider = make_failing_provider("400 API_KEY_INVALID")
        with pytest.raises(ProviderUnavailableError):
            Embedder(provider, retry_delay=0).embed(["a", "b"])
        assert provider.embed.call_count == 1

    def test_invalid_vector(self) -> None:
        provider = MagicMock()
        provider.embed = MagicMock(return_value=[[0.2] * DIMS, [0.1, 0.2], [math.nan] * DIMS])
        results = Embedder(provider, retry_delay=0).embed(["a", "b", "c"])
        assert isinstance(results[0], EmbeddingOk)
        assert results[1] == EmbeddingFailure(INVALID_VECTOR, "position 1")
        assert isinstance(results[2], EmbeddingFailure)

    def test_missing_vectors_are_invalid(self) -> None:
        provider = MagicMock()
        provider.embed = MagicMock(return_value=[[0.2] * DIMS])
        results = Embedder(provider, retry_delay=0).embed(["a", "b"])
        assert isinstance(results[1], EmbeddingFailure)
        assert results[1].reason == INVALID_VECTOR


class TestEmbedQuery:
    def test_ok(self) -> None:
        provider = MagicMock()
        provider.embed = MagicMock(side_effect=fake_embed)
        assert Embedder(provider).embed_query("hello") == fake_embed(["hello"])[0]

    def test_provider_error(self) -> None:
        with pytest.raises(ProviderUnavailableError):
            Embedder(make_failing_provider()).embed_query("hello")

    def test_invalid_vector(self) -> None:
        provider = MagicMock()
        provider.embed = MagicMock(return_value=[[0.1, 0.2]])
        with pytest.raises(ProviderUnavailableError):
            Embedder(provider).embed_query("hello")


class TestResolveEmbeddings:
    @pytest.fixture
    def results(self):
        return [EmbeddingOk([0.5] * DIMS), EmbeddingFailure(PROVIDER_UNAVAILABLE), EmbeddingOk([0.3] * DIMS)]

    def test_placeholder(self, results) -> None:
        items, vectors = resolve_embeddings(["a", "b", "c"], results, "placeholder")
        assert items == ["a", "b", "c"]
        assert vectors[1] == placeholder_vector(1, DIMS)
        assert vectors[0] == [0.5] * DIMS

    def test_skip(self, results) -> None:
        items, vectors = resolve_embeddings(["a", "b", "c"], results, "skip")
        assert items == ["a", "c"]
        assert vectors == [[0.5] * DIMS, [0.3] * DIMS]

    def test_abort(self, results) -> None:
        with pytest.raises(ProviderUnavailableError):
            resolve_embeddings(["a", "b", "c"], results, "abort")

    def test_abort_without_failures(self) -> None:
        items, vectors = resolve_embeddings(["a"], [EmbeddingOk([0.5] * DIMS)], "abort")
        assert items == ["a"]

    def test_placeholder_width_without_successes(self) -> None:
        _, vectors = resolve_embeddings(["a"], [EmbeddingFailure(INVALID_VECTOR)], "placeholder", dims=24)
        assert len(vectors[0]) == 24

    def test_unknown_policy(self, results) -> None:
        with pytest.raises(ValueError):
            resolve_embeddings(["a", "b", "c"], results, "ignore")

    def test_length_mismatch(self) -> None:
        with pytest.raises(ValueError):
            resolve_embeddings(["a"], [], "skip")


class TestGeminiProvider:
    def test_embed_uses_timeout_and_dims(self) -> None:
        with patch("docseek.provider.genai") as mock_genai:
            client = mock_genai.Client.return_value
            emb = MagicMock()
            emb.values = [0.1] * 8
            client.models.embed_content.return_value = MagicMock(embeddings=[emb])

            from docseek.provider import GeminiProvider

            provider = GeminiProvider(api_key="k", embedding_model="m", embedding_dims=8, timeout_secs=5)
            vectors = provider.embed(["hello"])

        assert vectors == [[0.1] * 8]
        http_options = mock_genai.Client.call_args.kwargs["http_options"]
        assert http_options.timeout == 5000
        kwargs = client.models.embed_content.call_args.kwargs
        assert kwargs["model"] == "m"
        assert kwargs["contents"] == ["hello"]
        assert kwargs["config"].output_dimensionality == 8
