"""Tests for EmbeddingBatcher and metadata sanitizing."""

import pytest

from services.ingestion.EmbeddingBatcher import EmbeddingBatcher, sanitize_metadata
from services.ingestion.SegmentSplitter import SegmentSplitter
from shared.clients.embed.openai.EmbedClientOpenai import EmbedClientOpenai
from shared.errors import ProviderAuthError, ProviderRateLimitError
from shared.helper.HelperRetry import RetryPolicy


@pytest.fixture
def embed_client(helper_config, transport):
    return EmbedClientOpenai(helper_config=helper_config, transport=transport)


@pytest.fixture
def batcher(helper_config, embed_client):
    return EmbeddingBatcher(
        helper_config=helper_config,
        embed_client=embed_client,
        retry_policy=RetryPolicy(max_attempts=3, base_delay=0),
        batch_delay=0,
    )


def _segments(count: int):
    text = "".join(f"Clause {i:04d}. " for i in range(count * 100))
    return SegmentSplitter(segment_size=100, overlap=20).split_text(text, "doc-1", "Lease.pdf")[:count]


def test_sanitize_metadata_rules():
    cleaned = sanitize_metadata({
        "documentId": "doc-1",
        "chunkIndex": 3,
        "score": 0.5,
        "flag": True,
        "tags": ["a", "b"],
        "missing": None,
        "nested": {"k": [1, 2]},
        "mixed": ["a", 1],
        "text": "é" * 600,
    })
    assert cleaned["documentId"] == "doc-1"
    assert cleaned["chunkIndex"] == 3
    assert cleaned["flag"] is True
    assert cleaned["tags"] == ["a", "b"]
    assert "missing" not in cleaned
    assert cleaned["nested"] == '{"k": [1, 2]}'
    assert cleaned["mixed"] == '["a", 1]'
    # two bytes per "é": 1000 bytes hold 500 characters
    assert cleaned["text"] == "é" * 500


def test_sanitize_metadata_falls_back_to_str():
    class Opaque:
        def __str__(self):
            return "opaque"

    assert sanitize_metadata({"obj": Opaque()}) == {"obj": "opaque"}


@pytest.mark.asyncio
async def test_embed_all_batches_of_ten(batcher, fake_openai):
    segments = _segments(25)
    records = await batcher.embed_all(segments)

    assert [len(call) for call in fake_openai.embedding_calls] == [10, 10, 5]
    assert [r.id for r in records] == [s.id for s in segments]
    assert records[0].values == fake_openai.vector_for(segments[0].text)
    assert records[7].metadata == {
        "documentId": "doc-1",
        "documentName": "Lease.pdf",
        "chunkIndex": 7,
        "text": segments[7].text,
    }


@pytest.mark.asyncio
async def test_rate_limited_batch_recovers(batcher, fake_openai):
    fake_openai.embedding_failures = [429, 429]
    segments = _segments(3)

    records = await batcher.embed_all(segments)

    assert len(records) == 3
    assert len(fake_openai.embedding_calls) == 3


@pytest.mark.asyncio
async def test_rate_limit_exhaustion_fails_the_document(batcher, fake_openai):
    fake_openai.embedding_failures = [429, 429, 429]
    with pytest.raises(ProviderRateLimitError):
        await batcher.embed_all(_segments(3))
    assert len(fake_openai.embedding_calls) == 3


@pytest.mark.asyncio
async def test_auth_failure_is_not_retried(batcher, fake_openai):
    fake_openai.embedding_failures = [401]
    with pytest.raises(ProviderAuthError):
        await batcher.embed_all(_segments(3))
    assert len(fake_openai.embedding_calls) == 1


@pytest.mark.asyncio
async def test_embed_one(batcher, fake_openai):
    vector = await batcher.embed_one("What is the notice period?")
    assert vector == fake_openai.vector_for("What is the notice period?")
