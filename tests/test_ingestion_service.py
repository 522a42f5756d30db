"""Tests for document ingestion against the provider fakes."""

import pytest

from services.ingestion.EmbeddingBatcher import EmbeddingBatcher
from services.ingestion.IngestionService import IngestionService
from services.ingestion.SegmentSplitter import SegmentSplitter
from services.vector_store.VectorStoreGateway import VectorStoreGateway
from shared.clients.embed.openai.EmbedClientOpenai import EmbedClientOpenai
from shared.clients.rag.RAGClientManager import RAGClientManager
from shared.helper.HelperRetry import RetryPolicy


@pytest.fixture
def service(helper_config, transport):
    gateway = VectorStoreGateway(
        helper_config=helper_config,
        client_factory=lambda: RAGClientManager(helper_config=helper_config, transport=transport).get_client(),
        upsert_delay=0,
    )
    batcher = EmbeddingBatcher(
        helper_config=helper_config,
        embed_client=EmbedClientOpenai(helper_config=helper_config, transport=transport),
        retry_policy=RetryPolicy(max_attempts=2, base_delay=0),
        batch_delay=0,
    )
    return IngestionService(
        helper_config=helper_config,
        splitter=SegmentSplitter(segment_size=100, overlap=20),
        embedding_batcher=batcher,
        gateway=gateway,
    )


def _text(length: int) -> str:
    sentence = "The tenant shall pay rent on the first day of each month. "
    return (sentence * (length // len(sentence) + 1))[:length]


@pytest.mark.asyncio
async def test_ingest_writes_one_vector_per_segment(service, fake_index):
    result = await service.do_ingest("doc-1", "Lease.pdf", _text(450))

    assert result.success is True
    assert result.segments == 6
    assert result.vectors_written == 6
    assert fake_index.ids_for("doc-1") == sorted(f"doc-1-chunk-{i}" for i in range(6))
    metadata = fake_index.records["doc-1-chunk-0"]["metadata"]
    assert metadata["documentName"] == "Lease.pdf"
    assert metadata["chunkIndex"] == 0


@pytest.mark.asyncio
async def test_reingesting_shorter_text_removes_stale_vectors(service, fake_index):
    await service.do_ingest("doc-1", "Lease.pdf", _text(450))
    await service.do_ingest("doc-2", "Other.pdf", _text(100))

    result = await service.do_ingest("doc-1", "Lease.pdf", _text(150))

    assert result.segments == 2
    assert fake_index.ids_for("doc-1") == ["doc-1-chunk-0", "doc-1-chunk-1"]
    assert fake_index.ids_for("doc-2") == ["doc-2-chunk-0"]


@pytest.mark.asyncio
async def test_reingest_without_filtered_delete(service, fake_index):
    fake_index.filtered_delete_supported = False
    await service.do_ingest("doc-1", "Lease.pdf", _text(450))

    await service.do_ingest("doc-1", "Lease.pdf", _text(150))

    assert fake_index.ids_for("doc-1") == ["doc-1-chunk-0", "doc-1-chunk-1"]


@pytest.mark.asyncio
async def test_embedding_failure_keeps_previous_vectors(service, fake_index, fake_openai):
    await service.do_ingest("doc-1", "Lease.pdf", _text(450))
    before = fake_index.ids_for("doc-1")
    fake_openai.embedding_failures = [401]

    result = await service.do_ingest("doc-1", "Lease.pdf", _text(150))

    assert result.success is False
    assert result.vectors_written == 0
    assert result.error
    assert fake_index.ids_for("doc-1") == before


@pytest.mark.asyncio
async def test_failed_store_after_delete_leaves_document_unindexed(service, fake_index):
    await service.do_ingest("doc-1", "Lease.pdf", _text(450))
    fake_index.fail_upsert_calls = {fake_index.upsert_calls + 1}

    result = await service.do_ingest("doc-1", "Lease.pdf", _text(150))

    assert result.success is False
    assert result.vectors_written == 0
    assert result.error
    assert fake_index.ids_for("doc-1") == []

    retried = await service.do_ingest("doc-1", "Lease.pdf", _text(150))
    assert retried.success is True
    assert fake_index.ids_for("doc-1") == ["doc-1-chunk-0", "doc-1-chunk-1"]


@pytest.mark.asyncio
async def test_empty_text_is_not_indexed(service, fake_index):
    result = await service.do_ingest("doc-1", "Blank.pdf", "   \n ")

    assert result.success is False
    assert result.segments == 0
    assert fake_index.requests == []


@pytest.mark.asyncio
async def test_delete_removes_document_vectors(service, fake_index):
    await service.do_ingest("doc-1", "Lease.pdf", _text(450))
    await service.do_ingest("doc-2", "Other.pdf", _text(100))

    assert await service.do_delete("doc-1") is True

    assert fake_index.ids_for("doc-1") == []
    assert fake_index.ids_for("doc-2") == ["doc-2-chunk-0"]
