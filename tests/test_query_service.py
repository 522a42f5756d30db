"""Tests for the query service fallback chain."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from server.api.services.QueryService import (
    ANSWER_UNAVAILABLE_MESSAGE,
    SNIPPET_LENGTH,
    AnswerUnavailableError,
    QueryService,
)
from shared.errors import PipelineError, ResponseShapeError, VectorStoreUnavailableError
from shared.models.document import ContextChunk
from shared.models.search import AnswerResult, QueryRequest


def _chunk(i: int, text: str = "clause") -> ContextChunk:
    return ContextChunk(
        id=f"doc-{i}-chunk-0",
        text=text,
        relevance_score=0.8,
        approx_token_count=10,
        document_id=f"doc-{i}",
        document_name=f"File {i}.pdf",
    )


@pytest.fixture
def context_selector():
    selector = MagicMock()
    selector.select_context = AsyncMock(return_value=[_chunk(1)])
    return selector


@pytest.fixture
def answer_generator():
    generator = MagicMock()
    generator.answer = AsyncMock(return_value=AnswerResult(text="The rent is due monthly.", tokens_used=12, model="gpt-4"))
    return generator


@pytest.fixture
def service(helper_config, context_selector, answer_generator):
    return QueryService(helper_config, context_selector=context_selector, answer_generator=answer_generator)


@pytest.mark.asyncio
async def test_answers_with_references(service, answer_generator):
    response = await service.do_query(QueryRequest(message="When is rent due?", document_ids=["doc-1"]))

    assert response.response == "The rent is due monthly."
    assert [ref.document_id for ref in response.references] == ["doc-1"]
    assert response.references[0].confidence == 0.8
    answer_generator.answer.assert_awaited_once()


@pytest.mark.asyncio
async def test_falls_back_to_smaller_budget(service, context_selector):
    context_selector.select_context.side_effect = [VectorStoreUnavailableError("index down"), [_chunk(2)]]

    response = await service.do_query(QueryRequest(message="Who is the landlord?"))

    assert [ref.document_id for ref in response.references] == ["doc-2"]
    budgets = [call.kwargs["budget"] for call in context_selector.select_context.await_args_list]
    assert budgets[0].max_segment_count == 3
    assert budgets[1].max_segment_count == 1
    assert budgets[1].max_documents == 1


@pytest.mark.asyncio
async def test_answers_without_context_when_both_budgets_fail(service, context_selector, answer_generator):
    context_selector.select_context.side_effect = PipelineError("no memory headroom")

    response = await service.do_query(QueryRequest(message="Summarise my case."))

    assert response.references == []
    assert answer_generator.answer.await_args.args[1] == []


@pytest.mark.asyncio
async def test_answer_failure_surfaces_generic_message(service, answer_generator):
    answer_generator.answer.side_effect = ResponseShapeError("Model refused.", "refused")

    with pytest.raises(AnswerUnavailableError) as info:
        await service.do_query(QueryRequest(message="Anything?"))

    assert info.value.message == ANSWER_UNAVAILABLE_MESSAGE
    assert "refused" not in str(info.value)


@pytest.mark.asyncio
async def test_snippets_are_truncated(service, context_selector):
    context_selector.select_context.return_value = [_chunk(1, text="x" * 1000)]

    response = await service.do_query(QueryRequest(message="Long?"))

    assert len(response.references[0].snippet) == SNIPPET_LENGTH
