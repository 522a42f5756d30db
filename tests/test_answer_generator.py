"""Tests for completion validation and the answer fallback chain."""

import httpx
import pytest

from services.answering.AnswerGenerator import AnswerGenerator, build_messages, validate_completion
from shared.clients.llm.openai.LLMClientOpenai import LLMClientOpenai
from shared.errors import PipelineError, ProviderAuthError, ResponseShapeError
from shared.helper.HelperRetry import RetryPolicy
from shared.models.document import ContextChunk


@pytest.fixture
def llm_client(helper_config, transport):
    return LLMClientOpenai(helper_config=helper_config, transport=transport)


@pytest.fixture
def generator(helper_config, llm_client):
    return AnswerGenerator(helper_config=helper_config, llm_client=llm_client)


@pytest.fixture
def chunks():
    return [
        ContextChunk(id="lease-chunk-0", text="Rent is due on the first.", relevance_score=0.9,
                     approx_token_count=7, document_id="lease", document_name="Lease.pdf"),
        ContextChunk(id="nda-chunk-2", text="Term of five years.", relevance_score=0.6,
                     approx_token_count=5, document_id="nda", document_name="NDA.docx"),
    ]


def _choice(message: dict | None = None, finish_reason: str = "stop") -> dict:
    choice = {"index": 0, "finish_reason": finish_reason}
    if message is not None:
        choice["message"] = message
    return {"choices": [choice]}


@pytest.mark.parametrize("response, reason", [
    (None, "missing_response"),
    ({"id": "x"}, "missing_choices"),
    ({"choices": "nope"}, "invalid_choices"),
    ({"choices": []}, "empty_choices"),
    (_choice(), "missing_message"),
    (_choice({"role": "assistant", "content": None, "refusal": "I can't help with that."}), "refused"),
    (_choice({"role": "assistant", "content": None}, finish_reason="length"), "truncated"),
    (_choice({"role": "assistant", "content": None}, finish_reason="content_filter"), "content_filter"),
    (_choice({"role": "assistant", "content": None}), "null_content"),
    (_choice({"role": "assistant"}), "undefined_content"),
    (_choice({"role": "assistant", "content": ["a"]}), "non_string_content"),
    (_choice({"role": "assistant", "content": "   "}), "empty_content"),
])
def test_validate_completion_reasons(response, reason):
    with pytest.raises(ResponseShapeError) as info:
        validate_completion(response)
    assert info.value.reason == reason


def test_validate_completion_returns_text():
    assert validate_completion(_choice({"role": "assistant", "content": "Yes."})) == "Yes."


def test_build_messages_labels_sources(chunks):
    messages = build_messages("When is rent due?", chunks)

    assert [m["role"] for m in messages] == ["system", "system", "user"]
    assert "[Source 1: Lease.pdf (lease)]\nRent is due on the first." in messages[1]["content"]
    assert "\n---\n[Source 2: NDA.docx (nda)]" in messages[1]["content"]
    assert messages[2]["content"] == "When is rent due?"


def test_build_messages_without_context():
    messages = build_messages("Hello?", [])
    assert "No specific relevant content" in messages[1]["content"]


@pytest.mark.asyncio
async def test_answer_uses_primary_model(generator, fake_openai, chunks):
    result = await generator.answer("When is rent due?", chunks)

    assert result.text == "Answer."
    assert result.model == "gpt-4"
    assert result.tokens_used == 42
    assert result.fallback_used is False
    call = fake_openai.chat_calls[0]
    assert (call["model"], call["max_tokens"], call["temperature"]) == ("gpt-4", 800, 0.3)


@pytest.mark.asyncio
async def test_transient_failures_are_retried(generator, fake_openai, chunks):
    fake_openai.chat_responses = [httpx.Response(500), httpx.Response(429)]

    result = await generator.answer("Q", chunks)

    assert result.fallback_used is False
    assert len(fake_openai.chat_calls) == 3


@pytest.mark.asyncio
async def test_fallback_after_primary_exhausted(generator, fake_openai, chunks):
    fake_openai.chat_responses = [httpx.Response(503) for _ in range(3)]

    result = await generator.answer("Q", chunks)

    assert result.fallback_used is True
    assert result.model == "gpt-3.5-turbo"
    assert [c["model"] for c in fake_openai.chat_calls] == ["gpt-4"] * 3 + ["gpt-3.5-turbo"]
    assert fake_openai.chat_calls[-1]["max_tokens"] == 800


@pytest.mark.asyncio
async def test_fallback_token_limit_is_capped(helper_config, fake_openai, transport, chunks, monkeypatch):
    monkeypatch.setenv("LLM_MAX_TOKENS", "4000")
    generator = AnswerGenerator(helper_config, LLMClientOpenai(helper_config=helper_config, transport=transport))
    fake_openai.chat_responses = [httpx.Response(503) for _ in range(3)]

    await generator.answer("Q", chunks)

    assert fake_openai.chat_calls[-1]["max_tokens"] == 1000


@pytest.mark.asyncio
async def test_refusal_goes_straight_to_fallback(generator, fake_openai, chunks):
    fake_openai.chat_responses = [_choice({"role": "assistant", "content": None, "refusal": "no"})]

    result = await generator.answer("Q", chunks)

    assert result.fallback_used is True
    assert len(fake_openai.chat_calls) == 2


@pytest.mark.asyncio
async def test_auth_failure_is_fatal(generator, fake_openai, chunks):
    fake_openai.chat_responses = [httpx.Response(401)]

    with pytest.raises(ProviderAuthError):
        await generator.answer("Q", chunks)
    assert len(fake_openai.chat_calls) == 1


@pytest.mark.asyncio
async def test_fails_when_fallback_fails_too(helper_config, llm_client, fake_openai, chunks):
    generator = AnswerGenerator(helper_config, llm_client, retry_policy=RetryPolicy(max_attempts=2, base_delay=0))
    fake_openai.chat_responses = [httpx.Response(500) for _ in range(3)]

    with pytest.raises(PipelineError, match="could not generate an answer"):
        await generator.answer("Q", chunks)
    assert len(fake_openai.chat_calls) == 3
