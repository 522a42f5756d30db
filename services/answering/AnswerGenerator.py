"""Prompt assembly, completion validation and model fallback."""

from typing import Any

from shared.clients.llm.LLMClientInterface import LLMClientInterface
from shared.errors import (
    PermanentValidationError,
    PipelineError,
    ProviderAuthError,
    ResponseShapeError,
)
from shared.helper.HelperConfig import HelperConfig
from shared.helper.HelperRetry import RetryPolicy
from shared.models.document import ContextChunk
from shared.models.search import AnswerResult

SYSTEM_PROMPT = """You are an advanced legal document assistant. Your job is to help users understand their legal documents, extract key information, and answer questions about the content with high accuracy.

Guidelines:
- Be clear, precise, and helpful
- Structure your responses with headers and bullet points when appropriate
- If there are specific clauses or sections to reference, cite them clearly
- Explain legal terminology in simple terms
- Always clarify that you're not providing legal advice, just information
- When appropriate, suggest what sections of a document might need further review by a legal professional
- If you find relevant information in the provided context, cite the specific document and section"""

CONTEXT_INTRO = "Here are the most relevant sections from the documents based on your question:\n\n"
NO_CONTEXT_NOTE = (
    "No specific relevant content was found in the user's documents for this question. "
    "Provide a general response and suggest a more specific question."
)
CONTEXT_SEPARATOR = "\n---\n"

# the same refusal or filter verdict would come back on every retry
NON_RETRYABLE_SHAPE_REASONS = {"refused", "content_filter"}


def _is_retryable_answer_error(error: BaseException) -> bool:
    if isinstance(error, (PermanentValidationError, ProviderAuthError)):
        return False
    if isinstance(error, ResponseShapeError) and error.reason in NON_RETRYABLE_SHAPE_REASONS:
        return False
    return True


def build_context(chunks: list[ContextChunk]) -> str:
    """Join chunks into one source-labelled context block."""
    parts = []
    for number, chunk in enumerate(chunks, start=1):
        label = chunk.document_name or "Unknown document"
        parts.append(f"[Source {number}: {label} ({chunk.document_id})]\n{chunk.text}")
    return CONTEXT_SEPARATOR.join(parts)


def build_messages(query: str, chunks: list[ContextChunk]) -> list[dict]:
    """Assemble the chat messages for a question.

    Args:
        query (str): The user question.
        chunks (list[ContextChunk]): Selected context, best first. May be empty.

    Returns:
        list[dict]: OpenAI-format messages: role instruction, context (or a
            no-context note) and the question.
    """
    messages = [{"role": "system", "content": SYSTEM_PROMPT}]
    if chunks:
        messages.append({"role": "system", "content": CONTEXT_INTRO + build_context(chunks)})
    else:
        messages.append({"role": "system", "content": NO_CONTEXT_NOTE})
    messages.append({"role": "user", "content": query})
    return messages


def validate_completion(response: Any) -> str:
    """Extract the answer text from a chat completion body.

    Args:
        response (Any): Parsed JSON body of a chat completion.

    Returns:
        str: The non-empty answer text.

    Raises:
        ResponseShapeError: With a reason naming the exact defect.
    """
    if not response:
        raise ResponseShapeError("Response is null or undefined.", reason="missing_response")
    if not isinstance(response, dict) or "choices" not in response or response["choices"] is None:
        raise ResponseShapeError("Response missing choices array.", reason="missing_choices")

    choices = response["choices"]
    if not isinstance(choices, list):
        raise ResponseShapeError("Choices is not an array.", reason="invalid_choices")
    if not choices:
        raise ResponseShapeError("Choices array is empty.", reason="empty_choices")

    first_choice = choices[0]
    if not isinstance(first_choice, dict) or not isinstance(first_choice.get("message"), dict):
        raise ResponseShapeError("First choice missing message.", reason="missing_message")

    message = first_choice["message"]
    if "content" not in message:
        raise ResponseShapeError("Message content is undefined.", reason="undefined_content")

    content = message["content"]
    if content is None:
        if message.get("refusal"):
            raise ResponseShapeError(f"Request refused: {message['refusal']}", reason="refused")
        finish_reason = first_choice.get("finish_reason")
        if finish_reason == "length":
            raise ResponseShapeError("Response truncated due to length limit.", reason="truncated")
        if finish_reason == "content_filter":
            raise ResponseShapeError("Response blocked by content filter.", reason="content_filter")
        raise ResponseShapeError("Message content is null, no content generated.", reason="null_content")

    if not isinstance(content, str):
        raise ResponseShapeError(f"Content is not a string: {type(content).__name__}", reason="non_string_content")
    if not content.strip():
        raise ResponseShapeError("Content is empty string.", reason="empty_content")
    return content


class AnswerGenerator:
    """Turns a question and its context into a validated answer.

    The primary model gets a retry policy; once it is exhausted the fallback
    model gets exactly one attempt with a reduced token limit.
    """

    def __init__(
        self,
        helper_config: HelperConfig,
        llm_client: LLMClientInterface,
        retry_policy: RetryPolicy | None = None,
    ) -> None:
        self.logging = helper_config.get_logger()
        self._llm_client = llm_client
        self._retry_policy = retry_policy or RetryPolicy(
            max_attempts=helper_config.get_int_val("ANSWER_RETRY_ATTEMPTS", default=3, minimum=1),
            base_delay=helper_config.get_float_val("ANSWER_RETRY_BASE_DELAY", default=2.0, minimum=0),
            is_retryable=_is_retryable_answer_error,
        )

    async def _complete(self, messages: list[dict], model: str, max_tokens: int) -> AnswerResult:
        if not self._llm_client.is_booted():
            await self._llm_client.boot()
        raw = await self._llm_client.do_chat(messages, model=model, max_tokens=max_tokens)
        text = validate_completion(raw)
        usage = raw.get("usage") if isinstance(raw.get("usage"), dict) else {}
        return AnswerResult(
            text=text,
            tokens_used=int(usage.get("total_tokens", 0) or 0),
            model=str(raw.get("model") or model),
        )

    async def answer(self, query: str, chunks: list[ContextChunk]) -> AnswerResult:
        """Generate an answer for a question.

        Args:
            query (str): The user question.
            chunks (list[ContextChunk]): Selected context, may be empty.

        Returns:
            AnswerResult: Answer text, tokens used, model and whether the fallback answered.

        Raises:
            ProviderAuthError: Immediately, credentials do not improve with retries.
            PipelineError: If the primary model and the fallback both fail.
        """
        messages = build_messages(query, chunks)
        primary_model = self._llm_client.chat_model
        max_tokens = self._llm_client.max_tokens

        try:
            return await self._retry_policy.run(
                lambda: self._complete(messages, primary_model, max_tokens),
                label=f"Completion with {primary_model}",
                logger=self.logging,
            )
        except ProviderAuthError:
            raise
        except PipelineError as exc:
            self.logging.warning("Primary model %s failed, trying fallback %s: %s", primary_model, self._llm_client.fallback_model, exc)

        fallback_model = self._llm_client.fallback_model
        fallback_tokens = min(max_tokens, self._llm_client.fallback_max_tokens)
        try:
            result = await self._complete(messages, fallback_model, fallback_tokens)
        except ProviderAuthError:
            raise
        except PipelineError as exc:
            self.logging.error("Fallback model %s failed: %s", fallback_model, exc)
            raise PipelineError(
                "The assistant could not generate an answer.",
                {"primary_model": primary_model, "fallback_model": fallback_model, "cause": str(exc)},
            ) from exc

        self.logging.info("Answer generated by fallback model %s.", fallback_model)
        return result.model_copy(update={"fallback_used": True})
