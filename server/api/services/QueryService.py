"""Query service: context selection with fallback budget, answer, references."""

from services.answering.AnswerGenerator import AnswerGenerator
from services.retrieval.ContextSelector import ContextSelector
from shared.errors import PipelineError
from shared.helper.HelperConfig import HelperConfig
from shared.models.document import ContextChunk, ProcessingBudget
from shared.models.search import QueryRequest, QueryResponse, Reference

SNIPPET_LENGTH = 200
ANSWER_UNAVAILABLE_MESSAGE = "The assistant is temporarily unavailable. Please try again in a moment."


class AnswerUnavailableError(PipelineError):
    """Raised when no model produced an answer; carries only a user-facing message."""


class QueryService:
    """Answers a question from the user's indexed documents."""

    def __init__(
        self,
        helper_config: HelperConfig,
        context_selector: ContextSelector,
        answer_generator: AnswerGenerator,
    ) -> None:
        self.logging = helper_config.get_logger()
        self._context_selector = context_selector
        self._answer_generator = answer_generator
        self._default_budget = ProcessingBudget.default(helper_config)
        self._fallback_budget = ProcessingBudget.fallback(helper_config)

    ##########################################
    ################ CORE ####################
    ##########################################

    async def do_query(self, request: QueryRequest) -> QueryResponse:
        """Answer a chat question.

        Context is selected with the default budget, then with the fallback
        budget, and finally the question is answered without context.

        Args:
            request (QueryRequest): Question and optional document scope.

        Returns:
            QueryResponse: Answer text and the cited segments.

        Raises:
            AnswerUnavailableError: If no answer could be generated.
        """
        self.logging.info("Executing query: %r (documents: %s)", request.message[:80], request.document_ids or "all")

        chunks = await self._select_with_fallback(request)
        try:
            answer = await self._answer_generator.answer(request.message, chunks)
        except PipelineError as exc:
            self.logging.error("Answer generation failed: %s", exc)
            raise AnswerUnavailableError(ANSWER_UNAVAILABLE_MESSAGE) from exc

        references = self._build_references(chunks)
        self.logging.info(
            "Query complete: model=%s fallback=%s references=%d tokens=%d",
            answer.model, answer.fallback_used, len(references), answer.tokens_used,
        )
        return QueryResponse(response=answer.text, references=references)

    ##########################################
    ############### HELPERS ##################
    ##########################################

    async def _select_with_fallback(self, request: QueryRequest) -> list[ContextChunk]:
        for label, budget in (("default", self._default_budget), ("fallback", self._fallback_budget)):
            try:
                return await self._context_selector.select_context(
                    request.message,
                    document_ids=request.document_ids,
                    budget=budget,
                )
            except PipelineError as exc:
                self.logging.warning("Context selection with %s budget failed: %s", label, exc)
        self.logging.warning("Answering without document context.")
        return []

    def _build_references(self, chunks: list[ContextChunk]) -> list[Reference]:
        return [
            Reference(
                document_id=chunk.document_id,
                snippet=chunk.text[:SNIPPET_LENGTH],
                confidence=chunk.relevance_score,
            )
            for chunk in chunks
        ]
