"""Budgeted selection of retrieved segments for prompt assembly."""

from services.ingestion.EmbeddingBatcher import EmbeddingBatcher
from services.vector_store.VectorStoreGateway import VectorStoreGateway
from shared.helper.HelperConfig import HelperConfig
from shared.helper.HelperResources import ResourceGovernor
from shared.models.document import ContextChunk, ProcessingBudget

CANDIDATE_FACTOR = 5        # candidates fetched per selectable segment
BASE_MEMORY_COST_MB = 50
MEMORY_COST_PER_DOCUMENT_MB = 30


def estimate_memory_requirement(document_count: int) -> float:
    """Rough memory cost of one retrieval in MB."""
    return BASE_MEMORY_COST_MB + MEMORY_COST_PER_DOCUMENT_MB * max(document_count, 1)


def select_within_budget(chunks: list[ContextChunk], budget: ProcessingBudget) -> list[ContextChunk]:
    """Pick the best chunks that fit the budget.

    Chunks are ranked by relevance (ties keep their input order) and taken
    greedily. Selection stops at the first chunk that would exceed either
    the token or the segment ceiling, even if a smaller later chunk would fit.

    Args:
        chunks (list[ContextChunk]): Candidate chunks.
        budget (ProcessingBudget): Ceilings to respect.

    Returns:
        list[ContextChunk]: Selected chunks, best first.
    """
    ranked = sorted(chunks, key=lambda chunk: chunk.relevance_score, reverse=True)
    selected: list[ContextChunk] = []
    used_tokens = 0
    for chunk in ranked:
        if len(selected) >= budget.max_segment_count:
            break
        if used_tokens + chunk.approx_token_count > budget.max_context_tokens:
            break
        selected.append(chunk)
        used_tokens += chunk.approx_token_count
    return selected


class ContextSelector:
    """Embeds a question and selects the context segments to answer it with."""

    def __init__(
        self,
        helper_config: HelperConfig,
        embedding_batcher: EmbeddingBatcher,
        gateway: VectorStoreGateway,
        governor: ResourceGovernor,
    ) -> None:
        self.logging = helper_config.get_logger()
        self._embedding_batcher = embedding_batcher
        self._gateway = gateway
        self._governor = governor
        self.default_budget = ProcessingBudget.default(helper_config)

    async def select_context(
        self,
        query: str,
        document_ids: list[str] | None = None,
        budget: ProcessingBudget | None = None,
    ) -> list[ContextChunk]:
        """Retrieve and select context for a question.

        Args:
            query (str): The user question.
            document_ids (list[str] | None): Restrict retrieval to these documents.
            budget (ProcessingBudget | None): Ceilings, defaults to ProcessingBudget.default().

        Returns:
            list[ContextChunk]: Selected chunks within the budget, possibly empty.

        Raises:
            PipelineError: If the question cannot be embedded.
        """
        budget = budget or self.default_budget
        if document_ids and budget.max_documents is not None:
            document_ids = document_ids[:budget.max_documents]

        cost = estimate_memory_requirement(len(document_ids) if document_ids else 1)
        async with self._governor.admission(cost, budget.memory_threshold_mb) as admitted:
            if not admitted:
                self.logging.warning("Retrieval runs above the memory threshold of %.0fMB.", budget.memory_threshold_mb)
            vector = await self._embedding_batcher.embed_one(query)
            candidates = await self._gateway.query(
                vector,
                document_ids=document_ids or None,
                top_k=budget.max_segment_count * CANDIDATE_FACTOR,
            )
            selected = select_within_budget(candidates, budget)

        self.logging.info(
            "Selected %d of %d candidate segments (%d tokens).",
            len(selected), len(candidates), sum(chunk.approx_token_count for chunk in selected),
        )
        return selected
