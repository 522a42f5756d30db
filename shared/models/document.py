"""Pydantic models for document segments, vector records and retrieval budgets.

Lifecycle:
  DocumentSegment : produced once per document by the segment splitter, immutable.
  EmbeddingRecord : segment vector + sanitized metadata, written to the vector store.
  ContextChunk    : query-time view of a similarity match, never persisted.
  ProcessingBudget: token / segment / memory ceiling applied to one retrieval.
"""

import math

from pydantic import BaseModel, ConfigDict, Field

from shared.helper.HelperConfig import HelperConfig

# rough average for English legal prose
CHARS_PER_TOKEN = 4


def estimate_tokens(text: str) -> int:
    """Approximate the token count of a text without a tokenizer."""
    if not text:
        return 0
    return math.ceil(len(text) / CHARS_PER_TOKEN)


def make_record_id(document_id: str, sequence_index: int) -> str:
    """Build the deterministic vector record id of a segment.

    Re-embedding a document therefore overwrites its previous vectors
    instead of duplicating them.
    """
    return f"{document_id}-chunk-{sequence_index}"


class DocumentSegment(BaseModel):
    """A contiguous span of document text, the unit of embedding and retrieval."""

    model_config = ConfigDict(frozen=True)

    id: str
    document_id: str
    document_name: str
    sequence_index: int = Field(ge=0)
    text: str
    approx_token_count: int = Field(ge=0)


class EmbeddingRecord(BaseModel):
    """Vector store record: ``{id, values, metadata}``."""

    id: str
    values: list[float]
    metadata: dict[str, str | int | float | bool | list[str]] = Field(default_factory=dict)


class ContextChunk(BaseModel):
    """A ranked similarity match prepared for prompt assembly."""

    id: str
    text: str = ""
    relevance_score: float = Field(default=0.0, ge=0.0, le=1.0)
    approx_token_count: int = Field(default=0, ge=0)
    document_id: str = ""
    document_name: str = ""
    sequence_index: int | None = None


class ProcessingBudget(BaseModel):
    """Ceiling applied when selecting retrieved segments for one answer.

    Attributes:
        max_context_tokens: Upper bound of the summed approx_token_count.
        max_segment_count:  Upper bound of the number of selected segments.
        memory_threshold_mb: Process memory above which retrieval waits for relief.
        max_documents:      Restrict the search to the first N requested documents (None = all).
    """

    model_config = ConfigDict(frozen=True)

    max_context_tokens: int = Field(gt=0)
    max_segment_count: int = Field(gt=0)
    memory_threshold_mb: float = Field(default=400.0, gt=0)
    max_documents: int | None = Field(default=None, gt=0)

    @classmethod
    def default(cls, helper_config: HelperConfig | None = None) -> "ProcessingBudget":
        """Normal retrieval profile (6000 tokens, 3 segments, 400MB)."""
        if helper_config is None:
            return cls(max_context_tokens=6000, max_segment_count=3, memory_threshold_mb=400)
        return cls(
            max_context_tokens=helper_config.get_int_val("CONTEXT_MAX_TOKENS", default=6000),
            max_segment_count=helper_config.get_int_val("CONTEXT_MAX_SEGMENTS", default=3, minimum=1),
            memory_threshold_mb=helper_config.get_float_val("CONTEXT_MEMORY_THRESHOLD_MB", default=400),
        )

    @classmethod
    def fallback(cls, helper_config: HelperConfig | None = None) -> "ProcessingBudget":
        """Degraded profile used after the normal profile failed: small context, one segment, one document."""
        if helper_config is None:
            return cls(max_context_tokens=2000, max_segment_count=1, memory_threshold_mb=400, max_documents=1)
        return cls(
            max_context_tokens=helper_config.get_int_val("CONTEXT_FALLBACK_MAX_TOKENS", default=2000),
            max_segment_count=helper_config.get_int_val("CONTEXT_FALLBACK_MAX_SEGMENTS", default=1, minimum=1),
            memory_threshold_mb=helper_config.get_float_val("CONTEXT_MEMORY_THRESHOLD_MB", default=400),
            max_documents=helper_config.get_int_val("CONTEXT_FALLBACK_MAX_DOCUMENTS", default=1),
        )
