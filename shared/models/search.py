"""Pydantic models for queries, answers and ingestion results."""

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class QueryRequest(BaseModel):
    """Incoming chat question, optionally scoped to specific documents."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    message: str = Field(min_length=1)
    document_ids: list[str] | None = None


class Reference(BaseModel):
    """A cited source segment of an answer."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    document_id: str
    snippet: str
    confidence: float


class QueryResponse(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    response: str
    references: list[Reference] = Field(default_factory=list)


class AnswerResult(BaseModel):
    """Validated model output."""

    text: str
    tokens_used: int = 0
    model: str
    fallback_used: bool = False


class IndexDocumentRequest(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    document_name: str = Field(min_length=1)
    text: str


class IngestionResult(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    document_id: str
    segments: int = 0
    vectors_written: int = 0
    success: bool
    error: str | None = None
