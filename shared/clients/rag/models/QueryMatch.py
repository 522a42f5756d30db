from pydantic import BaseModel, Field


class QueryMatch(BaseModel):
    """Backend-neutral similarity match returned by RAGClientInterface.do_query().

    Attributes:
        id:       Record id as written by the pipeline ("{documentId}-chunk-{n}").
        score:    Raw similarity score reported by the backend, None if absent.
        metadata: Stored metadata of the record, possibly empty.
    """

    id: str
    score: float | None = None
    metadata: dict = Field(default_factory=dict)
