from pydantic import BaseModel


class IndexStats(BaseModel):
    """Summary of the vector index, used as connection probe and health data."""

    dimension: int | None = None
    total_vector_count: int = 0
