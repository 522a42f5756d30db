"""Pydantic models for the chunked upload protocol.

Wire models use camelCase aliases (``fileId``, ``chunkIndex``, ...) and
accept snake_case names as well.
"""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

MIB = 1024 * 1024


class WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class UploadStatus(str, Enum):
    INITIATED = "Initiated"
    UPLOADING = "Uploading"
    ALL_CHUNKS_RECEIVED = "AllChunksReceived"
    FINALIZED = "Finalized"
    ABORTED = "Aborted"


class FinalizeResult(WireModel):
    """Outcome of reassembling an upload on the server."""

    file_id: str
    file_name: str
    mime_type: str
    file_size: int
    total_chunks: int
    path: str
    success: bool = True


class UploadSession(BaseModel):
    """Server-side state of one chunked upload.

    Only the upload session store mutates instances of this model.
    """

    file_id: str
    file_name: str
    mime_type: str
    total_bytes: int = Field(ge=0)
    total_chunks: int = Field(ge=1)
    received_chunk_indices: set[int] = Field(default_factory=set)
    status: UploadStatus = UploadStatus.INITIATED
    created_at: float
    closed_at: float | None = None
    result: FinalizeResult | None = None

    def all_chunks_received(self) -> bool:
        return len(self.received_chunk_indices) == self.total_chunks

    def missing_chunk_indices(self) -> list[int]:
        return [i for i in range(self.total_chunks) if i not in self.received_chunk_indices]

    def is_closed(self) -> bool:
        return self.status in (UploadStatus.FINALIZED, UploadStatus.ABORTED)


class ChunkUploadConfig(BaseModel):
    """Client-side tuning of a chunked upload.

    Attributes:
        chunk_size:       Bytes per chunk (default 1 MiB).
        max_concurrency:  Chunks in flight at the same time (default 2).
        retry_attempts:   Attempts per chunk, the first one included (default 3).
        timeout:          Seconds per attempt before it is cancelled (default 30).
        retry_base_delay: Seconds waited after the first failed attempt; doubles afterwards.
        max_file_size:    Absolute ceiling in bytes (default 50 MiB).
    """

    chunk_size: int = Field(default=MIB, gt=0)
    max_concurrency: int = Field(default=2, ge=1)
    retry_attempts: int = Field(default=3, ge=1)
    timeout: float = Field(default=30.0, gt=0)
    retry_base_delay: float = Field(default=1.0, ge=0)
    max_file_size: int = Field(default=50 * MIB, gt=0)


class UploadProgress(BaseModel):
    uploaded_bytes: int
    total_bytes: int
    percentage: int
    uploaded_chunks: int
    total_chunks: int
    current_chunk: int | None = None


class UploadResult(BaseModel):
    """Client-side outcome of upload_file_in_chunks()."""

    file_id: str
    file_name: str
    file_size: int
    upload_time: float
    success: bool
    error: str | None = None


class InitiateUploadRequest(WireModel):
    file_id: str = Field(min_length=1)
    file_name: str = Field(min_length=1)
    file_type: str = "application/octet-stream"
    file_size: int = Field(ge=0)
    total_chunks: int = Field(ge=1)


class FileIdRequest(WireModel):
    file_id: str = Field(min_length=1)


class UploadSessionResponse(WireModel):
    file_id: str
    status: UploadStatus
    received_chunks: int
    total_chunks: int
