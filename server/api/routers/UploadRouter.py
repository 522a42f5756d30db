"""Upload router: server side of the chunked upload protocol."""

from fastapi import APIRouter, File, Form, HTTPException, Request, UploadFile

from shared.errors import (
    FileTooLargeError,
    PermanentValidationError,
    PipelineError,
    UploadSessionNotFoundError,
    UploadSessionStateError,
)
from shared.models.upload import (
    FileIdRequest,
    FinalizeResult,
    InitiateUploadRequest,
    UploadSession,
    UploadSessionResponse,
)

upload_router = APIRouter(prefix="/upload", tags=["Upload"])


def _to_http_error(exc: PipelineError) -> HTTPException:
    if isinstance(exc, FileTooLargeError):
        return HTTPException(status_code=413, detail=exc.message)
    if isinstance(exc, PermanentValidationError):
        return HTTPException(status_code=400, detail=exc.message)
    if isinstance(exc, UploadSessionNotFoundError):
        return HTTPException(status_code=404, detail=exc.message)
    if isinstance(exc, UploadSessionStateError):
        return HTTPException(status_code=409, detail=exc.message)
    return HTTPException(status_code=500, detail=exc.message)


def _session_response(session: UploadSession) -> UploadSessionResponse:
    return UploadSessionResponse(
        file_id=session.file_id,
        status=session.status,
        received_chunks=len(session.received_chunk_indices),
        total_chunks=session.total_chunks,
    )


@upload_router.post("/initiate", response_model=UploadSessionResponse, response_model_by_alias=True)
async def initiate_upload(request: Request, body: InitiateUploadRequest) -> UploadSessionResponse:
    """Open an upload session."""
    try:
        session = await request.app.state.upload_store.initiate(
            body.file_id, body.file_name, body.file_type, body.file_size, body.total_chunks,
        )
    except PipelineError as exc:
        raise _to_http_error(exc)
    return _session_response(session)


@upload_router.post("/chunk", response_model=UploadSessionResponse, response_model_by_alias=True)
async def upload_chunk(
    request: Request,
    chunk: UploadFile = File(...),
    file_id: str = Form(..., alias="fileId"),
    chunk_index: int = Form(..., alias="chunkIndex"),
    total_chunks: int = Form(..., alias="totalChunks"),
) -> UploadSessionResponse:
    """Receive one chunk (multipart: chunk, fileId, chunkIndex, totalChunks)."""
    data = await chunk.read()
    try:
        session = await request.app.state.upload_store.receive_chunk(file_id, chunk_index, total_chunks, data)
    except PipelineError as exc:
        raise _to_http_error(exc)
    return _session_response(session)


@upload_router.post("/finalize", response_model=FinalizeResult, response_model_by_alias=True)
async def finalize_upload(request: Request, body: FileIdRequest) -> FinalizeResult:
    """Reassemble the uploaded chunks. Repeating the call returns the same result."""
    try:
        return await request.app.state.upload_store.finalize(body.file_id)
    except PipelineError as exc:
        raise _to_http_error(exc)


@upload_router.delete("/abort", response_model=UploadSessionResponse, response_model_by_alias=True)
async def abort_upload(request: Request, body: FileIdRequest) -> UploadSessionResponse:
    """Cancel an upload and discard its chunks."""
    try:
        session = await request.app.state.upload_store.abort(body.file_id)
    except PipelineError as exc:
        raise _to_http_error(exc)
    return _session_response(session)
