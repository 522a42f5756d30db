"""Document router: index extracted text and clean up vectors of deleted documents."""

from fastapi import APIRouter, HTTPException, Request

from shared.models.search import IndexDocumentRequest, IngestionResult

document_router = APIRouter(prefix="/documents", tags=["Documents"])


@document_router.post("/{document_id}/index", response_model=IngestionResult, response_model_by_alias=True)
async def index_document(request: Request, document_id: str, body: IndexDocumentRequest) -> IngestionResult:
    """Split, embed and store a document's text, replacing earlier vectors.

    Raises:
        HTTPException: 400 for empty text, 503 if embedding or storage failed.
    """
    result = await request.app.state.ingestion_service.do_ingest(document_id, body.document_name, body.text)
    if not result.success:
        status = 400 if result.segments == 0 else 503
        raise HTTPException(status_code=status, detail=result.error)
    return result


@document_router.delete("/{document_id}/vectors")
async def delete_document_vectors(request: Request, document_id: str) -> dict:
    """Remove every vector of a document.

    Raises:
        HTTPException: 503 if the vector store could not be cleaned up.
    """
    if not await request.app.state.ingestion_service.do_delete(document_id):
        raise HTTPException(status_code=503, detail="Vector cleanup failed, please retry.")
    return {"documentId": document_id, "deleted": True}
