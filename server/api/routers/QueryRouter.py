"""Query router: chat questions answered from the indexed documents."""

from fastapi import APIRouter, HTTPException, Request

from server.api.services.QueryService import AnswerUnavailableError
from shared.models.search import QueryRequest, QueryResponse

query_router = APIRouter()


@query_router.post(
    "/query",
    response_model=QueryResponse,
    response_model_by_alias=True,
    tags=["Query"],
)
async def handle_query(request: Request, body: QueryRequest) -> QueryResponse:
    """Answer a question, optionally restricted to some documents.

    Args:
        request (Request): The incoming FastAPI request (carries app state).
        body (QueryRequest): Question text and optional documentIds.

    Returns:
        QueryResponse: The answer and its references.

    Raises:
        HTTPException: 503 if no model could answer.
    """
    request.app.state.logging.info("Query received: %r", body.message[:80])
    try:
        return await request.app.state.query_service.do_query(body)
    except AnswerUnavailableError as exc:
        raise HTTPException(status_code=503, detail=exc.message)
