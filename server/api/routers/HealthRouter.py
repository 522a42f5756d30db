from fastapi import APIRouter, Request

health_router = APIRouter(tags=["Health"])


@health_router.get("/health")
async def health(request: Request) -> dict:
    """Liveness plus vector store reachability."""
    vector_store_ok = await request.app.state.vector_store.health_check()
    return {
        "status": "ok" if vector_store_ok else "degraded",
        "vectorStore": "connected" if vector_store_ok else "unavailable",
    }
