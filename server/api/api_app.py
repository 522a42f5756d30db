"""FastAPI application entry point for the legal document pipeline API."""

import os
from contextlib import asynccontextmanager
from typing import AsyncGenerator

import httpx
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from server.api.routers.DocumentRouter import document_router
from server.api.routers.HealthRouter import health_router
from server.api.routers.QueryRouter import query_router
from server.api.routers.UploadRouter import upload_router
from server.api.services.QueryService import QueryService
from services.answering.AnswerGenerator import AnswerGenerator
from services.ingestion.EmbeddingBatcher import EmbeddingBatcher
from services.ingestion.IngestionService import IngestionService
from services.ingestion.SegmentSplitter import SegmentSplitter
from services.retrieval.ContextSelector import ContextSelector
from services.upload.UploadSessionStore import UploadSessionStore
from services.vector_store.VectorStoreGateway import VectorStoreGateway
from shared.clients.embed.EmbedClientManager import EmbedClientManager
from shared.clients.llm.LLMClientManager import LLMClientManager
from shared.clients.rag.RAGClientManager import RAGClientManager
from shared.errors import VectorStoreUnavailableError
from shared.helper.HelperConfig import HelperConfig
from shared.helper.HelperResources import ResourceGovernor
from shared.logging.logging_setup import setup_logging

logging = setup_logging()
app_version = os.getenv("APP_VERSION", "unknown")


def create_app(http_transport: httpx.AsyncBaseTransport | None = None) -> FastAPI:
    """Build the API application.

    Args:
        http_transport (httpx.AsyncBaseTransport | None): Transport shared by all
            outgoing provider clients; None uses the network.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Manage application startup and shutdown."""
        app.state.logging = setup_logging()
        app.state.config = HelperConfig(logger=app.state.logging)
        config = app.state.config

        # Initialise clients
        embed_client = EmbedClientManager(helper_config=config, transport=http_transport).get_client()
        llm_client = LLMClientManager(helper_config=config, transport=http_transport).get_client()
        await embed_client.boot()
        await llm_client.boot()

        app.state.vector_store = VectorStoreGateway(
            helper_config=config,
            client_factory=lambda: RAGClientManager(helper_config=config, transport=http_transport).get_client(),
        )
        try:
            await app.state.vector_store.ensure_connected()
        except VectorStoreUnavailableError as exc:
            app.state.logging.warning("Vector store not reachable at startup, will retry on first use: %s", exc)

        # Wire up services
        embedding_batcher = EmbeddingBatcher(helper_config=config, embed_client=embed_client)
        app.state.ingestion_service = IngestionService(
            helper_config=config,
            splitter=SegmentSplitter(helper_config=config),
            embedding_batcher=embedding_batcher,
            gateway=app.state.vector_store,
        )
        app.state.query_service = QueryService(
            helper_config=config,
            context_selector=ContextSelector(
                helper_config=config,
                embedding_batcher=embedding_batcher,
                gateway=app.state.vector_store,
                governor=ResourceGovernor(helper_config=config),
            ),
            answer_generator=AnswerGenerator(helper_config=config, llm_client=llm_client),
        )
        app.state.upload_store = UploadSessionStore(helper_config=config)

        app.state.logging.info("Legal pipeline API ready.", color="green")
        yield

        # Shutdown
        await app.state.vector_store.close()
        await embed_client.close()
        await llm_client.close()
        app.state.logging.info("Legal pipeline API shut down.")

    app = FastAPI(
        title="Legal Document Pipeline",
        description="Chunked document upload, ingestion and context-budgeted question answering.",
        version=app_version,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(health_router)
    app.include_router(upload_router)
    app.include_router(document_router)
    app.include_router(query_router)
    return app


app = create_app()


# Server Start
if __name__ == "__main__":
    # start server
    import uvicorn
    port = int(os.getenv("API_PORT", "8000"))
    logging.info(f"Starting legal pipeline API v{app_version} from root dir: {os.getenv('ROOT_DIR', os.getcwd())} on port {port}...")
    uvicorn.run(app, host="0.0.0.0", port=port)
