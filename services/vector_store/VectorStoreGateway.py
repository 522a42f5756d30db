"""Lazily connected, failure-tolerant access to the vector index."""

import asyncio
from typing import Callable

from shared.clients.rag.RAGClientInterface import RAGClientInterface
from shared.clients.rag.RAGClientManager import RAGClientManager
from shared.clients.rag.models.QueryMatch import QueryMatch
from shared.errors import PipelineError, TransientNetworkError, VectorStoreUnavailableError
from shared.helper.HelperConfig import HelperConfig
from shared.models.document import ContextChunk, EmbeddingRecord, estimate_tokens

UPSERT_BATCH_SIZE = 50      # records per upsert call
UPSERT_DELAY = 0.5          # seconds between upsert batches
DELETE_BATCH_SIZE = 1000    # ids per delete-by-ids call
DELETE_QUERY_TOP_K = 10000  # matches fetched per cleanup round
DELETE_MAX_ROUNDS = 20


class VectorStoreGateway:
    """Single owner of the vector store client.

    The client is created on first use. A failed connection attempt leaves the
    gateway unconnected so the next call tries again, and a transient failure
    during an operation drops the connection for the same reason.
    """

    def __init__(
        self,
        helper_config: HelperConfig,
        client_factory: Callable[[], RAGClientInterface] | None = None,
        upsert_delay: float | None = None,
    ) -> None:
        self.logging = helper_config.get_logger()
        self._client_factory = client_factory or (lambda: RAGClientManager(helper_config=helper_config).get_client())
        self._client: RAGClientInterface | None = None
        self._ready = False
        self._lock = asyncio.Lock()

        self.upsert_batch_size = helper_config.get_int_val("RAG_UPSERT_BATCH_SIZE", default=UPSERT_BATCH_SIZE, minimum=1)
        self.upsert_delay = upsert_delay if upsert_delay is not None else helper_config.get_float_val("RAG_UPSERT_DELAY", default=UPSERT_DELAY, minimum=0)
        self.delete_batch_size = helper_config.get_int_val("RAG_DELETE_BATCH_SIZE", default=DELETE_BATCH_SIZE, minimum=1)
        self.delete_query_top_k = helper_config.get_int_val("RAG_DELETE_QUERY_TOP_K", default=DELETE_QUERY_TOP_K, minimum=1)

    ##########################################
    ############## CONNECTION ################
    ##########################################

    def is_connected(self) -> bool:
        return self._ready and self._client is not None

    async def ensure_connected(self) -> RAGClientInterface:
        """Create, boot and probe the vector store client if not done yet.

        Concurrent callers share one connection attempt.

        Returns:
            RAGClientInterface: The ready client.

        Raises:
            VectorStoreUnavailableError: If the client cannot be created or the probe fails.
        """
        if self._ready and self._client is not None:
            return self._client

        async with self._lock:
            if self._ready and self._client is not None:
                return self._client

            client: RAGClientInterface | None = None
            try:
                client = self._client_factory()
                await client.boot()
                await client.do_prepare()
                stats = await client.do_describe_stats()
            except Exception as exc:
                if client is not None:
                    await client.close()
                self.logging.error("Vector store connection failed: %s", exc)
                raise VectorStoreUnavailableError("Vector store is unavailable.", {"cause": str(exc)}) from exc

            if stats.dimension and stats.dimension != client.get_vector_size():
                self.logging.warning(
                    "Vector index dimension %d differs from configured RAG_VECTOR_SIZE %d.",
                    stats.dimension, client.get_vector_size(),
                )
            self.logging.info(
                "Connected to vector store '%s' (%d vectors).",
                client.get_engine_name(), stats.total_vector_count,
            )
            self._client = client
            self._ready = True
            return client

    async def _invalidate(self) -> None:
        async with self._lock:
            if self._client is not None:
                await self._client.close()
            self._client = None
            self._ready = False

    async def _handle_failure(self, exc: BaseException) -> None:
        if isinstance(exc, (TransientNetworkError, VectorStoreUnavailableError)):
            await self._invalidate()

    async def health_check(self) -> bool:
        """Return True if the vector store answers a stats probe."""
        try:
            client = await self.ensure_connected()
            await client.do_describe_stats()
            return True
        except PipelineError as exc:
            self.logging.warning("Vector store health check failed: %s", exc)
            await self._handle_failure(exc)
            return False

    async def close(self) -> None:
        await self._invalidate()

    ##########################################
    ################ WRITES ##################
    ##########################################

    async def upsert(self, records: list[EmbeddingRecord]) -> int:
        """Write records in batches.

        The first batch must succeed: its failure means the store is not
        usable and aborts the call. Failures of later batches are logged and
        skipped.

        Args:
            records (list[EmbeddingRecord]): Records to write.

        Returns:
            int: Number of records acknowledged by the store.

        Raises:
            VectorStoreUnavailableError: If the store is unreachable or the first batch fails.
        """
        if not records:
            return 0
        client = await self.ensure_connected()

        written = 0
        total_batches = (len(records) + self.upsert_batch_size - 1) // self.upsert_batch_size
        for batch_no, start in enumerate(range(0, len(records), self.upsert_batch_size), start=1):
            batch = records[start:start + self.upsert_batch_size]
            try:
                written += await client.do_upsert(batch)
            except PipelineError as exc:
                if batch_no == 1:
                    self.logging.error("First upsert batch failed, aborting: %s", exc)
                    await self._handle_failure(exc)
                    raise VectorStoreUnavailableError("Vector store rejected the first upsert batch.", {"cause": str(exc)}) from exc
                self.logging.warning("Upsert batch %d/%d failed, skipping %d records: %s", batch_no, total_batches, len(batch), exc)
                continue
            if batch_no < total_batches and self.upsert_delay > 0:
                await asyncio.sleep(self.upsert_delay)

        self.logging.info("Upserted %d of %d records.", written, len(records))
        return written

    async def delete_by_document(self, document_id: str) -> bool:
        """Remove every record of a document.

        Uses a filtered delete where the backend supports it and falls back to
        query + delete by ids otherwise or when the filtered delete fails.

        Args:
            document_id (str): The document whose records are removed.

        Returns:
            bool: True if no record of the document is left, False on failure.
        """
        try:
            client = await self.ensure_connected()
        except VectorStoreUnavailableError as exc:
            self.logging.error("Cannot delete vectors of document %s: %s", document_id, exc)
            return False

        if client.supports_filtered_delete():
            try:
                await client.do_delete_by_filter(document_id)
                self.logging.info("Deleted vectors of document %s by filter.", document_id)
                return True
            except PipelineError as exc:
                self.logging.warning("Filtered delete for document %s failed, falling back to id delete: %s", document_id, exc)

        try:
            return await self._delete_by_query(client, document_id)
        except PipelineError as exc:
            self.logging.error("Deleting vectors of document %s failed: %s", document_id, exc)
            await self._handle_failure(exc)
            return False

    async def _delete_by_query(self, client: RAGClientInterface, document_id: str) -> bool:
        # cosine indexes reject all-zero vectors; the filter does the selection
        probe = [0.0] * client.get_vector_size()
        probe[0] = 1.0
        deleted = 0
        for _ in range(DELETE_MAX_ROUNDS):
            matches = await client.do_query(probe, top_k=self.delete_query_top_k, document_ids=[document_id])
            ids = [match.id for match in matches]
            if not ids:
                self.logging.info("Deleted %d vectors of document %s by id.", deleted, document_id)
                return True
            for start in range(0, len(ids), self.delete_batch_size):
                await client.do_delete_by_ids(ids[start:start + self.delete_batch_size])
            deleted += len(ids)
        self.logging.error("Vectors of document %s still present after %d cleanup rounds.", document_id, DELETE_MAX_ROUNDS)
        return False

    ##########################################
    ################ READS ###################
    ##########################################

    @staticmethod
    def _to_context_chunk(match: QueryMatch) -> ContextChunk:
        metadata = match.metadata or {}
        text = metadata.get("text")
        text = text if isinstance(text, str) else ""
        document_id = metadata.get("documentId")
        document_name = metadata.get("documentName")
        chunk_index = metadata.get("chunkIndex")
        score = match.score if match.score is not None else 0.0
        return ContextChunk(
            id=match.id,
            text=text,
            relevance_score=min(1.0, max(0.0, float(score))),
            approx_token_count=estimate_tokens(text),
            document_id=document_id if isinstance(document_id, str) else "",
            document_name=document_name if isinstance(document_name, str) else "",
            # stores may return integral floats for stored ints
            sequence_index=int(chunk_index) if isinstance(chunk_index, (int, float)) and not isinstance(chunk_index, bool) else None,
        )

    async def query(self, vector: list[float], document_ids: list[str] | None = None, top_k: int = 5) -> list[ContextChunk]:
        """Similarity search, degraded to an empty result on any store failure.

        Args:
            vector (list[float]): Query embedding.
            document_ids (list[str] | None): Restrict matches to these documents.
            top_k (int): Maximum number of results.

        Returns:
            list[ContextChunk]: At most ``top_k`` chunks in store order.
        """
        try:
            client = await self.ensure_connected()
            matches = await client.do_query(vector, top_k=top_k, document_ids=document_ids)
        except PipelineError as exc:
            self.logging.error("Vector query failed, continuing without context: %s", exc)
            await self._handle_failure(exc)
            return []
        return [self._to_context_chunk(match) for match in matches[:top_k]]
