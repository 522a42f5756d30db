"""Ingestion service.

Splits a document's text into segments, embeds them via the embedding
batcher and replaces the document's vectors in the vector store.
"""

from services.ingestion.EmbeddingBatcher import EmbeddingBatcher
from services.ingestion.SegmentSplitter import SegmentSplitter
from services.vector_store.VectorStoreGateway import VectorStoreGateway
from shared.errors import PipelineError
from shared.helper.HelperConfig import HelperConfig
from shared.models.search import IngestionResult


class IngestionService:
    """Orchestrates split → embed → replace vectors for single documents."""

    def __init__(
        self,
        helper_config: HelperConfig,
        splitter: SegmentSplitter,
        embedding_batcher: EmbeddingBatcher,
        gateway: VectorStoreGateway,
    ) -> None:
        self.logging = helper_config.get_logger()
        self._splitter = splitter
        self._embedding_batcher = embedding_batcher
        self._gateway = gateway

    ##########################################
    ############### INGESTION ################
    ##########################################

    async def do_ingest(self, document_id: str, document_name: str, text: str) -> IngestionResult:
        """Index a single document.

        Embedding happens before anything is deleted, so a provider failure
        leaves the previously indexed vectors of the document untouched. A
        failed first upsert batch after the delete leaves the document without
        vectors until it is ingested again.

        Args:
            document_id (str): Identifier of the document.
            document_name (str): Human-readable name, stored with every record.
            text (str): Extracted document text.

        Returns:
            IngestionResult: Segment and vector counts, or the failure message.
        """
        segments = self._splitter.split_text(text, document_id=document_id, document_name=document_name)
        if not segments:
            self.logging.warning("Document %s has no text to index.", document_id)
            return IngestionResult(document_id=document_id, success=False, error="Document has no extractable text.")

        self.logging.info("Indexing document %s ('%s') with %d segments...", document_id, document_name, len(segments))
        try:
            records = await self._embedding_batcher.embed_all(segments)
        except PipelineError as exc:
            self.logging.error("Embedding document %s failed: %s", document_id, exc)
            return IngestionResult(document_id=document_id, segments=len(segments), success=False, error=exc.message)

        # stale records of a longer previous version would otherwise survive the upsert
        if not await self._gateway.delete_by_document(document_id):
            self.logging.warning("Could not remove previous vectors of document %s before indexing.", document_id)

        try:
            written = await self._gateway.upsert(records)
        except PipelineError as exc:
            self.logging.error("Storing vectors of document %s failed: %s", document_id, exc)
            return IngestionResult(document_id=document_id, segments=len(segments), success=False, error=exc.message)

        self.logging.info("Indexed document %s: %d of %d vectors written.", document_id, written, len(records))
        return IngestionResult(
            document_id=document_id,
            segments=len(segments),
            vectors_written=written,
            success=written > 0,
            error=None if written > 0 else "No vectors were written.",
        )

    async def do_delete(self, document_id: str) -> bool:
        """Remove all vectors of a deleted document.

        Returns:
            bool: True if the document has no vectors left.
        """
        deleted = await self._gateway.delete_by_document(document_id)
        if deleted:
            self.logging.info("Removed vectors of document %s.", document_id)
        return deleted
