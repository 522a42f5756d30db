"""Batched, paced and retried embedding of document segments."""

import asyncio
import json
from typing import Any

from shared.clients.embed.EmbedClientInterface import EmbedClientInterface
from shared.errors import ResponseShapeError
from shared.helper.HelperConfig import HelperConfig
from shared.helper.HelperRetry import RetryPolicy
from shared.models.document import DocumentSegment, EmbeddingRecord

EMBED_BATCH_SIZE = 10       # segments per provider call
EMBED_BATCH_DELAY = 0.1     # seconds between batches
METADATA_MAX_BYTES = 1000   # utf-8 byte cap of a single metadata string


def _truncate_utf8(value: str, max_bytes: int = METADATA_MAX_BYTES) -> str:
    encoded = value.encode("utf-8")
    if len(encoded) <= max_bytes:
        return value
    # cutting inside a multi-byte sequence drops the partial character
    return encoded[:max_bytes].decode("utf-8", errors="ignore")


def sanitize_metadata(metadata: dict[str, Any]) -> dict[str, str | int | float | bool | list[str]]:
    """Reduce metadata to the value types a vector store accepts.

    - None values are dropped.
    - str, int, float and bool are kept (strings truncated to 1000 UTF-8 bytes).
    - Lists made only of strings are kept.
    - Anything else is JSON-stringified (``str()`` if that fails) and truncated.

    Args:
        metadata (dict[str, Any]): Raw metadata.

    Returns:
        dict: Sanitized metadata.
    """
    cleaned: dict[str, str | int | float | bool | list[str]] = {}
    for key, value in metadata.items():
        if value is None:
            continue
        if isinstance(value, str):
            cleaned[key] = _truncate_utf8(value)
        elif isinstance(value, (bool, int, float)):
            cleaned[key] = value
        elif isinstance(value, list) and all(isinstance(item, str) for item in value):
            cleaned[key] = list(value)
        else:
            try:
                serialized = json.dumps(value)
            except (TypeError, ValueError):
                serialized = str(value)
            cleaned[key] = _truncate_utf8(serialized)
    return cleaned


class EmbeddingBatcher:
    """Turns segments into embedding records, one provider call per batch."""

    def __init__(
        self,
        helper_config: HelperConfig,
        embed_client: EmbedClientInterface,
        retry_policy: RetryPolicy | None = None,
        batch_delay: float | None = None,
    ) -> None:
        self.logging = helper_config.get_logger()
        self._embed_client = embed_client
        self.batch_size = helper_config.get_int_val("EMBED_BATCH_SIZE", default=EMBED_BATCH_SIZE, minimum=1)
        self.batch_delay = batch_delay if batch_delay is not None else helper_config.get_float_val("EMBED_BATCH_DELAY", default=EMBED_BATCH_DELAY, minimum=0)
        self._retry_policy = retry_policy or RetryPolicy(
            max_attempts=helper_config.get_int_val("EMBED_RETRY_ATTEMPTS", default=3, minimum=1),
            base_delay=helper_config.get_float_val("EMBED_RETRY_BASE_DELAY", default=1.0, minimum=0),
        )

    ##########################################
    ############### EMBEDDING ################
    ##########################################

    async def _embed_batch(self, texts: list[str], label: str) -> list[list[float]]:
        async def _call() -> list[list[float]]:
            if not self._embed_client.is_booted():
                await self._embed_client.boot()
            vectors = await self._embed_client.do_embed(texts)
            if len(vectors) != len(texts):
                raise ResponseShapeError(
                    "Embedding provider returned a different number of vectors.",
                    reason="count_mismatch",
                    details={"expected": len(texts), "received": len(vectors)},
                )
            return vectors

        return await self._retry_policy.run(_call, label=label, logger=self.logging)

    async def embed_all(self, segments: list[DocumentSegment]) -> list[EmbeddingRecord]:
        """Embed all segments of a document in order.

        Batches are processed sequentially with a short pause between them.
        A batch that still fails after its retries fails the whole call, so a
        document is never half embedded.

        Args:
            segments (list[DocumentSegment]): Segments of one document.

        Returns:
            list[EmbeddingRecord]: One record per segment, same order.

        Raises:
            PipelineError: The last error of a batch that exhausted its retries,
                or a non-retryable error (e.g. ProviderAuthError) immediately.
        """
        records: list[EmbeddingRecord] = []
        total_batches = (len(segments) + self.batch_size - 1) // self.batch_size
        for batch_no, start in enumerate(range(0, len(segments), self.batch_size), start=1):
            batch = segments[start:start + self.batch_size]
            vectors = await self._embed_batch(
                [segment.text for segment in batch],
                label=f"Embedding batch {batch_no}/{total_batches}",
            )
            for segment, vector in zip(batch, vectors):
                records.append(EmbeddingRecord(
                    id=segment.id,
                    values=vector,
                    metadata=sanitize_metadata({
                        "documentId": segment.document_id,
                        "documentName": segment.document_name,
                        "chunkIndex": segment.sequence_index,
                        "text": segment.text,
                    }),
                ))
            self.logging.debug("Embedded batch %d/%d (%d segments).", batch_no, total_batches, len(batch))
            if batch_no < total_batches and self.batch_delay > 0:
                await asyncio.sleep(self.batch_delay)
        return records

    async def embed_one(self, text: str) -> list[float]:
        """Embed a single text, typically a user query.

        Raises:
            PipelineError: If the provider keeps failing or rejects the request.
        """
        vectors = await self._embed_batch([text], label="Query embedding")
        return vectors[0]
