"""Client-side chunked file transfer.

Files are announced with ``initiate``, sent as fixed-size chunks over a
bounded number of concurrent requests, and closed with ``finalize``. Each
chunk is retried on its own with exponential backoff.
"""

import asyncio
import mimetypes
import os
import time
import uuid
from pathlib import Path
from typing import Callable, NamedTuple

from shared.clients.upload.UploadClientInterface import UploadClientInterface
from shared.errors import FileTooLargeError, PipelineError
from shared.helper.HelperConfig import HelperConfig
from shared.helper.HelperRetry import RetryPolicy
from shared.models.upload import MIB, ChunkUploadConfig, UploadProgress, UploadResult


class FileChunk(NamedTuple):
    """Byte range [start, end) of a file. Bytes are only read when sent."""

    path: Path
    index: int
    start: int
    end: int

    @property
    def size(self) -> int:
        return self.end - self.start

    def read(self) -> bytes:
        with open(self.path, "rb") as handle:
            handle.seek(self.start)
            return handle.read(self.size)


def create_file_chunks(path: Path, file_size: int, chunk_size: int) -> list[FileChunk]:
    """Split a file of ``file_size`` bytes into chunk views. An empty file is one empty chunk."""
    if file_size == 0:
        return [FileChunk(path, 0, 0, 0)]
    return [
        FileChunk(path, index, start, min(start + chunk_size, file_size))
        for index, start in enumerate(range(0, file_size, chunk_size))
    ]


def generate_file_id() -> str:
    return f"upload_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"


def load_upload_config(helper_config: HelperConfig) -> ChunkUploadConfig:
    """Build the uploader settings from UPLOAD_CHUNK_* environment variables."""
    return ChunkUploadConfig(
        chunk_size=helper_config.get_int_val("UPLOAD_CHUNK_SIZE", default=MIB, minimum=1),
        max_concurrency=helper_config.get_int_val("UPLOAD_CHUNK_CONCURRENCY", default=2, minimum=1),
        retry_attempts=helper_config.get_int_val("UPLOAD_CHUNK_RETRY_ATTEMPTS", default=3, minimum=1),
        timeout=helper_config.get_float_val("UPLOAD_CHUNK_TIMEOUT", default=30.0),
        retry_base_delay=helper_config.get_float_val("UPLOAD_CHUNK_RETRY_BASE_DELAY", default=1.0, minimum=0),
        max_file_size=helper_config.get_int_val("UPLOAD_MAX_FILE_SIZE", default=50 * MIB),
    )


class _ProgressTracker:
    def __init__(self, total_bytes: int, total_chunks: int, on_progress: Callable[[UploadProgress], None] | None) -> None:
        self.total_bytes = total_bytes
        self.total_chunks = total_chunks
        self.uploaded_bytes = 0
        self.uploaded_chunks = 0
        self._on_progress = on_progress

    def chunk_done(self, chunk: FileChunk) -> None:
        self.uploaded_bytes += chunk.size
        self.uploaded_chunks += 1
        if self._on_progress is None:
            return
        percentage = 100 if self.total_bytes == 0 else round(self.uploaded_bytes * 100 / self.total_bytes)
        self._on_progress(UploadProgress(
            uploaded_bytes=self.uploaded_bytes,
            total_bytes=self.total_bytes,
            percentage=percentage,
            uploaded_chunks=self.uploaded_chunks,
            total_chunks=self.total_chunks,
            current_chunk=chunk.index,
        ))


class ChunkedUploader:
    """Uploads local files through an UploadClientInterface."""

    def __init__(
        self,
        helper_config: HelperConfig,
        upload_client: UploadClientInterface,
        config: ChunkUploadConfig | None = None,
    ) -> None:
        self.logging = helper_config.get_logger()
        self._client = upload_client
        self.config = config or load_upload_config(helper_config)

    ##########################################
    ############### CORE UPLOAD ##############
    ##########################################

    async def upload_file_in_chunks(
        self,
        path: str | Path,
        config: ChunkUploadConfig | None = None,
        on_progress: Callable[[UploadProgress], None] | None = None,
        file_type: str | None = None,
    ) -> UploadResult:
        """Upload a file in chunks.

        Files over ``config.max_file_size`` are refused before any request is made.
        If a chunk exhausts its retries the upload is aborted on the server.

        Args:
            path (str | Path): File to upload.
            config (ChunkUploadConfig | None): Per-call override of the uploader settings.
            on_progress (Callable | None): Called after every acknowledged chunk.
            file_type (str | None): MIME type, guessed from the file name if omitted.

        Returns:
            UploadResult: success=False carries the error message; no exception is raised
                for upload failures.
        """
        config = config or self.config
        path = Path(path)
        started = time.monotonic()
        file_id = generate_file_id()

        def _result(success: bool, file_size: int = 0, error: str | None = None) -> UploadResult:
            return UploadResult(
                file_id=file_id,
                file_name=path.name,
                file_size=file_size,
                upload_time=time.monotonic() - started,
                success=success,
                error=error,
            )

        try:
            file_size = await asyncio.to_thread(os.path.getsize, path)
        except OSError as exc:
            self.logging.error("Cannot read %s: %s", path, exc)
            return _result(False, error=f"Cannot read file: {exc}")

        if file_size > config.max_file_size:
            error = FileTooLargeError(
                f"File size exceeds {config.max_file_size // MIB}MB limit.",
                {"size": file_size, "limit": config.max_file_size},
            )
            self.logging.warning("Refusing upload of %s: %s", path.name, error)
            return _result(False, file_size, error.message)

        chunks = create_file_chunks(path, file_size, config.chunk_size)
        mime_type = file_type or mimetypes.guess_type(path.name)[0] or "application/octet-stream"
        self.logging.info("Uploading %s (%d bytes) in %d chunks as %s.", path.name, file_size, len(chunks), file_id)

        initiated = False
        try:
            if not self._client.is_booted():
                await self._client.boot()
            await self._client.do_initiate(file_id, path.name, mime_type, file_size, len(chunks))
            initiated = True
            await self._upload_chunks(file_id, chunks, config, _ProgressTracker(file_size, len(chunks), on_progress))
            await self._retry_policy(config).run(
                lambda: self._client.do_finalize(file_id),
                label=f"Finalize {file_id}",
                timeout=config.timeout,
                logger=self.logging,
            )
        except (PipelineError, OSError) as exc:
            self.logging.error("Upload %s failed: %s", file_id, exc)
            if initiated:
                await self.cancel_upload(file_id)
            return _result(False, file_size, exc.message if isinstance(exc, PipelineError) else str(exc))

        result = _result(True, file_size)
        self.logging.info("Upload %s completed in %.2fs.", file_id, result.upload_time)
        return result

    def _retry_policy(self, config: ChunkUploadConfig) -> RetryPolicy:
        return RetryPolicy(max_attempts=config.retry_attempts, base_delay=config.retry_base_delay)

    async def _upload_chunks(self, file_id: str, chunks: list[FileChunk], config: ChunkUploadConfig, tracker: _ProgressTracker) -> None:
        semaphore = asyncio.Semaphore(config.max_concurrency)
        retry_policy = self._retry_policy(config)

        async def _send(chunk: FileChunk) -> None:
            async with semaphore:
                data = await asyncio.to_thread(chunk.read)
                await retry_policy.run(
                    lambda: self._client.do_upload_chunk(file_id, chunk.index, len(chunks), data),
                    label=f"Chunk {chunk.index + 1}/{len(chunks)} of {file_id}",
                    timeout=config.timeout,
                    logger=self.logging,
                )
                tracker.chunk_done(chunk)

        tasks = [asyncio.create_task(_send(chunk)) for chunk in chunks]
        try:
            await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

    async def cancel_upload(self, file_id: str) -> bool:
        """Ask the server to abort an upload.

        Returns:
            bool: False if the server could not be reached or refused the abort.
        """
        try:
            if not self._client.is_booted():
                await self._client.boot()
            await self._client.do_abort(file_id)
            self.logging.info("Upload %s aborted.", file_id)
            return True
        except PipelineError as exc:
            self.logging.warning("Could not abort upload %s: %s", file_id, exc)
            return False
