"""Server-side state of chunked uploads.

Chunks are spooled to ``{UPLOAD_DIR}/{file_id}/{index}.part`` as they arrive
and reassembled by logical index on finalize, so arrival order never
matters. Finalized files land in ``{UPLOAD_DIR}/files``.
"""

import asyncio
import os
import re
import secrets
import shutil
import time
from pathlib import Path
from typing import Callable

from shared.errors import (
    FileTooLargeError,
    PermanentValidationError,
    UploadSessionNotFoundError,
    UploadSessionStateError,
)
from shared.helper.HelperConfig import HelperConfig
from shared.models.upload import MIB, FinalizeResult, UploadSession, UploadStatus

MAX_FILE_SIZE = 50 * MIB
RETENTION_SECONDS = 3600
FILES_DIR_NAME = "files"

_FILE_ID_PATTERN = re.compile(r"^[A-Za-z0-9_\-]{1,128}$")


def make_safe_filename(original_name: str, now_ms: int | None = None) -> str:
    """Build a collision-free storage name that keeps the original extension.

    Example: ``"My Lease (v2).pdf"`` → ``"My_Lease__v2__1718000000000_1a2b3c4d5e6f7a8b.pdf"``
    """
    now_ms = now_ms if now_ms is not None else int(time.time() * 1000)
    stem, extension = os.path.splitext(os.path.basename(original_name))
    safe_stem = re.sub(r"[^a-zA-Z0-9]", "_", stem)[:20] or "file"
    safe_extension = re.sub(r"[^a-zA-Z0-9.]", "", extension)
    return f"{safe_stem}_{now_ms}_{secrets.token_hex(8)}{safe_extension}"


class UploadSessionStore:
    """Owns every UploadSession and the spooled chunk data behind it."""

    def __init__(
        self,
        helper_config: HelperConfig,
        upload_dir: str | Path | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.logging = helper_config.get_logger()
        self.upload_dir = Path(upload_dir) if upload_dir else helper_config.get_path_val("UPLOAD_DIR", default="uploads")
        self.files_dir = self.upload_dir / FILES_DIR_NAME
        self.max_file_size = helper_config.get_int_val("UPLOAD_MAX_FILE_SIZE", default=MAX_FILE_SIZE)
        self.retention_seconds = helper_config.get_float_val("UPLOAD_RETENTION_SECONDS", default=RETENTION_SECONDS)
        self._clock = clock
        self._sessions: dict[str, UploadSession] = {}
        self._lock = asyncio.Lock()

    ##########################################
    ################ GETTER ##################
    ##########################################

    def _parts_dir(self, file_id: str) -> Path:
        return self.upload_dir / file_id

    def _part_path(self, file_id: str, chunk_index: int) -> Path:
        return self._parts_dir(file_id) / f"{chunk_index}.part"

    def _require_session(self, file_id: str) -> UploadSession:
        session = self._sessions.get(file_id)
        if session is None:
            raise UploadSessionNotFoundError(f"Unknown upload '{file_id}'.", {"file_id": file_id})
        return session

    def get_session(self, file_id: str) -> UploadSession:
        """Return the session of an upload.

        Raises:
            UploadSessionNotFoundError: If no session exists for ``file_id``.
        """
        return self._require_session(file_id)

    def count_sessions(self) -> int:
        return len(self._sessions)

    ##########################################
    ############### PROTOCOL #################
    ##########################################

    async def initiate(self, file_id: str, file_name: str, mime_type: str, total_bytes: int, total_chunks: int) -> UploadSession:
        """Open a new upload session.

        Args:
            file_id (str): Client-chosen upload id (letters, digits, "_" and "-").
            file_name (str): Original file name.
            mime_type (str): Declared MIME type.
            total_bytes (int): Declared file size.
            total_chunks (int): Number of chunks the client will send.

        Returns:
            UploadSession: The new session in status INITIATED.

        Raises:
            FileTooLargeError: If total_bytes exceeds the size ceiling.
            PermanentValidationError: On an invalid id, size or chunk count.
            UploadSessionStateError: If an open session with this id exists.
        """
        if not _FILE_ID_PATTERN.match(file_id) or file_id == FILES_DIR_NAME:
            raise PermanentValidationError(f"Invalid file id '{file_id}'.", {"file_id": file_id})
        if total_bytes > self.max_file_size:
            raise FileTooLargeError(
                f"File size exceeds {self.max_file_size // MIB}MB limit.",
                {"file_id": file_id, "size": total_bytes, "limit": self.max_file_size},
            )
        if total_bytes < 0 or total_chunks < 1:
            raise PermanentValidationError("File size and chunk count must be positive.", {"file_id": file_id})

        await self.collect_expired()
        async with self._lock:
            existing = self._sessions.get(file_id)
            if existing is not None and not existing.is_closed():
                raise UploadSessionStateError(f"Upload '{file_id}' is already in progress.", {"file_id": file_id})

            await asyncio.to_thread(self._parts_dir(file_id).mkdir, parents=True, exist_ok=True)
            session = UploadSession(
                file_id=file_id,
                file_name=file_name,
                mime_type=mime_type,
                total_bytes=total_bytes,
                total_chunks=total_chunks,
                created_at=self._clock(),
            )
            self._sessions[file_id] = session

        self.logging.info("Upload %s initiated: '%s', %d bytes in %d chunks.", file_id, file_name, total_bytes, total_chunks)
        return session

    async def receive_chunk(self, file_id: str, chunk_index: int, total_chunks: int, data: bytes) -> UploadSession:
        """Store one chunk. Re-sending a chunk overwrites the earlier copy.

        Chunks arriving for an aborted or finalized upload are discarded.

        Args:
            file_id (str): Upload id.
            chunk_index (int): Zero-based logical index.
            total_chunks (int): Chunk count as seen by the client, must match the session.
            data (bytes): Chunk payload.

        Returns:
            UploadSession: The session after the chunk was recorded.

        Raises:
            UploadSessionNotFoundError: If the upload is unknown.
            PermanentValidationError: On an index out of range or a chunk count mismatch.
        """
        async with self._lock:
            session = self._require_session(file_id)
            if session.is_closed():
                self.logging.warning("Ignoring chunk %d for closed upload %s (%s).", chunk_index, file_id, session.status.value)
                return session
            if total_chunks != session.total_chunks:
                raise PermanentValidationError(
                    f"Chunk count mismatch for upload '{file_id}': expected {session.total_chunks}, got {total_chunks}.",
                    {"file_id": file_id},
                )
            if chunk_index < 0 or chunk_index >= session.total_chunks:
                raise PermanentValidationError(
                    f"Chunk index {chunk_index} out of range for upload '{file_id}'.",
                    {"file_id": file_id, "total_chunks": session.total_chunks},
                )
            if len(data) > self.max_file_size:
                raise FileTooLargeError("Chunk exceeds the file size limit.", {"file_id": file_id, "limit": self.max_file_size})

        part_path = self._part_path(file_id, chunk_index)
        try:
            await asyncio.to_thread(part_path.write_bytes, data)
        except FileNotFoundError:
            # parts directory removed by a concurrent abort or finalize
            async with self._lock:
                if session.is_closed():
                    self.logging.warning("Ignoring chunk %d for upload %s closed during the write.", chunk_index, file_id)
                    return session
            raise

        async with self._lock:
            if session.is_closed():
                # aborted while the part was written
                await asyncio.to_thread(part_path.unlink, True)
                return session
            session.received_chunk_indices.add(chunk_index)
            session.status = UploadStatus.ALL_CHUNKS_RECEIVED if session.all_chunks_received() else UploadStatus.UPLOADING

        self.logging.debug(
            "Upload %s: chunk %d stored (%d/%d).",
            file_id, chunk_index, len(session.received_chunk_indices), session.total_chunks,
        )
        return session

    def _assemble(self, session: UploadSession, target: Path) -> int:
        target.parent.mkdir(parents=True, exist_ok=True)
        written = 0
        with open(target, "wb") as out:
            for index in range(session.total_chunks):
                with open(self._part_path(session.file_id, index), "rb") as part:
                    shutil.copyfileobj(part, out)
                    written += part.tell()
        return written

    async def finalize(self, file_id: str) -> FinalizeResult:
        """Reassemble all chunks into the final file.

        Calling finalize again on a finalized upload returns the same result.

        Returns:
            FinalizeResult: Name, size and storage path of the assembled file.

        Raises:
            UploadSessionNotFoundError: If the upload is unknown.
            UploadSessionStateError: If chunks are missing or the upload was aborted.
            PermanentValidationError: If the assembled size differs from the declared size.
        """
        async with self._lock:
            session = self._require_session(file_id)
            if session.status == UploadStatus.FINALIZED and session.result is not None:
                return session.result
            if session.status == UploadStatus.ABORTED:
                raise UploadSessionStateError(f"Upload '{file_id}' was aborted.", {"file_id": file_id})
            if not session.all_chunks_received():
                raise UploadSessionStateError(
                    f"Upload '{file_id}' is missing chunks.",
                    {"file_id": file_id, "missing": session.missing_chunk_indices()[:20]},
                )

            target = self.files_dir / make_safe_filename(session.file_name)
            written = await asyncio.to_thread(self._assemble, session, target)
            if written != session.total_bytes:
                await asyncio.to_thread(target.unlink, True)
                raise PermanentValidationError(
                    f"Assembled size {written} does not match declared size {session.total_bytes}.",
                    {"file_id": file_id},
                )
            await asyncio.to_thread(shutil.rmtree, self._parts_dir(file_id), True)

            session.result = FinalizeResult(
                file_id=file_id,
                file_name=session.file_name,
                mime_type=session.mime_type,
                file_size=written,
                total_chunks=session.total_chunks,
                path=str(target),
            )
            session.status = UploadStatus.FINALIZED
            session.closed_at = self._clock()

        self.logging.info("Upload %s finalized: %s (%d bytes).", file_id, target, written)
        return session.result

    async def abort(self, file_id: str) -> UploadSession:
        """Cancel an upload and discard its chunks. Aborting twice is a no-op.

        Raises:
            UploadSessionNotFoundError: If the upload is unknown.
            UploadSessionStateError: If the upload is already finalized.
        """
        async with self._lock:
            session = self._require_session(file_id)
            if session.status == UploadStatus.FINALIZED:
                raise UploadSessionStateError(f"Upload '{file_id}' is already finalized.", {"file_id": file_id})
            if session.status == UploadStatus.ABORTED:
                return session
            session.status = UploadStatus.ABORTED
            session.closed_at = self._clock()
            await asyncio.to_thread(shutil.rmtree, self._parts_dir(file_id), True)

        self.logging.info("Upload %s aborted.", file_id)
        return session

    ##########################################
    ############### CLEANUP ##################
    ##########################################

    async def collect_expired(self, now: float | None = None) -> int:
        """Forget finalized and aborted sessions older than the retention window.

        Returns:
            int: Number of sessions removed.
        """
        now = now if now is not None else self._clock()
        async with self._lock:
            expired = [
                file_id for file_id, session in self._sessions.items()
                if session.is_closed() and session.closed_at is not None
                and now - session.closed_at > self.retention_seconds
            ]
            for file_id in expired:
                del self._sessions[file_id]
        if expired:
            self.logging.debug("Collected %d expired upload sessions.", len(expired))
        return len(expired)
