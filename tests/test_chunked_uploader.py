"""Tests for the client-side chunked uploader."""

import asyncio
import os

import httpx
import pytest
from fastapi import FastAPI

from server.api.routers.UploadRouter import upload_router
from services.upload.ChunkedUploader import ChunkedUploader, create_file_chunks, generate_file_id
from services.upload.UploadSessionStore import UploadSessionStore
from shared.clients.upload.UploadClientManager import UploadClientManager
from shared.errors import TransientNetworkError
from shared.models.upload import MIB, ChunkUploadConfig, FinalizeResult, UploadSessionResponse, UploadStatus


class FakeUploadClient:
    """Records protocol calls; chunk behaviour is scriptable."""

    def __init__(self, failing_chunks: set[int] | None = None, delay: float = 0.0) -> None:
        self.failing_chunks = failing_chunks or set()
        self.delay = delay
        self.booted = False
        self.calls: list[tuple] = []
        self.chunk_attempts: dict[int, int] = {}
        self.in_flight = 0
        self.max_in_flight = 0

    def is_booted(self) -> bool:
        return self.booted

    async def boot(self) -> None:
        self.booted = True

    async def do_initiate(self, file_id, file_name, file_type, file_size, total_chunks):
        self.calls.append(("initiate", file_id, file_size, total_chunks))
        return UploadSessionResponse(file_id=file_id, status=UploadStatus.INITIATED, received_chunks=0, total_chunks=total_chunks)

    async def do_upload_chunk(self, file_id, chunk_index, total_chunks, data):
        self.chunk_attempts[chunk_index] = self.chunk_attempts.get(chunk_index, 0) + 1
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.delay)
            if chunk_index in self.failing_chunks:
                raise TransientNetworkError("connection reset")
            self.calls.append(("chunk", chunk_index, len(data)))
        finally:
            self.in_flight -= 1
        return UploadSessionResponse(file_id=file_id, status=UploadStatus.UPLOADING, received_chunks=1, total_chunks=total_chunks)

    async def do_finalize(self, file_id):
        self.calls.append(("finalize", file_id))
        return FinalizeResult(file_id=file_id, file_name="x", mime_type="x", file_size=0, total_chunks=1, path="/tmp/x")

    async def do_abort(self, file_id):
        self.calls.append(("abort", file_id))

    def names(self) -> list[str]:
        return [call[0] for call in self.calls]


def _config(**overrides) -> ChunkUploadConfig:
    values = {"retry_base_delay": 0.0, "timeout": 5.0}
    values.update(overrides)
    return ChunkUploadConfig(**values)


def _write(path, size: int) -> None:
    path.write_bytes(os.urandom(size))


def test_create_file_chunks(tmp_path):
    path = tmp_path / "doc.pdf"
    chunks = create_file_chunks(path, int(2.5 * MIB), MIB)
    assert [chunk.size for chunk in chunks] == [MIB, MIB, MIB // 2]
    assert [chunk.index for chunk in chunks] == [0, 1, 2]

    empty = create_file_chunks(path, 0, MIB)
    assert len(empty) == 1 and empty[0].size == 0


def test_generate_file_id_format():
    file_id = generate_file_id()
    prefix, millis, suffix = file_id.split("_")
    assert prefix == "upload"
    assert millis.isdigit()
    assert len(suffix) == 9


@pytest.mark.asyncio
async def test_upload_sends_every_chunk_and_reports_progress(helper_config, tmp_path):
    path = tmp_path / "contract.pdf"
    _write(path, int(2.5 * MIB))
    client = FakeUploadClient()
    progress = []

    result = await ChunkedUploader(helper_config, client, _config()).upload_file_in_chunks(path, on_progress=progress.append)

    assert result.success is True
    assert result.file_size == int(2.5 * MIB)
    assert client.names()[0] == "initiate"
    assert client.calls[0][3] == 3
    assert sorted(call[1] for call in client.calls if call[0] == "chunk") == [0, 1, 2]
    assert client.names()[-1] == "finalize"

    uploaded = [p.uploaded_bytes for p in progress]
    assert uploaded == sorted(uploaded)
    assert progress[-1].percentage == 100
    assert progress[-1].uploaded_chunks == 3


@pytest.mark.asyncio
async def test_oversized_file_is_refused_without_requests(helper_config, tmp_path):
    path = tmp_path / "huge.bin"
    with open(path, "wb") as handle:
        handle.truncate(60 * MIB)
    client = FakeUploadClient()

    result = await ChunkedUploader(helper_config, client, _config()).upload_file_in_chunks(path)

    assert result.success is False
    assert "50MB" in result.error
    assert client.calls == []


@pytest.mark.asyncio
async def test_failing_chunk_is_retried_then_upload_aborted(helper_config, tmp_path):
    path = tmp_path / "lease.pdf"
    _write(path, 3 * 1024)
    client = FakeUploadClient(failing_chunks={1})

    result = await ChunkedUploader(helper_config, client, _config(chunk_size=1024, retry_attempts=3)).upload_file_in_chunks(path)

    assert result.success is False
    assert client.chunk_attempts[1] == 3
    assert "finalize" not in client.names()
    assert client.names()[-1] == "abort"


@pytest.mark.asyncio
async def test_concurrency_is_bounded(helper_config, tmp_path):
    path = tmp_path / "brief.pdf"
    _write(path, 6 * 1024)
    client = FakeUploadClient(delay=0.01)

    result = await ChunkedUploader(helper_config, client, _config(chunk_size=1024, max_concurrency=2)).upload_file_in_chunks(path)

    assert result.success is True
    assert client.max_in_flight == 2


@pytest.mark.asyncio
async def test_cancel_upload_reports_failure(helper_config):
    client = FakeUploadClient()

    async def refuse(file_id):
        raise TransientNetworkError("server down")

    client.do_abort = refuse
    assert await ChunkedUploader(helper_config, client, _config()).cancel_upload("upload_1") is False


@pytest.mark.asyncio
async def test_upload_against_upload_routes(helper_config, tmp_path):
    """End to end through the real client and the real routes."""
    app = FastAPI()
    app.include_router(upload_router)
    app.state.upload_store = UploadSessionStore(helper_config, upload_dir=tmp_path / "uploads")

    payload = os.urandom(5000)
    path = tmp_path / "settlement.pdf"
    path.write_bytes(payload)

    client = UploadClientManager(helper_config, transport=httpx.ASGITransport(app=app)).get_client()
    try:
        result = await ChunkedUploader(helper_config, client, _config(chunk_size=1024)).upload_file_in_chunks(path)
    finally:
        await client.close()

    assert result.success is True
    session = app.state.upload_store.get_session(result.file_id)
    assert session.status == UploadStatus.FINALIZED
    with open(session.result.path, "rb") as handle:
        assert handle.read() == payload
