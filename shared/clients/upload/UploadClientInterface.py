from abc import abstractmethod

import httpx
from shared.clients.ClientInterface import ClientInterface
from shared.models.upload import FinalizeResult, UploadSessionResponse

from shared.helper.HelperConfig import HelperConfig


class UploadClientInterface(ClientInterface):
    """Client side of the chunked upload protocol (initiate, chunk, finalize, abort)."""

    def __init__(self, helper_config: HelperConfig, transport: httpx.AsyncBaseTransport | None = None):
        super().__init__(helper_config=helper_config, transport=transport)

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_client_type(self) -> str:
        return "upload"

    ################ ENDPOINTS ##################
    @abstractmethod
    def _get_endpoint_initiate(self) -> str:
        pass

    @abstractmethod
    def _get_endpoint_chunk(self) -> str:
        pass

    @abstractmethod
    def _get_endpoint_finalize(self) -> str:
        pass

    @abstractmethod
    def _get_endpoint_abort(self) -> str:
        pass

    ##########################################
    ############### REQUESTS #################
    ##########################################

    async def do_initiate(self, file_id: str, file_name: str, file_type: str, file_size: int, total_chunks: int) -> UploadSessionResponse:
        """Announce a new upload to the server.

        Returns:
            UploadSessionResponse: The freshly created session.
        """
        resp = await self.do_request(
            method="POST",
            endpoint=self._get_endpoint_initiate(),
            json={
                "fileId": file_id,
                "fileName": file_name,
                "fileType": file_type,
                "fileSize": file_size,
                "totalChunks": total_chunks,
            },
        )
        return UploadSessionResponse.model_validate(resp.json())

    async def do_upload_chunk(self, file_id: str, chunk_index: int, total_chunks: int, data: bytes) -> UploadSessionResponse:
        """Send one chunk as multipart form data.

        Args:
            file_id (str): Upload identifier.
            chunk_index (int): Zero-based logical index of the chunk.
            total_chunks (int): Total number of chunks of the upload.
            data (bytes): Chunk payload.

        Returns:
            UploadSessionResponse: Session state after the chunk was recorded.
        """
        resp = await self.do_request(
            method="POST",
            endpoint=self._get_endpoint_chunk(),
            data={"fileId": file_id, "chunkIndex": str(chunk_index), "totalChunks": str(total_chunks)},
            files={"chunk": (f"{file_id}.part{chunk_index}", data, "application/octet-stream")},
        )
        return UploadSessionResponse.model_validate(resp.json())

    async def do_finalize(self, file_id: str) -> FinalizeResult:
        """Ask the server to reassemble the upload. Safe to repeat."""
        resp = await self.do_request(method="POST", endpoint=self._get_endpoint_finalize(), json={"fileId": file_id})
        return FinalizeResult.model_validate(resp.json())

    async def do_abort(self, file_id: str) -> None:
        """Cancel an upload and let the server discard received chunks."""
        await self.do_request(method="DELETE", endpoint=self._get_endpoint_abort(), json={"fileId": file_id})
