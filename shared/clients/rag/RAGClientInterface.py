from abc import abstractmethod
import json
from typing import Callable, TypeVar

import httpx
from shared.clients.ClientInterface import ClientInterface
from shared.errors import ResponseShapeError
from shared.clients.rag.models.IndexStats import IndexStats
from shared.clients.rag.models.QueryMatch import QueryMatch
from shared.models.document import EmbeddingRecord

from shared.helper.HelperConfig import HelperConfig

T = TypeVar("T")


class RAGClientInterface(ClientInterface):
    def __init__(self, helper_config: HelperConfig, transport: httpx.AsyncBaseTransport | None = None):
        super().__init__(helper_config=helper_config, transport=transport)
        self._vector_size = helper_config.get_int_val(f"{self.get_client_type().upper()}_VECTOR_SIZE", default=1536)

    ##########################################
    ############### CHECKER ##################
    ##########################################

    def supports_filtered_delete(self) -> bool:
        """
        Returns True if the backend can delete records by a metadata filter.
        Backends without filter support are cleaned up by query + delete by ids.
        """
        return True

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_client_type(self) -> str:
        """
        Returns the type of the client. E.g. "rag"
        """
        return "rag"

    def get_vector_size(self) -> int:
        """
        Returns the configured embedding dimension of the index (RAG_VECTOR_SIZE, default 1536).
        """
        return self._vector_size

    ################ METHODS ##################
    def _get_method_stats(self) -> str:
        return "POST"

    def _get_method_upsert(self) -> str:
        return "POST"

    ################ ENDPOINTS ##################
    @abstractmethod
    def _get_endpoint_stats(self) -> str:
        """
        Returns the endpoint path for index statistics requests.

        Returns:
            str: The endpoint path (e.g. "/describe_index_stats")
        """
        pass

    @abstractmethod
    def _get_endpoint_upsert(self) -> str:
        """
        Returns the endpoint path for record upserts.

        Returns:
            str: The endpoint path (e.g. "/vectors/upsert")
        """
        pass

    @abstractmethod
    def _get_endpoint_query(self) -> str:
        """
        Returns the endpoint path for similarity queries.

        Returns:
            str: The endpoint path (e.g. "/query")
        """
        pass

    @abstractmethod
    def _get_endpoint_delete(self) -> str:
        """
        Returns the endpoint path for deleting records by filter or by ids.

        Returns:
            str: The endpoint path (e.g. "/vectors/delete")
        """
        pass

    ##########################################
    ########### PAYLOAD BUILDER ##############
    ##########################################

    @abstractmethod
    def get_upsert_payload(self, records: list[EmbeddingRecord]) -> dict:
        """
        Builds the backend-specific request payload for an upsert.

        Args:
            records (list[EmbeddingRecord]): Records with sanitized metadata.

        Returns:
            dict: The payload for the upsert request.
        """
        pass

    @abstractmethod
    def get_query_payload(self, vector: list[float], top_k: int, document_ids: list[str] | None = None) -> dict:
        """
        Builds the backend-specific request payload for a similarity query.

        Args:
            vector (list[float]): The query vector.
            top_k (int): Maximum number of matches.
            document_ids (list[str] | None): Restrict matches to these documents; None searches all.

        Returns:
            dict: The payload for the query request.
        """
        pass

    @abstractmethod
    def get_delete_by_filter_payload(self, document_id: str) -> dict:
        """
        Builds the payload deleting every record whose documentId equals ``document_id``.
        """
        pass

    @abstractmethod
    def get_delete_by_ids_payload(self, ids: list[str]) -> dict:
        """
        Builds the payload deleting records by their record ids.
        """
        pass

    ##########################################
    ########### RESPONSE PARSER ##############
    ##########################################

    @abstractmethod
    def extract_query_matches(self, raw_response: dict) -> list[QueryMatch]:
        """
        Extracts the matches from a raw query response.

        Args:
            raw_response (dict): The raw JSON response from the query endpoint.

        Returns:
            list[QueryMatch]: Matches in backend order (best first).
        """
        pass

    @abstractmethod
    def extract_index_stats(self, raw_response: dict) -> IndexStats:
        """
        Extracts the index statistics from a raw stats response.
        """
        pass

    def extract_upserted_count(self, raw_response: dict, sent: int) -> int:
        """
        Returns the number of records the backend acknowledged. Defaults to
        the number sent when the backend does not report a count.
        """
        return sent

    ##########################################
    ############### REQUESTS #################
    ##########################################

    def _parse_body(self, resp: httpx.Response, what: str) -> dict:
        """Decode a JSON object body.

        Raises:
            ResponseShapeError: If the body is not JSON or not a JSON object
                (e.g. an HTML error page served with status 200 by a proxy).
        """
        details = {"engine": self.get_engine_name(), "status": resp.status_code}
        try:
            body = resp.json()
        except ValueError as exc:
            raise ResponseShapeError(f"{what} response is not valid JSON.", reason="invalid_json", details=details) from exc
        if not isinstance(body, dict):
            raise ResponseShapeError(f"{what} response is not a JSON object.", reason="unexpected_body", details=details)
        return body

    def _extract(self, parser: Callable[[dict], T], resp: httpx.Response, what: str) -> T:
        body = self._parse_body(resp, what)
        try:
            return parser(body)
        except (AttributeError, KeyError, TypeError, ValueError) as exc:
            raise ResponseShapeError(
                f"{what} response has an unexpected shape.",
                reason="unexpected_shape",
                details={"engine": self.get_engine_name(), "error": str(exc)},
            ) from exc

    async def _post_json(self, endpoint: str, payload: dict, method: str = "POST") -> httpx.Response:
        return await self.do_request(
            method=method,
            content=json.dumps(payload),
            endpoint=endpoint,
            additional_headers={"Content-Type": "application/json"},
            raise_on_error=True,
        )

    async def do_prepare(self) -> None:
        """Hook to create missing backend structures (collections) before first use."""
        return None

    async def do_describe_stats(self) -> IndexStats:
        """Fetch the index statistics. Used as the connectivity probe.

        Returns:
            IndexStats: Dimension and total record count of the index.
        """
        if self._get_method_stats() == "GET":
            resp = await self.do_request(method="GET", endpoint=self._get_endpoint_stats())
        else:
            resp = await self._post_json(self._get_endpoint_stats(), {})
        return self._extract(self.extract_index_stats, resp, "Stats")

    async def do_upsert(self, records: list[EmbeddingRecord]) -> int:
        """Upsert records into the index.
        Inserts new records or replaces existing ones with the same id.

        Args:
            records (list[EmbeddingRecord]): The records to write.

        Returns:
            int: Number of records acknowledged by the backend.
        """
        resp = await self._post_json(self._get_endpoint_upsert(), self.get_upsert_payload(records), method=self._get_method_upsert())
        return self._extract(lambda body: self.extract_upserted_count(body, sent=len(records)), resp, "Upsert")

    async def do_query(self, vector: list[float], top_k: int, document_ids: list[str] | None = None) -> list[QueryMatch]:
        """Run a similarity query.

        Args:
            vector (list[float]): The query vector.
            top_k (int): Maximum number of matches.
            document_ids (list[str] | None): Optional documentId filter.

        Returns:
            list[QueryMatch]: The matches, best first.
        """
        resp = await self._post_json(self._get_endpoint_query(), self.get_query_payload(vector, top_k, document_ids))
        return self._extract(self.extract_query_matches, resp, "Query")

    async def do_delete_by_filter(self, document_id: str) -> None:
        """Delete all records of a document through a metadata filter.

        Raises:
            NotImplementedError: If the backend does not support filtered deletes.
        """
        if not self.supports_filtered_delete():
            raise NotImplementedError(f"{self.get_engine_name()} does not support filtered deletes.")
        await self._post_json(self._get_endpoint_delete(), self.get_delete_by_filter_payload(document_id))

    async def do_delete_by_ids(self, ids: list[str]) -> None:
        """Delete records by their record ids."""
        if not ids:
            return
        await self._post_json(self._get_endpoint_delete(), self.get_delete_by_ids_payload(ids))
