import httpx

from shared.helper.HelperConfig import HelperConfig
from shared.clients.rag.RAGClientInterface import RAGClientInterface
from shared.clients.rag.models.IndexStats import IndexStats
from shared.clients.rag.models.QueryMatch import QueryMatch
from shared.models.config import EnvConfig
from shared.models.document import EmbeddingRecord


class RAGClientPinecone(RAGClientInterface):
    """Pinecone data plane client (REST, index host as base URL)."""

    def __init__(self, helper_config: HelperConfig, transport: httpx.AsyncBaseTransport | None = None):
        super().__init__(helper_config=helper_config, transport=transport)
        self._base_url = self.get_config_val("INDEX_HOST", default=None, val_type="string")
        self._api_key = self.get_config_val("API_KEY", default=None, val_type="string")
        self._namespace = self.get_config_val("NAMESPACE", default="", val_type="string")
        self._api_version = self.get_config_val("API_VERSION", default="2024-07", val_type="string")
        # serverless and starter indexes reject deletes by metadata filter
        self._filtered_delete = self.get_config_val("FILTERED_DELETE", default=True, val_type="bool")

    ##########################################
    ############### CHECKER ##################
    ##########################################

    def supports_filtered_delete(self) -> bool:
        return self._filtered_delete

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_engine_name(self) -> str:
        return "Pinecone"

    ################ CONFIG ##################
    def _get_required_config(self) -> list[EnvConfig]:
        return [
            EnvConfig(env_key="INDEX_HOST", val_type="string", default=None),
            EnvConfig(env_key="API_KEY", val_type="string", default=None),
        ]

    ################ AUTH ##################
    def _get_auth_header(self) -> dict:
        return {"Api-Key": self._api_key, "X-Pinecone-API-Version": self._api_version}

    ################ ENDPOINTS ##################
    def _get_base_url(self) -> str:
        if not self._base_url.startswith("http"):
            return f"https://{self._base_url}"
        return self._base_url

    def _get_endpoint_stats(self) -> str:
        return "/describe_index_stats"

    def _get_endpoint_upsert(self) -> str:
        return "/vectors/upsert"

    def _get_endpoint_query(self) -> str:
        return "/query"

    def _get_endpoint_delete(self) -> str:
        return "/vectors/delete"

    ##########################################
    ########### PAYLOAD BUILDER ##############
    ##########################################

    def _with_namespace(self, payload: dict) -> dict:
        if self._namespace:
            payload["namespace"] = self._namespace
        return payload

    def get_upsert_payload(self, records: list[EmbeddingRecord]) -> dict:
        vectors = [{"id": r.id, "values": r.values, "metadata": r.metadata} for r in records]
        return self._with_namespace({"vectors": vectors})

    def get_query_payload(self, vector: list[float], top_k: int, document_ids: list[str] | None = None) -> dict:
        payload = {
            "vector": vector,
            "topK": top_k,
            "includeMetadata": True,
            "includeValues": False,
        }
        if document_ids:
            payload["filter"] = {"documentId": {"$in": list(document_ids)}}
        return self._with_namespace(payload)

    def get_delete_by_filter_payload(self, document_id: str) -> dict:
        return self._with_namespace({"filter": {"documentId": {"$eq": document_id}}})

    def get_delete_by_ids_payload(self, ids: list[str]) -> dict:
        return self._with_namespace({"ids": list(ids)})

    ##########################################
    ########### RESPONSE PARSER ##############
    ##########################################

    def extract_query_matches(self, raw_response: dict) -> list[QueryMatch]:
        matches = []
        for raw in raw_response.get("matches") or []:
            if not isinstance(raw, dict) or raw.get("id") is None:
                continue
            score = raw.get("score")
            metadata = raw.get("metadata")
            matches.append(QueryMatch(
                id=str(raw["id"]),
                score=float(score) if isinstance(score, (int, float)) else None,
                metadata=metadata if isinstance(metadata, dict) else {},
            ))
        return matches

    def extract_index_stats(self, raw_response: dict) -> IndexStats:
        return IndexStats(
            dimension=raw_response.get("dimension"),
            total_vector_count=raw_response.get("totalVectorCount", 0) or 0,
        )

    def extract_upserted_count(self, raw_response: dict, sent: int) -> int:
        return int(raw_response.get("upsertedCount", sent))
