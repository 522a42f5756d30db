import uuid

import httpx

from shared.helper.HelperConfig import HelperConfig
from shared.clients.rag.RAGClientInterface import RAGClientInterface
from shared.clients.rag.models.IndexStats import IndexStats
from shared.clients.rag.models.QueryMatch import QueryMatch
from shared.models.config import EnvConfig
from shared.models.document import EmbeddingRecord

# payload key holding the pipeline record id, qdrant point ids must be uints or UUIDs
RECORD_ID_KEY = "recordId"


def to_point_id(record_id: str) -> str:
    return str(uuid.uuid5(uuid.NAMESPACE_URL, record_id))


class RAGClientQdrant(RAGClientInterface):
    def __init__(self, helper_config: HelperConfig, transport: httpx.AsyncBaseTransport | None = None):
        super().__init__(helper_config=helper_config, transport=transport)
        self._base_url = self.get_config_val("BASE_URL", default=None, val_type="string")
        self._api_key = self.get_config_val("API_KEY", default="", val_type="string")
        self._collection_name = self.get_config_val("COLLECTION", default=None, val_type="string")
        self._distance = self.get_config_val("DISTANCE", default="Cosine", val_type="string")

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_engine_name(self) -> str:
        return "Qdrant"

    ################ CONFIG ##################
    def _get_required_config(self) -> list[EnvConfig]:
        return [
            EnvConfig(env_key="BASE_URL", val_type="string", default=None),
            EnvConfig(env_key="API_KEY", val_type="string", default=""),
            EnvConfig(env_key="COLLECTION", val_type="string", default=None)
        ]

    ################ AUTH ##################
    def _get_auth_header(self) -> dict:
        if self._api_key:
            return {"api-key": f"{self._api_key}"}
        else:
            return {}

    ################ METHODS ##################
    def _get_method_stats(self) -> str:
        return "GET"

    def _get_method_upsert(self) -> str:
        return "PUT"

    ################ ENDPOINTS ##################
    def _get_base_url(self) -> str:
        return self._base_url

    def _get_endpoint_stats(self) -> str:
        return f"/collections/{self._collection_name}"

    def _get_endpoint_upsert(self) -> str:
        return f"/collections/{self._collection_name}/points?wait=true"

    def _get_endpoint_query(self) -> str:
        return f"/collections/{self._collection_name}/points/search"

    def _get_endpoint_delete(self) -> str:
        return f"/collections/{self._collection_name}/points/delete?wait=true"

    def _get_endpoint_check_collection_existence(self) -> str:
        return f"/collections/{self._collection_name}/exists"

    ##########################################
    ########### PAYLOAD BUILDER ##############
    ##########################################

    def get_upsert_payload(self, records: list[EmbeddingRecord]) -> dict:
        points = []
        for record in records:
            payload = dict(record.metadata)
            payload[RECORD_ID_KEY] = record.id
            points.append({"id": to_point_id(record.id), "vector": record.values, "payload": payload})
        return {"points": points}

    def get_query_payload(self, vector: list[float], top_k: int, document_ids: list[str] | None = None) -> dict:
        payload = {
            "vector": vector,
            "limit": top_k,
            "with_payload": True,
            "with_vector": False,
        }
        if document_ids:
            payload["filter"] = {"must": [{"key": "documentId", "match": {"any": list(document_ids)}}]}
        return payload

    def get_delete_by_filter_payload(self, document_id: str) -> dict:
        return {"filter": {"must": [{"key": "documentId", "match": {"value": document_id}}]}}

    def get_delete_by_ids_payload(self, ids: list[str]) -> dict:
        return {"points": [to_point_id(record_id) for record_id in ids]}

    ##########################################
    ########### RESPONSE PARSER ##############
    ##########################################

    def extract_query_matches(self, raw_response: dict) -> list[QueryMatch]:
        matches = []
        for raw in raw_response.get("result") or []:
            if not isinstance(raw, dict):
                continue
            payload = raw.get("payload") if isinstance(raw.get("payload"), dict) else {}
            record_id = payload.pop(RECORD_ID_KEY, None) or raw.get("id")
            if record_id is None:
                continue
            score = raw.get("score")
            matches.append(QueryMatch(
                id=str(record_id),
                score=float(score) if isinstance(score, (int, float)) else None,
                metadata=payload,
            ))
        return matches

    def extract_index_stats(self, raw_response: dict) -> IndexStats:
        result = raw_response.get("result", {}) or {}
        vectors = (result.get("config", {}) or {}).get("params", {}).get("vectors", {})
        return IndexStats(
            dimension=vectors.get("size") if isinstance(vectors, dict) else None,
            total_vector_count=result.get("points_count", 0) or 0,
        )

    ##########################################
    ############### REQUESTS #################
    ##########################################

    async def do_prepare(self) -> None:
        """Create the collection if it does not exist yet."""
        resp = await self.do_request(method="GET", endpoint=self._get_endpoint_check_collection_existence())
        result = self._parse_body(resp, "Collection check").get("result")
        if isinstance(result, dict) and result.get("exists"):
            return
        self.logging.info("Creating Qdrant collection '%s' with vector size %d.", self._collection_name, self.get_vector_size())
        await self._post_json(
            f"/collections/{self._collection_name}",
            {"vectors": {"size": self.get_vector_size(), "distance": self._distance}},
            method="PUT",
        )
