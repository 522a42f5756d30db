import httpx

from shared.clients.embed.EmbedClientInterface import EmbedClientInterface
from shared.errors import ResponseShapeError
from shared.helper.HelperConfig import HelperConfig
from shared.models.config import EnvConfig


class EmbedClientOpenai(EmbedClientInterface):
    def __init__(self, helper_config: HelperConfig, transport: httpx.AsyncBaseTransport | None = None):
        super().__init__(helper_config=helper_config, transport=transport)
        self._base_url = self.get_config_val("BASE_URL", default="https://api.openai.com/v1", val_type="string")
        self._api_key = self.get_config_val("API_KEY", default=None, val_type="string")

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_engine_name(self) -> str:
        return "Openai"

    ################ CONFIG ##################
    def _get_required_config(self) -> list[EnvConfig]:
        return [
            EnvConfig(env_key="BASE_URL", val_type="string", default="https://api.openai.com/v1"),
            EnvConfig(env_key="API_KEY", val_type="string", default=None),
        ]

    ################ AUTH ##################
    def _get_auth_header(self) -> dict:
        return {"Authorization": f"Bearer {self._api_key}"}

    ################ ENDPOINTS ##################
    def _get_base_url(self) -> str:
        return self._base_url

    def get_endpoint_embedding(self) -> str:
        return "/embeddings"

    ################ PAYLOAD BUILDER ##################
    def get_embed_payload(self, texts: list[str]) -> dict:
        """Build the OpenAI embedding request body.

        Args:
            texts (list[str]): The texts to embed.

        Returns:
            dict: {"model": "...", "input": [...]} plus "dimensions" when configured.
        """
        payload = {"model": self.embed_model, "input": texts}
        if self.embed_dimensions:
            payload["dimensions"] = self.embed_dimensions
        return payload

    ##########################################
    ################# OTHER ##################
    ##########################################

    def extract_embeddings_from_response(self, response_data: dict) -> list[list[float]]:
        """Extract embedding vectors from an OpenAI /embeddings response.

        The items carry an "index" field and are sorted by it, so the output
        order always matches the input order.

        Raises:
            ResponseShapeError: If the response does not contain valid embeddings.
        """
        data = response_data.get("data") if isinstance(response_data, dict) else None
        if not isinstance(data, list) or not data:
            raise ResponseShapeError(
                "Embedding response does not contain any data.",
                reason="missing_data",
                details={"keys": list(response_data.keys()) if isinstance(response_data, dict) else []},
            )
        items = sorted(data, key=lambda item: item.get("index", 0))
        vectors = []
        for item in items:
            embedding = item.get("embedding")
            if not isinstance(embedding, list) or not embedding:
                raise ResponseShapeError("Embedding response contains an empty vector.", reason="empty_vector")
            vectors.append([float(v) for v in embedding])
        return vectors
