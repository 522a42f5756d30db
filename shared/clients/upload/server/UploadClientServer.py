import httpx

from shared.clients.upload.UploadClientInterface import UploadClientInterface
from shared.helper.HelperConfig import HelperConfig
from shared.models.config import EnvConfig


class UploadClientServer(UploadClientInterface):
    """Talks to the /upload routes of this project's own API server."""

    def __init__(self, helper_config: HelperConfig, transport: httpx.AsyncBaseTransport | None = None):
        super().__init__(helper_config=helper_config, transport=transport)
        self._base_url = self.get_config_val("BASE_URL", default="http://localhost:8000", val_type="string")
        self._api_key = self.get_config_val("API_KEY", default="", val_type="string")

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_engine_name(self) -> str:
        return "Server"

    ################ CONFIG ##################
    def _get_required_config(self) -> list[EnvConfig]:
        return [
            EnvConfig(env_key="BASE_URL", val_type="string", default="http://localhost:8000"),
            EnvConfig(env_key="API_KEY", val_type="string", default=""),
        ]

    ################ AUTH ##################
    def _get_auth_header(self) -> dict:
        if self._api_key:
            return {"Authorization": f"Bearer {self._api_key}"}
        return {}

    ################ ENDPOINTS ##################
    def _get_base_url(self) -> str:
        return self._base_url

    def _get_endpoint_initiate(self) -> str:
        return "/upload/initiate"

    def _get_endpoint_chunk(self) -> str:
        return "/upload/chunk"

    def _get_endpoint_finalize(self) -> str:
        return "/upload/finalize"

    def _get_endpoint_abort(self) -> str:
        return "/upload/abort"
