from abc import ABC, abstractmethod

import httpx
from httpx._types import QueryParamTypes, RequestContent, RequestData, RequestFiles
from typing import Any
from shared.errors import (
    PermanentValidationError,
    ProviderAuthError,
    ProviderRateLimitError,
    TransientNetworkError,
)
from shared.models.config import EnvConfig

from shared.helper.HelperConfig import HelperConfig


class ClientInterface(ABC):
    def __init__(self, helper_config: HelperConfig, transport: httpx.AsyncBaseTransport | None = None):
        self.logging = helper_config.get_logger()
        self._helper_config = helper_config
        self.timeout = helper_config.get_float_val(f"{self.get_client_type().upper()}_TIMEOUT", default=30.0, minimum=0.1)

        # client and config
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self.validate_full_configuration()

    ##########################################
    ############### CHECKER ##################
    ##########################################

    def validate_full_configuration(self) -> None:
        """
        Validates that all required configuration values for the client are set and valid.

        Raises:
            ValueError: If any required configuration value is missing or invalid.
        """
        for config in self._get_required_config():
            _ = self.get_config_val(raw_key=config.env_key, default=config.default, val_type=config.val_type)

    def is_booted(self) -> bool:
        return self._client is not None

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def get_client_type(self) -> str:
        """
        Returns the type of the client in lowercase. E.g. "rag"
        """
        return self._get_client_type().lower()

    @abstractmethod
    def _get_client_type(self) -> str:
        """
        Returns the type of the client. E.g. "rag"
        """
        pass

    def get_engine_name(self) -> str:
        """
        Returns the name of the engine used by the client. E.g. "pinecone"
        """
        return self._get_engine_name().lower()

    @abstractmethod
    def _get_engine_name(self) -> str:
        """
        Returns the name of the engine used by the client. E.g. "Pinecone"
        """
        pass

    ################ CONFIG ##################
    @abstractmethod
    def _get_required_config(self) -> list[EnvConfig]:
        """
        Returns all required configurations for the client.

        Returns:
            list[EnvConfig]: A list containing the details of each required configuration key.
        """
        pass

    def _get_config_key_name(self, raw_key: str) -> str:
        """
        Returns:
            str: The full configuration key name for the client. E.g. "RAG_PINECONE_API_KEY"
        """
        key_prefix = f"{self.get_client_type().upper()}_{self.get_engine_name().upper()}"
        return f"{key_prefix}_{raw_key.upper()}"

    def get_config_val(self, raw_key: str, default: Any = None, val_type: str = "string") -> Any:
        """
        Retrieves the value of a configuration key for the client.

        Args:
            raw_key (str): The raw configuration key name
            default (Any): The default value to return if the configuration key is not set
            val_type (str): The type of the configuration value ("string", "number", "bool", "list")
        """
        key = self._get_config_key_name(raw_key)
        if val_type == "string":
            return self._helper_config.get_string_val(key, default=default)
        elif val_type == "number":
            return self._helper_config.get_number_val(key, default=default)
        elif val_type == "bool":
            return self._helper_config.get_bool_val(key, default=default)
        elif val_type == "list":
            return self._helper_config.get_list_val(key, default=default)
        else:
            raise ValueError(f"Unsupported config value type '{val_type}' for env key '{raw_key}' in {self.get_client_type().upper()} client '{self.get_engine_name()}'.")

    ################ AUTH ##################
    @abstractmethod
    def _get_auth_header(self) -> dict:
        """
        Returns the authentication header for the client backend server, if an API key is set.

        Returns:
            dict: A dictionary containing the auth data
        """
        pass

    ################ ENDPOINTS ##################
    @abstractmethod
    def _get_base_url(self) -> str:
        """
        Returns the base URL of the client backend server from env variables

        Returns:
            str: The base URL of the client backend server (e.g. "https://api.openai.com/v1")
        """
        pass

    ##########################################
    ############ ERROR MAPPING ###############
    ##########################################

    def _raise_for_status(self, response: httpx.Response, url: str) -> None:
        """Translate a non-2xx response into the pipeline error taxonomy.

        Args:
            response (httpx.Response): The response to inspect.
            url (str): The requested URL, for the message.

        Raises:
            ProviderAuthError: On 401 / 403.
            ProviderRateLimitError: On 429.
            TransientNetworkError: On 408 and 5xx.
            PermanentValidationError: On any other 4xx.
        """
        status = response.status_code
        if status < 300:
            return
        self.logging.error(
            "Request to %s failed with status %d: %s",
            url,
            status,
            response.text[:300],
        )
        details = {"status": status, "engine": self.get_engine_name()}
        if status in (401, 403):
            raise ProviderAuthError(f"{self.get_client_type()} backend rejected the credentials.", details)
        if status == 429:
            raise ProviderRateLimitError(f"{self.get_client_type()} backend is rate limiting requests.", details)
        if status == 408 or status >= 500:
            raise TransientNetworkError(f"{self.get_client_type()} backend failed with status {status}.", details)
        raise PermanentValidationError(f"{self.get_client_type()} backend rejected the request with status {status}.", details)

    ##########################################
    ############ CORE REQUESTS ###############
    ##########################################

    async def boot(self) -> None:
        """Initialise the HTTP client."""
        if self._client is not None:
            return
        if self._transport is not None:
            self._client = httpx.AsyncClient(timeout=self.timeout, transport=self._transport)
        else:
            self._client = httpx.AsyncClient(timeout=self.timeout)

    async def close(self) -> None:
        """Close the HTTP client and any other resources."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def do_request(
        self,
        method: str = "GET",
        content: RequestContent | None = None,
        data: RequestData | None = None,
        files: RequestFiles | None = None,
        json: dict | None = None,
        params: QueryParamTypes | None = None,
        endpoint: str = "",
        additional_headers: dict | None = None,
        raise_on_error: bool = True,
        timeout: float | None = None,
    ) -> httpx.Response:
        """Send an HTTP request to the client backend.

        Args:
            method: HTTP method (GET, POST, PUT, DELETE, …).
            content: Raw bytes / stream body.
            data: Form fields. May be combined with files for multipart bodies.
            files: Multipart file parts.
            json: JSON-serialisable body (sets Content-Type automatically).
            params: URL query parameters.
            endpoint: Path to append to the base URL (leading slash optional).
            additional_headers: Extra headers that override the defaults.
            raise_on_error: Translate non-2xx responses into pipeline errors.
            timeout: Override the default timeout for this request.

        Returns:
            The raw httpx.Response.

        Raises:
            RuntimeError: If the client is not booted.
            TransientNetworkError: On timeouts and transport failures.
            PipelineError: On non-2xx status when raise_on_error is True (see _raise_for_status).
        """
        if self._client is None:
            raise RuntimeError("HTTP client not initialised. Call boot() before making requests.")

        endpoint = "/" + endpoint.strip().lstrip("/") if endpoint.strip() else ""

        # httpx sets Content-Type for json/data/files; raw content needs it via additional_headers
        headers: dict = {}
        headers.update(self._get_auth_header())
        if additional_headers:
            headers.update(additional_headers)

        url = f"{self._get_base_url().rstrip('/')}{endpoint}"
        kwargs: dict = {
            "headers": headers,
            "timeout": timeout if timeout is not None else self.timeout,
            "params": params,
        }

        if content is not None:
            kwargs["content"] = content
        elif json is not None:
            kwargs["json"] = json
        else:
            if data is not None:
                kwargs["data"] = data
            if files is not None:
                kwargs["files"] = files

        try:
            response = await self._client.request(method, url, **kwargs)
        except httpx.TimeoutException as exc:
            raise TransientNetworkError(f"Request to {url} timed out.", {"engine": self.get_engine_name()}) from exc
        except httpx.TransportError as exc:
            raise TransientNetworkError(f"Request to {url} failed: {exc}", {"engine": self.get_engine_name()}) from exc

        if raise_on_error:
            self._raise_for_status(response, url)

        return response
