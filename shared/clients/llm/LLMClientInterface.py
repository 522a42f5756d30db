from abc import abstractmethod

import httpx
from shared.clients.ClientInterface import ClientInterface
from shared.errors import ResponseShapeError
from shared.helper.HelperConfig import HelperConfig


class LLMClientInterface(ClientInterface):
    def __init__(self, helper_config: HelperConfig, transport: httpx.AsyncBaseTransport | None = None):
        super().__init__(helper_config=helper_config, transport=transport)

        # chat / completion config
        self.chat_model = helper_config.get_string_val(f"{self.get_client_type().upper()}_CHAT_MODEL", default="gpt-4")
        self.fallback_model = helper_config.get_string_val(f"{self.get_client_type().upper()}_FALLBACK_MODEL", default="gpt-3.5-turbo")
        self.max_tokens = helper_config.get_int_val(f"{self.get_client_type().upper()}_MAX_TOKENS", default=800)
        self.fallback_max_tokens = helper_config.get_int_val(f"{self.get_client_type().upper()}_FALLBACK_MAX_TOKENS", default=1000)
        self.temperature = helper_config.get_float_val(f"{self.get_client_type().upper()}_TEMPERATURE", default=0.3)

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_client_type(self) -> str:
        return "llm"

    ################ ENDPOINTS ##################
    @abstractmethod
    def _get_endpoint_chat(self) -> str:
        """Returns the endpoint path for chat/completion requests (e.g. "/chat/completions")."""
        pass

    ################ PAYLOAD BUILDER ##################
    @abstractmethod
    def get_chat_payload(self, messages: list[dict], model: str, max_tokens: int, temperature: float) -> dict:
        """Build the backend-specific request body for a chat/completion request.

        Args:
            messages (list[dict]): OpenAI-format messages
                (e.g. [{"role": "user", "content": "..."}]).
            model (str): Model name.
            max_tokens (int): Completion token limit.
            temperature (float): Sampling temperature.

        Returns:
            dict: JSON-serialisable request body.
        """
        pass

    ##########################################
    ############### REQUESTS #################
    ##########################################

    async def do_chat(
        self,
        messages: list[dict],
        model: str | None = None,
        max_tokens: int | None = None,
        temperature: float | None = None,
    ) -> dict:
        """Send a chat/completion request and return the raw response body.

        The body is not validated here; AnswerGenerator.validate_completion()
        owns the shape checks.

        Args:
            messages (list[dict]): OpenAI-format messages.
            model (str | None): Model override, defaults to LLM_CHAT_MODEL.
            max_tokens (int | None): Override of LLM_MAX_TOKENS.
            temperature (float | None): Override of LLM_TEMPERATURE.

        Returns:
            dict: The parsed JSON response body.

        Raises:
            PipelineError: If the HTTP request fails (see ClientInterface.do_request).
            ResponseShapeError: If the body is not JSON.
        """
        body = self.get_chat_payload(
            messages,
            model=model or self.chat_model,
            max_tokens=max_tokens if max_tokens is not None else self.max_tokens,
            temperature=temperature if temperature is not None else self.temperature,
        )
        response = await self.do_request(
            method="POST",
            endpoint=self._get_endpoint_chat(),
            json=body,
            raise_on_error=True,
        )
        try:
            return response.json()
        except ValueError as exc:
            raise ResponseShapeError("Chat response is not valid JSON.", reason="invalid_json") from exc
