from shared.clients.ClientManager import ClientManager
from shared.clients.llm.LLMClientInterface import LLMClientInterface


class LLMClientManager(ClientManager[LLMClientInterface]):
    """Chat completion client selected by LLM_ENGINE (default "openai")."""

    client_type = "llm"
    class_prefix = "LLMClient"
    default_engine = "openai"
