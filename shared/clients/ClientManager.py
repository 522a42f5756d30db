from typing import Generic, TypeVar

import httpx

from shared.clients.ClientInterface import ClientInterface
from shared.helper.HelperConfig import HelperConfig

C = TypeVar("C", bound=ClientInterface)


class ClientManager(Generic[C]):
    """
    Instantiates the client of one type for the engine named in ``{TYPE}_ENGINE``.

    Engines are resolved by module path: engine "pinecone" of type "rag" is the
    class ``RAGClientPinecone`` in ``shared.clients.rag.pinecone.RAGClientPinecone``.
    Subclasses only declare the type, the class name prefix and the default engine.
    """

    client_type: str = ""
    class_prefix: str = ""
    default_engine: str | None = None

    def __init__(self, helper_config: HelperConfig, transport: httpx.AsyncBaseTransport | None = None):
        self.helper_config = helper_config
        self.logging = helper_config.get_logger()
        self._transport = transport
        self.client: C = self._initialize_client()

    def _get_engine_from_env(self) -> str:
        """
        Reads the engine from ``{TYPE}_ENGINE``.

        Returns:
            str: The engine name with only the first letter uppercased, e.g. "Qdrant".

        Raises:
            ValueError: If no engine is configured and the type has no default.
        """
        env_key = f"{self.client_type.upper()}_ENGINE"
        engine = self.helper_config.get_string_val(env_key, default=self.default_engine)
        if not engine:
            raise ValueError(f"No {self.client_type} engine specified in configuration ({env_key}).")
        return engine.strip().lower().capitalize()

    def _initialize_client(self) -> C:
        """
        Raises:
            ValueError: If the engine module or class cannot be found.
        """
        engine = self._get_engine_from_env()
        class_name = f"{self.class_prefix}{engine}"
        try:
            module = __import__(
                f"shared.clients.{self.client_type}.{engine.lower()}.{class_name}",
                fromlist=[class_name],
            )
            client_class = getattr(module, class_name)
        except (ImportError, AttributeError) as e:
            raise ValueError(f"Unsupported {self.client_type} engine specified: '{engine}'. Error: {e}")

        client = client_class(helper_config=self.helper_config, transport=self._transport)
        self.logging.debug("Instantiated %s client for engine: %s", self.client_type, engine)
        return client

    def get_client(self) -> C:
        return self.client
