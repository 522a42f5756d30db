from shared.clients.ClientManager import ClientManager
from shared.clients.embed.EmbedClientInterface import EmbedClientInterface


class EmbedClientManager(ClientManager[EmbedClientInterface]):
    """Embedding client selected by EMBED_ENGINE (default "openai")."""

    client_type = "embed"
    class_prefix = "EmbedClient"
    default_engine = "openai"
