from shared.clients.ClientManager import ClientManager
from shared.clients.upload.UploadClientInterface import UploadClientInterface


class UploadClientManager(ClientManager[UploadClientInterface]):
    """Upload client selected by UPLOAD_ENGINE (default "server", this project's own API)."""

    client_type = "upload"
    class_prefix = "UploadClient"
    default_engine = "server"
