"""Services for filedrop: stores, backends, transports."""
from .folder_store import FolderStore
from .item_store import ItemStore
from .path_resolver import FolderPathResolver
from .session_store import UploadSessionStore
from .snapshot import JsonSnapshotBackend
from .transport import SimulatedTransport

__all__ = [
    "FolderStore",
    "ItemStore",
    "FolderPathResolver",
    "UploadSessionStore",
    "JsonSnapshotBackend",
    "SimulatedTransport",
]
