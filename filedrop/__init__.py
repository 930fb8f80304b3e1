"""
filedrop - folder hierarchy and concurrent batch uploads.

Two parts:
- FolderStore: a forest of folders with cascading delete, expand/collapse
  state and tree reconstruction from flat records
- UploadPipeline: validates a batch, uploads valid items concurrently with
  per-item progress, and stores the successful ones in ItemStore

Usage:
    from filedrop import FileLibrary, RawItem, UploadConfig

    async with FileLibrary(store_path=Path("library.json")) as library:
        docs = await library.create_folder("Documents")
        reports = await library.create_folder("Reports", parent_id=docs.id)

        result = await library.upload_batch(
            [RawItem(name="q3.pdf", size=48_000, type="application/pdf")],
            folder_id=reports.id,
        )
        print(result.stored, result.validation_errors)

        library.get_folder_path(reports.id)   # "Documents / Reports"
        library.get_folder_tree()             # [FolderNode(...)]

    # Progress events
    library.pipeline.on_item_progress(lambda p: print(f"{p.name}: {p.progress}%"))
"""
from .exceptions import (
    ConfigError,
    CycleError,
    FileDropError,
    NotFoundError,
    StoreError,
    TransientUploadFailure,
    UploadCancelled,
    ValidationError,
)
from .models import (
    Folder,
    FolderNode,
    Item,
    ItemStatus,
    LibraryStats,
    OrphanPolicy,
    RawItem,
    UploadConfig,
    UploadSession,
)
from .orchestrator import FileLibrary, ItemValidator, UploadBatchResult, UploadPipeline
from .services import (
    FolderPathResolver,
    FolderStore,
    ItemStore,
    JsonSnapshotBackend,
    SimulatedTransport,
    UploadSessionStore,
)
from .utils import ItemProgress

__version__ = "0.1.0"
__all__ = [
    # Main
    "FileLibrary",
    "UploadPipeline",
    "UploadBatchResult",
    "ItemValidator",
    # Models
    "Folder",
    "FolderNode",
    "Item",
    "ItemStatus",
    "ItemProgress",
    "LibraryStats",
    "OrphanPolicy",
    "RawItem",
    "UploadConfig",
    "UploadSession",
    # Services
    "FolderStore",
    "ItemStore",
    "UploadSessionStore",
    "FolderPathResolver",
    "JsonSnapshotBackend",
    "SimulatedTransport",
    # Errors
    "FileDropError",
    "ValidationError",
    "CycleError",
    "NotFoundError",
    "TransientUploadFailure",
    "UploadCancelled",
    "ConfigError",
    "StoreError",
]
