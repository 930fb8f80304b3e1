"""Core orchestrator - the call contracts of the folder library."""
from pathlib import Path
from typing import Iterable, List, Optional, Union

from ..exceptions import NotFoundError
from ..models import (
    Folder,
    FolderNode,
    Item,
    ItemStatus,
    LibraryStats,
    OrphanPolicy,
    UploadConfig,
    UploadSession,
)
from ..protocols import IStoreBackend, ITransport
from ..services.folder_store import FolderStore
from ..services.item_store import ItemStore
from ..services.path_resolver import FolderPathResolver
from ..services.session_store import UploadSessionStore
from ..services.snapshot import JsonSnapshotBackend
from .models import UploadBatchResult
from .pipeline import UploadPipeline
from .validation import RawInput

import logging
logger = logging.getLogger(__name__)


class FileLibrary:
    """
    Folder hierarchy plus item uploads behind one object.

    Stores are constructed here and injected into the pipeline and the path
    resolver; nothing is module-level state.

    Usage:
        async with FileLibrary(store_path=Path("library.json")) as library:
            photos = await library.create_folder("Photos")
            result = await library.upload_batch(raw_items, photos.id)
            print(library.get_folder_path(photos.id))
    """

    def __init__(
        self,
        config: Optional[UploadConfig] = None,
        backend: Optional[IStoreBackend] = None,
        transport: Optional[ITransport] = None,
        orphan_policy: OrphanPolicy = OrphanPolicy.DETACH,
        store_path: Optional[Path] = None,
    ):
        """
        Initialize library with dependencies.

        Args:
            config: Upload configuration (allow-list, size limit, pacing)
            backend: Store backend; defaults to a JSON snapshot when
                store_path is given, otherwise memory only
            transport: Transfer implementation (default: SimulatedTransport)
            orphan_policy: What deleting a folder does to its items
            store_path: JSON snapshot file
        """
        if backend is None and store_path is not None:
            backend = JsonSnapshotBackend(store_path)
        self._config = config or UploadConfig()
        self._backend = backend
        self._orphan_policy = orphan_policy

        self._folders = FolderStore(backend)
        self._items = ItemStore(backend)
        self._sessions = UploadSessionStore(backend)
        self._paths = FolderPathResolver(self._folders)
        self._pipeline = UploadPipeline(
            self._items,
            self._config,
            transport=transport,
            session_store=self._sessions,
        )

    async def __aenter__(self):
        await self.open()
        return self

    async def __aexit__(self, *args):
        await self.close()

    async def open(self) -> None:
        """Load every store from the backend."""
        await self._folders.open()
        await self._items.open()
        await self._sessions.open()
        logger.debug(
            "Library opened: %d folders, %d items", len(self._folders), len(self._items)
        )

    async def close(self) -> None:
        """Flush pending changes."""
        if self._backend is not None:
            await self._backend.flush()

    # Components
    @property
    def folders(self) -> FolderStore:
        return self._folders

    @property
    def items(self) -> ItemStore:
        return self._items

    @property
    def sessions(self) -> UploadSessionStore:
        return self._sessions

    @property
    def pipeline(self) -> UploadPipeline:
        return self._pipeline

    @property
    def paths(self) -> FolderPathResolver:
        return self._paths

    @property
    def orphan_policy(self) -> OrphanPolicy:
        return self._orphan_policy

    # =========================================================================
    # Folder operations
    # =========================================================================

    async def create_folder(self, name: str, parent_id: Optional[str] = None) -> Folder:
        return await self._folders.create(name, parent_id)

    async def update_folder(self, folder_id: str, **fields) -> Folder:
        return await self._folders.update(folder_id, **fields)

    async def rename_folder(self, folder_id: str, name: str) -> Folder:
        return await self._folders.update(folder_id, name=name)

    async def move_folder(self, folder_id: str, parent_id: Optional[str]) -> Folder:
        return await self._folders.update(folder_id, parent_id=parent_id)

    async def delete_folder(self, folder_id: str) -> List[str]:
        """
        Delete a folder subtree, then apply the orphan policy to its items.

        Returns:
            Deleted folder ids
        """
        deleted = await self._folders.delete(folder_id)

        if self._orphan_policy is OrphanPolicy.DETACH:
            affected = await self._items.detach_folders(deleted)
            action = "detached"
        elif self._orphan_policy is OrphanPolicy.CASCADE:
            affected = await self._items.delete_by_folders(deleted)
            action = "deleted"
        else:
            affected = []
            action = "kept"

        if affected:
            logger.info(f"Folder {folder_id} removed: {len(affected)} item(s) {action}")
        return deleted

    async def toggle_expanded(self, folder_id: str) -> Folder:
        return await self._folders.toggle_expanded(folder_id)

    def get_folder_tree(self) -> List[FolderNode]:
        return self._folders.build_folder_tree()

    def get_folder_path(self, folder_id: Optional[str]) -> str:
        return self._paths.resolve(folder_id)

    # =========================================================================
    # Item operations
    # =========================================================================

    def list_items(
        self,
        folder_id: Optional[str] = None,
        status: Union[ItemStatus, str, None] = None,
    ) -> List[Item]:
        return self._items.list(folder_id=folder_id, status=status)

    async def delete_item(self, item_id: str) -> Item:
        return await self._items.delete(item_id)

    def stats(self) -> LibraryStats:
        return self._items.stats()

    def list_sessions(self) -> List[UploadSession]:
        return self._sessions.get_all()

    # =========================================================================
    # Upload
    # =========================================================================

    async def upload_batch(
        self,
        raw_items: Iterable[RawInput],
        folder_id: Optional[str] = None,
    ) -> UploadBatchResult:
        """
        Upload a batch of raw items into folder_id (None: root level).

        Raises:
            NotFoundError: folder_id does not resolve; nothing is uploaded
        """
        if folder_id is not None and folder_id not in self._folders:
            raise NotFoundError("Folder", folder_id)
        return await self._pipeline.upload_batch(raw_items, folder_id)
