"""Shared lifecycle for the in-memory record stores."""
import asyncio
import logging
from typing import Any, Dict, List, Optional

from ..protocols import IStoreBackend

logger = logging.getLogger(__name__)


class RecordStore:
    """
    Base class for stores owning one flat collection.

    Mutations are serialized by a single asyncio.Lock and, when a backend
    is attached, written through to it. Reads never take the lock.

    Usage:
        async with FolderStore(backend) as folders:
            folder = await folders.create("Photos")
    """

    collection: str = ""

    def __init__(self, backend: Optional[IStoreBackend] = None):
        self._backend = backend
        self._lock = asyncio.Lock()
        self._opened = False

    async def __aenter__(self):
        await self.open()
        return self

    async def __aexit__(self, *args):
        await self.close()

    @property
    def is_open(self) -> bool:
        return self._opened

    async def open(self) -> None:
        """Load the collection from the backend, replacing in-memory state."""
        if self._backend is not None:
            records = await self._backend.load(self.collection)
            async with self._lock:
                self._restore(records)
            logger.debug("%s: loaded %d records", type(self).__name__, len(records))
        self._opened = True

    async def close(self) -> None:
        """Flush pending changes to the backend."""
        if self._backend is not None:
            await self._backend.flush()
        self._opened = False

    async def _persist(self, *records) -> None:
        """Write records through to the backend. Call with the lock held."""
        if self._backend is not None and records:
            await self._backend.upsert(self.collection, [record.to_dict() for record in records])

    async def _persist_delete(self, ids: List[str]) -> None:
        """Remove records from the backend. Call with the lock held."""
        if self._backend is not None and ids:
            await self._backend.delete(self.collection, list(ids))

    def _restore(self, records: List[Dict[str, Any]]) -> None:
        raise NotImplementedError
