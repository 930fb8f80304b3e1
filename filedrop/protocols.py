"""
Protocols (Interfaces) for Dependency Inversion.

Small interfaces the pipeline and stores depend on, so backends and
transports can be swapped without touching the core.
"""
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Protocol, runtime_checkable

from .models import Item, RawItem


ProgressReporter = Callable[[int], Awaitable[None]]


@runtime_checkable
class IStoreBackend(Protocol):
    """Interface for durable storage of flat record collections."""

    async def load(self, collection: str) -> List[Dict[str, Any]]:
        """Return every record of a collection."""
        ...

    async def upsert(self, collection: str, records: List[Dict[str, Any]]) -> None:
        """Insert or replace records, keyed by their id."""
        ...

    async def delete(self, collection: str, ids: List[str]) -> None:
        """Remove records by id. Unknown ids are ignored."""
        ...

    async def flush(self) -> None:
        """Write pending changes to durable storage."""
        ...


@runtime_checkable
class ITransport(Protocol):
    """Interface for moving one item's content."""

    async def transfer(self, raw: RawItem, upload_id: str, report: ProgressReporter) -> str:
        """
        Transfer an item, awaiting report(percent) after each step.

        Returns the content locator of the stored item.
        """
        ...


class IItemRepository(ABC):
    """Interface for item persistence used by the upload pipeline."""

    @abstractmethod
    async def create(self, fields: Mapping[str, Any]) -> Item:
        """Persist a new item and return it."""
        pass
