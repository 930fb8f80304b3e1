"""
ItemStore - canonical owner of the flat item collection.

Items reference folders by id only; the store does not check that a
folder exists. Callers choose what happens to items of deleted folders
with detach_folders() / delete_by_folders().
"""
from dataclasses import replace
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union
import logging

from ..exceptions import NotFoundError, ValidationError
from ..models import Item, ItemStatus, LibraryStats, new_id, utcnow
from ..protocols import IItemRepository
from .record_store import RecordStore

logger = logging.getLogger(__name__)


def _coerce_status(status: Union[ItemStatus, str]) -> ItemStatus:
    if isinstance(status, ItemStatus):
        return status
    try:
        return ItemStatus(status)
    except ValueError as exc:
        raise ValidationError(f"Unknown item status: {status}") from exc


class ItemStore(RecordStore, IItemRepository):
    """Store for uploaded item records, keyed by id in insertion order."""

    collection = "items"

    def __init__(self, backend=None):
        super().__init__(backend)
        self._items: Dict[str, Item] = {}

    def __len__(self) -> int:
        return len(self._items)

    def _restore(self, records: List[Dict[str, Any]]) -> None:
        self._items = {}
        for record in records:
            item = Item.from_dict(record)
            self._items[item.id] = item

    def _require(self, item_id: str) -> Item:
        item = self._items.get(item_id)
        if item is None:
            raise NotFoundError("Item", item_id)
        return item

    @staticmethod
    def _check_fields(fields: Mapping[str, Any]) -> Dict[str, Any]:
        """Validate and normalize item fields."""
        unknown = set(fields) - Item.field_names()
        if unknown:
            raise ValidationError(f"Unknown item field(s): {', '.join(sorted(unknown))}")

        checked = dict(fields)
        if "name" in checked and (not isinstance(checked["name"], str) or not checked["name"].strip()):
            raise ValidationError("Item name is required")
        if "size" in checked:
            if not isinstance(checked["size"], int) or checked["size"] < 0:
                raise ValidationError("Item size must be a non-negative integer")
        if "progress" in checked:
            if not isinstance(checked["progress"], int) or not 0 <= checked["progress"] <= 100:
                raise ValidationError("Item progress must be between 0 and 100")
        if "status" in checked:
            checked["status"] = _coerce_status(checked["status"])
        if isinstance(checked.get("uploaded_at"), str):
            checked["uploaded_at"] = datetime.fromisoformat(checked["uploaded_at"])
        return checked

    # =========================================================================
    # Mutations
    # =========================================================================

    async def create(self, fields: Mapping[str, Any]) -> Item:
        """
        Persist a new item.

        A fresh id and uploaded_at=now are assigned when absent or None; explicitly
        given values win.
        """
        checked = self._check_fields(fields)
        for required in ("name", "size", "type"):
            if required not in checked:
                raise ValidationError(f"Item {required} is required")

        if checked.get("id") is None:
            checked["id"] = new_id()
        if checked.get("uploaded_at") is None:
            checked["uploaded_at"] = utcnow()
        item = Item(**checked)

        async with self._lock:
            if item.id in self._items:
                raise ValidationError(f"Item already exists: {item.id}")
            self._items[item.id] = item
            await self._persist(item)

        logger.debug("Stored item %r (%s) in folder %s", item.name, item.id, item.folder_id)
        return item

    async def update(self, item_id: str, **fields) -> Item:
        """Merge fields into an existing item."""
        if "id" in fields:
            raise ValidationError("Item id cannot be changed")
        checked = self._check_fields(fields)
        async with self._lock:
            updated = replace(self._require(item_id), **checked)
            self._items[item_id] = updated
            await self._persist(updated)
        return updated

    async def delete(self, item_id: str) -> Item:
        """Remove an item and return it."""
        async with self._lock:
            item = self._require(item_id)
            del self._items[item_id]
            await self._persist_delete([item_id])
        logger.info("Deleted item %r (%s)", item.name, item_id)
        return item

    async def detach_folders(self, folder_ids: Iterable[str]) -> List[Item]:
        """Move items of the given folders to the root (folder_id=None)."""
        targets = set(folder_ids)
        async with self._lock:
            detached = [
                replace(item, folder_id=None)
                for item in self._items.values()
                if item.folder_id in targets
            ]
            for item in detached:
                self._items[item.id] = item
            await self._persist(*detached)
        return detached

    async def delete_by_folders(self, folder_ids: Iterable[str]) -> List[Item]:
        """Delete every item that belongs to one of the given folders."""
        targets = set(folder_ids)
        async with self._lock:
            removed = [item for item in self._items.values() if item.folder_id in targets]
            for item in removed:
                del self._items[item.id]
            await self._persist_delete([item.id for item in removed])
        return removed

    # =========================================================================
    # Reads
    # =========================================================================

    def get_all(self) -> List[Item]:
        return list(self._items.values())

    def get_by_id(self, item_id: str) -> Optional[Item]:
        return self._items.get(item_id)

    def get_by_status(self, status: Union[ItemStatus, str]) -> List[Item]:
        wanted = _coerce_status(status)
        return [item for item in list(self._items.values()) if item.status is wanted]

    def get_by_folder(self, folder_id: Optional[str]) -> List[Item]:
        return [item for item in list(self._items.values()) if item.folder_id == folder_id]

    def list(
        self,
        folder_id: Optional[str] = None,
        status: Union[ItemStatus, str, None] = None,
    ) -> List[Item]:
        """
        Items filtered by folder and/or status.

        A None filter matches everything, so list() returns all items.
        """
        items = list(self._items.values())
        if folder_id is not None:
            items = [item for item in items if item.folder_id == folder_id]
        if status is not None:
            wanted = _coerce_status(status)
            items = [item for item in items if item.status is wanted]
        return items

    def stats(self, today: Optional[date] = None) -> LibraryStats:
        """Totals for the dashboard: item count, total bytes, uploads today (UTC)."""
        today = today or utcnow().date()
        items = list(self._items.values())
        return LibraryStats(
            total_items=len(items),
            total_size=sum(item.size for item in items),
            today_uploads=sum(1 for item in items if item.uploaded_at.date() == today),
        )
