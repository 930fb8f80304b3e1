"""
FolderStore - canonical owner of the flat folder collection.

Folders are kept in an insertion-ordered dict plus a parent_id -> child ids
index, so child lookups, cascading deletes and expand toggles never scan
the whole collection. Trees are derived on demand and never stored.
"""
from dataclasses import replace
from itertools import count
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union
import logging

from ..exceptions import CycleError, NotFoundError, ValidationError
from ..models import Folder, FolderNode, new_id, utcnow
from .record_store import RecordStore

logger = logging.getLogger(__name__)

PATH_SEPARATOR = " / "


class FolderStore(RecordStore):
    """
    Store for the folder hierarchy.

    The parent relation is kept a forest: create/update reject any parent
    that does not exist or that would make a folder its own ancestor.
    """

    collection = "folders"
    UPDATABLE_FIELDS = frozenset({"name", "parent_id", "is_expanded"})

    def __init__(self, backend=None):
        super().__init__(backend)
        self._folders: Dict[str, Folder] = {}
        self._order: Dict[str, int] = {}
        self._children: Dict[Optional[str], List[str]] = {}
        self._seq = count()

    def __len__(self) -> int:
        return len(self._folders)

    def __contains__(self, folder_id) -> bool:
        return folder_id in self._folders

    # =========================================================================
    # Index maintenance
    # =========================================================================

    def _restore(self, records: List[Dict[str, Any]]) -> None:
        self._folders.clear()
        self._order.clear()
        self._children.clear()
        for record in records:
            self._insert(Folder.from_dict(record))

    def _insert(self, folder: Folder) -> None:
        self._folders[folder.id] = folder
        self._order[folder.id] = next(self._seq)
        self._link(folder.id, folder.parent_id)

    def _link(self, folder_id: str, parent_id: Optional[str]) -> None:
        siblings = self._children.setdefault(parent_id, [])
        siblings.append(folder_id)
        if len(siblings) > 1 and self._order[siblings[-2]] > self._order[folder_id]:
            # Re-parented folder: restore storage order among its new siblings
            siblings.sort(key=self._order.__getitem__)

    def _unlink(self, folder_id: str, parent_id: Optional[str]) -> None:
        siblings = self._children.get(parent_id)
        if not siblings:
            return
        siblings.remove(folder_id)
        if not siblings:
            del self._children[parent_id]

    def _require(self, folder_id: str) -> Folder:
        folder = self._folders.get(folder_id)
        if folder is None:
            raise NotFoundError("Folder", folder_id)
        return folder

    @staticmethod
    def _validate_name(name: Any) -> str:
        if not isinstance(name, str) or not name.strip():
            raise ValidationError("Folder name is required")
        return name.strip()

    def _check_acyclic(self, folder_id: str, parent_id: str) -> None:
        """Walk ancestors from parent_id; reaching folder_id means a cycle."""
        cursor: Optional[str] = parent_id
        seen = set()
        while cursor is not None and cursor not in seen:
            if cursor == folder_id:
                raise CycleError(folder_id, parent_id)
            seen.add(cursor)
            parent = self._folders.get(cursor)
            cursor = parent.parent_id if parent else None

    def _collect_subtree(self, root_id: str) -> List[str]:
        """Ids of root_id and all its descendants, deepest first (post-order)."""
        ordered: List[str] = []
        seen = set()
        stack = [(root_id, False)]
        while stack:
            folder_id, visited = stack.pop()
            if visited:
                ordered.append(folder_id)
                continue
            if folder_id in seen:
                continue
            seen.add(folder_id)
            stack.append((folder_id, True))
            for child_id in reversed(self._children.get(folder_id, [])):
                stack.append((child_id, False))
        return ordered

    # =========================================================================
    # Mutations
    # =========================================================================

    async def create(self, name: str, parent_id: Optional[str] = None) -> Folder:
        """
        Create a folder.

        Args:
            name: Display label, must not be blank
            parent_id: Parent folder id, None for a root-level folder

        Raises:
            ValidationError: name is blank
            NotFoundError: parent_id does not resolve
        """
        name = self._validate_name(name)
        async with self._lock:
            if parent_id is not None and parent_id not in self._folders:
                raise NotFoundError("Folder", parent_id)
            now = utcnow()
            folder = Folder(
                id=new_id(),
                name=name,
                parent_id=parent_id,
                is_expanded=False,
                created_at=now,
                updated_at=now,
            )
            self._insert(folder)
            await self._persist(folder)

        logger.info("Created folder %r (%s) under %s", folder.name, folder.id, parent_id or "root")
        return folder

    async def update(self, folder_id: str, **fields) -> Folder:
        """
        Merge fields into a folder and refresh updated_at.

        Accepts name, parent_id and is_expanded. Changing parent_id is
        re-validated so the hierarchy stays acyclic.
        """
        unknown = set(fields) - self.UPDATABLE_FIELDS
        if unknown:
            raise ValidationError(f"Cannot update folder field(s): {', '.join(sorted(unknown))}")
        if "name" in fields:
            fields["name"] = self._validate_name(fields["name"])
        if "is_expanded" in fields:
            fields["is_expanded"] = bool(fields["is_expanded"])

        async with self._lock:
            current = self._require(folder_id)
            new_parent = fields.get("parent_id", current.parent_id)
            if new_parent != current.parent_id and new_parent is not None:
                if new_parent not in self._folders:
                    raise NotFoundError("Folder", new_parent)
                self._check_acyclic(folder_id, new_parent)

            updated = replace(current, updated_at=utcnow(), **fields)
            self._folders[folder_id] = updated
            if updated.parent_id != current.parent_id:
                self._unlink(folder_id, current.parent_id)
                self._link(folder_id, updated.parent_id)
            await self._persist(updated)

        logger.debug("Updated folder %s: %s", folder_id, ", ".join(sorted(fields)) or "timestamp")
        return updated

    async def delete(self, folder_id: str) -> List[str]:
        """
        Delete a folder and every descendant folder.

        Descendants go first, deepest first, so no remaining folder ever
        points at a parent that is already gone. Items are not touched.

        Returns:
            Removed folder ids in removal order (folder_id last)
        """
        async with self._lock:
            self._require(folder_id)
            doomed = self._collect_subtree(folder_id)
            for doomed_id in doomed:
                folder = self._folders.pop(doomed_id)
                del self._order[doomed_id]
                self._unlink(doomed_id, folder.parent_id)
                self._children.pop(doomed_id, None)
            await self._persist_delete(doomed)

        logger.info("Deleted folder %s with %d descendant(s)", folder_id, len(doomed) - 1)
        return doomed

    async def toggle_expanded(self, folder_id: str) -> Folder:
        """Flip is_expanded and refresh updated_at."""
        async with self._lock:
            current = self._require(folder_id)
            updated = replace(current, is_expanded=not current.is_expanded, updated_at=utcnow())
            self._folders[folder_id] = updated
            await self._persist(updated)
        return updated

    # =========================================================================
    # Reads (lock-free snapshots)
    # =========================================================================

    def get_all(self) -> List[Folder]:
        return list(self._folders.values())

    def get_by_id(self, folder_id: str) -> Optional[Folder]:
        return self._folders.get(folder_id)

    def get_by_parent_id(self, parent_id: Optional[str]) -> List[Folder]:
        """Direct children of parent_id in storage insertion order."""
        return [self._folders[child_id] for child_id in list(self._children.get(parent_id, []))]

    def get_root_folders(self) -> List[Folder]:
        return self.get_by_parent_id(None)

    def get_descendant_ids(self, folder_id: str) -> List[str]:
        """Ids of every descendant of folder_id (not including itself)."""
        if folder_id not in self._folders:
            raise NotFoundError("Folder", folder_id)
        return self._collect_subtree(folder_id)[:-1]

    def build_folder_tree(
        self,
        records: Optional[Iterable[Union[Folder, Mapping[str, Any]]]] = None,
    ) -> List[FolderNode]:
        """
        Rebuild a forest from flat records (default: this store's folders).

        Two passes: map every id to a fresh node, then attach each node to
        its parent or to the root list. Records whose parent does not
        resolve are dropped. Input records are never modified and every call
        returns new nodes.
        """
        if records is None:
            folder_list = list(self._folders.values())
        else:
            folder_list = [
                Folder.from_dict(record) if isinstance(record, Mapping) else record
                for record in records
            ]

        node_map: Dict[str, FolderNode] = {}
        unique: List[Folder] = []
        for folder in folder_list:
            if folder.id in node_map:
                continue
            node_map[folder.id] = FolderNode.from_folder(folder)
            unique.append(folder)

        roots: List[FolderNode] = []
        orphans = 0
        for folder in unique:
            node = node_map[folder.id]
            if folder.parent_id is None:
                roots.append(node)
            elif folder.parent_id != folder.id and folder.parent_id in node_map:
                node_map[folder.parent_id].children.append(node)
            else:
                orphans += 1

        if orphans:
            logger.warning("Folder tree: dropped %d orphaned record(s)", orphans)
        return roots

    def get_folder_path(self, folder_id: Optional[str]) -> str:
        """
        Names from the root down to folder_id, joined by " / ".

        Unknown ids give an empty path.
        """
        return PATH_SEPARATOR.join(self.get_path_segments(folder_id))

    def get_path_segments(self, folder_id: Optional[str]) -> List[str]:
        segments: List[str] = []
        seen = set()
        current = self._folders.get(folder_id) if folder_id is not None else None
        while current is not None and current.id not in seen:
            seen.add(current.id)
            segments.insert(0, current.name)
            current = self._folders.get(current.parent_id) if current.parent_id else None
        return segments
