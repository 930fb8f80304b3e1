"""
JsonSnapshotBackend - durable storage for the flat record collections.

Keeps every collection in memory and writes them to a single JSON file:

    {"folders": {id: record}, "items": {id: record}, "sessions": {id: record}}

The file is only rewritten when something changed since the last flush.
"""
import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..exceptions import StoreError

logger = logging.getLogger(__name__)

# Default snapshot location
DEFAULT_STORE_DIR = Path.home() / ".local" / "share" / "filedrop"
DEFAULT_STORE_FILE = "library.json"


class JsonSnapshotBackend:
    """
    Store backend persisting collections to a JSON file.

    Implements IStoreBackend. Records are kept keyed by id so the file
    layout mirrors the in-memory stores.
    """

    def __init__(self, path: Optional[Path] = None):
        """
        Initialize backend.

        Args:
            path: Snapshot file (default: ~/.local/share/filedrop/library.json)
        """
        self._path = Path(path) if path else DEFAULT_STORE_DIR / DEFAULT_STORE_FILE
        self._data: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self._loaded = False
        self._dirty = False  # Track if snapshot needs to be written

    @property
    def path(self) -> Path:
        return self._path

    @property
    def is_dirty(self) -> bool:
        return self._dirty

    def _ensure_loaded(self) -> None:
        if self._loaded:
            return
        self._loaded = True
        if not self._path.exists():
            logger.debug("Snapshot: no file at %s, starting empty", self._path)
            self._data = {}
            return
        try:
            with open(self._path, "r", encoding="utf-8") as f:
                raw = json.load(f)
        except json.JSONDecodeError as e:
            raise StoreError(f"snapshot {self._path} is not valid JSON: {e}") from e
        except OSError as e:
            raise StoreError(f"could not read snapshot {self._path}: {e}") from e

        if not isinstance(raw, dict):
            raise StoreError(f"snapshot {self._path} must contain a JSON object")
        self._data = {
            name: dict(records) for name, records in raw.items() if isinstance(records, dict)
        }
        logger.info(
            "Snapshot: loaded %s from %s",
            ", ".join(f"{len(v)} {k}" for k, v in self._data.items()) or "nothing",
            self._path,
        )

    async def load(self, collection: str) -> List[Dict[str, Any]]:
        """Return the records of a collection in stored order."""
        self._ensure_loaded()
        return [dict(record) for record in self._data.get(collection, {}).values()]

    async def upsert(self, collection: str, records: List[Dict[str, Any]]) -> None:
        """Insert or replace records. Written to disk on the next flush."""
        if not records:
            return
        self._ensure_loaded()
        stored = self._data.setdefault(collection, {})
        for record in records:
            stored[str(record["id"])] = dict(record)
        self._dirty = True

    async def delete(self, collection: str, ids: List[str]) -> None:
        """Remove records by id. Written to disk on the next flush."""
        self._ensure_loaded()
        stored = self._data.get(collection, {})
        removed = [record_id for record_id in ids if stored.pop(record_id, None) is not None]
        if removed:
            self._dirty = True

    async def flush(self) -> None:
        """Write the snapshot to disk if dirty."""
        if not self._dirty:
            return

        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path = self._path.with_suffix(self._path.suffix + ".tmp")
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(self._data, f, indent=2)
            tmp_path.replace(self._path)
        except OSError as e:
            raise StoreError(f"could not write snapshot {self._path}: {e}") from e

        self._dirty = False
        logger.info("Snapshot: saved to %s", self._path)
