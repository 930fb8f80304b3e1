"""
Models for filedrop.

Immutable dataclasses: stores replace records instead of mutating them,
so a record handed to a caller never changes under it.
"""
from dataclasses import dataclass, field, fields
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Mapping, Optional
import os
import uuid

from .exceptions import ConfigError


MB = 1024 * 1024

DEFAULT_ALLOWED_TYPES = frozenset({
    "image/jpeg",
    "image/png",
    "image/gif",
    "image/webp",
    "application/pdf",
    "text/plain",
    "application/msword",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "video/mp4",
    "video/webm",
    "audio/mp3",
    "audio/wav",
})


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return uuid.uuid4().hex


def _to_iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _from_iso(value: Any) -> Optional[datetime]:
    """Parse an ISO string (or pass a datetime through)."""
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value)


class ItemStatus(Enum):
    """Status of an uploaded item."""
    UPLOADING = "uploading"
    COMPLETED = "completed"
    FAILED = "failed"


class OrphanPolicy(Enum):
    """What happens to items whose folder is deleted."""
    DETACH = "detach"    # folder_id reset to None
    CASCADE = "cascade"  # items deleted with the folder
    KEEP = "keep"        # folder_id left dangling


@dataclass(frozen=True)
class Folder:
    """Immutable folder record."""
    id: str
    name: str
    parent_id: Optional[str] = None
    is_expanded: bool = False
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    @property
    def is_root(self) -> bool:
        return self.parent_id is None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "parent_id": self.parent_id,
            "is_expanded": self.is_expanded,
            "created_at": _to_iso(self.created_at),
            "updated_at": _to_iso(self.updated_at),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Folder":
        return cls(
            id=str(data["id"]),
            name=data["name"],
            parent_id=data.get("parent_id"),
            is_expanded=bool(data.get("is_expanded", False)),
            created_at=_from_iso(data.get("created_at")) or utcnow(),
            updated_at=_from_iso(data.get("updated_at")) or utcnow(),
        )


@dataclass
class FolderNode:
    """Tree node derived from a Folder. Never persisted."""
    id: str
    name: str
    parent_id: Optional[str]
    is_expanded: bool
    created_at: datetime
    updated_at: datetime
    children: List["FolderNode"] = field(default_factory=list)

    @classmethod
    def from_folder(cls, folder: Folder) -> "FolderNode":
        return cls(
            id=folder.id,
            name=folder.name,
            parent_id=folder.parent_id,
            is_expanded=folder.is_expanded,
            created_at=folder.created_at,
            updated_at=folder.updated_at,
        )

    def walk(self):
        """Yield this node and every descendant, depth first."""
        yield self
        for child in self.children:
            yield from child.walk()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "parent_id": self.parent_id,
            "is_expanded": self.is_expanded,
            "created_at": _to_iso(self.created_at),
            "updated_at": _to_iso(self.updated_at),
            "children": [child.to_dict() for child in self.children],
        }


@dataclass(frozen=True)
class Item:
    """Immutable record of an uploaded item."""
    id: str
    name: str
    size: int
    type: str
    status: ItemStatus = ItemStatus.COMPLETED
    progress: int = 100
    folder_id: Optional[str] = None
    url: str = ""
    uploaded_at: datetime = field(default_factory=utcnow)

    @classmethod
    def field_names(cls) -> FrozenSet[str]:
        return frozenset(f.name for f in fields(cls))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "size": self.size,
            "type": self.type,
            "status": self.status.value,
            "progress": self.progress,
            "folder_id": self.folder_id,
            "url": self.url,
            "uploaded_at": _to_iso(self.uploaded_at),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Item":
        return cls(
            id=str(data["id"]),
            name=data["name"],
            size=int(data.get("size", 0)),
            type=data.get("type", ""),
            status=ItemStatus(data.get("status", ItemStatus.COMPLETED.value)),
            progress=int(data.get("progress", 100)),
            folder_id=data.get("folder_id"),
            url=data.get("url", ""),
            uploaded_at=_from_iso(data.get("uploaded_at")) or utcnow(),
        )


@dataclass(frozen=True)
class RawItem:
    """Candidate item submitted to the upload pipeline."""
    name: str
    size: int
    type: str
    url: Optional[str] = None

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "RawItem":
        return cls(
            name=str(data.get("name") or ""),
            size=int(data.get("size") or 0),
            type=str(data.get("type") or ""),
            url=data.get("url"),
        )


@dataclass(frozen=True)
class UploadSession:
    """Bookkeeping for one upload batch."""
    id: str
    folder_id: Optional[str] = None
    total_items: int = 0
    stored_items: int = 0
    failed_items: int = 0
    rejected_items: int = 0
    completed: bool = False
    started_at: datetime = field(default_factory=utcnow)
    finished_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "folder_id": self.folder_id,
            "total_items": self.total_items,
            "stored_items": self.stored_items,
            "failed_items": self.failed_items,
            "rejected_items": self.rejected_items,
            "completed": self.completed,
            "started_at": _to_iso(self.started_at),
            "finished_at": _to_iso(self.finished_at),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "UploadSession":
        return cls(
            id=str(data["id"]),
            folder_id=data.get("folder_id"),
            total_items=int(data.get("total_items", 0)),
            stored_items=int(data.get("stored_items", 0)),
            failed_items=int(data.get("failed_items", 0)),
            rejected_items=int(data.get("rejected_items", 0)),
            completed=bool(data.get("completed", False)),
            started_at=_from_iso(data.get("started_at")) or utcnow(),
            finished_at=_from_iso(data.get("finished_at")),
        )


@dataclass(frozen=True)
class LibraryStats:
    """Dashboard totals over the item store."""
    total_items: int = 0
    total_size: int = 0
    today_uploads: int = 0


def _env_int(environ: Mapping[str, str], key: str) -> Optional[int]:
    raw = environ.get(key)
    if raw is None or raw.strip() == "":
        return None
    try:
        return int(raw)
    except ValueError as exc:
        raise ConfigError(f"{key} must be an integer, got {raw!r}") from exc


def _env_float(environ: Mapping[str, str], key: str) -> Optional[float]:
    raw = environ.get(key)
    if raw is None or raw.strip() == "":
        return None
    try:
        return float(raw)
    except ValueError as exc:
        raise ConfigError(f"{key} must be a number, got {raw!r}") from exc


@dataclass(frozen=True)
class UploadConfig:
    """Immutable configuration for the upload pipeline."""
    allowed_types: FrozenSet[str] = DEFAULT_ALLOWED_TYPES
    max_item_size_bytes: int = 10 * MB
    progress_step: int = 10
    step_delay: float = 0.1  # seconds before each progress step
    max_parallel: Optional[int] = None  # None: one unthrottled task per item

    def __post_init__(self):
        if self.max_item_size_bytes < 0:
            raise ConfigError("max_item_size_bytes must not be negative")
        if not 1 <= self.progress_step <= 100:
            raise ConfigError("progress_step must be between 1 and 100")
        if self.step_delay < 0:
            raise ConfigError("step_delay must not be negative")
        if self.max_parallel is not None and self.max_parallel < 1:
            raise ConfigError("max_parallel must be at least 1")

    @property
    def max_item_size_mb(self) -> float:
        return self.max_item_size_bytes / MB

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "UploadConfig":
        """
        Build a config from FILEDROP_* environment variables.

        Unset variables keep their defaults.
        """
        env = os.environ if environ is None else environ
        kwargs: Dict[str, Any] = {}

        types = env.get("FILEDROP_ALLOWED_TYPES")
        if types:
            kwargs["allowed_types"] = frozenset(t.strip() for t in types.split(",") if t.strip())

        max_mb = _env_float(env, "FILEDROP_MAX_ITEM_SIZE_MB")
        if max_mb is not None:
            kwargs["max_item_size_bytes"] = int(max_mb * MB)

        step = _env_int(env, "FILEDROP_PROGRESS_STEP")
        if step is not None:
            kwargs["progress_step"] = step

        delay = _env_float(env, "FILEDROP_STEP_DELAY")
        if delay is not None:
            kwargs["step_delay"] = delay

        max_parallel = _env_int(env, "FILEDROP_MAX_PARALLEL")
        if max_parallel is not None:
            kwargs["max_parallel"] = max_parallel or None

        return cls(**kwargs)
