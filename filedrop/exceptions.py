"""Exception hierarchy for filedrop."""
from typing import Optional


class FileDropError(Exception):
    """Base class for all filedrop errors."""


class ConfigError(FileDropError):
    """Raised when configuration or environment values are malformed."""


class StoreError(FileDropError):
    """Raised when a store backend cannot read or write its data."""


class ValidationError(FileDropError):
    """
    Raised when input has a bad shape, size or type.

    Always recoverable. The upload pipeline reports these per item and
    never aborts a batch because of one.
    """


class CycleError(ValidationError):
    """Raised when a parent assignment would make a folder its own ancestor."""

    def __init__(self, folder_id: str, parent_id: str):
        self.folder_id = folder_id
        self.parent_id = parent_id
        super().__init__(
            f"Cannot move folder {folder_id} under {parent_id}: it would become its own ancestor"
        )


class NotFoundError(FileDropError):
    """Raised when an operation references an id that does not exist."""

    def __init__(self, kind: str, item_id: Optional[str]):
        self.kind = kind
        self.id = item_id
        super().__init__(f"{kind} not found: {item_id}")


class TransientUploadFailure(FileDropError):
    """A processing step failed after validation passed."""

    def __init__(self, name: str, reason: str = "upload failed"):
        self.name = name
        self.reason = reason
        super().__init__(f"{name}: {reason}")


class UploadCancelled(TransientUploadFailure):
    """The upload was cancelled through its cancellation token."""

    def __init__(self, name: str):
        super().__init__(name, "upload cancelled")
