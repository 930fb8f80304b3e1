"""Orchestrator package - validation, the upload pipeline and the library facade."""
from .core import FileLibrary
from .models import UploadBatchResult
from .pipeline import UploadPipeline
from .validation import ItemValidator

__all__ = ["FileLibrary", "UploadBatchResult", "UploadPipeline", "ItemValidator"]
