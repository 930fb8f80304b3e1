"""Shared helpers: events and formatting."""
from .events import EventEmitter, ItemProgress
from .formatting import format_file_size, format_megabytes

__all__ = ["EventEmitter", "ItemProgress", "format_file_size", "format_megabytes"]
