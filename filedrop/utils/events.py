from dataclasses import dataclass, replace
from typing import Dict, List, Callable, Optional
import inspect
import logging

from filedrop.models import ItemStatus
logger = logging.getLogger(__name__)

@dataclass
class ItemProgress:
    """Progress information for a single in-flight item."""
    upload_id: str
    name: str
    size: int = 0
    type: str = ""
    folder_id: Optional[str] = None
    progress: int = 0
    status: ItemStatus = ItemStatus.UPLOADING
    error: Optional[str] = None

    def copy(self) -> "ItemProgress":
        return replace(self)


class EventEmitter:
    """Simple event emitter for upload events."""

    def __init__(self):
        self._listeners: Dict[str, List[Callable]] = {}

    def on(self, event_name: str, callback: Callable):
        """Subscribe to an event."""
        if event_name not in self._listeners:
            self._listeners[event_name] = []
        if callback not in self._listeners[event_name]:
            self._listeners[event_name].append(callback)

    def off(self, event_name: str, callback: Callable):
        """Unsubscribe from an event."""
        if event_name in self._listeners:
            if callback in self._listeners[event_name]:
                self._listeners[event_name].remove(callback)

    def listener_count(self, event_name: str) -> int:
        return len(self._listeners.get(event_name, []))

    async def emit(self, event_name: str, *args, **kwargs):
        """Emit an event to all listeners. Sync and async listeners are both accepted."""
        if event_name not in self._listeners:
            return

        # Listeners run outside any lock; concurrent emits interleave
        for callback in self._listeners[event_name][:]:  # Copy list to avoid modification during iteration
            try:
                result = callback(*args, **kwargs)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error(f"Error in event listener for {event_name}: {e}")
