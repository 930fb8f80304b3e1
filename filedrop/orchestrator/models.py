"""Orchestrator data models."""
from dataclasses import dataclass, field
from typing import List, Optional

from ..models import Item


@dataclass
class UploadBatchResult:
    """Result of an upload batch."""
    stored: List[Item] = field(default_factory=list)  # completion order
    validation_errors: List[str] = field(default_factory=list)  # submission order
    transient_failures: int = 0
    failed_items: List[str] = field(default_factory=list)
    session_id: Optional[str] = None

    @property
    def all_success(self) -> bool:
        return not self.validation_errors and self.transient_failures == 0

    @property
    def total_submitted(self) -> int:
        return len(self.stored) + len(self.validation_errors) + self.transient_failures
