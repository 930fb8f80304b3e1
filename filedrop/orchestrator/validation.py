"""Per-item validation policy for upload batches."""
from typing import Any, Iterable, List, Mapping, Tuple, Union

from ..exceptions import ValidationError
from ..models import RawItem, UploadConfig
from ..utils.formatting import format_megabytes

UNNAMED = "(unnamed)"

RawInput = Union[RawItem, Mapping[str, Any]]


def as_raw_item(candidate: RawInput) -> RawItem:
    if isinstance(candidate, RawItem):
        return candidate
    return RawItem.from_mapping(candidate)


class ItemValidator:
    """Checks raw items against the allow-list and size limit."""

    def __init__(self, config: UploadConfig):
        self._config = config

    def check(self, raw: RawItem) -> None:
        """Raise ValidationError with a "<name>: <reason>" message if raw is rejected."""
        name = raw.name or UNNAMED
        if not raw.name or not raw.name.strip():
            raise ValidationError(f"{name}: File name is required")
        if raw.type not in self._config.allowed_types:
            raise ValidationError(f"{name}: File type {raw.type} is not supported")
        if raw.size < 0:
            raise ValidationError(f"{name}: File size must not be negative")
        if raw.size > self._config.max_item_size_bytes:
            limit = format_megabytes(self._config.max_item_size_bytes)
            raise ValidationError(f"{name}: File size must be less than {limit}MB")

    def partition(self, candidates: Iterable[RawInput]) -> Tuple[List[RawItem], List[str]]:
        """
        Split a batch into accepted items and error messages.

        Single synchronous pass; errors keep submission order.
        """
        valid: List[RawItem] = []
        errors: List[str] = []
        for candidate in candidates:
            try:
                raw = as_raw_item(candidate)
            except (AttributeError, TypeError, ValueError) as exc:
                name = candidate.get("name") if isinstance(candidate, Mapping) else None
                errors.append(f"{name or UNNAMED}: Malformed item ({exc})")
                continue
            try:
                self.check(raw)
            except ValidationError as exc:
                errors.append(str(exc))
                continue
            valid.append(raw)
        return valid, errors
