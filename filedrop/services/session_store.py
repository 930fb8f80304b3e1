"""UploadSessionStore - one bookkeeping record per upload batch."""
from dataclasses import fields as dataclass_fields, replace
from typing import Any, Dict, List, Optional
import logging

from ..exceptions import NotFoundError, ValidationError
from ..models import UploadSession, new_id, utcnow
from .record_store import RecordStore

logger = logging.getLogger(__name__)

_SESSION_FIELDS = frozenset(f.name for f in dataclass_fields(UploadSession))


class UploadSessionStore(RecordStore):
    """Store for upload sessions, keyed by id in insertion order."""

    collection = "sessions"

    def __init__(self, backend=None):
        super().__init__(backend)
        self._sessions: Dict[str, UploadSession] = {}

    def _restore(self, records: List[Dict[str, Any]]) -> None:
        self._sessions = {}
        for record in records:
            session = UploadSession.from_dict(record)
            self._sessions[session.id] = session

    def _require(self, session_id: str) -> UploadSession:
        session = self._sessions.get(session_id)
        if session is None:
            raise NotFoundError("Upload session", session_id)
        return session

    @staticmethod
    def _check_fields(fields: Dict[str, Any]) -> None:
        unknown = set(fields) - _SESSION_FIELDS
        if unknown:
            raise ValidationError(f"Unknown session field(s): {', '.join(sorted(unknown))}")

    async def create(self, **fields) -> UploadSession:
        """Open a session; id, started_at and completed=False are defaulted."""
        self._check_fields(fields)
        fields.setdefault("id", new_id())
        fields.setdefault("started_at", utcnow())
        fields.setdefault("completed", False)
        session = UploadSession(**fields)
        async with self._lock:
            self._sessions[session.id] = session
            await self._persist(session)
        return session

    async def update(self, session_id: str, **fields) -> UploadSession:
        if "id" in fields:
            raise ValidationError("Session id cannot be changed")
        self._check_fields(fields)
        async with self._lock:
            updated = replace(self._require(session_id), **fields)
            self._sessions[session_id] = updated
            await self._persist(updated)
        return updated

    async def finish(self, session_id: str, stored: int, failed: int, rejected: int) -> UploadSession:
        """Mark a session completed with its final counts."""
        session = await self.update(
            session_id,
            stored_items=stored,
            failed_items=failed,
            rejected_items=rejected,
            completed=True,
            finished_at=utcnow(),
        )
        logger.debug("Upload session %s finished: %d stored, %d failed", session_id, stored, failed)
        return session

    async def delete(self, session_id: str) -> UploadSession:
        async with self._lock:
            session = self._require(session_id)
            del self._sessions[session_id]
            await self._persist_delete([session_id])
        return session

    def get_all(self) -> List[UploadSession]:
        return list(self._sessions.values())

    def get_by_id(self, session_id: str) -> Optional[UploadSession]:
        return self._sessions.get(session_id)
