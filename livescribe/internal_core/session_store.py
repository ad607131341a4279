from __future__ import annotations

import logging
import time
from pathlib import Path
from threading import RLock
from typing import Dict, List, Optional

from . import audit
from .audio_files import safe_unlink
from .session_record import SessionRecord

logger = logging.getLogger(__name__)


class SessionNotFound(KeyError):
    def __init__(self, session_id: str):
        super().__init__(session_id)
        self.session_id = session_id

    def __str__(self) -> str:
        return f"Session not found: {self.session_id}"


class InMemorySessionStore:
    def __init__(self, ttl_seconds: int = 14400):
        self._ttl_seconds = ttl_seconds
        self._lock = RLock()
        self._sessions: Dict[str, SessionRecord] = {}

    def create(self, record: SessionRecord) -> str:
        with self._lock:
            if record.session_id in self._sessions:
                raise ValueError(f"Duplicate session_id: {record.session_id}")
            self._sessions[record.session_id] = record
        return record.session_id

    def get(self, session_id: str) -> SessionRecord:
        with self._lock:
            record = self._sessions.get(session_id)
        if record is None:
            raise SessionNotFound(session_id)
        return record

    def list(self) -> List[SessionRecord]:
        with self._lock:
            return list(self._sessions.values())

    def remove(self, session_id: str, reason: str) -> Optional[SessionRecord]:
        with self._lock:
            record = self._sessions.pop(session_id, None)
        if record is None:
            return None
        if record.lane is not None:
            record.lane.close()
        self._release_retained(record)
        logger.info("session_removed session_id=%s reason=%s", session_id, reason)
        return record

    def cleanup_expired_sessions(self, now: Optional[float] = None) -> int:
        """Evict sessions idle for longer than the TTL.

        A session with queued or running chunks is never evicted.
        """
        if self._ttl_seconds <= 0:
            return 0
        now = time.time() if now is None else now
        expired: List[SessionRecord] = []
        with self._lock:
            for session_id, record in list(self._sessions.items()):
                if record.updated_at + self._ttl_seconds > now:
                    continue
                if record.lane is not None and not record.lane.close_if_idle():
                    continue
                expired.append(self._sessions.pop(session_id))

        for record in expired:
            audit.log_event(record, "SESSION_EXPIRED", "TTL_EXPIRED", f"ttl={self._ttl_seconds}s")
            self._release_retained(record)
            logger.info("session_expired session_id=%s", record.session_id)
        return len(expired)

    def close(self) -> None:
        with self._lock:
            session_ids = list(self._sessions)
        for session_id in session_ids:
            self.remove(session_id, reason="store_closed")

    def _release_retained(self, record: SessionRecord) -> None:
        for path in record.pop_retained_files():
            safe_unlink(Path(path))
