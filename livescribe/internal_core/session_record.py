from __future__ import annotations

import time
from collections import deque
from threading import Lock
from typing import TYPE_CHECKING, Deque, List, Optional

from .contracts import AuditEvent, SessionSummary

if TYPE_CHECKING:
    from .chunk_lane import ChunkLane


def join_transcript(current: str, new_text: str) -> str:
    if current and new_text:
        return f"{current} {new_text}"
    return current or new_text


class SessionRecord:
    """Per-session state: identity, configuration, transcript and its lane.

    ``transcript`` has exactly one writer, the session's lane. It is kept as an
    immutable ``str`` that is rebound on every append, so readers always get a
    complete pre- or post-append value without taking a lock.
    """

    def __init__(
        self,
        session_id: str,
        model: str,
        language: str,
        *,
        audit_max_events: int = 200,
    ) -> None:
        self.session_id = session_id
        self.model = model
        self.language = language
        self.created_at = time.time()
        self.updated_at = self.created_at
        self.lane: Optional["ChunkLane"] = None

        self._lock = Lock()
        self._transcript = ""
        self._chunks_submitted = 0
        self._chunks_completed = 0
        self._chunks_failed = 0
        self._last_error: Optional[str] = None
        self._retained_files: List[str] = []
        self._audit: Deque[AuditEvent] = deque(maxlen=max(1, int(audit_max_events)))

    @property
    def transcript(self) -> str:
        return self._transcript

    def _touch(self) -> None:
        self.updated_at = time.time()

    def mark_submitted(self) -> None:
        with self._lock:
            self._chunks_submitted += 1
            self._touch()

    def append_text(self, text: str) -> None:
        with self._lock:
            self._transcript = join_transcript(self._transcript, text)
            self._chunks_completed += 1
            self._touch()

    def mark_failed(self, error: str) -> None:
        with self._lock:
            self._chunks_failed += 1
            self._last_error = error
            self._touch()

    def retain_file(self, path: str) -> None:
        with self._lock:
            self._retained_files.append(path)

    def pop_retained_files(self) -> List[str]:
        with self._lock:
            files = self._retained_files
            self._retained_files = []
        return files

    def append_audit_event(self, event: AuditEvent) -> None:
        with self._lock:
            self._audit.append(event)

    def audit_events(self) -> List[AuditEvent]:
        with self._lock:
            return list(self._audit)

    def summary(self) -> SessionSummary:
        lane = self.lane
        busy = lane.is_busy if lane is not None else False
        pending = lane.pending_count if lane is not None else 0
        with self._lock:
            return SessionSummary(
                session_id=self.session_id,
                model=self.model,
                language=self.language,
                created_at=self.created_at,
                updated_at=self.updated_at,
                lane_state="processing" if busy else "idle",
                pending_chunks=pending,
                chunks_submitted=self._chunks_submitted,
                chunks_completed=self._chunks_completed,
                chunks_failed=self._chunks_failed,
                transcript_chars=len(self._transcript),
                last_error=self._last_error,
            )
