from __future__ import annotations

import logging
import uuid
from concurrent.futures import Future
from typing import Dict, List, Optional

from . import audit
from .asr import ASRProvider, build_asr_provider
from .chunk_lane import ChunkLane, LaneClosedError
from .config import ServiceConfig
from .contracts import AuditEvent, SessionSummary
from .session_record import SessionRecord
from .session_store import InMemorySessionStore, SessionNotFound

logger = logging.getLogger(__name__)


class SessionManager:
    """Entry points for session-scoped incremental transcription.

    Owns nothing global: the store and the engine provider are injected, and
    ``close()`` tears both the sessions and their lanes down.
    """

    def __init__(
        self,
        store: InMemorySessionStore,
        provider: ASRProvider,
        *,
        default_model: str = "base",
        default_language: str = "en",
        engine_timeout_sec: Optional[float] = None,
        keep_failed_chunks: bool = True,
        audit_max_events: int = 200,
    ) -> None:
        self._store = store
        self._provider = provider
        self._default_model = default_model
        self._default_language = default_language
        self._engine_timeout_sec = engine_timeout_sec
        self._keep_failed_chunks = keep_failed_chunks
        self._audit_max_events = audit_max_events

    @classmethod
    def from_config(
        cls,
        cfg: ServiceConfig,
        *,
        provider: Optional[ASRProvider] = None,
        store: Optional[InMemorySessionStore] = None,
    ) -> "SessionManager":
        return cls(
            store if store is not None else InMemorySessionStore(cfg.LIVESCRIBE_SESSION_TTL_SECONDS),
            provider if provider is not None else build_asr_provider(cfg),
            default_model=cfg.LIVESCRIBE_DEFAULT_MODEL,
            default_language=cfg.LIVESCRIBE_DEFAULT_LANGUAGE,
            engine_timeout_sec=cfg.LIVESCRIBE_ENGINE_TIMEOUT_SEC,
            keep_failed_chunks=cfg.LIVESCRIBE_KEEP_FAILED_CHUNKS,
            audit_max_events=cfg.LIVESCRIBE_AUDIT_MAX_EVENTS,
        )

    @property
    def provider(self) -> ASRProvider:
        return self._provider

    def create_session(self, model: Optional[str] = None, language: Optional[str] = None) -> str:
        record = SessionRecord(
            uuid.uuid4().hex,
            (model or "").strip() or self._default_model,
            (language or "").strip() or self._default_language,
            audit_max_events=self._audit_max_events,
        )
        record.lane = ChunkLane(
            record,
            self._provider,
            timeout_sec=self._engine_timeout_sec,
            keep_failed_chunks=self._keep_failed_chunks,
        )
        audit.log_event(
            record,
            "SESSION_CREATED",
            "SESSION_CREATED",
            f"model={record.model} language={record.language} provider={self._provider.name()}",
        )
        session_id = self._store.create(record)
        logger.info(
            "session_created session_id=%s model=%s language=%s",
            session_id,
            record.model,
            record.language,
        )
        return session_id

    def _lane(self, session_id: str) -> ChunkLane:
        record = self._store.get(session_id)
        if record.lane is None:
            raise SessionNotFound(session_id)
        return record.lane

    def submit_chunk(self, session_id: str, audio_path: str) -> "Future[str]":
        """Queue one persisted chunk; the future yields this chunk's text only."""
        lane = self._lane(session_id)
        try:
            return lane.submit(audio_path)
        except LaneClosedError as e:
            # Lost a race with eviction.
            raise SessionNotFound(session_id) from e

    def transcribe_chunk(
        self, session_id: str, audio_path: str, timeout: Optional[float] = None
    ) -> str:
        return self.submit_chunk(session_id, audio_path).result(timeout=timeout)

    def get_transcript(self, session_id: str) -> str:
        return self._store.get(session_id).transcript

    def get_session(self, session_id: str) -> SessionSummary:
        return self._store.get(session_id).summary()

    def audit_events(self, session_id: str) -> List[AuditEvent]:
        return self._store.get(session_id).audit_events()

    def list_sessions(self) -> Dict[str, SessionSummary]:
        return {record.session_id: record.summary() for record in self._store.list()}

    def drain(self, session_id: str, timeout: Optional[float] = None) -> str:
        """Wait for every chunk queued so far, then return the transcript."""
        lane = self._lane(session_id)
        if not lane.wait_idle(timeout):
            raise TimeoutError(f"Session {session_id} still has chunks in flight")
        return self.get_transcript(session_id)

    def cleanup_expired_sessions(self) -> int:
        return self._store.cleanup_expired_sessions()

    def close(self) -> None:
        self._store.close()
