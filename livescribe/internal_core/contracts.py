from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict

LaneState = Literal["idle", "processing"]

AuditEventType = Literal[
    "SESSION_CREATED",
    "CHUNK_QUEUED",
    "CHUNK_DONE",
    "CHUNK_FAILED",
    "CHUNK_CANCELLED",
    "SESSION_EXPIRED",
]


class AuditEvent(BaseModel):
    model_config = ConfigDict(extra="forbid")

    ts_iso: str
    session_id: str
    type: AuditEventType
    code: str
    detail: str
    chunk_seq: Optional[int] = None
    duration_ms: Optional[int] = None


class SessionSummary(BaseModel):
    model_config = ConfigDict(extra="forbid")

    session_id: str
    model: str
    language: str
    created_at: float
    updated_at: float
    lane_state: LaneState
    pending_chunks: int
    chunks_submitted: int
    chunks_completed: int
    chunks_failed: int
    transcript_chars: int
    last_error: Optional[str] = None
