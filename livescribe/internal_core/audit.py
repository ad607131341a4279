from __future__ import annotations

import datetime as _dt
from typing import TYPE_CHECKING, Optional

from .contracts import AuditEvent, AuditEventType

if TYPE_CHECKING:
    from .session_record import SessionRecord


def _ts_iso() -> str:
    return _dt.datetime.now(_dt.timezone.utc).isoformat()


def _sanitize_detail(detail: str) -> str:
    # IMPORTANT: Never include transcript text or audio bytes in detail.
    detail = (detail or "").replace("\n", " ").strip()
    if len(detail) > 200:
        detail = detail[:200] + "…"
    return detail


def log_event(
    record: "SessionRecord",
    event_type: AuditEventType,
    code: str,
    detail: str,
    chunk_seq: Optional[int] = None,
    duration_ms: Optional[int] = None,
) -> None:
    event = AuditEvent(
        ts_iso=_ts_iso(),
        session_id=record.session_id,
        type=event_type,
        code=code,
        detail=_sanitize_detail(detail),
        chunk_seq=chunk_seq,
        duration_ms=duration_ms,
    )
    record.append_audit_event(event)
