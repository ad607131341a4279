from __future__ import annotations

"""
HTTP surface for live chunked transcription.

Design intent:
- Keep handlers thin: persist the upload, queue it, await the session lane.
- All ordering/exclusivity lives in the session manager, never here.
- Keep the wire names the browser recorder already speaks (sessionID, chunkText).
"""

import asyncio
import logging
from concurrent.futures import Future
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Optional

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, ConfigDict, Field
from starlette.datastructures import UploadFile as StarletteUploadFile

from livescribe.internal_core.asr import ASRError
from livescribe.internal_core.audio_files import ALLOWED_CHUNK_EXTS, persist_chunk, safe_unlink
from livescribe.internal_core.config import ServiceConfig, load_config
from livescribe.internal_core.contracts import AuditEvent, SessionSummary
from livescribe.internal_core.session_manager import SessionManager
from livescribe.internal_core.session_store import SessionNotFound

CHUNK_FORM_FIELD = "audio_chunk"


class StartSessionRequest(BaseModel):
    model: Optional[str] = Field(default=None, max_length=128)
    lang: Optional[str] = Field(default=None, max_length=16)


class SessionResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    session_id: str = Field(alias="sessionID")
    session: SessionSummary


class SessionListResponse(BaseModel):
    jobs: dict[str, SessionSummary] = Field(default_factory=dict)


class ChunkUploadResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    chunk_text: str = Field(alias="chunkText")


class FinalTranscriptResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    session_id: str = Field(alias="sessionID")
    transcript: str
    drained: bool
    session: SessionSummary


class AuditEventsResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    session_id: str = Field(alias="sessionID")
    events: list[AuditEvent] = Field(default_factory=list)


@asynccontextmanager
async def _lifespan(app: FastAPI) -> AsyncIterator[None]:
    yield
    manager = getattr(app.state, "session_manager", None)
    if isinstance(manager, SessionManager):
        manager.close()


app = FastAPI(title="livescribe chunked transcription service", lifespan=_lifespan)
logger = logging.getLogger(__name__)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _get_config() -> ServiceConfig:
    existing = getattr(app.state, "config", None)
    if isinstance(existing, ServiceConfig):
        return existing
    created = load_config()
    setattr(app.state, "config", created)
    return created


def _get_session_manager() -> SessionManager:
    existing = getattr(app.state, "session_manager", None)
    if isinstance(existing, SessionManager):
        return existing
    cfg = _get_config()
    logging.getLogger("livescribe").setLevel(cfg.LIVESCRIBE_LOG_LEVEL.strip().upper() or "INFO")
    created = SessionManager.from_config(cfg)
    setattr(app.state, "session_manager", created)
    logger.info("session_manager_ready provider=%s", created.provider.name())
    return created


def _get_upload_dir() -> Path:
    configured = getattr(app.state, "upload_dir", None)
    if configured:
        resolved = Path(str(configured)).expanduser().resolve()
    else:
        resolved = _get_config().upload_dir_path()
    resolved.mkdir(parents=True, exist_ok=True)
    return resolved


def _start_session(model: Optional[str], lang: Optional[str]) -> SessionResponse:
    manager = _get_session_manager()
    expired = manager.cleanup_expired_sessions()
    if expired:
        logger.info("sessions_expired count=%s", expired)
    session_id = manager.create_session(model=model, language=lang)
    return SessionResponse(session_id=session_id, session=manager.get_session(session_id))


def _normalize_session_id(session_id: str) -> str:
    normalized = str(session_id or "").strip()
    if not normalized:
        raise HTTPException(status_code=400, detail="session_id is required.")
    return normalized


@app.get("/healthz")
async def healthz() -> dict[str, str]:
    return {"status": "ok"}


@app.get("/get_session", response_model=SessionResponse)
async def get_session() -> SessionResponse:
    return _start_session(None, None)


@app.get("/start_session", response_model=SessionResponse)
async def start_session_query(
    model: Optional[str] = Query(default=None, max_length=128),
    lang: Optional[str] = Query(default=None, max_length=16),
) -> SessionResponse:
    return _start_session(model, lang)


@app.post("/start_session", response_model=SessionResponse)
async def start_session(payload: Optional[StartSessionRequest] = None) -> SessionResponse:
    payload = payload or StartSessionRequest()
    return _start_session(payload.model, payload.lang)


@app.get("/get_sessions", response_model=SessionListResponse)
async def get_sessions() -> SessionListResponse:
    return SessionListResponse(jobs=_get_session_manager().list_sessions())


async def _read_chunk_payload(request: Request) -> tuple[bytes, Optional[str]]:
    """Return the uploaded audio bytes and the client's filename, if any.

    The browser recorder posts multipart/form-data with an ``audio_chunk``
    file field; any other content type is taken as the raw audio body.
    """
    content_type = request.headers.get("content-type", "")
    if not content_type.lower().startswith("multipart/form-data"):
        return await request.body(), None

    form = await request.form()
    try:
        upload = form.get(CHUNK_FORM_FIELD)
        if not isinstance(upload, StarletteUploadFile):
            raise HTTPException(
                status_code=400,
                detail=f"Multipart upload requires a {CHUNK_FORM_FIELD!r} file field.",
            )
        payload = await upload.read()
        return payload, upload.filename
    finally:
        await form.close()


async def _await_chunk(future: "Future[str]") -> str:
    # A dropped request must not cancel a chunk already queued on the lane.
    return await asyncio.shield(asyncio.wrap_future(future))


@app.post("/upload-chunk/{session_id}", response_model=ChunkUploadResponse)
async def upload_chunk(
    session_id: str,
    request: Request,
    filename: Optional[str] = Query(default=None, min_length=1, max_length=255),
) -> ChunkUploadResponse:
    normalized_session = _normalize_session_id(session_id)
    manager = _get_session_manager()
    try:
        manager.get_session(normalized_session)
    except SessionNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc

    payload, form_filename = await _read_chunk_payload(request)
    chosen_name = filename or form_filename or "chunk.ogg"
    suffix = Path(Path(str(chosen_name)).name).suffix.lower() or ".ogg"
    if suffix not in ALLOWED_CHUNK_EXTS:
        raise HTTPException(
            status_code=400,
            detail=f"Unsupported chunk type {suffix!r}; accepted: {', '.join(sorted(ALLOWED_CHUNK_EXTS))}.",
        )

    if not payload:
        raise HTTPException(status_code=400, detail="Uploaded chunk is empty.")
    max_bytes = _get_config().LIVESCRIBE_MAX_CHUNK_BYTES
    if len(payload) > max_bytes:
        raise HTTPException(status_code=413, detail=f"Uploaded chunk exceeds {max_bytes} bytes.")

    chunk_path = persist_chunk(_get_upload_dir(), payload, prefix=normalized_session[:12], suffix=suffix)
    try:
        future = manager.submit_chunk(normalized_session, str(chunk_path))
    except SessionNotFound as exc:
        safe_unlink(chunk_path)
        raise HTTPException(status_code=404, detail=str(exc)) from exc

    try:
        chunk_text = await _await_chunk(future)
    except ASRError as exc:
        raise HTTPException(status_code=502, detail=f"{exc.code}: {exc.message}") from exc
    except Exception as exc:
        logger.exception("upload_chunk_failed session_id=%s", normalized_session)
        raise HTTPException(status_code=500, detail=f"Chunk transcription failed: {exc}") from exc

    return ChunkUploadResponse(chunk_text=chunk_text)


@app.get("/final-transcript/{session_id}", response_model=FinalTranscriptResponse)
async def final_transcript(
    session_id: str,
    wait: bool = Query(default=True),
    timeout_sec: Optional[float] = Query(default=None, gt=0.0, le=3600.0),
) -> FinalTranscriptResponse:
    normalized_session = _normalize_session_id(session_id)
    manager = _get_session_manager()
    drained = True
    try:
        if wait:
            try:
                transcript = await run_in_threadpool(manager.drain, normalized_session, timeout_sec)
            except TimeoutError:
                drained = False
                transcript = manager.get_transcript(normalized_session)
        else:
            transcript = manager.get_transcript(normalized_session)
            drained = manager.get_session(normalized_session).lane_state == "idle"
        summary = manager.get_session(normalized_session)
    except SessionNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc

    return FinalTranscriptResponse(
        session_id=normalized_session,
        transcript=transcript,
        drained=drained,
        session=summary,
    )


@app.get("/session/{session_id}/audit", response_model=AuditEventsResponse)
async def session_audit(session_id: str) -> AuditEventsResponse:
    normalized_session = _normalize_session_id(session_id)
    try:
        events = _get_session_manager().audit_events(normalized_session)
    except SessionNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return AuditEventsResponse(session_id=normalized_session, events=events)
