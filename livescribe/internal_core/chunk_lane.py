from __future__ import annotations

"""
Per-session ordered execution lane for chunk transcription.

Design intent:
- One consumer thread per busy session; chunks run strictly in submission order.
- The running transcript is read right before each engine call, after the
  previous chunk has been folded in, and passed as the continuity prompt.
- A failing chunk only fails its own future; the lane moves on.
- No thread is kept around while the pending queue is empty.
"""

import logging
import threading
import time
from collections import deque
from concurrent.futures import Future
from dataclasses import dataclass, field
from pathlib import Path
from typing import Deque, Optional

from . import audit
from .asr.base import ASRError, ASRProvider
from .audio_files import safe_unlink
from .session_record import SessionRecord

logger = logging.getLogger(__name__)


class LaneClosedError(RuntimeError):
    pass


@dataclass
class QueuedChunk:
    seq: int
    audio_path: str
    future: "Future[str]" = field(default_factory=Future)


class ChunkLane:
    def __init__(
        self,
        record: SessionRecord,
        provider: ASRProvider,
        *,
        timeout_sec: Optional[float] = None,
        keep_failed_chunks: bool = True,
    ) -> None:
        self._record = record
        self._provider = provider
        self._timeout_sec = timeout_sec
        self._keep_failed_chunks = keep_failed_chunks
        self._lock = threading.Lock()
        self._pending: Deque[QueuedChunk] = deque()
        self._worker: Optional[threading.Thread] = None
        self._idle = threading.Event()
        self._idle.set()
        self._next_seq = 0
        self._closed = False

    @property
    def pending_count(self) -> int:
        with self._lock:
            return len(self._pending)

    @property
    def is_busy(self) -> bool:
        return not self._idle.is_set()

    def submit(self, audio_path: str) -> "Future[str]":
        with self._lock:
            if self._closed:
                raise LaneClosedError(f"lane for session {self._record.session_id} is closed")
            item = QueuedChunk(seq=self._next_seq, audio_path=str(audio_path))
            self._next_seq += 1
            self._record.mark_submitted()
            audit.log_event(
                self._record, "CHUNK_QUEUED", "CHUNK_QUEUED", Path(item.audio_path).name, chunk_seq=item.seq
            )
            self._pending.append(item)
            self._idle.clear()
            if self._worker is None:
                self._worker = threading.Thread(
                    target=self._drain,
                    name=f"chunk-lane-{self._record.session_id[:8]}",
                    daemon=True,
                )
                self._worker.start()
        logger.debug("chunk_queued session_id=%s seq=%s", self._record.session_id, item.seq)
        return item.future

    def wait_idle(self, timeout: Optional[float] = None) -> bool:
        return self._idle.wait(timeout)

    def close_if_idle(self) -> bool:
        with self._lock:
            if self._worker is not None or self._pending:
                return False
            self._closed = True
            return True

    def close(self) -> int:
        """Refuse new chunks and cancel the ones not yet started.

        A chunk already handed to the engine is left to finish.
        """
        with self._lock:
            self._closed = True
            dropped = list(self._pending)
            self._pending.clear()
        for item in dropped:
            self._cancel(item)
        return len(dropped)

    def _drain(self) -> None:
        while True:
            with self._lock:
                if not self._pending:
                    self._worker = None
                    self._idle.set()
                    return
                item = self._pending.popleft()
            try:
                self._process(item)
            except Exception as e:
                # Bookkeeping errors must not stall the chunks queued behind this one.
                logger.exception(
                    "chunk_lane_error session_id=%s seq=%s", self._record.session_id, item.seq
                )
                if not item.future.done():
                    item.future.set_exception(e)

    def _cancel(self, item: QueuedChunk) -> None:
        item.future.cancel()
        safe_unlink(Path(item.audio_path))
        audit.log_event(self._record, "CHUNK_CANCELLED", "CHUNK_CANCELLED", "", chunk_seq=item.seq)

    def _process(self, item: QueuedChunk) -> None:
        if not item.future.set_running_or_notify_cancel():
            safe_unlink(Path(item.audio_path))
            audit.log_event(self._record, "CHUNK_CANCELLED", "CHUNK_CANCELLED", "", chunk_seq=item.seq)
            return

        record = self._record
        started = time.monotonic()
        try:
            text = self._provider.transcribe_chunk(
                item.audio_path,
                model=record.model,
                language=record.language,
                prompt=record.transcript,
                timeout_sec=self._timeout_sec,
            )
        except ASRError as e:
            self._fail(item, e, e.code, started)
            return
        except Exception as e:
            logger.exception(
                "chunk_engine_crashed session_id=%s seq=%s provider=%s",
                record.session_id,
                item.seq,
                self._provider.name(),
            )
            self._fail(item, e, type(e).__name__, started)
            return

        text = str(text or "").strip()
        record.append_text(text)
        safe_unlink(Path(item.audio_path))
        duration_ms = int((time.monotonic() - started) * 1000)
        audit.log_event(
            record,
            "CHUNK_DONE",
            "CHUNK_OK",
            f"provider={self._provider.name()} chars={len(text)}",
            chunk_seq=item.seq,
            duration_ms=duration_ms,
        )
        logger.info(
            "chunk_done session_id=%s seq=%s chars=%s duration_ms=%s",
            record.session_id,
            item.seq,
            len(text),
            duration_ms,
        )
        item.future.set_result(text)

    def _fail(self, item: QueuedChunk, exc: BaseException, code: str, started: float) -> None:
        record = self._record
        record.mark_failed(f"{code}: {exc}")
        if self._keep_failed_chunks:
            record.retain_file(item.audio_path)
        else:
            safe_unlink(Path(item.audio_path))
        duration_ms = int((time.monotonic() - started) * 1000)
        audit.log_event(
            record,
            "CHUNK_FAILED",
            code,
            f"provider={self._provider.name()} {exc}",
            chunk_seq=item.seq,
            duration_ms=duration_ms,
        )
        logger.warning(
            "chunk_failed session_id=%s seq=%s code=%s error=%s",
            record.session_id,
            item.seq,
            code,
            exc,
        )
        item.future.set_exception(exc)
