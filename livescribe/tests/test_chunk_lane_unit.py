import logging
import threading
import time
from pathlib import Path

import pytest

from livescribe.internal_core.asr.base import ASRProvider, EngineFailure
from livescribe.internal_core.chunk_lane import ChunkLane, LaneClosedError
from livescribe.internal_core.session_record import SessionRecord


class ScriptedProvider(ASRProvider):
    """Returns text keyed by chunk file stem and records every call."""

    def __init__(self, texts: dict[str, str], delays: dict[str, float] | None = None) -> None:
        self.texts = texts
        self.delays = delays or {}
        self.calls: list[tuple[str, str, str, str]] = []
        self.active = 0
        self.max_active = 0
        self._lock = threading.Lock()

    def name(self) -> str:
        return "scripted"

    def transcribe_chunk(self, audio_path, *, model="base", language="en", prompt="", timeout_sec=None):
        stem = Path(audio_path).stem
        with self._lock:
            self.active += 1
            self.max_active = max(self.max_active, self.active)
            self.calls.append((stem, model, language, prompt))
        try:
            time.sleep(self.delays.get(stem, 0.0))
            text = self.texts[stem]
            if text is None:
                raise EngineFailure("ENGINE_EXIT_NONZERO", f"boom on {stem}", self.name())
            return text
        finally:
            with self._lock:
                self.active -= 1


def _chunk(tmp_path: Path, stem: str) -> str:
    path = tmp_path / f"{stem}.ogg"
    path.write_bytes(b"OggS fake audio")
    return str(path)


def _lane(provider: ASRProvider, **kwargs) -> tuple[SessionRecord, ChunkLane]:
    record = SessionRecord("a" * 32, "base", "en")
    record.lane = ChunkLane(record, provider, **kwargs)
    return record, record.lane


def test_lane_appends_in_submission_order_even_when_first_chunk_is_slowest(tmp_path) -> None:
    provider = ScriptedProvider(
        {"c1": "one", "c2": "two", "c3": "three"},
        delays={"c1": 0.2, "c2": 0.05, "c3": 0.0},
    )
    record, lane = _lane(provider)

    futures = [lane.submit(_chunk(tmp_path, stem)) for stem in ("c1", "c2", "c3")]

    assert [f.result(timeout=5) for f in futures] == ["one", "two", "three"]
    assert record.transcript == "one two three"
    assert [call[0] for call in provider.calls] == ["c1", "c2", "c3"]
    assert provider.max_active == 1


def test_lane_threads_running_transcript_as_context_prompt(tmp_path) -> None:
    provider = ScriptedProvider({"c1": "hello", "c2": "world", "c3": "again"})
    record, lane = _lane(provider)

    for stem in ("c1", "c2", "c3"):
        lane.submit(_chunk(tmp_path, stem))
    assert lane.wait_idle(timeout=5)

    prompts = [call[3] for call in provider.calls]
    assert prompts == ["", "hello", "hello world"]
    assert all(call[1:3] == ("base", "en") for call in provider.calls)


def test_lane_failure_is_local_to_the_chunk(tmp_path) -> None:
    provider = ScriptedProvider({"c1": "first", "c2": None, "c3": "third"})
    record, lane = _lane(provider)

    f1 = lane.submit(_chunk(tmp_path, "c1"))
    f2 = lane.submit(_chunk(tmp_path, "c2"))
    f3 = lane.submit(_chunk(tmp_path, "c3"))

    assert f1.result(timeout=5) == "first"
    with pytest.raises(EngineFailure) as excinfo:
        f2.result(timeout=5)
    assert excinfo.value.code == "ENGINE_EXIT_NONZERO"
    assert f3.result(timeout=5) == "third"
    assert record.transcript == "first third"
    # Chunk 3 saw only chunk 1's text as context.
    assert provider.calls[2][3] == "first"

    summary = record.summary()
    assert summary.chunks_submitted == 3
    assert summary.chunks_completed == 2
    assert summary.chunks_failed == 1
    assert summary.last_error.startswith("ENGINE_EXIT_NONZERO")


def test_lane_deletes_transcribed_chunks_and_retains_failed_ones(tmp_path) -> None:
    provider = ScriptedProvider({"ok": "fine", "bad": None})
    record, lane = _lane(provider, keep_failed_chunks=True)
    ok_path = _chunk(tmp_path, "ok")
    bad_path = _chunk(tmp_path, "bad")

    lane.submit(ok_path)
    lane.submit(bad_path)
    assert lane.wait_idle(timeout=5)

    assert not Path(ok_path).exists()
    assert Path(bad_path).exists()
    assert record.pop_retained_files() == [bad_path]


def test_lane_can_delete_failed_chunks_when_configured(tmp_path) -> None:
    provider = ScriptedProvider({"bad": None})
    record, lane = _lane(provider, keep_failed_chunks=False)
    bad_path = _chunk(tmp_path, "bad")

    future = lane.submit(bad_path)
    with pytest.raises(EngineFailure):
        future.result(timeout=5)
    assert lane.wait_idle(timeout=5)
    assert not Path(bad_path).exists()
    assert record.pop_retained_files() == []


def test_lane_empty_text_leaves_transcript_without_extra_spaces(tmp_path) -> None:
    provider = ScriptedProvider({"c1": "alpha", "c2": "   ", "c3": "beta"})
    record, lane = _lane(provider)

    results = [lane.submit(_chunk(tmp_path, s)).result(timeout=5) for s in ("c1", "c2", "c3")]

    assert results == ["alpha", "", "beta"]
    assert record.transcript == "alpha beta"


def test_lane_resumes_after_idling(tmp_path) -> None:
    provider = ScriptedProvider({"c1": "before", "c2": "after"})
    record, lane = _lane(provider)

    assert lane.submit(_chunk(tmp_path, "c1")).result(timeout=5) == "before"
    assert lane.wait_idle(timeout=5)
    assert not lane.is_busy

    assert lane.submit(_chunk(tmp_path, "c2")).result(timeout=5) == "after"
    assert record.transcript == "before after"


def test_lane_survives_unexpected_provider_exception(tmp_path) -> None:
    class CrashingOnce(ASRProvider):
        def __init__(self) -> None:
            self.calls = 0

        def name(self) -> str:
            return "crashing"

        def transcribe_chunk(self, audio_path, *, model="base", language="en", prompt="", timeout_sec=None):
            self.calls += 1
            if self.calls == 1:
                raise ValueError("unexpected")
            return "recovered"

    record, lane = _lane(CrashingOnce())
    f1 = lane.submit(_chunk(tmp_path, "c1"))
    f2 = lane.submit(_chunk(tmp_path, "c2"))

    with pytest.raises(ValueError):
        f1.result(timeout=5)
    assert f2.result(timeout=5) == "recovered"
    assert record.transcript == "recovered"


def test_lane_skips_chunk_cancelled_before_its_turn(tmp_path) -> None:
    gate = threading.Event()

    class GatedProvider(ASRProvider):
        def __init__(self) -> None:
            self.seen: list[str] = []

        def name(self) -> str:
            return "gated"

        def transcribe_chunk(self, audio_path, *, model="base", language="en", prompt="", timeout_sec=None):
            gate.wait(timeout=5)
            self.seen.append(Path(audio_path).stem)
            return Path(audio_path).stem

    provider = GatedProvider()
    record, lane = _lane(provider)
    f1 = lane.submit(_chunk(tmp_path, "c1"))
    c2_path = _chunk(tmp_path, "c2")
    f2 = lane.submit(c2_path)
    f3 = lane.submit(_chunk(tmp_path, "c3"))

    assert f2.cancel()
    gate.set()

    assert f1.result(timeout=5) == "c1"
    assert f3.result(timeout=5) == "c3"
    assert provider.seen == ["c1", "c3"]
    assert record.transcript == "c1 c3"
    assert not Path(c2_path).exists()


def test_closed_lane_rejects_new_chunks_and_cancels_pending(tmp_path) -> None:
    gate = threading.Event()
    started = threading.Event()

    class GatedProvider(ASRProvider):
        def name(self) -> str:
            return "gated"

        def transcribe_chunk(self, audio_path, *, model="base", language="en", prompt="", timeout_sec=None):
            started.set()
            gate.wait(timeout=5)
            return "done"

    record, lane = _lane(GatedProvider())
    running = lane.submit(_chunk(tmp_path, "c1"))
    queued = lane.submit(_chunk(tmp_path, "c2"))
    assert started.wait(timeout=5)

    assert lane.close() == 1
    assert queued.cancelled()
    with pytest.raises(LaneClosedError):
        lane.submit(_chunk(tmp_path, "c3"))

    gate.set()
    assert running.result(timeout=5) == "done"
    assert record.transcript == "done"


def test_close_if_idle_refuses_while_busy(tmp_path) -> None:
    gate = threading.Event()

    class GatedProvider(ASRProvider):
        def name(self) -> str:
            return "gated"

        def transcribe_chunk(self, audio_path, *, model="base", language="en", prompt="", timeout_sec=None):
            gate.wait(timeout=5)
            return "x"

    _, lane = _lane(GatedProvider())
    future = lane.submit(_chunk(tmp_path, "c1"))
    assert lane.close_if_idle() is False
    gate.set()
    future.result(timeout=5)
    assert lane.wait_idle(timeout=5)
    assert lane.close_if_idle() is True


def test_lane_returns_engine_text_trimmed_but_otherwise_untouched(tmp_path) -> None:
    provider = ScriptedProvider({"c1": "  Dr.  Smith\nsaid hi \n"})
    record, lane = _lane(provider)

    assert lane.submit(_chunk(tmp_path, "c1")).result(timeout=5) == "Dr.  Smith\nsaid hi"
    assert record.transcript == "Dr.  Smith\nsaid hi"


def test_lane_cleanup_failure_is_logged_and_never_reaches_caller(tmp_path, monkeypatch, caplog) -> None:
    def denied(self, missing_ok=False):
        raise PermissionError("denied")

    monkeypatch.setattr(Path, "unlink", denied)
    caplog.set_level(logging.WARNING, logger="livescribe.internal_core.audio_files")
    provider = ScriptedProvider({"c1": "kept", "c2": "going"})
    record, lane = _lane(provider)
    path = _chunk(tmp_path, "c1")

    assert lane.submit(path).result(timeout=5) == "kept"
    assert lane.submit(_chunk(tmp_path, "c2")).result(timeout=5) == "going"

    assert record.transcript == "kept going"
    assert record.summary().chunks_completed == 2
    assert Path(path).exists()
    warnings = [r for r in caplog.records if r.levelno == logging.WARNING]
    assert any("chunk_cleanup_failed" in r.getMessage() and "denied" in r.getMessage() for r in warnings)
