from __future__ import annotations

from typing import Optional

from .base import ASRProvider


class MockASRProvider(ASRProvider):
    def __init__(self) -> None:
        self._counter = 0

    def transcribe_chunk(
        self,
        audio_path: str,
        *,
        model: str = "base",
        language: str = "en",
        prompt: str = "",
        timeout_sec: Optional[float] = None,
    ) -> str:
        self._counter += 1
        return f"(mock) chunk {self._counter}."

    def name(self) -> str:
        return "mock"
