from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional


class ASRError(RuntimeError):
    def __init__(self, code: str, message: str, provider_name: str):
        super().__init__(message)
        self.code = code
        self.message = message
        self.provider_name = provider_name


class EngineFailure(ASRError):
    """The engine ran but failed: non-zero exit, crash, timeout or spawn error."""


class OutputMissing(ASRError):
    """The engine reported success but left no readable transcript behind."""

    def __init__(self, message: str, provider_name: str):
        super().__init__("ENGINE_OUTPUT_MISSING", message, provider_name)


class ASRProvider(ABC):
    @abstractmethod
    def transcribe_chunk(
        self,
        audio_path: str,
        *,
        model: str = "base",
        language: str = "en",
        prompt: str = "",
        timeout_sec: Optional[float] = None,
    ) -> str: ...

    @abstractmethod
    def name(self) -> str: ...
