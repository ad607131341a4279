from __future__ import annotations

import logging

from ..config import ServiceConfig
from .base import ASRError, ASRProvider, EngineFailure, OutputMissing
from .mock import MockASRProvider
from .prompt import sanitize_context_prompt
from .whisper_cli import WhisperCliProvider
from .whisper_cpp import WhisperCppProvider, whisper_cpp_available

logger = logging.getLogger(__name__)


def build_asr_provider(cfg: ServiceConfig) -> ASRProvider:
    name = (cfg.LIVESCRIBE_ASR_PROVIDER or "").strip().lower()
    if name == "whisper_cli":
        return WhisperCliProvider(
            bin_path=cfg.LIVESCRIBE_WHISPER_BIN,
            prompt_max_chars=cfg.LIVESCRIBE_PROMPT_MAX_CHARS,
        )
    if name == "whisper_cpp":
        ok, reason = whisper_cpp_available(
            cfg.LIVESCRIBE_WHISPER_CPP_BIN, cfg.LIVESCRIBE_WHISPER_CPP_MODELS_DIR
        )
        if not ok:
            # Chunks fail with ENGINE_BIN_MISSING or ENGINE_MODEL_MISSING until fixed.
            logger.warning("whisper_cpp_unavailable reason=%s", reason)
        return WhisperCppProvider(
            bin_path=cfg.LIVESCRIBE_WHISPER_CPP_BIN,
            models_dir=cfg.LIVESCRIBE_WHISPER_CPP_MODELS_DIR,
            no_gpu=cfg.LIVESCRIBE_WHISPER_CPP_NO_GPU,
            prompt_max_chars=cfg.LIVESCRIBE_PROMPT_MAX_CHARS,
        )
    if name == "mock":
        return MockASRProvider()
    raise ValueError(f"Unsupported LIVESCRIBE_ASR_PROVIDER: {cfg.LIVESCRIBE_ASR_PROVIDER!r}")


__all__ = [
    "ASRError",
    "ASRProvider",
    "EngineFailure",
    "MockASRProvider",
    "OutputMissing",
    "WhisperCliProvider",
    "WhisperCppProvider",
    "build_asr_provider",
    "sanitize_context_prompt",
    "whisper_cpp_available",
]
