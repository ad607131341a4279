from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional


def _project_root() -> Path:
    # livescribe/internal_core/config.py -> livescribe -> repo root
    return Path(__file__).resolve().parents[2]


def _getenv_str(name: str, default: str) -> str:
    value = os.getenv(name)
    return default if value is None else value


def _getenv_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return int(value)


def _getenv_opt_float(name: str) -> Optional[float]:
    value = os.getenv(name)
    if value is None or value == "":
        return None
    return float(value)


def _getenv_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return value.strip().lower() in {"1", "true", "t", "yes", "y", "on"}


def _default_whisper_cpp_bin(root: Path) -> str:
    for candidate in (
        root / "whisper.cpp" / "build" / "bin" / "whisper-cli",
        root.parent / "whisper.cpp" / "build" / "bin" / "whisper-cli",
    ):
        if candidate.exists():
            return str(candidate)
    return ""


@dataclass(frozen=True)
class ServiceConfig:
    LIVESCRIBE_UPLOAD_DIR: str
    LIVESCRIBE_ASR_PROVIDER: str
    LIVESCRIBE_WHISPER_BIN: str
    LIVESCRIBE_WHISPER_CPP_BIN: str
    LIVESCRIBE_WHISPER_CPP_MODELS_DIR: str
    LIVESCRIBE_WHISPER_CPP_NO_GPU: bool
    LIVESCRIBE_DEFAULT_MODEL: str
    LIVESCRIBE_DEFAULT_LANGUAGE: str
    LIVESCRIBE_SESSION_TTL_SECONDS: int
    LIVESCRIBE_ENGINE_TIMEOUT_SEC: Optional[float]
    LIVESCRIBE_PROMPT_MAX_CHARS: int
    LIVESCRIBE_KEEP_FAILED_CHUNKS: bool
    LIVESCRIBE_MAX_CHUNK_BYTES: int
    LIVESCRIBE_AUDIT_MAX_EVENTS: int
    LIVESCRIBE_LOG_LEVEL: str

    def upload_dir_path(self, repo_root: Optional[Path] = None) -> Path:
        root = repo_root if repo_root is not None else _project_root()
        return (root / self.LIVESCRIBE_UPLOAD_DIR).resolve()


def load_config() -> ServiceConfig:
    project_root = _project_root()
    default_models_dir = project_root / "whisper.cpp" / "models"

    return ServiceConfig(
        LIVESCRIBE_UPLOAD_DIR=_getenv_str("LIVESCRIBE_UPLOAD_DIR", "./uploads"),
        LIVESCRIBE_ASR_PROVIDER=_getenv_str("LIVESCRIBE_ASR_PROVIDER", "whisper_cli"),
        LIVESCRIBE_WHISPER_BIN=_getenv_str("LIVESCRIBE_WHISPER_BIN", "whisper"),
        LIVESCRIBE_WHISPER_CPP_BIN=_getenv_str(
            "LIVESCRIBE_WHISPER_CPP_BIN", _default_whisper_cpp_bin(project_root)
        ),
        LIVESCRIBE_WHISPER_CPP_MODELS_DIR=_getenv_str(
            "LIVESCRIBE_WHISPER_CPP_MODELS_DIR", str(default_models_dir)
        ),
        LIVESCRIBE_WHISPER_CPP_NO_GPU=_getenv_bool("LIVESCRIBE_WHISPER_CPP_NO_GPU", False),
        LIVESCRIBE_DEFAULT_MODEL=_getenv_str("LIVESCRIBE_DEFAULT_MODEL", "base"),
        LIVESCRIBE_DEFAULT_LANGUAGE=_getenv_str("LIVESCRIBE_DEFAULT_LANGUAGE", "en"),
        LIVESCRIBE_SESSION_TTL_SECONDS=_getenv_int("LIVESCRIBE_SESSION_TTL_SECONDS", 14400),
        LIVESCRIBE_ENGINE_TIMEOUT_SEC=_getenv_opt_float("LIVESCRIBE_ENGINE_TIMEOUT_SEC"),
        LIVESCRIBE_PROMPT_MAX_CHARS=_getenv_int("LIVESCRIBE_PROMPT_MAX_CHARS", 800),
        LIVESCRIBE_KEEP_FAILED_CHUNKS=_getenv_bool("LIVESCRIBE_KEEP_FAILED_CHUNKS", True),
        LIVESCRIBE_MAX_CHUNK_BYTES=_getenv_int("LIVESCRIBE_MAX_CHUNK_BYTES", 25 * 1024 * 1024),
        LIVESCRIBE_AUDIT_MAX_EVENTS=_getenv_int("LIVESCRIBE_AUDIT_MAX_EVENTS", 200),
        LIVESCRIBE_LOG_LEVEL=_getenv_str("LIVESCRIBE_LOG_LEVEL", "INFO"),
    )
