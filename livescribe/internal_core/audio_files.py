from __future__ import annotations

import logging
import uuid
from pathlib import Path

logger = logging.getLogger(__name__)

ALLOWED_CHUNK_EXTS = {".ogg", ".webm", ".wav", ".mp3", ".m4a", ".mp4"}


def sanitize_filename_stem(filename: str, fallback: str = "chunk") -> str:
    raw_stem = Path(str(filename or fallback)).stem.strip()
    if not raw_stem:
        raw_stem = fallback
    safe = "".join(ch if (ch.isalnum() or ch in {"_", "-"}) else "_" for ch in raw_stem)
    safe = safe.strip("_")
    return (safe or fallback)[:64]


def persist_chunk(upload_dir: Path, payload: bytes, *, prefix: str, suffix: str = ".ogg") -> Path:
    """Write one uploaded chunk under a collision-free name and return its path."""
    upload_dir.mkdir(parents=True, exist_ok=True)
    stem = sanitize_filename_stem(prefix)
    out_path = upload_dir / f"{stem}_{uuid.uuid4().hex}{suffix}"
    out_path.write_bytes(payload)
    return out_path


def safe_unlink(path: Path) -> bool:
    # Best-effort: a failed delete is logged and never reaches the caller.
    try:
        path.unlink(missing_ok=True)
    except OSError as e:
        logger.warning("chunk_cleanup_failed path=%s error=%s", path, e)
        return False
    return True
