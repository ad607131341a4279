from __future__ import annotations

import logging
import shutil
import subprocess
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional, Sequence

from .base import EngineFailure, OutputMissing

logger = logging.getLogger(__name__)


def _clip(msg: str, limit: int = 200) -> str:
    if len(msg) > limit:
        return msg[:limit] + "…"
    return msg


def run_engine(
    cmd: Sequence[str],
    *,
    provider_name: str,
    timeout_sec: Optional[float] = None,
    env: Optional[dict[str, str]] = None,
) -> subprocess.CompletedProcess:
    logger.debug("engine_exec provider=%s argv0=%s", provider_name, cmd[0] if cmd else "")
    try:
        res = subprocess.run(
            list(cmd),
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            timeout=timeout_sec,
            env=env,
        )
    except subprocess.TimeoutExpired as e:
        raise EngineFailure(
            "ENGINE_TIMEOUT", f"engine timed out after {timeout_sec}s", provider_name
        ) from e
    except OSError as e:
        raise EngineFailure("ENGINE_SPAWN_FAILED", _clip(str(e)), provider_name) from e

    if res.returncode != 0:
        msg = (res.stderr or "").strip() or f"exit_code={res.returncode}"
        raise EngineFailure("ENGINE_EXIT_NONZERO", _clip(msg), provider_name)
    return res


def read_engine_output(path: Path, *, provider_name: str) -> str:
    if not path.is_file():
        raise OutputMissing(f"engine produced no output at {path.name}", provider_name)
    try:
        raw = path.read_text(encoding="utf-8")
    except UnicodeDecodeError as e:
        raise EngineFailure("ENGINE_OUTPUT_MALFORMED", _clip(str(e)), provider_name) from e
    except OSError as e:
        raise OutputMissing(_clip(str(e)), provider_name) from e
    return " ".join(raw.split()).strip()


@contextmanager
def engine_workdir(prefix: str) -> Iterator[Path]:
    tmp_dir = Path(tempfile.mkdtemp(prefix=prefix))
    try:
        yield tmp_dir
    finally:
        try:
            shutil.rmtree(tmp_dir)
        except OSError as e:
            logger.warning("engine_workdir_cleanup_failed path=%s error=%s", tmp_dir, e)
