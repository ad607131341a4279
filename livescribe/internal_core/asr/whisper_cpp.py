from __future__ import annotations

import os
from pathlib import Path
from typing import Optional, Tuple

from .base import ASRProvider, EngineFailure
from .process import engine_workdir, read_engine_output, run_engine
from .prompt import sanitize_context_prompt


def whisper_cpp_available(bin_path: str, models_dir: str) -> Tuple[bool, str]:
    if not bin_path:
        return False, "missing LIVESCRIBE_WHISPER_CPP_BIN"
    if not models_dir:
        return False, "missing LIVESCRIBE_WHISPER_CPP_MODELS_DIR"
    if not Path(bin_path).exists():
        return False, f"whisper-cli not found: {bin_path}"
    if not Path(models_dir).is_dir():
        return False, f"models dir not found: {models_dir}"
    return True, ""


def _with_dyld_paths(bin_path: str, env: Optional[dict[str, str]] = None) -> dict[str, str]:
    env_out = dict(os.environ) if env is None else dict(env)
    if not bin_path:
        return env_out
    try:
        build_dir = Path(bin_path).resolve().parents[1]
    except (OSError, IndexError):
        return env_out

    candidates = [
        build_dir / "src",
        build_dir / "ggml" / "src",
        build_dir / "ggml" / "src" / "ggml-blas",
        build_dir / "ggml" / "src" / "ggml-metal",
    ]
    new_paths = [str(p) for p in candidates if p.exists()]
    if not new_paths:
        return env_out

    existing = env_out.get("DYLD_LIBRARY_PATH", "")
    joined = os.pathsep.join(new_paths)
    env_out["DYLD_LIBRARY_PATH"] = (
        joined if not existing else f"{joined}{os.pathsep}{existing}"
    )
    return env_out


class WhisperCppProvider(ASRProvider):
    def __init__(
        self,
        bin_path: str,
        models_dir: str,
        no_gpu: bool = False,
        prompt_max_chars: int = 800,
    ):
        self._bin_path = bin_path
        self._models_dir = models_dir
        self._no_gpu = bool(no_gpu)
        self._prompt_max_chars = prompt_max_chars

    def name(self) -> str:
        return "whisper_cpp"

    def resolve_model_path(self, model: str) -> Path:
        # Accept either a ggml file path or a short name such as "base" or "small.en".
        direct = Path(model).expanduser()
        if direct.suffix == ".bin" and direct.exists():
            return direct
        return Path(self._models_dir).expanduser() / f"ggml-{model}.bin"

    def transcribe_chunk(
        self,
        audio_path: str,
        *,
        model: str = "base",
        language: str = "en",
        prompt: str = "",
        timeout_sec: Optional[float] = None,
    ) -> str:
        if not self._bin_path or not Path(self._bin_path).exists():
            raise EngineFailure(
                "ENGINE_BIN_MISSING",
                "whisper.cpp binary is not configured (set LIVESCRIBE_WHISPER_CPP_BIN to whisper-cli)",
                self.name(),
            )
        model_path = self.resolve_model_path(model)
        if not model_path.exists():
            raise EngineFailure(
                "ENGINE_MODEL_MISSING",
                f"whisper.cpp model is missing: {model_path}. Download it with "
                f"`bash ./models/download-ggml-model.sh {model}` inside whisper.cpp",
                self.name(),
            )
        if not Path(audio_path).is_file():
            raise EngineFailure("ENGINE_INPUT_MISSING", f"chunk not found: {audio_path}", self.name())

        with engine_workdir("livescribe_whisper_cpp_") as tmp_dir:
            out_prefix = tmp_dir / "chunk"
            cmd = [
                self._bin_path,
                "-m",
                str(model_path),
                "-f",
                audio_path,
                "-l",
                language,
                "--no-timestamps",
                "--no-prints",
                "-otxt",
                "-of",
                str(out_prefix),
            ]
            if self._no_gpu:
                cmd.insert(1, "-ng")
            safe_prompt = sanitize_context_prompt(prompt, self._prompt_max_chars)
            if safe_prompt:
                cmd.extend(["--prompt", safe_prompt])

            run_engine(
                cmd,
                provider_name=self.name(),
                timeout_sec=timeout_sec,
                env=_with_dyld_paths(self._bin_path),
            )
            return read_engine_output(
                out_prefix.with_suffix(".txt"), provider_name=self.name()
            )
