from __future__ import annotations

import shutil
from pathlib import Path
from typing import Optional

from .base import ASRProvider, EngineFailure
from .process import engine_workdir, read_engine_output, run_engine
from .prompt import sanitize_context_prompt


class WhisperCliProvider(ASRProvider):
    """Drives the openai-whisper command line tool, one process per chunk.

    Each call writes its ``.txt`` output into a private temporary directory
    that is removed on every exit path, so only the text of this one chunk is
    ever read back.
    """

    def __init__(self, bin_path: str = "whisper", prompt_max_chars: int = 800):
        self._bin_path = bin_path
        self._prompt_max_chars = prompt_max_chars

    def name(self) -> str:
        return "whisper_cli"

    def build_command(
        self, audio_path: str, *, model: str, language: str, prompt: str, output_dir: str
    ) -> list[str]:
        cmd = [
            self._bin_path,
            audio_path,
            "--model",
            model,
            "--language",
            language,
            "--output_dir",
            output_dir,
            "--output_format",
            "txt",
            "--verbose",
            "False",
        ]
        safe_prompt = sanitize_context_prompt(prompt, self._prompt_max_chars)
        if safe_prompt:
            cmd.extend(["--initial_prompt", safe_prompt])
        return cmd

    def transcribe_chunk(
        self,
        audio_path: str,
        *,
        model: str = "base",
        language: str = "en",
        prompt: str = "",
        timeout_sec: Optional[float] = None,
    ) -> str:
        if not shutil.which(self._bin_path) and not Path(self._bin_path).exists():
            raise EngineFailure(
                "ENGINE_BIN_MISSING",
                f"whisper executable not found: {self._bin_path} (set LIVESCRIBE_WHISPER_BIN)",
                self.name(),
            )
        if not Path(audio_path).is_file():
            raise EngineFailure("ENGINE_INPUT_MISSING", f"chunk not found: {audio_path}", self.name())

        with engine_workdir("livescribe_whisper_") as tmp_dir:
            cmd = self.build_command(
                audio_path, model=model, language=language, prompt=prompt, output_dir=str(tmp_dir)
            )
            run_engine(cmd, provider_name=self.name(), timeout_sec=timeout_sec)
            out_path = tmp_dir / f"{Path(audio_path).stem}.txt"
            return read_engine_output(out_path, provider_name=self.name())
