from __future__ import annotations

"""
Continuity prompt preparation for engine invocations.

The running transcript is handed to the engine as an initial prompt so that
vocabulary and spelling stay consistent across chunk boundaries. The engines
are driven through argv, so the prompt must never carry characters that could
terminate a quoted argument or be read back as an option flag.
"""

import re

_UNSAFE_CHARS_RE = re.compile(r"[\"`\x00-\x08\x0b-\x1f\x7f]")
_WS_RE = re.compile(r"\s+")


def sanitize_context_prompt(text: str, max_chars: int = 800) -> str:
    cleaned = _UNSAFE_CHARS_RE.sub("", text or "")
    cleaned = _WS_RE.sub(" ", cleaned).strip()
    if max_chars > 0 and len(cleaned) > max_chars:
        # Keep the most recent context and restart on a word boundary.
        cut_mid_word = cleaned[-max_chars - 1] != " "
        cleaned = cleaned[-max_chars:]
        if cut_mid_word:
            _, sep, tail = cleaned.partition(" ")
            if sep and tail:
                cleaned = tail
    return cleaned.lstrip("- ").strip()
