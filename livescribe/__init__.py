
"""
livescribe service package.

Design intent:
- Transcribe a live recording chunk by chunk, one ordered lane per session.
- Keep the engine behind a provider boundary so the lane never sees a subprocess.
- Keep the HTTP layer thin; all ordering guarantees live in internal_core.
"""
