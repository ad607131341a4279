from pathlib import Path

from livescribe.internal_core.config import load_config


def test_load_config_defaults(monkeypatch) -> None:
    for name in (
        "LIVESCRIBE_ASR_PROVIDER",
        "LIVESCRIBE_DEFAULT_MODEL",
        "LIVESCRIBE_DEFAULT_LANGUAGE",
        "LIVESCRIBE_ENGINE_TIMEOUT_SEC",
        "LIVESCRIBE_KEEP_FAILED_CHUNKS",
        "LIVESCRIBE_UPLOAD_DIR",
    ):
        monkeypatch.delenv(name, raising=False)

    cfg = load_config()
    assert cfg.LIVESCRIBE_ASR_PROVIDER == "whisper_cli"
    assert cfg.LIVESCRIBE_DEFAULT_MODEL == "base"
    assert cfg.LIVESCRIBE_DEFAULT_LANGUAGE == "en"
    assert cfg.LIVESCRIBE_ENGINE_TIMEOUT_SEC is None
    assert cfg.LIVESCRIBE_KEEP_FAILED_CHUNKS is True
    assert cfg.upload_dir_path().name == "uploads"


def test_load_config_reads_environment(monkeypatch, tmp_path) -> None:
    monkeypatch.setenv("LIVESCRIBE_DEFAULT_MODEL", "small.en")
    monkeypatch.setenv("LIVESCRIBE_ENGINE_TIMEOUT_SEC", "45")
    monkeypatch.setenv("LIVESCRIBE_KEEP_FAILED_CHUNKS", "no")
    monkeypatch.setenv("LIVESCRIBE_SESSION_TTL_SECONDS", "60")
    monkeypatch.setenv("LIVESCRIBE_UPLOAD_DIR", str(tmp_path / "chunks"))

    cfg = load_config()
    assert cfg.LIVESCRIBE_DEFAULT_MODEL == "small.en"
    assert cfg.LIVESCRIBE_ENGINE_TIMEOUT_SEC == 45.0
    assert cfg.LIVESCRIBE_KEEP_FAILED_CHUNKS is False
    assert cfg.LIVESCRIBE_SESSION_TTL_SECONDS == 60
    assert cfg.upload_dir_path(Path("/unused")) == (tmp_path / "chunks").resolve()
