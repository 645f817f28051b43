import pytest

from ragdemo.config import get_settings


def test_rag_db_path_uses_explicit_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("RAG_DB_PATH", "data/override/r4.db")

    settings = get_settings()

    assert settings.rag_db_path == "data/override/r4.db"


def test_rag_db_path_has_default(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("RAG_DB_PATH", raising=False)

    settings = get_settings()

    assert settings.rag_db_path.endswith("rag.db")


def test_ingest_max_workers_is_capped_at_sixteen(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("INGEST_MAX_WORKERS", "64")

    assert get_settings().ingest_max_workers == 16


def test_ingest_defaults_match_batch_semantics(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in ("INGEST_MAX_WORKERS", "INGEST_WAIT_TIMEOUT_SECONDS", "INGEST_TIMEOUT_POLICY"):
        monkeypatch.delenv(name, raising=False)

    settings = get_settings()

    assert settings.ingest_max_workers == 16
    assert settings.ingest_wait_timeout_seconds == 3600
    assert settings.ingest_timeout_policy == "abandon"


def test_invalid_timeout_policy_is_rejected(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("INGEST_TIMEOUT_POLICY", "kill")

    with pytest.raises(ValueError, match="expected one of"):
        get_settings()


def test_embed_base_url_defaults_to_chat_base_url(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("OLLAMA_BASE_URL", "http://ollama:11434/v1")
    monkeypatch.delenv("OLLAMA_EMBED_BASE_URL", raising=False)

    assert get_settings().ollama_embed_base_url == "http://ollama:11434/v1"
