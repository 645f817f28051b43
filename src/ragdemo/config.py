from dataclasses import dataclass
from functools import lru_cache
import os
from pathlib import Path

MAX_INGEST_WORKERS = 16
TIMEOUT_POLICIES = {"abandon", "cancel"}


def _to_bool(value: str | None, *, default: bool) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _to_int(value: str | None, *, default: int, minimum: int) -> int:
    if value is None:
        return default
    parsed = int(value)
    return max(minimum, parsed)


def _to_choice(value: str | None, *, default: str, choices: set[str]) -> str:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized not in choices:
        raise ValueError(f"expected one of {sorted(choices)}, got {value!r}")
    return normalized


@dataclass(frozen=True)
class Settings:
    database_url: str
    db_echo: bool
    rag_db_path: str
    rag_chunk_size: int
    rag_min_chunk_size_chars: int
    rag_min_chunk_length_to_embed: int
    rag_max_num_chunks: int
    rag_tokenizer_encoding: str
    rag_embedding_provider: str
    rag_embedding_dim: int
    rag_top_k: int
    rag_info_question: str
    git_clone_depth: int
    git_clone_timeout_seconds: float
    ingest_max_workers: int
    ingest_wait_timeout_seconds: float
    ingest_timeout_policy: str
    ollama_base_url: str
    ollama_model: str
    ollama_fallback_model: str
    ollama_embed_base_url: str
    ollama_embed_model: str
    ollama_timeout_seconds: float
    log_level: str


@lru_cache
def get_settings() -> Settings:
    ollama_base_url = os.getenv("OLLAMA_BASE_URL", "http://localhost:11434/v1")
    rag_db_path = os.getenv("RAG_DB_PATH") or str(Path("data/rag_index") / "rag.db")

    return Settings(
        database_url=os.getenv("API_DATABASE_URL", "sqlite+pysqlite:///ragdemo.db"),
        db_echo=_to_bool(os.getenv("API_DB_ECHO"), default=False),
        rag_db_path=rag_db_path,
        rag_chunk_size=_to_int(os.getenv("RAG_CHUNK_SIZE"), default=800, minimum=16),
        rag_min_chunk_size_chars=_to_int(
            os.getenv("RAG_MIN_CHUNK_SIZE_CHARS"), default=350, minimum=0
        ),
        rag_min_chunk_length_to_embed=_to_int(
            os.getenv("RAG_MIN_CHUNK_LENGTH_TO_EMBED"), default=5, minimum=0
        ),
        rag_max_num_chunks=_to_int(os.getenv("RAG_MAX_NUM_CHUNKS"), default=10000, minimum=1),
        rag_tokenizer_encoding=os.getenv("RAG_TOKENIZER_ENCODING", "cl100k_base"),
        rag_embedding_provider=_to_choice(
            os.getenv("RAG_EMBEDDING_PROVIDER"),
            default="ollama",
            choices={"ollama", "hash"},
        ),
        rag_embedding_dim=_to_int(os.getenv("RAG_EMBEDDING_DIM"), default=32, minimum=8),
        rag_top_k=_to_int(os.getenv("RAG_TOP_K"), default=4, minimum=1),
        rag_info_question=os.getenv(
            "RAG_INFO_QUESTION", "What is the primary skill of somashaker"
        ),
        git_clone_depth=_to_int(os.getenv("GIT_CLONE_DEPTH"), default=0, minimum=0),
        git_clone_timeout_seconds=float(os.getenv("GIT_CLONE_TIMEOUT_SECONDS", "600")),
        ingest_max_workers=min(
            MAX_INGEST_WORKERS,
            _to_int(os.getenv("INGEST_MAX_WORKERS"), default=MAX_INGEST_WORKERS, minimum=1),
        ),
        ingest_wait_timeout_seconds=float(os.getenv("INGEST_WAIT_TIMEOUT_SECONDS", "3600")),
        ingest_timeout_policy=_to_choice(
            os.getenv("INGEST_TIMEOUT_POLICY"),
            default="abandon",
            choices=TIMEOUT_POLICIES,
        ),
        ollama_base_url=ollama_base_url,
        ollama_model=os.getenv("OLLAMA_MODEL", "qwen2.5:7b-instruct-q4_K_M"),
        ollama_fallback_model=os.getenv("OLLAMA_FALLBACK_MODEL", "qwen2.5:3b-instruct-q4_K_M"),
        ollama_embed_base_url=os.getenv("OLLAMA_EMBED_BASE_URL", ollama_base_url),
        ollama_embed_model=os.getenv("OLLAMA_EMBED_MODEL", "nomic-embed-text"),
        ollama_timeout_seconds=float(os.getenv("OLLAMA_TIMEOUT_SECONDS", "30")),
        log_level=os.getenv("RAG_LOG_LEVEL", "INFO"),
    )
