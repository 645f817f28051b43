from dataclasses import dataclass, field
from typing import Protocol, Sequence


@dataclass(frozen=True)
class SourceDocument:
    doc_id: str
    source: str
    source_path: str
    text: str
    page_number: int | None = None


@dataclass(frozen=True)
class ChunkRecord:
    chunk_id: str
    doc_id: str
    source: str
    source_path: str
    text: str
    token_count: int
    page_number: int | None = None


@dataclass(frozen=True)
class QueryHit:
    chunk_id: str
    source: str
    source_path: str
    text: str
    score: float


@dataclass
class IngestionSummary:
    source: str
    files_seen: int = 0
    files_ingested: int = 0
    files_skipped: int = 0
    files_failed: int = 0
    chunk_count: int = 0


@dataclass
class BatchIngestionResult:
    succeeded: list[str] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)
    pending: list[str] = field(default_factory=list)
    timed_out: bool = False


class VectorStore(Protocol):
    """Sink for embedded chunks. Implementations must tolerate concurrent writers."""

    def write(self, chunks: Sequence[ChunkRecord]) -> None: ...

    def search(self, query_text: str, top_k: int) -> list[QueryHit]: ...
