import logging
from pathlib import Path
import shutil
import threading
from typing import Callable, Sequence

import httpx
import pytest

from ragdemo.services.ingestion.errors import FetchError, IngestionError, SinkWriteError
from ragdemo.services.ingestion.pipeline import GitIngestionPipeline
from ragdemo.services.rag.chunker import TokenTextSplitter
from ragdemo.services.rag.embedding_client import OllamaEmbeddingClient
from ragdemo.services.rag.sqlite_store import SqliteVectorStore
from ragdemo.services.rag.types import ChunkRecord, QueryHit

SOURCE = "https://example.com/org/repo.git"

PROSE = (
    "The ingestion pipeline clones a repository into a temporary directory. "
    "It walks every file, keeps the text and PDF documents, and splits them into chunks. "
    "Each chunk is embedded and written to the vector store so questions can be answered later."
)


class CharTokenizer:
    def encode(self, text: str) -> list[int]:
        return [ord(char) for char in text]

    def decode(self, tokens: list[int]) -> str:
        return "".join(chr(token) for token in tokens)


class CopyFetcher:
    """Stands in for git by copying a prepared working tree."""

    def __init__(self, tree: Path) -> None:
        self._tree = tree
        self.destinations: list[Path] = []

    def fetch(self, source: str, destination: Path) -> None:
        self.destinations.append(destination)
        shutil.copytree(self._tree, destination, dirs_exist_ok=True)


class FailingFetcher:
    def __init__(self) -> None:
        self.destinations: list[Path] = []

    def fetch(self, source: str, destination: Path) -> None:
        self.destinations.append(destination)
        (destination / "partial").write_text("half-cloned", encoding="utf-8")
        raise FetchError(source, "repository not found")


class RecordingVectorStore:
    def __init__(self, fail_for: set[str] | None = None) -> None:
        self.chunks: list[ChunkRecord] = []
        self._fail_for = fail_for or set()
        self._lock = threading.Lock()

    def write(self, chunks: Sequence[ChunkRecord]) -> None:
        if any(chunk.source_path in self._fail_for for chunk in chunks):
            raise SinkWriteError("vector store rejected the batch")
        with self._lock:
            self.chunks.extend(chunks)

    def search(self, query_text: str, top_k: int) -> list[QueryHit]:
        return []

    def for_path(self, source_path: str) -> list[ChunkRecord]:
        return [chunk for chunk in self.chunks if chunk.source_path == source_path]


def _splitter() -> TokenTextSplitter:
    return TokenTextSplitter(CharTokenizer(), chunk_size=120, min_chunk_size_chars=40)


@pytest.fixture
def repo_tree(tmp_path: Path, make_pdf: Callable[[list[str]], bytes]) -> Path:
    tree = tmp_path / "tree"
    tree.mkdir()
    (tree / "a.md").write_text(PROSE, encoding="utf-8")
    (tree / "b.bin").write_bytes(bytes(range(256)))
    (tree / "c.pdf").write_bytes(
        make_pdf(["Page one explains cloning.", "Page two explains chunking."])
    )
    (tree / ".git").mkdir()
    (tree / ".git" / "config.json").write_text("{}", encoding="utf-8")
    return tree


def test_ingest_scenario_markdown_binary_and_pdf(
    tmp_path: Path, repo_tree: Path, caplog: pytest.LogCaptureFixture
) -> None:
    store = RecordingVectorStore()
    workdirs = tmp_path / "work"
    workdirs.mkdir()
    pipeline = GitIngestionPipeline(
        fetcher=CopyFetcher(repo_tree),
        vector_store=store,
        splitter=_splitter(),
        workdir_parent=workdirs,
    )
    caplog.set_level(logging.DEBUG, logger="ragdemo")

    summary = pipeline.ingest(SOURCE)

    assert len(store.for_path("a.md")) >= 1
    assert store.for_path("b.bin") == []
    assert "Skipping non-text file" in caplog.text and "b.bin" in caplog.text

    pdf_chunks = store.for_path("c.pdf")
    assert {chunk.page_number for chunk in pdf_chunks} == {1, 2}
    assert any("Page one explains cloning." in chunk.text for chunk in pdf_chunks)
    assert all("%PDF" not in chunk.text and "endobj" not in chunk.text for chunk in pdf_chunks)

    assert all(chunk.source == SOURCE for chunk in store.chunks)
    assert store.for_path(".git/config.json") == []
    assert summary.files_seen == 3
    assert summary.files_ingested == 2
    assert summary.files_skipped == 1
    assert summary.files_failed == 0
    assert summary.chunk_count == len(store.chunks)
    assert list(workdirs.iterdir()) == []


def test_clone_failure_raises_fetch_error_and_leaves_no_working_directory(
    tmp_path: Path,
) -> None:
    workdirs = tmp_path / "work"
    workdirs.mkdir()
    fetcher = FailingFetcher()
    store = RecordingVectorStore()
    pipeline = GitIngestionPipeline(
        fetcher=fetcher,
        vector_store=store,
        splitter=_splitter(),
        workdir_parent=workdirs,
    )

    with pytest.raises(FetchError) as exc_info:
        pipeline.ingest("not a url")

    assert isinstance(exc_info.value, IngestionError)
    assert len(fetcher.destinations) == 1
    assert not fetcher.destinations[0].exists()
    assert list(workdirs.iterdir()) == []
    assert store.chunks == []


def test_unreadable_file_is_skipped_and_job_continues(
    tmp_path: Path, caplog: pytest.LogCaptureFixture
) -> None:
    tree = tmp_path / "tree"
    tree.mkdir()
    (tree / "broken.txt").write_bytes(b"\xff\xfe\xfa not utf-8")
    (tree / "good.md").write_text(PROSE, encoding="utf-8")
    store = RecordingVectorStore()
    pipeline = GitIngestionPipeline(
        fetcher=CopyFetcher(tree),
        vector_store=store,
        splitter=_splitter(),
        workdir_parent=tmp_path,
    )
    caplog.set_level(logging.WARNING, logger="ragdemo")

    summary = pipeline.ingest(SOURCE)

    assert summary.files_failed == 1
    assert summary.files_ingested == 1
    assert store.for_path("good.md")
    assert "Skipping file due to read error" in caplog.text


def test_sink_write_failure_only_skips_that_file(tmp_path: Path) -> None:
    tree = tmp_path / "tree"
    tree.mkdir()
    (tree / "rejected.md").write_text(PROSE, encoding="utf-8")
    (tree / "accepted.md").write_text(PROSE, encoding="utf-8")
    store = RecordingVectorStore(fail_for={"rejected.md"})
    pipeline = GitIngestionPipeline(
        fetcher=CopyFetcher(tree),
        vector_store=store,
        splitter=_splitter(),
        workdir_parent=tmp_path,
    )

    summary = pipeline.ingest(SOURCE)

    assert summary.files_failed == 1
    assert summary.files_ingested == 1
    assert store.for_path("accepted.md")
    assert store.for_path("rejected.md") == []


def test_malformed_embedding_response_only_fails_that_file(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch, caplog: pytest.LogCaptureFixture
) -> None:
    tree = tmp_path / "tree"
    tree.mkdir()
    (tree / "a.md").write_text(PROSE, encoding="utf-8")
    (tree / "b.md").write_text(PROSE, encoding="utf-8")
    calls: list[int] = []

    def fake_post(url: str, *, json: dict[str, object], timeout: float) -> httpx.Response:
        calls.append(len(json["input"]))
        request = httpx.Request("POST", url)
        if len(calls) == 1:
            return httpx.Response(200, text="<html>proxy</html>", request=request)
        payload = {"data": [{"embedding": [1.0, 0.0]} for _ in json["input"]]}
        return httpx.Response(200, json=payload, request=request)

    monkeypatch.setattr("ragdemo.services.rag.embedding_client.httpx.post", fake_post)
    store = SqliteVectorStore(
        tmp_path / "rag.db",
        embedding_client=OllamaEmbeddingClient(base_url="http://ollama/v1", model="m"),
    )
    pipeline = GitIngestionPipeline(
        fetcher=CopyFetcher(tree),
        vector_store=store,
        splitter=_splitter(),
        workdir_parent=tmp_path,
    )
    caplog.set_level(logging.WARNING, logger="ragdemo")

    summary = pipeline.ingest(SOURCE)

    assert len(calls) == 2
    assert summary.files_failed == 1
    assert summary.files_ingested == 1
    assert len(store.load_chunks()) == calls[1]
    assert "vector store write failed" in caplog.text


def test_working_directory_removed_when_processing_raises(tmp_path: Path) -> None:
    tree = tmp_path / "tree"
    (tree / "nested" / "deeper").mkdir(parents=True)
    (tree / "nested" / "deeper" / "doc.md").write_text(PROSE, encoding="utf-8")

    class ExplodingStore(RecordingVectorStore):
        def write(self, chunks: Sequence[ChunkRecord]) -> None:
            raise RuntimeError("unexpected")

    workdirs = tmp_path / "work"
    workdirs.mkdir()
    pipeline = GitIngestionPipeline(
        fetcher=CopyFetcher(tree),
        vector_store=ExplodingStore(),
        splitter=_splitter(),
        workdir_parent=workdirs,
    )

    with pytest.raises(RuntimeError, match="unexpected"):
        pipeline.ingest(SOURCE)

    assert list(workdirs.iterdir()) == []


def test_each_run_gets_a_fresh_working_directory(tmp_path: Path, repo_tree: Path) -> None:
    fetcher = CopyFetcher(repo_tree)
    pipeline = GitIngestionPipeline(
        fetcher=fetcher,
        vector_store=RecordingVectorStore(),
        splitter=_splitter(),
        workdir_parent=tmp_path,
    )

    pipeline.ingest(SOURCE)
    pipeline.ingest(SOURCE)

    assert len(set(fetcher.destinations)) == 2
