from __future__ import annotations

from pathlib import Path

from ragdemo.config import Settings
from ragdemo.logging_config import get_logger
from ragdemo.services.ingestion.errors import FileReadError, SinkWriteError
from ragdemo.services.ingestion.fetcher import GitFetcher, RepositoryFetcher
from ragdemo.services.ingestion.filters import SUPPORTED_EXTENSIONS, is_ingestible
from ragdemo.services.ingestion.walker import walk_files
from ragdemo.services.ingestion.workspace import working_directory
from ragdemo.services.rag.chunker import TokenTextSplitter, chunk_documents, get_tokenizer
from ragdemo.services.rag.loader import load_file
from ragdemo.services.rag.types import IngestionSummary, VectorStore

logger = get_logger(__name__)

SKIPPED_DIRECTORIES = frozenset({".git"})


class GitIngestionPipeline:
    """Clone a repository, chunk its ingestible files and write them to a vector store.

    The working tree lives in a fresh temporary directory that is removed when
    the run ends, whatever the outcome. A clone failure aborts the run with
    ``FetchError``; unreadable files and rejected sink writes only skip the
    file concerned.
    """

    def __init__(
        self,
        *,
        fetcher: RepositoryFetcher,
        vector_store: VectorStore,
        splitter: TokenTextSplitter,
        supported_extensions: frozenset[str] = SUPPORTED_EXTENSIONS,
        workdir_parent: Path | None = None,
    ) -> None:
        self._fetcher = fetcher
        self._vector_store = vector_store
        self._splitter = splitter
        self._supported_extensions = supported_extensions
        self._workdir_parent = workdir_parent

    def ingest(self, source: str) -> IngestionSummary:
        summary = IngestionSummary(source=source)

        with working_directory(self._workdir_parent) as workdir:
            self._fetcher.fetch(source, workdir)

            for path in walk_files(workdir, skip_dirs=SKIPPED_DIRECTORIES):
                summary.files_seen += 1
                if not is_ingestible(path, self._supported_extensions):
                    logger.debug("Skipping non-text file: %s", path)
                    summary.files_skipped += 1
                    continue

                try:
                    summary.chunk_count += self._ingest_file(path, source=source, root=workdir)
                except FileReadError as exc:
                    logger.warning("Skipping file due to read error: %s", exc)
                    summary.files_failed += 1
                except SinkWriteError as exc:
                    logger.warning("Skipping file %s, vector store write failed: %s", path, exc)
                    summary.files_failed += 1
                else:
                    summary.files_ingested += 1

        logger.info(
            "Ingested %s: files=%d ingested=%d skipped=%d failed=%d chunks=%d",
            source,
            summary.files_seen,
            summary.files_ingested,
            summary.files_skipped,
            summary.files_failed,
            summary.chunk_count,
        )
        return summary

    def _ingest_file(self, path: Path, *, source: str, root: Path) -> int:
        documents = load_file(path, source=source, root=root)
        chunks = chunk_documents(documents, splitter=self._splitter)
        if not chunks:
            logger.debug("No chunks produced for %s", path)
            return 0

        self._vector_store.write(chunks)
        return len(chunks)


def build_splitter(settings: Settings) -> TokenTextSplitter:
    return TokenTextSplitter(
        get_tokenizer(settings.rag_tokenizer_encoding),
        chunk_size=settings.rag_chunk_size,
        min_chunk_size_chars=settings.rag_min_chunk_size_chars,
        min_chunk_length_to_embed=settings.rag_min_chunk_length_to_embed,
        max_num_chunks=settings.rag_max_num_chunks,
    )


def build_pipeline(settings: Settings, *, vector_store: VectorStore) -> GitIngestionPipeline:
    return GitIngestionPipeline(
        fetcher=GitFetcher(
            depth=settings.git_clone_depth,
            timeout_seconds=settings.git_clone_timeout_seconds,
        ),
        vector_store=vector_store,
        splitter=build_splitter(settings),
    )
