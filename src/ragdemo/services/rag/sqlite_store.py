from __future__ import annotations

from array import array
from dataclasses import dataclass
import math
from pathlib import Path
import sqlite3
import threading
from typing import Sequence

from ragdemo.logging_config import get_logger
from ragdemo.services.ingestion.errors import SinkWriteError
from ragdemo.services.rag.embedding_client import EmbeddingClient, EmbeddingClientError
from ragdemo.services.rag.types import ChunkRecord, QueryHit

logger = get_logger(__name__)


@dataclass(frozen=True)
class StoredChunk:
    chunk_id: str
    source: str
    source_path: str
    text: str
    embedding: list[float]


def _encode_embedding(values: list[float]) -> bytes:
    vector = array("f", values)
    return vector.tobytes()


def _decode_embedding(blob: bytes) -> list[float]:
    vector = array("f")
    vector.frombytes(blob)
    return vector.tolist()


def _cosine(a: list[float], b: list[float]) -> float:
    dot = sum(x * y for x, y in zip(a, b))
    norm_a = math.sqrt(sum(x * x for x in a))
    norm_b = math.sqrt(sum(y * y for y in b))
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return dot / (norm_a * norm_b)


def _chunk_index(chunk: ChunkRecord) -> int:
    _, separator, suffix = chunk.chunk_id.rpartition("-")
    if separator and suffix.isdigit():
        return int(suffix)
    raise ValueError(f"Invalid chunk id format: {chunk.chunk_id}")


def _ensure_schema(connection: sqlite3.Connection) -> None:
    connection.executescript(
        """
        PRAGMA foreign_keys = ON;

        CREATE TABLE IF NOT EXISTS documents (
            id TEXT PRIMARY KEY,
            source TEXT NOT NULL,
            source_path TEXT NOT NULL,
            created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
            UNIQUE (source, source_path)
        );

        CREATE TABLE IF NOT EXISTS chunks (
            id TEXT PRIMARY KEY,
            doc_id TEXT NOT NULL,
            chunk_index INTEGER NOT NULL,
            page_number INTEGER,
            text TEXT NOT NULL,
            token_count INTEGER,
            embedding BLOB NOT NULL,
            embedding_dim INTEGER NOT NULL,
            created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
            FOREIGN KEY (doc_id) REFERENCES documents(id) ON DELETE CASCADE,
            UNIQUE (doc_id, chunk_index)
        );

        CREATE INDEX IF NOT EXISTS idx_chunks_doc_id ON chunks(doc_id);
        CREATE INDEX IF NOT EXISTS idx_documents_source ON documents(source);
        """
    )


class SqliteVectorStore:
    """Brute-force cosine search over embeddings kept in a sqlite file.

    Writes are serialized through a lock and every call opens its own
    connection, so one instance can be shared by concurrent ingestion jobs.
    Writing chunks for a document replaces whatever that document had before.
    """

    def __init__(self, db_path: Path, *, embedding_client: EmbeddingClient) -> None:
        self._db_path = Path(db_path)
        self._embedding_client = embedding_client
        self._write_lock = threading.Lock()

    @property
    def db_path(self) -> Path:
        return self._db_path

    def write(self, chunks: Sequence[ChunkRecord]) -> None:
        if not chunks:
            return

        try:
            embeddings = self._embedding_client.embed_texts([chunk.text for chunk in chunks])
        except EmbeddingClientError as exc:
            raise SinkWriteError(f"Failed to embed {len(chunks)} chunks: {exc}") from exc

        if len(embeddings) != len(chunks):
            raise SinkWriteError("chunks and embeddings must have the same length")

        documents = {chunk.doc_id: chunk for chunk in chunks}

        try:
            with self._write_lock:
                self._db_path.parent.mkdir(parents=True, exist_ok=True)
                with sqlite3.connect(self._db_path, timeout=30) as connection:
                    _ensure_schema(connection)
                    connection.executemany(
                        "DELETE FROM chunks WHERE doc_id = ?",
                        [(doc_id,) for doc_id in documents],
                    )
                    connection.executemany(
                        """
                        INSERT OR REPLACE INTO documents (id, source, source_path)
                        VALUES (?, ?, ?)
                        """,
                        [
                            (doc_id, chunk.source, chunk.source_path)
                            for doc_id, chunk in documents.items()
                        ],
                    )
                    connection.executemany(
                        """
                        INSERT INTO chunks (
                            id, doc_id, chunk_index, page_number, text,
                            token_count, embedding, embedding_dim
                        )
                        VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                        """,
                        [
                            (
                                chunk.chunk_id,
                                chunk.doc_id,
                                _chunk_index(chunk),
                                chunk.page_number,
                                chunk.text,
                                chunk.token_count,
                                sqlite3.Binary(_encode_embedding(embedding)),
                                len(embedding),
                            )
                            for chunk, embedding in zip(chunks, embeddings)
                        ],
                    )
                connection.close()
        except (sqlite3.Error, OSError, ValueError) as exc:
            raise SinkWriteError(f"Failed to write {len(chunks)} chunks: {exc}") from exc

        logger.info("Vector store loaded %d chunks into %s", len(chunks), self._db_path)

    def load_chunks(self) -> list[StoredChunk]:
        if not self._db_path.exists():
            return []

        with self._write_lock:
            connection = sqlite3.connect(self._db_path, timeout=30)
            try:
                _ensure_schema(connection)
                rows = connection.execute(
                    """
                    SELECT c.id, d.source, d.source_path, c.text, c.embedding, c.embedding_dim
                    FROM chunks c
                    JOIN documents d ON d.id = c.doc_id
                    ORDER BY c.id
                    """
                ).fetchall()
            finally:
                connection.close()

        chunks: list[StoredChunk] = []
        for chunk_id, source, source_path, text, embedding_blob, embedding_dim in rows:
            embedding = _decode_embedding(embedding_blob)
            if len(embedding) != embedding_dim:
                continue
            chunks.append(
                StoredChunk(
                    chunk_id=chunk_id,
                    source=source,
                    source_path=source_path,
                    text=text,
                    embedding=embedding,
                )
            )
        return chunks

    def search(self, query_text: str, top_k: int) -> list[QueryHit]:
        normalized_query = query_text.strip()
        if not normalized_query:
            raise ValueError("query_text must not be empty")

        chunks = self.load_chunks()
        if not chunks:
            return []

        try:
            query_embedding = self._embedding_client.embed_texts([normalized_query])[0]
        except (EmbeddingClientError, IndexError) as exc:
            raise ValueError(f"Failed to generate query embedding: {exc}") from exc

        hits = [
            QueryHit(
                chunk_id=chunk.chunk_id,
                source=chunk.source,
                source_path=chunk.source_path,
                text=chunk.text,
                score=_cosine(query_embedding, chunk.embedding),
            )
            for chunk in chunks
        ]
        hits.sort(key=lambda hit: hit.score, reverse=True)
        return hits[: max(1, top_k)]
