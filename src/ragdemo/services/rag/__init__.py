from ragdemo.services.rag.chunker import TokenTextSplitter, chunk_documents
from ragdemo.services.rag.query import ChatAnswer, answer_question
from ragdemo.services.rag.sqlite_store import SqliteVectorStore
from ragdemo.services.rag.types import ChunkRecord, IngestionSummary, QueryHit, VectorStore

__all__ = [
    "ChatAnswer",
    "ChunkRecord",
    "IngestionSummary",
    "QueryHit",
    "SqliteVectorStore",
    "TokenTextSplitter",
    "VectorStore",
    "answer_question",
    "chunk_documents",
]
