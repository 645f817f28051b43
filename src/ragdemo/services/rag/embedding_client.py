from __future__ import annotations

from typing import Protocol

import httpx

from ragdemo.config import Settings
from ragdemo.logging_config import get_logger
from ragdemo.services.rag.embedder import HashEmbeddingClient

logger = get_logger(__name__)


class EmbeddingClientError(RuntimeError):
    pass


class EmbeddingClient(Protocol):
    def embed_texts(self, texts: list[str]) -> list[list[float]]: ...


class OllamaEmbeddingClient:
    def __init__(
        self,
        *,
        base_url: str,
        model: str,
        timeout_seconds: float = 30.0,
        batch_size: int = 64,
    ) -> None:
        if batch_size <= 0:
            raise ValueError("batch_size must be > 0")
        self._base_url = base_url.rstrip("/")
        self._model = model
        self._timeout_seconds = timeout_seconds
        self._batch_size = batch_size

    def embed_texts(self, texts: list[str]) -> list[list[float]]:
        vectors: list[list[float]] = []
        for start in range(0, len(texts), self._batch_size):
            vectors.extend(self._embed_batch(texts[start : start + self._batch_size]))
        return vectors

    def _embed_batch(self, texts: list[str]) -> list[list[float]]:
        try:
            response = httpx.post(
                f"{self._base_url}/embeddings",
                json={"model": self._model, "input": texts},
                timeout=self._timeout_seconds,
            )
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise EmbeddingClientError(str(exc)) from exc

        try:
            payload = response.json()
        except ValueError as exc:
            raise EmbeddingClientError(f"Invalid embeddings payload: {exc}") from exc

        data = payload.get("data") if isinstance(payload, dict) else None
        if not isinstance(data, list):
            raise EmbeddingClientError("Invalid embeddings payload: missing data")

        vectors: list[list[float]] = []
        for item in data:
            embedding = item.get("embedding") if isinstance(item, dict) else None
            if not isinstance(embedding, list) or not embedding:
                raise EmbeddingClientError("Invalid embeddings payload: missing embedding vector")
            vectors.append([float(value) for value in embedding])

        if len(vectors) != len(texts):
            raise EmbeddingClientError(
                f"Invalid embeddings payload: expected {len(texts)} vectors, got {len(vectors)}"
            )

        logger.debug("Embedded %d texts with %s", len(texts), self._model)
        return vectors


def build_embedding_client(settings: Settings) -> EmbeddingClient:
    if settings.rag_embedding_provider == "hash":
        return HashEmbeddingClient(dimensions=settings.rag_embedding_dim)

    return OllamaEmbeddingClient(
        base_url=settings.ollama_embed_base_url,
        model=settings.ollama_embed_model,
        timeout_seconds=settings.ollama_timeout_seconds,
    )
