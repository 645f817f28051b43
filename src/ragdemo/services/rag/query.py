from __future__ import annotations

from dataclasses import dataclass

from ragdemo.llm import LLMClient
from ragdemo.logging_config import get_logger
from ragdemo.services.rag.types import QueryHit, VectorStore

logger = get_logger(__name__)

NO_CONTEXT_MARKER = "No relevant context found in the vector store."


@dataclass(frozen=True)
class ChatAnswer:
    answer: str
    model: str
    used_fallback: bool
    hits: list[QueryHit]


def format_context(hits: list[QueryHit]) -> str:
    return "\n\n".join(
        f"[{hit.source_path}#{hit.chunk_id}]\n{hit.text}" for hit in hits
    ) or NO_CONTEXT_MARKER


def answer_question(
    *,
    question: str,
    vector_store: VectorStore,
    llm_client: LLMClient,
    top_k: int,
) -> ChatAnswer:
    normalized_question = question.strip()
    if not normalized_question:
        raise ValueError("question must not be empty")

    hits = vector_store.search(normalized_question, top_k)
    if not hits:
        logger.info("No chunks retrieved for question; answering without context")

    result = llm_client.generate_answer(question=normalized_question, context=format_context(hits))
    return ChatAnswer(
        answer=result.answer,
        model=result.model,
        used_fallback=result.used_fallback,
        hits=hits,
    )
