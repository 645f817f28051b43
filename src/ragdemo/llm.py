from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

import httpx

from ragdemo.config import Settings
from ragdemo.logging_config import get_logger

logger = get_logger(__name__)


class LLMClientError(RuntimeError):
    pass


@dataclass(frozen=True)
class ChatResult:
    answer: str
    model: str
    used_fallback: bool


class LLMClient(Protocol):
    def generate_answer(self, *, question: str, context: str) -> ChatResult: ...


class OllamaChatClient:
    def __init__(
        self,
        *,
        base_url: str,
        default_model: str,
        fallback_model: str,
        timeout_seconds: float = 30.0,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._default_model = default_model
        self._fallback_model = fallback_model
        self._timeout_seconds = timeout_seconds

    def generate_answer(self, *, question: str, context: str) -> ChatResult:
        candidates = self._model_candidates()
        for model, used_fallback in candidates:
            try:
                content = self._chat_completion(model=model, question=question, context=context)
            except (httpx.HTTPError, ValueError) as exc:
                if used_fallback or len(candidates) == 1:
                    raise LLMClientError(str(exc)) from exc
                logger.warning("Chat model %s failed (%s); trying fallback", model, exc)
                continue

            return ChatResult(answer=content, model=model, used_fallback=used_fallback)

        raise LLMClientError("No model candidates configured")

    def _model_candidates(self) -> list[tuple[str, bool]]:
        candidates: list[tuple[str, bool]] = [(self._default_model, False)]
        if self._fallback_model and self._fallback_model != self._default_model:
            candidates.append((self._fallback_model, True))
        return candidates

    def _chat_completion(self, *, model: str, question: str, context: str) -> str:
        response = httpx.post(
            f"{self._base_url}/chat/completions",
            json={
                "model": model,
                "messages": [
                    {
                        "role": "system",
                        "content": (
                            "Answer the question using the context information and not prior knowledge. "
                            "If the answer is not in the context, tell the user you cannot answer it."
                        ),
                    },
                    {
                        "role": "user",
                        "content": (
                            "Context information is below.\n"
                            "---------------------\n"
                            f"{context}\n"
                            "---------------------\n\n"
                            f"Question: {question}"
                        ),
                    },
                ],
                "temperature": 0,
            },
            timeout=self._timeout_seconds,
        )
        response.raise_for_status()

        payload = response.json()
        choices = payload.get("choices")
        if not isinstance(choices, list) or not choices:
            raise ValueError("Invalid chat completion payload: missing choices")

        message = choices[0].get("message") if isinstance(choices[0], dict) else None
        content = message.get("content") if isinstance(message, dict) else None
        if not isinstance(content, str) or not content.strip():
            raise ValueError("Invalid chat completion payload: missing assistant content")

        return content.strip()


def build_llm_client(settings: Settings) -> LLMClient:
    return OllamaChatClient(
        base_url=settings.ollama_base_url,
        default_model=settings.ollama_model,
        fallback_model=settings.ollama_fallback_model,
        timeout_seconds=settings.ollama_timeout_seconds,
    )
