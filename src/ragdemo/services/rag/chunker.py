from __future__ import annotations

from functools import lru_cache
from typing import Protocol

import tiktoken

from ragdemo.logging_config import get_logger
from ragdemo.services.rag.types import ChunkRecord, SourceDocument

logger = get_logger(__name__)

SENTENCE_BREAKS = (".", "?", "!", "\n")
_REPLACEMENT_CHAR = "\ufffd"


class Tokenizer(Protocol):
    def encode(self, text: str) -> list[int]: ...

    def decode(self, tokens: list[int]) -> str: ...


class TiktokenTokenizer:
    def __init__(self, encoding_name: str = "cl100k_base") -> None:
        self._encoding = tiktoken.get_encoding(encoding_name)

    def encode(self, text: str) -> list[int]:
        # Repository files may legitimately contain strings like "<|endoftext|>".
        return self._encoding.encode(text, disallowed_special=())

    def decode(self, tokens: list[int]) -> str:
        return self._encoding.decode(tokens)


@lru_cache
def get_tokenizer(encoding_name: str = "cl100k_base") -> Tokenizer:
    return TiktokenTokenizer(encoding_name)


class TokenTextSplitter:
    """Splits text into chunks of at most ``chunk_size`` tokens.

    Each window is cut after its last sentence break when that break lies past
    ``min_chunk_size_chars``, so chunks tend to end on sentence boundaries.

    Chunks whose stripped text is not longer than ``min_chunk_length_to_embed``
    characters are discarded. With the default of 5 a tiny file such as
    ``TODO`` produces no chunks and a short trailing fragment is lost, so the
    chunks only reassemble the input when the threshold is 0.
    """

    def __init__(
        self,
        tokenizer: Tokenizer,
        *,
        chunk_size: int = 800,
        min_chunk_size_chars: int = 350,
        min_chunk_length_to_embed: int = 5,
        max_num_chunks: int = 10000,
        keep_separator: bool = True,
    ) -> None:
        if chunk_size <= 0:
            raise ValueError("chunk_size must be > 0")
        if min_chunk_size_chars < 0:
            raise ValueError("min_chunk_size_chars must be >= 0")
        if max_num_chunks <= 0:
            raise ValueError("max_num_chunks must be > 0")

        self.tokenizer = tokenizer
        self.chunk_size = chunk_size
        self.min_chunk_size_chars = min_chunk_size_chars
        self.min_chunk_length_to_embed = min_chunk_length_to_embed
        self.max_num_chunks = max_num_chunks
        self.keep_separator = keep_separator

    def _window(self, tokens: list[int]) -> tuple[list[int], str]:
        window = tokens[: self.chunk_size]
        text = self.tokenizer.decode(window)
        # Back off so a multi-byte character is not split across two windows.
        while len(window) < len(tokens) and len(window) > 1 and text.endswith(_REPLACEMENT_CHAR):
            window = window[:-1]
            text = self.tokenizer.decode(window)
        return window, text

    def _cut(self, window: list[int], window_text: str, *, is_tail: bool) -> tuple[int, str]:
        if is_tail:
            return len(window), window_text

        last_break = max(window_text.rfind(mark) for mark in SENTENCE_BREAKS)
        if last_break == -1 or last_break <= self.min_chunk_size_chars:
            return len(window), window_text

        cut_text = window_text[: last_break + 1]
        consumed = len(self.tokenizer.encode(cut_text))
        if 0 < consumed < len(window) and self.tokenizer.decode(window[:consumed]) == cut_text:
            return consumed, cut_text
        return len(window), window_text

    def split_text(self, text: str) -> list[str]:
        if not text or not text.strip():
            return []

        tokens = self.tokenizer.encode(text)
        chunks: list[str] = []

        while tokens:
            if len(chunks) >= self.max_num_chunks:
                logger.warning(
                    "Reached max_num_chunks=%d; dropping %d remaining tokens",
                    self.max_num_chunks,
                    len(tokens),
                )
                break

            window, window_text = self._window(tokens)
            consumed, chunk_text = self._cut(
                window, window_text, is_tail=len(window) == len(tokens)
            )
            tokens = tokens[consumed:]

            chunk_text = chunk_text.strip()
            if not self.keep_separator:
                chunk_text = chunk_text.replace("\n", " ")
            if len(chunk_text) > self.min_chunk_length_to_embed:
                chunks.append(chunk_text)

        return chunks


def chunk_documents(
    documents: list[SourceDocument],
    *,
    splitter: TokenTextSplitter,
) -> list[ChunkRecord]:
    chunk_records: list[ChunkRecord] = []
    next_index: dict[str, int] = {}

    for document in documents:
        for chunk_text in splitter.split_text(document.text):
            index = next_index.get(document.doc_id, 0)
            next_index[document.doc_id] = index + 1
            chunk_records.append(
                ChunkRecord(
                    chunk_id=f"{document.doc_id}-{index:04d}",
                    doc_id=document.doc_id,
                    source=document.source,
                    source_path=document.source_path,
                    text=chunk_text,
                    token_count=len(splitter.tokenizer.encode(chunk_text)),
                    page_number=document.page_number,
                )
            )

    return chunk_records
