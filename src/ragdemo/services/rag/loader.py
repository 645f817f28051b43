from __future__ import annotations

import hashlib
from pathlib import Path

from pypdf import PdfReader
from pypdf.errors import PyPdfError

from ragdemo.services.ingestion.errors import FileReadError
from ragdemo.services.ingestion.filters import is_binary_document
from ragdemo.services.rag.types import SourceDocument


def document_id(source: str, source_path: str) -> str:
    return hashlib.sha256(f"{source}\0{source_path}".encode("utf-8")).hexdigest()[:16]


def load_text_document(path: Path, *, source: str, source_path: str) -> list[SourceDocument]:
    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise FileReadError(path, str(exc)) from exc

    if not text.strip():
        return []

    return [
        SourceDocument(
            doc_id=document_id(source, source_path),
            source=source,
            source_path=source_path,
            text=text,
        )
    ]


def load_pdf_documents(path: Path, *, source: str, source_path: str) -> list[SourceDocument]:
    """Extract one document per non-empty PDF page."""
    try:
        with path.open("rb") as handle:
            reader = PdfReader(handle)
            pages = [page.extract_text() or "" for page in reader.pages]
    except (OSError, PyPdfError, ValueError) as exc:
        raise FileReadError(path, str(exc)) from exc

    doc_id = document_id(source, source_path)
    return [
        SourceDocument(
            doc_id=doc_id,
            source=source,
            source_path=source_path,
            text=text,
            page_number=page_number,
        )
        for page_number, text in enumerate(pages, start=1)
        if text.strip()
    ]


def load_file(path: Path, *, source: str, root: Path) -> list[SourceDocument]:
    source_path = path.relative_to(root).as_posix()
    if is_binary_document(path):
        return load_pdf_documents(path, source=source, source_path=source_path)
    return load_text_document(path, source=source, source_path=source_path)
