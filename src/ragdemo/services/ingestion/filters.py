from __future__ import annotations

from pathlib import Path

SUPPORTED_EXTENSIONS = frozenset(
    {".md", ".txt", ".java", ".py", ".csv", ".json", ".xml", ".html", ".js", ".ts", ".pdf"}
)
BINARY_EXTENSIONS = frozenset({".pdf"})


def is_ingestible(path: Path, supported_extensions: frozenset[str] | None = None) -> bool:
    extensions = supported_extensions or SUPPORTED_EXTENSIONS
    return path.name.lower().endswith(tuple(extensions))


def is_binary_document(path: Path) -> bool:
    return path.name.lower().endswith(tuple(BINARY_EXTENSIONS))
