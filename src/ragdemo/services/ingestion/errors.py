from __future__ import annotations

from pathlib import Path


class IngestionError(RuntimeError):
    pass


class FetchError(IngestionError):
    """The repository could not be cloned. Fatal to the job."""

    def __init__(self, source: str, reason: str) -> None:
        super().__init__(f"Failed to clone repository {source!r}: {reason}")
        self.source = source
        self.reason = reason


class FileReadError(IngestionError):
    """A single file could not be read or decoded. The file is skipped."""

    def __init__(self, path: Path, reason: str) -> None:
        super().__init__(f"Failed to read {path}: {reason}")
        self.path = path


class SinkWriteError(IngestionError):
    """The vector store rejected a batch of chunks."""


class CleanupError(IngestionError):
    """Some entries of a working directory could not be deleted."""

    def __init__(self, root: Path, failed_paths: list[Path]) -> None:
        super().__init__(
            f"Failed to delete {len(failed_paths)} entries under {root}"
        )
        self.root = root
        self.failed_paths = failed_paths
