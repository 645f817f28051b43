from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
import os
from pathlib import Path
import tempfile

from ragdemo.logging_config import get_logger
from ragdemo.services.ingestion.errors import CleanupError

logger = get_logger(__name__)

WORKDIR_PREFIX = "git-ingest-"


def create_working_directory(parent: Path | None = None) -> Path:
    # mkdtemp picks a fresh name and creates it atomically, so two jobs never share one.
    return Path(tempfile.mkdtemp(prefix=WORKDIR_PREFIX, dir=parent))


def delete_tree(root: Path) -> None:
    """Delete ``root`` and everything below it, leaves before their parents.

    Every entry is attempted even if some fail. Raises ``CleanupError`` listing
    the entries that could not be removed.
    """
    if not os.path.lexists(root):
        return

    failed: list[Path] = []

    if root.is_dir() and not root.is_symlink():
        for dirpath, dirnames, filenames in os.walk(root, topdown=False):
            for name in filenames:
                path = Path(dirpath) / name
                try:
                    os.unlink(path)
                except OSError:
                    failed.append(path)
            for name in dirnames:
                path = Path(dirpath) / name
                try:
                    if os.path.islink(path):
                        os.unlink(path)
                    else:
                        os.rmdir(path)
                except OSError:
                    failed.append(path)
        try:
            os.rmdir(root)
        except OSError:
            failed.append(root)
    else:
        try:
            os.unlink(root)
        except OSError:
            failed.append(root)

    if failed:
        raise CleanupError(root, failed)


@contextmanager
def working_directory(parent: Path | None = None) -> Iterator[Path]:
    """Yield a fresh working directory and remove it on every exit path."""
    path = create_working_directory(parent)
    logger.debug("Created working directory %s", path)
    try:
        yield path
    finally:
        try:
            delete_tree(path)
        except CleanupError as exc:
            logger.warning(
                "%s; first failures: %s",
                exc,
                ", ".join(str(failed) for failed in exc.failed_paths[:5]),
            )
        else:
            logger.debug("Removed working directory %s", path)
