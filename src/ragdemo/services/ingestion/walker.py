from __future__ import annotations

from collections.abc import Collection, Iterator
import os
from pathlib import Path

from ragdemo.logging_config import get_logger

logger = get_logger(__name__)


def walk_files(root: Path, *, skip_dirs: Collection[str] = ()) -> Iterator[Path]:
    """Yield the absolute path of every regular file below ``root``.

    Iterative depth-first walk; directories that cannot be listed are skipped.
    Symlinked directories are not followed.
    """
    stack = [Path(root).absolute()]

    while stack:
        directory = stack.pop()
        try:
            with os.scandir(directory) as entries:
                children = list(entries)
        except OSError as exc:
            logger.debug("Skipping unreadable directory %s: %s", directory, exc)
            continue

        for entry in children:
            try:
                if entry.is_dir(follow_symlinks=False):
                    if entry.name not in skip_dirs:
                        stack.append(Path(entry.path))
                elif entry.is_file(follow_symlinks=False):
                    yield Path(entry.path)
            except OSError as exc:
                logger.debug("Skipping unreadable entry %s: %s", entry.path, exc)
