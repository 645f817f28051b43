from __future__ import annotations

import os
from pathlib import Path
import subprocess
from typing import Protocol

from ragdemo.logging_config import get_logger
from ragdemo.services.ingestion.errors import FetchError

logger = get_logger(__name__)


class RepositoryFetcher(Protocol):
    def fetch(self, source: str, destination: Path) -> None: ...


class GitFetcher:
    """Clones a repository with the ``git`` executable."""

    def __init__(
        self,
        *,
        depth: int = 0,
        timeout_seconds: float = 600.0,
        git_executable: str = "git",
    ) -> None:
        self._depth = depth
        self._timeout_seconds = timeout_seconds
        self._git_executable = git_executable

    def _command(self, source: str, destination: Path) -> list[str]:
        command = [self._git_executable, "clone", "--quiet"]
        if self._depth > 0:
            command.extend(["--depth", str(self._depth)])
        command.extend(["--", source, str(destination)])
        return command

    def fetch(self, source: str, destination: Path) -> None:
        if not source or not source.strip():
            raise FetchError(source, "repository URL must not be empty")

        env = dict(os.environ)
        env["GIT_TERMINAL_PROMPT"] = "0"

        logger.info("Cloning %s into %s", source, destination)
        try:
            completed = subprocess.run(
                self._command(source.strip(), destination),
                capture_output=True,
                text=True,
                check=False,
                timeout=self._timeout_seconds,
                env=env,
            )
        except FileNotFoundError as exc:
            raise FetchError(source, f"git executable not found: {self._git_executable}") from exc
        except subprocess.TimeoutExpired as exc:
            raise FetchError(source, f"clone timed out after {self._timeout_seconds:g}s") from exc

        if completed.returncode != 0:
            stderr = completed.stderr.strip() or completed.stdout.strip() or "<empty>"
            raise FetchError(source, f"git clone exited with {completed.returncode}: {stderr}")
