"""Centralized logging configuration for the ingestion service."""

import logging
import os

_LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
_ROOT_LOGGER = "ragdemo"
_configured = False


def setup_logging(level: str | None = None, log_file: str | None = None) -> None:
    """Configure the package logger once.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ERROR). Falls back to
            ``RAG_LOG_LEVEL`` and then INFO when not given.
        log_file: Optional path to a log file. Logs always go to stderr.
    """
    global _configured
    if _configured:
        return

    level = level or os.getenv("RAG_LOG_LEVEL") or "INFO"
    log_level = getattr(logging, level.upper(), logging.INFO)

    env_file = os.getenv("RAG_LOG_FILE")
    if env_file is not None:
        log_file = env_file

    root = logging.getLogger(_ROOT_LOGGER)
    root.setLevel(log_level)
    root.handlers.clear()

    formatter = logging.Formatter(_LOG_FORMAT)

    stream_handler = logging.StreamHandler()
    stream_handler.setLevel(log_level)
    stream_handler.setFormatter(formatter)
    root.addHandler(stream_handler)

    if log_file:
        try:
            file_handler = logging.FileHandler(log_file, encoding="utf-8")
            file_handler.setLevel(log_level)
            file_handler.setFormatter(formatter)
            root.addHandler(file_handler)
        except OSError:
            root.warning("Could not open log file %s, logging to stderr only", log_file)

    _configured = True


def get_logger(name: str) -> logging.Logger:
    if name == _ROOT_LOGGER or name.startswith(f"{_ROOT_LOGGER}."):
        return logging.getLogger(name)
    return logging.getLogger(f"{_ROOT_LOGGER}.{name}")
