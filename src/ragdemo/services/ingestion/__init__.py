from ragdemo.services.ingestion.coordinator import IngestionCoordinator
from ragdemo.services.ingestion.errors import (
    CleanupError,
    FetchError,
    FileReadError,
    IngestionError,
    SinkWriteError,
)
from ragdemo.services.ingestion.pipeline import GitIngestionPipeline

__all__ = [
    "CleanupError",
    "FetchError",
    "FileReadError",
    "GitIngestionPipeline",
    "IngestionCoordinator",
    "IngestionError",
    "SinkWriteError",
]
