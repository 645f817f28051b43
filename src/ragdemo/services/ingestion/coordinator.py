from __future__ import annotations

from concurrent.futures import Future, ThreadPoolExecutor, wait
from typing import Protocol, Sequence

from ragdemo.config import MAX_INGEST_WORKERS, TIMEOUT_POLICIES
from ragdemo.logging_config import get_logger
from ragdemo.services.rag.types import BatchIngestionResult, IngestionSummary

logger = get_logger(__name__)


class IngestionPipeline(Protocol):
    def ingest(self, source: str) -> IngestionSummary: ...


class IngestionCoordinator:
    """Runs one pipeline invocation per source on a bounded thread pool.

    A failing source is logged and recorded but never affects its siblings.
    ``ingest_all`` blocks until every job finished or ``wait_timeout_seconds``
    elapsed. On timeout the ``abandon`` policy leaves queued and running jobs
    alone; ``cancel`` drops the jobs that have not started yet. Running jobs
    are never interrupted.
    """

    def __init__(
        self,
        pipeline: IngestionPipeline,
        *,
        max_workers: int = MAX_INGEST_WORKERS,
        wait_timeout_seconds: float = 3600.0,
        timeout_policy: str = "abandon",
    ) -> None:
        if max_workers <= 0:
            raise ValueError("max_workers must be > 0")
        if timeout_policy not in TIMEOUT_POLICIES:
            raise ValueError(f"timeout_policy must be one of {sorted(TIMEOUT_POLICIES)}")

        self._pipeline = pipeline
        self._max_workers = min(max_workers, MAX_INGEST_WORKERS)
        self._wait_timeout_seconds = wait_timeout_seconds
        self._timeout_policy = timeout_policy

    def _run_one(self, source: str) -> str | None:
        try:
            self._pipeline.ingest(source)
        except Exception as exc:
            logger.exception("Failed to ingest repo: %s", source)
            return str(exc) or type(exc).__name__
        return None

    def ingest_all(self, sources: Sequence[str]) -> BatchIngestionResult:
        result = BatchIngestionResult()
        if not sources:
            return result

        executor = ThreadPoolExecutor(
            max_workers=min(self._max_workers, len(sources)),
            thread_name_prefix="git-ingest",
        )
        futures: dict[Future[str | None], str] = {}

        try:
            for source in sources:
                futures[executor.submit(self._run_one, source)] = source
            done, not_done = wait(futures, timeout=self._wait_timeout_seconds)
        except KeyboardInterrupt:
            logger.warning(
                "Interrupted while waiting for %d ingestion jobs; cancelling queued jobs",
                len(futures),
            )
            executor.shutdown(wait=False, cancel_futures=True)
            raise

        for future in done:
            source = futures[future]
            error = future.result()
            if error is None:
                result.succeeded.append(source)
            else:
                result.failed[source] = error

        if not_done:
            result.timed_out = True
            result.pending = [futures[future] for future in not_done]
            logger.warning(
                "Stopped waiting after %gs with %d ingestion jobs unfinished (policy=%s)",
                self._wait_timeout_seconds,
                len(not_done),
                self._timeout_policy,
            )

        executor.shutdown(wait=False, cancel_futures=self._timeout_policy == "cancel")
        logger.info(
            "Batch ingestion finished: succeeded=%d failed=%d pending=%d",
            len(result.succeeded),
            len(result.failed),
            len(result.pending),
        )
        return result
