from __future__ import annotations

from dataclasses import asdict
from datetime import datetime, timezone
from typing import Any, Sequence
from uuid import uuid4

from sqlalchemy import select
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session

from ragdemo.logging_config import get_logger
from ragdemo.models import JOB_TYPE_GIT_INGEST_BATCH, JobRecord
from ragdemo.services.ingestion.coordinator import IngestionCoordinator
from ragdemo.services.rag.types import BatchIngestionResult

logger = get_logger(__name__)

STATUS_QUEUED = "queued"
STATUS_RUNNING = "running"
STATUS_SUCCEEDED = "succeeded"
STATUS_COMPLETED_WITH_ERRORS = "completed_with_errors"
STATUS_FAILED = "failed"


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _to_iso(value: datetime | None) -> str | None:
    if value is None:
        return None
    return value.isoformat()


def job_summary(job: JobRecord) -> dict[str, Any]:
    return {
        "id": job.id,
        "type": job.type,
        "status": job.status,
    }


def job_detail(job: JobRecord) -> dict[str, Any]:
    return {
        "id": job.id,
        "type": job.type,
        "status": job.status,
        "payload_json": job.payload_json,
        "created_at": _to_iso(job.created_at),
        "updated_at": _to_iso(job.updated_at),
        "started_at": _to_iso(job.started_at),
        "finished_at": _to_iso(job.finished_at),
        "error": job.error,
        "result_json": job.result_json,
    }


def enqueue_batch_job(engine: Engine, sources: Sequence[str]) -> JobRecord:
    with Session(engine, expire_on_commit=False) as session:
        job = JobRecord(
            id=uuid4().hex,
            type=JOB_TYPE_GIT_INGEST_BATCH,
            status=STATUS_QUEUED,
            payload_json={"repo_names": list(sources)},
            updated_at=_now(),
        )
        session.add(job)
        session.commit()
    return job


def list_jobs(engine: Engine, *, job_type: str | None, status: str | None) -> list[JobRecord]:
    with Session(engine) as session:
        stmt = select(JobRecord)
        if job_type is not None:
            stmt = stmt.where(JobRecord.type == job_type)
        if status is not None:
            stmt = stmt.where(JobRecord.status == status)
        return list(
            session.scalars(stmt.order_by(JobRecord.created_at.asc(), JobRecord.id.asc())).all()
        )


def get_job(engine: Engine, job_id: str) -> JobRecord | None:
    with Session(engine) as session:
        return session.get(JobRecord, job_id)


def _update_job(engine: Engine, job_id: str, **changes: Any) -> None:
    with Session(engine) as session:
        job = session.get(JobRecord, job_id)
        if job is None:
            logger.warning("Job %s disappeared before it could be updated", job_id)
            return
        for key, value in changes.items():
            setattr(job, key, value)
        job.updated_at = _now()
        session.commit()


def _final_status(result: BatchIngestionResult) -> str:
    if result.failed or result.timed_out:
        return STATUS_COMPLETED_WITH_ERRORS
    return STATUS_SUCCEEDED


def run_batch_job(
    engine: Engine,
    job_id: str,
    sources: Sequence[str],
    coordinator: IngestionCoordinator,
) -> None:
    """Run a queued batch ingestion and record its outcome on the job row.

    Per-repository failures never fail the job; they end up in ``result_json``.
    """
    _update_job(engine, job_id, status=STATUS_RUNNING, started_at=_now(), error=None)

    try:
        result = coordinator.ingest_all(sources)
    except Exception as exc:
        logger.exception("Batch ingestion job %s crashed", job_id)
        _update_job(engine, job_id, status=STATUS_FAILED, finished_at=_now(), error=str(exc))
        return

    _update_job(
        engine,
        job_id,
        status=_final_status(result),
        finished_at=_now(),
        result_json=asdict(result),
    )
    logger.info("Batch ingestion job %s finished", job_id)
