from dataclasses import asdict
from functools import lru_cache
from pathlib import Path
from typing import Annotated, Any

from fastapi import BackgroundTasks, Depends, FastAPI, HTTPException, Query
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from ragdemo.config import get_settings
from ragdemo.db import get_engine, init_db
from ragdemo.llm import LLMClient, LLMClientError, build_llm_client
from ragdemo.logging_config import setup_logging
from ragdemo.services import jobs
from ragdemo.services.ingestion import (
    FetchError,
    GitIngestionPipeline,
    IngestionCoordinator,
    IngestionError,
)
from ragdemo.services.ingestion.pipeline import build_pipeline
from ragdemo.services.rag import SqliteVectorStore, VectorStore, answer_question
from ragdemo.services.rag.embedding_client import build_embedding_client
from ragdemo.services.rag.query import ChatAnswer

app = FastAPI(title="Git RAG Demo API", version="0.1.0")


class ChatRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    question: str = Field(min_length=1)
    k: int | None = Field(default=None, ge=1, le=20)


class LoadRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    repo_name: str = Field(min_length=1)


class BatchLoadRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    repo_names: list[str] = Field(min_length=1)


@app.on_event("startup")
def startup() -> None:
    setup_logging(get_settings().log_level)
    init_db()


@lru_cache
def _shared_vector_store(db_path: str) -> SqliteVectorStore:
    # One instance per index file so every writer goes through the same lock.
    return SqliteVectorStore(Path(db_path), embedding_client=build_embedding_client(get_settings()))


def get_vector_store() -> VectorStore:
    return _shared_vector_store(get_settings().rag_db_path)


def get_llm_client() -> LLMClient:
    return build_llm_client(get_settings())


def get_ingestion_pipeline(
    vector_store: Annotated[VectorStore, Depends(get_vector_store)],
) -> GitIngestionPipeline:
    return build_pipeline(get_settings(), vector_store=vector_store)


def get_coordinator(
    pipeline: Annotated[GitIngestionPipeline, Depends(get_ingestion_pipeline)],
) -> IngestionCoordinator:
    settings = get_settings()
    return IngestionCoordinator(
        pipeline,
        max_workers=settings.ingest_max_workers,
        wait_timeout_seconds=settings.ingest_wait_timeout_seconds,
        timeout_policy=settings.ingest_timeout_policy,
    )


def _chat_response(result: ChatAnswer, *, top_k: int) -> dict[str, Any]:
    settings = get_settings()
    return {
        "answer": result.answer,
        "sources": [
            {
                "chunk_id": hit.chunk_id,
                "source": hit.source,
                "source_path": hit.source_path,
                "score": round(hit.score, 6),
                "text": hit.text,
            }
            for hit in result.hits
        ],
        "meta": {
            "provider": "ollama",
            "model": result.model,
            "used_fallback": result.used_fallback,
            "retrieval_k": top_k,
            "retrieved_count": len(result.hits),
            "ollama_base_url": settings.ollama_base_url,
        },
    }


def _ask(question: str, *, top_k: int, vector_store: VectorStore, llm_client: LLMClient) -> ChatAnswer:
    try:
        return answer_question(
            question=question,
            vector_store=vector_store,
            llm_client=llm_client,
            top_k=top_k,
        )
    except LLMClientError as exc:
        raise HTTPException(status_code=502, detail=f"LLM request failed: {exc}") from exc
    except ValueError as exc:
        raise HTTPException(status_code=500, detail=str(exc)) from exc


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


@app.post("/chat")
def chat(
    request: ChatRequest,
    llm_client: Annotated[LLMClient, Depends(get_llm_client)],
    vector_store: Annotated[VectorStore, Depends(get_vector_store)],
) -> dict[str, Any]:
    question = request.question.strip()
    if not question:
        raise HTTPException(status_code=400, detail="question must not be empty")

    top_k = request.k or get_settings().rag_top_k
    result = _ask(question, top_k=top_k, vector_store=vector_store, llm_client=llm_client)
    return _chat_response(result, top_k=top_k)


@app.get("/info")
def info(
    llm_client: Annotated[LLMClient, Depends(get_llm_client)],
    vector_store: Annotated[VectorStore, Depends(get_vector_store)],
) -> dict[str, Any]:
    settings = get_settings()
    result = _ask(
        settings.rag_info_question,
        top_k=settings.rag_top_k,
        vector_store=vector_store,
        llm_client=llm_client,
    )
    return _chat_response(result, top_k=settings.rag_top_k)


@app.post("/load")
def load(
    request: LoadRequest,
    pipeline: Annotated[GitIngestionPipeline, Depends(get_ingestion_pipeline)],
) -> dict[str, Any]:
    try:
        summary = pipeline.ingest(request.repo_name.strip())
    except FetchError as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    except IngestionError as exc:
        raise HTTPException(status_code=500, detail=str(exc)) from exc

    return asdict(summary)


@app.post("/load/batch")
def load_batch(
    request: BatchLoadRequest,
    background_tasks: BackgroundTasks,
    coordinator: Annotated[IngestionCoordinator, Depends(get_coordinator)],
) -> JSONResponse:
    sources = [name.strip() for name in request.repo_names if name.strip()]
    if not sources:
        raise HTTPException(status_code=400, detail="repo_names must contain a repository")

    engine = get_engine()
    job = jobs.enqueue_batch_job(engine, sources)
    background_tasks.add_task(jobs.run_batch_job, engine, job.id, sources, coordinator)

    return JSONResponse(status_code=202, content={"job_id": job.id, "status": job.status})


@app.get("/jobs")
def list_jobs(
    type: str | None = Query(default=None),
    status: str | None = Query(default=None),
) -> list[dict[str, Any]]:
    return [
        jobs.job_summary(job)
        for job in jobs.list_jobs(get_engine(), job_type=type, status=status)
    ]


@app.get("/jobs/{job_id}")
def get_job(job_id: str) -> dict[str, Any]:
    job = jobs.get_job(get_engine(), job_id)
    if job is None:
        raise HTTPException(status_code=404, detail="job not found")
    return jobs.job_detail(job)


def run() -> None:
    import uvicorn

    uvicorn.run("ragdemo.main:app", host="0.0.0.0", port=8000, reload=False)


if __name__ == "__main__":
    run()
