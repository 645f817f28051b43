from __future__ import annotations

import argparse
from dataclasses import replace
import json
from pathlib import Path
import sys

from ragdemo.config import MAX_INGEST_WORKERS, TIMEOUT_POLICIES, get_settings
from ragdemo.logging_config import setup_logging
from ragdemo.services.ingestion import IngestionCoordinator, IngestionError
from ragdemo.services.ingestion.pipeline import build_pipeline
from ragdemo.services.rag.embedding_client import build_embedding_client
from ragdemo.services.rag.sqlite_store import SqliteVectorStore


def _build_parser() -> argparse.ArgumentParser:
    settings = get_settings()

    parser = argparse.ArgumentParser(
        prog="rag-ingest",
        description="Clone git repositories and load their documents into the RAG vector store",
    )
    parser.add_argument(
        "repos",
        nargs="+",
        metavar="REPO",
        help="Repository URL(s); more than one runs them concurrently",
    )
    parser.add_argument(
        "--db-path",
        default=settings.rag_db_path,
        help="sqlite file backing the vector store",
    )
    parser.add_argument(
        "--chunk-size",
        type=int,
        default=settings.rag_chunk_size,
        help="Chunk size in tokens",
    )
    parser.add_argument(
        "--max-workers",
        type=int,
        default=settings.ingest_max_workers,
        help=f"Concurrent clones for batch ingestion (at most {MAX_INGEST_WORKERS})",
    )
    parser.add_argument(
        "--wait-timeout",
        type=float,
        default=settings.ingest_wait_timeout_seconds,
        help="Seconds to wait for a batch before giving up",
    )
    parser.add_argument(
        "--timeout-policy",
        choices=sorted(TIMEOUT_POLICIES),
        default=settings.ingest_timeout_policy,
        help="What to do with unfinished jobs once the wait times out",
    )
    parser.add_argument(
        "--log-level",
        default=settings.log_level,
        help="DEBUG shows every skipped file",
    )
    return parser


def main(argv: list[str] | None = None) -> None:
    parser = _build_parser()
    args = parser.parse_args(argv)
    setup_logging(args.log_level)

    settings = replace(get_settings(), rag_chunk_size=args.chunk_size)
    vector_store = SqliteVectorStore(
        Path(args.db_path),
        embedding_client=build_embedding_client(settings),
    )
    pipeline = build_pipeline(settings, vector_store=vector_store)

    if len(args.repos) == 1:
        try:
            summary = pipeline.ingest(args.repos[0])
        except IngestionError as exc:
            print(f"[rag-ingest] failed: {exc}", file=sys.stderr, flush=True)
            raise SystemExit(1) from exc

        print(
            "[rag-ingest] completed "
            f"source={summary.source} "
            f"files={summary.files_ingested} "
            f"chunks={summary.chunk_count} "
            f"db_path={args.db_path}",
            flush=True,
        )
        return

    coordinator = IngestionCoordinator(
        pipeline,
        max_workers=args.max_workers,
        wait_timeout_seconds=args.wait_timeout,
        timeout_policy=args.timeout_policy,
    )
    result = coordinator.ingest_all(args.repos)
    print(
        json.dumps(
            {
                "succeeded": result.succeeded,
                "failed": sorted(result.failed),
                "pending": result.pending,
                "timed_out": result.timed_out,
                "db_path": args.db_path,
            }
        ),
        flush=True,
    )


if __name__ == "__main__":
    main()
