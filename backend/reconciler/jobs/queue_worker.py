from __future__ import annotations

import argparse
import logging
from datetime import date, timezone
from time import monotonic, sleep
from typing import Iterable

from sqlalchemy.orm import Session

from reconciler.core.config import settings
from reconciler.core.db import SessionLocal
from reconciler.core.logging import configure_root_logging
from reconciler.core.metrics import (
    record_job_run,
    record_queue_depth,
    record_queue_job,
    record_queue_runtime,
    record_queue_wait,
)
from reconciler.core.queue import (
    JOB_AGGREGATE_METRICS,
    JOB_APP_STORE_CHUNK,
    JOB_PLATFORM_SYNC,
    JOB_SYNC_FINALIZE,
    QUEUE_NAMES,
    claim_jobs,
    get_job_handler,
    mark_job_success,
    queue_depth,
    register_job_handler,
    reschedule_job,
)
from reconciler.core.time import utcnow
from reconciler.integrations.clients import ClientFactory
from reconciler.jobs.aggregate_metrics import run_aggregate_metrics
from reconciler.jobs.backfills.base import run_app_store_chunk
from reconciler.jobs.sync import finalize_sync, sync_app

logger = logging.getLogger(__name__)

QUEUE_ORDER = ["sync", "backfill", "rollup"]


def register_default_handlers(client_factory: ClientFactory | None = None) -> None:
    def _handle_platform_sync(db: Session, payload: dict):
        return sync_app(
            db,
            int(payload["app_id"]),
            platform=payload.get("platform"),
            force_historical=bool(payload.get("force_historical", False)),
            session_id=payload.get("session_id"),
            client_factory=client_factory,
        ).to_dict()

    def _handle_app_store_chunk(db: Session, payload: dict):
        return run_app_store_chunk(db, int(payload["progress_id"]), client_factory=client_factory)

    def _handle_sync_finalize(db: Session, payload: dict):
        return finalize_sync(
            db,
            int(payload["app_id"]),
            int(payload["session_id"]),
            days=payload.get("days"),
        )

    def _handle_aggregate_metrics(db: Session, payload: dict):
        end_date = payload.get("end_date")
        return run_aggregate_metrics(
            db,
            int(payload["app_id"]),
            end_date=date.fromisoformat(end_date) if end_date else None,
            lookback_days=int(payload.get("lookback_days", 1)),
        )

    register_job_handler(JOB_PLATFORM_SYNC, _handle_platform_sync)
    register_job_handler(JOB_APP_STORE_CHUNK, _handle_app_store_chunk)
    register_job_handler(JOB_SYNC_FINALIZE, _handle_sync_finalize)
    register_job_handler(JOB_AGGREGATE_METRICS, _handle_aggregate_metrics)


def _normalize_dt(value):
    if value is None:
        return None
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def run_queue_once(
    db: Session,
    *,
    queue_name: str,
    worker_id: str,
    limit: int = 10,
) -> int:
    depth = queue_depth(db, queue_name)
    record_queue_depth(queue_name, depth)
    jobs = claim_jobs(db, queue_name=queue_name, limit=limit, worker_id=worker_id)
    if not jobs:
        return 0
    processed = 0
    for job in jobs:
        created_at = _normalize_dt(job.created_at)
        if created_at:
            wait_seconds = max(0.0, (_normalize_dt(utcnow()) - created_at).total_seconds())
            record_queue_wait(queue_name, job.job_type, wait_seconds)

        start = monotonic()
        handler = get_job_handler(job.job_type)
        if handler is None:
            reschedule_job(db, job, error_message="no_handler_registered")
            record_queue_job(queue_name, job.job_type, status="failed")
            processed += 1
            continue

        try:
            handler(db, job.payload_json or {})
        except Exception as exc:
            logger.exception("Queue job failed: %s", exc)
            db.rollback()
            reschedule_job(db, job, error_message=str(exc))
            record_queue_job(queue_name, job.job_type, status="failed")
            record_job_run(job_name=job.job_type, success=False)
            processed += 1
            continue

        mark_job_success(db, job)
        record_queue_job(queue_name, job.job_type, status="success")
        record_job_run(job_name=job.job_type, success=True)
        record_queue_runtime(queue_name, job.job_type, monotonic() - start)
        processed += 1
    return processed


def run_queue_group_once(
    db: Session,
    *,
    queue_names: Iterable[str],
    worker_id: str,
    limit: int,
) -> int:
    total = 0
    for queue_name in queue_names:
        total += run_queue_once(db, queue_name=queue_name, worker_id=worker_id, limit=limit)
    return total


def drain_queues(db: Session, *, worker_id: str = "inline", max_rounds: int = 1000) -> int:
    """Run jobs until every queue is empty, including jobs enqueued on the way."""
    total = 0
    for _ in range(max_rounds):
        processed = run_queue_group_once(db, queue_names=QUEUE_ORDER, worker_id=worker_id, limit=10)
        if processed == 0:
            break
        total += processed
    return total


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run queue worker.")
    parser.add_argument("--queue", choices=sorted(QUEUE_NAMES) + ["all"], default="all")
    parser.add_argument("--once", action="store_true", help="Run once and exit.")
    parser.add_argument("--limit", type=int, default=10)
    parser.add_argument("--poll-interval", type=float, default=None)
    parser.add_argument("--worker-id", type=str, default="worker-1")
    return parser.parse_args()


def main() -> None:
    args = _parse_args()
    configure_root_logging()
    poll_interval = (
        float(args.poll_interval)
        if args.poll_interval is not None
        else float(settings.JOB_QUEUE_POLL_INTERVAL_SECONDS)
    )
    register_default_handlers()
    queue_names = QUEUE_ORDER if args.queue == "all" else [args.queue]

    while True:
        with SessionLocal() as db:
            processed = run_queue_group_once(
                db,
                queue_names=queue_names,
                worker_id=args.worker_id,
                limit=args.limit,
            )
        if args.once:
            break
        if processed == 0:
            sleep(max(0.1, poll_interval))


if __name__ == "__main__":
    main()
