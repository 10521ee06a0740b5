# Centralized Prometheus metrics. Sync jobs bump these as they process
# days and reports, and the middleware below records request timing so
# dashboards can track both the workers and the API.

from time import monotonic

from fastapi import Request
from prometheus_client import Counter, Gauge, Histogram
from starlette.middleware.base import BaseHTTPMiddleware

REQUEST_DURATION_MS = Histogram(
    "request_duration_ms",
    "API request duration in milliseconds",
    ["method", "route"],
    buckets=[5, 10, 25, 50, 100, 250, 500, 1000, 2000, 5000, 10000],
)
REQUESTS_TOTAL = Counter(
    "requests_total",
    "Total API requests",
    ["method", "route", "status_code"],
)

# Per-day outcome of a platform sync: synced, skipped (report delay or
# no sales) or failed.
SYNC_DAYS_TOTAL = Counter(
    "reconciler_sync_days_total",
    "Days processed by platform sync jobs",
    ["platform", "outcome"],
)
REVENUE_EVENTS_TOTAL = Counter(
    "reconciler_revenue_events_total",
    "Revenue events seen during ingestion",
    ["platform", "outcome"],  # stored|duplicate|orphan|enriched
)
SNAPSHOT_UPSERT_TOTAL = Counter(
    "reconciler_snapshot_upserts_total",
    "Metrics snapshot writes",
    ["platform", "action"],  # created|updated
)
SNAPSHOT_DUPLICATES_REMOVED_TOTAL = Counter(
    "reconciler_snapshot_duplicates_removed_total",
    "Duplicate snapshot rows deleted during upsert",
    ["platform"],
)
REPORT_PARSE_FAILURES_TOTAL = Counter(
    "reconciler_report_parse_failures_total",
    "Reports that could not be recognized",
    ["platform", "report_kind"],
)
BACKFILL_CHUNKS_TOTAL = Counter(
    "reconciler_backfill_chunks_total",
    "Backfill chunks by final state",
    ["platform", "status"],  # processed|cancelled
)

JOB_RUN_TOTAL = Counter(
    "job_run_total",
    "Scheduled job runs",
    ["job_name", "status"],
)
QUEUE_DEPTH = Gauge(
    "queue_depth",
    "Queued jobs waiting to run",
    ["queue"],
)
QUEUE_JOB_TOTAL = Counter(
    "queue_job_total",
    "Processed queue jobs",
    ["queue", "job_type", "status"],
)
QUEUE_RETRY_TOTAL = Counter(
    "queue_retry_total",
    "Queue job retries",
    ["queue", "job_type"],
)
QUEUE_WAIT_SECONDS = Histogram(
    "queue_wait_seconds",
    "Time jobs waited before being claimed",
    ["queue", "job_type"],
    buckets=[0.5, 1, 5, 15, 30, 60, 300, 900, 3600],
)
QUEUE_RUN_SECONDS = Histogram(
    "queue_run_seconds",
    "Job handler runtime",
    ["queue", "job_type"],
    buckets=[0.1, 0.5, 1, 5, 15, 30, 60, 300, 600],
)


class MetricsMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        start = monotonic()
        response = await call_next(request)
        duration_ms = (monotonic() - start) * 1000.0

        route = request.scope.get("route")
        route_path = getattr(route, "path", None) or request.url.path
        REQUEST_DURATION_MS.labels(request.method, route_path).observe(duration_ms)
        REQUESTS_TOTAL.labels(request.method, route_path, str(response.status_code)).inc()
        return response


def _label(value: object | None, default: str = "unknown") -> str:
    if value is None:
        return default
    if isinstance(value, str) and not value.strip():
        return default
    return str(value)


def record_sync_day(platform: str, outcome: str) -> None:
    SYNC_DAYS_TOTAL.labels(platform=_label(platform), outcome=_label(outcome)).inc()


def record_revenue_events(platform: str, outcome: str, count: int = 1) -> None:
    if count <= 0:
        return
    REVENUE_EVENTS_TOTAL.labels(platform=_label(platform), outcome=_label(outcome)).inc(count)


def record_snapshot_upsert(platform: str, *, created: bool, duplicates_removed: int = 0) -> None:
    SNAPSHOT_UPSERT_TOTAL.labels(
        platform=_label(platform),
        action="created" if created else "updated",
    ).inc()
    if duplicates_removed:
        SNAPSHOT_DUPLICATES_REMOVED_TOTAL.labels(platform=_label(platform)).inc(duplicates_removed)


def record_parse_failure(platform: str, report_kind: str) -> None:
    REPORT_PARSE_FAILURES_TOTAL.labels(
        platform=_label(platform),
        report_kind=_label(report_kind),
    ).inc()


def record_backfill_chunk(platform: str, status: str) -> None:
    BACKFILL_CHUNKS_TOTAL.labels(platform=_label(platform), status=_label(status)).inc()


def record_job_run(*, job_name: str, success: bool) -> None:
    JOB_RUN_TOTAL.labels(
        job_name=_label(job_name),
        status="success" if success else "failure",
    ).inc()


def record_queue_depth(queue_name: str, depth: int) -> None:
    QUEUE_DEPTH.labels(queue=_label(queue_name)).set(depth)


def record_queue_job(queue_name: str, job_type: str, *, status: str) -> None:
    QUEUE_JOB_TOTAL.labels(
        queue=_label(queue_name),
        job_type=_label(job_type),
        status=_label(status),
    ).inc()


def record_queue_retry(queue_name: str, job_type: str) -> None:
    QUEUE_RETRY_TOTAL.labels(
        queue=_label(queue_name),
        job_type=_label(job_type),
    ).inc()


def record_queue_wait(queue_name: str, job_type: str, seconds: float) -> None:
    QUEUE_WAIT_SECONDS.labels(
        queue=_label(queue_name),
        job_type=_label(job_type),
    ).observe(seconds)


def record_queue_runtime(queue_name: str, job_type: str, seconds: float) -> None:
    QUEUE_RUN_SECONDS.labels(
        queue=_label(queue_name),
        job_type=_label(job_type),
    ).observe(seconds)
