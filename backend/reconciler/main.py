# This file bootstraps the FastAPI app, wires up the logging and metrics
# middlewares and includes the sync and metrics routers.

import os

from fastapi import APIRouter, FastAPI, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

import reconciler.models  # noqa: F401  registers every table on Base
from reconciler.api.metrics import router as metrics_router
from reconciler.api.sync import router as sync_router
from reconciler.core.db import Base, engine
from reconciler.core.logging import APILoggingMiddleware
from reconciler.core.metrics import MetricsMiddleware
from reconciler.core.versioning import API_V1_PREFIX

# Create DB tables right away for local runs; deployments apply the
# Alembic migrations instead and set SKIP_MIGRATIONS=1.
if os.getenv("SKIP_MIGRATIONS") != "1":
    Base.metadata.create_all(bind=engine)

app = FastAPI(title="Report Reconciler")

app.add_middleware(APILoggingMiddleware)
app.add_middleware(MetricsMiddleware)

api_v1 = APIRouter(prefix=API_V1_PREFIX)
for r in (sync_router, metrics_router):
    api_v1.include_router(r)
app.include_router(api_v1)


# /metrics endpoint (Prometheus scraping)
@app.get("/metrics", include_in_schema=False)
def metrics() -> Response:
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)


@app.get("/ping")
@app.get(f"{API_V1_PREFIX}/health")
def ping():
    return {"message": "pong"}
