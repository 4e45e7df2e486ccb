"""FastAPI application wiring for the docvault service."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Response
from fastapi.middleware.cors import CORSMiddleware
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from psycopg_pool import ConnectionPool

from .api.admin_routes import router as admin_router
from .api.errors import install_error_handlers
from .api.routes import router as public_router
from .config import get_settings
from .domain.classifier import DocumentClassifier
from .domain.reporting import LoggingReporter
from .domain.service import WorkforceService
from .repository import RecordStore
from .security.auth_gate import AuthGate
from .security.login_throttle import build_login_throttle
from .storage import LocalArtifactStore

settings = get_settings()

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialise shared resources (Postgres pool, gate, services) for the app lifecycle."""
    pool = ConnectionPool(
        settings.database_url,
        min_size=settings.db_pool_min_size,
        max_size=settings.db_pool_max_size,
        kwargs={"options": f"-c statement_timeout={settings.db_statement_timeout_ms}"},
        open=False,
    )
    pool.open()
    store = RecordStore(pool)
    if settings.auto_migrate:
        store.ensure_schema()

    reporter = LoggingReporter()
    classifier = DocumentClassifier(settings.classifier_mode)
    logger.info("document classifier running in %s mode", classifier.mode.value)

    app.state.pool = pool
    app.state.auth_gate = AuthGate(settings, reporter)
    app.state.workforce_service = WorkforceService(
        settings,
        store,
        classifier,
        LocalArtifactStore(settings.artifact_root),
        build_login_throttle(settings),
        reporter,
    )
    try:
        yield
    finally:
        pool.close()


app = FastAPI(title=settings.app_name, version=settings.version, lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=list(settings.cors_origins),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    max_age=600,
)

install_error_handlers(app)


@app.get("/healthz", tags=["health"])
def healthz() -> dict[str, str]:
    """Return a minimal readiness indicator used by orchestration systems."""
    return {"status": "ok"}


@app.get("/metrics", include_in_schema=False)
def metrics() -> Response:
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


app.include_router(public_router)
app.include_router(admin_router)
