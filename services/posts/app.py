"""Posts service FastAPI application.

`create_app` wires settings, database, blob store and service together,
attaches tracing, metrics and CORS middleware, installs the error envelope
handlers and includes the post routes.

Run locally:
    uvicorn --factory services.posts.app:create_app --reload --port 8000
"""

import asyncio
import logging
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from packages.common.config import Settings, load_settings
from packages.common.db import Database
from packages.common.errors import StorageUnavailable, register_error_handlers
from packages.common.logging import configure_logging
from packages.common.storage import BlobStore, build_blob_store
from packages.common.tracing import trace_middleware
from . import metrics
from .routes import router as posts_router
from .service import PostService

log = logging.getLogger(__name__)


async def _metrics_middleware(request: Request, call_next) -> Response:
    t0 = time.perf_counter()
    response = await call_next(request)
    route = request.scope.get("route")
    path = getattr(route, "path", "unmatched")
    metrics.request_seconds.labels(method=request.method, route=path).observe(time.perf_counter() - t0)
    return response


def create_app(
    settings: Settings | None = None,
    *,
    database: Database | None = None,
    blob_store: BlobStore | None = None,
) -> FastAPI:
    """Build the Posts API.

    Args:
        settings: Process settings; loaded from the environment when omitted.
        database: Pre-built database handle (tests inject SQLite here).
        blob_store: Pre-built blob store (tests inject an in-memory store).

    Returns:
        A configured FastAPI application.
    """
    settings = settings or load_settings()
    configure_logging(settings.LOG_LEVEL, service=settings.SERVICE_NAME)
    database = database or Database.from_settings(settings)
    blob_store = blob_store or build_blob_store(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if settings.DB_AUTO_CREATE:
            await database.init_schema()
        await asyncio.to_thread(blob_store.ensure_ready)
        log.info("%s ready (env=%s)", settings.SERVICE_NAME, settings.ENV)
        yield
        await database.dispose()

    app = FastAPI(title="Postboard Posts Service", version="1.0.0", lifespan=lifespan)
    app.state.settings = settings
    app.state.database = database
    app.state.blob_store = blob_store
    app.state.post_service = PostService(database, blob_store, settings.MAX_IMAGE_BYTES)

    app.middleware("http")(_metrics_middleware)
    app.middleware("http")(trace_middleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "X-Request-ID"],
        expose_headers=["X-Request-ID"],
    )
    register_error_handlers(app)
    app.include_router(posts_router)

    @app.get("/healthz", tags=["infra"])
    def healthz() -> dict[str, str]:
        return {"status": "ok", "env": settings.ENV}

    @app.get("/readyz", tags=["infra"])
    async def readyz() -> JSONResponse:
        checks: dict[str, str] = {}
        try:
            await database.ping()
            checks["database"] = "ok"
        except StorageUnavailable as e:
            log.warning("readiness: database unavailable: %s", e.detail)
            checks["database"] = "unavailable"
        try:
            await asyncio.to_thread(blob_store.ping)
            checks["blob_store"] = "ok"
        except StorageUnavailable as e:
            log.warning("readiness: blob store unavailable: %s", e.detail)
            checks["blob_store"] = "unavailable"
        ok = all(v == "ok" for v in checks.values())
        return JSONResponse(
            {"status": "ok" if ok else "degraded", "services": checks},
            status_code=200 if ok else 503,
        )

    @app.get("/metrics", tags=["infra"])
    def prometheus_metrics() -> PlainTextResponse:
        data = generate_latest()
        return PlainTextResponse(data.decode("utf-8"), media_type=CONTENT_TYPE_LATEST)

    return app
