"""
Newsroom Workflow Engine
========================
Editorial content lifecycle: stages, slot assignments, translation forks,
derived work queues and an audit trail that never diverges from state.

Built with: FastAPI + SQLAlchemy (async) + PostgreSQL + Redis
"""

import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from app.api.envelope import error_envelope, workflow_error_envelope
from app.core.config import get_settings
from app.core.correlation import (
    bind_request_context,
    clear_request_context,
    new_correlation_id,
    new_request_id,
)
from app.core.database import async_session, engine, init_db
from app.core.errors import Unavailable, WorkflowError
from app.core.logging import get_logger, setup_logging
from app.schemas import HealthResponse
from app.services.cache_service import cache_service

# Import routers
from app.api.routes.audit import router as audit_router
from app.api.routes.auth import router as auth_router
from app.api.routes.stories import router as stories_router
from app.api.routes.translations import router as translations_router
from app.api.routes.work_queue import router as work_queue_router

settings = get_settings()
logger = get_logger("main")

APP_VERSION = "1.0.0"

# Track uptime
_start_time = time.time()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup & shutdown lifecycle."""
    # ── Startup ──
    setup_logging(debug=settings.app_debug)
    logger.info("app_starting", app=settings.app_name, env=settings.app_env)

    await init_db()
    logger.info("database_initialized")

    await cache_service.connect()

    logger.info("app_ready", port=settings.app_port)

    yield

    # ── Shutdown ──
    await cache_service.disconnect()
    await engine.dispose()
    logger.info("app_stopped")


app = FastAPI(
    title=settings.app_name,
    description=(
        "Editorial workflow engine: stage machine, role policy, assignments, "
        "translation forks, work queues and audit log."
    ),
    version=APP_VERSION,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# ── CORS Middleware ──

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ── Request Logging Middleware ──

@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log all incoming requests with timing."""
    request_id = request.headers.get("x-request-id") or new_request_id()
    correlation_id = request.headers.get("x-correlation-id") or new_correlation_id()
    bind_request_context(request_id, correlation_id)

    start = time.time()
    response = None
    try:
        response = await call_next(request)
        return response
    finally:
        elapsed = round((time.time() - start) * 1000, 2)
        if response is not None:
            response.headers["x-request-id"] = request_id
            response.headers["x-correlation-id"] = correlation_id
            status_code = response.status_code
        else:
            status_code = 500

        if request.url.path not in ["/health", "/docs", "/redoc", "/openapi.json"]:
            logger.info(
                "http_request",
                method=request.method,
                path=request.url.path,
                status=status_code,
                elapsed_ms=elapsed,
            )

        clear_request_context()


# ── Exception Handlers ──

@app.exception_handler(WorkflowError)
async def workflow_exception_handler(request: Request, exc: WorkflowError):
    log = logger.error if isinstance(exc, Unavailable) else logger.warning
    log(
        "workflow_error",
        path=request.url.path,
        code=exc.code,
        status_code=exc.status_code,
        reason=exc.message,
    )
    return workflow_error_envelope(exc, path=request.url.path)


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    logger.warning(
        "http_exception",
        path=request.url.path,
        status_code=exc.status_code,
        detail=str(exc.detail),
    )
    return error_envelope(
        code="http_error",
        message="Request failed",
        status_code=exc.status_code,
        details=exc.detail,
        meta={"path": request.url.path},
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    logger.warning("validation_error", path=request.url.path, errors=exc.errors())
    return error_envelope(
        code="validation_error",
        message="Validation failed",
        status_code=422,
        details=exc.errors(),
        meta={"path": request.url.path},
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(
        "unhandled_exception",
        path=request.url.path,
        error=str(exc),
        error_type=type(exc).__name__,
    )
    return error_envelope(
        code="internal_error",
        message="Internal server error",
        status_code=500,
        meta={"path": request.url.path},
    )


# ── Register Routers ──

app.include_router(auth_router, prefix="/api/v1")
app.include_router(stories_router, prefix="/api/v1")
app.include_router(translations_router, prefix="/api/v1")
app.include_router(work_queue_router, prefix="/api/v1")
app.include_router(audit_router, prefix="/api/v1")


# ── Health Check ──

@app.get("/health", response_model=HealthResponse, tags=["System"])
async def health_check():
    """System health check endpoint."""
    uptime = round(time.time() - _start_time, 2)
    redis_status = "connected" if cache_service.connected else "disconnected"

    database_status = "connected"
    try:
        async with async_session() as db:
            await db.execute(text("SELECT 1"))
    except SQLAlchemyError as exc:
        logger.warning("health_database_unreachable", error=str(exc))
        database_status = "disconnected"

    return HealthResponse(
        status="ok" if database_status == "connected" else "degraded",
        version=APP_VERSION,
        database=database_status,
        redis=redis_status,
        uptime_seconds=uptime,
    )
