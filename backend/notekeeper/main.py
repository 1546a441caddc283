"""
NoteKeeper Backend: FastAPI Application Factory
=================================================

What:  Creates and configures the FastAPI application instance.
How:   create_app() builds the long-lived collaborators (tag generator,
       attachment store, quota limits) onto app.state, registers middleware,
       exception handlers and routers. The lifespan handles logging setup,
       storage preparation, optional seeding and shutdown.
Who:   uvicorn notekeeper.main:app

Application Architecture:
    ┌─────────────────────────────────────────────────────┐
    │                   FastAPI App                       │
    │                                                     │
    │  Middleware:  Request ID → Logging → GZip → CORS    │
    │                                                     │
    │  Routes:      /notes   /notes/{id}/attachments      │
    │               /health                               │
    │                                                     │
    │  Exception Handlers:                                │
    │    ValidationError → 400    QuotaExceeded → 403     │
    │    NotFound        → 404    StorageError  → 500     │
    └─────────────────────────────────────────────────────┘

Lifecycle:
    Startup:
    1. Configure logging (request ID on every record)
    2. Report missing completion credentials (server still starts)
    3. Create the storage root
    4. Apply the seed fixture, if configured
    Shutdown:
    1. Close the completion client
    2. Dispose the database engine
"""

import logging
import sys
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse

from notekeeper import __version__
from notekeeper.config import settings
from notekeeper.database import async_session_factory, create_schema, dispose_engine, engine
from notekeeper.exceptions import (
    NoteKeeperError,
    NotFoundError,
    QuotaExceededError,
    StorageError,
    ValidationError,
)
from notekeeper.middleware.logging import RequestLoggingMiddleware
from notekeeper.middleware.request_id import (
    REQUEST_ID_HEADER,
    RequestIDLogFilter,
    RequestIDMiddleware,
    request_id_var,
)
from notekeeper.routes import attachments, health, notes
from notekeeper.services.attachment_store import AttachmentStore
from notekeeper.services.note_repository import NoteRepository
from notekeeper.services.note_service import NoteService, QuotaLimits
from notekeeper.services.seed import run_seed
from notekeeper.services.tag_service import TagGenerator, build_completion_service

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════════════════
# Logging Configuration
# ══════════════════════════════════════════════════════════════════════════

def setup_logging() -> None:
    """
    Configure the root logger once at startup.

    Format: 2025-01-15T12:00:00 [INFO] notekeeper.services.tag_service [a1b2c3d4] ...
    """
    handler = logging.StreamHandler(sys.stdout)
    handler.addFilter(RequestIDLogFilter())

    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s [%(request_id)s] %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        handlers=[handler],
        force=True,
    )

    for noisy in ("uvicorn.access", "sqlalchemy.engine", "httpcore", "httpx"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


# ══════════════════════════════════════════════════════════════════════════
# Application Lifespan
# ══════════════════════════════════════════════════════════════════════════

async def seed_from_settings(app: FastAPI) -> None:
    """Apply settings.seed_file through a NoteService on its own session."""
    if not settings.seed_file:
        return
    async with async_session_factory() as session:
        service = NoteService(
            repository=NoteRepository(session),
            tag_generator=app.state.tag_generator,
            attachment_store=app.state.attachment_store,
            limits=app.state.quota_limits,
        )
        await run_seed(service, settings.seed_file, settings.seed_attachments_dir)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    setup_logging()
    logger.info("=" * 60)
    logger.info("NoteKeeper Backend %s starting up...", __version__)

    try:
        settings.validate_required_for_production()
    except ValueError as e:
        logger.error("Configuration error: %s", str(e))
        logger.error("Notes will be tagged with ErrorFetchingTags until this is fixed.")

    storage = Path(settings.storage_root)
    storage.mkdir(parents=True, exist_ok=True)
    logger.info("Storage directory: %s", storage.resolve())

    if settings.is_sqlite:
        # No migrations for local SQLite files
        await create_schema(engine)

    await seed_from_settings(app)

    logger.info("Server ready at http://%s:%d", settings.backend_host, settings.backend_port)
    logger.info("=" * 60)

    yield

    logger.info("NoteKeeper Backend shutting down...")
    await app.state.tag_generator.aclose()
    await dispose_engine()
    logger.info("Shutdown complete.")


# ══════════════════════════════════════════════════════════════════════════
# Exception Handlers
# ══════════════════════════════════════════════════════════════════════════

def error_body(error: str, message: str, details=None) -> dict:
    body = {"error": error, "message": message, "request_id": request_id_var.get("")}
    if details:
        body["details"] = details
    return body


def register_exception_handlers(app: FastAPI) -> None:
    """
    Map exception types to status codes and the shared error body.

    Handler hierarchy:
        RequestValidationError  → 400 (malformed JSON, bad UUID, missing field)
        ValidationError         → 400
        QuotaExceededError      → 403 (limit in message and details)
        NotFoundError           → 404
        StorageError            → 500 (generic message, context logged)
        NoteKeeperError (base)  → 500
        Exception (fallback)    → 500
    """

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(request: Request, exc: RequestValidationError):
        errors = [
            {"loc": list(err.get("loc", [])), "msg": err.get("msg", "")}
            for err in exc.errors()
        ]
        logger.warning("Request validation failed: %s", errors)
        return JSONResponse(
            status_code=400,
            content=error_body("validation_error", "The request is invalid.", {"errors": errors}),
        )

    @app.exception_handler(ValidationError)
    async def handle_validation_error(request: Request, exc: ValidationError):
        logger.warning("Validation error: %s", exc.message)
        return JSONResponse(
            status_code=400,
            content=error_body("validation_error", exc.message, exc.context),
        )

    @app.exception_handler(QuotaExceededError)
    async def handle_quota_exceeded(request: Request, exc: QuotaExceededError):
        logger.warning("Quota exceeded: %s", exc.message)
        return JSONResponse(
            status_code=403,
            content=error_body("quota_exceeded", exc.message, exc.context),
        )

    @app.exception_handler(NotFoundError)
    async def handle_not_found(request: Request, exc: NotFoundError):
        return JSONResponse(
            status_code=404,
            content=error_body("not_found", exc.message),
        )

    @app.exception_handler(StorageError)
    async def handle_storage_error(request: Request, exc: StorageError):
        logger.error("Storage error: %s | Context: %s", exc.message, exc.context)
        return JSONResponse(
            status_code=500,
            content=error_body("server_error", "An internal error occurred. Please try again later."),
        )

    @app.exception_handler(NoteKeeperError)
    async def handle_notekeeper_error(request: Request, exc: NoteKeeperError):
        logger.error("Unhandled application error: %s | Context: %s", exc.message, exc.context)
        return JSONResponse(
            status_code=500,
            content=error_body("server_error", "An internal error occurred. Please try again later."),
        )

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        logger.error("Unexpected error: %s", str(exc), exc_info=True)
        return JSONResponse(
            status_code=500,
            content=error_body(
                "internal_server_error",
                "An unexpected error occurred. Please try again or contact support.",
            ),
        )


# ══════════════════════════════════════════════════════════════════════════
# Application Factory
# ══════════════════════════════════════════════════════════════════════════

def create_app() -> FastAPI:
    app = FastAPI(
        title="NoteKeeper API",
        description=(
            "Short text notes with machine-generated tags and per-note file attachments."
        ),
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    limits = QuotaLimits.from_settings(settings)
    app.state.quota_limits = limits
    app.state.tag_generator = TagGenerator(build_completion_service(settings))
    app.state.attachment_store = AttachmentStore(
        storage_root=settings.storage_root,
        max_attachments=limits.max_attachments,
        max_attachment_size=settings.max_attachment_size,
    )

    # Middleware executes in reverse order of addition
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=[REQUEST_ID_HEADER, "Location"],
    )
    app.add_middleware(GZipMiddleware, minimum_size=500)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)

    register_exception_handlers(app)

    app.include_router(notes.router)
    app.include_router(attachments.router)
    app.include_router(health.router)

    return app


app = create_app()
