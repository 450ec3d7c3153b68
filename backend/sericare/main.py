"""
SeriCare Backend — FastAPI Application Factory
===============================================

What:  Creates and configures the FastAPI application instance.
How:   create_app() assembles middleware, exception handlers and routers.
Who:   uvicorn (`uvicorn sericare.main:app`) and the test suite.

Application Architecture:
    ┌──────────────────────────────────────────────────────────┐
    │                      FastAPI App                         │
    │                                                          │
    │  Middleware: Request ID → Access Log → Rate Limit        │
    │              → GZip → CORS                               │
    │                                                          │
    │  Routes:                                                 │
    │   /auth/signup  /auth/login  /auth/me                    │
    │   /upload  /upload/history  /upload/stats                │
    │   /uploads/{file}  /health  /                            │
    │                                                          │
    │  Exception Handlers:                                     │
    │   SeriCareError → its status_code                        │
    │   RequestValidationError → 400   Exception → 500         │
    └──────────────────────────────────────────────────────────┘

Error body (every failure):
    {"success": false, "error": "<code>", "message": "...",
     "request_id": "a1b2c3d4", "details": {...}}     details: 400/429 only
"""

import logging
import sys
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse

from sericare import __version__
from sericare.config import settings
from sericare.database import dispose_engine
from sericare.exceptions import RateLimitExceededError, SeriCareError, ValidationError
from sericare.middleware.logging import RequestLoggingMiddleware
from sericare.middleware.rate_limit import RateLimitMiddleware
from sericare.middleware.request_id import RequestIdLogFilter, RequestIDMiddleware, request_id_var
from sericare.routes import auth, health, upload

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════════════════
# Logging Configuration
# ══════════════════════════════════════════════════════════════════════════

def setup_logging() -> None:
    """
    Configure the root logger once for the whole application.

    Format: 2026-01-15T12:00:00 [INFO] sericare.services.upload_service [a1b2c3d4] ...
    """
    handler = logging.StreamHandler(sys.stdout)
    handler.addFilter(RequestIdLogFilter())

    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s [%(request_id)s] %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        handlers=[handler],
        force=True,
    )

    # Per-request chatter from libraries
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("multipart").setLevel(logging.WARNING)


# ══════════════════════════════════════════════════════════════════════════
# Application Lifespan
# ══════════════════════════════════════════════════════════════════════════

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    setup_logging()
    logger.info("SeriCare Backend %s starting up...", __version__)

    try:
        settings.validate_required_for_production()
    except ValueError as e:
        # Keep serving: /health still answers and reports the problem in logs
        logger.warning("Configuration warning: %s", str(e))

    upload_dir = Path(settings.upload_dir)
    upload_dir.mkdir(parents=True, exist_ok=True)
    logger.info("Upload directory: %s", upload_dir.resolve())
    logger.info("Inference endpoint: %s", settings.inference_url)
    logger.info("Server ready at http://%s:%d", settings.backend_host, settings.backend_port)

    yield

    logger.info("SeriCare Backend shutting down...")
    await dispose_engine()
    logger.info("Shutdown complete.")


# ══════════════════════════════════════════════════════════════════════════
# Exception Handlers
# ══════════════════════════════════════════════════════════════════════════

def _request_id(request: Request) -> str:
    # The catch-all handler runs outside the request ID middleware's context
    return request_id_var.get() or getattr(request.state, "request_id", "")


def register_exception_handlers(app: FastAPI) -> None:
    """
    Handler hierarchy:
        SeriCareError           → exc.status_code, exc.error_code
        RequestValidationError  → 400 validation_error (field errors in details)
        Exception (fallback)    → 500 internal_error

    `context` is logged server-side; only validation and rate-limit errors
    return it to the client as `details`.
    """

    @app.exception_handler(SeriCareError)
    async def handle_sericare_error(request: Request, exc: SeriCareError):
        rid = _request_id(request)
        level = logging.ERROR if exc.status_code >= 500 else logging.WARNING
        logger.log(
            level,
            "%s %s failed: %s (%s) | Context: %s",
            request.method,
            request.url.path,
            exc.error_code,
            exc.message,
            exc.context,
        )
        headers = {}
        if isinstance(exc, RateLimitExceededError):
            headers["Retry-After"] = str(exc.retry_after)
        return JSONResponse(
            status_code=exc.status_code,
            content=jsonable_encoder(exc.to_response(rid)),
            headers=headers,
        )

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(request: Request, exc: RequestValidationError):
        # loc is (source, field, ...) e.g. ("body", "phone") or ("query", "limit")
        errors = [
            {
                "field": ".".join(str(part) for part in error["loc"][1:]),
                "message": error["msg"],
            }
            for error in exc.errors()
        ]
        first = errors[0] if errors else {"field": "", "message": "Invalid request"}
        error = ValidationError(
            message=f"{first['field']}: {first['message']}" if first["field"] else first["message"],
            field=first["field"] or None,
            context={"errors": errors},
        )
        logger.warning("%s %s rejected: %s", request.method, request.url.path, error.message)
        return JSONResponse(
            status_code=error.status_code,
            content=jsonable_encoder(error.to_response(_request_id(request))),
        )

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        rid = _request_id(request)
        logger.error("[%s] Unexpected error: %s", rid, str(exc), exc_info=True)
        return JSONResponse(
            status_code=500,
            content={
                "success": False,
                "error": "internal_error",
                "message": "An unexpected error occurred. Please try again later.",
                "request_id": rid,
            },
        )


# ══════════════════════════════════════════════════════════════════════════
# Application Factory
# ══════════════════════════════════════════════════════════════════════════

def create_app() -> FastAPI:
    app = FastAPI(
        title="SeriCare API",
        description=(
            "Silkworm disease detection for sericulture farmers. Upload a photo of "
            "a silkworm and get a healthy/diseased verdict with preventive measures."
        ),
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    # Last added runs first: RequestID → Logging → RateLimit → GZip → CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=settings.cors_origins != "*",
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID", "Retry-After"],
    )
    app.add_middleware(GZipMiddleware, minimum_size=500)
    app.add_middleware(RateLimitMiddleware)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)

    register_exception_handlers(app)

    app.include_router(auth.router)
    app.include_router(upload.router)
    app.include_router(upload.files_router)
    app.include_router(health.router)

    return app


app = create_app()
