"""
SeriCare Backend — Health Check and Service Info Routes
========================================================

What:  GET /health for monitoring probes, GET / listing the API.

Status levels:
    healthy:   database and classifier reachable                (HTTP 200)
    degraded:  database up, classifier down; uploads will 503   (HTTP 200)
    unhealthy: database unreachable                             (HTTP 503)
"""

import logging
import time

from fastapi import APIRouter, Depends, Response
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from sericare import __version__
from sericare.database import engine
from sericare.schemas.common import HealthResponse
from sericare.services.upload_service import UploadService, get_upload_service

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])

_start_time = time.time()


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Service health check",
)
async def health_check(
    response: Response,
    service: UploadService = Depends(get_upload_service),
) -> HealthResponse:
    db_status = "connected"
    classifier_status = "available"
    overall = "healthy"

    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except (SQLAlchemyError, OSError) as e:
        db_status = "disconnected"
        overall = "unhealthy"
        logger.warning("Health check: database unreachable: %s", str(e))

    if not await service.classifier.health_check():
        classifier_status = "unavailable"
        if overall == "healthy":
            overall = "degraded"

    if overall == "unhealthy":
        response.status_code = 503

    return HealthResponse(
        status=overall,
        version=__version__,
        database=db_status,
        classifier=classifier_status,
        uptime_seconds=round(time.time() - _start_time, 2),
    )


@router.get("/", summary="Service info")
async def root() -> dict:
    return {
        "success": True,
        "message": "SeriCare Backend API",
        "data": {
            "version": __version__,
            "endpoints": {
                "auth": {
                    "signup": "POST /auth/signup",
                    "login": "POST /auth/login",
                    "me": "GET /auth/me (requires auth token)",
                },
                "upload": {
                    "predict": "POST /upload (requires auth token)",
                    "history": "GET /upload/history (requires auth token)",
                    "stats": "GET /upload/stats (requires auth token)",
                },
                "health": "GET /health",
            },
        },
    }
