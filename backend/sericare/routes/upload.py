"""
SeriCare Backend — Upload Routes
=================================

What:  POST /upload (analyze a silkworm image), the owner's history and
       statistics, and serving stored images.
Who:   Called by the mobile app's capture and history screens.

Request Flow (POST /upload):
    1. get_current_user resolves the bearer token (401/404 before anything
       is read from the body)
    2. The multipart `image` part is read into memory; size is bounded by
       FileService validation
    3. UploadService.submit() runs intake → classify → enrich → persist
    4. 201 with the {success, message, data} envelope

The `image` field is optional at the FastAPI level so a request without it
reaches FileService and gets the "No image file provided" 400 instead of
a framework 422.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile
from fastapi.responses import FileResponse
from sqlalchemy.ext.asyncio import AsyncSession

from sericare.database import get_db_session
from sericare.models.user import User
from sericare.routes.auth import get_current_user
from sericare.schemas.common import Envelope, ErrorResponse
from sericare.schemas.upload import UploadHistoryPage, UploadResult, UploadStats
from sericare.services.file_service import IncomingImage
from sericare.services.upload_service import UploadService, get_upload_service
from sericare.services.upload_store import UploadAnnotations, upload_store

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/upload", tags=["Upload"])
files_router = APIRouter(tags=["Files"])


@router.post(
    "",
    status_code=201,
    response_model=Envelope[UploadResult],
    responses={
        400: {"description": "Missing, non-image or oversized file", "model": ErrorResponse},
        401: {"description": "Missing or invalid token", "model": ErrorResponse},
        500: {"description": "Classification or storage failed", "model": ErrorResponse},
        503: {"description": "AI service unavailable", "model": ErrorResponse},
    },
    summary="Upload a silkworm image for disease analysis",
)
async def upload_image(
    image: Optional[UploadFile] = File(default=None, description="Silkworm image (image/*, max 10MB)"),
    notes: Optional[str] = Form(default=None, max_length=500),
    latitude: Optional[float] = Form(default=None, ge=-90, le=90),
    longitude: Optional[float] = Form(default=None, ge=-180, le=180),
    village: Optional[str] = Form(default=None, max_length=100),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
    service: UploadService = Depends(get_upload_service),
) -> Envelope[UploadResult]:
    incoming = None
    if image is not None:
        try:
            content = await image.read()
        finally:
            await image.close()
        incoming = IncomingImage(
            filename=image.filename,
            content_type=image.content_type,
            content=content,
            declared_size=image.size,
        )
        logger.info(
            "Received upload from %s: filename=%s, size=%d bytes",
            current_user.id,
            image.filename or "unknown",
            len(content),
        )

    annotations = UploadAnnotations(
        notes=notes,
        latitude=latitude,
        longitude=longitude,
        village=village,
    )
    result = await service.submit(db, current_user, incoming, annotations)
    return Envelope(message="Image uploaded & analyzed", data=result)


@router.get(
    "/history",
    response_model=Envelope[UploadHistoryPage],
    responses={
        400: {"description": "Invalid cursor", "model": ErrorResponse},
        401: {"description": "Missing or invalid token", "model": ErrorResponse},
    },
    summary="The caller's uploads, most recent first",
)
async def upload_history(
    limit: int = Query(default=20, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    cursor: Optional[str] = Query(
        default=None,
        description="nextCursor from the previous page; takes precedence over offset",
    ),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> Envelope[UploadHistoryPage]:
    page = await upload_store.list_by_owner(
        db,
        owner_id=current_user.id,
        limit=limit,
        offset=offset,
        cursor=cursor,
    )
    return Envelope(message="History retrieved", data=page)


@router.get(
    "/stats",
    response_model=Envelope[UploadStats],
    responses={401: {"description": "Missing or invalid token", "model": ErrorResponse}},
    summary="Count and average confidence per label for the caller",
)
async def upload_stats(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> Envelope[UploadStats]:
    stats = await upload_store.aggregate_stats(db, current_user.id)
    return Envelope(message="Statistics retrieved", data=stats)


@files_router.get(
    "/uploads/{file_name}",
    summary="Serve a stored image",
    responses={
        200: {"description": "Image file"},
        400: {"description": "Invalid file name", "model": ErrorResponse},
        404: {"description": "File not found", "model": ErrorResponse},
    },
)
async def serve_upload(
    file_name: str,
    service: UploadService = Depends(get_upload_service),
) -> FileResponse:
    # Stored names are never reused, so the file behind a URL never changes
    path = service.files.resolve(file_name)
    return FileResponse(path=str(path), headers={"Cache-Control": "public, max-age=86400"})
