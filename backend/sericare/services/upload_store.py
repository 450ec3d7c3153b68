"""
SeriCare Backend — Upload Record Store
=======================================

What:  Persistence for upload records: atomic creation, owner-scoped history
       with pagination, and per-label statistics.
Why:   Keeps SQL out of the orchestrator and the routes; every read is
       filtered by owner, so one farmer never sees another's uploads.
How:   Async SQLAlchemy against the `uploads` table.
Who:   create() is called by UploadService; list_by_owner() and
       aggregate_stats() by the /upload/history and /upload/stats routes.

Atomicity:
    create() adds the row and commits in the same call. When it returns, the
    record is durable; when it raises PersistenceError, the transaction has
    been rolled back and no row exists. The orchestrator relies on this to
    decide whether the stored image file is kept.

Ordering:
    History is ordered created_at DESC, id DESC. The id tie-breaker makes
    repeated reads return identical sequences even when two uploads share a
    timestamp. The same pair is the history cursor, so cursor paging neither
    skips nor repeats rows that share a timestamp.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Tuple

from sqlalchemy import and_, desc, func, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from sericare.exceptions import PersistenceError, ValidationError
from sericare.models.upload import Upload
from sericare.schemas.upload import (
    LabelStats,
    Prediction,
    UploadHistoryPage,
    UploadRecordOut,
    UploadStats,
)
from sericare.services.disease_service import DiseaseProfile
from sericare.services.file_service import StoredFile

logger = logging.getLogger(__name__)

CURSOR_SEPARATOR = "|"


def encode_cursor(upload: Upload) -> str:
    """Position of `upload` in history order: '<created_at ISO>|<id>'."""
    return f"{upload.created_at.isoformat()}{CURSOR_SEPARATOR}{upload.id}"


def decode_cursor(cursor: str) -> Tuple[datetime, Optional[uuid.UUID]]:
    """
    Split a history cursor into its timestamp and id.

    A bare ISO timestamp is accepted and yields no id.
    Raises ValueError when either part does not parse.
    """
    raw_time, separator, raw_id = cursor.partition(CURSOR_SEPARATOR)
    created_at = datetime.fromisoformat(raw_time)
    upload_id = uuid.UUID(raw_id) if separator else None
    return created_at, upload_id


@dataclass(frozen=True)
class UploadAnnotations:
    """Optional farmer-supplied context sent alongside the image."""

    notes: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    village: Optional[str] = None


def to_record_out(upload: Upload) -> UploadRecordOut:
    """Build the history representation of an Upload row."""
    location = None
    if upload.latitude is not None or upload.longitude is not None or upload.village:
        location = {
            "latitude": upload.latitude,
            "longitude": upload.longitude,
            "village": upload.village,
        }
    return UploadRecordOut(
        id=upload.id,
        image_url=upload.image_url,
        filename=upload.stored_file_name,
        label=upload.label,
        confidence=upload.confidence,
        probabilities=upload.probabilities,
        disease_info=(
            {"name": upload.disease_name, "preventive_measures": upload.preventive_measures}
            if upload.disease_info
            else None
        ),
        image_size=upload.image_size_bytes,
        mime_type=upload.mime_type,
        notes=upload.notes,
        location=location,
        timestamp=upload.created_at,
    )


class UploadStore:
    """
    Owner-scoped access to upload records.

    Stateless; the session is passed in per call.
    """

    async def create(
        self,
        db: AsyncSession,
        owner_id: uuid.UUID,
        stored: StoredFile,
        prediction: Prediction,
        disease: Optional[DiseaseProfile],
        annotations: Optional[UploadAnnotations] = None,
    ) -> Upload:
        """
        Insert and commit one upload record.

        Raises:
            ValueError: disease info does not match the label (programming error).
            PersistenceError: the insert or commit failed; nothing was written.
        """
        if (disease is not None) != prediction.is_diseased:
            raise ValueError("disease info must be present exactly when the label is 'diseased'")

        annotations = annotations or UploadAnnotations()
        upload = Upload(
            owner_id=owner_id,
            stored_file_name=stored.file_name,
            storage_path=stored.path,
            image_url=stored.url,
            image_size_bytes=stored.size,
            mime_type=stored.mime_type,
            label=prediction.label,
            confidence=prediction.confidence,
            probabilities=prediction.probabilities,
            disease_info=disease.to_record() if disease else None,
            notes=annotations.notes,
            latitude=annotations.latitude,
            longitude=annotations.longitude,
            village=annotations.village,
        )

        try:
            db.add(upload)
            await db.commit()
        except SQLAlchemyError as e:
            logger.error("Failed to persist upload for owner %s: %s", owner_id, str(e))
            await db.rollback()
            raise PersistenceError(
                message="Could not save the upload. Please try again.",
                context={"owner_id": str(owner_id), "error_type": type(e).__name__},
            )

        logger.info("Upload record created: %s (owner=%s, label=%s)", upload.id, owner_id, upload.label)
        return upload

    async def list_by_owner(
        self,
        db: AsyncSession,
        owner_id: uuid.UUID,
        limit: int = 20,
        offset: int = 0,
        cursor: Optional[str] = None,
    ) -> UploadHistoryPage:
        """
        Page through an owner's uploads, most recent first.

        Paging:
            cursor given → records after the cursor position in (created_at, id) order
            otherwise    → skip `offset` records
            One extra row is fetched to compute has_more without a second scan.

        Raises:
            ValidationError: cursor is not a cursor returned by a previous page.
            PersistenceError: the query failed.
        """
        query = select(Upload).where(Upload.owner_id == owner_id)

        if cursor:
            try:
                cursor_dt, cursor_id = decode_cursor(cursor)
            except ValueError:
                raise ValidationError(
                    message="Invalid pagination cursor",
                    field="cursor",
                    context={"cursor": cursor},
                )
            if cursor_id is None:
                query = query.where(Upload.created_at < cursor_dt)
            else:
                query = query.where(
                    or_(
                        Upload.created_at < cursor_dt,
                        and_(Upload.created_at == cursor_dt, Upload.id < cursor_id),
                    )
                )
        elif offset:
            query = query.offset(offset)

        query = query.order_by(desc(Upload.created_at), desc(Upload.id)).limit(limit + 1)
        count_query = select(func.count(Upload.id)).where(Upload.owner_id == owner_id)

        try:
            result = await db.execute(query)
            uploads = list(result.scalars().all())
            total_count = (await db.execute(count_query)).scalar() or 0
        except SQLAlchemyError as e:
            logger.error("Database error listing uploads for %s: %s", owner_id, str(e), exc_info=True)
            raise PersistenceError(
                message="Failed to fetch history. Please try again.",
                context={"error_type": type(e).__name__},
            )

        has_more = len(uploads) > limit
        if has_more:
            uploads = uploads[:limit]

        next_cursor = None
        if has_more and uploads:
            next_cursor = encode_cursor(uploads[-1])

        return UploadHistoryPage(
            uploads=[to_record_out(upload) for upload in uploads],
            total_count=total_count,
            next_cursor=next_cursor,
            has_more=has_more,
        )

    async def aggregate_stats(self, db: AsyncSession, owner_id: uuid.UUID) -> UploadStats:
        """
        Count and average confidence per label for one owner.

        Query plan:
            SELECT label, COUNT(id), AVG(confidence) FROM uploads
            WHERE owner_id = :owner GROUP BY label
        """
        query = (
            select(Upload.label, func.count(Upload.id), func.avg(Upload.confidence))
            .where(Upload.owner_id == owner_id)
            .group_by(Upload.label)
        )
        try:
            rows = (await db.execute(query)).all()
        except SQLAlchemyError as e:
            logger.error("Database error aggregating stats for %s: %s", owner_id, str(e))
            raise PersistenceError(
                message="Failed to compute statistics. Please try again.",
                context={"error_type": type(e).__name__},
            )

        stats = {
            label: LabelStats(count=count, avg_confidence=round(float(avg or 0.0), 4))
            for label, count, avg in rows
        }
        return UploadStats(stats=stats, total=sum(s.count for s in stats.values()))


upload_store = UploadStore()
