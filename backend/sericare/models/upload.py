"""
SeriCare Backend — Upload SQLAlchemy Model
===========================================

What:  ORM model representing the `uploads` table: one row per accepted
       silkworm image submission.
Why:   Persists the classifier verdict next to the stored file's metadata so
       a farmer can review their history and statistics.
Who:   Written by upload_store.create(); read by list_by_owner() and
       aggregate_stats().

Row Invariants:
    - owner_id never changes after insert
    - disease_info is non-NULL exactly when label = 'diseased'
    - 0 <= confidence <= 1 (also enforced by a CHECK constraint)
    - stored_file_name is UNIQUE; no two records share an image file
    - rows are inserted once and never updated

Index on (owner_id, created_at):
    Serves the history query "this owner's uploads, newest first".
"""

import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from sqlalchemy import (
    JSON,
    CheckConstraint,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Uuid,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from sericare.database import Base

LABELS = ("healthy", "diseased")


class Upload(Base):
    """A classified silkworm image owned by one user."""

    __tablename__ = "uploads"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )

    owner_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        comment="Identity whose bearer credential created this record",
    )

    # ── Stored File ───────────────────────────────────────────────────────
    stored_file_name: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    storage_path: Mapped[str] = mapped_column(String(1024), nullable=False)
    image_url: Mapped[str] = mapped_column(String(300), nullable=False)
    image_size_bytes: Mapped[int] = mapped_column(Integer, nullable=False)
    mime_type: Mapped[str] = mapped_column(String(100), nullable=False)

    # ── Classification ────────────────────────────────────────────────────
    label: Mapped[str] = mapped_column(String(20), nullable=False)
    confidence: Mapped[float] = mapped_column(Float, nullable=False)

    # none_as_null: an omitted mapping is SQL NULL, not the JSON literal null
    probabilities: Mapped[Optional[Dict[str, float]]] = mapped_column(
        JSON(none_as_null=True),
        nullable=True,
    )

    # {"name": str, "preventiveMeasures": [str, ...]}
    disease_info: Mapped[Optional[Dict[str, Any]]] = mapped_column(
        JSON(none_as_null=True),
        nullable=True,
    )

    # ── Farmer Annotations ────────────────────────────────────────────────
    notes: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    latitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    longitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    village: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        server_default=text("CURRENT_TIMESTAMP"),
    )

    __table_args__ = (
        CheckConstraint("confidence >= 0 AND confidence <= 1", name="ck_uploads_confidence_range"),
        CheckConstraint("label IN ('healthy', 'diseased')", name="ck_uploads_label"),
        Index("idx_uploads_owner_created_at", "owner_id", "created_at"),
    )

    @property
    def disease_name(self) -> Optional[str]:
        return self.disease_info["name"] if self.disease_info else None

    @property
    def preventive_measures(self) -> list:
        return list(self.disease_info["preventiveMeasures"]) if self.disease_info else []

    def __repr__(self) -> str:
        return (
            f"<Upload(id={self.id}, owner_id={self.owner_id}, label='{self.label}', "
            f"confidence={self.confidence})>"
        )
