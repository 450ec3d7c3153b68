"""
SeriCare Backend — User SQLAlchemy Model
=========================================

What:  ORM model representing the `users` table (farmer and admin accounts).
Why:   Bearer credentials resolve to a row here; upload records reference it
       as their owner.
Who:   Used by user_service (signup/login/me), credential_service (subject
       lookup) and Alembic.

Table Design Rationale:
    - email and phone are both unique: signup captures both, login accepts
      either one as the account key
    - password_hash holds a bcrypt hash, never the password
    - role and language are short enum-like strings validated at the API layer
"""

import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from sqlalchemy import DateTime, String, Uuid, text
from sqlalchemy.orm import Mapped, mapped_column

from sericare.database import Base

ROLES = ("farmer", "admin")
LANGUAGES = ("english", "hindi", "kannada", "tamil", "telugu", "malayalam")


class User(Base):
    """
    A registered SeriCare account.

    Only `id` matters to the upload pipeline: it is the ownership key of
    every upload record created under this account's bearer credential.
    """

    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
        comment="Opaque identity key; embedded as `sub` in bearer tokens",
    )

    name: Mapped[str] = mapped_column(String(100), nullable=False)

    # Stored lower-cased; uniqueness is therefore case-insensitive
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True, index=True)

    phone: Mapped[str] = mapped_column(String(10), nullable=False, unique=True, index=True)

    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)

    role: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="farmer",
        server_default=text("'farmer'"),
    )

    village: Mapped[str] = mapped_column(String(100), nullable=False, default="")

    language: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="english",
        server_default=text("'english'"),
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        server_default=text("CURRENT_TIMESTAMP"),
    )

    last_login: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    def to_public_dict(self) -> Dict[str, Any]:
        """Account fields safe to return to the client (no password hash)."""
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "role": self.role,
            "village": self.village,
            "language": self.language,
            "created_at": self.created_at,
            "last_login": self.last_login,
        }

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email='{self.email}', role='{self.role}')>"
