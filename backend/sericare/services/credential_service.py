"""
SeriCare Backend — Credential Service (Bearer Token Issue & Verification)
==========================================================================

What:  Issues signed bearer tokens, hashes passwords, and verifies the
       Authorization header of protected requests.
Why:   Every protected operation needs the caller's identity as its owner
       context; this module is the only place that knows how tokens look.
How:   HS256 JWTs via python-jose, bcrypt for password hashes.

Verification returns a tagged result instead of raising:

    check_credential(raw_header)        → CredentialCheck (pure, no I/O)
    verify_credential(db, raw_header)   → CredentialCheck (+ subject lookup)

    CredentialCheck.identity  set on success
    CredentialCheck.failure   one of CredentialFailure otherwise

`raise_for_failure()` is the single place where a failure kind becomes an
exception (and therefore an HTTP status):

    missing / malformed / invalid / expired  → UnauthenticatedError (401)
    unknown_subject                          → NotFoundError (404)
"""

import asyncio
import enum
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

import bcrypt
from jose import ExpiredSignatureError, JWTError, jwt
from sqlalchemy.ext.asyncio import AsyncSession

from sericare.config import settings
from sericare.exceptions import NotFoundError, UnauthenticatedError
from sericare.models.user import User

logger = logging.getLogger(__name__)

BEARER_SCHEME = "bearer"


class CredentialFailure(str, enum.Enum):
    MISSING = "missing"
    MALFORMED = "malformed"
    INVALID = "invalid"
    EXPIRED = "expired"
    UNKNOWN_SUBJECT = "unknown_subject"


_FAILURE_MESSAGES = {
    CredentialFailure.MISSING: "No token provided",
    CredentialFailure.MALFORMED: "Invalid token format. Expected 'Bearer <token>'",
    CredentialFailure.INVALID: "Token invalid",
    CredentialFailure.EXPIRED: "Token expired. Please log in again",
}


@dataclass(frozen=True)
class CredentialCheck:
    """
    Tagged outcome of credential verification.

    Exactly one of (`subject` and optionally `identity`) or `failure` is set.
    `subject` is the user id decoded from the token; `identity` is the User
    row, filled in by verify_credential().
    """

    subject: Optional[uuid.UUID] = None
    identity: Optional[User] = None
    failure: Optional[CredentialFailure] = None

    @property
    def ok(self) -> bool:
        return self.failure is None

    @classmethod
    def failed(cls, failure: CredentialFailure) -> "CredentialCheck":
        return cls(failure=failure)

    def raise_for_failure(self) -> User:
        """
        Return the resolved identity, or raise the exception mapped to the
        failure kind.
        """
        if self.failure is CredentialFailure.UNKNOWN_SUBJECT:
            raise NotFoundError(resource="user", resource_id=str(self.subject))
        if self.failure is not None:
            raise UnauthenticatedError(
                message=_FAILURE_MESSAGES[self.failure],
                context={"credential_failure": self.failure.value},
            )
        if self.identity is None:
            raise RuntimeError("raise_for_failure() called before the subject was resolved")
        return self.identity


# ══════════════════════════════════════════════════════════════════════════
# Token Issue
# ══════════════════════════════════════════════════════════════════════════

def issue_token(user: User, now: Optional[datetime] = None) -> str:
    """
    Sign a bearer token for `user`.

    Claims: sub (user id), email, role, iat, exp (now + jwt_expire_days).
    """
    issued_at = now or datetime.now(timezone.utc)
    claims = {
        "sub": str(user.id),
        "email": user.email,
        "role": user.role,
        "iat": int(issued_at.timestamp()),
        "exp": int((issued_at + timedelta(days=settings.jwt_expire_days)).timestamp()),
    }
    return jwt.encode(claims, settings.jwt_secret, algorithm=settings.jwt_algorithm)


# ══════════════════════════════════════════════════════════════════════════
# Verification
# ══════════════════════════════════════════════════════════════════════════

def check_credential(raw_header: Optional[str]) -> CredentialCheck:
    """
    Validate the Authorization header value without touching the database.

    Steps:
        1. A value must be present                → else MISSING
        2. It must be exactly "<scheme> <token>"
           with scheme Bearer (any case)          → else MALFORMED
        3. Signature and exp must verify          → else INVALID / EXPIRED
        4. `sub` must be a UUID                   → else INVALID
    """
    if raw_header is None or not raw_header.strip():
        return CredentialCheck.failed(CredentialFailure.MISSING)

    parts = raw_header.split()
    if len(parts) != 2 or parts[0].lower() != BEARER_SCHEME:
        return CredentialCheck.failed(CredentialFailure.MALFORMED)

    try:
        claims = jwt.decode(
            parts[1],
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
        )
    except ExpiredSignatureError:
        return CredentialCheck.failed(CredentialFailure.EXPIRED)
    except JWTError as e:
        logger.debug("Bearer token rejected: %s", str(e))
        return CredentialCheck.failed(CredentialFailure.INVALID)

    try:
        subject = uuid.UUID(str(claims.get("sub")))
    except ValueError:
        return CredentialCheck.failed(CredentialFailure.INVALID)

    return CredentialCheck(subject=subject)


async def verify_credential(db: AsyncSession, raw_header: Optional[str]) -> CredentialCheck:
    """
    Full verification: header checks, then resolve the subject to a User.

    Read-only. A token whose subject was deleted yields UNKNOWN_SUBJECT.
    """
    check = check_credential(raw_header)
    if not check.ok:
        return check

    user = await db.get(User, check.subject)
    if user is None:
        logger.info("Bearer token subject %s no longer exists", check.subject)
        return CredentialCheck(subject=check.subject, failure=CredentialFailure.UNKNOWN_SUBJECT)

    return CredentialCheck(subject=check.subject, identity=user)


# ══════════════════════════════════════════════════════════════════════════
# Password Hashing
# ══════════════════════════════════════════════════════════════════════════
# bcrypt is CPU-bound (tens of ms at 10 rounds); run it off the event loop.

async def hash_password(password: str) -> str:
    salt = bcrypt.gensalt(rounds=settings.bcrypt_rounds)
    hashed = await asyncio.to_thread(bcrypt.hashpw, password.encode("utf-8"), salt)
    return hashed.decode("utf-8")


async def verify_password(password: str, password_hash: str) -> bool:
    return await asyncio.to_thread(
        bcrypt.checkpw,
        password.encode("utf-8"),
        password_hash.encode("utf-8"),
    )
