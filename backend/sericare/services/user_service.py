"""
SeriCare Backend — User Service (Accounts)
===========================================

What:  Signup and login for farmer and admin accounts.
Why:   The upload pipeline needs an owner identity; this is how farmers
       obtain the bearer credential that carries it.
How:   Async SQLAlchemy for the `users` table; password hashing and token
       signing are delegated to credential_service.
Who:   Called by the /auth routes.

Signup Flow:
    1. Reject if the email or phone is already registered (409)
    2. Hash the password (bcrypt)
    3. Insert and commit; a unique-constraint race still maps to 409
    4. Issue a bearer token

Login Flow:
    1. Look the account up by email or phone
    2. Verify the password; unknown account and wrong password both return
       the same "Invalid credentials" (401) so accounts cannot be probed
    3. Stamp last_login, issue a bearer token
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from sericare.exceptions import ConflictError, PersistenceError, UnauthenticatedError
from sericare.models.user import User
from sericare.schemas.auth import AuthData, LoginRequest, SignupRequest, UserOut
from sericare.services.credential_service import hash_password, issue_token, verify_password

logger = logging.getLogger(__name__)


class UserService:
    """Account operations. Stateless; the session is passed in per call."""

    async def signup(self, db: AsyncSession, request: SignupRequest) -> AuthData:
        existing = await db.execute(
            select(User).where(or_(User.email == request.email, User.phone == request.phone))
        )
        match = existing.scalars().first()
        if match is not None:
            field = "email" if match.email == request.email else "phone"
            logger.info("Signup rejected: %s already registered", field)
            message = (
                "User with this email already exists"
                if field == "email"
                else "User with this phone number already exists"
            )
            raise ConflictError(message=message, context={"field": field})

        user = User(
            name=request.name,
            email=request.email,
            phone=request.phone,
            password_hash=await hash_password(request.password),
            role=request.role,
            village=request.village,
            language=request.language,
        )

        try:
            db.add(user)
            await db.commit()
        except IntegrityError:
            await db.rollback()
            raise ConflictError(message="User already exists with this email or phone")
        except SQLAlchemyError as e:
            await db.rollback()
            logger.error("Failed to create user: %s", str(e))
            raise PersistenceError(context={"error_type": type(e).__name__})

        logger.info("User registered: %s (role=%s)", user.id, user.role)
        return AuthData(token=issue_token(user), user=UserOut.model_validate(user))

    async def login(self, db: AsyncSession, request: LoginRequest) -> AuthData:
        if request.email:
            query = select(User).where(User.email == request.email)
        else:
            query = select(User).where(User.phone == request.phone)

        user: Optional[User] = (await db.execute(query)).scalars().first()
        if user is None or not await verify_password(request.password, user.password_hash):
            logger.info("Login failed for %s", "email" if request.email else "phone")
            raise UnauthenticatedError(message="Invalid credentials")

        user.last_login = datetime.now(timezone.utc)
        try:
            await db.commit()
        except SQLAlchemyError as e:
            await db.rollback()
            logger.error("Failed to record login for %s: %s", user.id, str(e))
            raise PersistenceError(context={"error_type": type(e).__name__})

        logger.info("User logged in: %s", user.id)
        return AuthData(token=issue_token(user), user=UserOut.model_validate(user))


user_service = UserService()
