"""
SeriCare Backend — Identity Routes
===================================

What:  Signup, login, and the authenticated-identity dependency used by every
       protected route.
Who:   Called by the mobile app before any upload.

Protected routes declare `current_user: User = Depends(get_current_user)`.
The dependency reads the raw Authorization header (no FastAPI security
scheme), so a missing header reaches verify_credential and produces the
same 401 body as every other credential failure.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession

from sericare.database import get_db_session
from sericare.models.user import User
from sericare.schemas.auth import AuthData, LoginRequest, MeData, SignupRequest, UserOut
from sericare.schemas.common import Envelope, ErrorResponse
from sericare.services.credential_service import verify_credential
from sericare.services.user_service import user_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["Auth"])


async def get_current_user(
    authorization: Optional[str] = Header(default=None, alias="Authorization"),
    db: AsyncSession = Depends(get_db_session),
) -> User:
    """
    Resolve the bearer credential to its account.

    Raises:
        UnauthenticatedError (401): missing, malformed, invalid or expired token
        NotFoundError (404): the token's subject no longer exists
    """
    check = await verify_credential(db, authorization)
    if not check.ok:
        logger.info("Credential rejected: %s", check.failure.value)
    return check.raise_for_failure()


@router.post(
    "/signup",
    status_code=201,
    response_model=Envelope[AuthData],
    responses={
        400: {"description": "Invalid signup fields", "model": ErrorResponse},
        409: {"description": "Email or phone already registered", "model": ErrorResponse},
    },
    summary="Register a farmer or admin account",
)
async def signup(
    request: SignupRequest,
    db: AsyncSession = Depends(get_db_session),
) -> Envelope[AuthData]:
    data = await user_service.signup(db, request)
    return Envelope(message="User registered successfully", data=data)


@router.post(
    "/login",
    response_model=Envelope[AuthData],
    responses={
        400: {"description": "Neither or both of email and phone given", "model": ErrorResponse},
        401: {"description": "Invalid credentials", "model": ErrorResponse},
    },
    summary="Log in with email or phone and password",
)
async def login(
    request: LoginRequest,
    db: AsyncSession = Depends(get_db_session),
) -> Envelope[AuthData]:
    data = await user_service.login(db, request)
    return Envelope(message="Login successful", data=data)


@router.get(
    "/me",
    response_model=Envelope[MeData],
    responses={
        401: {"description": "Missing or invalid token", "model": ErrorResponse},
        404: {"description": "Account no longer exists", "model": ErrorResponse},
    },
    summary="The account behind the bearer token",
)
async def me(current_user: User = Depends(get_current_user)) -> Envelope[MeData]:
    return Envelope(message="User retrieved", data=MeData(user=UserOut.model_validate(current_user)))
