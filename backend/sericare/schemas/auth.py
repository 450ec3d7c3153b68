"""
SeriCare Backend — Identity Request/Response Schemas
=====================================================

What:  Pydantic models for POST /auth/signup, POST /auth/login, GET /auth/me.
Why:   Field rules (lengths, phone format, role/language choices) are checked
       before any service code runs; failures become 400 validation_error.
"""

import uuid
from datetime import datetime
from typing import Literal, Optional

from pydantic import AliasChoices, BaseModel, Field, field_validator, model_validator

from sericare.schemas.common import CamelModel

EMAIL_PATTERN = r"^[\w.+-]+@[\w-]+(\.[\w-]+)*\.[A-Za-z]{2,}$"
PHONE_PATTERN = r"^[0-9]{10}$"

Role = Literal["farmer", "admin"]
Language = Literal["english", "hindi", "kannada", "tamil", "telugu", "malayalam"]


class SignupRequest(BaseModel):
    """
    Body of POST /auth/signup.

    Password upper bound is 72 bytes of input: bcrypt ignores (or rejects)
    anything longer.
    """

    name: str = Field(min_length=2, max_length=100)
    email: str = Field(pattern=EMAIL_PATTERN, max_length=255)
    phone: str = Field(pattern=PHONE_PATTERN)
    password: str = Field(min_length=6, max_length=72)
    role: Role = Field(default="farmer")
    village: str = Field(default="", max_length=100)
    language: Language = Field(default="english")

    @field_validator("name", "village")
    @classmethod
    def strip_whitespace(cls, v: str) -> str:
        return v.strip()

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        return v.strip().lower()


class LoginRequest(BaseModel):
    """
    Body of POST /auth/login.

    The account key is either `email` or `phone`; `mobile` is accepted as an
    alias of `phone`. Exactly one of them must be given.
    """

    email: Optional[str] = Field(default=None, max_length=255)
    phone: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("phone", "mobile"),
        pattern=PHONE_PATTERN,
    )
    password: str = Field(min_length=1, max_length=72)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: Optional[str]) -> Optional[str]:
        return v.strip().lower() if v else v

    @model_validator(mode="after")
    def exactly_one_identifier(self) -> "LoginRequest":
        if bool(self.email) == bool(self.phone):
            raise ValueError("Provide either email or phone (mobile), not both")
        return self


class UserOut(CamelModel):
    """Public view of an account; never carries the password hash."""

    id: uuid.UUID
    name: str
    email: str
    phone: str
    role: str
    village: str
    language: str
    created_at: Optional[datetime] = None
    last_login: Optional[datetime] = None


class AuthData(BaseModel):
    """`data` of signup and login: the bearer credential and the account."""

    token: str
    user: UserOut


class MeData(BaseModel):
    user: UserOut
