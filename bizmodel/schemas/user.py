# bizmodel/schemas/user.py
from datetime import datetime
from typing import Any, Literal

from pydantic import EmailStr, Field, field_validator

from bizmodel.core.identity import UserRefField
from bizmodel.core.security import check_password_strength
from bizmodel.schemas.base import CamelModel, RequestModel


def _normalize_name(v: str | None) -> str | None:
    if v is None:
        return v
    v = v.strip()
    if not v:
        raise ValueError("name cannot be empty")
    return v


class SignupRequest(RequestModel):
    """
    Payload for signup.

    Validation rules:
      - email must be a valid EmailStr (stored lower-cased)
      - password: >= 8 chars with upper, lower and digit
      - name cannot be empty or whitespace
    """

    email: EmailStr
    password: str = Field(max_length=128)
    name: str = Field(max_length=100)
    quiz_data: dict[str, Any] | None = None

    @field_validator("email")
    @classmethod
    def lower_email(cls, v: str) -> str:
        return v.strip().lower()

    @field_validator("password")
    @classmethod
    def strong_password(cls, v: str) -> str:
        return check_password_strength(v)

    @field_validator("name")
    @classmethod
    def normalize_name(cls, v: str) -> str:
        return _normalize_name(v)


class StagedUserRead(CamelModel):
    """A signup that exists only until its first payment completes."""

    id: UserRefField
    email: EmailStr
    name: str | None = None
    is_temporary: Literal[True] = True
    expires_at: datetime


class LoginRequest(RequestModel):
    email: EmailStr
    password: str

    @field_validator("email")
    @classmethod
    def lower_email(cls, v: str) -> str:
        return v.strip().lower()


class UserRead(CamelModel):
    """Durable user returned to clients (never includes the hash)."""

    id: int
    email: EmailStr
    name: str | None = None
    is_unsubscribed: bool
    is_paid: bool = False
    is_temporary: Literal[False] = False
    created_at: datetime


class ProfileUpdate(RequestModel):
    """Partial update for profile edits; email is not editable."""

    name: str | None = Field(default=None, max_length=100)
    is_unsubscribed: bool | None = None

    @field_validator("name")
    @classmethod
    def normalize_name(cls, v: str | None) -> str | None:
        return _normalize_name(v)


class ChangePasswordRequest(RequestModel):
    current_password: str
    new_password: str = Field(max_length=128)

    @field_validator("new_password")
    @classmethod
    def strong_password(cls, v: str) -> str:
        return check_password_strength(v)


class ForgotPasswordRequest(RequestModel):
    email: EmailStr


class ResetPasswordRequest(RequestModel):
    token: str = Field(min_length=1)
    password: str = Field(max_length=128)

    @field_validator("password")
    @classmethod
    def strong_password(cls, v: str) -> str:
        return check_password_strength(v)


class UnsubscribeRequest(RequestModel):
    email: EmailStr


class TokenValidity(CamelModel):
    valid: bool
