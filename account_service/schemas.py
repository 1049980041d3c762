"""Pydantic schemas for request/response validation and serialization."""

from typing import Annotated, Literal
from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from datetime import datetime
from .config import settings


# ==================== Error Schemas ====================

class ErrorCode:
    """Centralized error codes for API responses."""
    VALIDATION_ERROR = "VALIDATION_ERROR"
    DUPLICATE_EMAIL = "DUPLICATE_EMAIL"
    INVALID_CREDENTIALS = "INVALID_CREDENTIALS"
    ACCOUNT_BLOCKED = "ACCOUNT_BLOCKED"
    INVALID_TOKEN = "INVALID_TOKEN"
    UNAUTHENTICATED = "UNAUTHENTICATED"
    BATCH_SIZE_EXCEEDED = "BATCH_SIZE_EXCEEDED"
    OPERATION_FAILED = "OPERATION_FAILED"


def _not_blank(value: str, field: str) -> str:
    if not value.strip():
        raise ValueError(f"{field} cannot be empty or only whitespace")
    return value


# Ids outside a signed 64-bit column can never match a row
UserId = Annotated[int, Field(ge=1, le=2**63 - 1)]


# ==================== User Schemas ====================

class UserOut(BaseModel):
    """User output schema. Never carries the password hash or verification token."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    email: str
    status: str
    registered_at: datetime
    last_login_at: datetime | None = None


class UserListResponse(BaseModel):
    """All users in admin ordering."""
    items: list[UserOut]
    total: int


# ==================== Authentication Schemas ====================

class UserRegister(BaseModel):
    """Schema for user registration with password."""
    name: str = Field(..., min_length=1, max_length=settings.USER_NAME_MAX_LENGTH, description="User's display name")
    email: EmailStr = Field(..., max_length=settings.USER_EMAIL_MAX_LENGTH, description="User's email address")
    password: str = Field(..., min_length=1, description="User's password")

    @field_validator('name')
    @classmethod
    def validate_name(cls, v: str) -> str:
        """Validate name is a single non-blank line."""
        if "\r" in v or "\n" in v:
            raise ValueError("Name cannot contain line breaks")
        return _not_blank(v, "Name").strip()

    @field_validator('password')
    @classmethod
    def validate_password(cls, v: str) -> str:
        """Validate password is present and fits bcrypt's input limit."""
        _not_blank(v, "Password")
        if len(v.encode("utf-8")) > settings.PASSWORD_MAX_BYTES:
            raise ValueError(f"Password must be at most {settings.PASSWORD_MAX_BYTES} bytes long")
        return v


class UserLogin(BaseModel):
    """Schema for user login credentials."""
    email: str = Field(..., min_length=1, max_length=settings.USER_EMAIL_MAX_LENGTH, description="User's email address")
    password: str = Field(..., min_length=1, description="User's password")

    @field_validator('email', 'password')
    @classmethod
    def validate_present(cls, v: str, info) -> str:
        return _not_blank(v, info.field_name.capitalize())


class RegistrationResponse(BaseModel):
    """Outcome of a successful registration."""
    id: int
    message: str


class LoginResponse(BaseModel):
    """Outcome of a successful login; the session cookie travels in headers."""
    message: str
    user: UserOut


class MessageResponse(BaseModel):
    message: str


# ==================== Admin Action Schemas ====================

class UserSelection(BaseModel):
    """Ids picked in the admin table for a bulk action."""
    ids: list[UserId] = Field(default_factory=list)


class AdminActionResponse(BaseModel):
    """Result of a bulk admin action.

    outcome is "info" when nothing needed doing and "success" otherwise;
    signed_out is set when the acting user locked themselves out.
    """
    count: int
    message: str
    outcome: Literal["success", "info"] = "success"
    signed_out: bool = False
