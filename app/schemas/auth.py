"""Pydantic v2 schemas for accounts: registration, tokens and profiles."""

import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

PHONE_PATTERN = r"^\+?[1-9]\d{0,15}$"

# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------


class _EmailMixin(BaseModel):
    email: EmailStr

    @field_validator("email")
    @classmethod
    def normalise_email(cls, value: str) -> str:
        """Emails are matched case-insensitively, so store them lower-case."""
        return value.strip().lower()


class RegisterRequest(_EmailMixin):
    password: str = Field(..., min_length=8, max_length=128)
    name: str = Field(..., min_length=2, max_length=255)
    phone: str | None = Field(None, pattern=PHONE_PATTERN)


class LoginRequest(_EmailMixin):
    password: str


class RefreshRequest(BaseModel):
    refresh_token: str


class ProfileUpdate(BaseModel):
    """Editable profile fields. Omitted fields are left unchanged."""

    name: str | None = Field(None, min_length=2, max_length=255)
    phone: str | None = Field(None, pattern=PHONE_PATTERN)
    bio: str | None = Field(None, max_length=500)
    location: str | None = Field(None, max_length=255)
    avatar_url: str | None = Field(None, max_length=512)


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------


class TokenResponse(BaseModel):
    """JWT pair; the access token also carries the account role."""

    access_token: str
    refresh_token: str
    token_type: str = "bearer"


class UserResponse(BaseModel):
    """The signed-in user's own account, including contact details."""

    id: uuid.UUID
    email: str
    name: str
    phone: str | None = None
    bio: str | None = None
    location: str | None = None
    avatar_url: str | None = None
    is_active: bool
    role: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class PublicProfileResponse(BaseModel):
    """What other marketplace users may see; no contact details."""

    id: uuid.UUID
    name: str
    bio: str | None = None
    location: str | None = None
    avatar_url: str | None = None
    member_since: datetime
    active_listings: int
    completed_stays: int


class AuthResponse(BaseModel):
    user: UserResponse
    tokens: TokenResponse
