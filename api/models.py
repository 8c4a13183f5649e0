"""
API request and response models for postkeeper REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py, which
own the internal domain representation. Route handlers map between the two.

Input validation lives here and only here: the auth core assumes an email is
already normalized, a password already meets the policy, and so on.

Separation of concerns: auth/ models = domain truth; api/ models = API contract.
"""

import re
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from auth.models import Identity, Role, SafeAccount, TokenPair

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
EMAIL_MAX_LENGTH = 254

# bcrypt reads at most 72 bytes; capping characters here keeps ASCII
# passwords fully significant.
PASSWORD_MIN_LENGTH = 8
PASSWORD_MAX_LENGTH = 72

# Issued refresh tokens are a few hundred characters; anything far longer is
# rejected before it reaches the store lookup or JWT decoding.
REFRESH_TOKEN_MAX_LENGTH = 2048


def _normalize_email(value: str) -> str:
    if not isinstance(value, str):
        raise ValueError("email must be a string")
    email = value.strip().lower()
    if len(email) > EMAIL_MAX_LENGTH:
        raise ValueError(f"email must be at most {EMAIL_MAX_LENGTH} characters")
    if not EMAIL_PATTERN.match(email):
        raise ValueError("email is not a valid address")
    return email


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class RegisterRequest(BaseModel):
    """Request body for POST /api/v1/auth/register."""

    email: str
    password: str = Field(min_length=PASSWORD_MIN_LENGTH, max_length=PASSWORD_MAX_LENGTH)
    name: str

    @field_validator("email", mode="before")
    @classmethod
    def normalize_email(cls, value: str) -> str:
        return _normalize_email(value)

    @field_validator("password")
    @classmethod
    def password_policy(cls, value: str) -> str:
        """At least one letter and one digit. Length is checked by Field()."""
        if not any(ch.isalpha() for ch in value):
            raise ValueError("password must contain at least one letter")
        if not any(ch.isdigit() for ch in value):
            raise ValueError("password must contain at least one digit")
        return value

    @field_validator("name")
    @classmethod
    def strip_name(cls, value: str) -> str:
        name = value.strip()
        if not 1 <= len(name) <= 100:
            raise ValueError("name must be 1-100 characters")
        return name


class LoginRequest(BaseModel):
    """Request body for POST /api/v1/auth/login.

    Only shape is checked here. The password policy is NOT applied on login:
    a policy failure would tell the caller something about valid passwords
    before credentials are even compared.
    """

    email: str = Field(min_length=1, max_length=EMAIL_MAX_LENGTH)
    password: str = Field(min_length=1, max_length=PASSWORD_MAX_LENGTH)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, value: str) -> str:
        return value.strip().lower()


class RefreshRequest(BaseModel):
    """Request body for POST /api/v1/auth/refresh and POST /api/v1/auth/logout."""

    refresh_token: str = Field(min_length=1, max_length=REFRESH_TOKEN_MAX_LENGTH)


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class AccountResponse(BaseModel):
    """Response for POST /api/v1/auth/register. Never includes the password hash."""

    model_config = ConfigDict(frozen=True)

    id: str
    email: str
    name: str
    role: Role
    created_at: Optional[str] = None

    @classmethod
    def from_account(cls, account: SafeAccount) -> "AccountResponse":
        return cls(
            id=account.id,
            email=account.email,
            name=account.name,
            role=account.role,
            created_at=account.created_at,
        )


class TokenPairResponse(BaseModel):
    """Response for POST /api/v1/auth/login and /auth/refresh."""

    model_config = ConfigDict(frozen=True)

    access_token: str
    refresh_token: str
    expires_in_seconds: int

    @classmethod
    def from_pair(cls, pair: TokenPair) -> "TokenPairResponse":
        return cls(
            access_token=pair.access_token,
            refresh_token=pair.refresh_token,
            expires_in_seconds=pair.expires_in_seconds,
        )


class IdentityResponse(BaseModel):
    """Response for GET /api/v1/auth/me."""

    model_config = ConfigDict(frozen=True)

    id: str
    email: str
    name: str
    role: Role

    @classmethod
    def from_identity(cls, identity: Identity) -> "IdentityResponse":
        return cls(id=identity.id, email=identity.email, name=identity.name, role=identity.role)


class SessionResponse(BaseModel):
    """Response for GET /api/v1/auth/session -- anonymous callers get authenticated=false."""

    model_config = ConfigDict(frozen=True)

    authenticated: bool
    user: Optional[IdentityResponse] = None


class MessageResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str


class RevokeResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    revoked: int


class PurgeResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    purged: int


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Union[str, dict, None] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "ok"
    version: str
    components: dict[str, str] = Field(default_factory=dict)
