"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Dataclasses own domain
shape; stores and the service do the work.

Account carries the password hash and therefore never leaves auth/. Anything
handed to a caller outside the package is a SafeAccount (registration result)
or an Identity (request-time principal), both of which drop the hash.

Layer rule: no imports from api/.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class Role(str, Enum):
    user = "user"
    admin = "admin"


@dataclass
class Account:
    """A registered account. email is stored lower-cased and stripped."""

    id: str
    email: str
    password_hash: str
    name: str
    role: Role = Role.user
    created_at: str | None = None

    def to_safe(self) -> SafeAccount:
        return SafeAccount(
            id=self.id,
            email=self.email,
            name=self.name,
            role=self.role,
            created_at=self.created_at,
        )

    def to_identity(self) -> Identity:
        return Identity(id=self.id, email=self.email, name=self.name, role=self.role)


@dataclass(frozen=True)
class SafeAccount:
    """Account without its password hash -- the result of register()."""

    id: str
    email: str
    name: str
    role: Role
    created_at: str | None = None


@dataclass(frozen=True)
class Identity:
    """The principal resolved from a verified access token."""

    id: str
    email: str
    name: str
    role: Role


@dataclass
class RefreshTokenRecord:
    """Server-side record of one issued refresh token.

    token holds the full encoded JWT, not just its jti. The row is the lookup
    key for revocation, so a token whose signature is still valid but whose
    row is revoked, expired, or purged is rejected by the store check alone.

    revoked only ever moves 0 -> 1. Expiry is never written as a state; it is
    derived by comparing expires_at with the current time.
    """

    id: str
    user_id: str
    token: str
    expires_at: str
    revoked: bool = False
    created_at: str | None = None


@dataclass(frozen=True)
class TokenPair:
    """Result of login() and refresh()."""

    access_token: str
    refresh_token: str
    expires_in_seconds: int
