"""
auth/components.py -- Builds the auth object graph from an engine and plain options.

Both entry points (the FastAPI lifespan in api/main.py and the CLI in main.py)
go through build_components(), so the wiring of stores, codec, hasher, service
and guard exists in one place. Options arrive as keyword arguments; this
module never reads Settings itself.

Layer rule: no imports from api/.
"""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy.engine import Engine

from auth.dependencies import AccessGuard
from auth.passwords import PasswordHasher
from auth.service import AuthService
from auth.store import RefreshTokenStore, UserStore
from auth.tokens import TokenCodec


@dataclass
class AuthComponents:
    users: UserStore
    refresh_tokens: RefreshTokenStore
    codec: TokenCodec
    service: AuthService
    guard: AccessGuard


def build_components(
    engine: Engine,
    *,
    secret_key: str,
    algorithm: str = "HS256",
    access_expire_seconds: int = 3600,
    refresh_expire_seconds: int = 7 * 24 * 3600,
    bcrypt_rounds: int = 12,
) -> AuthComponents:
    codec = TokenCodec(
        secret_key=secret_key,
        algorithm=algorithm,
        access_expire_seconds=access_expire_seconds,
        refresh_expire_seconds=refresh_expire_seconds,
    )
    users = UserStore(engine)
    # Store row lifetime and JWT exp come from the same value.
    refresh_tokens = RefreshTokenStore(engine, lifetime_seconds=refresh_expire_seconds)
    service = AuthService(users, refresh_tokens, PasswordHasher(bcrypt_rounds), codec)
    return AuthComponents(
        users=users,
        refresh_tokens=refresh_tokens,
        codec=codec,
        service=service,
        guard=AccessGuard(codec, users),
    )
