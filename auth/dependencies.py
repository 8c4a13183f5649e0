"""
auth/dependencies.py -- Request authentication and role/ownership guards.

AccessGuard turns an Authorization header into an Identity:

  1. Parse "Bearer <token>" -- exactly two space-separated parts, scheme
     "Bearer" (case-sensitive). Anything else is unauthenticated.
  2. TokenCodec.verify(token, expected_type="access") -- a refresh token is
     never accepted here, even with a valid signature.
  3. Load the account by the token's user_id. A deleted account invalidates
     every access token it still holds.

Each step yields an optional value, so try_authenticate() is a plain chain of
None checks. authenticate() is the hard variant and raises AuthError(unauthorized).
No exception is raised and then swallowed to produce the soft result.

The role claim inside the token is NOT trusted for authorization -- the
Identity is built from the stored account, so a role change takes effect on
the next request.

FastAPI adapters (get_current_user, try_get_current_user, require_admin) at
the bottom resolve the guard from request.app.state.access_guard, which the
lifespan in api/main.py sets.

Layer rule: may import fastapi (Request) for the adapters; no imports from api/.
"""

from __future__ import annotations

from fastapi import Request

from auth.models import Identity, Role
from auth.store import UserStore
from auth.tokens import ACCESS_TOKEN_TYPE, TokenCodec
from core.errors import AuthError


def _parse_bearer(authorization: str | None) -> str | None:
    """Return the token from an "Authorization: Bearer <token>" value, or None."""
    if not authorization:
        return None
    parts = authorization.split(" ")
    if len(parts) != 2 or parts[0] != "Bearer" or not parts[1]:
        return None
    return parts[1]


class AccessGuard:
    """Resolve and check the caller of a protected operation.

    Usage:
        guard = AccessGuard(codec, users)
        identity = guard.authenticate(request.headers.get("Authorization"))
        guard.require_owner_or_roles(identity, user_id, Role.admin)
    """

    def __init__(self, codec: TokenCodec, users: UserStore) -> None:
        self.codec = codec
        self.users = users

    def try_authenticate(self, authorization: str | None) -> Identity | None:
        """Return the caller's Identity, or None if the request is not authenticated."""
        token = _parse_bearer(authorization)
        if token is None:
            return None
        claims = self.codec.verify(token, expected_type=ACCESS_TOKEN_TYPE)
        if claims is None:
            return None
        account = self.users.get_by_id(claims["user_id"])
        if account is None:
            return None
        return account.to_identity()

    def authenticate(self, authorization: str | None) -> Identity:
        """Return the caller's Identity. Raises AuthError(unauthorized) on any failure."""
        identity = self.try_authenticate(authorization)
        if identity is None:
            raise AuthError.unauthorized()
        return identity

    @staticmethod
    def require_roles(identity: Identity, *roles: Role | str) -> Identity:
        """Raise AuthError(forbidden) unless identity.role is in roles."""
        if identity.role not in roles:
            raise AuthError.forbidden()
        return identity

    @staticmethod
    def require_owner_or_roles(identity: Identity, owner_id: str, *roles: Role | str) -> Identity:
        """Pass if the caller owns the resource or holds one of roles."""
        if identity.id == owner_id or identity.role in roles:
            return identity
        raise AuthError.forbidden()


# ---------------------------------------------------------------------------
# FastAPI Depends() adapters
# ---------------------------------------------------------------------------


def try_get_current_user(request: Request) -> Identity | None:
    """Soft variant: the Identity, or None for anonymous requests. Never raises."""
    guard: AccessGuard = request.app.state.access_guard
    return guard.try_authenticate(request.headers.get("Authorization"))


def get_current_user(request: Request) -> Identity:
    """Require authentication. AuthError(unauthorized) becomes HTTP 401 in api/main.py.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(user: Identity = Depends(get_current_user)): ...
    """
    guard: AccessGuard = request.app.state.access_guard
    return guard.authenticate(request.headers.get("Authorization"))


def require_admin(request: Request) -> Identity:
    """Require the admin role. 401 if unauthenticated, 403 if not admin."""
    identity = get_current_user(request)
    return AccessGuard.require_roles(identity, Role.admin)
