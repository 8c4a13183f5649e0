"""
api/routes/v1/auth.py -- Account and session REST endpoints.

Routes:
  POST /api/v1/auth/register                     -- create account (public)
  POST /api/v1/auth/login                        -- email/password -> token pair (public)
  POST /api/v1/auth/refresh                      -- rotate refresh token -> new pair (public)
  POST /api/v1/auth/logout                       -- revoke one refresh token (requires auth)
  GET  /api/v1/auth/me                           -- current identity (requires auth)
  GET  /api/v1/auth/session                      -- identity if any, never 401 (optional auth)
  POST /api/v1/auth/users/{user_id}/revoke-tokens -- logout everywhere (owner or admin)
  POST /api/v1/auth/admin/purge-tokens           -- run the cleanup sweep now (admin only)

Security:
  [H2] register, login and refresh are rate-limited per IP (AUTH_RATE_LIMIT).
  [C1] Login failures are generic; the service handles timing equalization.
  [M5] Cache-Control: no-store on every response that carries tokens.

Handlers are sync def on purpose: bcrypt and SQLite calls block, so Starlette
runs them in its threadpool instead of on the event loop.

Every failure is an AuthError raised by the service or the guard; the handler
in api/main.py maps it to a status code. No route builds an error response.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Request, Response

from api.limiter import auth_rate_limit, limiter
from api.models import (
    AccountResponse,
    IdentityResponse,
    LoginRequest,
    MessageResponse,
    PurgeResponse,
    RefreshRequest,
    RegisterRequest,
    RevokeResponse,
    SessionResponse,
    TokenPairResponse,
)
from auth.dependencies import AccessGuard, get_current_user, require_admin, try_get_current_user
from auth.models import Identity, Role
from auth.service import AuthService

router = APIRouter()


def _service(request: Request) -> AuthService:
    return request.app.state.auth_service


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@router.post("/auth/register", status_code=201, response_model=AccountResponse)
@limiter.limit(auth_rate_limit)  # [H2] must be BELOW @router so the route registers the limited wrapper
def register(request: Request, body: RegisterRequest) -> AccountResponse:
    """Create an account with role "user". 409 if the email is already registered."""
    account = _service(request).register(body.email, body.password, body.name)
    return AccountResponse.from_account(account)


@router.post("/auth/login", response_model=TokenPairResponse)
@limiter.limit(auth_rate_limit)  # [H2]
def login(request: Request, response: Response, body: LoginRequest) -> TokenPairResponse:
    """Exchange email and password for an access/refresh pair.

    Wrong password and unknown email both answer 401 "Invalid email or password."
    """
    pair = _service(request).login(body.email, body.password)
    response.headers["Cache-Control"] = "no-store"  # [M5]
    return TokenPairResponse.from_pair(pair)


@router.post("/auth/refresh", response_model=TokenPairResponse)
@limiter.limit(auth_rate_limit)  # [H2]
def refresh(request: Request, response: Response, body: RefreshRequest) -> TokenPairResponse:
    """Rotate a refresh token. The presented token is revoked; reusing it answers 401."""
    pair = _service(request).refresh(body.refresh_token)
    response.headers["Cache-Control"] = "no-store"  # [M5]
    return TokenPairResponse.from_pair(pair)


@router.get("/auth/session", response_model=SessionResponse)
def session(identity: Optional[Identity] = Depends(try_get_current_user)) -> SessionResponse:
    """Report who the caller is, if anyone. Never fails on a bad or missing token."""
    if identity is None:
        return SessionResponse(authenticated=False)
    return SessionResponse(authenticated=True, user=IdentityResponse.from_identity(identity))


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.post("/auth/logout", response_model=MessageResponse)
def logout(
    request: Request,
    body: RefreshRequest,
    identity: Identity = Depends(get_current_user),
) -> MessageResponse:
    """Revoke the given refresh token. Idempotent: unknown or revoked tokens still answer 200."""
    result = _service(request).logout(body.refresh_token, identity.id)
    return MessageResponse(**result)


@router.get("/auth/me", response_model=IdentityResponse)
def me(identity: Identity = Depends(get_current_user)) -> IdentityResponse:
    """Return identity information for the currently authenticated account."""
    return IdentityResponse.from_identity(identity)


@router.post("/auth/users/{user_id}/revoke-tokens", response_model=RevokeResponse)
def revoke_tokens(
    request: Request,
    user_id: str,
    identity: Identity = Depends(get_current_user),
) -> RevokeResponse:
    """Revoke every active refresh token of an account. Owner or admin only."""
    AccessGuard.require_owner_or_roles(identity, user_id, Role.admin)
    return RevokeResponse(revoked=_service(request).revoke_all_tokens(user_id))


@router.post("/auth/admin/purge-tokens", response_model=PurgeResponse)
def purge_tokens(request: Request, identity: Identity = Depends(require_admin)) -> PurgeResponse:
    """Delete revoked and expired refresh-token rows now instead of waiting for the sweep."""
    return PurgeResponse(purged=_service(request).purge_tokens())
