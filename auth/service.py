"""
auth/service.py -- Account and session lifecycle: register, login, refresh, logout, revoke.

AuthService is the only place that combines the password hasher, the token
codec, and the two stores. It owns the cross-cutting rules:

  Enumeration resistance [C1]: login() fails with the same kind and the same
      message whether the email is unknown or the password is wrong. The
      unknown-email path still runs one bcrypt verification (dummy_verify) so
      response time does not give the answer away either.

  Two independent refresh checks: the presented token must (a) have a row in
      the refresh store that is neither revoked nor expired and (b) carry an
      intact signature, an unexpired exp, and type == "refresh". Neither check
      is allowed to stand in for the other. Replay of a rotated token is
      stopped by (a) even though its signature is still good; a row that was
      never purged is stopped by (b) once the JWT expires.

  Single-use rotation: after both checks pass, the old token is revoked with
      the store's conditional UPDATE. If that reports no change, another
      request rotated the same token first and this one fails without minting
      anything. No lock is taken here; the database does the serialization.

Failures raise AuthError with a generic message. The precise reason goes to
the auth event log (auth/events.py). Storage errors are not caught.

Layer rule: no imports from api/.
"""

from __future__ import annotations


from sqlalchemy.exc import IntegrityError

from auth.events import auth_event
from auth.models import SafeAccount, TokenPair
from auth.passwords import PasswordHasher
from auth.store import RefreshTokenStore, UserStore, normalize_email
from auth.tokens import REFRESH_TOKEN_TYPE, TokenCodec
from core.errors import AuthError


# One message for every login failure [C1]. Do not add a second one.
INVALID_CREDENTIALS = "Invalid email or password."
INVALID_REFRESH_TOKEN = "Invalid refresh token."  # noqa: S105 # nosec B105 -- error message, not a password
EMAIL_TAKEN = "Email is already registered."
LOGGED_OUT = "Logged out."


class AuthService:
    """Orchestrates registration, login, token rotation and revocation.

    All collaborators are injected; the service holds no state of its own and
    is safe to share between concurrent requests.
    """

    def __init__(
        self,
        users: UserStore,
        refresh_tokens: RefreshTokenStore,
        hasher: PasswordHasher,
        codec: TokenCodec,
    ) -> None:
        self.users = users
        self.refresh_tokens = refresh_tokens
        self.hasher = hasher
        self.codec = codec

    # ------------------------------------------------------------------
    # Register
    # ------------------------------------------------------------------

    def register(self, email: str, password: str, name: str) -> SafeAccount:
        """Create an account with role "user". Raises AuthError(conflict) on a duplicate email."""
        email = normalize_email(email)
        if self.users.email_exists(email):
            auth_event("register_failed", email=email, reason="email_taken")
            raise AuthError.conflict(EMAIL_TAKEN, detail={"field": "email"})

        password_hash = self.hasher.hash(password)
        try:
            account = self.users.create_user(email, password_hash, name)
        except IntegrityError:
            # A concurrent registration inserted the same email between the
            # existence check and our insert. The UNIQUE constraint decided.
            auth_event("register_failed", email=email, reason="email_taken_race")
            raise AuthError.conflict(EMAIL_TAKEN, detail={"field": "email"}) from None

        auth_event("register", user_id=account.id, email=account.email)
        return account.to_safe()

    # ------------------------------------------------------------------
    # Login
    # ------------------------------------------------------------------

    def login(self, email: str, password: str) -> TokenPair:
        """Verify credentials and issue a new access/refresh pair.

        Unknown email and wrong password raise the identical
        AuthError(unauthorized, INVALID_CREDENTIALS).
        """
        email = normalize_email(email)
        account = self.users.get_by_email(email)
        if account is None:
            # Equalize timing -- do NOT return before running bcrypt [C1]
            self.hasher.dummy_verify(password)
            auth_event("login_failed", email=email, reason="user_not_found")
            raise AuthError.unauthorized(INVALID_CREDENTIALS)

        if not self.hasher.verify(password, account.password_hash):
            auth_event("login_failed", user_id=account.id, email=email, reason="invalid_password")
            raise AuthError.unauthorized(INVALID_CREDENTIALS)

        pair = self._issue_pair(account.id, account.email, account.role.value)
        auth_event("login", user_id=account.id, email=account.email)
        return pair

    # ------------------------------------------------------------------
    # Refresh (rotation)
    # ------------------------------------------------------------------

    def refresh(self, refresh_token: str) -> TokenPair:
        """Exchange a refresh token for a new pair, revoking the presented one.

        Raises AuthError(unauthorized, INVALID_REFRESH_TOKEN) if the token is
        unknown, revoked, expired, forged, not a refresh token, belongs to a
        deleted account, or was rotated by a concurrent request.
        """
        # (a) server-side state
        record = self.refresh_tokens.find_by_token(refresh_token)
        if record is None:
            auth_event("refresh_failed", reason="token_not_found")
            raise AuthError.unauthorized(INVALID_REFRESH_TOKEN)
        if not self.refresh_tokens.is_valid(record):
            reason = "token_revoked" if record.revoked else "token_expired"
            auth_event("refresh_failed", user_id=record.user_id, reason=reason)
            raise AuthError.unauthorized(INVALID_REFRESH_TOKEN)

        # (b) signature, exp and type
        claims = self.codec.verify(refresh_token, expected_type=REFRESH_TOKEN_TYPE)
        if claims is None or claims["user_id"] != record.user_id:
            auth_event("refresh_failed", user_id=record.user_id, reason="invalid_jwt")
            raise AuthError.unauthorized(INVALID_REFRESH_TOKEN)

        account = self.users.get_by_id(record.user_id)
        if account is None:
            auth_event("refresh_failed", user_id=record.user_id, reason="user_not_found")
            raise AuthError.unauthorized(INVALID_REFRESH_TOKEN)

        # Single-use: only the request that flips revoked 0 -> 1 may mint.
        if not self.refresh_tokens.revoke(refresh_token):
            auth_event("refresh_failed", user_id=account.id, reason="concurrent_rotation")
            raise AuthError.unauthorized(INVALID_REFRESH_TOKEN)

        pair = self._issue_pair(account.id, account.email, account.role.value)
        auth_event("refresh", user_id=account.id, email=account.email)
        return pair

    # ------------------------------------------------------------------
    # Logout / revocation
    # ------------------------------------------------------------------

    def logout(self, refresh_token: str, user_id: str) -> dict[str, str]:
        """Revoke the given refresh token if it is still active. Always succeeds.

        An unknown or already-revoked token is not an error; the event records
        whether anything was actually revoked.
        """
        revoked = self.refresh_tokens.revoke(refresh_token)
        auth_event("logout", user_id=user_id, token_revoked=revoked)
        return {"message": LOGGED_OUT}

    def revoke_all_tokens(self, user_id: str) -> int:
        """Revoke every active refresh token for an account (logout everywhere)."""
        count = self.refresh_tokens.revoke_all_for_user(user_id)
        auth_event("revoke_all_tokens", user_id=user_id, revoked_count=count)
        return count

    def purge_tokens(self) -> int:
        """Delete revoked and expired refresh-token rows. Idempotent."""
        count = self.refresh_tokens.purge_expired_or_revoked()
        auth_event("purge", purged_count=count)
        return count

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _issue_pair(self, user_id: str, email: str, role: str) -> TokenPair:
        """Mint an access + refresh pair and persist the refresh token before returning it."""
        access = self.codec.issue_access(user_id, email, role)
        refresh = self.codec.issue_refresh(user_id)
        self.refresh_tokens.create(user_id, refresh)
        return TokenPair(
            access_token=access,
            refresh_token=refresh,
            expires_in_seconds=self.codec.access_expires_in,
        )
