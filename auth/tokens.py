"""
auth/tokens.py -- Signed, self-contained session tokens (python-jose, HS256).

Security design decisions:
  Two token types share one signing key and are told apart by the "type"
  claim. Access tokens carry identity (user_id, email, role) and live for an
  hour by default. Refresh tokens carry only user_id plus a random jti and
  live for seven days. The jti guarantees two refresh tokens minted for the
  same account in the same second are still distinct strings -- the refresh
  store keys rows on the full token value, so identical tokens would collide.

  verify() returns None on any failure (bad signature, malformed structure,
  expired, wrong type, missing required claims). Untrusted input never makes
  it raise; callers turn None into a 401.

  Canonical signature check: HS256 signatures are 32 bytes, which base64url-
  encodes to 43 characters where the last character carries two unused bits.
  A decoder ignores those bits, so swapping the final character for one that
  differs only there would still verify. verify() re-encodes the decoded
  signature and rejects the token unless it matches what was presented, so
  any single-character change to an issued token is rejected.

  decode_unchecked() skips signature and expiry checks entirely. It exists for
  logging and diagnostics and must never feed an authorization decision.

The codec is constructed with its secret and lifetimes (see api/main.py
lifespan). It holds no other state.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from typing import Any

from jose import JWTError, jwt
from jose.utils import base64url_decode, base64url_encode

ACCESS_TOKEN_TYPE = "access"
REFRESH_TOKEN_TYPE = "refresh"  # noqa: S105 # nosec B105 -- claim value, not a password

_REQUIRED_CLAIMS = {
    ACCESS_TOKEN_TYPE: ("user_id", "email", "role", "exp"),
    REFRESH_TOKEN_TYPE: ("user_id", "jti", "exp"),
}


class TokenCodec:
    """Mint and verify access / refresh JWTs.

    Usage:
        codec = TokenCodec(secret_key=settings.secret_key)
        token = codec.issue_access(user_id, "a@x.com", "user")
        claims = codec.verify(token, expected_type="access")  # dict or None
    """

    def __init__(
        self,
        secret_key: str,
        algorithm: str = "HS256",
        access_expire_seconds: int = 3600,
        refresh_expire_seconds: int = 7 * 24 * 3600,
    ) -> None:
        self._secret_key = secret_key
        self.algorithm = algorithm
        self.access_expire_seconds = access_expire_seconds
        self.refresh_expire_seconds = refresh_expire_seconds

    @property
    def access_expires_in(self) -> int:
        """Access token lifetime in seconds, as reported to clients."""
        return self.access_expire_seconds

    # ------------------------------------------------------------------
    # Issue
    # ------------------------------------------------------------------

    def issue_access(self, user_id: str, email: str, role: str) -> str:
        """Encode a signed access token with identity claims."""
        return self._encode(
            {"user_id": user_id, "email": email, "role": getattr(role, "value", role), "type": ACCESS_TOKEN_TYPE},
            self.access_expire_seconds,
        )

    def issue_refresh(self, user_id: str) -> str:
        """Encode a signed refresh token with a fresh jti."""
        return self._encode(
            {"user_id": user_id, "type": REFRESH_TOKEN_TYPE, "jti": uuid.uuid4().hex},
            self.refresh_expire_seconds,
        )

    def _encode(self, claims: dict[str, Any], lifetime_seconds: int) -> str:
        now = datetime.now(timezone.utc)
        payload = {
            **claims,
            "iat": int(now.timestamp()),
            "exp": int((now + timedelta(seconds=lifetime_seconds)).timestamp()),
        }
        return jwt.encode(payload, self._secret_key, algorithm=self.algorithm)

    # ------------------------------------------------------------------
    # Verify / decode
    # ------------------------------------------------------------------

    def verify(self, token: Any, expected_type: str | None = None) -> dict[str, Any] | None:
        """Decode and verify a token. Returns the claims dict or None on any failure.

        Args:
            token:         Untrusted encoded token.
            expected_type: "access" or "refresh". When given, a token of the
                           other type is rejected.
        """
        if not isinstance(token, str) or not _has_canonical_signature(token):
            return None
        try:
            payload = jwt.decode(token, self._secret_key, algorithms=[self.algorithm])
        except JWTError:
            return None
        token_type = payload.get("type")
        if not isinstance(token_type, str) or token_type not in _REQUIRED_CLAIMS:
            return None
        if expected_type is not None and token_type != expected_type:
            return None
        if any(not payload.get(claim) for claim in _REQUIRED_CLAIMS[token_type]):
            return None
        return payload

    def decode_unchecked(self, token: Any) -> dict[str, Any] | None:
        """Return the claims WITHOUT checking signature or expiry. Diagnostics only."""
        if not isinstance(token, str):
            return None
        try:
            return jwt.get_unverified_claims(token)
        except JWTError:
            return None


def _has_canonical_signature(token: str) -> bool:
    """Return True if the signature segment is exactly the canonical base64url encoding of its bytes."""
    parts = token.split(".")
    if len(parts) != 3 or not parts[2]:
        return False
    segment = parts[2].encode("ascii", errors="replace")
    try:
        return base64url_encode(base64url_decode(segment)) == segment
    except (ValueError, TypeError):
        return False
