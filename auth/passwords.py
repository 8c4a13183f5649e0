"""
auth/passwords.py -- Password hashing (bcrypt, direct usage, no passlib wrapper).

Security design decisions:
  bcrypt is the right choice for low-entropy secrets (passwords) because its
  cost factor makes brute-forcing a stolen digest expensive. Every hash gets a
  fresh salt from bcrypt.gensalt(), so two hashes of the same password differ.

  bcrypt only reads the first 72 bytes of its input. bcrypt < 5 truncated
  silently; bcrypt >= 5 raises ValueError instead. We truncate explicitly so
  hash() and verify() behave identically on every bcrypt release. The API
  layer caps passwords at 72 characters, so only multi-byte input can reach
  the limit.

  verify() never raises. A malformed, empty, or foreign digest is a failed
  verification, not an error -- the caller treats it exactly like a wrong
  password.

  Timing equalization [C1]: dummy_verify() runs one bcrypt check against a
  digest computed at construction. Login calls it when the email is unknown so
  the response time does not reveal whether an account exists.

Hashing is CPU-bound and holds no lock. bcrypt releases the GIL while it
works, so concurrent requests hash in parallel in the server's threadpool.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import bcrypt

_BCRYPT_MAX_BYTES = 72


def _encode(plain: str) -> bytes:
    return plain.encode("utf-8")[:_BCRYPT_MAX_BYTES]


class PasswordHasher:
    """Adaptive, salted one-way hash for account passwords. Stateless apart from its cost factor.

    Usage:
        hasher = PasswordHasher(rounds=12)
        digest = hasher.hash("Password123")
        hasher.verify("Password123", digest)  # True
    """

    def __init__(self, rounds: int = 12) -> None:
        self.rounds = rounds
        # Computed once so the first unknown-email login is not measurably
        # slower than later ones.
        self._dummy_hash = self.hash("postkeeper_timing_dummy")

    def hash(self, plain: str) -> str:
        """Return a bcrypt digest of the plaintext password."""
        return bcrypt.hashpw(_encode(plain), bcrypt.gensalt(rounds=self.rounds)).decode("utf-8")

    def verify(self, plain: str, digest: str | None) -> bool:
        """Return True if the plaintext matches the digest. Returns False on malformed input."""
        if not digest:
            return False
        try:
            return bcrypt.checkpw(_encode(plain), digest.encode("utf-8"))
        except (ValueError, TypeError):
            return False

    def dummy_verify(self, plain: str) -> None:
        """Spend one verification's worth of work without checking anything [C1]."""
        self.verify(plain, self._dummy_hash)
