"""
core/errors.py -- Error kinds shared by the auth core and the API layer.

One exception type carries a closed set of kinds instead of a class per
failure. Callers branch on ``err.kind``; the API layer maps each kind to an
HTTP status in a single table (api/main.py) so no route has to know status
codes for business-rule failures.

Messages on AuthError are client-safe by construction. Anything that would
help an attacker (which check failed, whether an email exists) goes into the
auth event log, never into ``message``.

Storage and hashing failures are NOT wrapped in AuthError. They propagate as
their original exception type and the API's catch-all handler turns them into
a generic 500.

Layer rule: core/ is the kernel. This module may not import from api/ or auth/.
"""

from __future__ import annotations

from enum import Enum
from typing import Any


class ErrorKind(str, Enum):
    conflict = "conflict"  # duplicate unique field
    unauthorized = "unauthorized"  # bad credentials, invalid/expired/revoked/mistyped token
    forbidden = "forbidden"  # authenticated but not allowed (role / ownership guards)
    not_found = "not_found"  # referenced entity absent
    internal = "internal"


class AuthError(Exception):
    """A typed, recoverable business-rule failure.

    Attributes:
        kind:    Stable ErrorKind the caller branches on.
        message: Generic, user-facing text. Safe to return to clients.
        detail:  Optional structured context (e.g. the conflicting field).
                 Also client-visible, so it must never carry secrets.
    """

    def __init__(self, kind: ErrorKind, message: str, detail: Any = None) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.detail = detail

    def __repr__(self) -> str:
        return f"AuthError(kind={self.kind.value!r}, message={self.message!r})"

    @classmethod
    def unauthorized(cls, message: str = "Authentication required.") -> AuthError:
        return cls(ErrorKind.unauthorized, message)

    @classmethod
    def forbidden(cls, message: str = "You do not have permission to perform this action.") -> AuthError:
        return cls(ErrorKind.forbidden, message)

    @classmethod
    def conflict(cls, message: str, detail: Any = None) -> AuthError:
        return cls(ErrorKind.conflict, message, detail)

    @classmethod
    def not_found(cls, message: str = "Resource not found.") -> AuthError:
        return cls(ErrorKind.not_found, message)
