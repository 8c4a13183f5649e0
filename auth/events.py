"""
auth/events.py -- Auth event log (register, login, refresh, logout, revocation).

Every lifecycle operation in AuthService emits exactly one event, success or
failure. Events go to the "postkeeper.auth.events" logger at INFO so they can
be routed to a separate handler (audit file, SIEM shipper) without touching
the rest of the application's logging.

The human-readable message is "auth_event=<name> key=value ..." and the same
data is attached to the LogRecord as extra fields (record.auth_event plus
record.auth_<key> per detail) for structured formatters.

Never pass tokens or passwords as details. Failure reasons
(user_not_found, invalid_password, token_revoked, ...) are logged here and
only here -- the client always sees a generic message.
"""

from __future__ import annotations

import logging
from typing import Any

logger = logging.getLogger("postkeeper.auth.events")


def auth_event(event: str, **details: Any) -> None:
    """Emit one auth event record."""
    rendered = " ".join(f"{key}={value}" for key, value in details.items())
    logger.info(
        "auth_event=%s %s",
        event,
        rendered,
        extra={"auth_event": event, **{f"auth_{key}": value for key, value in details.items()}},
    )
