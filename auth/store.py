"""
auth/store.py -- SQLAlchemy Core persistence layer for accounts and refresh tokens.

Pattern: Repository + Data Mapper.
UserStore and RefreshTokenStore are the repositories; _row_to_account /
_row_to_refresh_token are the mappers. Service and dependency code never
touches SQL directly.

Connection handling:
  create_db_engine() builds the one Engine the process uses. The entry point
  (api/main.py lifespan, main.py CLI, test fixtures) owns it and passes it to
  both stores by constructor. There is no module-level engine and no lazy
  global handle, so every test gets an isolated database by building its own.

Security:
  All queries use bound parameters. No f-strings in SQL.

Concurrency:
  No Python-level locking. The single-use guarantee for refresh tokens rests
  on RefreshTokenStore.revoke() being one conditional UPDATE
  (... WHERE token = :token AND revoked = 0) whose affected-row count reports
  whether THIS caller flipped the flag. The database serializes writers, so of
  N concurrent revokes on one token exactly one sees rowcount == 1.

Timestamps:
  Stored as UTC ISO-8601 text with fixed microsecond precision. Every value
  has the same width and offset, so string comparison in SQL (expiry checks,
  purge) matches chronological order.

SQLite specifics:
  foreign_keys=ON per connection so refresh_tokens rows cascade with their
  account. journal_mode=WAL so readers are not blocked by the writer.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone

from sqlalchemy import (
    Column,
    ForeignKey,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    create_engine,
    event,
    or_,
    select,
    text,
)
from sqlalchemy.engine import Engine

from auth.models import Account, RefreshTokenRecord, Role


# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_accounts = Table(
    "accounts",
    _metadata,
    Column("id", String(36), primary_key=True),
    Column("email", String(254), nullable=False, unique=True),  # lower-cased before insert
    Column("password_hash", Text, nullable=False),
    Column("name", String(100), nullable=False),
    Column("role", String(16), nullable=False, server_default=Role.user.value),
    Column("created_at", String(32), nullable=False),
)

_refresh_tokens = Table(
    "refresh_tokens",
    _metadata,
    Column("id", String(36), primary_key=True),
    Column("user_id", String(36), ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False),
    Column("token", Text, nullable=False, unique=True),  # full encoded JWT
    Column("expires_at", String(32), nullable=False),
    Column("revoked", Integer, nullable=False, server_default="0"),
    Column("created_at", String(32), nullable=False),
)

Index("ix_refresh_tokens_user_id", _refresh_tokens.c.user_id)


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


def _set_sqlite_pragmas(dbapi_conn, connection_record) -> None:
    """Enable foreign keys and WAL journal mode.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool. Without foreign_keys=ON the ON DELETE CASCADE
    on refresh_tokens.user_id is silently ignored.
    """
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.close()


def create_db_engine(db_url: str) -> Engine:
    """Create the Engine shared by UserStore and RefreshTokenStore, and ensure the schema exists.

    Call dispose() on the returned engine at shutdown.
    """
    connect_args: dict = {}
    if db_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
    engine = create_engine(db_url, connect_args=connect_args, pool_pre_ping=True)
    if db_url.startswith("sqlite"):
        event.listen(engine, "connect", _set_sqlite_pragmas)
    _metadata.create_all(engine)
    return engine


def ping(engine: Engine) -> bool:
    """Return True if the database answers a trivial query. Used by the health endpoint."""
    with engine.connect() as conn:
        return conn.execute(text("SELECT 1")).scalar() == 1


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _iso(dt: datetime) -> str:
    return dt.astimezone(timezone.utc).isoformat(timespec="microseconds")


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


# ---------------------------------------------------------------------------
# Accounts
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for Account entities.

    Usage:
        engine = create_db_engine("sqlite:///postkeeper.db")
        users = UserStore(engine)
        account = users.create_user("a@x.com", hasher.hash("Password123"), "Ann")
        users.get_by_email("A@X.com")  # same account
    """

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def has_users(self) -> bool:
        with self.engine.connect() as conn:
            result = conn.execute(text("SELECT COUNT(*) FROM accounts")).scalar()
        return (result or 0) > 0

    def create_user(self, email: str, password_hash: str, name: str, role: Role = Role.user) -> Account:
        """Insert a new account and return it.

        Raises sqlalchemy.exc.IntegrityError if the email already exists.
        AuthService.register() checks first and catches this as the signal
        that a concurrent registration won the race.
        """
        account = Account(
            id=str(uuid.uuid4()),
            email=normalize_email(email),
            password_hash=password_hash,
            name=name,
            role=Role(role),
            created_at=_iso(_now()),
        )
        with self.engine.connect() as conn:
            conn.execute(
                _accounts.insert().values(
                    id=account.id,
                    email=account.email,
                    password_hash=account.password_hash,
                    name=account.name,
                    role=account.role.value,
                    created_at=account.created_at,
                )
            )
            conn.commit()
        return account

    def get_by_email(self, email: str) -> Account | None:
        """Look up an account by email (case-insensitive). Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_accounts.select().where(_accounts.c.email == normalize_email(email))).fetchone()
        return _row_to_account(row) if row is not None else None

    def get_by_id(self, user_id: str) -> Account | None:
        """Look up an account by primary key. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_accounts.select().where(_accounts.c.id == user_id)).fetchone()
        return _row_to_account(row) if row is not None else None

    def email_exists(self, email: str) -> bool:
        with self.engine.connect() as conn:
            row = conn.execute(select(_accounts.c.id).where(_accounts.c.email == normalize_email(email))).fetchone()
        return row is not None

    def update_role(self, user_id: str, role: Role) -> bool:
        """Change an account's role. Returns True if a row was updated."""
        with self.engine.connect() as conn:
            result = conn.execute(_accounts.update().where(_accounts.c.id == user_id).values(role=Role(role).value))
            conn.commit()
        return result.rowcount > 0

    def delete_user(self, user_id: str) -> bool:
        """Permanently delete an account. Its refresh tokens go with it (ON DELETE CASCADE).

        Maintenance only: reached from the CLI delete-account command.
        """
        with self.engine.connect() as conn:
            result = conn.execute(_accounts.delete().where(_accounts.c.id == user_id))
            conn.commit()
        return result.rowcount > 0


# ---------------------------------------------------------------------------
# Refresh tokens
# ---------------------------------------------------------------------------


class RefreshTokenStore:
    """Repository for RefreshTokenRecord entities.

    State per row: active -> revoked (logout, rotation, bulk revoke), or
    active -> expired (derived from expires_at, never written). Both are
    terminal; purge_expired_or_revoked() is the only way a row leaves.
    """

    def __init__(self, engine: Engine, lifetime_seconds: int = 7 * 24 * 3600) -> None:
        self.engine = engine
        self.lifetime_seconds = lifetime_seconds

    def create(self, user_id: str, token: str) -> RefreshTokenRecord:
        """Insert a new active record expiring lifetime_seconds from now."""
        now = _now()
        record = RefreshTokenRecord(
            id=str(uuid.uuid4()),
            user_id=user_id,
            token=token,
            expires_at=_iso(now + timedelta(seconds=self.lifetime_seconds)),
            revoked=False,
            created_at=_iso(now),
        )
        with self.engine.connect() as conn:
            conn.execute(
                _refresh_tokens.insert().values(
                    id=record.id,
                    user_id=record.user_id,
                    token=record.token,
                    expires_at=record.expires_at,
                    revoked=0,
                    created_at=record.created_at,
                )
            )
            conn.commit()
        return record

    def find_by_token(self, token: str) -> RefreshTokenRecord | None:
        with self.engine.connect() as conn:
            row = conn.execute(_refresh_tokens.select().where(_refresh_tokens.c.token == token)).fetchone()
        return _row_to_refresh_token(row) if row is not None else None

    @staticmethod
    def is_valid(record: RefreshTokenRecord | None) -> bool:
        """True iff the record exists, is not revoked, and has not expired."""
        if record is None or record.revoked:
            return False
        return datetime.fromisoformat(record.expires_at) > _now()

    def revoke(self, token: str) -> bool:
        """Revoke one token. Returns True only for the caller that flipped it.

        Already-revoked and unknown tokens both return False. This is the
        compare-and-swap the refresh rotation relies on.
        """
        with self.engine.connect() as conn:
            result = conn.execute(
                _refresh_tokens.update()
                .where((_refresh_tokens.c.token == token) & (_refresh_tokens.c.revoked == 0))
                .values(revoked=1)
            )
            conn.commit()
        return result.rowcount == 1

    def revoke_all_for_user(self, user_id: str) -> int:
        """Revoke every currently-active token for an account. Returns the number revoked."""
        with self.engine.connect() as conn:
            result = conn.execute(
                _refresh_tokens.update()
                .where(
                    (_refresh_tokens.c.user_id == user_id)
                    & (_refresh_tokens.c.revoked == 0)
                    & (_refresh_tokens.c.expires_at > _iso(_now()))
                )
                .values(revoked=1)
            )
            conn.commit()
        return result.rowcount

    def list_active_for_user(self, user_id: str) -> list[RefreshTokenRecord]:
        """Return the account's active (unrevoked, unexpired) tokens, oldest first. Backs the CLI sessions command."""
        with self.engine.connect() as conn:
            rows = conn.execute(
                _refresh_tokens.select()
                .where(
                    (_refresh_tokens.c.user_id == user_id)
                    & (_refresh_tokens.c.revoked == 0)
                    & (_refresh_tokens.c.expires_at > _iso(_now()))
                )
                .order_by(_refresh_tokens.c.created_at)
            ).fetchall()
        return [_row_to_refresh_token(r) for r in rows]

    def purge_expired_or_revoked(self) -> int:
        """Delete rows that are revoked or past expiry. Returns the number removed.

        Only terminal rows match, so this is safe alongside live traffic and
        idempotent: a second run right after the first removes nothing.
        """
        with self.engine.connect() as conn:
            result = conn.execute(
                _refresh_tokens.delete().where(
                    or_(_refresh_tokens.c.revoked == 1, _refresh_tokens.c.expires_at <= _iso(_now()))
                )
            )
            conn.commit()
        return result.rowcount


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_account(row) -> Account:
    return Account(
        id=row.id,
        email=row.email,
        password_hash=row.password_hash,
        name=row.name,
        role=Role(row.role),
        created_at=row.created_at,
    )


def _row_to_refresh_token(row) -> RefreshTokenRecord:
    return RefreshTokenRecord(
        id=row.id,
        user_id=row.user_id,
        token=row.token,
        expires_at=row.expires_at,
        revoked=bool(row.revoked),
        created_at=row.created_at,
    )
