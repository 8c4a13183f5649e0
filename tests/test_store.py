"""
tests/test_store.py -- Tests for auth/store.py (UserStore and RefreshTokenStore).

Covers:
  - account creation, case-insensitive lookup, duplicate email rejection
  - refresh token state transitions: active -> revoked, active -> expired
  - revoke() as compare-and-swap: True exactly once
  - revoke_all_for_user() counts only active rows and leaves other users alone
  - purge_expired_or_revoked() removes only terminal rows and is idempotent
  - deleting an account cascades to its refresh tokens
"""

from __future__ import annotations

import pytest
from sqlalchemy.exc import IntegrityError

from auth.models import Role
from auth.store import RefreshTokenStore, ping


@pytest.fixture()
def account(users, hasher):
    return users.create_user("Bob@Example.com ", hasher.hash("Password123"), "Bob")


class TestUserStore:
    def test_create_user_normalizes_email(self, account):
        assert account.email == "bob@example.com"
        assert account.role == Role.user
        assert account.created_at is not None

    def test_get_by_email_is_case_insensitive(self, users, account):
        found = users.get_by_email("BOB@example.COM")
        assert found is not None
        assert found.id == account.id

    def test_get_by_id(self, users, account):
        assert users.get_by_id(account.id).email == "bob@example.com"

    def test_unknown_lookups_return_none(self, users):
        assert users.get_by_email("nobody@example.com") is None
        assert users.get_by_id("no-such-id") is None

    def test_duplicate_email_raises_integrity_error(self, users, account):
        with pytest.raises(IntegrityError):
            users.create_user("bob@example.com", "x", "Bob Two")

    def test_email_exists_and_has_users(self, users):
        assert users.has_users() is False
        users.create_user("c@example.com", "x", "C")
        assert users.has_users() is True
        assert users.email_exists("C@EXAMPLE.COM") is True
        assert users.email_exists("d@example.com") is False

    def test_update_role(self, users, account):
        assert users.update_role(account.id, Role.admin) is True
        assert users.get_by_id(account.id).role == Role.admin
        assert users.update_role("no-such-id", Role.admin) is False

    def test_ping(self, engine):
        assert ping(engine) is True


class TestRefreshTokenStore:
    def test_create_and_find(self, refresh_store, account):
        record = refresh_store.create(account.id, "tok-1")
        found = refresh_store.find_by_token("tok-1")
        assert found is not None
        assert found.id == record.id
        assert found.user_id == account.id
        assert found.revoked is False
        assert refresh_store.is_valid(found) is True

    def test_find_unknown_token(self, refresh_store):
        assert refresh_store.find_by_token("nope") is None

    def test_is_valid_none(self):
        assert RefreshTokenStore.is_valid(None) is False

    def test_revoke_is_single_use(self, refresh_store, account):
        """The first revoke flips the flag; every later one reports no change."""
        refresh_store.create(account.id, "tok-1")
        assert refresh_store.revoke("tok-1") is True
        assert refresh_store.revoke("tok-1") is False
        record = refresh_store.find_by_token("tok-1")
        assert record.revoked is True
        assert refresh_store.is_valid(record) is False

    def test_revoke_unknown_token(self, refresh_store):
        assert refresh_store.revoke("never-issued") is False

    def test_expired_record_is_invalid(self, engine, account):
        short = RefreshTokenStore(engine, lifetime_seconds=-1)
        short.create(account.id, "tok-old")
        record = short.find_by_token("tok-old")
        assert record.revoked is False
        assert short.is_valid(record) is False

    def test_revoke_all_counts_only_active(self, engine, refresh_store, users, account):
        other = users.create_user("other@example.com", "x", "Other")
        refresh_store.create(account.id, "a-1")
        refresh_store.create(account.id, "a-2")
        refresh_store.create(account.id, "a-3")
        refresh_store.revoke("a-3")
        RefreshTokenStore(engine, lifetime_seconds=-1).create(account.id, "a-expired")
        refresh_store.create(other.id, "o-1")

        assert refresh_store.revoke_all_for_user(account.id) == 2
        assert refresh_store.list_active_for_user(account.id) == []
        assert [r.token for r in refresh_store.list_active_for_user(other.id)] == ["o-1"]
        # Nothing left to revoke.
        assert refresh_store.revoke_all_for_user(account.id) == 0

    def test_list_active_for_user_oldest_first(self, refresh_store, account):
        refresh_store.create(account.id, "first")
        refresh_store.create(account.id, "second")
        assert [r.token for r in refresh_store.list_active_for_user(account.id)] == ["first", "second"]

    def test_purge_removes_only_terminal_rows(self, engine, refresh_store, account):
        refresh_store.create(account.id, "live")
        refresh_store.create(account.id, "revoked")
        refresh_store.revoke("revoked")
        RefreshTokenStore(engine, lifetime_seconds=-1).create(account.id, "expired")

        assert refresh_store.purge_expired_or_revoked() == 2
        assert refresh_store.find_by_token("live") is not None
        assert refresh_store.find_by_token("revoked") is None
        assert refresh_store.find_by_token("expired") is None

    def test_purge_is_idempotent(self, refresh_store, account):
        refresh_store.create(account.id, "revoked")
        refresh_store.revoke("revoked")
        assert refresh_store.purge_expired_or_revoked() == 1
        assert refresh_store.purge_expired_or_revoked() == 0

    def test_delete_user_cascades_to_tokens(self, users, refresh_store, account):
        refresh_store.create(account.id, "tok-1")
        assert users.delete_user(account.id) is True
        assert users.get_by_id(account.id) is None
        assert refresh_store.find_by_token("tok-1") is None

    def test_unknown_user_id_is_rejected_by_foreign_key(self, refresh_store):
        with pytest.raises(IntegrityError):
            refresh_store.create("no-such-user", "orphan")
