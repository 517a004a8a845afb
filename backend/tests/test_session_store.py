from datetime import timedelta

import pytest
from sqlalchemy.exc import OperationalError

from app.models.auth import RefreshSession
from app.services.credentials import CredentialStore
from app.services.errors import PersistenceFailure, SessionIntegrityError
from app.services.sessions import SessionMeta, SessionStore


@pytest.fixture
def account(db):
    return CredentialStore(db).create_account("dana", "dana@example.com", "TestPass123!")


def test_create_session_stores_only_the_keyed_hash(db, store, codec, account):
    issued = store.create_session(account.id, SessionMeta(device_id="device-aaaaaaaaaaaa", user_agent="pytest", ip="10.0.0.1"))

    row = db.query(RefreshSession).filter(RefreshSession.id == issued.session_id).one()
    assert row.token_hash == codec.hash_refresh_secret(issued.raw_secret)
    assert issued.raw_secret not in row.token_hash
    assert row.revoked is False
    assert row.expires_at is None
    assert (row.device_id, row.user_agent, row.ip_address) == ("device-aaaaaaaaaaaa", "pytest", "10.0.0.1")


def test_refresh_secret_is_single_use(store, account):
    issued = store.create_session(account.id, SessionMeta())

    secret_b = store.rotate(account.id, issued.raw_secret)

    assert secret_b is not None
    assert secret_b != issued.raw_secret
    assert store.rotate(account.id, issued.raw_secret) is None
    assert store.rotate(account.id, secret_b) is not None


def test_rotation_keeps_the_same_session(store, clock, account):
    issued = store.create_session(account.id, SessionMeta())
    clock.advance(minutes=20)

    secret_b = store.rotate(account.id, issued.raw_secret)

    session = store.find_by_secret(secret_b)
    assert session.id == issued.session_id
    assert session.last_used_at > session.created_at
    assert store.find_by_secret(issued.raw_secret) is None


def test_rotation_is_scoped_to_the_owning_account(db, store, account):
    other = CredentialStore(db).create_account("eve", "eve@example.com", "TestPass123!")
    issued = store.create_session(account.id, SessionMeta())

    assert store.rotate(other.id, issued.raw_secret) is None
    assert store.rotate(account.id, issued.raw_secret) is not None


def test_revocation_is_terminal(store, account):
    issued = store.create_session(account.id, SessionMeta())
    secret_b = store.rotate(account.id, issued.raw_secret)

    result = store.revoke_by_id(account.id, issued.session_id)

    assert result.found and result.changed
    assert store.rotate(account.id, issued.raw_secret) is None
    assert store.rotate(account.id, secret_b) is None
    assert store.find_by_secret(secret_b) is None


def test_revoke_by_id_is_idempotent_and_benign_on_miss(store, account):
    issued = store.create_session(account.id, SessionMeta())

    first = store.revoke_by_id(account.id, issued.session_id)
    second = store.revoke_by_id(account.id, issued.session_id)
    missing = store.revoke_by_id(account.id, "no-such-session")

    assert (first.found, first.changed) == (True, True)
    assert (second.found, second.changed) == (True, False)
    assert (missing.found, missing.changed) == (False, False)


def test_revoke_by_token_revokes_only_that_session(store, account):
    kept = store.create_session(account.id, SessionMeta())
    dropped = store.create_session(account.id, SessionMeta())

    revoked = store.revoke_by_token(dropped.raw_secret)

    assert [s.id for s in revoked] == [dropped.session_id]
    assert store.revoke_by_token(dropped.raw_secret) == []
    assert store.rotate(account.id, kept.raw_secret) is not None


def test_revoke_all_marks_every_session(store, account):
    issued = [store.create_session(account.id, SessionMeta()) for _ in range(3)]

    revoked = store.revoke_all(account.id)

    assert {s.id for s in revoked} == {i.session_id for i in issued}
    assert all(s.revoked for s in store.list_sessions(account.id))
    assert all(store.rotate(account.id, i.raw_secret) is None for i in issued)
    assert store.revoke_all(account.id) == []


def test_fixed_expiry_blocks_rotation(db, codec, clock, account):
    expiring_store = SessionStore(db, codec, clock=clock, refresh_ttl=timedelta(days=7))
    issued = expiring_store.create_session(account.id, SessionMeta())

    clock.advance(days=6)
    secret_b = expiring_store.rotate(account.id, issued.raw_secret)
    assert secret_b is not None

    clock.advance(days=2)
    assert expiring_store.rotate(account.id, secret_b) is None


def test_list_sessions_newest_first(store, clock, account):
    first = store.create_session(account.id, SessionMeta())
    clock.advance(seconds=1)
    second = store.create_session(account.id, SessionMeta())

    assert [s.id for s in store.list_sessions(account.id)] == [second.session_id, first.session_id]


def test_duplicate_live_hash_is_an_integrity_error(store, account, monkeypatch):
    store.create_session(account.id, SessionMeta())
    store.create_session(account.id, SessionMeta())
    live = store.list_sessions(account.id)

    class FixedQuery:
        def __init__(self, rows):
            self.rows = rows

        def filter(self, *args):
            return self

        def order_by(self, *args):
            return self

        def all(self):
            return self.rows

    monkeypatch.setattr(store.db, "query", lambda *args: FixedQuery(live))

    with pytest.raises(SessionIntegrityError):
        store.find_by_secret("anything")


def test_storage_errors_surface_as_persistence_failure(store, account, monkeypatch):
    def broken_commit():
        raise OperationalError("COMMIT", {}, Exception("disk I/O error"))

    monkeypatch.setattr(store.db, "commit", broken_commit)

    with pytest.raises(PersistenceFailure):
        store.create_session(account.id, SessionMeta())
