"""
tests/test_sessions.py -- Unit tests for SessionManager state transitions.

Coverage:
  - create(): fresh 256-bit id, valid_until = now + validity
  - validate(): valid before expiry, None at and after expiry
  - Expired rows are swept during validation
  - revoke() is idempotent
  - Id collisions are retried, then reported as StoreUnavailable
  - A missing owner is UserNotFound and is not retried
  - A failing sweep does not block validation; a failing lookup propagates
  - Concurrent validations of one expired session all agree (file-backed DB)

Time is controlled through the FrozenClock fixture, never by sleeping.
"""

from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta

import pytest
from sqlalchemy import text

from auth.errors import StoreUnavailable, UserNotFound
from auth.models import User
from auth.sessions import MAX_CREATE_ATTEMPTS, SessionManager
from auth.store import SessionStore, UserStore
from tests.conftest import SESSION_VALIDITY, FrozenClock


@pytest.fixture
def owner(user_store: UserStore) -> User:
    return user_store.create_user(User(email="owner@example.com", password_hash="$2b$04$placeholder"))


class TestCreate:
    def test_fresh_session(self, manager: SessionManager, owner: User, clock: FrozenClock) -> None:
        session = manager.create(owner.id)
        assert len(session.id) == 64
        int(session.id, 16)  # hex
        assert session.user_id == owner.id
        assert session.valid_until == clock.now + SESSION_VALIDITY

    def test_ids_are_unique(self, manager: SessionManager, owner: User) -> None:
        ids = {manager.create(owner.id).id for _ in range(20)}
        assert len(ids) == 20

    def test_collision_is_retried(
        self, manager: SessionManager, owner: User, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        taken = manager.create(owner.id).id
        candidates = iter([taken, "f" * 64])
        monkeypatch.setattr("auth.sessions.secrets.token_hex", lambda n: next(candidates))
        assert manager.create(owner.id).id == "f" * 64

    def test_deleted_owner_is_not_retried(
        self, manager: SessionManager, monkeypatch: pytest.MonkeyPatch, caplog: pytest.LogCaptureFixture
    ) -> None:
        calls = []

        def token_hex(n: int) -> str:
            calls.append(n)
            return "e" * 64

        monkeypatch.setattr("auth.sessions.secrets.token_hex", token_hex)
        with caplog.at_level("WARNING", logger="gatekeeper.sessions"), pytest.raises(UserNotFound):
            manager.create("deleted-user")
        assert len(calls) == 1
        assert "collision" not in caplog.text

    def test_repeated_collisions_give_up(
        self, manager: SessionManager, owner: User, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        taken = manager.create(owner.id).id
        calls = []

        def always_taken(n: int) -> str:
            calls.append(n)
            return taken

        monkeypatch.setattr("auth.sessions.secrets.token_hex", always_taken)
        with pytest.raises(StoreUnavailable):
            manager.create(owner.id)
        assert len(calls) == MAX_CREATE_ATTEMPTS


class TestValidate:
    def test_lifecycle_across_expiry(
        self, manager: SessionManager, session_store: SessionStore, owner: User, clock: FrozenClock
    ) -> None:
        """Created at T0 with 1-day validity: valid at T0+23h, gone at T0+25h."""
        session = manager.create(owner.id)

        clock.advance(hours=23)
        valid = manager.validate(session.id)
        assert valid is not None
        assert valid.id == session.id
        assert valid.user is not None
        assert valid.user.email == "owner@example.com"

        clock.advance(hours=2)
        assert manager.validate(session.id) is None
        # Swept, not merely hidden.
        assert session_store.find_by_id(session.id) is None

    def test_exact_expiry_instant_is_invalid(
        self, manager: SessionManager, owner: User, clock: FrozenClock
    ) -> None:
        session = manager.create(owner.id)
        clock.now = session.valid_until
        assert manager.validate(session.id) is None

    def test_unknown_and_empty_ids(self, manager: SessionManager) -> None:
        assert manager.validate("0" * 64) is None
        assert manager.validate("") is None
        assert manager.validate(None) is None

    def test_validation_sweeps_other_expired_sessions(
        self, manager: SessionManager, session_store: SessionStore, owner: User, clock: FrozenClock
    ) -> None:
        stale = manager.create(owner.id)
        clock.advance(days=2)
        fresh = manager.create(owner.id)
        assert manager.validate(fresh.id) is not None
        assert session_store.find_by_id(stale.id) is None

    def test_deleted_owner_invalidates_session(
        self, manager: SessionManager, user_store: UserStore, owner: User
    ) -> None:
        session = manager.create(owner.id)
        user_store.delete_user(owner.id)
        assert manager.validate(session.id) is None


class TestRevokeAndSweep:
    def test_revoke(self, manager: SessionManager, owner: User) -> None:
        session = manager.create(owner.id)
        manager.revoke(session.id)
        assert manager.validate(session.id) is None

    def test_revoke_is_idempotent(self, manager: SessionManager, owner: User) -> None:
        session = manager.create(owner.id)
        manager.revoke(session.id)
        manager.revoke(session.id)
        manager.revoke("never-existed")

    def test_sweep_counts_removed(self, manager: SessionManager, owner: User, clock: FrozenClock) -> None:
        manager.create(owner.id)
        manager.create(owner.id)
        assert manager.sweep() == 0
        clock.advance(days=1, seconds=1)
        assert manager.sweep() == 2
        assert manager.sweep() == 0


class _FailingSweepStore:
    """Delegates to a real SessionStore except for delete_expired()."""

    def __init__(self, inner: SessionStore) -> None:
        self._inner = inner

    def delete_expired(self, before):
        raise StoreUnavailable()

    def __getattr__(self, name):
        return getattr(self._inner, name)


class TestStoreFailures:
    def test_failed_sweep_still_validates(
        self, session_store: SessionStore, owner: User, clock: FrozenClock
    ) -> None:
        manager = SessionManager(_FailingSweepStore(session_store), validity=SESSION_VALIDITY, clock=clock)
        session = manager.create(owner.id)
        assert manager.validate(session.id) is not None
        clock.advance(days=2)
        # Row is still there, but the expiry comparison rejects it.
        assert manager.validate(session.id) is None
        assert session_store.find_by_id(session.id) is not None

    def test_failed_lookup_propagates(self, manager: SessionManager, user_store: UserStore) -> None:
        with user_store.engine.connect() as conn:
            conn.execute(text("DROP TABLE sessions"))
            conn.commit()
        with pytest.raises(StoreUnavailable):
            manager.validate("a" * 64)


class TestConcurrency:
    WORKERS = 8

    def _run_together(self, fn, arg):
        barrier = threading.Barrier(self.WORKERS)

        def call():
            barrier.wait()
            return fn(arg)

        with ThreadPoolExecutor(max_workers=self.WORKERS) as pool:
            futures = [pool.submit(call) for _ in range(self.WORKERS)]
            return [f.result() for f in futures]

    @pytest.fixture
    def file_manager(self, tmp_path, clock: FrozenClock):
        store = UserStore(f"sqlite:///{tmp_path / 'sessions.db'}")
        owner = store.create_user(User(email="owner@example.com", password_hash="$2b$04$placeholder"))
        manager = SessionManager(SessionStore(store.engine), validity=timedelta(hours=1), clock=clock)
        yield manager, owner
        store.close()

    def test_concurrent_validation_of_live_session(self, file_manager) -> None:
        manager, owner = file_manager
        session = manager.create(owner.id)
        results = self._run_together(manager.validate, session.id)
        assert all(r is not None and r.id == session.id for r in results)

    def test_concurrent_validation_of_expired_session(self, file_manager, clock: FrozenClock) -> None:
        manager, owner = file_manager
        session = manager.create(owner.id)
        clock.advance(hours=2)
        results = self._run_together(manager.validate, session.id)
        assert results == [None] * self.WORKERS
        assert manager.store.find_by_id(session.id) is None
