"""
auth/sessions.py -- Session lifecycle: create, validate, revoke, sweep.

Per session id the states are:

    absent / revoked   no row exists (terminal)
    valid              row exists and now <  valid_until
    expired            row exists and now >= valid_until

There is no transition from expired back to valid: valid_until is fixed at
creation. An expired row is equivalent to an absent one for every caller; the
only difference is that it still occupies storage until a sweep removes it.

Expire-before-read: validate() deletes every expired row *before* looking up
the candidate, and compares against the same `now` afterwards. A session that
crosses its expiry boundary during the call is never reported valid.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import logging
import secrets
from collections.abc import Callable
from datetime import datetime, timedelta, timezone

from auth.errors import Conflict, StoreUnavailable
from auth.models import Session
from auth.store import SessionStore

logger = logging.getLogger("gatekeeper.sessions")

# 32 random bytes -> 64 hex chars (256 bits).
SESSION_ID_BYTES = 32

# A collision at 256 bits means something is badly wrong with the RNG or the
# store; give up quickly instead of looping.
MAX_CREATE_ATTEMPTS = 3


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SessionManager:
    """Owns every session state transition.

    The manager keeps no state of its own -- all of it lives in the session
    store -- so one instance can be shared across concurrent requests.

    Usage:
        manager = SessionManager(SessionStore(engine), validity=timedelta(days=1))
        session = manager.create(user.id)
        manager.validate(session.id)   # Session
        manager.revoke(session.id)
        manager.validate(session.id)   # None
    """

    def __init__(
        self,
        store: SessionStore,
        validity: timedelta,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.store = store
        self.validity = validity
        self._clock = clock

    def create(self, user_id: str) -> Session:
        """Persist a fresh session for user_id valid for `validity` from now.

        Only id collisions are retried. UserNotFound (owner deleted) propagates.
        """
        for attempt in range(1, MAX_CREATE_ATTEMPTS + 1):
            candidate = Session(
                id=secrets.token_hex(SESSION_ID_BYTES),
                user_id=user_id,
                valid_until=self._clock() + self.validity,
            )
            try:
                session = self.store.create_session(candidate)
            except Conflict:
                logger.warning("Session id collision (attempt %d/%d)", attempt, MAX_CREATE_ATTEMPTS)
                continue
            logger.info("Session created for user %s", user_id)
            return session
        raise StoreUnavailable("Could not allocate a unique session id.")

    def validate(self, candidate_id: str | None) -> Session | None:
        """Return the live Session for candidate_id, or None.

        None covers: no id, unknown id, expired (swept or not), and a session
        whose user has been deleted. Callers cannot tell these apart, and the
        HTTP layer should clear the client cookie in every case.

        StoreUnavailable from the lookup propagates; a failing sweep does not.
        """
        if not candidate_id:
            return None

        now = self._clock()
        self._sweep_best_effort(now)

        session = self.store.find_by_id(candidate_id)
        if session is None:
            return None
        if now >= session.valid_until:
            # Lost the race with our own sweep's cutoff, or the sweep failed.
            return None
        if session.user is None:
            return None
        return session

    def revoke(self, session_id: str) -> None:
        """Delete the session. Revoking an unknown id is not an error."""
        if self.store.delete(session_id):
            logger.info("Session revoked")

    def sweep(self) -> int:
        """Delete every expired session now. Returns the number removed."""
        removed = self.store.delete_expired(self._clock())
        if removed:
            logger.info("Swept %d expired session(s)", removed)
        return removed

    def _sweep_best_effort(self, now: datetime) -> None:
        try:
            removed = self.store.delete_expired(now)
        except StoreUnavailable:
            # The expiry comparison in validate() still holds without the sweep.
            logger.warning("Expired-session sweep failed; continuing with lookup")
            return
        if removed:
            logger.debug("Swept %d expired session(s) during validation", removed)
