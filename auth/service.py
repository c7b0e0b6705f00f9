"""
auth/service.py -- Registration, login and credential-change orchestration.

This is the only place that strings the primitives together:

  register:  strength -> email fast-path check -> hash -> create
  login:     lookup -> bcrypt (always, even for unknown email) -> approval -> session
  request:   cookie decode -> session validate -> scope resolve

Ordering rules:
  - The strength gate runs before hashing on every path that sets a password.
    A rejected password leaves the store untouched.
  - The email check before insert is a fast path only. The UNIQUE index in
    auth/store.py is the final authority and also raises Conflict.
  - Unknown email and wrong password raise the same InvalidCredentials and
    cost the same bcrypt work. Unapproved is only reachable after a password
    match, so it leaks nothing the caller did not already prove.

Layer rule: no imports from api/. All methods are synchronous; the HTTP layer
runs them in FastAPI's worker thread pool so bcrypt never blocks the loop.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import Any

from auth.cookies import CookieCodec
from auth.errors import Conflict, InvalidCredentials, Unapproved, UserNotFound
from auth.models import Session, User, UserRole
from auth.passwords import PasswordHasher
from auth.scopes import resolve_scopes
from auth.sessions import SessionManager, utcnow
from auth.store import SessionStore, UserStore
from auth.strength import StrengthEvaluator
from core.config import Settings

logger = logging.getLogger("gatekeeper.auth")

# Fields a caller may change through update_user(). "password" is plaintext
# and gets hashed; everything else maps 1:1 onto the users table.
_UPDATABLE_FIELDS = frozenset(
    {"email", "password", "role", "is_approved", "first_name", "last_name", "avatar_url"}
)


@dataclass(frozen=True)
class Authenticated:
    """Outcome of a successful request validation."""

    session: Session
    scopes: frozenset[str]

    @property
    def user(self) -> User:
        return self.session.user


class AuthService:
    def __init__(
        self,
        users: UserStore,
        sessions: SessionManager,
        hasher: PasswordHasher,
        strength: StrengthEvaluator,
        codec: CookieCodec,
    ) -> None:
        self.users = users
        self.sessions = sessions
        self.hasher = hasher
        self.strength = strength
        self.codec = codec

    # ------------------------------------------------------------------
    # Registration / login
    # ------------------------------------------------------------------

    def register(self, email: str, password: str) -> User:
        """Self-service sign-up. New accounts are USER role and unapproved."""
        return self._create(User(email=email, role=UserRole.USER, is_approved=False), password)

    def login(self, email: str, password: str) -> Session:
        user = self.users.find_by_email(email)
        if user is None or user.password_hash is None:
            # Equalize timing -- do NOT return before running bcrypt.
            self.hasher.verify_dummy(password)
            raise InvalidCredentials()
        if not self.hasher.verify(password, user.password_hash):
            raise InvalidCredentials()
        if not user.is_approved:
            logger.info("Login refused for unapproved user %s", user.id)
            raise Unapproved()
        try:
            created = self.sessions.create(user.id)
        except UserNotFound:
            # Deleted between the password check and the session insert.
            logger.info("Login for user %s raced a delete", user.id)
            raise InvalidCredentials() from None
        session = replace(created, user=user)
        logger.info("User %s logged in", user.id)
        return session

    def logout(self, cookie_value: str | None) -> None:
        session_id = self.codec.decode(cookie_value)
        if session_id:
            self.sessions.revoke(session_id)

    def validate_request(self, cookie_value: str | None) -> Authenticated | None:
        """Resolve a request cookie to an authenticated principal.

        Three outcomes: Authenticated, None (no/invalid/expired session), or
        StoreUnavailable propagating from the store.
        """
        session = self.sessions.validate(self.codec.decode(cookie_value))
        if session is None:
            return None
        return Authenticated(session=session, scopes=resolve_scopes(session))

    # ------------------------------------------------------------------
    # User administration
    # ------------------------------------------------------------------

    def create_user(
        self,
        email: str,
        password: str,
        role: UserRole = UserRole.USER,
        is_approved: bool = False,
        first_name: str | None = None,
        last_name: str | None = None,
        avatar_url: str | None = None,
    ) -> User:
        user = User(
            email=email,
            role=UserRole(role),
            is_approved=is_approved,
            first_name=first_name,
            last_name=last_name,
            avatar_url=avatar_url,
        )
        return self._create(user, password)

    def update_user(self, user_id: str, changes: dict[str, Any]) -> User:
        """Apply a full or partial update to an existing user.

        changes holds only the fields to write; None values are written as
        NULL (profile fields are nullable). A "password" key is strength
        checked against the post-update email and names, then hashed.
        """
        unknown = set(changes) - _UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Unknown user fields: {sorted(unknown)!r}")

        target = self.users.get_by_id(user_id)
        if target is None:
            raise UserNotFound()

        fields = dict(changes)
        password = fields.pop("password", None)
        if password is not None:
            self.strength.ensure_strong(
                password,
                context=[
                    fields.get("email", target.email),
                    fields.get("first_name", target.first_name),
                    fields.get("last_name", target.last_name),
                ],
            )

        email = fields.get("email")
        if email is not None and email != target.email:
            existing = self.users.find_by_email(email)
            if existing is not None and existing.id != user_id:
                raise Conflict()

        if password is not None:
            fields["password_hash"] = self.hasher.hash(password)

        updated = self.users.update_user(user_id, **fields)
        if updated is None:
            # Deleted between the lookup and the write.
            raise UserNotFound()
        logger.info("User %s updated (%s)", user_id, ", ".join(sorted(changes)) or "no fields")
        return updated

    def delete_user(self, user_id: str) -> bool:
        deleted = self.users.delete_user(user_id)
        if deleted:
            logger.info("User %s deleted", user_id)
        return deleted

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _create(self, user: User, password: str) -> User:
        self.strength.ensure_strong(password, context=[user.email, user.first_name, user.last_name])
        if self.users.find_by_email(user.email) is not None:
            raise Conflict()
        user.password_hash = self.hasher.hash(password)
        created = self.users.create_user(user)
        logger.info("User %s created (role=%s)", created.id, created.role.value)
        return created


def build_auth_service(
    settings: Settings,
    users: UserStore,
    clock: Callable[[], datetime] = utcnow,
) -> AuthService:
    """Wire the auth primitives from Settings. Shared by the API lifespan and the CLI."""
    sessions = SessionManager(
        SessionStore(users.engine),
        validity=timedelta(seconds=settings.session_validity_seconds),
        clock=clock,
    )
    codec = CookieCodec(
        settings.secret_key,
        ttl_seconds=settings.cookie_ttl_seconds,
        name=settings.cookie_name,
        domain=settings.cookie_domain,
        secure=settings.secure_cookies,
        clock=clock,
    )
    return AuthService(
        users=users,
        sessions=sessions,
        hasher=PasswordHasher(cost=settings.hash_cost),
        strength=StrengthEvaluator(min_score=settings.min_strength_score),
        codec=codec,
    )
