"""
auth/store.py -- SQLAlchemy Core persistence layer for users and sessions.

Pattern: Repository + Data Mapper.
UserStore (the credential store) and SessionStore are the repositories;
_row_to_user / _row_to_session are the mappers. Nothing outside this module
touches SQL.

Security:
  All queries use bound parameters. No f-strings in SQL.

  users.email carries a UNIQUE index. Service-level "does this email exist"
  checks are only a fast path; a concurrent insert that slips past them still
  fails here and surfaces as Conflict.

Failure model:
  IntegrityError  -> Conflict (duplicate email / session id)
  any other SQLAlchemyError -> StoreUnavailable, chained to the original.
  The store never retries; that is the DB client's business.

Timestamps:
  Stored as naive UTC DateTime (SQLite has no timezone type) and re-hydrated
  as timezone-aware UTC on the way out.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import replace
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    MetaData,
    String,
    Table,
    Text,
    create_engine,
    event,
    func,
    select,
)
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from auth.errors import Conflict, StoreUnavailable, UserNotFound
from auth.models import Session, User, UserRole

logger = logging.getLogger("gatekeeper.store")

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", String(32), primary_key=True),
    Column("email", String(255), nullable=False, unique=True),
    Column("password_hash", Text, nullable=False),
    Column("role", String(16), nullable=False, server_default=UserRole.USER.value),
    Column("is_approved", Boolean, nullable=False, server_default="0"),
    Column("first_name", String(255)),
    Column("last_name", String(255)),
    Column("avatar_url", Text),
    Column("created_at", DateTime, nullable=False),
    Column("updated_at", DateTime, nullable=False),
)

_sessions = Table(
    "sessions",
    _metadata,
    Column("id", String(64), primary_key=True),
    Column("user_id", String(32), ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
    Column("valid_until", DateTime, nullable=False, index=True),
    Column("created_at", DateTime, nullable=False),
    Column("updated_at", DateTime, nullable=False),
)

# Columns update_user() may write. Anything else is a programming error.
_USER_MUTABLE_FIELDS = frozenset(
    {"email", "password_hash", "role", "is_approved", "first_name", "last_name", "avatar_url"}
)


# ---------------------------------------------------------------------------
# SQLite connection setup
# ---------------------------------------------------------------------------


def _configure_sqlite(dbapi_conn, connection_record) -> None:
    """Per-connection PRAGMAs: WAL for concurrent readers, FK enforcement.

    SQLite PRAGMAs are not inherited by new pool connections, and foreign
    keys are off by default -- without this, deleting a user would leave
    orphaned sessions behind.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")
    dbapi_conn.execute("PRAGMA foreign_keys=ON")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _to_db(value: datetime) -> datetime:
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def _from_db(value: datetime | None) -> datetime | None:
    return value.replace(tzinfo=timezone.utc) if value is not None else None


@contextmanager
def _translated_errors(action: str) -> Iterator[None]:
    try:
        yield
    except IntegrityError:
        raise
    except SQLAlchemyError as exc:
        # Class name only -- the full message can echo bound parameters.
        logger.error("Store failure during %s: %s", action, type(exc).__name__)
        raise StoreUnavailable() from exc


def create_store_engine(db_url: str) -> Engine:
    connect_args: dict = {}
    if db_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
    engine = create_engine(db_url, connect_args=connect_args)
    if db_url.startswith("sqlite"):
        event.listen(engine, "connect", _configure_sqlite)
    _metadata.create_all(engine)
    return engine


# ---------------------------------------------------------------------------
# Credential store
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for User records.

    Usage:
        store = UserStore("sqlite:///gatekeeper.db")
        user = store.create_user(User(email="a@x.com", password_hash=hasher.hash(pw)))
        store.find_by_email("a@x.com")
        store.close()
    """

    def __init__(self, db_url: str) -> None:
        self.engine: Engine = create_store_engine(db_url)

    def find_by_email(self, email: str) -> User | None:
        """Exact, case-sensitive lookup. Returns None if not found."""
        with _translated_errors("find_by_email"), self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.email == email)).fetchone()
        return _row_to_user(row._mapping) if row is not None else None

    def get_by_id(self, user_id: str) -> User | None:
        with _translated_errors("get_by_id"), self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
        return _row_to_user(row._mapping) if row is not None else None

    def create_user(self, user: User) -> User:
        """Insert a user and return it with id and timestamps filled in.

        Raises Conflict if the email is already registered.
        """
        now = _utcnow()
        created = replace(
            user, id=user.id or uuid.uuid4().hex, role=UserRole(user.role), created_at=now, updated_at=now
        )
        try:
            with _translated_errors("create_user"), self.engine.connect() as conn:
                conn.execute(
                    _users.insert().values(
                        id=created.id,
                        email=created.email,
                        password_hash=created.password_hash,
                        role=created.role.value,
                        is_approved=created.is_approved,
                        first_name=created.first_name,
                        last_name=created.last_name,
                        avatar_url=created.avatar_url,
                        created_at=_to_db(now),
                        updated_at=_to_db(now),
                    )
                )
                conn.commit()
        except IntegrityError as exc:
            raise Conflict() from exc
        return created

    def update_user(self, user_id: str, **fields) -> User | None:
        """Update mutable fields on an existing user.

        Returns the updated User, or None if user_id was not found.
        Raises Conflict if an email change collides with another account.
        """
        unknown = set(fields) - _USER_MUTABLE_FIELDS
        if unknown:
            raise ValueError(f"Unknown user fields: {sorted(unknown)!r}")
        if "role" in fields:
            fields["role"] = UserRole(fields["role"]).value
        fields["updated_at"] = _to_db(_utcnow())
        try:
            with _translated_errors("update_user"), self.engine.connect() as conn:
                result = conn.execute(_users.update().where(_users.c.id == user_id).values(**fields))
                conn.commit()
        except IntegrityError as exc:
            raise Conflict() from exc
        if result.rowcount == 0:
            return None
        return self.get_by_id(user_id)

    def list_users(self, exclude_id: str | None = None, limit: int = 25, offset: int = 0) -> list[User]:
        """Return one page of users ordered by email, optionally skipping one id."""
        stmt = _users.select().order_by(_users.c.email).limit(limit).offset(offset)
        if exclude_id is not None:
            stmt = stmt.where(_users.c.id != exclude_id)
        with _translated_errors("list_users"), self.engine.connect() as conn:
            rows = conn.execute(stmt).fetchall()
        return [_row_to_user(r._mapping) for r in rows]

    def count_users(self, exclude_id: str | None = None) -> int:
        stmt = select(func.count()).select_from(_users)
        if exclude_id is not None:
            stmt = stmt.where(_users.c.id != exclude_id)
        with _translated_errors("count_users"), self.engine.connect() as conn:
            return conn.execute(stmt).scalar() or 0

    def delete_user(self, user_id: str) -> bool:
        """Delete a user; their sessions go with them (ON DELETE CASCADE)."""
        with _translated_errors("delete_user"), self.engine.connect() as conn:
            result = conn.execute(_users.delete().where(_users.c.id == user_id))
            conn.commit()
        return result.rowcount > 0

    def ping(self) -> bool:
        """Return True if the database answers a trivial query. Used by /health."""
        try:
            with self.engine.connect() as conn:
                conn.execute(select(1))
        except SQLAlchemyError:
            return False
        return True

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Session store
# ---------------------------------------------------------------------------

_owner_columns = [c.label(f"owner_{c.name}") for c in _users.c]


class SessionStore:
    """Repository for Session records. Shares the UserStore engine so the
    sessions -> users foreign key lives in one database."""

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def create_session(self, session: Session) -> Session:
        """Insert a session.

        Raises Conflict if the id is already taken, UserNotFound if the owner
        row is gone (deleted after the caller looked it up). Both surface as
        IntegrityError, so the owner is re-checked to tell them apart.
        """
        now = _utcnow()
        try:
            with _translated_errors("create_session"), self.engine.connect() as conn:
                conn.execute(
                    _sessions.insert().values(
                        id=session.id,
                        user_id=session.user_id,
                        valid_until=_to_db(session.valid_until),
                        created_at=_to_db(now),
                        updated_at=_to_db(now),
                    )
                )
                conn.commit()
        except IntegrityError as exc:
            if not self._owner_exists(session.user_id):
                raise UserNotFound() from exc
            raise Conflict("Session id collision.") from exc
        return replace(session, created_at=now, updated_at=now)

    def _owner_exists(self, user_id: str) -> bool:
        with _translated_errors("find_session_owner"), self.engine.connect() as conn:
            row = conn.execute(select(_users.c.id).where(_users.c.id == user_id)).fetchone()
        return row is not None

    def find_by_id(self, session_id: str) -> Session | None:
        """Look up a session joined with its owner.

        Outer join: a session whose user row is gone comes back with
        user=None rather than disappearing, so the caller decides.
        """
        stmt = (
            select(_sessions, *_owner_columns)
            .select_from(_sessions.outerjoin(_users, _users.c.id == _sessions.c.user_id))
            .where(_sessions.c.id == session_id)
        )
        with _translated_errors("find_session"), self.engine.connect() as conn:
            row = conn.execute(stmt).fetchone()
        return _row_to_session(row._mapping) if row is not None else None

    def delete_expired(self, before: datetime) -> int:
        """Delete every session with valid_until < before. Returns rows removed.

        Safe to run from many requests at once: rows another caller already
        deleted simply do not match.
        """
        with _translated_errors("delete_expired"), self.engine.connect() as conn:
            result = conn.execute(_sessions.delete().where(_sessions.c.valid_until < _to_db(before)))
            conn.commit()
        return result.rowcount

    def delete(self, session_id: str) -> bool:
        with _translated_errors("delete_session"), self.engine.connect() as conn:
            result = conn.execute(_sessions.delete().where(_sessions.c.id == session_id))
            conn.commit()
        return result.rowcount > 0


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row, prefix: str = "") -> User:
    return User(
        id=row[f"{prefix}id"],
        email=row[f"{prefix}email"],
        password_hash=row[f"{prefix}password_hash"],
        role=UserRole(row[f"{prefix}role"]),
        is_approved=bool(row[f"{prefix}is_approved"]),
        first_name=row[f"{prefix}first_name"],
        last_name=row[f"{prefix}last_name"],
        avatar_url=row[f"{prefix}avatar_url"],
        created_at=_from_db(row[f"{prefix}created_at"]),
        updated_at=_from_db(row[f"{prefix}updated_at"]),
    )


def _row_to_session(row) -> Session:
    user = _row_to_user(row, prefix="owner_") if row["owner_id"] is not None else None
    return Session(
        id=row["id"],
        user_id=row["user_id"],
        valid_until=_from_db(row["valid_until"]),
        created_at=_from_db(row["created_at"]),
        updated_at=_from_db(row["updated_at"]),
        user=user,
    )
