"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Dataclasses own domain
shape; stores, the session manager and routes do the work.

Layer rule: no imports from api/.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class UserRole(str, Enum):
    """Closed set of roles. The value doubles as the RBAC scope string."""

    USER = "USER"
    ADMIN = "ADMIN"


@dataclass
class User:
    """An identity that can log in with email + password.

    email is an opaque, case-sensitive string. Uniqueness is enforced by the
    users table's UNIQUE index, not by this class.

    password_hash is the self-describing bcrypt digest. It never leaves the
    auth/ package -- API response models do not carry it.

    is_approved gates login. Registration creates unapproved users; an admin
    flips the flag.
    """

    email: str
    role: UserRole = UserRole.USER
    id: str | None = None
    password_hash: str | None = None
    is_approved: bool = False
    first_name: str | None = None
    last_name: str | None = None
    avatar_url: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass
class Session:
    """Server-side proof of a successful login.

    id is 256 bits from secrets.token_hex(32), generated by SessionManager only.
    valid_until is timezone-aware UTC and never changes after creation -- there
    is no sliding renewal; an expired session means logging in again.

    user is the joined owner record. SessionStore.find_by_id fills it in; a
    session whose user no longer exists is never treated as valid.
    """

    id: str
    user_id: str
    valid_until: datetime
    created_at: datetime | None = None
    updated_at: datetime | None = None
    user: User | None = None
