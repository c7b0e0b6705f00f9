"""
API request and response models for Gatekeeper REST endpoints.

These Pydantic v2 models define the HTTP transport contract. They are
intentionally separate from the dataclasses in auth/models.py, which own the
internal domain representation. Route handlers map between the two.

No response model carries password_hash -- the digest never leaves auth/.
"""

from datetime import datetime
from typing import Annotated, Optional

from pydantic import BaseModel, ConfigDict, Field

from auth.models import Session, User, UserRole

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

# Deliberately loose: one "@", no whitespace, a dot in the domain. Anything
# stricter belongs to a confirmation email, not a regex.
EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"
URL_PATTERN = r"^https?://\S+$"

# bcrypt reads at most 72 bytes; longer inputs would silently share a hash.
PASSWORD_MAX_LENGTH = 72

_Email = Annotated[str, Field(pattern=EMAIL_PATTERN, max_length=255)]
_Password = Annotated[str, Field(min_length=1, max_length=PASSWORD_MAX_LENGTH)]
_Url = Annotated[str, Field(pattern=URL_PATTERN)]


# ---------------------------------------------------------------------------
# Error envelope
# ---------------------------------------------------------------------------


class ErrorDetail(BaseModel):
    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Uniform error body: {"error": {"code", "message", "detail"}}."""

    error: ErrorDetail


# ---------------------------------------------------------------------------
# Auth requests
# ---------------------------------------------------------------------------


class Credentials(BaseModel):
    """Body for POST /auth/register and POST /auth/login."""

    email: _Email
    password: _Password


# ---------------------------------------------------------------------------
# User requests
# ---------------------------------------------------------------------------


class UserCreate(BaseModel):
    """Body for POST /users (admin)."""

    email: _Email
    password: _Password
    role: UserRole
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    avatar_url: Optional[_Url] = None
    is_approved: bool = False


class UserUpdate(BaseModel):
    """Body for PUT /users/{id} (admin). Every field is required."""

    email: _Email
    password: _Password
    role: UserRole
    first_name: Optional[str]
    last_name: Optional[str]
    avatar_url: Optional[_Url]
    is_approved: bool


class UserPatch(BaseModel):
    """Body for PATCH /users/{id} (admin). Only fields that are sent get written."""

    email: Optional[_Email] = None
    password: Optional[_Password] = None
    role: Optional[UserRole] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    avatar_url: Optional[_Url] = None
    is_approved: Optional[bool] = None


class MeUpdate(BaseModel):
    """Body for PUT /users (self). Role and approval are not self-service."""

    email: _Email
    password: _Password
    first_name: Optional[str]
    last_name: Optional[str]
    avatar_url: Optional[_Url]


class MePatch(BaseModel):
    """Body for PATCH /users (self)."""

    email: Optional[_Email] = None
    password: Optional[_Password] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    avatar_url: Optional[_Url] = None


# Fields that may never be written as NULL even when a PATCH sends null.
NON_NULLABLE_FIELDS = frozenset({"email", "password", "role", "is_approved"})


def patch_changes(body: BaseModel) -> dict:
    """Fields explicitly sent in a PATCH body, minus nulls on required columns."""
    sent = body.model_dump(exclude_unset=True)
    return {k: v for k, v in sent.items() if not (v is None and k in NON_NULLABLE_FIELDS)}


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------


class UserResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    email: str
    role: UserRole
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    avatar_url: Optional[str] = None
    is_approved: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_user(cls, user: User) -> "UserResponse":
        """Factory Method: the domain -> contract mapping lives beside the contract."""
        return cls(
            id=user.id,
            email=user.email,
            role=user.role,
            first_name=user.first_name,
            last_name=user.last_name,
            avatar_url=user.avatar_url,
            is_approved=user.is_approved,
            created_at=user.created_at,
            updated_at=user.updated_at,
        )


class UserEnvelope(BaseModel):
    data: Optional[UserResponse]


class SessionResponse(BaseModel):
    """The current session as returned by GET /auth/me. The id is not echoed back."""

    valid_until: datetime
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    user: UserResponse

    @classmethod
    def from_session(cls, session: Session) -> "SessionResponse":
        return cls(
            valid_until=session.valid_until,
            created_at=session.created_at,
            updated_at=session.updated_at,
            user=UserResponse.from_user(session.user),
        )


class MeResponse(BaseModel):
    data: Optional[SessionResponse]


class LoginResponse(BaseModel):
    user_id: str
    role: UserRole
    valid_until: datetime


class Link(BaseModel):
    number: int
    href: str


class UsersResponse(BaseModel):
    data: Optional[list[UserResponse]]
    # Keys: self, first, prev, next, last (see api/pagination.py).
    page: Optional[dict[str, Link]] = None


class HealthResponse(BaseModel):
    status: str = "healthy"
    version: str
    components: dict[str, str] = {}
