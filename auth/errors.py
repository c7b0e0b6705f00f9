"""
auth/errors.py -- Typed outcomes for every failure the auth core can produce.

Each error carries a stable machine-readable code, a human message and the
HTTP status the routing layer should answer with. api/main.py registers a
single exception handler for AuthError, so route code just lets these
propagate.

Messages must never include secrets: no plaintext passwords, digests, raw
session ids or cookie values.

Layer rule: no imports from api/ (status codes are plain ints on purpose).
"""

from __future__ import annotations


class AuthError(Exception):
    code = "auth_error"
    message = "Authentication error."
    status_code = 400

    def __init__(self, message: str | None = None) -> None:
        if message is not None:
            self.message = message
        super().__init__(self.message)


class WeakCredential(AuthError):
    """Password scored below the strength threshold. User-correctable."""

    code = "weak_credential"
    message = "TOO_EASY"
    status_code = 400


class Conflict(AuthError):
    """Email (or, internally, a session id) already exists."""

    code = "conflict"
    message = "A user with that email already exists."
    status_code = 409


class InvalidCredentials(AuthError):
    """Unknown email or wrong password -- deliberately one error for both."""

    code = "not_found"
    message = "Invalid email or password."
    status_code = 404


class Unapproved(AuthError):
    """Credentials matched but the account has not been approved yet."""

    code = "unapproved"
    message = "You're not approved"
    status_code = 401


class UserNotFound(AuthError):
    code = "not_found"
    message = "User not found."
    status_code = 404


class AccessDenied(AuthError):
    """Common base for the two request-gate denials.

    Callers can catch AccessDenied without caring which one fired; logging
    distinguishes them by subclass.
    """

    code = "access_denied"
    message = "Access denied."
    status_code = 403


class Unauthenticated(AccessDenied):
    code = "unauthenticated"
    message = "Authentication required."
    status_code = 401

    def __init__(self, message: str | None = None, clear_cookie: bool = False) -> None:
        super().__init__(message)
        # Set when the request carried a cookie that no longer maps to a
        # valid session; the HTTP layer deletes it from the client.
        self.clear_cookie = clear_cookie


class Forbidden(AccessDenied):
    code = "forbidden"
    message = "Insufficient scope."
    status_code = 403


class StoreUnavailable(AuthError):
    """Persistence failure. Fatal for the request; retries belong to the DB client."""

    code = "store_unavailable"
    message = "Storage backend unavailable."
    status_code = 503
