"""
auth/dependencies.py -- FastAPI Depends() helpers for session authentication.

Every helper converges on the same path: read the session cookie, hand it to
AuthService.validate_request(), then run the access gate.

try_get_auth()     -- soft mode: returns Authenticated or None, never raises
                      on a missing/invalid session (StoreUnavailable still
                      propagates).
require_scope(s)   -- factory for required mode: 401 with no valid session,
                      403 when the session lacks scope `s`.
get_current_auth   -- require_scope("user"): any logged-in principal.
require_admin      -- require_scope("ADMIN").

A cookie that no longer maps to a live session is cleared on the response
in both modes so the client stops replaying a dead token.

These are plain `def` functions: FastAPI runs them in its thread pool, which
keeps the synchronous store calls off the event loop.

Layer rule: this is the only auth/ module allowed to import fastapi.
"""

from __future__ import annotations

from collections.abc import Callable

from fastapi import Request, Response

from auth.errors import Unauthenticated
from auth.models import UserRole
from auth.scopes import USER_SCOPE, enforce
from auth.service import Authenticated, AuthService


def get_auth_service(request: Request) -> AuthService:
    return request.app.state.auth_service


def _authenticate(request: Request) -> tuple[Authenticated | None, bool]:
    """Return (outcome, cookie_was_presented)."""
    service = get_auth_service(request)
    cookie = request.cookies.get(service.codec.name)
    return service.validate_request(cookie), cookie is not None


def try_get_auth(request: Request, response: Response) -> Authenticated | None:
    """Authenticate if possible. Use for routes that behave differently when logged in.

        @router.get("/auth/me")
        def me(auth: Authenticated | None = Depends(try_get_auth)): ...
    """
    auth, presented = _authenticate(request)
    if auth is None and presented:
        get_auth_service(request).codec.clear_cookie(response)
    return auth


def require_scope(required_scope: str) -> Callable[[Request], Authenticated]:
    """Build a dependency that admits only sessions holding required_scope.

        @router.delete("/users/{user_id}")
        def delete_user(auth: Authenticated = Depends(require_scope("ADMIN"))): ...
    """

    def dependency(request: Request) -> Authenticated:
        auth, presented = _authenticate(request)
        try:
            enforce(required_scope, auth.scopes if auth is not None else None)
        except Unauthenticated as exc:
            exc.clear_cookie = presented
            raise
        return auth

    return dependency


get_current_auth = require_scope(USER_SCOPE)
require_admin = require_scope(UserRole.ADMIN.value)
