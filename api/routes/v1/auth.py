"""
api/routes/v1/auth.py -- Registration, login, logout and current-session endpoints.

Routes:
  POST /api/v1/auth/register   -- create an unapproved USER account
  POST /api/v1/auth/login      -- password login; sets the encrypted session cookie
  POST /api/v1/auth/logout     -- revokes the session and clears the cookie
  GET  /api/v1/auth/me         -- current session + user, or {"data": null}

Security:
  POST /login is rate-limited per IP (LOGIN_RATE_LIMIT, default 10/minute).
  AuthService.login() equalizes bcrypt work for unknown emails and returns
  the same 404 for unknown email and wrong password. Never inline the lookup
  and compare here.
  Cache-Control: no-store on login responses.

Handlers are plain `def` so FastAPI runs them in its thread pool; bcrypt and
the synchronous store never block the event loop.

AuthError subclasses raised by the service propagate to the handler in
api/main.py, which renders the ErrorResponse envelope.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from api.limiter import limiter, login_rate_limit
from api.models import Credentials, LoginResponse, MeResponse, SessionResponse, UserEnvelope, UserResponse
from auth.dependencies import get_auth_service, try_get_auth
from auth.service import Authenticated, AuthService

# Auth policy:
# - POST /api/v1/auth/register: public
# - POST /api/v1/auth/login:    public, rate limited
# - POST /api/v1/auth/logout:   public -- revoking needs no prior validation
# - GET  /api/v1/auth/me:       try mode (try_get_auth)
router = APIRouter()


@router.post("/auth/register", response_model=UserEnvelope, status_code=201)
def register(body: Credentials, service: AuthService = Depends(get_auth_service)) -> UserEnvelope:
    """Self-service sign-up. 400 weak_credential, 409 conflict.

    The account starts unapproved; login answers 401 until an admin approves it.
    """
    user = service.register(body.email, body.password)
    return UserEnvelope(data=UserResponse.from_user(user))


@limiter.limit(login_rate_limit)  # must be ABOVE @router to preserve FastAPI introspection
@router.post("/auth/login", response_model=LoginResponse)
def login(request: Request, body: Credentials) -> JSONResponse:
    """Authenticate with email and password; set the session cookie."""
    service = get_auth_service(request)
    session = service.login(body.email, body.password)

    resp = JSONResponse(
        status_code=200,
        content=LoginResponse(
            user_id=session.user_id,
            role=session.user.role,
            valid_until=session.valid_until,
        ).model_dump(mode="json"),
    )
    service.codec.set_cookie(resp, session.id)
    resp.headers["Cache-Control"] = "no-store"
    return resp


@router.post("/auth/logout")
def logout(request: Request) -> JSONResponse:
    """Revoke the session behind the cookie (if any) and clear the cookie."""
    service = get_auth_service(request)
    service.logout(request.cookies.get(service.codec.name))
    resp = JSONResponse(content={"message": "Logged out."})
    service.codec.clear_cookie(resp)
    return resp


@router.get("/auth/me", response_model=MeResponse)
def me(auth: Authenticated | None = Depends(try_get_auth)) -> MeResponse:
    """Return the current session, or data=null when not logged in."""
    if auth is None:
        return MeResponse(data=None)
    return MeResponse(data=SessionResponse.from_session(auth.session))
