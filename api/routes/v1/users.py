"""
api/routes/v1/users.py -- User administration and self-service endpoints.

Routes:
  GET    /api/v1/users          -- paged list of other users        (ADMIN)
  POST   /api/v1/users          -- create a user                     (ADMIN)
  PUT    /api/v1/users          -- full update of the caller         (any user)
  PATCH  /api/v1/users          -- partial update of the caller      (any user)
  PUT    /api/v1/users/{id}     -- full update of any user           (ADMIN)
  PATCH  /api/v1/users/{id}     -- partial update of any user        (ADMIN)
  DELETE /api/v1/users/{id}     -- delete a user and their sessions  (ADMIN)

Every path that carries a password goes through AuthService, which runs the
strength gate before hashing (400 weak_credential) and the email fast-path
check (409 conflict). Self-service bodies have no role / is_approved fields,
so a user cannot promote or approve themselves.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Request, Response

from api.models import (
    MePatch,
    MeUpdate,
    UserCreate,
    UserEnvelope,
    UserPatch,
    UserResponse,
    UsersResponse,
    UserUpdate,
    patch_changes,
)
from api.pagination import build_page
from auth.dependencies import get_auth_service, get_current_auth, require_admin
from auth.service import Authenticated, AuthService

# Auth policy:
# - GET    /api/v1/users:        require_admin
# - POST   /api/v1/users:        require_admin
# - PUT    /api/v1/users:        get_current_auth (acts on the caller only)
# - PATCH  /api/v1/users:        get_current_auth (acts on the caller only)
# - PUT    /api/v1/users/{id}:   require_admin
# - PATCH  /api/v1/users/{id}:   require_admin
# - DELETE /api/v1/users/{id}:   require_admin
router = APIRouter()


@router.get("/users", response_model=UsersResponse)
def list_users(
    request: Request,
    take: int = Query(default=25, ge=25, le=500),
    page: int = Query(default=1, ge=1),
    auth: Authenticated = Depends(require_admin),
    service: AuthService = Depends(get_auth_service),
) -> UsersResponse:
    """List every user except the caller, ordered by email."""
    caller_id = auth.session.user_id
    users = service.users.list_users(exclude_id=caller_id, limit=take, offset=take * (page - 1))
    if not users:
        return UsersResponse(data=None)
    count = service.users.count_users(exclude_id=caller_id)
    return UsersResponse(
        data=[UserResponse.from_user(u) for u in users],
        page=build_page(request, take=take, page=page, count=count),
    )


@router.post("/users", response_model=UserEnvelope, status_code=201)
def create_user(
    body: UserCreate,
    auth: Authenticated = Depends(require_admin),
    service: AuthService = Depends(get_auth_service),
) -> UserEnvelope:
    user = service.create_user(
        email=body.email,
        password=body.password,
        role=body.role,
        is_approved=body.is_approved,
        first_name=body.first_name,
        last_name=body.last_name,
        avatar_url=body.avatar_url,
    )
    return UserEnvelope(data=UserResponse.from_user(user))


@router.put("/users", response_model=UserEnvelope)
def update_me(
    body: MeUpdate,
    auth: Authenticated = Depends(get_current_auth),
    service: AuthService = Depends(get_auth_service),
) -> UserEnvelope:
    user = service.update_user(auth.session.user_id, body.model_dump())
    return UserEnvelope(data=UserResponse.from_user(user))


@router.patch("/users", response_model=UserEnvelope)
def patch_me(
    body: MePatch,
    auth: Authenticated = Depends(get_current_auth),
    service: AuthService = Depends(get_auth_service),
) -> UserEnvelope:
    user = service.update_user(auth.session.user_id, patch_changes(body))
    return UserEnvelope(data=UserResponse.from_user(user))


@router.put("/users/{user_id}", response_model=UserEnvelope)
def update_user(
    user_id: str,
    body: UserUpdate,
    auth: Authenticated = Depends(require_admin),
    service: AuthService = Depends(get_auth_service),
) -> UserEnvelope:
    """Replace every mutable field of a user. 404 if the id is unknown."""
    user = service.update_user(user_id, body.model_dump())
    return UserEnvelope(data=UserResponse.from_user(user))


@router.patch("/users/{user_id}", response_model=UserEnvelope)
def patch_user(
    user_id: str,
    body: UserPatch,
    auth: Authenticated = Depends(require_admin),
    service: AuthService = Depends(get_auth_service),
) -> UserEnvelope:
    user = service.update_user(user_id, patch_changes(body))
    return UserEnvelope(data=UserResponse.from_user(user))


@router.delete("/users/{user_id}", status_code=204)
def delete_user(
    user_id: str,
    auth: Authenticated = Depends(require_admin),
    service: AuthService = Depends(get_auth_service),
) -> Response:
    """Delete a user. Deleting an unknown id is also a 204."""
    service.delete_user(user_id)
    return Response(status_code=204)
