"""
auth/scopes.py -- Scope derivation and the per-route access gate.

A scope is a plain string capability. Every authenticated caller holds:

    "user"            -- any logged-in principal
    "user-<id>"       -- this specific principal
    "<ROLE>"          -- the role name, e.g. "ADMIN"

Routes declare at most one required scope. No required scope means public.

The gate has three outcomes. DENY_UNAUTHENTICATED and DENY_SCOPE are logged
separately but both surface as AccessDenied subclasses, so callers that only
care about "allowed or not" can treat them as one.
"""

from __future__ import annotations

import logging
from enum import Enum

from auth.errors import Forbidden, Unauthenticated
from auth.models import Session, UserRole

logger = logging.getLogger("gatekeeper.auth")

USER_SCOPE = "user"


def user_scope(user_id: str) -> str:
    return f"user-{user_id}"


def resolve_scopes(session: Session) -> frozenset[str]:
    """Derive the scope set for a validated session. Pure; no store access."""
    role = session.user.role if session.user is not None else UserRole.USER
    return frozenset({USER_SCOPE, user_scope(session.user_id), UserRole(role).value})


class AccessDecision(str, Enum):
    ALLOW = "allow"
    DENY_UNAUTHENTICATED = "deny_unauthenticated"
    DENY_SCOPE = "deny_scope"


def authorize(required_scope: str | None, scopes: frozenset[str] | None) -> AccessDecision:
    """Decide whether a caller holding `scopes` may reach a route.

    scopes is None when the request has no valid session.
    """
    if required_scope is None:
        return AccessDecision.ALLOW
    if scopes is None:
        return AccessDecision.DENY_UNAUTHENTICATED
    if required_scope in scopes:
        return AccessDecision.ALLOW
    return AccessDecision.DENY_SCOPE


def enforce(required_scope: str | None, scopes: frozenset[str] | None) -> None:
    """authorize(), raising Unauthenticated / Forbidden instead of returning a denial."""
    decision = authorize(required_scope, scopes)
    if decision is AccessDecision.ALLOW:
        return
    logger.info("Access denied (%s, required=%s)", decision.value, required_scope)
    if decision is AccessDecision.DENY_UNAUTHENTICATED:
        raise Unauthenticated()
    raise Forbidden()
