"""
auth/cookies.py -- Session cookie codec (JWE via python-jose) and cookie helpers.

The browser only ever holds an encrypted envelope around the session id:

    JWE compact serialization, alg=dir, enc=A256GCM
    key     = SHA-256(SECRET_KEY)             (32 bytes, as A256GCM requires)
    payload = {"sid": <session id>, "exp": <unix seconds>}

AES-GCM gives confidentiality and integrity in one step: a client can neither
read its own session id nor forge or modify one. "exp" mirrors the cookie
max_age so a replayed cookie value stops decoding even if a browser ignored
the expiry. The server-side valid_until check is still the source of truth.

decode() returns None on every failure -- tampering, wrong key, truncation,
a forged header naming another key algorithm, expiry -- so callers have
exactly one "invalid" branch. jose reports header/key mismatches as JWKError,
which is not a JWEError; catch their common base JOSEError.

Layer rule: no imports from api/. Response objects are duck-typed (anything
with Starlette's set_cookie / delete_cookie).
"""

from __future__ import annotations

import hashlib
import json
import logging
from collections.abc import Callable
from datetime import datetime

from jose import jwe
from jose.exceptions import JOSEError

from auth.sessions import utcnow

logger = logging.getLogger("gatekeeper.auth")

_ALGORITHM = "dir"
_ENCRYPTION = "A256GCM"


class CookieCodec:
    def __init__(
        self,
        secret_key: str,
        ttl_seconds: int,
        name: str = "session",
        domain: str | None = None,
        secure: bool = False,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._key = hashlib.sha256(secret_key.encode("utf-8")).digest()
        self.ttl_seconds = ttl_seconds
        self.name = name
        self.domain = domain
        self.secure = secure
        self._clock = clock

    # ------------------------------------------------------------------
    # Codec
    # ------------------------------------------------------------------

    def encode(self, session_id: str) -> str:
        """Seal session_id into an opaque cookie value."""
        expires = int(self._clock().timestamp()) + self.ttl_seconds
        payload = json.dumps({"sid": session_id, "exp": expires}).encode("utf-8")
        token = jwe.encrypt(payload, self._key, algorithm=_ALGORITHM, encryption=_ENCRYPTION)
        return token.decode("ascii") if isinstance(token, bytes) else token

    def decode(self, value: str | None) -> str | None:
        """Return the session id sealed in value, or None if it cannot be trusted."""
        if not value:
            return None
        try:
            payload = json.loads(jwe.decrypt(value, self._key))
        except (JOSEError, ValueError):
            return None
        if not isinstance(payload, dict):
            return None
        session_id = payload.get("sid")
        expires = payload.get("exp")
        if not isinstance(session_id, str) or not isinstance(expires, int):
            return None
        if self._clock().timestamp() >= expires:
            return None
        return session_id

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    def set_cookie(self, response, session_id: str) -> None:
        """Write the encrypted session cookie on a Starlette response.

        httponly: JS cannot read it (XSS mitigation).
        samesite="lax": not sent on cross-site POSTs (CSRF mitigation).
        secure: HTTPS-only when SECURE_COOKIES=true.
        max_age: COOKIE_TTL_SECONDS, matching the sealed "exp".
        """
        response.set_cookie(
            self.name,
            value=self.encode(session_id),
            max_age=self.ttl_seconds,
            path="/",
            domain=self.domain,
            secure=self.secure,
            httponly=True,
            samesite="lax",
        )

    def clear_cookie(self, response) -> None:
        """Expire the session cookie on the client. Scoping must match set_cookie."""
        response.delete_cookie(
            self.name,
            path="/",
            domain=self.domain,
            secure=self.secure,
            httponly=True,
            samesite="lax",
        )
