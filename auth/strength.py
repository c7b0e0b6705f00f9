"""
auth/strength.py -- Password strength gate (zxcvbn).

zxcvbn estimates how many guesses an attacker needs and buckets that into a
0..4 score. Anything below MIN_SCORE (3) is rejected with WeakCredential on
every path that sets a password: registration, admin create, self update and
admin update, full or partial.

Context strings (the account's email, names) are fed to zxcvbn as user
inputs, so "jan.kowalski" is weak for jan.kowalski@example.com even though it
would look random in isolation.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable

from zxcvbn import zxcvbn

from auth.errors import WeakCredential

logger = logging.getLogger("gatekeeper.auth")

MIN_SCORE = 3

# zxcvbn refuses long inputs (its matchers are super-linear). The bcrypt
# hasher ignores everything past 72 bytes anyway.
_MAX_SCORED_CHARS = 72

_TOKEN_SPLIT = re.compile(r"[._+\-]+")


def _context_tokens(context: Iterable[str | None]) -> list[str]:
    tokens: list[str] = []
    for item in context:
        if not item:
            continue
        tokens.append(item)
        if "@" in item:
            local, _, domain = item.partition("@")
            tokens.extend([local, domain])
            tokens.extend(t for t in _TOKEN_SPLIT.split(local) if t)
    return tokens


class StrengthEvaluator:
    def __init__(self, min_score: int = MIN_SCORE) -> None:
        self.min_score = min_score

    def score(self, password: str, context: Iterable[str | None] = ()) -> int:
        """Return the zxcvbn score (0..4) of password given the account context."""
        result = zxcvbn(password[:_MAX_SCORED_CHARS], user_inputs=_context_tokens(context))
        return int(result["score"])

    def ensure_strong(self, password: str, context: Iterable[str | None] = ()) -> None:
        """Raise WeakCredential if password scores below the threshold."""
        score = self.score(password, context)
        if score < self.min_score:
            logger.info("Rejected weak password (score=%d, required=%d)", score, self.min_score)
            raise WeakCredential()
