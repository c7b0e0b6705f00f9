"""
auth/passwords.py -- One-way salted password hashing (bcrypt).

bcrypt digests are self-describing: "$2b$<cost>$<22-char salt><31-char hash>".
verify() reads cost and salt back out of the stored digest, so raising
HASH_COST later leaves every historical digest verifiable.

Using bcrypt directly rather than passlib: passlib's wrap-bug detection feeds
bcrypt a password longer than 72 bytes, which bcrypt 4.x+ rejects. Inputs are
truncated to 72 bytes here, identically on hash and verify.

Nothing in this module logs plaintext or digests.
"""

from __future__ import annotations

import bcrypt

# bcrypt only ever reads the first 72 bytes of its input.
_BCRYPT_MAX_BYTES = 72


def _encode(plain: str) -> bytes:
    return plain.encode("utf-8")[:_BCRYPT_MAX_BYTES]


class PasswordHasher:
    """bcrypt hash/verify with a configurable work factor.

    Usage:
        hasher = PasswordHasher(cost=12)
        digest = hasher.hash("correct horse battery staple")
        hasher.verify("correct horse battery staple", digest)  # True
    """

    def __init__(self, cost: int = 10) -> None:
        self.cost = cost
        # Timing equalization dummy. Computed once so login for an unknown
        # email costs the same bcrypt work as a wrong password.
        self._dummy_hash = self.hash("gatekeeper_timing_dummy")

    def hash(self, plain: str) -> str:
        """Return a bcrypt digest of the plaintext with a fresh random salt."""
        return bcrypt.hashpw(_encode(plain), bcrypt.gensalt(rounds=self.cost)).decode("utf-8")

    def verify(self, plain: str, digest: str) -> bool:
        """Return True if plain matches digest. Malformed digests never match."""
        try:
            return bcrypt.checkpw(_encode(plain), digest.encode("utf-8"))
        except ValueError:
            return False

    def verify_dummy(self, plain: str) -> None:
        """Spend one bcrypt comparison without a real digest.

        Call this when the account does not exist so the response time does
        not reveal which emails are registered.
        """
        self.verify(plain, self._dummy_hash)
