"""
auth/passwords.py -- bcrypt password hashing and verification.

Using bcrypt directly rather than passlib[bcrypt]: passlib's wrap-bug
detection trips over bcrypt 4.x, and direct usage has no compatibility shim.

bcrypt only reads the first 72 bytes of its input. bcrypt 5.x raises on
longer inputs instead of truncating, so both hash() and verify() cut the
encoded password to 72 bytes themselves. Hashing never fails because of what
the user typed.

verify_dummy() exists for timing equalization [C1]: when a login names an
unknown email there is no stored hash to check, but the response must cost
the same as a wrong-password response. The dummy hash is computed once per
hasher, at construction, so the first login is not measurably slower.
"""

from __future__ import annotations

import bcrypt

from auth.errors import HashingError

_BCRYPT_MAX_BYTES = 72


def _encode(plain: str) -> bytes:
    # surrogatepass: lone surrogates are valid str content and must still hash.
    return plain.encode("utf-8", "surrogatepass")[:_BCRYPT_MAX_BYTES]


class PasswordHasher:
    """Salted adaptive hashing with a fixed cost factor.

    Usage:
        hasher = PasswordHasher(rounds=12)
        hashed = hasher.hash("correct horse")
        hasher.verify("correct horse", hashed)   # True
    """

    def __init__(self, rounds: int = 12) -> None:
        self.rounds = rounds
        self._dummy_hash = self.hash("tokenwarden_timing_dummy")

    def hash(self, plain: str) -> str:
        """Return a bcrypt hash of plain. Raises HashingError if bcrypt fails."""
        try:
            salt = bcrypt.gensalt(rounds=self.rounds)
            return bcrypt.hashpw(_encode(plain), salt).decode("utf-8")
        except (ValueError, TypeError) as exc:
            raise HashingError() from exc

    def verify(self, plain: str, hashed: str) -> bool:
        """Return True if plain matches hashed.

        bcrypt.checkpw compares in constant time. A malformed stored hash is
        treated as a mismatch rather than an error.
        """
        try:
            return bcrypt.checkpw(_encode(plain), hashed.encode("utf-8"))
        except ValueError:
            return False

    def verify_dummy(self, plain: str) -> None:
        """Burn one full bcrypt check against the dummy hash."""
        self.verify(plain, self._dummy_hash)
