"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Dataclasses own the
domain shape; stores and the service do the work.

Principal carries the password hash and therefore never leaves auth/.
Everything handed to callers goes through PrincipalView, which has no
password field at all -- there is nothing to forget to strip.

Layer rule: no imports from api/.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass
class Principal:
    """A registered identity. email is stored normalized (trimmed, lowercase)."""

    id: str
    email: str
    password_hash: str
    created_at: datetime
    updated_at: datetime

    def public(self) -> PrincipalView:
        return PrincipalView(
            id=self.id,
            email=self.email,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )


@dataclass(frozen=True)
class PrincipalView:
    """Outward-facing projection of a Principal."""

    id: str
    email: str
    created_at: datetime
    updated_at: datetime


@dataclass
class RefreshToken:
    """A persisted, revocable refresh credential.

    Valid iff revoked_at is None and expires_at is in the future. Once
    revoked_at is set it is never cleared.
    """

    token: str
    principal_id: str
    expires_at: datetime
    created_at: datetime
    updated_at: datetime
    revoked_at: datetime | None = None

    def is_valid(self, now: datetime) -> bool:
        return self.revoked_at is None and self.expires_at > now


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: RefreshToken


@dataclass(frozen=True)
class LoginResult:
    principal: PrincipalView
    access_token: str
    refresh_token: RefreshToken
