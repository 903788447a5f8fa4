"""
auth/service.py -- AuthService: register, login, refresh, logout, authorize.

Orchestrates PasswordHasher, TokenSigner, PrincipalStore and RefreshTokenStore.
This is the only place the enumeration-resistance rules live:

  [C1] login() always runs bcrypt, against the stored hash or the hasher's
       dummy hash, and returns the same InvalidCredentials for "no such
       email" and "wrong password".

  refresh() collapses every lookup failure (unknown, revoked, expired) into
       InvalidCredentials. The store already returns None for all three.

  authorize() is TokenSigner.verify() and nothing else -- no store access.

Rotation (refresh):
  lookup old -> issue access -> create new refresh -> revoke old.
  The old token is revoked only after the new one is committed. A crash in
  between leaves two valid refresh tokens rather than none; the user keeps a
  working session at the cost of a short reuse window.

Two concurrent refresh() calls with the same token can both pass lookup
before either revokes, and both mint a new pair. That fork is accepted; the
token primary key keeps the table consistent.

Deadlines: every public method takes an optional deadline, a time.monotonic()
value. It is checked before each storage step; once passed the method raises
DeadlineExceeded without starting further work. bcrypt itself is not
interruptible.
"""

from __future__ import annotations

import time

from auth.errors import Conflict, DeadlineExceeded, InvalidCredentials, InvalidInput
from auth.models import LoginResult, PrincipalView, TokenPair
from auth.passwords import PasswordHasher
from auth.store import PrincipalStore, RefreshTokenStore
from auth.tokens import TokenSigner

MAX_EMAIL_LENGTH = 255


def normalize_email(email: str) -> str:
    return email.strip().lower()


def _check_deadline(deadline: float | None) -> None:
    if deadline is not None and time.monotonic() >= deadline:
        raise DeadlineExceeded()


class AuthService:
    """Token lifecycle engine.

    Usage:
        service = AuthService(hasher, signer, principals, refresh_tokens)
        service.register("a@b.com", "password1")
        result = service.login("a@b.com", "password1")
        principal_id = service.authorize(result.access_token)
        pair = service.refresh(result.refresh_token.token)
        service.logout(pair.refresh_token.token)
    """

    def __init__(
        self,
        hasher: PasswordHasher,
        signer: TokenSigner,
        principals: PrincipalStore,
        refresh_tokens: RefreshTokenStore,
        min_password_length: int = 8,
    ) -> None:
        self.hasher = hasher
        self.signer = signer
        self.principals = principals
        self.refresh_tokens = refresh_tokens
        self.min_password_length = min_password_length

    def register(self, email: str, password: str, deadline: float | None = None) -> PrincipalView:
        """Create a principal and return its public view.

        Raises InvalidInput for an empty/oversized email or a short password,
        Conflict if the normalized email is already registered.
        """
        email = normalize_email(email)
        if not email:
            raise InvalidInput("Email is required.")
        if len(email) > MAX_EMAIL_LENGTH:
            raise InvalidInput(f"Email must be at most {MAX_EMAIL_LENGTH} characters.")
        if len(password) < self.min_password_length:
            raise InvalidInput(f"Password must be at least {self.min_password_length} characters.")

        _check_deadline(deadline)
        if self.principals.get_by_email(email) is not None:
            raise Conflict()
        # A concurrent registration can still win between the check and the
        # insert; PrincipalStore.create() reports that as Conflict too.
        password_hash = self.hasher.hash(password)
        _check_deadline(deadline)
        return self.principals.create(email, password_hash).public()

    def login(self, email: str, password: str, deadline: float | None = None) -> LoginResult:
        """Verify credentials and issue an access token plus a refresh token."""
        _check_deadline(deadline)
        principal = self.principals.get_by_email(normalize_email(email))
        if principal is None:
            # Equalize timing -- do NOT return before running bcrypt [C1]
            self.hasher.verify_dummy(password)
            raise InvalidCredentials()
        if not self.hasher.verify(password, principal.password_hash):
            raise InvalidCredentials()

        access_token = self.signer.issue(principal.id)
        _check_deadline(deadline)
        refresh_token = self.refresh_tokens.create(principal.id)
        return LoginResult(
            principal=principal.public(),
            access_token=access_token,
            refresh_token=refresh_token,
        )

    def refresh(self, token: str, deadline: float | None = None) -> TokenPair:
        """Exchange a valid refresh token for a new access/refresh pair."""
        _check_deadline(deadline)
        current = self.refresh_tokens.lookup(token)
        if current is None:
            raise InvalidCredentials()

        access_token = self.signer.issue(current.principal_id)
        _check_deadline(deadline)
        replacement = self.refresh_tokens.create(current.principal_id)
        # Revoke only after the replacement is committed (fail-safe-open).
        _check_deadline(deadline)
        self.refresh_tokens.revoke(current.token)
        return TokenPair(access_token=access_token, refresh_token=replacement)

    def logout(self, token: str, deadline: float | None = None) -> None:
        """Revoke a refresh token. Idempotent; issued access tokens stay valid until they expire."""
        _check_deadline(deadline)
        self.refresh_tokens.revoke(token)

    def authorize(self, access_token: str) -> str:
        """Return the principal ID for a valid access token. Raises Unauthorized subclasses."""
        return self.signer.verify(access_token)

    def get_principal(self, principal_id: str, deadline: float | None = None) -> PrincipalView:
        """Return the public view of an authorized principal.

        A token can outlive its principal (admin deletion). That case is
        reported as InvalidCredentials, the same as any other auth failure.
        """
        _check_deadline(deadline)
        principal = self.principals.get_by_id(principal_id)
        if principal is None:
            raise InvalidCredentials()
        return principal.public()
