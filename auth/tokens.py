"""
auth/tokens.py -- Stateless access tokens (JWT, HS256) and refresh token strings.

Security design decisions:
  JWT: python-jose with HS256. Tokens carry only sub (principal ID), iat and
       exp. Verification needs no database access, which keeps authorization
       O(1); the short TTL bounds the damage of a leaked token without any
       revocation list for access tokens.

  Verification order: claims are decoded first (malformed -> MalformedToken),
       expiry is checked against the injected clock next (-> ExpiredToken),
       and the signature last (-> InvalidSignature). An expired token is
       reported as expired whatever its signature, so the diagnosis does not
       depend on which key the caller holds.

  SECRET_KEY: injected once at construction and never reassigned. The signer
       does not read settings, so every test can use its own secret.

  Refresh tokens: secrets.token_urlsafe(32) -- 256 bits from the OS CSPRNG,
       base64url without padding.

Layer rule: no imports from api/ or auth/store.py. The access-token path must
never depend on the persistence layer.
"""

from __future__ import annotations

import secrets
from datetime import timedelta

from jose import JWTError, jwt

from auth.errors import ExpiredTokenError, InvalidSignatureError, MalformedTokenError
from core.clock import Clock, utc_now

_ALGORITHM = "HS256"

DEFAULT_ACCESS_TTL = timedelta(minutes=15)

# Bytes of CSPRNG output per refresh token (256 bits).
REFRESH_TOKEN_BYTES = 32


def generate_refresh_token() -> str:
    """Return a new unguessable refresh token string (43 URL-safe characters)."""
    return secrets.token_urlsafe(REFRESH_TOKEN_BYTES)


class TokenSigner:
    """Issue and verify signed access tokens.

    Usage:
        signer = TokenSigner(secret_key=settings.secret_key)
        token = signer.issue(principal.id)
        principal_id = signer.verify(token)   # raises Unauthorized subclasses
    """

    def __init__(
        self,
        secret_key: str,
        ttl: timedelta = DEFAULT_ACCESS_TTL,
        clock: Clock = utc_now,
    ) -> None:
        if not secret_key:
            raise ValueError("secret_key must not be empty")
        self._secret_key = secret_key
        self.ttl = ttl
        self._clock = clock

    def issue(self, principal_id: str, ttl: timedelta | None = None) -> str:
        """Encode {sub, iat, exp} and sign it with the shared secret."""
        issued_at = self._clock()
        expires_at = issued_at + (ttl if ttl is not None else self.ttl)
        claims = {
            "sub": principal_id,
            "iat": int(issued_at.timestamp()),
            "exp": int(expires_at.timestamp()),
        }
        return jwt.encode(claims, self._secret_key, algorithm=_ALGORITHM)

    def verify(self, token: str) -> str:
        """Return the principal ID carried by a valid token.

        Raises MalformedTokenError, ExpiredTokenError or InvalidSignatureError.
        """
        try:
            claims = jwt.get_unverified_claims(token)
        except JWTError as exc:
            raise MalformedTokenError() from exc

        subject = claims.get("sub")
        expires = claims.get("exp")
        issued = claims.get("iat")
        if not isinstance(subject, str) or not subject:
            raise MalformedTokenError()
        # bool is an int subclass; a JSON true/false is not a timestamp.
        for value in (expires, issued):
            if not isinstance(value, int) or isinstance(value, bool):
                raise MalformedTokenError()

        if self._clock().timestamp() > expires:
            raise ExpiredTokenError()

        try:
            jwt.decode(
                token,
                self._secret_key,
                algorithms=[_ALGORITHM],
                # exp is enforced above against the injected clock.
                options={"verify_exp": False, "verify_iat": False, "verify_nbf": False},
            )
        except JWTError as exc:
            raise InvalidSignatureError() from exc
        return subject
