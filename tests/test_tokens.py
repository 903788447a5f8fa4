"""Unit tests for auth/tokens.py -- access token issue/verify and refresh token strings.

Covers:
- issue then verify returns the same principal ID
- claims carry sub/iat/exp with exp - iat equal to the TTL
- expiry is reported as ExpiredTokenError, even when the signature is also bad
- tokens signed with another secret fail with InvalidSignatureError
- tampered payloads, alg=none and garbage input
- refresh token strings are 256-bit base64url without padding
"""

from __future__ import annotations

import base64
import json
import re
from datetime import timedelta

import pytest
from jose import jwt

from auth.errors import ExpiredTokenError, InvalidSignatureError, MalformedTokenError, Unauthorized
from auth.tokens import DEFAULT_ACCESS_TTL, TokenSigner, generate_refresh_token
from tests.conftest import OTHER_SECRET, TEST_SECRET, FrozenClock


def _b64(data: dict) -> str:
    return base64.urlsafe_b64encode(json.dumps(data).encode()).rstrip(b"=").decode()


# ---------------------------------------------------------------------------
# Issue / verify
# ---------------------------------------------------------------------------


def test_issue_then_verify_round_trip(signer: TokenSigner) -> None:
    token = signer.issue("principal-123")
    assert signer.verify(token) == "principal-123"


def test_claims_bind_subject_and_ttl(signer: TokenSigner, clock: FrozenClock) -> None:
    claims = jwt.get_unverified_claims(signer.issue("principal-123"))
    assert claims["sub"] == "principal-123"
    assert claims["iat"] == int(clock.now.timestamp())
    assert claims["exp"] - claims["iat"] == 15 * 60


def test_default_ttl_is_fifteen_minutes() -> None:
    assert DEFAULT_ACCESS_TTL == timedelta(minutes=15)


def test_issue_accepts_explicit_ttl(signer: TokenSigner) -> None:
    claims = jwt.get_unverified_claims(signer.issue("p", ttl=timedelta(seconds=30)))
    assert claims["exp"] - claims["iat"] == 30


def test_token_is_valid_until_exactly_expiry(signer: TokenSigner, clock: FrozenClock) -> None:
    token = signer.issue("p")
    clock.advance(seconds=15 * 60)
    assert signer.verify(token) == "p"


def test_empty_secret_rejected() -> None:
    with pytest.raises(ValueError):
        TokenSigner(secret_key="")


# ---------------------------------------------------------------------------
# Rejections
# ---------------------------------------------------------------------------


def test_expired_token_rejected(signer: TokenSigner, clock: FrozenClock) -> None:
    token = signer.issue("p")
    clock.advance(minutes=15, seconds=1)
    with pytest.raises(ExpiredTokenError):
        signer.verify(token)


def test_expired_wins_over_bad_signature(clock: FrozenClock) -> None:
    """An expired token is Expired regardless of which key signed it."""
    foreign = TokenSigner(secret_key=OTHER_SECRET, clock=clock).issue("p")
    clock.advance(hours=1)
    with pytest.raises(ExpiredTokenError):
        TokenSigner(secret_key=TEST_SECRET, clock=clock).verify(foreign)


def test_foreign_secret_rejected(signer: TokenSigner, clock: FrozenClock) -> None:
    foreign = TokenSigner(secret_key=OTHER_SECRET, clock=clock).issue("p")
    with pytest.raises(InvalidSignatureError):
        signer.verify(foreign)


def test_tampered_subject_rejected(signer: TokenSigner) -> None:
    header, _payload, signature = signer.issue("alice").split(".")
    claims = jwt.get_unverified_claims(signer.issue("alice"))
    claims["sub"] = "mallory"
    forged = ".".join([header, _b64(claims), signature])
    with pytest.raises(InvalidSignatureError):
        signer.verify(forged)


def test_alg_none_rejected(signer: TokenSigner, clock: FrozenClock) -> None:
    now = int(clock.now.timestamp())
    unsigned = ".".join([_b64({"alg": "none", "typ": "JWT"}), _b64({"sub": "p", "iat": now, "exp": now + 60}), ""])
    with pytest.raises(InvalidSignatureError):
        signer.verify(unsigned)


@pytest.mark.parametrize("token", ["", "garbage", "a.b.c", "a.b", "....."])
def test_garbage_is_malformed(signer: TokenSigner, token: str) -> None:
    with pytest.raises(MalformedTokenError):
        signer.verify(token)


@pytest.mark.parametrize(
    "claims",
    [
        {"iat": 1, "exp": 2**40},  # no sub
        {"sub": "", "iat": 1, "exp": 2**40},
        {"sub": 42, "iat": 1, "exp": 2**40},
        {"sub": "p", "iat": 1},  # no exp
        {"sub": "p", "exp": 2**40},  # no iat
        {"sub": "p", "iat": 1, "exp": "tomorrow"},
        {"sub": "p", "iat": True, "exp": 2**40},
    ],
)
def test_missing_or_mistyped_claims_are_malformed(signer: TokenSigner, claims: dict) -> None:
    token = jwt.encode(claims, TEST_SECRET, algorithm="HS256")
    with pytest.raises(MalformedTokenError):
        signer.verify(token)


def test_all_rejections_are_unauthorized() -> None:
    for error in (ExpiredTokenError, InvalidSignatureError, MalformedTokenError):
        assert issubclass(error, Unauthorized)
    codes = {ExpiredTokenError.code, InvalidSignatureError.code, MalformedTokenError.code}
    assert len(codes) == 3


# ---------------------------------------------------------------------------
# Refresh token strings
# ---------------------------------------------------------------------------


def test_refresh_token_is_urlsafe_without_padding() -> None:
    token = generate_refresh_token()
    assert re.fullmatch(r"[A-Za-z0-9_-]{43}", token)


def test_refresh_token_has_256_bits() -> None:
    token = generate_refresh_token()
    assert len(base64.urlsafe_b64decode(token + "=")) == 32


def test_refresh_tokens_are_unique() -> None:
    assert len({generate_refresh_token() for _ in range(200)}) == 200
