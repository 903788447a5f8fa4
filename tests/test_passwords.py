"""Unit tests for auth/passwords.py -- bcrypt hashing and verification.

Covers:
- hash/verify round trip, and mismatch for a different password
- salting: the same password hashes differently each time
- inputs past bcrypt's 72-byte ceiling hash without error
- malformed stored hashes verify as False instead of raising
- HashingError when bcrypt itself fails
"""

from unittest.mock import patch

import pytest

from auth.errors import HashingError
from auth.passwords import PasswordHasher


@pytest.mark.parametrize("password", ["password1", "correct horse battery staple", "pässwörd-ü", " spaces "])
def test_verify_matches_own_hash(hasher: PasswordHasher, password: str) -> None:
    assert hasher.verify(password, hasher.hash(password)) is True


def test_verify_rejects_other_password(hasher: PasswordHasher) -> None:
    hashed = hasher.hash("password1")
    assert hasher.verify("password2", hashed) is False
    assert hasher.verify("Password1", hashed) is False
    assert hasher.verify("", hashed) is False


def test_hash_is_salted(hasher: PasswordHasher) -> None:
    first = hasher.hash("password1")
    second = hasher.hash("password1")
    assert first != second
    assert hasher.verify("password1", first)
    assert hasher.verify("password1", second)


def test_hash_uses_configured_cost(hasher: PasswordHasher) -> None:
    # bcrypt hashes look like $2b$04$<salt+digest>; the second field is the cost.
    assert hasher.hash("password1").split("$")[2] == "04"


def test_hash_never_exposes_plaintext(hasher: PasswordHasher) -> None:
    assert "password1" not in hasher.hash("password1")


def test_long_password_is_accepted(hasher: PasswordHasher) -> None:
    """Passwords past bcrypt's 72-byte input ceiling must hash, not raise."""
    long_password = "x" * 200
    hashed = hasher.hash(long_password)
    assert hasher.verify(long_password, hashed)


def test_long_multibyte_password_is_accepted(hasher: PasswordHasher) -> None:
    """Truncation happens on encoded bytes, so multibyte input past 72 bytes is fine too."""
    password = "ü" * 50  # 100 bytes in UTF-8
    assert hasher.verify(password, hasher.hash(password))


@pytest.mark.parametrize("stored", ["", "not-a-bcrypt-hash", "$2b$04$tooshort"])
def test_malformed_stored_hash_is_mismatch(hasher: PasswordHasher, stored: str) -> None:
    assert hasher.verify("password1", stored) is False


def test_verify_dummy_returns_nothing(hasher: PasswordHasher) -> None:
    assert hasher.verify_dummy("anything") is None


def test_bcrypt_failure_raises_hashing_error(hasher: PasswordHasher) -> None:
    with patch("auth.passwords.bcrypt.gensalt", side_effect=ValueError("rng failure")):
        with pytest.raises(HashingError):
            hasher.hash("password1")


def test_lone_surrogate_password_hashes(hasher: PasswordHasher) -> None:
    """Any str is hashable, including ones that are not valid UTF-8 on their own."""
    password = "password\ud800"
    hashed = hasher.hash(password)
    assert hasher.verify(password, hashed)
    assert not hasher.verify("password", hashed)
