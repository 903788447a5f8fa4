"""
core/clock.py -- Wall-clock source shared by the token and store layers.

A Clock is any zero-argument callable returning an aware UTC datetime.
Production code uses utc_now(); tests pass a frozen or stepping clock so
expiry checks do not depend on real time.

Layer rule: core/ is the kernel. This module may not import from api/ or auth/.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timezone

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Return value as an aware UTC datetime.

    SQLite hands DateTime columns back as naive values. Every timestamp this
    project writes is UTC, so a naive value is tagged rather than converted.
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
