"""Time and identifier sources.

Stores, the API key store and the cached executor never call
``datetime.now`` or ``uuid4`` directly; they receive a Clock and an
IdGenerator so tests can pin both.
"""

from __future__ import annotations

import secrets
import uuid
from datetime import datetime, timedelta, timezone
from typing import Protocol


class Clock(Protocol):
    def now(self) -> datetime: ...


class IdGenerator(Protocol):
    def generate(self) -> str: ...


class KeyGenerator(Protocol):
    def generate(self, size: int) -> str: ...


class SystemClock:
    """Wall clock, always timezone-aware UTC."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class FrozenClock:
    """Clock that only moves when told to."""

    def __init__(self, now: datetime | None = None) -> None:
        self._now = now or datetime(2020, 1, 1, tzinfo=timezone.utc)

    def now(self) -> datetime:
        return self._now

    def set(self, now: datetime) -> None:
        self._now = now

    def advance(self, delta: timedelta) -> datetime:
        self._now = self._now + delta
        return self._now


class UUIDGenerator:
    def generate(self) -> str:
        return str(uuid.uuid4())


class SecureKeyGenerator:
    """URL-safe text from ``size`` bytes of CSPRNG output."""

    def generate(self, size: int) -> str:
        return secrets.token_urlsafe(size)
