"""Test doubles shared across test modules."""

from __future__ import annotations

from datetime import datetime, timedelta


class FakeClock:
    """A controllable replacement for ``datetime.now(tz=UTC)``."""

    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now
