# Rev 0.7.0
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Callable

# Any zero-arg callable returning an aware UTC datetime
Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_iso(ts: datetime) -> str:
    """Fixed-width ISO text so lexical order in SQLite matches time order."""
    return ts.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


def from_iso(s: str | None) -> datetime | None:
    if not s:
        return None
    return datetime.strptime(s, "%Y-%m-%dT%H:%M:%S.%fZ").replace(tzinfo=timezone.utc)


class FixedClock:
    """Deterministic clock; each call advances by `step` seconds."""

    def __init__(self, start: datetime, step: float = 1.0):
        self._now = start
        self._step = step

    def __call__(self) -> datetime:
        current = self._now
        self._now = current + timedelta(seconds=self._step)
        return current
