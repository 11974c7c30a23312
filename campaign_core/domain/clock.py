"""Time as an explicit capability."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Protocol


class Clock(Protocol):
    def now(self) -> datetime: ...


class SystemClock:
    """Wall clock in UTC."""

    def now(self) -> datetime:
        return datetime.now(UTC)


@dataclass(slots=True)
class FixedClock:
    """Clock pinned to a single instant; used by tests and replays."""

    at: datetime

    def now(self) -> datetime:
        return ensure_utc(self.at)

    def advance(self, **kwargs: float) -> None:
        self.at = self.at + timedelta(**kwargs)


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC and normalise aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def start_of_day(value: datetime) -> datetime:
    value = ensure_utc(value)
    return value.replace(hour=0, minute=0, second=0, microsecond=0)


def windows_overlap(
    a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime
) -> bool:
    """Closed-interval overlap used by the conflict queries."""
    return ensure_utc(a_start) <= ensure_utc(b_end) and ensure_utc(a_end) >= ensure_utc(b_start)
