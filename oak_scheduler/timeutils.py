"""Timestamp unit handling and hour arithmetic."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable, Iterable

from oak_scheduler.config import SECONDS_PER_HOUR

MS_IN_SEC = 1000
# Anything above this is read as epoch milliseconds (year 5138 in seconds).
MILLISECOND_THRESHOLD = 100_000_000_000

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_epoch_seconds(moment: datetime) -> int:
    """Whole epoch seconds for an aware datetime, rounding down."""

    return int(moment.timestamp())


def normalize_to_seconds(timestamps: Iterable[int]) -> list[int | float]:
    """Convert a mix of epoch-second and epoch-millisecond values to seconds.

    The unit is sniffed per value: anything above MILLISECOND_THRESHOLD is
    treated as milliseconds. Milliseconds that are not a whole second keep
    their fraction, so they can never pass the hour alignment check.
    """
    return [_ms_to_seconds(t) if t > MILLISECOND_THRESHOLD else t for t in timestamps]


def _ms_to_seconds(ms: int) -> int | float:
    seconds, remainder = divmod(ms, MS_IN_SEC)
    return seconds if remainder == 0 else ms / MS_IN_SEC


def next_hour(now_seconds: int) -> int:
    """Start of the hour following the one containing now_seconds."""

    return now_seconds - now_seconds % SECONDS_PER_HOUR + SECONDS_PER_HOUR
