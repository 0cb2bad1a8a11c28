"""
Identifier and timestamp helpers.

Snapshot order is timestamp order, so snapshot timestamps come from a
MonotonicClock that never repeats a value or goes backwards within a process.
"""

from __future__ import annotations

import os
import threading
import time
from datetime import datetime, timedelta, timezone
from typing import Callable


_CROCKFORD32 = "0123456789ABCDEFGHJKMNPQRSTVWXYZ"


def _encode_crockford_base32(value: int, length: int) -> str:
    chars: list[str] = []
    for _ in range(length):
        chars.append(_CROCKFORD32[value & 31])
        value >>= 5
    return "".join(reversed(chars))


def new_ulid(*, timestamp_ms: int | None = None) -> str:
    """
    Generate a ULID (26 chars, Crockford base32).

    Used for snapshot and session ids: sortable by creation time, opaque otherwise.
    """
    if timestamp_ms is None:
        timestamp_ms = now_ms()

    if not (0 <= timestamp_ms < (1 << 48)):
        raise ValueError("timestamp_ms out of range for ULID")

    randomness = int.from_bytes(os.urandom(10), "big")
    return _encode_crockford_base32((timestamp_ms << 80) | randomness, 26)


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def format_timestamp(moment: datetime) -> str:
    """Render a datetime as fixed-width ISO-8601 UTC (sorts lexically)."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc).isoformat(timespec="microseconds")


def parse_timestamp(value: str | datetime) -> datetime:
    """Parse an ISO-8601 timestamp. Naive values are taken as UTC."""
    if isinstance(value, datetime):
        moment = value
    else:
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        moment = datetime.fromisoformat(text)
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment


class MonotonicClock:
    """Wall-clock timestamps that are strictly increasing."""

    def __init__(self, now: Callable[[], datetime] | None = None):
        self._now = now or utc_now
        self._last: datetime | None = None
        self._lock = threading.Lock()

    def advance_past(self, timestamp: str | datetime) -> None:
        """Guarantee the next timestamp sorts after `timestamp`."""
        moment = parse_timestamp(timestamp)
        with self._lock:
            if self._last is None or moment > self._last:
                self._last = moment

    def timestamp(self) -> str:
        with self._lock:
            moment = parse_timestamp(self._now())
            if self._last is not None and moment <= self._last:
                moment = self._last + timedelta(microseconds=1)
            self._last = moment
        return format_timestamp(moment)
