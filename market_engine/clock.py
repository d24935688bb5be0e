"""
Snapshot timestamps.

The fetcher never reads the system time itself; it calls an injected
``Clock`` so tests can pin ``Snapshot.fetched_at``.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Default clock: the current time, timezone-aware in UTC."""
    return datetime.now(timezone.utc)


def frozen_at(moment: datetime) -> Clock:
    """
    Return a clock stuck at `moment`.

    A naive `moment` is taken to be UTC.
    """
    pinned = moment if moment.tzinfo is not None else moment.replace(tzinfo=timezone.utc)
    return lambda: pinned
