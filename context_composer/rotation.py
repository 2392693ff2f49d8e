"""
Deterministic content rotation.

Featured content (term of the day, album of the week, monthly spotlight,
daily quiz questions) is chosen from pure functions of the calendar so every
device shows the same pick on the same day.

Calendar helpers take an explicit ``now`` (defaulting to the current UTC
time) and only look at its wall-clock fields, so a timezone-aware or naive
``datetime`` both work.

Seeded selection uses a 32-bit linear congruential generator::

    state = (1664525 * state + 1013904223) mod 2**32

seeded with ``seed + offset``.  The first output for seed 0 is
1013904223 / 2**32.  The algorithm is fixed so picks are reproducible
everywhere.
"""
from __future__ import annotations

import math
from datetime import datetime, timedelta, timezone
from typing import Callable, Hashable, Optional, Sequence, TypeVar

T = TypeVar("T")

_LCG_MULTIPLIER = 1664525
_LCG_INCREMENT = 1013904223
_LCG_MODULUS = 2 ** 32

_ONE_WEEK = timedelta(days=7)


def _now(now: Optional[datetime]) -> datetime:
    return now if now is not None else datetime.now(timezone.utc)


def day_of_year(now: Optional[datetime] = None) -> int:
    """Day of the year, January 1st being 1."""
    return _now(now).timetuple().tm_yday


def week_number(now: Optional[datetime] = None) -> int:
    """Week of the year counted in whole 7-day blocks from January 1st 00:00.

    Any moment inside the first block is week 1; the final days of a year can
    reach week 53.
    """
    now = _now(now)
    start = now.replace(month=1, day=1, hour=0, minute=0, second=0, microsecond=0)
    return max(1, math.ceil((now - start) / _ONE_WEEK))


def month_number(now: Optional[datetime] = None) -> int:
    return _now(now).month


class SeededRandom:
    """Reproducible pseudo-random numbers for content rotation."""

    def __init__(self, seed: int, offset: int = 0):
        self._state = (seed + offset) % _LCG_MODULUS

    def next_uint32(self) -> int:
        self._state = (_LCG_MULTIPLIER * self._state + _LCG_INCREMENT) % _LCG_MODULUS
        return self._state

    def next_float(self) -> float:
        """Uniform float in ``[0, 1)``."""
        return self.next_uint32() / _LCG_MODULUS

    def next_index(self, size: int) -> int:
        if size <= 0:
            raise ValueError("size must be positive")
        return int(self.next_float() * size)

    def shuffle(self, items: Sequence[T]) -> list[T]:
        """Fisher-Yates shuffle returning a new list."""
        result = list(items)
        for i in range(len(result) - 1, 0, -1):
            j = self.next_index(i + 1)
            result[i], result[j] = result[j], result[i]
        return result

    def sample(self, items: Sequence[T], count: int) -> list[T]:
        return self.shuffle(items)[:count]


def daily_pick(items: Sequence[T], now: Optional[datetime] = None, offset: int = 0) -> Optional[T]:
    """Seeded pick for today; ``offset`` gives independent picks on the same day."""
    if not items:
        return None
    return items[SeededRandom(day_of_year(now), offset).next_index(len(items))]


def cyclic_pick(items: Sequence[T], position: int) -> Optional[T]:
    """Walk ``items`` in order: position 1 is the first item, wrapping around."""
    if not items:
        return None
    return items[(position - 1) % len(items)]


def pick_for_period(
    items: Sequence[T],
    value: Hashable,
    key: Callable[[T], Hashable],
) -> Optional[T]:
    """First item whose ``key`` equals ``value``, else the first item, else ``None``.

    Used for content tagged with its week or month, e.g.
    ``pick_for_period(albums, week_number(), key=lambda a: a.week)``.
    """
    for item in items:
        if key(item) == value:
            return item
    return items[0] if items else None
