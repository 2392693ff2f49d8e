"""Tests for calendar helpers and seeded content rotation."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone

import pytest

from context_composer.rotation import (
    SeededRandom,
    cyclic_pick,
    daily_pick,
    day_of_year,
    month_number,
    pick_for_period,
    week_number,
)


@dataclass(frozen=True)
class Album:
    title: str
    week: int


class TestCalendar:
    def test_day_of_year(self) -> None:
        assert day_of_year(datetime(2026, 1, 1, 0, 0)) == 1
        assert day_of_year(datetime(2026, 12, 31, 23, 59)) == 365
        assert day_of_year(datetime(2024, 12, 31, tzinfo=timezone.utc)) == 366

    def test_week_number_minimum_is_one(self) -> None:
        assert week_number(datetime(2026, 1, 1, 0, 0)) == 1
        assert week_number(datetime(2026, 1, 7, 23, 0)) == 1

    def test_week_number_counts_seven_day_blocks(self) -> None:
        assert week_number(datetime(2026, 1, 8, 0, 0)) == 1
        assert week_number(datetime(2026, 1, 8, 0, 1)) == 2
        assert week_number(datetime(2026, 12, 31, 12, 0)) == 53

    def test_month_number(self) -> None:
        assert month_number(datetime(2026, 7, 4, tzinfo=timezone.utc)) == 7


class TestSeededRandom:
    def test_first_output_for_seed_zero(self) -> None:
        assert SeededRandom(0).next_float() == 1013904223 / 2 ** 32

    def test_seed_and_offset_are_summed(self) -> None:
        assert SeededRandom(3, 4).next_uint32() == SeededRandom(7).next_uint32()

    def test_same_seed_same_sequence(self) -> None:
        first = SeededRandom(42)
        second = SeededRandom(42)
        assert [first.next_uint32() for _ in range(5)] == [second.next_uint32() for _ in range(5)]

    def test_shuffle_is_deterministic_permutation(self) -> None:
        items = list(range(10))
        shuffled = SeededRandom(123).shuffle(items)
        assert shuffled == SeededRandom(123).shuffle(items)
        assert sorted(shuffled) == items
        assert items == list(range(10))

    def test_sample(self) -> None:
        picked = SeededRandom(9).sample("abcdef", 3)
        assert len(picked) == 3
        assert len(set(picked)) == 3

    def test_next_index_rejects_empty(self) -> None:
        with pytest.raises(ValueError):
            SeededRandom(1).next_index(0)


class TestPicks:
    def test_daily_pick_is_stable_for_a_day(self) -> None:
        terms = [f"term-{i}" for i in range(10)]
        morning = datetime(2026, 1, 1, 6, 0)
        evening = datetime(2026, 1, 1, 22, 0)
        assert daily_pick(terms, morning) == daily_pick(terms, evening) == "term-2"

    def test_daily_pick_empty(self) -> None:
        assert daily_pick([], datetime(2026, 1, 1)) is None

    def test_cyclic_pick_wraps(self) -> None:
        items = ["a", "b", "c"]
        assert cyclic_pick(items, 1) == "a"
        assert cyclic_pick(items, 4) == "a"
        assert cyclic_pick([], 1) is None

    def test_pick_for_period_matches_tag(self) -> None:
        albums = [Album("Goldberg", 1), Album("Messiah", 12)]
        assert pick_for_period(albums, 12, key=lambda a: a.week).title == "Messiah"

    def test_pick_for_period_falls_back_to_first(self) -> None:
        albums = [Album("Goldberg", 1), Album("Messiah", 12)]
        assert pick_for_period(albums, 30, key=lambda a: a.week).title == "Goldberg"
        assert pick_for_period([], 30, key=lambda a: a.week) is None
