"""
Learning progress: kickstart course, viewed content and badges.

``ProgressStore`` is the progress aggregator.  Its facts only ever grow:

- ``kickstart_day`` never decreases through ``complete_kickstart_day``;
  reaching day 5 marks the course completed.
- viewed sets and badges are append-only ordered sets.

The only ways to shrink the record are the explicit resets and
``replace`` (adopting a record pulled from the remote).
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable

from pydantic import Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from context_composer.stores.base import DomainStore, RecordModel
from context_composer.storage.keys import StorageKey

logger = logging.getLogger(__name__)

KICKSTART_DAYS = 5

# Badges awarded by the 5-day kickstart course; removed by reset_kickstart_only().
KICKSTART_BADGE_IDS: frozenset[str] = frozenset({
    "first_listen",
    "orchestra_explorer",
    "time_traveler",
    "form_finder",
    "journey_begun",
})


def _unique(values: tuple[Any, ...]) -> tuple[Any, ...]:
    return tuple(dict.fromkeys(values))


def _is_term_id(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    return isinstance(value, int) or (isinstance(value, str) and value.strip().lstrip("-").isdigit())


class UserProgress(RecordModel):
    kickstart_day: int = Field(default=0, ge=0, le=KICKSTART_DAYS)
    kickstart_completed: bool = False
    viewed_composers: tuple[str, ...] = ()
    viewed_periods: tuple[str, ...] = ()
    viewed_forms: tuple[str, ...] = ()
    viewed_terms: tuple[int, ...] = ()
    badges: tuple[str, ...] = ()
    first_launch: bool = True

    @field_validator("viewed_terms", mode="before")
    @classmethod
    def _numeric_terms_only(cls, value: Any) -> Any:
        # Older records stored term ids as strings; drop anything non-numeric.
        if not isinstance(value, (list, tuple)):
            return value
        return tuple(v for v in value if _is_term_id(v))

    @field_validator(
        "viewed_composers", "viewed_periods", "viewed_forms", "viewed_terms", "badges",
    )
    @classmethod
    def _dedupe(cls, value: tuple[Any, ...]) -> tuple[Any, ...]:
        return _unique(value)

    @model_validator(mode="after")
    def _completed_needs_last_day(self) -> "UserProgress":
        if self.kickstart_completed and self.kickstart_day < KICKSTART_DAYS:
            raise ValueError("kickstart_completed requires kickstart_day >= 5")
        return self


_STORED_NAMES: dict[str, str] = {
    **{name: name for name in UserProgress.model_fields},
    **{to_camel(name): name for name in UserProgress.model_fields},
}

_STRING_SETS = frozenset({"viewed_composers", "viewed_periods", "viewed_forms"})

_DROP = object()


def _normalize_field(field: str, value: Any) -> Any:
    """Coerce one stored value, or return ``_DROP`` when nothing in it is usable."""
    if field == "kickstart_day":
        if isinstance(value, bool) or not isinstance(value, (int, str)):
            return _DROP
        try:
            day = int(value)
        except ValueError:
            return _DROP
        return min(max(day, 0), KICKSTART_DAYS)
    if field in ("kickstart_completed", "first_launch"):
        return value if isinstance(value, bool) else _DROP
    if not isinstance(value, (list, tuple)):
        return _DROP
    if field == "viewed_terms":
        return tuple(int(v) for v in value if _is_term_id(v))
    if field in _STRING_SETS:
        # Older records held numeric ids for some slugs.
        return tuple(
            str(v) for v in value
            if isinstance(v, (str, int)) and not isinstance(v, bool)
        )
    return tuple(v for v in value if isinstance(v, str))


class ViewedCategory(str, Enum):
    COMPOSER = "composer"
    PERIOD = "period"
    FORM = "form"
    TERM = "term"


_VIEWED_FIELD: dict[ViewedCategory, str] = {
    ViewedCategory.COMPOSER: "viewed_composers",
    ViewedCategory.PERIOD: "viewed_periods",
    ViewedCategory.FORM: "viewed_forms",
    ViewedCategory.TERM: "viewed_terms",
}


@dataclass(frozen=True)
class ProgressSummary:
    """Counters and flags the presentation layer renders from progress."""
    composers_viewed: int
    periods_viewed: int
    forms_viewed: int
    terms_viewed: int
    badges_earned: int
    kickstart_day: int
    kickstart_completed: bool
    kickstart_percent: int
    has_started_kickstart: bool
    is_first_launch: bool

    @classmethod
    def from_progress(cls, progress: UserProgress) -> "ProgressSummary":
        return cls(
            composers_viewed=len(progress.viewed_composers),
            periods_viewed=len(progress.viewed_periods),
            forms_viewed=len(progress.viewed_forms),
            terms_viewed=len(progress.viewed_terms),
            badges_earned=len(progress.badges),
            kickstart_day=progress.kickstart_day,
            kickstart_completed=progress.kickstart_completed,
            kickstart_percent=round(100 * progress.kickstart_day / KICKSTART_DAYS),
            has_started_kickstart=progress.kickstart_day > 0,
            is_first_launch=progress.first_launch,
        )


def _append_to(field: str, value: Any) -> Callable[[UserProgress], UserProgress]:
    def intent(progress: UserProgress) -> UserProgress:
        current = getattr(progress, field)
        if value in current:
            return progress
        return progress.model_copy(update={field: current + (value,)})
    return intent


def _advance_kickstart(day: int) -> Callable[[UserProgress], UserProgress]:
    def intent(progress: UserProgress) -> UserProgress:
        if day <= progress.kickstart_day:
            return progress
        return progress.model_copy(update={
            "kickstart_day": day,
            "kickstart_completed": progress.kickstart_completed or day >= KICKSTART_DAYS,
        })
    return intent


def _reset_kickstart(progress: UserProgress) -> UserProgress:
    return progress.model_copy(update={
        "kickstart_day": 0,
        "kickstart_completed": False,
        "first_launch": False,
        "badges": tuple(b for b in progress.badges if b not in KICKSTART_BADGE_IDS),
    })


class ProgressStore(DomainStore[UserProgress]):
    key = StorageKey.PROGRESS

    def default_state(self) -> UserProgress:
        return UserProgress()

    def decode(self, raw: Any) -> UserProgress:
        # Normalize field by field; one stale value must not cost the user
        # the rest of the record.
        if not isinstance(raw, dict):
            raise ValueError("progress record must be an object")
        kept: dict[str, Any] = {}
        dropped: list[str] = []
        for name, value in raw.items():
            field = _STORED_NAMES.get(name)
            if field is None:
                continue
            normalized = _normalize_field(field, value)
            if normalized is _DROP:
                dropped.append(name)
                continue
            if isinstance(normalized, tuple) and len(normalized) < len(value):
                dropped.append(name)
            kept[field] = normalized
        if kept.get("kickstart_completed") and kept.get("kickstart_day", 0) < KICKSTART_DAYS:
            # A completed course outranks a lagging day counter.
            kept["kickstart_day"] = KICKSTART_DAYS
        if dropped:
            logger.warning("⚠️ ProgressStore: dropped unreadable values in %s", ", ".join(dropped))
        return UserProgress.model_validate(kept)

    def encode(self, state: UserProgress) -> dict[str, Any]:
        return state.to_storage()

    @property
    def progress(self) -> UserProgress:
        return self.state

    def summary(self) -> ProgressSummary:
        return ProgressSummary.from_progress(self.state)

    def has_viewed(self, category: ViewedCategory | str, item_id: str | int) -> bool:
        category = ViewedCategory(category)
        return self._coerce_id(category, item_id) in getattr(self.state, _VIEWED_FIELD[category])

    def has_badge(self, badge_id: str) -> bool:
        return badge_id in self.state.badges

    @staticmethod
    def _coerce_id(category: ViewedCategory, item_id: str | int) -> str | int:
        return int(item_id) if category is ViewedCategory.TERM else str(item_id)

    async def mark_viewed(self, category: ViewedCategory | str, item_id: str | int) -> bool:
        """Record that an item was opened. Returns ``True`` only when newly recorded."""
        category = ViewedCategory(category)
        value = self._coerce_id(category, item_id)
        field = _VIEWED_FIELD[category]
        await self.ensure_loaded()
        if await self._holds(lambda progress: value in getattr(progress, field)):
            return False
        return await self._apply(
            _append_to(field, value),
            label=f"mark {category.value} {value} viewed",
        )

    async def complete_kickstart_day(self, day: int) -> bool:
        """Advance the kickstart course; regressions are ignored."""
        if not 0 <= day <= KICKSTART_DAYS:
            raise ValueError(f"kickstart day must be between 0 and {KICKSTART_DAYS}, got {day}")
        await self.ensure_loaded()
        if await self._holds(lambda progress: day <= progress.kickstart_day):
            return False
        return await self._apply(_advance_kickstart(day), label=f"complete kickstart day {day}")

    async def earn_badge(self, badge_id: str) -> bool:
        """Award a badge. ``True`` means newly earned and saved.

        The membership check and the optimistic apply happen without an
        ``await`` in between, so concurrent calls for the same badge return
        ``True`` at most once.  A call that finds the badge only pending
        waits for that write; if it rolls back, this call earns the badge.
        """
        await self.ensure_loaded()
        if await self._holds(lambda progress: badge_id in progress.badges):
            return False
        return await self._apply(_append_to("badges", badge_id), label=f"earn badge {badge_id}")

    async def complete_first_launch(self) -> bool:
        return await self._apply(
            lambda progress: progress.model_copy(update={"first_launch": False}),
            label="complete first launch",
        )

    async def reset_all(self) -> bool:
        """Forget all progress by deleting the stored record."""
        return await self._apply(lambda _: UserProgress(), label="reset progress", remove=True)

    async def reset_kickstart_only(self) -> bool:
        """Restart the kickstart course, keeping viewed items and other badges."""
        return await self._apply(_reset_kickstart, label="reset kickstart")

    async def replace(self, progress: UserProgress) -> bool:
        """Adopt ``progress`` wholesale (e.g. a record pulled from the remote)."""
        return await self._apply(lambda _: progress, label="replace progress")
