"""Daily activity streak.

Dates are UTC calendar days.  A streak survives as long as the user is
active every day; missing a day breaks it (``current_streak`` drops to 0
on the next load) but ``longest_streak`` is kept.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from enum import Enum
from typing import Any, Callable, Optional

from context_composer.stores.base import DomainStore, RecordModel
from context_composer.storage.keys import StorageKey
from context_composer.storage.kv_store import KeyValueStore


class StreakData(RecordModel):
    current_streak: int = 0
    longest_streak: int = 0
    last_active_date: Optional[date] = None
    total_days_active: int = 0
    streak_history: tuple[date, ...] = ()


class StreakStatus(str, Enum):
    ACTIVE = "active"
    AT_RISK = "at_risk"
    BROKEN = "broken"


@dataclass(frozen=True)
class ActivityResult:
    is_new_day: bool
    streak_increased: bool
    current_streak: int
    saved: bool = True


def _utc_today() -> date:
    return datetime.now(timezone.utc).date()


class StreakStore(DomainStore[StreakData]):
    key = StorageKey.STREAK

    def __init__(
        self,
        kv: KeyValueStore,
        *,
        history_days: int = 365,
        today: Callable[[], date] = _utc_today,
    ):
        self._history_days = history_days
        self._today = today
        super().__init__(kv)

    def default_state(self) -> StreakData:
        return StreakData()

    def decode(self, raw: Any) -> StreakData:
        return StreakData.model_validate(raw)

    def encode(self, state: StreakData) -> dict[str, Any]:
        return state.to_storage()

    def on_loaded(self, state: StreakData) -> StreakData:
        if self.status_of(state, self._today()) is StreakStatus.BROKEN and state.current_streak:
            return state.model_copy(update={"current_streak": 0})
        return state

    @property
    def streak(self) -> StreakData:
        return self.state

    @staticmethod
    def status_of(state: StreakData, today: date) -> StreakStatus:
        if state.last_active_date is None:
            return StreakStatus.BROKEN
        if state.last_active_date == today:
            return StreakStatus.ACTIVE
        if state.last_active_date == today - timedelta(days=1):
            return StreakStatus.AT_RISK
        return StreakStatus.BROKEN

    def status(self, today: date | None = None) -> StreakStatus:
        return self.status_of(self.state, today or self._today())

    def is_active_today(self, today: date | None = None) -> bool:
        return self.state.last_active_date == (today or self._today())

    def _advance(self, today: date) -> Callable[[StreakData], StreakData]:
        history_days = self._history_days

        def intent(data: StreakData) -> StreakData:
            if data.last_active_date == today:
                return data
            continuing = data.last_active_date == today - timedelta(days=1)
            current = data.current_streak + 1 if continuing else 1
            history = (data.streak_history + (today,))[-history_days:] if history_days > 0 else ()
            return StreakData(
                current_streak=current,
                longest_streak=max(data.longest_streak, current),
                last_active_date=today,
                total_days_active=data.total_days_active + 1,
                streak_history=history,
            )
        return intent

    async def record_activity(self, today: date | None = None) -> ActivityResult:
        """Count today as active. Repeated calls on the same day change nothing."""
        today = today or self._today()
        await self.ensure_loaded()
        before = self.state
        if before.last_active_date == today:
            return ActivityResult(is_new_day=False, streak_increased=False, current_streak=before.current_streak)

        streak_increased = before.last_active_date == today - timedelta(days=1)
        saved = await self._apply(self._advance(today), label=f"record activity {today.isoformat()}")
        if not saved:
            return ActivityResult(
                is_new_day=True,
                streak_increased=False,
                current_streak=self.state.current_streak,
                saved=False,
            )
        return ActivityResult(
            is_new_day=True,
            streak_increased=streak_increased,
            current_streak=self.state.current_streak,
        )

    async def reset(self) -> bool:
        return await self._apply(lambda _: StreakData(), label="reset streak", remove=True)
