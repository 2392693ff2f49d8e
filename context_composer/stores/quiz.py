"""Daily quiz results and the consecutive-day quiz streak."""
from __future__ import annotations

from typing import Any, Callable, Optional

from context_composer.stores.base import DomainStore, RecordModel
from context_composer.storage.keys import StorageKey


class QuizProgress(RecordModel):
    last_played_day: Optional[int] = None
    total_correct: int = 0
    total_played: int = 0
    streak: int = 0
    best_streak: int = 0

    @property
    def accuracy(self) -> float:
        return self.total_correct / self.total_played if self.total_played else 0.0


def _record(day: int, correct: int, played: int) -> Callable[[QuizProgress], QuizProgress]:
    def intent(progress: QuizProgress) -> QuizProgress:
        if progress.last_played_day == day:
            return progress
        consecutive = progress.last_played_day is not None and progress.last_played_day == day - 1
        streak = progress.streak + 1 if consecutive else 1
        return QuizProgress(
            last_played_day=day,
            total_correct=progress.total_correct + correct,
            total_played=progress.total_played + played,
            streak=streak,
            best_streak=max(streak, progress.best_streak),
        )
    return intent


class QuizStore(DomainStore[QuizProgress]):
    key = StorageKey.QUIZ

    def default_state(self) -> QuizProgress:
        return QuizProgress()

    def decode(self, raw: Any) -> QuizProgress:
        return QuizProgress.model_validate(raw)

    def encode(self, state: QuizProgress) -> dict[str, Any]:
        return state.to_storage()

    @property
    def progress(self) -> QuizProgress:
        return self.state

    def has_played(self, day_of_year: int) -> bool:
        return self.state.last_played_day == day_of_year

    async def record_result(self, day_of_year: int, correct: int, played: int) -> bool:
        """Store today's score. A second result for the same day is ignored."""
        if correct < 0 or played < 0 or correct > played:
            raise ValueError(f"invalid quiz result {correct}/{played}")
        return await self._apply(
            _record(day_of_year, correct, played),
            label=f"quiz result day {day_of_year}: {correct}/{played}",
        )
