"""Domain stores: optimistic in-memory state backed by the key/value store."""
from __future__ import annotations

from context_composer.stores.base import (
    ChangeReason,
    DomainStore,
    RecordModel,
    StoreChange,
    StoreStatus,
)
from context_composer.stores.favorites import FavoriteItem, FavoritesStore, FavoriteType
from context_composer.stores.progress import (
    KICKSTART_BADGE_IDS,
    ProgressStore,
    ProgressSummary,
    UserProgress,
    ViewedCategory,
)
from context_composer.stores.quiz import QuizProgress, QuizStore
from context_composer.stores.settings import IconPack, MusicService, SettingsStore, UserSettings
from context_composer.stores.streak import ActivityResult, StreakData, StreakStatus, StreakStore

__all__ = [
    "ActivityResult",
    "ChangeReason",
    "DomainStore",
    "FavoriteItem",
    "FavoriteType",
    "FavoritesStore",
    "IconPack",
    "KICKSTART_BADGE_IDS",
    "MusicService",
    "ProgressStore",
    "ProgressSummary",
    "QuizProgress",
    "QuizStore",
    "RecordModel",
    "SettingsStore",
    "StoreChange",
    "StoreStatus",
    "StreakData",
    "StreakStatus",
    "StreakStore",
    "UserProgress",
    "UserSettings",
    "ViewedCategory",
]
