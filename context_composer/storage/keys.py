"""Centralized storage keys.

Every reserved key in the on-device medium is listed here so two stores can
never collide on the same record.
"""
from __future__ import annotations

from enum import Enum


class StorageKey(str, Enum):
    """Reserved key/value names."""

    PROGRESS = "@context_composer_progress"
    """User progress (kickstart, viewed items, badges)."""

    FAVORITES = "@context_composer_favorites"
    """Favorite items (composers, terms, forms, ...)."""

    SETTINGS = "@context_composer_settings"
    """App settings (icon pack, music service preference)."""

    THEME = "@context_composer_theme"
    """Selected theme name (owned by the presentation layer)."""

    QUIZ = "@context_composer_quiz"
    """Daily quiz state."""

    STREAK = "@context_composer_streak"
    """Daily activity streak."""

    AUTH_SESSION = "@context_composer_auth"
    """Auth provider session (owned by the auth collaborator)."""
