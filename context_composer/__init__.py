"""Context Composer core: local-first persistence, progress sync and content audit."""
from __future__ import annotations

from context_composer.config import Settings, get_settings
from context_composer.context import AppContext

__all__ = ["AppContext", "Settings", "get_settings"]
