"""User-facing app settings (icon pack, preferred music service)."""
from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import ValidationError

from context_composer.stores.base import DomainStore, RecordModel
from context_composer.storage.keys import StorageKey


class IconPack(str, Enum):
    IONICONS = "ionicons"
    LUCIDE = "lucide"
    PHOSPHOR = "phosphor"


class MusicService(str, Enum):
    YOUTUBE = "youtube"
    SPOTIFY = "spotify"
    APPLE = "apple"


class UserSettings(RecordModel):
    icon_pack: IconPack = IconPack.IONICONS
    music_service: MusicService = MusicService.YOUTUBE


class SettingsStore(DomainStore[UserSettings]):
    """Single-field patch-and-persist settings."""

    key = StorageKey.SETTINGS

    def default_state(self) -> UserSettings:
        return UserSettings()

    def decode(self, raw: Any) -> UserSettings:
        # Keep every field that is still valid; one stale value must not
        # reset the others.
        if not isinstance(raw, dict):
            raise ValueError("settings record must be an object")
        kept: dict[str, Any] = {}
        for name, value in raw.items():
            try:
                UserSettings.model_validate({name: value})
            except ValidationError:
                continue
            kept[name] = value
        return UserSettings.model_validate(kept)

    def encode(self, state: UserSettings) -> dict[str, Any]:
        return state.to_storage()

    @property
    def icon_pack(self) -> IconPack:
        return self.state.icon_pack

    @property
    def music_service(self) -> MusicService:
        return self.state.music_service

    async def update(self, **patch: Any) -> bool:
        """Validate and persist a partial settings patch."""
        unknown = set(patch) - set(UserSettings.model_fields)
        if unknown:
            raise ValueError(f"unknown settings: {', '.join(sorted(unknown))}")
        validated = UserSettings.model_validate({**self.state.model_dump(), **patch})
        changes = {name: getattr(validated, name) for name in patch}
        return await self._apply(
            lambda current: current.model_copy(update=changes),
            label=f"update settings {sorted(changes)}",
        )

    async def set_icon_pack(self, pack: IconPack | str) -> bool:
        return await self.update(icon_pack=IconPack(pack))

    async def set_music_service(self, service: MusicService | str) -> bool:
        return await self.update(music_service=MusicService(service))
