"""Favorites: a unique collection of (id, type) pairs with optimistic toggling."""
from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Union

from context_composer.stores.base import DomainStore, RecordModel
from context_composer.storage.keys import StorageKey
from context_composer.storage.kv_store import KeyValueStore

ItemId = Union[str, int]


class FavoriteType(str, Enum):
    COMPOSER = "composer"
    TERM = "term"
    FORM = "form"
    PERIOD = "period"
    ALBUM = "album"


class FavoriteItem(RecordModel):
    id: ItemId
    type: FavoriteType
    added_at: datetime

    def matches(self, item_id: ItemId, item_type: FavoriteType) -> bool:
        # "1" and 1 are different ids.
        return type(self.id) is type(item_id) and self.id == item_id and self.type is item_type


Favorites = tuple[FavoriteItem, ...]


def _add(item: FavoriteItem) -> Callable[[Favorites], Favorites]:
    def intent(favorites: Favorites) -> Favorites:
        if any(f.matches(item.id, item.type) for f in favorites):
            return favorites
        return favorites + (item,)
    return intent


def _remove(item_id: ItemId, item_type: FavoriteType) -> Callable[[Favorites], Favorites]:
    def intent(favorites: Favorites) -> Favorites:
        return tuple(f for f in favorites if not f.matches(item_id, item_type))
    return intent


class FavoritesStore(DomainStore[Favorites]):
    key = StorageKey.FAVORITES

    def __init__(self, kv: KeyValueStore, *, clock: Callable[[], datetime] | None = None):
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        super().__init__(kv)

    def default_state(self) -> Favorites:
        return ()

    def decode(self, raw: Any) -> Favorites:
        if not isinstance(raw, list):
            raise ValueError(f"expected a list of favorites, got {type(raw).__name__}")
        favorites: Favorites = ()
        for entry in raw:
            favorites = _add(FavoriteItem.model_validate(entry))(favorites)
        return favorites

    def encode(self, state: Favorites) -> list[dict[str, Any]]:
        return [item.to_storage() for item in state]

    @property
    def favorites(self) -> Favorites:
        return self.state

    @property
    def count(self) -> int:
        return len(self.state)

    def is_favorite(self, item_id: ItemId, item_type: FavoriteType | str) -> bool:
        item_type = FavoriteType(item_type)
        return any(f.matches(item_id, item_type) for f in self.state)

    def by_type(self, item_type: FavoriteType | str) -> list[FavoriteItem]:
        item_type = FavoriteType(item_type)
        return [f for f in self.state if f.type is item_type]

    async def toggle(self, item_id: ItemId, item_type: FavoriteType | str) -> bool:
        """Add or remove one favorite.

        Returns whether the item is favorited once the write settles: the
        attempted outcome on success, the reverted one on failure.
        """
        item_type = FavoriteType(item_type)
        await self.ensure_loaded()

        if self.is_favorite(item_id, item_type):
            adding = False
            intent = _remove(item_id, item_type)
        else:
            adding = True
            intent = _add(FavoriteItem(id=item_id, type=item_type, added_at=self._clock()))

        verb = "add" if adding else "remove"
        saved = await self._apply(intent, label=f"{verb} favorite {item_type.value}:{item_id}")
        return adding if saved else not adding

    async def clear(self) -> bool:
        return await self._apply(lambda _: (), label="clear favorites", remove=True)
