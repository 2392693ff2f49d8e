"""
Optimistic, rollback-capable domain stores.

A ``DomainStore`` caches one storage record in memory and mutates it through
*intents*: pure functions from the previous state to the next.  Every
mutation follows the same protocol:

1. Apply the intent to the in-memory state immediately (optimistic update).
   There is no ``await`` between reading the previous state and applying the
   next one, so rapid calls form a linear history in call order.
2. Queue the intent for persistence.  Writes are serialized per store (one
   in flight, FIFO).  Each write persists *confirmed state + this intent*,
   never the optimistic view, so a failed earlier write cannot leak into a
   later one.
3. On failure drop the intent and rebuild memory from the confirmed state
   plus the intents still pending (rollback).  On success the confirmed
   state advances.

Intents must be direction-explicit ("add X", "set day to 3"), never
"toggle X", because a rollback can replay them on a different base.

Lifecycle::

    UNINITIALIZED ──load()──▶ LOADING ──▶ READY

Mutations called before ``READY`` wait for (and if needed start) the load,
so no write can race the initial read.
"""
from __future__ import annotations

import asyncio
import functools
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, ClassVar, Generic, TypeVar

from pydantic import BaseModel, ConfigDict, ValidationError
from pydantic.alias_generators import to_camel

from context_composer.storage.keys import StorageKey
from context_composer.storage.kv_store import KeyValueStore

logger = logging.getLogger(__name__)

S = TypeVar("S")

Intent = Callable[[S], S]


class RecordModel(BaseModel):
    """Immutable persisted record serialized with camelCase keys."""

    model_config = ConfigDict(
        frozen=True,
        populate_by_name=True,
        alias_generator=to_camel,
    )

    def to_storage(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class StoreStatus(str, Enum):
    UNINITIALIZED = "uninitialized"
    LOADING = "loading"
    READY = "ready"


class ChangeReason(str, Enum):
    """Why listeners are being notified."""
    LOADED = "loaded"
    OPTIMISTIC = "optimistic"
    CONFIRMED = "confirmed"
    ROLLED_BACK = "rolled_back"


@dataclass(frozen=True)
class StoreChange(Generic[S]):
    state: S
    reason: ChangeReason


Listener = Callable[[StoreChange[Any]], None]


@dataclass(eq=False)
class _PendingIntent(Generic[S]):
    intent: Intent[S]
    label: str
    remove: bool = False


class DomainStore(ABC, Generic[S]):
    """In-memory state mirrored to one ``StorageKey`` via ``KeyValueStore``."""

    key: ClassVar[StorageKey]

    def __init__(self, kv: KeyValueStore):
        self._kv = kv
        self._confirmed: S = self.default_state()
        self._state: S = self._confirmed
        self._pending: list[_PendingIntent[S]] = []
        self._status = StoreStatus.UNINITIALIZED
        self._load_task: asyncio.Task[S] | None = None
        self._write_lock = asyncio.Lock()
        self._listeners: list[Listener] = []

    # =========================================================================
    # Subclass hooks
    # =========================================================================

    @abstractmethod
    def default_state(self) -> S:
        """State used before load and whenever the record is missing."""

    @abstractmethod
    def decode(self, raw: Any) -> S:
        """Build state from the stored JSON value. May raise on bad data."""

    @abstractmethod
    def encode(self, state: S) -> Any:
        """JSON-serializable form of ``state``."""

    def on_loaded(self, state: S) -> S:
        """Adjust freshly loaded state before it becomes visible."""
        return state

    # =========================================================================
    # State access
    # =========================================================================

    @property
    def state(self) -> S:
        return self._state

    @property
    def status(self) -> StoreStatus:
        return self._status

    @property
    def is_loaded(self) -> bool:
        return self._status is StoreStatus.READY

    @property
    def has_pending_writes(self) -> bool:
        return bool(self._pending)

    def add_listener(self, listener: Listener) -> Callable[[], None]:
        """Register ``listener``; returns a callable that unregisters it."""
        self._listeners.append(listener)

        def _remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _remove

    def _notify(self, reason: ChangeReason) -> None:
        change = StoreChange(state=self._state, reason=reason)
        for listener in list(self._listeners):
            try:
                listener(change)
            except Exception:
                logger.exception("❌ %s listener failed on %s", type(self).__name__, reason.value)

    # =========================================================================
    # Loading
    # =========================================================================

    async def load(self) -> S:
        """Load the record once; concurrent callers share the same load."""
        if self._status is StoreStatus.READY:
            return self._state
        if self._load_task is None:
            self._load_task = asyncio.ensure_future(self._load())
        return await asyncio.shield(self._load_task)

    async def ensure_loaded(self) -> None:
        if self._status is not StoreStatus.READY:
            await self.load()

    async def _load(self) -> S:
        self._status = StoreStatus.LOADING
        raw = await self._kv.get(self.key.value, None)
        if raw is None:
            loaded = self.default_state()
        else:
            try:
                loaded = self.decode(raw)
            except (ValidationError, ValueError, TypeError) as exc:
                logger.warning(
                    "⚠️ %s: stored %s is unreadable, using defaults (%s)",
                    type(self).__name__,
                    self.key.value,
                    exc,
                )
                loaded = self.default_state()
        self._confirmed = self.on_loaded(loaded)
        self._state = self._replay()
        self._status = StoreStatus.READY
        logger.debug("✅ %s loaded from %s", type(self).__name__, self.key.value)
        self._notify(ChangeReason.LOADED)
        return self._state

    # =========================================================================
    # Mutation
    # =========================================================================

    async def settle(self) -> None:
        """Wait until every write queued before this call has finished."""
        async with self._write_lock:
            pass

    async def _holds(self, check: Callable[[S], bool]) -> bool:
        """Whether ``check`` holds once the writes it depends on have settled.

        A fact that is only optimistic may still roll back, so the caller
        waits for the queued writes before reporting it as already present.
        """
        while check(self._state):
            if check(self._confirmed):
                return True
            await self.settle()
        return False

    def _replay(self) -> S:
        return functools.reduce(lambda state, p: p.intent(state), self._pending, self._confirmed)

    async def _apply(self, intent: Intent[S], *, label: str, remove: bool = False) -> bool:
        """Optimistically apply ``intent`` and persist it.

        Returns ``True`` when the change is durable (or was a no-op) and
        ``False`` when it was rolled back.  ``remove=True`` deletes the
        storage key instead of writing the resulting state.
        """
        await self.ensure_loaded()

        previous = self._state
        optimistic = intent(previous)
        while optimistic == previous and not remove:
            # A no-op over pending writes only counts once they are durable.
            if intent(self._confirmed) == self._confirmed:
                return True
            await self.settle()
            previous = self._state
            optimistic = intent(previous)

        pending = _PendingIntent(intent=intent, label=label, remove=remove)
        self._pending.append(pending)
        self._state = optimistic
        self._notify(ChangeReason.OPTIMISTIC)

        async with self._write_lock:
            target = intent(self._confirmed)
            if remove:
                saved = await self._kv.remove(self.key.value)
            elif target == self._confirmed:
                saved = True
            else:
                saved = await self._kv.set(self.key.value, self.encode(target))

            self._pending.remove(pending)
            if saved:
                self._confirmed = target
            else:
                logger.warning("⚠️ %s: %s not saved — rolled back", type(self).__name__, label)
            self._state = self._replay()
            self._notify(ChangeReason.CONFIRMED if saved else ChangeReason.ROLLED_BACK)

        return saved
