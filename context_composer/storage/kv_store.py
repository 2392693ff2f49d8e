"""Retrying JSON key/value store.

``KeyValueStore`` is the only component allowed to touch the storage medium.
It gives every caller the same contract:

- ``get`` never raises: after ``max_retries`` failed attempts it logs and
  returns the caller's default.
- ``set``/``remove`` never raise: they return ``True`` only on a confirmed
  write and ``False`` once retries are exhausted.  ``False`` means "not
  durably saved"; callers roll back or tell the user.

Failed attempts back off exponentially: after attempt *k* (0-based) the
store sleeps ``delay_ms * backoff_multiplier**k`` milliseconds.  There is
no sleep after the last attempt, so the defaults (3 attempts, 100 ms, x2)
sleep 100 ms and then 200 ms before giving up.
"""
from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Mapping, TypeVar

from context_composer.config import Settings
from context_composer.storage.medium import StorageMedium

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")

Sleep = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded exponential backoff."""

    max_retries: int = 3
    delay_ms: float = 100
    backoff_multiplier: float = 2.0

    def __post_init__(self) -> None:
        if self.max_retries < 1:
            raise ValueError("max_retries must be at least 1")

    @classmethod
    def from_settings(cls, settings: Settings) -> "RetryPolicy":
        return cls(
            max_retries=settings.storage_max_retries,
            delay_ms=settings.storage_retry_delay_ms,
            backoff_multiplier=settings.storage_backoff_multiplier,
        )

    def delay_for(self, attempt: int) -> float:
        """Seconds to wait after failed attempt ``attempt`` (0-based)."""
        return self.delay_ms * (self.backoff_multiplier ** attempt) / 1000.0

    def delays(self) -> list[float]:
        """The full sleep sequence for an operation that always fails."""
        return [self.delay_for(attempt) for attempt in range(self.max_retries - 1)]


class _Missing:
    pass


_MISSING = _Missing()


class KeyValueStore:
    """JSON values over a ``StorageMedium`` with retry and backoff."""

    def __init__(
        self,
        medium: StorageMedium,
        policy: RetryPolicy | None = None,
        *,
        sleep: Sleep = asyncio.sleep,
    ):
        self._medium = medium
        self.policy = policy or RetryPolicy()
        self._sleep = sleep

    async def _attempt(
        self,
        operation: str,
        key: str,
        call: Callable[[], Awaitable[R]],
    ) -> R | _Missing:
        """Run ``call`` up to ``max_retries`` times; ``_MISSING`` on exhaustion."""
        attempts = self.policy.max_retries
        for attempt in range(attempts):
            try:
                return await call()
            except Exception as exc:
                if attempt == attempts - 1:
                    logger.error(
                        "❌ Failed to %s %r after %d attempts: %s",
                        operation,
                        key,
                        attempts,
                        exc,
                    )
                    return _MISSING
                delay = self.policy.delay_for(attempt)
                logger.warning(
                    "⚠️ %s %r failed (attempt %d/%d): %s — retrying in %.0fms",
                    operation,
                    key,
                    attempt + 1,
                    attempts,
                    exc,
                    delay * 1000,
                )
                await self._sleep(delay)
        return _MISSING

    async def get(self, key: str, default: T) -> T:
        """Return the decoded value for ``key`` or ``default``.

        A missing key and a stored JSON ``null`` both yield ``default``.
        Undecodable data is retried like an I/O error, then defaulted.
        """

        async def _read() -> Any:
            stored = await self._medium.get_item(key)
            if not stored:
                return _MISSING
            return json.loads(stored)

        value = await self._attempt("load", key, _read)
        if isinstance(value, _Missing) or value is None:
            return default
        return value

    async def set(self, key: str, value: Any) -> bool:
        """Encode and write ``value``; ``True`` only on a confirmed write."""
        try:
            encoded = json.dumps(value)
        except (TypeError, ValueError) as exc:
            logger.error("❌ Refusing to save %r: value is not JSON-serializable (%s)", key, exc)
            return False

        async def _write() -> bool:
            await self._medium.set_item(key, encoded)
            return True

        return await self._attempt("save", key, _write) is True

    async def remove(self, key: str) -> bool:
        """Delete ``key``; ``True`` only on a confirmed delete."""

        async def _delete() -> bool:
            await self._medium.remove_item(key)
            return True

        return await self._attempt("remove", key, _delete) is True

    async def get_many(self, defaults: Mapping[str, Any]) -> dict[str, Any]:
        """Read every key in ``defaults``, each falling back to its default."""
        results: dict[str, Any] = {}
        for key, default in defaults.items():
            results[key] = await self.get(key, default)
        return results

    async def set_many(self, items: Mapping[str, Any]) -> bool:
        """Write every item independently; ``True`` only if all succeeded.

        Keys that were written stay written when another key fails.
        """
        if not items:
            return True
        keys = list(items)
        results = await asyncio.gather(*(self.set(key, items[key]) for key in keys))
        failed = [key for key, ok in zip(keys, results) if not ok]
        if failed:
            logger.error("❌ Batch save incomplete: %d/%d keys failed (%s)", len(failed), len(keys), ", ".join(failed))
            return False
        return True

    async def clear(self) -> bool:
        """Wipe the whole medium. Single attempt; use with caution."""
        try:
            await self._medium.clear()
        except Exception as exc:
            logger.error("❌ Failed to clear storage: %s", exc)
            return False
        logger.info("🧹 All key/value storage cleared")
        return True
