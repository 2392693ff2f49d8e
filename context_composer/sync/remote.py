"""
Remote homes for a user's progress row.

Two implementations of ``ProgressRemote``:

- ``SqlProgressRemote``: the ``user_progress`` table through async
  SQLAlchemy (PostgreSQL in production, SQLite in tests).
- ``RestProgressRemote``: a PostgREST endpoint (Supabase) through httpx.

Both report "no row for this user" as ``None`` and every transport or
server failure as ``SyncTransportError``; callers can always tell "no
progress yet" from "sync broken".  A row that cannot be read as progress
raises ``SyncDataError`` (a ``SyncTransportError``).

Every write increments ``revision``.  When the caller passes
``expected_revision`` the write only lands if the row is still at that
revision (0 meaning "no row yet"); otherwise ``SyncConflictError`` is
raised and nothing is written.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional, Protocol

import httpx
from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError

from context_composer.db.database import Database
from context_composer.db.models import UserProgressRow, utc_now
from context_composer.errors import SyncConflictError, SyncDataError, SyncTransportError
from context_composer.stores.progress import UserProgress

logger = logging.getLogger(__name__)

PROGRESS_COLUMNS: tuple[str, ...] = tuple(UserProgress.model_fields)


@dataclass(frozen=True)
class RemoteProgress:
    """A user's progress as last written to the remote."""
    user_id: str
    progress: UserProgress
    revision: int
    updated_at: Optional[datetime]


def progress_columns(progress: UserProgress) -> dict[str, Any]:
    """Row columns (snake_case, JSON-ready) for ``progress``."""
    return progress.model_dump(mode="json")


class ProgressRemote(Protocol):
    async def fetch(self, user_id: str) -> RemoteProgress | None: ...

    async def upsert(
        self,
        user_id: str,
        progress: UserProgress,
        expected_revision: int | None = None,
    ) -> RemoteProgress: ...

    async def close(self) -> None: ...


# =============================================================================
# SQL
# =============================================================================


def _from_row(row: UserProgressRow) -> RemoteProgress:
    try:
        progress = UserProgress.model_validate({name: getattr(row, name) for name in PROGRESS_COLUMNS})
    except ValidationError as exc:
        raise SyncDataError(f"Remote progress for {row.user_id} is invalid: {exc}") from exc
    return RemoteProgress(
        user_id=row.user_id,
        progress=progress,
        revision=row.revision,
        updated_at=row.updated_at,
    )


class SqlProgressRemote:
    """``user_progress`` rows in a database reached through SQLAlchemy."""

    def __init__(self, database: Database):
        self._db = database

    async def fetch(self, user_id: str) -> RemoteProgress | None:
        try:
            async with self._db.session() as session:
                row = await session.get(UserProgressRow, user_id)
                return _from_row(row) if row is not None else None
        except SQLAlchemyError as exc:
            raise SyncTransportError(f"Failed to read progress for {user_id}: {exc}") from exc

    async def upsert(
        self,
        user_id: str,
        progress: UserProgress,
        expected_revision: int | None = None,
    ) -> RemoteProgress:
        columns = progress_columns(progress)
        try:
            async with self._db.transaction() as session:
                row = await session.get(UserProgressRow, user_id, with_for_update=True)
                current = row.revision if row is not None else 0
                if expected_revision is not None and expected_revision != current:
                    raise SyncConflictError(user_id, expected_revision, current)

                if row is None:
                    row = UserProgressRow(user_id=user_id, **columns)
                    session.add(row)
                else:
                    for name, value in columns.items():
                        setattr(row, name, value)
                row.revision = current + 1
                row.updated_at = utc_now()
                await session.flush()
                return _from_row(row)
        except SQLAlchemyError as exc:
            raise SyncTransportError(f"Failed to write progress for {user_id}: {exc}") from exc

    async def close(self) -> None:
        # The database handle belongs to AppContext.
        return None


# =============================================================================
# PostgREST / Supabase
# =============================================================================

_NOT_FOUND_CODE = "PGRST116"


class RestProgressRemote:
    """``user_progress`` rows behind a PostgREST API.

    Args:
        base_url: Project URL, e.g. ``"https://xyz.supabase.co"``.
        api_key: Anon or service key sent as ``apikey`` and bearer token.
        timeout: Request timeout in seconds.
        transport: Optional httpx transport (tests pass ``httpx.MockTransport``).
    """

    table = "user_progress"

    def __init__(
        self,
        base_url: str,
        api_key: str | None = None,
        *,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        headers = {"Accept": "application/json"}
        if api_key:
            headers["apikey"] = api_key
            headers["Authorization"] = f"Bearer {api_key}"
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/") + "/rest/v1",
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, user_id: str, **kwargs: Any) -> httpx.Response:
        try:
            response = await self._client.request(method, f"/{self.table}", **kwargs)
        except httpx.HTTPError as exc:
            raise SyncTransportError(f"Progress sync request failed for {user_id}: {exc}") from exc
        return response

    @staticmethod
    def _is_not_found(response: httpx.Response) -> bool:
        if response.status_code == 406:
            try:
                body = response.json()
            except ValueError:
                return False
            return isinstance(body, dict) and body.get("code") == _NOT_FOUND_CODE
        return False

    @staticmethod
    def _raise_for_status(response: httpx.Response, user_id: str) -> None:
        if response.is_success:
            return
        raise SyncTransportError(
            f"Progress sync for {user_id} failed: HTTP {response.status_code} {response.text[:200]}"
        )

    @staticmethod
    def _parse(payload: Any) -> RemoteProgress | None:
        if isinstance(payload, list):
            if not payload:
                return None
            payload = payload[0]
        if not isinstance(payload, dict):
            raise SyncDataError(f"Unexpected progress payload: {payload!r}")
        try:
            progress = UserProgress.model_validate({k: v for k, v in payload.items() if k in PROGRESS_COLUMNS})
            updated_at = payload.get("updated_at")
            return RemoteProgress(
                user_id=str(payload["user_id"]),
                progress=progress,
                revision=int(payload.get("revision") or 0),
                updated_at=datetime.fromisoformat(updated_at) if updated_at else None,
            )
        except (ValidationError, KeyError, TypeError, ValueError) as exc:
            raise SyncDataError(f"Remote progress row is invalid: {exc}") from exc

    @staticmethod
    def _json(response: httpx.Response, user_id: str) -> Any:
        try:
            return response.json()
        except ValueError as exc:
            raise SyncDataError(f"Progress sync for {user_id} returned a non-JSON body") from exc

    async def fetch(self, user_id: str) -> RemoteProgress | None:
        response = await self._request(
            "GET",
            user_id,
            params={"user_id": f"eq.{user_id}", "select": "*"},
        )
        if self._is_not_found(response):
            return None
        self._raise_for_status(response, user_id)
        return self._parse(self._json(response, user_id))

    async def upsert(
        self,
        user_id: str,
        progress: UserProgress,
        expected_revision: int | None = None,
    ) -> RemoteProgress:
        existing = await self.fetch(user_id)
        current = existing.revision if existing is not None else 0
        if expected_revision is not None and expected_revision != current:
            raise SyncConflictError(user_id, expected_revision, current)

        body = {
            "user_id": user_id,
            **progress_columns(progress),
            "revision": current + 1,
            "updated_at": utc_now().isoformat(),
        }

        if existing is not None and expected_revision is not None:
            # Compare-and-set: the filter on revision makes a concurrent
            # writer's row invisible, so nothing comes back.
            response = await self._request(
                "PATCH",
                user_id,
                params={"user_id": f"eq.{user_id}", "revision": f"eq.{current}"},
                json=body,
                headers={"Prefer": "return=representation"},
            )
            self._raise_for_status(response, user_id)
            written = self._parse(self._json(response, user_id))
            if written is None:
                latest = await self.fetch(user_id)
                raise SyncConflictError(user_id, expected_revision, latest.revision if latest else 0)
            return written

        prefer = "return=representation"
        if expected_revision is None:
            prefer = "resolution=merge-duplicates,return=representation"
        response = await self._request(
            "POST",
            user_id,
            params={"on_conflict": "user_id"},
            json=body,
            headers={"Prefer": prefer},
        )
        if response.status_code == 409:
            latest = await self.fetch(user_id)
            raise SyncConflictError(user_id, expected_revision or 0, latest.revision if latest else 0)
        self._raise_for_status(response, user_id)
        written = self._parse(self._json(response, user_id))
        if written is None:
            raise SyncTransportError(f"Progress upsert for {user_id} returned no row")
        return written
