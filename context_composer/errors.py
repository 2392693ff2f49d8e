"""Error taxonomy and CLI exit-code contract for Context Composer.

Storage failures are *not* represented here: the key/value store and the
domain stores report them as ``False``/default/rollback.  Everything below
is raised and is meant to be told apart by callers.
"""
from __future__ import annotations

import enum


class ExitCode(enum.IntEnum):
    """Standardised CLI exit codes.

    0 — success
    1 — user error (bad arguments, unknown entity or version)
    2 — not permitted
    3 — storage / transport / internal error
    """

    SUCCESS = 0
    USER_ERROR = 1
    NOT_PERMITTED = 2
    INTERNAL_ERROR = 3


class ComposerError(Exception):
    """Base exception for Context Composer errors."""

    exit_code: ExitCode = ExitCode.INTERNAL_ERROR


# ---------------------------------------------------------------------------
# Content ledger
# ---------------------------------------------------------------------------


class LedgerError(ComposerError):
    """Base class for content ledger failures."""


class PermissionDeniedError(LedgerError):
    """The actor lacks the capability for the requested action.

    Callers render "not permitted" for this, never "try again".
    """

    exit_code = ExitCode.NOT_PERMITTED

    def __init__(self, actor_id: str | None, capability: str):
        self.actor_id = actor_id
        self.capability = capability
        super().__init__(f"Actor {actor_id or '<anonymous>'} lacks {capability}")


class EntityNotFoundError(LedgerError):
    """No content entity exists for the given type and id."""

    exit_code = ExitCode.USER_ERROR

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(f"{entity_type} {entity_id} not found")


class EntityExistsError(LedgerError):
    """A create collided with an existing entity id."""

    exit_code = ExitCode.USER_ERROR

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(f"{entity_type} {entity_id} already exists")


class VersionNotFoundError(LedgerError):
    """The requested content version does not exist."""

    exit_code = ExitCode.USER_ERROR

    def __init__(self, version_id: int):
        self.version_id = version_id
        super().__init__(f"Content version {version_id} not found")


class InvalidContentError(LedgerError):
    """A create payload or update patch does not fit the entity variant."""

    exit_code = ExitCode.USER_ERROR


class LedgerStorageError(LedgerError):
    """The content database failed; nothing was committed."""


class AuditWriteError(LedgerError):
    """Writing the audit entry failed after the entity write was issued.

    ``rolled_back`` tells whether the entity change was compensated.  When
    it is ``False`` the entity table holds an un-audited mutation.
    """

    def __init__(self, entity_type: str, entity_id: str, *, rolled_back: bool):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.rolled_back = rolled_back
        state = "rolled back" if rolled_back else "NOT rolled back (un-audited change)"
        super().__init__(f"Audit write failed for {entity_type} {entity_id}; entity change {state}")


# ---------------------------------------------------------------------------
# Progress sync
# ---------------------------------------------------------------------------


class SyncError(ComposerError):
    """Base class for progress sync failures."""


class SyncTransportError(SyncError):
    """The remote could not be reached or answered with an error.

    Distinct from "no remote progress yet", which ``pull`` reports as ``None``.
    """


class SyncDataError(SyncTransportError):
    """The remote answered, but not with a readable progress row."""


class SyncConflictError(SyncError):
    """The remote row moved past the revision the caller expected."""

    exit_code = ExitCode.USER_ERROR

    def __init__(self, user_id: str, expected: int, actual: int):
        self.user_id = user_id
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Progress for {user_id} is at revision {actual}, expected {expected}"
        )
