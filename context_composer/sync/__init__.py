"""Local <-> remote progress synchronization."""
from __future__ import annotations

from context_composer.sync.reconciler import MergePolicy, SyncReconciler
from context_composer.sync.remote import (
    ProgressRemote,
    RemoteProgress,
    RestProgressRemote,
    SqlProgressRemote,
)

__all__ = [
    "MergePolicy",
    "ProgressRemote",
    "RemoteProgress",
    "RestProgressRemote",
    "SqlProgressRemote",
    "SyncReconciler",
]
