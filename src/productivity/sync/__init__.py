"""Tecsup synchronization engine."""

from productivity.sync.protection import check_update, ensure_deletable
from productivity.sync.reconciler import (
    CourseFailure,
    SyncReconciler,
    SyncResult,
    SyncStatus,
    UserLocks,
    user_locks,
)

__all__ = [
    "SyncReconciler",
    "SyncResult",
    "SyncStatus",
    "CourseFailure",
    "UserLocks",
    "user_locks",
    "check_update",
    "ensure_deletable",
]
