"""Sync reconciliation engine package.

Re-exports all public symbols::

    from nostrbridge.services.sync import SyncConfig, SyncManager, SyncResult
"""

from .configs import SyncConfig
from .manager import SyncManager
from .utils import (
    EventOutcome,
    PublishOutcome,
    SyncResult,
    SyncStats,
    compute_checkpoint,
    dedupe_events,
)


__all__ = [
    "EventOutcome",
    "PublishOutcome",
    "SyncConfig",
    "SyncManager",
    "SyncResult",
    "SyncStats",
    "compute_checkpoint",
    "dedupe_events",
]
