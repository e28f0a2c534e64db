"""
Unit tests for services.sync.utils and services.sync.configs modules.

Tests:
- dedupe_events()
- compute_checkpoint()
- SyncResult counting, PublishOutcome properties
- SyncConfig validation
"""

import pytest
from pydantic import ValidationError as PydanticValidationError

from nostrbridge.models.constants import SyncStatus
from nostrbridge.services.sync import (
    EventOutcome,
    PublishOutcome,
    SyncConfig,
    SyncResult,
    compute_checkpoint,
    dedupe_events,
)
from nostrbridge.utils.protocol import PublishResult


class TestDedupeEvents:
    """dedupe_events()."""

    def test_first_seen_wins(self) -> None:
        """The first event per id is kept, in arrival order."""
        first = {"id": "a", "content": "first"}
        events = [first, {"id": "b"}, {"id": "a", "content": "second"}]
        assert dedupe_events(events) == [first, {"id": "b"}]

    def test_drops_entries_without_id(self) -> None:
        """Missing, empty and non-string ids, and non-dicts, are dropped."""
        events = [{"content": "x"}, {"id": ""}, {"id": 5}, "junk", None, {"id": "ok"}]
        assert dedupe_events(events) == [{"id": "ok"}]

    def test_empty(self) -> None:
        """No events, no output."""
        assert dedupe_events([]) == []


class TestComputeCheckpoint:
    """compute_checkpoint()."""

    def test_incremental(self) -> None:
        """Incremental syncs advance to the query start."""
        events = [{"created_at": 100}, {"created_at": 50}]
        assert compute_checkpoint(events, full_resync=False, started_at=1000) == 1000

    def test_full_resync(self) -> None:
        """Full resyncs use the oldest timestamp minus one."""
        events = [{"created_at": 300}, {"created_at": 100}, {"created_at": 200}]
        assert compute_checkpoint(events, full_resync=True, started_at=1000) == 99

    def test_full_resync_clamped(self) -> None:
        """The checkpoint never goes negative."""
        assert compute_checkpoint([{"created_at": 0}], full_resync=True, started_at=1000) == 0

    def test_incremental_no_events(self) -> None:
        """An incremental sync some relay answered advances even when empty."""
        assert compute_checkpoint([], full_resync=False, started_at=1000) == 1000

    def test_incremental_unanswered(self) -> None:
        """With no relay answering the checkpoint is left unchanged."""
        assert compute_checkpoint([], full_resync=False, started_at=1000, answered=False) is None

    def test_full_resync_no_events(self) -> None:
        """A full resync without events is left unchanged."""
        assert compute_checkpoint([], full_resync=True, started_at=1000) is None

    def test_ignores_non_integer_timestamps(self) -> None:
        """Booleans, strings and missing values do not count."""
        events = [{"created_at": True}, {"created_at": "5"}, {}, {"created_at": 40}]
        assert compute_checkpoint(events, full_resync=True, started_at=1000) == 39


class TestResultTypes:
    """SyncResult and PublishOutcome."""

    def test_sync_result_record(self) -> None:
        """Each outcome increments its own counter."""
        result = SyncResult()
        for outcome in (
            EventOutcome.PROCESSED,
            EventOutcome.SKIPPED,
            EventOutcome.SKIPPED,
            EventOutcome.FAILED,
        ):
            result.record(outcome)
        assert (result.processed, result.skipped, result.failed) == (1, 2, 1)

    def test_publish_outcome(self) -> None:
        """accepted_by lists accepting relays in order."""
        outcome = PublishOutcome(
            record_id=1,
            event_id="e" * 64,
            status=SyncStatus.SYNCED,
            results={
                "wss://a.test": PublishResult("wss://a.test", True),
                "wss://b.test": PublishResult("wss://b.test", False, "timeout"),
                "wss://c.test": PublishResult("wss://c.test", True),
            },
        )
        assert outcome.success is True
        assert outcome.accepted_by == ["wss://a.test", "wss://c.test"]

    def test_failed_outcome(self) -> None:
        """A failed status is not a success."""
        outcome = PublishOutcome(record_id=1, event_id="e" * 64, status=SyncStatus.FAILED)
        assert outcome.success is False
        assert outcome.accepted_by == []


class TestSyncConfig:
    """SyncConfig."""

    def test_defaults(self) -> None:
        """Notes and articles, 500 events, one minute of origin grace."""
        config = SyncConfig()
        assert config.kinds == [1, 30023]
        assert config.limit == 500
        assert config.origin_grace == 60
        assert config.verify_signatures is False
        assert config.sync_enabled_default is True

    def test_kinds_normalized(self) -> None:
        """Kinds are deduplicated and sorted."""
        assert SyncConfig(kinds=[30023, 1, 30023]).kinds == [1, 30023]

    @pytest.mark.parametrize("kinds", [[], [5], [1, 0]])
    def test_invalid_kinds(self, kinds: list[int]) -> None:
        """Empty lists and unsupported kinds are rejected."""
        with pytest.raises(PydanticValidationError):
            SyncConfig(kinds=kinds)

    def test_limit_bounds(self) -> None:
        """The per-relay limit must be positive."""
        with pytest.raises(PydanticValidationError):
            SyncConfig(limit=0)
