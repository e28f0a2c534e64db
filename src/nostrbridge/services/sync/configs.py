"""Sync engine configuration.

See Also:
    [SyncManager][nostrbridge.services.sync.SyncManager]: The engine that
        consumes this configuration.
"""

from __future__ import annotations

from pydantic import BaseModel, Field, field_validator

from nostrbridge.models.constants import SYNCED_KINDS


class SyncConfig(BaseModel):
    """Inbound filter and reconciliation settings."""

    kinds: list[int] = Field(
        default_factory=lambda: sorted(SYNCED_KINDS),
        description="Event kinds pulled from relays (subset of 1 and 30023)",
    )
    limit: int = Field(default=500, ge=1, le=5000, description="Events requested per relay")
    origin_grace: int = Field(
        default=60,
        ge=0,
        description="Seconds an inbound-materialized record is shielded from re-publishing",
    )
    verify_signatures: bool = Field(
        default=False, description="Skip inbound events whose signature does not verify"
    )
    sync_enabled_default: bool = Field(
        default=True, description="Whether new local records are synced unless opted out"
    )

    @field_validator("kinds", mode="after")
    @classmethod
    def validate_kinds(cls, v: list[int]) -> list[int]:
        """Require a non-empty subset of the kinds the mapper understands."""
        if not v:
            raise ValueError("at least one kind is required")
        unsupported = sorted(set(v) - SYNCED_KINDS)
        if unsupported:
            raise ValueError(f"unsupported kinds: {unsupported}")
        return sorted(set(v))
