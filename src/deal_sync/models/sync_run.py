"""
Sync run models: the run log record, run options and the run summary.

A SyncRun is opened as 'running' at the start of every invocation and closed
exactly once as 'completed' (possibly with per-record errors) or 'failed'.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class SyncType(str, Enum):
    """How the run was triggered."""

    MANUAL = 'manual'
    SCHEDULED = 'scheduled'


class SyncRunStatus(str, Enum):
    """Run log state machine: running -> completed | failed."""

    RUNNING = 'running'
    COMPLETED = 'completed'
    FAILED = 'failed'


class SyncOptions(BaseModel):
    """Knobs for a single sync run."""

    materiality_threshold_usd: int = Field(
        default=500_000_000, ge=0, description='Minimum deal value kept (inclusive)'
    )
    external_call_budget: int = Field(
        default=5, ge=0, description='Maximum external verification calls per run'
    )
    days_back: int = Field(default=90, ge=1, le=365, description='Lookback window for sources')
    allow_external_check: bool = Field(
        default=True, description='Permit external re-verification of low-confidence deals'
    )


class SyncRun(BaseModel):
    """One execution of the sync orchestrator, as written to sync_logs."""

    id: str | None = None
    sync_type: SyncType = SyncType.MANUAL
    status: SyncRunStatus = SyncRunStatus.RUNNING
    started_at: datetime = Field(default_factory=lambda: datetime.now(tz=timezone.utc))
    completed_at: datetime | None = None
    deals_added: int = 0
    deals_updated: int = 0
    errors: list[str] = Field(default_factory=list)

    def complete(self, deals_added: int, deals_updated: int, errors: list[str]) -> None:
        self.status = SyncRunStatus.COMPLETED
        self.completed_at = datetime.now(tz=timezone.utc)
        self.deals_added = deals_added
        self.deals_updated = deals_updated
        self.errors = list(errors)

    def fail(self, error: str) -> None:
        self.status = SyncRunStatus.FAILED
        self.completed_at = datetime.now(tz=timezone.utc)
        self.errors = [error]


class VerificationSummary(BaseModel):
    """Counts per verification tier plus the mean confidence score."""

    verified: int = 0
    pending: int = 0
    unverified: int = 0
    avg_score: int = 0
    external_checks: int = 0


class SyncRunSummary(BaseModel):
    """Structured result returned to the caller of a completed run."""

    run_id: str | None = None
    sync_type: SyncType = SyncType.MANUAL
    sources_checked: dict[str, int] = Field(default_factory=dict)
    total_found: int = 0
    after_dedup_count: int = 0
    after_filter_count: int = 0
    verification_summary: VerificationSummary = Field(default_factory=VerificationSummary)
    deals_added: int = 0
    deals_updated: int = 0
    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    duration_seconds: float = 0.0
    stage_timings: dict[str, float] = Field(default_factory=dict)

    @property
    def success(self) -> bool:
        """True when no per-record errors occurred."""
        return len(self.errors) == 0

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(mode='json')
