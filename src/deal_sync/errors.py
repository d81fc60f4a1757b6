"""
Custom exceptions and error handling for the deal sync pipeline.

Provides:
- Typed exception hierarchy for different failure modes
- Error context preservation for debugging
- Partial success handling for per-deal upserts
"""

from dataclasses import dataclass, field
from typing import Any


class DealSyncError(Exception):
    """Base exception for all deal sync errors."""

    def __init__(self, message: str, context: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def __str__(self) -> str:
        if self.context:
            return f"{self.message} | context={self.context}"
        return self.message


# =============================================================================
# Client Errors
# =============================================================================


class ClientError(DealSyncError):
    """Base class for client-related errors."""

    pass


class SourceFetchError(ClientError):
    """A deal source (EDGAR, Perplexity discovery) could not be fetched."""

    pass


class SourceRateLimitError(SourceFetchError):
    """Rate limit exceeded on a source API."""

    pass


class SourceTimeoutError(SourceFetchError):
    """Source API did not answer within the timeout."""

    pass


class DatabaseError(ClientError):
    """Error from Postgres operations."""

    pass


class DatabaseConnectionError(DatabaseError):
    """Failed to connect to Postgres."""

    pass


class DatabaseQueryError(DatabaseError):
    """Error executing a SQL statement."""

    pass


class DatabaseConstraintError(DatabaseError):
    """Constraint violation in Postgres (e.g., duplicate slug)."""

    pass


# =============================================================================
# Pipeline Errors
# =============================================================================


class PipelineError(DealSyncError):
    """Base class for pipeline-related errors."""

    pass


class RepositoryError(PipelineError):
    """Error during deal repository operations."""

    pass


class SyncRunError(PipelineError):
    """A sync run aborted; the run log is marked failed."""

    pass


# =============================================================================
# Partial Success Handling
# =============================================================================


@dataclass
class ItemResult:
    """Result for a single item in a batch operation."""

    item_id: str | None
    success: bool
    error: Exception | None = None
    data: dict[str, Any] = field(default_factory=dict)


@dataclass
class PartialSuccessResult:
    """
    Result of a batch operation that may partially succeed.

    Allows processing to continue even when some items fail,
    while preserving error context for debugging.
    """

    succeeded: list[ItemResult] = field(default_factory=list)
    failed: list[ItemResult] = field(default_factory=list)

    @property
    def success_count(self) -> int:
        return len(self.succeeded)

    @property
    def failure_count(self) -> int:
        return len(self.failed)

    @property
    def partial_success(self) -> bool:
        return self.success_count > 0 and self.failure_count > 0

    def add_success(
        self,
        item_id: str | None = None,
        data: dict[str, Any] | None = None,
    ) -> None:
        """Record a successful item."""
        self.succeeded.append(
            ItemResult(item_id=item_id, success=True, data=data or {})
        )

    def add_failure(
        self,
        error: Exception,
        item_id: str | None = None,
        data: dict[str, Any] | None = None,
    ) -> None:
        """Record a failed item."""
        self.failed.append(
            ItemResult(item_id=item_id, success=False, error=error, data=data or {})
        )

    def count_where(self, key: str, value: Any) -> int:
        """Count succeeded items whose data[key] equals value."""
        return sum(1 for r in self.succeeded if r.data.get(key) == value)

    def error_messages(self) -> list[str]:
        """Human-readable error strings for the failed items."""
        messages = []
        for r in self.failed:
            prefix = f'{r.item_id}: ' if r.item_id else ''
            messages.append(f"{prefix}{getattr(r.error, 'message', r.error)}")
        return messages


# =============================================================================
# Error Handling Utilities
# =============================================================================


def wrap_http_error(exc: Exception, context: dict[str, Any] | None = None) -> SourceFetchError:
    """
    Wrap an HTTP/transport exception from a source API in our typed hierarchy.

    Args:
        exc: The original exception
        context: Additional context for debugging

    Returns:
        Typed SourceFetchError subclass
    """
    error_str = str(exc).lower()
    ctx = context or {}
    ctx['original_error'] = str(exc)
    ctx['error_type'] = type(exc).__name__

    if 'rate limit' in error_str or 'rate_limit' in error_str or '429' in error_str:
        return SourceRateLimitError(
            f"Source rate limit exceeded: {exc}",
            context=ctx,
        )
    elif 'timeout' in error_str or 'timed out' in error_str or 'timeout' in ctx['error_type'].lower():
        return SourceTimeoutError(
            f"Source request timed out: {exc}",
            context=ctx,
        )
    else:
        return SourceFetchError(
            f"Source request failed: {exc}",
            context=ctx,
        )


def wrap_database_error(exc: Exception, context: dict[str, Any] | None = None) -> DatabaseError:
    """
    Wrap a SQLAlchemy/asyncpg exception in our typed error hierarchy.

    Args:
        exc: The original exception
        context: Additional context for debugging

    Returns:
        Typed DatabaseError subclass
    """
    error_str = str(exc).lower()
    ctx = context or {}
    ctx['original_error'] = str(exc)
    ctx['error_type'] = type(exc).__name__

    if 'connection' in error_str or 'connect' in error_str:
        return DatabaseConnectionError(
            f"Postgres connection failed: {exc}",
            context=ctx,
        )
    elif 'constraint' in error_str or 'unique' in error_str or 'duplicate key' in error_str:
        return DatabaseConstraintError(
            f"Postgres constraint violation: {exc}",
            context=ctx,
        )
    else:
        return DatabaseQueryError(
            f"Postgres query error: {exc}",
            context=ctx,
        )
