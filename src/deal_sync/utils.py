"""
Utility helpers for the deal sync pipeline.

uuid7() wraps fastuuid.uuid7() to return a stdlib uuid.UUID instance.
fastuuid.UUID is a Rust-backed type that is NOT isinstance-compatible with
uuid.UUID, so we roundtrip through the string representation. Row ids are
generated client-side so that time-ordered ids are available before insert.
"""

import fastuuid
from uuid import UUID


def uuid7() -> UUID:
    """Generate a UUIDv7 (time-sortable) as a stdlib uuid.UUID."""
    return UUID(str(fastuuid.uuid7()))
