"""Timestamp parsing for export files, which mix ISO strings and epoch seconds."""

from datetime import UTC, datetime
from typing import Any


def parse_iso_timestamp(ts: Any) -> datetime | None:
    """Parse an ISO 8601 timestamp to an aware datetime (naive means UTC)."""
    if not ts or not isinstance(ts, str):
        return None
    try:
        dt = datetime.fromisoformat(ts.replace("Z", "+00:00"))
    except ValueError:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return dt


def from_epoch_seconds(value: Any) -> datetime | None:
    """Convert Unix epoch seconds to an aware datetime."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    try:
        return datetime.fromtimestamp(value, tz=UTC)
    except (OverflowError, OSError, ValueError):
        return None
