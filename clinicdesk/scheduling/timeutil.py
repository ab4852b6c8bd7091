"""Conversions between the naive schedule timestamps and wire strings."""

from __future__ import annotations

from datetime import UTC, datetime


def parse_iso(value: str) -> datetime:
    """Parse an ISO 8601 string into a naive datetime.

    Offsets are normalised to UTC first, so ``...Z`` and ``...+00:00``
    inputs land on the same stored value.
    """
    dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if dt.tzinfo is not None:
        dt = dt.astimezone(UTC).replace(tzinfo=None)
    return dt


def to_iso(value: datetime) -> str:
    return value.isoformat(timespec="seconds")


def parse_time_of_day(value: str) -> int:
    """``"09:30"`` → ``570`` minutes since midnight."""
    try:
        hours_s, minutes_s = value.strip().split(":")[:2]
        hours, minutes = int(hours_s), int(minutes_s)
    except ValueError as exc:
        raise ValueError(f"Invalid time of day: {value!r} (expected HH:MM)") from exc
    if not (0 <= hours <= 24 and 0 <= minutes < 60) or hours * 60 + minutes > 24 * 60:
        raise ValueError(f"Invalid time of day: {value!r} (expected HH:MM)")
    return hours * 60 + minutes


def format_minutes(minutes: int) -> str:
    """``570`` → ``"9:30"`` (clinic-hours messages use an unpadded hour)."""
    return f"{minutes // 60}:{minutes % 60:02d}"
