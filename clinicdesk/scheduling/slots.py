"""Bulk slot generation for one provider on one day.

All validation happens before anything is written:

1. the window must fall inside the clinic's hours for that weekday (when
   hours are configured for it),
2. the window must be non-empty,
3. no existing slot for the provider may overlap the window,
4. at least one full-length slot must fit.

Slots are laid back to back from the start time; a trailing remainder
shorter than the duration is dropped.  The batch is inserted in a single
commit.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from clinicdesk import models
from clinicdesk.scheduling.timeutil import format_minutes, parse_time_of_day

logger = logging.getLogger(__name__)


class SlotGenerationError(Exception):
    """The requested window cannot be turned into slots."""


@dataclass(frozen=True)
class SlotRequest:
    clinic_id: str
    provider_id: str
    date: date
    start_time: str
    end_time: str
    duration_minutes: int = 30
    location_id: str | None = None


def day_of_week(day: date) -> int:
    """Sunday=0 … Saturday=6, the convention ``clinic_hours.dow`` uses."""
    return (day.weekday() + 1) % 7


def intervals_overlap(
    a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime,
) -> bool:
    """Half-open interval intersection: touching endpoints do not overlap."""
    return a_start < b_end and b_start < a_end


def build_slot_grid(
    day: date, start_min: int, end_min: int, duration_minutes: int,
) -> list[tuple[datetime, datetime]]:
    """Contiguous ``[start, end)`` pairs of exactly *duration_minutes*."""
    if duration_minutes <= 0:
        return []
    midnight = datetime.combine(day, datetime.min.time())
    step = timedelta(minutes=duration_minutes)
    grid = []
    current = start_min
    while current + duration_minutes <= end_min:
        slot_start = midnight + timedelta(minutes=current)
        grid.append((slot_start, slot_start + step))
        current += duration_minutes
    return grid


def find_overlapping_slots(
    db: Session, clinic_id: str, provider_id: str, start: datetime, end: datetime,
) -> list[models.Slot]:
    """Existing slots for the provider that intersect ``[start, end)``."""
    return list(db.scalars(
        select(models.Slot).where(
            models.Slot.clinic_id == clinic_id,
            models.Slot.provider_id == provider_id,
            models.Slot.starts_at < end,
            models.Slot.ends_at > start,
        )
    ).all())


def generate_slots(db: Session, request: SlotRequest) -> list[models.Slot]:
    """Validate *request* and insert the resulting open slots.

    Raises:
        SlotGenerationError: on any validation failure; nothing is written.
    """
    try:
        start_min = parse_time_of_day(request.start_time)
        end_min = parse_time_of_day(request.end_time)
    except ValueError as exc:
        raise SlotGenerationError(str(exc)) from exc

    hours = db.scalars(
        select(models.ClinicHours).where(
            models.ClinicHours.clinic_id == request.clinic_id,
            models.ClinicHours.dow == day_of_week(request.date),
        )
    ).first()
    if hours is not None and (start_min < hours.open_min or end_min > hours.close_min):
        raise SlotGenerationError(
            "Selected time is outside clinic hours "
            f"({format_minutes(hours.open_min)} - {format_minutes(hours.close_min)})"
        )

    if start_min >= end_min:
        raise SlotGenerationError("End time must be after start time")

    midnight = datetime.combine(request.date, datetime.min.time())
    window_start = midnight + timedelta(minutes=start_min)
    window_end = midnight + timedelta(minutes=end_min)
    if find_overlapping_slots(db, request.clinic_id, request.provider_id, window_start, window_end):
        raise SlotGenerationError("Overlapping slots found for this provider and time range")

    grid = build_slot_grid(request.date, start_min, end_min, request.duration_minutes)
    if not grid:
        raise SlotGenerationError("No slots could be generated with the selected parameters")

    slots = [
        models.Slot(
            clinic_id=request.clinic_id,
            provider_id=request.provider_id,
            location_id=request.location_id,
            starts_at=slot_start,
            ends_at=slot_end,
            status=models.SLOT_OPEN,
        )
        for slot_start, slot_end in grid
    ]
    try:
        db.add_all(slots)
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Failed to insert %d slots for provider %s", len(slots), request.provider_id)
        raise

    logger.info(
        "Generated %d slots for provider %s on %s (%s-%s, %d min)",
        len(slots), request.provider_id, request.date,
        request.start_time, request.end_time, request.duration_minutes,
    )
    return slots
