"""ORM models for the clinic schedule, patients, offices and audit trail."""

from __future__ import annotations

import uuid
from datetime import UTC, datetime

from sqlalchemy import JSON, Column, DateTime, ForeignKey, Index, Integer, String, Text

from clinicdesk.database import Base

SLOT_OPEN = "open"
SLOT_HELD = "held"
SLOT_BOOKED = "booked"
SLOT_STATUSES = (SLOT_OPEN, SLOT_HELD, SLOT_BOOKED)

SYNC_PENDING = "pending"
SYNC_SYNCED = "synced"
SYNC_FAILED = "failed"


def utcnow() -> datetime:
    """Naive UTC timestamp; the schedule columns are timezone-less."""
    return datetime.now(UTC).replace(tzinfo=None)


def _uuid() -> str:
    return str(uuid.uuid4())


class Office(Base):
    """A clinic office and the PMS it talks to."""
    __tablename__ = "offices"

    id = Column(String(36), primary_key=True, default=_uuid)
    clinic_id = Column(String(36), nullable=False, index=True)
    name = Column(String, nullable=False)
    pms_type = Column(String, nullable=False, default="dummy")
    pms_credentials = Column(JSON, nullable=False, default=dict)


class ClinicHours(Base):
    """Opening hours for one day of the week, in minutes since midnight.

    ``dow`` follows the Sunday=0 convention.
    """
    __tablename__ = "clinic_hours"

    id = Column(Integer, primary_key=True, autoincrement=True)
    clinic_id = Column(String(36), nullable=False, index=True)
    dow = Column(Integer, nullable=False)
    open_min = Column(Integer, nullable=False)
    close_min = Column(Integer, nullable=False)


class Provider(Base):
    __tablename__ = "providers"

    id = Column(String(36), primary_key=True, default=_uuid)
    clinic_id = Column(String(36), nullable=False, index=True)
    name = Column(String, nullable=False)
    specialty = Column(String)


class Location(Base):
    __tablename__ = "locations"

    id = Column(String(36), primary_key=True, default=_uuid)
    clinic_id = Column(String(36), nullable=False, index=True)
    name = Column(String, nullable=False)
    address = Column(String)
    phone = Column(String)


class Patient(Base):
    __tablename__ = "patients"

    id = Column(String(36), primary_key=True, default=_uuid)
    clinic_id = Column(String(36), nullable=False, index=True)
    full_name = Column(String, nullable=False)
    phone = Column(String, nullable=False, index=True)
    email = Column(String)
    dob = Column(String)
    notes = Column(Text)
    created_at = Column(DateTime, default=utcnow)


class Slot(Base):
    """A bookable interval ``[starts_at, ends_at)`` for one provider."""
    __tablename__ = "slots"
    __table_args__ = (
        Index("idx_slots_provider_start", "provider_id", "starts_at"),
    )

    id = Column(String(36), primary_key=True, default=_uuid)
    clinic_id = Column(String(36), nullable=False, index=True)
    provider_id = Column(String(36), ForeignKey("providers.id"), nullable=False)
    location_id = Column(String(36), ForeignKey("locations.id"))
    starts_at = Column(DateTime, nullable=False)
    ends_at = Column(DateTime, nullable=False)
    status = Column(String, nullable=False, default=SLOT_OPEN)


class Appointment(Base):
    __tablename__ = "appointments"

    id = Column(String(36), primary_key=True, default=_uuid)
    clinic_id = Column(String(36), nullable=False, index=True)
    patient_id = Column(String(36), ForeignKey("patients.id"), nullable=False)
    provider_id = Column(String(36), ForeignKey("providers.id"), nullable=False)
    service_id = Column(String(36))
    location_id = Column(String(36), ForeignKey("locations.id"))
    slot_id = Column(String(36), ForeignKey("slots.id"))
    starts_at = Column(DateTime, nullable=False)
    ends_at = Column(DateTime, nullable=False)
    source = Column(String, default="ai_booking")
    status = Column(String, default="scheduled")
    notes = Column(Text)
    sync_status = Column(String, nullable=False, default=SYNC_PENDING)
    pms_appointment_id = Column(String)
    sync_error = Column(Text)
    created_at = Column(DateTime, default=utcnow)


class SecurityAuditLog(Base):
    __tablename__ = "security_audit_log"

    id = Column(String(36), primary_key=True, default=_uuid)
    clinic_id = Column(String(36), index=True)
    action_type = Column(String, nullable=False)
    resource_type = Column(String)
    resource_id = Column(String(36))
    # ``metadata`` is reserved on declarative classes
    details = Column("metadata", JSON, default=dict)
    created_at = Column(DateTime, default=utcnow)


class SecurityIncident(Base):
    __tablename__ = "security_incidents"

    id = Column(String(36), primary_key=True, default=_uuid)
    clinic_id = Column(String(36), nullable=False, index=True)
    type = Column(String, nullable=False)
    severity = Column(String, nullable=False)
    description = Column(Text, nullable=False)
    status = Column(String, nullable=False, default="open")
    affected_resources = Column(JSON, default=list)
    response_actions = Column(JSON, default=list)
    details = Column("metadata", JSON, default=dict)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow)
    resolved_at = Column(DateTime)
