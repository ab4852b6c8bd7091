"""Book an open slot locally, then mirror the booking into the PMS.

The local schedule is written first and is never rolled back because of
the PMS.  The mirror outcome is stored on the appointment as
``sync_status``:

* ``pending``: no PMS adapter was supplied (or the mirror never ran),
* ``synced``: the PMS accepted the booking; ``pms_appointment_id`` is set,
* ``failed``: the PMS call raised; ``sync_error`` holds the message.

Claiming the slot is a conditional ``UPDATE ... WHERE status = 'open'`` in
the same transaction as the appointment insert, so two concurrent
bookings of one slot cannot both commit.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from clinicdesk import models
from clinicdesk.pms.interface import AppointmentData, PatientData, PMSInterface
from clinicdesk.scheduling.timeutil import to_iso
from clinicdesk.services.audit import log_event

logger = logging.getLogger(__name__)


class BookingError(Exception):
    """The booking could not be made; nothing was written."""


@dataclass(frozen=True)
class PatientInfo:
    name: str
    phone: str
    email: str | None = None


@dataclass(frozen=True)
class BookingRequest:
    clinic_id: str
    slot_id: str
    provider_id: str
    service_id: str
    patient: PatientInfo
    location_id: str | None = None
    notes: str | None = None
    source: str = "ai_booking"


@dataclass
class BookingResult:
    appointment_id: str
    patient_id: str
    slot_id: str
    starts_at: datetime
    ends_at: datetime
    sync_status: str
    pms_appointment_id: str | None = None
    sync_error: str | None = None

    def to_dict(self) -> dict:
        return {
            "appointment_id": self.appointment_id,
            "patient_id": self.patient_id,
            "slot_id": self.slot_id,
            "starts_at": to_iso(self.starts_at),
            "ends_at": to_iso(self.ends_at),
            "sync_status": self.sync_status,
            "pms_appointment_id": self.pms_appointment_id,
            "sync_error": self.sync_error,
        }


class BookingService:
    """Runs the booking flow against one database session."""

    def __init__(self, db: Session, pms: PMSInterface | None = None):
        self._db = db
        self._pms = pms

    # ── Steps ────────────────────────────────────────────────────────

    def _find_or_create_patient(self, clinic_id: str, info: PatientInfo) -> models.Patient:
        patient = self._db.scalars(
            select(models.Patient).where(
                models.Patient.clinic_id == clinic_id,
                models.Patient.phone == info.phone,
            )
        ).first()
        if patient is not None:
            return patient

        patient = models.Patient(
            clinic_id=clinic_id,
            full_name=info.name,
            phone=info.phone,
            email=info.email or None,
        )
        self._db.add(patient)
        self._db.flush()
        logger.info("Created patient %s for clinic %s", patient.id, clinic_id)
        return patient

    def _claim_slot(self, request: BookingRequest) -> models.Slot:
        slot = self._db.get(models.Slot, request.slot_id)
        if slot is None or slot.clinic_id != request.clinic_id:
            raise BookingError("Slot not found")
        if slot.provider_id != request.provider_id:
            raise BookingError("Slot does not belong to this provider")
        if slot.status != models.SLOT_OPEN:
            raise BookingError("Slot is no longer available")
        return slot

    def _mirror_to_pms(self, patient: models.Patient, appointment: models.Appointment) -> None:
        """Push the booking into the PMS, recording the outcome on *appointment*."""
        first, _, last = patient.full_name.partition(" ")
        try:
            matches = self._pms.search_patient_by_phone(patient.phone)
            pms_patient = matches[0] if matches else self._pms.create_patient(
                PatientData(first_name=first, last_name=last, phone=patient.phone, email=patient.email)
            )
            pms_appointment = self._pms.book_appointment(AppointmentData(
                patient_id=pms_patient.id,
                provider_id=appointment.provider_id,
                location_id=appointment.location_id,
                service_id=appointment.service_id,
                start_time=to_iso(appointment.starts_at),
                end_time=to_iso(appointment.ends_at),
                notes=appointment.notes,
            ))
        except Exception as exc:
            logger.warning(
                "PMS sync failed for appointment %s (%s): %s",
                appointment.id, self._pms.name, exc,
            )
            appointment.sync_status = models.SYNC_FAILED
            appointment.sync_error = str(exc)
        else:
            appointment.sync_status = models.SYNC_SYNCED
            appointment.pms_appointment_id = pms_appointment.id
            appointment.sync_error = None
        self._db.commit()

    # ── Flow ─────────────────────────────────────────────────────────

    def book(self, request: BookingRequest) -> BookingResult:
        """Book *request*'s slot.

        Raises:
            BookingError: missing/taken slot or invalid input.  Nothing is
                written in that case.
        """
        if not request.patient.name.strip() or not request.patient.phone.strip():
            raise BookingError("Patient name and phone are required")

        try:
            patient = self._find_or_create_patient(request.clinic_id, request.patient)
            slot = self._claim_slot(request)

            appointment = models.Appointment(
                clinic_id=request.clinic_id,
                patient_id=patient.id,
                provider_id=request.provider_id,
                service_id=request.service_id,
                location_id=request.location_id or slot.location_id,
                slot_id=slot.id,
                starts_at=slot.starts_at,
                ends_at=slot.ends_at,
                source=request.source,
                notes=request.notes,
                sync_status=models.SYNC_PENDING,
            )
            self._db.add(appointment)

            claimed = self._db.execute(
                update(models.Slot)
                .where(models.Slot.id == slot.id, models.Slot.status == models.SLOT_OPEN)
                .values(status=models.SLOT_BOOKED)
                .execution_options(synchronize_session="fetch")
            )
            if claimed.rowcount != 1:
                raise BookingError("Slot is no longer available")
            self._db.commit()
        except BookingError:
            self._db.rollback()
            raise
        except SQLAlchemyError:
            self._db.rollback()
            logger.exception("Booking failed for slot %s", request.slot_id)
            raise

        logger.info("Booked appointment %s in slot %s", appointment.id, slot.id)

        if self._pms is not None:
            self._mirror_to_pms(patient, appointment)

        log_event(
            self._db,
            clinic_id=request.clinic_id,
            action_type="appointment_booked",
            resource_type="appointment",
            resource_id=appointment.id,
            details={
                "slot_id": slot.id,
                "patient_id": patient.id,
                "provider_id": request.provider_id,
                "sync_status": appointment.sync_status,
                "source": request.source,
            },
        )

        return BookingResult(
            appointment_id=appointment.id,
            patient_id=patient.id,
            slot_id=slot.id,
            starts_at=appointment.starts_at,
            ends_at=appointment.ends_at,
            sync_status=appointment.sync_status,
            pms_appointment_id=appointment.pms_appointment_id,
            sync_error=appointment.sync_error,
        )
