"""Demo adapter that treats the local clinic tables as the PMS.

Used by offices with ``pms_type = "dummy"`` so the receptionist can run
end-to-end before a real vendor is connected.
"""

from __future__ import annotations

import logging
import re
from typing import Any, NoReturn

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from clinicdesk import models
from clinicdesk.pms.interface import (
    Address,
    Appointment,
    AppointmentData,
    DateRange,
    Location,
    Patient,
    PatientData,
    PMSError,
    PMSInterface,
    Provider,
    Slot,
)
from clinicdesk.scheduling.timeutil import parse_iso, to_iso

logger = logging.getLogger(__name__)

# Demo clinic used when the office credentials carry no usable clinic id
DEMO_CLINIC_ID = "d6e5800e-95d8-4cf0-aa4f-2905926e578e"

_UUID_RE = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[1-5][0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}$",
    re.IGNORECASE,
)


def _split_address(raw: str | None) -> Address:
    """Best-effort split of ``"street, city, ST 12345"``."""
    parts = [p.strip() for p in (raw or "").split(",")]
    state_zip = parts[2].split(" ") if len(parts) > 2 else []
    return Address(
        street=parts[0] if parts else "",
        city=parts[1] if len(parts) > 1 else "",
        state=state_zip[0] if state_zip else "",
        zip_code=state_zip[1] if len(state_zip) > 1 else "",
    )


class DummyAdapter(PMSInterface):
    name = "dummy"

    def __init__(self, credentials: dict[str, Any] | None = None, *, db: Session | None = None):
        if db is None:
            raise PMSError("The dummy PMS needs a database session")
        credentials = credentials or {}
        clinic_id = credentials.get("clinic_id") or credentials.get("clinicId")
        self._clinic_id = clinic_id if clinic_id and _UUID_RE.match(clinic_id) else DEMO_CLINIC_ID
        self._db = db

    @property
    def clinic_id(self) -> str:
        return self._clinic_id

    def _fail(self, what: str, exc: SQLAlchemyError) -> NoReturn:
        self._db.rollback()
        logger.error("Dummy PMS: failed to %s: %s", what, exc)
        raise PMSError(f"Failed to {what}: {exc}") from exc

    def search_patient_by_phone(self, phone_number: str) -> list[Patient]:
        try:
            rows = self._db.scalars(
                select(models.Patient).where(
                    models.Patient.clinic_id == self._clinic_id,
                    models.Patient.phone == phone_number,
                )
            ).all()
        except SQLAlchemyError as exc:
            self._fail("search patients", exc)

        patients = []
        for row in rows:
            first, _, last = row.full_name.partition(" ")
            patients.append(Patient(
                id=row.id,
                first_name=first,
                last_name=last,
                phone=row.phone,
                email=row.email,
                date_of_birth=row.dob,
            ))
        return patients

    def create_patient(self, patient_data: PatientData) -> Patient:
        row = models.Patient(
            clinic_id=self._clinic_id,
            full_name=f"{patient_data.first_name} {patient_data.last_name}".strip(),
            phone=patient_data.phone,
            email=patient_data.email,
            dob=patient_data.date_of_birth,
            notes="Created via AI call",
        )
        try:
            self._db.add(row)
            self._db.commit()
        except SQLAlchemyError as exc:
            self._fail("create patient", exc)
        return Patient(id=row.id, **patient_data.model_dump())

    def get_available_slots(self, provider_id: str, date_range: DateRange) -> list[Slot]:
        try:
            rows = self._db.scalars(
                select(models.Slot)
                .where(
                    models.Slot.clinic_id == self._clinic_id,
                    models.Slot.provider_id == provider_id,
                    models.Slot.status == models.SLOT_OPEN,
                    models.Slot.starts_at >= parse_iso(date_range.from_),
                    models.Slot.starts_at <= parse_iso(date_range.to),
                )
                .order_by(models.Slot.starts_at)
            ).all()
        except SQLAlchemyError as exc:
            self._fail("get available slots", exc)

        return [
            Slot(
                id=row.id,
                start_time=to_iso(row.starts_at),
                end_time=to_iso(row.ends_at),
                provider_id=row.provider_id,
                location_id=row.location_id,
                available=row.status == models.SLOT_OPEN,
            )
            for row in rows
        ]

    def book_appointment(self, appointment_data: AppointmentData) -> Appointment:
        starts_at = parse_iso(appointment_data.start_time)
        row = models.Appointment(
            clinic_id=self._clinic_id,
            patient_id=appointment_data.patient_id,
            provider_id=appointment_data.provider_id,
            location_id=appointment_data.location_id,
            service_id=appointment_data.service_id,
            starts_at=starts_at,
            ends_at=parse_iso(appointment_data.end_time),
            notes=appointment_data.notes,
            source="voice_ai",
            sync_status=models.SYNC_SYNCED,
        )
        try:
            self._db.add(row)
            self._db.execute(
                update(models.Slot)
                .where(
                    models.Slot.clinic_id == self._clinic_id,
                    models.Slot.provider_id == appointment_data.provider_id,
                    models.Slot.starts_at == starts_at,
                    models.Slot.status == models.SLOT_OPEN,
                )
                .values(status=models.SLOT_BOOKED)
            )
            self._db.commit()
        except SQLAlchemyError as exc:
            self._fail("create appointment", exc)

        return Appointment(
            id=row.id,
            patient_id=row.patient_id,
            provider_id=row.provider_id,
            location_id=row.location_id,
            start_time=to_iso(row.starts_at),
            end_time=to_iso(row.ends_at),
            status="confirmed",
            notes=appointment_data.notes,
        )

    def list_providers(self) -> list[Provider]:
        try:
            rows = self._db.scalars(
                select(models.Provider).where(models.Provider.clinic_id == self._clinic_id)
            ).all()
            location_ids = self._db.scalars(
                select(models.Location.id).where(models.Location.clinic_id == self._clinic_id)
            ).all()
        except SQLAlchemyError as exc:
            self._fail("list providers", exc)
        # Providers are not assigned to locations in the local schema
        return [
            Provider(id=row.id, name=row.name, specialty=row.specialty, location_ids=list(location_ids))
            for row in rows
        ]

    def list_locations(self) -> list[Location]:
        try:
            rows = self._db.scalars(
                select(models.Location).where(models.Location.clinic_id == self._clinic_id)
            ).all()
        except SQLAlchemyError as exc:
            self._fail("list locations", exc)
        return [
            Location(id=row.id, name=row.name, address=_split_address(row.address), phone=row.phone)
            for row in rows
        ]
