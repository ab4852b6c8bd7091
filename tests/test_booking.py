"""Tests for the booking flow and its PMS mirror."""

from __future__ import annotations

from datetime import datetime
from unittest.mock import MagicMock

import pytest
from sqlalchemy import select

from clinicdesk import models
from clinicdesk.pms.interface import Appointment, Patient, PMSError
from clinicdesk.scheduling.booking import BookingError, BookingRequest, BookingService, PatientInfo

START = datetime(2025, 3, 10, 9, 0)
END = datetime(2025, 3, 10, 9, 30)


@pytest.fixture
def slot(make_slot):
    return make_slot(START, END)


def _request(clinic, slot, **overrides) -> BookingRequest:
    fields = {
        "clinic_id": clinic["clinic_id"],
        "slot_id": slot.id,
        "provider_id": clinic["provider"].id,
        "service_id": "cleaning",
        "patient": PatientInfo(name="Jo Doe", phone="5551234", email="jo@example.com"),
    }
    fields.update(overrides)
    return BookingRequest(**fields)


def _mock_pms(*, existing: list | None = None) -> MagicMock:
    pms = MagicMock()
    pms.name = "carestack"
    pms.search_patient_by_phone.return_value = existing or []
    pms.create_patient.return_value = Patient(id="cs-p1", first_name="Jo", last_name="Doe", phone="5551234")
    pms.book_appointment.return_value = Appointment(
        id="cs-a1", patient_id="cs-p1", provider_id="x",
        start_time="2025-03-10T09:00:00", end_time="2025-03-10T09:30:00", status="scheduled",
    )
    return pms


class TestLocalBooking:
    def test_books_slot_without_pms(self, db, clinic, slot):
        result = BookingService(db).book(_request(clinic, slot))

        db.refresh(slot)
        assert slot.status == models.SLOT_BOOKED
        assert result.sync_status == models.SYNC_PENDING
        appointment = db.get(models.Appointment, result.appointment_id)
        assert appointment.starts_at == START
        assert appointment.location_id == clinic["location"].id
        assert result.to_dict()["starts_at"] == "2025-03-10T09:00:00"

    def test_reuses_patient_by_phone(self, db, clinic, make_slot, slot):
        first = BookingService(db).book(_request(clinic, slot))
        other = make_slot(datetime(2025, 3, 10, 10), datetime(2025, 3, 10, 10, 30))
        second = BookingService(db).book(_request(clinic, other))
        assert first.patient_id == second.patient_id

    def test_booked_slot_is_rejected(self, db, clinic, slot):
        BookingService(db).book(_request(clinic, slot))
        with pytest.raises(BookingError, match="Slot is no longer available"):
            BookingService(db).book(_request(clinic, slot))
        assert len(db.scalars(select(models.Appointment)).all()) == 1

    def test_unknown_slot(self, db, clinic, slot):
        with pytest.raises(BookingError, match="Slot not found"):
            BookingService(db).book(_request(clinic, slot, slot_id="missing"))
        assert db.scalars(select(models.Patient)).all() == []

    def test_slot_of_another_provider_is_rejected(self, db, clinic, slot):
        other = models.Provider(clinic_id=clinic["clinic_id"], name="Dr. Lee")
        db.add(other)
        db.commit()
        own_slot = models.Slot(
            clinic_id=clinic["clinic_id"], provider_id=other.id, starts_at=START, ends_at=END,
        )
        db.add(own_slot)
        db.commit()

        with pytest.raises(BookingError, match="Slot does not belong to this provider"):
            BookingService(db).book(_request(clinic, slot, provider_id=other.id))
        db.refresh(slot)
        assert slot.status == models.SLOT_OPEN
        assert db.scalars(select(models.Appointment)).all() == []

        BookingService(db).book(_request(clinic, own_slot, provider_id=other.id))
        booked = db.scalars(
            select(models.Appointment).where(
                models.Appointment.provider_id == other.id,
                models.Appointment.starts_at == START,
            )
        ).all()
        assert len(booked) == 1

    def test_missing_patient_phone(self, db, clinic, slot):
        with pytest.raises(BookingError, match="name and phone"):
            BookingService(db).book(_request(clinic, slot, patient=PatientInfo(name="Jo", phone=" ")))

    def test_writes_audit_entry(self, db, clinic, slot):
        result = BookingService(db).book(_request(clinic, slot))
        entry = db.scalars(
            select(models.SecurityAuditLog).where(models.SecurityAuditLog.action_type == "appointment_booked")
        ).one()
        assert entry.resource_id == result.appointment_id


class TestPMSMirror:
    def test_synced_when_pms_accepts(self, db, clinic, slot):
        pms = _mock_pms()
        result = BookingService(db, pms).book(_request(clinic, slot))

        assert result.sync_status == models.SYNC_SYNCED
        assert result.pms_appointment_id == "cs-a1"
        sent = pms.book_appointment.call_args[0][0]
        assert sent.patient_id == "cs-p1"
        assert sent.start_time == "2025-03-10T09:00:00"
        created = pms.create_patient.call_args[0][0]
        assert (created.first_name, created.last_name) == ("Jo", "Doe")

    def test_existing_pms_patient_is_reused(self, db, clinic, slot):
        pms = _mock_pms(existing=[Patient(id="cs-p9", first_name="Jo", last_name="Doe", phone="5551234")])
        BookingService(db, pms).book(_request(clinic, slot))
        pms.create_patient.assert_not_called()
        assert pms.book_appointment.call_args[0][0].patient_id == "cs-p9"

    def test_pms_failure_keeps_local_booking(self, db, clinic, slot):
        pms = _mock_pms()
        pms.book_appointment.side_effect = PMSError("CareStack API error: Bad Gateway")

        result = BookingService(db, pms).book(_request(clinic, slot))

        assert result.sync_status == models.SYNC_FAILED
        assert result.sync_error == "CareStack API error: Bad Gateway"
        db.refresh(slot)
        assert slot.status == models.SLOT_BOOKED
        appointment = db.get(models.Appointment, result.appointment_id)
        assert appointment.sync_status == models.SYNC_FAILED
