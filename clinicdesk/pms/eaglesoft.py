"""Eaglesoft adapter placeholder; every operation is unimplemented."""

from __future__ import annotations

from typing import Any, NoReturn

from clinicdesk.pms.interface import (
    Appointment,
    AppointmentData,
    DateRange,
    Location,
    Patient,
    PatientData,
    PMSInterface,
    PMSNotImplementedError,
    Provider,
    Slot,
)


class EaglesoftAdapter(PMSInterface):
    name = "eaglesoft"

    def __init__(self, credentials: dict[str, Any] | None = None):
        self._credentials = credentials or {}

    def _unavailable(self) -> NoReturn:
        raise PMSNotImplementedError("Eaglesoft integration not implemented")

    def search_patient_by_phone(self, phone_number: str) -> list[Patient]:
        self._unavailable()

    def create_patient(self, patient_data: PatientData) -> Patient:
        self._unavailable()

    def get_available_slots(self, provider_id: str, date_range: DateRange) -> list[Slot]:
        self._unavailable()

    def book_appointment(self, appointment_data: AppointmentData) -> Appointment:
        self._unavailable()

    def list_providers(self) -> list[Provider]:
        self._unavailable()

    def list_locations(self) -> list[Location]:
        self._unavailable()
