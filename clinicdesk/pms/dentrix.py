"""Dentrix adapter placeholder.

The vendor integration is not built yet: every operation raises
:class:`PMSNotImplementedError`.  Calls still go through the circuit
breaker, grouped by Dentrix API family, so a misconfigured office starts
fast-failing after a handful of attempts instead of hammering the stub.
"""

from __future__ import annotations

from typing import Any, NoReturn

from clinicdesk.pms.breaker import CircuitBreaker
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

# Logical endpoints guarded by the breaker
EP_PATIENTS = "patients"
EP_APPOINTMENTS = "appointments"
EP_LOCATIONS = "locations"
EP_OPERATORIES = "operatories"


class DentrixAdapter(PMSInterface):
    name = "dentrix"

    def __init__(
        self,
        credentials: dict[str, Any] | None = None,
        *,
        breaker: CircuitBreaker | None = None,
    ):
        self._credentials = credentials or {}
        self._breaker = breaker or CircuitBreaker()

    def _endpoint(self, family: str) -> str:
        return f"{self.name}:{family}"

    def _unavailable(self) -> NoReturn:
        raise PMSNotImplementedError("Dentrix integration not implemented")

    def _guarded(self, family: str):
        return self._breaker.call(self._endpoint(family), self._unavailable)

    def search_patient_by_phone(self, phone_number: str) -> list[Patient]:
        return self._guarded(EP_PATIENTS)

    def create_patient(self, patient_data: PatientData) -> Patient:
        return self._guarded(EP_PATIENTS)

    def get_available_slots(self, provider_id: str, date_range: DateRange) -> list[Slot]:
        return self._guarded(EP_APPOINTMENTS)

    def book_appointment(self, appointment_data: AppointmentData) -> Appointment:
        return self._guarded(EP_APPOINTMENTS)

    def list_providers(self) -> list[Provider]:
        # Dentrix exposes providers alongside operatories
        return self._guarded(EP_OPERATORIES)

    def list_locations(self) -> list[Location]:
        return self._guarded(EP_LOCATIONS)
