"""Common contract every practice-management-system adapter implements.

Attributes are snake_case in Python and serialise to camelCase, which is
the shape the dashboard and the voice agent already consume.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class PMSError(Exception):
    """Raised when a PMS call fails.  The message is safe to show to staff."""

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)


class UnsupportedPMSError(PMSError):
    """The office is configured with a PMS we have no adapter for."""


class PMSNotImplementedError(PMSError):
    """The adapter exists but the vendor integration has not been built."""


class PMSAuthError(PMSError):
    """Could not obtain or use credentials for the vendor API."""


class CircuitOpenError(PMSError):
    """The endpoint's circuit breaker is open; the call was not attempted."""


# ── Domain types ─────────────────────────────────────────────────────


class _PMSModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Address(_PMSModel):
    street: str = ""
    city: str = ""
    state: str = ""
    zip_code: str = ""


class PatientData(_PMSModel):
    first_name: str
    last_name: str
    phone: str
    email: str | None = None
    date_of_birth: str | None = None
    address: Address | None = None


class Patient(PatientData):
    id: str


class DateRange(_PMSModel):
    from_: str = Field(alias="from")
    to: str


class Slot(_PMSModel):
    id: str
    start_time: str
    end_time: str
    provider_id: str
    location_id: str | None = None
    available: bool = True


class AppointmentData(_PMSModel):
    patient_id: str
    provider_id: str
    location_id: str | None = None
    service_id: str | None = None
    start_time: str
    end_time: str
    notes: str | None = None


class Appointment(_PMSModel):
    id: str
    patient_id: str
    provider_id: str
    location_id: str | None = None
    start_time: str
    end_time: str
    status: str
    notes: str | None = None


class Provider(_PMSModel):
    id: str
    name: str
    specialty: str | None = None
    location_ids: list[str] = Field(default_factory=list)


class Location(_PMSModel):
    id: str
    name: str
    address: Address = Field(default_factory=Address)
    phone: str | None = None


# ── Adapter contract ─────────────────────────────────────────────────


class PMSInterface(ABC):
    """Operations the receptionist needs from any practice-management system."""

    #: Vendor name used in logs and metrics.
    name: str = "pms"

    @abstractmethod
    def search_patient_by_phone(self, phone_number: str) -> list[Patient]:
        ...

    @abstractmethod
    def create_patient(self, patient_data: PatientData) -> Patient:
        ...

    @abstractmethod
    def get_available_slots(self, provider_id: str, date_range: DateRange) -> list[Slot]:
        ...

    @abstractmethod
    def book_appointment(self, appointment_data: AppointmentData) -> Appointment:
        ...

    @abstractmethod
    def list_providers(self) -> list[Provider]:
        ...

    @abstractmethod
    def list_locations(self) -> list[Location]:
        ...

    def close(self) -> None:
        """Release any network resources held by the adapter."""
