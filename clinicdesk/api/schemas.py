"""Pydantic schemas for the FastAPI endpoints.

Request bodies accept the camelCase keys the dashboard sends as well as
snake_case.
"""

from __future__ import annotations

import datetime as dt
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from clinicdesk.pms.interface import AppointmentData, DateRange, PatientData


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class HealthResponse(BaseModel):
    status: str = "ok"
    service: str = "clinicdesk"


# ── PMS ──────────────────────────────────────────────────────────────


class PMSIntegrationRequest(_CamelModel):
    """One adapter call against an office's PMS.

    ``action`` stays a plain string so unknown actions get the same
    ``{success: false}`` envelope as every other failure.
    """

    action: str = Field(..., min_length=1)
    office_id: str = Field(..., min_length=1)
    phone_number: str | None = None
    patient_data: PatientData | None = None
    provider_id: str | None = None
    date_range: DateRange | None = None
    appointment_data: AppointmentData | None = None


class PMSEnvelope(BaseModel):
    success: bool
    data: Any = None
    error: str | None = None


class PMSTestRequest(BaseModel):
    office_id: str | None = None
    action: str | None = None


# ── Scheduling ───────────────────────────────────────────────────────


class GenerateSlotsRequest(_CamelModel):
    clinic_id: str = Field(..., min_length=1)
    provider_id: str = Field(..., min_length=1)
    location_id: str | None = None
    date: dt.date
    start_time: str = Field("09:00", pattern=r"^\d{1,2}:\d{2}$")
    end_time: str = Field("17:00", pattern=r"^\d{1,2}:\d{2}$")
    slot_duration: int = Field(30, gt=0, le=24 * 60, description="Slot length in minutes")


class SlotOut(BaseModel):
    id: str
    provider_id: str
    location_id: str | None = None
    starts_at: str
    ends_at: str
    status: str


class GenerateSlotsResponse(BaseModel):
    count: int
    slots: list[SlotOut]


class PatientIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    phone: str = Field(..., min_length=3, max_length=40)
    email: str | None = None


class BookAppointmentRequest(_CamelModel):
    clinic_id: str = Field(..., min_length=1)
    slot_id: str = Field(..., min_length=1)
    provider_id: str = Field(..., min_length=1)
    service_id: str = Field(..., min_length=1)
    location_id: str | None = None
    patient: PatientIn
    notes: str | None = Field(None, max_length=2000)
    office_id: str | None = Field(
        None, description="Office whose PMS should receive a copy of the booking",
    )


class BookAppointmentResponse(BaseModel):
    appointment_id: str
    patient_id: str
    slot_id: str
    starts_at: str
    ends_at: str
    sync_status: str
    pms_appointment_id: str | None = None
    sync_error: str | None = None


# ── Security incidents ───────────────────────────────────────────────


class IncidentData(_CamelModel):
    type: Literal["data_breach", "unauthorized_access", "system_compromise", "policy_violation"]
    severity: Literal["low", "medium", "high", "critical"]
    description: str = Field(..., min_length=1)
    affected_resources: list[str] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)


class IncidentRequest(_CamelModel):
    action: Literal["create", "list", "update", "resolve"]
    clinic_id: str = Field(..., min_length=1)
    incident_data: IncidentData | None = None
    incident_id: str | None = None
    update_data: dict[str, Any] | None = None
    resolution: str | None = None
    actor: str | None = None


# ── Voice ────────────────────────────────────────────────────────────


class RealtimeSessionRequest(BaseModel):
    instructions: str | None = Field(None, max_length=8000)
    voice: str | None = Field(None, max_length=40)
