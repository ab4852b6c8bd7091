"""FastAPI route definitions for the ClinicDesk gateway."""

from __future__ import annotations

import logging
import time
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from clinicdesk import config, models
from clinicdesk.api.schemas import (
    BookAppointmentRequest,
    BookAppointmentResponse,
    GenerateSlotsRequest,
    GenerateSlotsResponse,
    HealthResponse,
    IncidentRequest,
    PMSEnvelope,
    PMSIntegrationRequest,
    PMSTestRequest,
    RealtimeSessionRequest,
    SlotOut,
)
from clinicdesk.database import get_db
from clinicdesk.pms.breaker import get_circuit_breaker
from clinicdesk.pms.factory import create_adapter
from clinicdesk.pms.interface import PMSError, PMSInterface
from clinicdesk.scheduling.booking import BookingError, BookingRequest, BookingService, PatientInfo
from clinicdesk.scheduling.slots import SlotGenerationError, SlotRequest, generate_slots
from clinicdesk.scheduling.timeutil import to_iso
from clinicdesk.services import incidents
from clinicdesk.services.realtime import RealtimeSessionClient, RealtimeSessionError

logger = logging.getLogger(__name__)

_bearer = HTTPBearer(auto_error=False)


def require_api_token(
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer),
) -> None:
    """Reject the request unless it carries ``API_TOKEN`` (when one is configured)."""
    expected = config.API_TOKEN
    if not expected:
        return
    if credentials is None or credentials.credentials != expected:
        raise HTTPException(status_code=401, detail="Invalid or missing API token")


router = APIRouter()
protected = APIRouter(dependencies=[Depends(require_api_token)])


def _request_id(request: Request) -> str:
    return getattr(request.state, "request_id", "?")


def _load_office(db: Session, office_id: str) -> models.Office | None:
    return db.get(models.Office, office_id)


def _adapter_for(db: Session, office: models.Office) -> PMSInterface:
    return create_adapter(office.pms_type, office.pms_credentials or {}, db=db)


# ── Health ───────────────────────────────────────────────────────────


@router.get("/health", response_model=HealthResponse)
def health_check():
    """Health check endpoint."""
    return HealthResponse()


# ── PMS integration ──────────────────────────────────────────────────


def _dispatch(adapter: PMSInterface, body: PMSIntegrationRequest) -> Any:
    """Run one adapter operation named by ``body.action``."""
    action = body.action
    if action == "searchPatientByPhone":
        if not body.phone_number:
            raise PMSError("phoneNumber is required")
        return adapter.search_patient_by_phone(body.phone_number)
    if action == "createPatient":
        if body.patient_data is None:
            raise PMSError("patientData is required")
        return adapter.create_patient(body.patient_data)
    if action == "getAvailableSlots":
        if not body.provider_id or body.date_range is None:
            raise PMSError("providerId and dateRange are required")
        return adapter.get_available_slots(body.provider_id, body.date_range)
    if action == "bookAppointment":
        if body.appointment_data is None:
            raise PMSError("appointmentData is required")
        return adapter.book_appointment(body.appointment_data)
    if action == "listProviders":
        return adapter.list_providers()
    if action == "listLocations":
        return adapter.list_locations()
    raise PMSError(f"Unknown action: {action}")


@protected.post("/pms-integrations", response_model=PMSEnvelope)
def pms_integrations(
    body: PMSIntegrationRequest,
    http_request: Request,
    db: Session = Depends(get_db),
):
    """Invoke one operation on the office's PMS adapter.

    Every failure, including unknown actions and missing offices, comes
    back as HTTP 400 ``{success: false, error}``.
    """
    request_id = _request_id(http_request)
    office = _load_office(db, body.office_id)
    if office is None:
        return JSONResponse(status_code=400, content={"success": False, "error": "Office not found"})

    adapter: PMSInterface | None = None
    try:
        adapter = _adapter_for(db, office)
        data = _dispatch(adapter, body)
    except PMSError as exc:
        logger.warning("[%s] PMS %s failed for office %s: %s", request_id, body.action, office.id, exc)
        return JSONResponse(status_code=400, content={"success": False, "error": str(exc)})
    except Exception:
        logger.exception("[%s] Unexpected error in PMS %s", request_id, body.action)
        return JSONResponse(
            status_code=400,
            content={"success": False, "error": "An internal error occurred. Please try again."},
        )
    finally:
        if adapter is not None:
            adapter.close()

    return {"success": True, "data": jsonable_encoder(data, by_alias=True)}


_PROBES = {
    "ping": "connection",
    "connection": "connection",
    "providers": "providers",
    "listProviders": "providers",
    "locations": "locations",
    "listLocations": "locations",
    "search_patient": "search_patient",
}


def _probe_error(status_code: int, code: str, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": code, "message": message})


def run_probe(adapter: PMSInterface, probe: str, phone: str = "5555550100") -> dict[str, Any]:
    """Exercise *adapter* once and summarise the result."""
    started = time.perf_counter()
    if probe in ("connection", "providers"):
        result = adapter.list_providers()
        summary: dict[str, Any] = {"providers": len(result)}
    elif probe == "locations":
        result = adapter.list_locations()
        summary = {"locations": len(result)}
    else:
        result = adapter.search_patient_by_phone(phone)
        summary = {"patients": len(result)}
    latency_ms = (time.perf_counter() - started) * 1000
    return {"pms": adapter.name, "probe": probe, "latency_ms": round(latency_ms, 1), **summary}


@protected.post("/pms-test")
def pms_test(
    body: PMSTestRequest,
    http_request: Request,
    db: Session = Depends(get_db),
):
    """Probe an office's PMS connection and report latency."""
    if not body.office_id:
        return _probe_error(400, "missing_office_id", "office_id is required")
    if not body.action:
        return _probe_error(400, "missing_action", "action is required")

    office = _load_office(db, body.office_id)
    if office is None:
        return _probe_error(404, "office_not_found", f"Office {body.office_id} not found")

    probe = _PROBES.get(body.action)
    if probe is None:
        return _probe_error(400, "unknown_action", f"Unknown action: {body.action}")

    adapter: PMSInterface | None = None
    try:
        adapter = _adapter_for(db, office)
        data = run_probe(adapter, probe)
    except PMSError as exc:
        logger.warning("[%s] PMS probe %s failed for office %s: %s", _request_id(http_request), probe, office.id, exc)
        return _probe_error(502, "pms_error", str(exc))
    except Exception:
        logger.exception("[%s] Unexpected error in PMS test %s", _request_id(http_request), probe)
        return _probe_error(502, "pms_error", "An internal error occurred. Please try again.")
    finally:
        if adapter is not None:
            adapter.close()

    return {"success": True, "data": data}


@protected.get("/pms/circuit-breakers")
def circuit_breakers():
    """Per-endpoint breaker state for the stub adapters."""
    return {"breakers": get_circuit_breaker().snapshot()}


# ── Scheduling ───────────────────────────────────────────────────────


@protected.post("/slots/generate", response_model=GenerateSlotsResponse)
def slots_generate(body: GenerateSlotsRequest, db: Session = Depends(get_db)):
    """Lay out open slots for one provider on one day."""
    try:
        slots = generate_slots(db, SlotRequest(
            clinic_id=body.clinic_id,
            provider_id=body.provider_id,
            location_id=body.location_id,
            date=body.date,
            start_time=body.start_time,
            end_time=body.end_time,
            duration_minutes=body.slot_duration,
        ))
    except SlotGenerationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    return GenerateSlotsResponse(
        count=len(slots),
        slots=[
            SlotOut(
                id=slot.id,
                provider_id=slot.provider_id,
                location_id=slot.location_id,
                starts_at=to_iso(slot.starts_at),
                ends_at=to_iso(slot.ends_at),
                status=slot.status,
            )
            for slot in slots
        ],
    )


@protected.post("/appointments/book", response_model=BookAppointmentResponse)
def appointments_book(
    body: BookAppointmentRequest,
    http_request: Request,
    db: Session = Depends(get_db),
):
    """Book a slot locally and mirror it into the office's PMS when given.

    A PMS failure does not fail the request; it shows up as
    ``sync_status = "failed"``.
    """
    adapter: PMSInterface | None = None
    if body.office_id:
        office = _load_office(db, body.office_id)
        if office is None:
            raise HTTPException(status_code=400, detail="Office not found")
        # The dummy PMS is the local schedule itself.
        if office.pms_type.lower() != "dummy":
            try:
                adapter = _adapter_for(db, office)
            except PMSError as exc:
                raise HTTPException(status_code=400, detail=str(exc)) from exc

    try:
        result = BookingService(db, adapter).book(BookingRequest(
            clinic_id=body.clinic_id,
            slot_id=body.slot_id,
            provider_id=body.provider_id,
            service_id=body.service_id,
            location_id=body.location_id,
            notes=body.notes,
            patient=PatientInfo(
                name=body.patient.name,
                phone=body.patient.phone,
                email=body.patient.email,
            ),
        ))
    except BookingError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    finally:
        if adapter is not None:
            adapter.close()

    logger.info(
        "[%s] Appointment %s booked (sync=%s)",
        _request_id(http_request), result.appointment_id, result.sync_status,
    )
    return BookAppointmentResponse(**result.to_dict())


# ── Security incidents ───────────────────────────────────────────────


@protected.post("/security-incident-manager")
def security_incident_manager(body: IncidentRequest, db: Session = Depends(get_db)):
    """Create, list, update or resolve security incidents for a clinic."""
    try:
        if body.action == "create":
            if body.incident_data is None:
                raise incidents.IncidentError("incidentData is required")
            data = body.incident_data
            incident = incidents.create_incident(
                db,
                body.clinic_id,
                type=data.type,
                severity=data.severity,
                description=data.description,
                affected_resources=data.affected_resources,
                metadata=data.metadata,
                actor=body.actor,
            )
            return {"success": True, "incident": incidents.incident_to_dict(incident)}

        if body.action == "list":
            found = incidents.list_incidents(db, body.clinic_id)
            return {"success": True, "incidents": [incidents.incident_to_dict(i) for i in found]}

        if not body.incident_id:
            raise incidents.IncidentError("incidentId is required")

        if body.action == "update":
            incident = incidents.update_incident(
                db, body.clinic_id, body.incident_id, body.update_data or {}, actor=body.actor,
            )
        else:
            incident = incidents.resolve_incident(
                db, body.clinic_id, body.incident_id, resolution=body.resolution, actor=body.actor,
            )
        return {"success": True, "incident": incidents.incident_to_dict(incident)}
    except incidents.IncidentError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


# ── Voice ────────────────────────────────────────────────────────────


@protected.post("/openai-realtime-session")
def openai_realtime_session(body: RealtimeSessionRequest, http_request: Request):
    """Mint an ephemeral OpenAI Realtime session for the browser client."""
    try:
        client = RealtimeSessionClient()
        return client.create_session(body.instructions, body.voice)
    except (RealtimeSessionError, OSError) as exc:
        logger.error("[%s] Realtime session failed: %s", _request_id(http_request), exc)
        return JSONResponse(status_code=500, content={"error": str(exc)})
