"""Security incident records: create, list, update and resolve.

Every mutation appends to the incident's ``response_actions`` trail and to
``security_audit_log``.  Critical incidents are flagged ``auto_escalated``
and get an extra escalation audit entry.
"""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from clinicdesk import models
from clinicdesk.models import utcnow
from clinicdesk.services.audit import log_event

logger = logging.getLogger(__name__)

INCIDENT_TYPES = ("data_breach", "unauthorized_access", "system_compromise", "policy_violation")
SEVERITIES = ("low", "medium", "high", "critical")
STATUSES = ("open", "investigating", "contained", "resolved")
LIST_LIMIT = 50


class IncidentError(Exception):
    """Invalid incident request."""


def _action(action: str, actor: str | None, details: str) -> dict[str, Any]:
    return {
        "action": action,
        "timestamp": utcnow().isoformat(),
        "user_id": actor,
        "details": details,
    }


def incident_to_dict(incident: models.SecurityIncident) -> dict[str, Any]:
    return {
        "id": incident.id,
        "clinic_id": incident.clinic_id,
        "type": incident.type,
        "severity": incident.severity,
        "description": incident.description,
        "status": incident.status,
        "affected_resources": incident.affected_resources or [],
        "response_actions": incident.response_actions or [],
        "metadata": incident.details or {},
        "created_at": incident.created_at.isoformat() if incident.created_at else None,
        "updated_at": incident.updated_at.isoformat() if incident.updated_at else None,
        "resolved_at": incident.resolved_at.isoformat() if incident.resolved_at else None,
    }


def _get(db: Session, clinic_id: str, incident_id: str) -> models.SecurityIncident:
    incident = db.get(models.SecurityIncident, incident_id)
    if incident is None or incident.clinic_id != clinic_id:
        raise IncidentError(f"Incident not found: {incident_id}")
    return incident


def create_incident(
    db: Session,
    clinic_id: str,
    *,
    type: str,  # noqa: A002
    severity: str,
    description: str,
    affected_resources: list[str] | None = None,
    metadata: dict[str, Any] | None = None,
    actor: str | None = None,
) -> models.SecurityIncident:
    if type not in INCIDENT_TYPES:
        raise IncidentError(f"Unknown incident type: {type}")
    if severity not in SEVERITIES:
        raise IncidentError(f"Unknown severity: {severity}")
    if not description.strip():
        raise IncidentError("Incident description is required")

    escalate = severity == "critical"
    incident = models.SecurityIncident(
        clinic_id=clinic_id,
        type=type,
        severity=severity,
        description=description,
        status="open",
        affected_resources=list(affected_resources or []),
        response_actions=[
            _action("incident_created", actor, "Security incident formally created and logged"),
        ],
        details={**(metadata or {}), "created_by": actor, "auto_escalated": escalate},
    )
    db.add(incident)
    db.commit()
    logger.warning("Security incident %s created (%s, %s)", incident.id, type, severity)

    log_event(
        db,
        clinic_id=clinic_id,
        action_type="security_incident_created",
        resource_type="security_incident",
        resource_id=incident.id,
        details={"incident_type": type, "severity": severity, "created_by": actor},
    )
    if escalate:
        log_event(
            db,
            clinic_id=clinic_id,
            action_type="critical_incident_escalation",
            resource_type="security_incident",
            resource_id=incident.id,
            details={"description": description, "requires_immediate_response": True},
        )
    return incident


def list_incidents(db: Session, clinic_id: str, limit: int = LIST_LIMIT) -> list[models.SecurityIncident]:
    """Most recent incidents first."""
    return list(db.scalars(
        select(models.SecurityIncident)
        .where(models.SecurityIncident.clinic_id == clinic_id)
        .order_by(models.SecurityIncident.created_at.desc())
        .limit(limit)
    ).all())


def update_incident(
    db: Session,
    clinic_id: str,
    incident_id: str,
    update_data: dict[str, Any],
    *,
    actor: str | None = None,
) -> models.SecurityIncident:
    incident = _get(db, clinic_id, incident_id)

    status = update_data.get("status")
    if status is not None:
        if status not in STATUSES:
            raise IncidentError(f"Unknown incident status: {status}")
        incident.status = status
        incident.resolved_at = utcnow() if status == "resolved" else None
    if "severity" in update_data:
        if update_data["severity"] not in SEVERITIES:
            raise IncidentError(f"Unknown severity: {update_data['severity']}")
        incident.severity = update_data["severity"]
    extra = {k: v for k, v in update_data.items() if k not in ("status", "severity")}
    if extra:
        incident.details = {**(incident.details or {}), **extra}

    incident.response_actions = [
        *(incident.response_actions or []),
        _action("incident_updated", actor, f"Updated fields: {', '.join(sorted(update_data))}"),
    ]
    incident.updated_at = utcnow()
    db.commit()

    log_event(
        db,
        clinic_id=clinic_id,
        action_type="security_incident_updated",
        resource_type="security_incident",
        resource_id=incident.id,
        details={"updated_by": actor, "update_details": update_data},
    )
    return incident


def resolve_incident(
    db: Session,
    clinic_id: str,
    incident_id: str,
    *,
    resolution: str | None = None,
    actor: str | None = None,
) -> models.SecurityIncident:
    incident = _get(db, clinic_id, incident_id)
    now = utcnow()
    incident.status = "resolved"
    incident.resolved_at = now
    incident.updated_at = now
    incident.response_actions = [
        *(incident.response_actions or []),
        _action("incident_resolved", actor, resolution or "Incident resolved"),
    ]
    db.commit()
    logger.info("Security incident %s resolved", incident.id)

    log_event(
        db,
        clinic_id=clinic_id,
        action_type="security_incident_resolved",
        resource_type="security_incident",
        resource_id=incident.id,
        details={"resolved_by": actor, "resolution": resolution},
    )
    return incident
