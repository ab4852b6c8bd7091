"""Tests for security incident management."""

from __future__ import annotations

import pytest
from sqlalchemy import select

from clinicdesk import models
from clinicdesk.services import incidents

CLINIC = "clinic-1"


def _audit_actions(db) -> list[str]:
    return [e.action_type for e in db.scalars(select(models.SecurityAuditLog)).all()]


def _create(db, severity: str = "medium"):
    return incidents.create_incident(
        db, CLINIC,
        type="unauthorized_access",
        severity=severity,
        description="Repeated failed logins on the front-desk account",
        affected_resources=["user:frontdesk"],
        actor="admin-1",
    )


class TestCreate:
    def test_creates_open_incident_with_audit(self, db):
        incident = _create(db)
        assert incident.status == "open"
        assert incident.details["auto_escalated"] is False
        assert incident.response_actions[0]["action"] == "incident_created"
        assert _audit_actions(db) == ["security_incident_created"]

    def test_critical_is_escalated(self, db):
        incident = _create(db, severity="critical")
        assert incident.details["auto_escalated"] is True
        assert "critical_incident_escalation" in _audit_actions(db)

    def test_rejects_unknown_severity(self, db):
        with pytest.raises(incidents.IncidentError, match="Unknown severity"):
            _create(db, severity="catastrophic")


class TestLifecycle:
    def test_list_is_scoped_to_clinic(self, db):
        _create(db)
        incidents.create_incident(db, "other", type="data_breach", severity="low", description="x")
        listed = incidents.list_incidents(db, CLINIC)
        assert len(listed) == 1
        assert incidents.incident_to_dict(listed[0])["clinic_id"] == CLINIC

    def test_update_status_and_notes(self, db):
        incident = _create(db)
        updated = incidents.update_incident(
            db, CLINIC, incident.id, {"status": "investigating", "assignee": "sec-team"}, actor="admin-2",
        )
        assert updated.status == "investigating"
        assert updated.details["assignee"] == "sec-team"
        assert updated.response_actions[-1]["action"] == "incident_updated"
        assert "security_incident_updated" in _audit_actions(db)

    def test_update_rejects_unknown_status(self, db):
        incident = _create(db)
        with pytest.raises(incidents.IncidentError, match="Unknown incident status"):
            incidents.update_incident(db, CLINIC, incident.id, {"status": "deleted"})

    def test_resolve(self, db):
        incident = _create(db)
        resolved = incidents.resolve_incident(db, CLINIC, incident.id, resolution="Password reset", actor="admin-1")
        assert resolved.status == "resolved"
        assert resolved.resolved_at is not None
        assert resolved.response_actions[-1]["details"] == "Password reset"

    def test_other_clinic_cannot_touch_incident(self, db):
        incident = _create(db)
        with pytest.raises(incidents.IncidentError, match="Incident not found"):
            incidents.resolve_incident(db, "other", incident.id)
