"""Append-only writes to ``security_audit_log``."""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from clinicdesk import models

logger = logging.getLogger(__name__)


def log_event(
    db: Session,
    *,
    clinic_id: str | None,
    action_type: str,
    resource_type: str | None = None,
    resource_id: str | None = None,
    details: dict[str, Any] | None = None,
) -> models.SecurityAuditLog | None:
    """Record one audit entry and commit it.

    Audit failures are logged and reported as ``None``; they never undo
    the operation being audited.
    """
    entry = models.SecurityAuditLog(
        clinic_id=clinic_id,
        action_type=action_type,
        resource_type=resource_type,
        resource_id=resource_id,
        details=details or {},
    )
    try:
        db.add(entry)
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Failed to write audit entry %s for %s", action_type, resource_id)
        return None
    return entry
