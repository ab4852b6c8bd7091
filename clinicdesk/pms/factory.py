"""Pick the adapter for an office's configured PMS."""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy.orm import Session

from clinicdesk.pms.breaker import CircuitBreaker, get_circuit_breaker
from clinicdesk.pms.carestack import CareStackAdapter, get_reference_cache
from clinicdesk.pms.dentrix import DentrixAdapter
from clinicdesk.pms.dummy import DummyAdapter
from clinicdesk.pms.eaglesoft import EaglesoftAdapter
from clinicdesk.pms.interface import PMSInterface, UnsupportedPMSError

logger = logging.getLogger(__name__)

SUPPORTED_PMS_TYPES = ("carestack", "dentrix", "eaglesoft", "dummy")


def create_adapter(
    pms_type: str,
    credentials: dict[str, Any] | None = None,
    *,
    db: Session | None = None,
    breaker: CircuitBreaker | None = None,
) -> PMSInterface:
    """Return a fresh adapter for *pms_type* (case-insensitive).

    ``db`` is only used by the dummy adapter; ``breaker`` defaults to the
    process-wide instance so fast-fail state survives across requests.
    """
    kind = (pms_type or "").strip().lower()
    logger.debug("Creating PMS adapter for type=%s", kind)

    if kind == "carestack":
        return CareStackAdapter(credentials, cache=get_reference_cache(credentials))
    if kind == "dentrix":
        return DentrixAdapter(credentials, breaker=breaker or get_circuit_breaker())
    if kind == "eaglesoft":
        return EaglesoftAdapter(credentials)
    if kind == "dummy":
        return DummyAdapter(credentials, db=db)
    raise UnsupportedPMSError(f"Unsupported PMS type: {pms_type}")
