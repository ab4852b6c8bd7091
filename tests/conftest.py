"""Shared test fixtures for the ClinicDesk test suite."""

from __future__ import annotations

import os
from datetime import datetime

import pytest
from sqlalchemy.orm import sessionmaker


def pytest_configure(config):
    """Set test environment variables BEFORE collection starts.

    This runs before any imports, so config.py and database.py pick up an
    in-memory database and never reach for real credentials.
    """
    os.environ["DATABASE_URL"] = "sqlite:///:memory:"
    os.environ["METRICS_ENABLED"] = "false"
    os.environ.setdefault("OPENAI_API_KEY", "test-openai-key-123")
    os.environ.setdefault("CARESTACK_CLIENT_ID", "test-client-id")
    os.environ.setdefault("CARESTACK_CLIENT_SECRET", "test-client-secret")


CLINIC_ID = "7d1c2a5e-3b4f-4c6d-8e9f-0a1b2c3d4e5f"


class FakeClock:
    """Manually advanced clock for TTL, token and breaker tests."""

    def __init__(self, start: float = 1_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def db():
    """A session on a fresh in-memory database with every table created."""
    from clinicdesk.database import init_db, make_engine

    engine = make_engine("sqlite:///:memory:")
    init_db(bind=engine)
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    try:
        yield session
    finally:
        session.close()
        engine.dispose()


@pytest.fixture
def clinic(db):
    """One clinic with a provider, a location and Mon-Fri 08:00-18:00 hours."""
    from clinicdesk import models

    provider = models.Provider(clinic_id=CLINIC_ID, name="Dr. Ana Silva", specialty="General")
    location = models.Location(
        clinic_id=CLINIC_ID, name="Downtown", address="12 Main St, Springfield, IL 62701",
        phone="555-0100",
    )
    db.add_all([provider, location])
    db.add_all([
        models.ClinicHours(clinic_id=CLINIC_ID, dow=dow, open_min=8 * 60, close_min=18 * 60)
        for dow in range(1, 6)
    ])
    db.commit()
    return {"clinic_id": CLINIC_ID, "provider": provider, "location": location}


@pytest.fixture
def make_slot(db, clinic):
    """Factory fixture inserting one slot for the clinic's provider."""
    from clinicdesk import models

    def _make(starts_at: datetime, ends_at: datetime, status: str = "open"):
        slot = models.Slot(
            clinic_id=clinic["clinic_id"],
            provider_id=clinic["provider"].id,
            location_id=clinic["location"].id,
            starts_at=starts_at,
            ends_at=ends_at,
            status=status,
        )
        db.add(slot)
        db.commit()
        return slot

    return _make
