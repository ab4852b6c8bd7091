"""ClinicDesk: the PMS gateway behind a dental clinic's AI receptionist.

Architecture Overview
=====================

The voice receptionist and the staff dashboard talk to one FastAPI service.
Everything that touches a clinic's Practice Management System (PMS) goes
through a single adapter interface:

1. **pms.interface**: ``PMSInterface`` plus the camelCase pydantic types
   (patients, slots, appointments, providers, locations) every adapter
   speaks.

2. **pms.factory**: ``create_adapter(pms_type, credentials)`` picks the
   adapter from the office's configured PMS.

Routing: route → factory → adapter → (CareStack REST | local DB | stub)

Key Design Decisions
--------------------
- **CareStack**: OAuth client-credentials token cached until 60 s before
  expiry; a 401 drops the token so the next call re-authenticates.
  Providers and locations are cached with a TTL.
- **Dentrix / Eaglesoft**: stubs that always fail.  Dentrix calls run
  through a per-endpoint circuit breaker (5 failures, 60 s cooldown) so a
  dead integration fails fast.
- **Dummy PMS**: backed by the local tables, for demo clinics.
- **Booking**: the local schedule is authoritative.  The slot claim and
  the appointment insert share a transaction; the PMS copy is attempted
  afterwards and its outcome stored as ``sync_status``.
- **Resilience & metrics**: every outbound PMS call is timed into the
  batched CloudWatch ``MetricsClient``.

Package Structure
-----------------
- ``clinicdesk/config.py``: configuration from env vars / SSM
- ``clinicdesk/database.py``, ``clinicdesk/models.py``: SQLAlchemy schema
- ``clinicdesk/pms/``: adapter interface, factory, adapters, breaker
- ``clinicdesk/scheduling/``: slot generation and booking
- ``clinicdesk/services/``: cache, metrics, audit log, incidents, OpenAI realtime
- ``clinicdesk/api/``: FastAPI routes and Pydantic schemas
- ``clinicdesk/server.py``: FastAPI application
- ``clinicdesk/main.py``: operator CLI
"""
