"""Operator CLI for the ClinicDesk gateway.

For serving requests, use the FastAPI server (clinicdesk/server.py).

Usage:
    python -m clinicdesk.main init-db
    python -m clinicdesk.main generate-slots --clinic-id C --provider-id P --date 2025-03-10
    python -m clinicdesk.main probe --office-id O --action ping
    python -m clinicdesk.main --debug probe ...    # shows HTTP calls
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from datetime import date

from dotenv import load_dotenv

from clinicdesk import models
from clinicdesk.database import SessionLocal, init_db
from clinicdesk.pms.factory import create_adapter
from clinicdesk.pms.interface import PMSError

logger = logging.getLogger(__name__)

PROBE_ACTIONS = ("ping", "providers", "locations", "search_patient")


def _configure_logging(debug: bool = False) -> None:
    """Set up logging: WARNING by default, DEBUG when --debug is passed."""
    root_level = logging.DEBUG if debug else logging.WARNING
    logging.basicConfig(
        level=root_level,
        format="%(asctime)s %(levelname)-8s %(name)s - %(message)s",
    )

    if not debug:
        logging.getLogger("httpx").setLevel(logging.WARNING)
        logging.getLogger("httpcore").setLevel(logging.WARNING)

    logging.getLogger("clinicdesk").setLevel(logging.DEBUG if debug else logging.INFO)


def _cmd_init_db(args: argparse.Namespace) -> int:
    init_db()
    print("Database schema ready.")
    return 0


def _cmd_generate_slots(args: argparse.Namespace) -> int:
    from clinicdesk.scheduling.slots import SlotGenerationError, SlotRequest, generate_slots  # noqa: PLC0415

    request = SlotRequest(
        clinic_id=args.clinic_id,
        provider_id=args.provider_id,
        location_id=args.location_id,
        date=date.fromisoformat(args.date),
        start_time=args.start,
        end_time=args.end,
        duration_minutes=args.duration,
    )
    with SessionLocal() as db:
        try:
            slots = generate_slots(db, request)
        except SlotGenerationError as e:
            print(f"Error: {e}", file=sys.stderr)
            return 1
    print(f"Generated {len(slots)} slots.")
    return 0


def _cmd_probe(args: argparse.Namespace) -> int:
    from clinicdesk.api.routes import run_probe  # noqa: PLC0415

    probe = {"ping": "connection"}.get(args.action, args.action)
    with SessionLocal() as db:
        office = db.get(models.Office, args.office_id)
        if office is None:
            print(f"Error: office {args.office_id} not found", file=sys.stderr)
            return 1
        adapter = None
        try:
            adapter = create_adapter(office.pms_type, office.pms_credentials or {}, db=db)
            result = run_probe(adapter, probe, phone=args.phone)
        except PMSError as e:
            logger.debug("Probe failed", exc_info=True)
            print(f"Error: {e}", file=sys.stderr)
            return 1
        finally:
            if adapter is not None:
                adapter.close()
    print(json.dumps(result, indent=2))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="ClinicDesk PMS gateway CLI")
    parser.add_argument(
        "--debug", action="store_true",
        help="Show all log messages including HTTP requests",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("init-db", help="Create database tables")
    p.set_defaults(func=_cmd_init_db)

    p = sub.add_parser("generate-slots", help="Generate open slots for a provider")
    p.add_argument("--clinic-id", required=True)
    p.add_argument("--provider-id", required=True)
    p.add_argument("--location-id")
    p.add_argument("--date", required=True, help="YYYY-MM-DD")
    p.add_argument("--start", default="09:00")
    p.add_argument("--end", default="17:00")
    p.add_argument("--duration", type=int, default=30, help="Slot length in minutes")
    p.set_defaults(func=_cmd_generate_slots)

    p = sub.add_parser("probe", help="Check an office's PMS connection")
    p.add_argument("--office-id", required=True)
    p.add_argument("--action", choices=PROBE_ACTIONS, default="ping")
    p.add_argument("--phone", default="5555550100", help="Phone for search_patient")
    p.set_defaults(func=_cmd_probe)

    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    load_dotenv()
    _configure_logging(debug=args.debug)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
