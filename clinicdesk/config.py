"""Centralized configuration for the ClinicDesk PMS gateway.

Secret resolution order (per variable):
  1. Environment variable / ``.env`` file  (local dev)
  2. AWS SSM Parameter Store SecureString  (when ``AWS_EXECUTION_ENV`` is set)

The SSM paths follow the convention ``/clinicdesk/<VARIABLE_NAME>``.
"""

from __future__ import annotations

import logging
import os

from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)

# ── Feature flag: running on AWS? ────────────────────────────────────
_ON_AWS = bool(os.getenv("AWS_EXECUTION_ENV"))


# ── Secret resolution ────────────────────────────────────────────────

def _get_ssm_parameter(name: str) -> str | None:
    """Fetch a SecureString from SSM Parameter Store.

    Returns ``None`` if the parameter does not exist or boto3 is
    unavailable.  Errors are logged but never raised so that local-dev
    fallback still works.
    """
    try:
        import boto3  # noqa: PLC0415 (only needed on AWS)

        ssm = boto3.client("ssm")
        resp = ssm.get_parameter(Name=f"/clinicdesk/{name}", WithDecryption=True)
        return resp["Parameter"]["Value"]
    except Exception:
        logger.debug("SSM lookup for %s failed (expected locally)", name)
        return None


def get_secret(name: str, default: str | None = None) -> str | None:
    """Return a secret from env-var or SSM, or *default* when neither has it."""
    value = os.getenv(name)
    if value and not value.startswith("your_"):
        return value

    if _ON_AWS:
        ssm_value = _get_ssm_parameter(name)
        if ssm_value:
            return ssm_value

    return default


def require_secret(name: str) -> str:
    """Like :func:`get_secret` but raise a clear error when the value is missing."""
    value = get_secret(name)
    if value:
        return value
    raise OSError(
        f"Missing required configuration: {name}. "
        f"Set it in .env (local) or SSM Parameter Store /clinicdesk/{name} (AWS)."
    )


def _get_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


# ── Database ────────────────────────────────────────────────────────
DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///./clinicdesk.db")
DATABASE_ECHO: bool = _get_bool("DATABASE_ECHO")

# ── CareStack (office credentials override these) ──────────────────
CARESTACK_BASE_URL: str = os.getenv("CARESTACK_BASE_URL", "https://api.carestack.com/v1")
CARESTACK_CLIENT_ID: str | None = get_secret("CARESTACK_CLIENT_ID")
CARESTACK_CLIENT_SECRET: str | None = get_secret("CARESTACK_CLIENT_SECRET")

# ── Outbound HTTP / resilience ─────────────────────────────────────
REQUEST_TIMEOUT_SECONDS: float = float(os.getenv("REQUEST_TIMEOUT_SECONDS", "15"))
BREAKER_FAILURE_THRESHOLD: int = int(os.getenv("BREAKER_FAILURE_THRESHOLD", "5"))
BREAKER_COOLDOWN_SECONDS: float = float(os.getenv("BREAKER_COOLDOWN_SECONDS", "60"))
REFERENCE_DATA_TTL_SECONDS: float = float(os.getenv("REFERENCE_DATA_TTL_SECONDS", "300"))

# ── OpenAI realtime voice ──────────────────────────────────────────
OPENAI_BASE_URL: str = os.getenv("OPENAI_BASE_URL", "https://api.openai.com/v1")
OPENAI_REALTIME_MODEL: str = os.getenv(
    "OPENAI_REALTIME_MODEL", "gpt-4o-realtime-preview-2024-12-17",
)
OPENAI_REALTIME_VOICE: str = os.getenv("OPENAI_REALTIME_VOICE", "alloy")

# ── Server ──────────────────────────────────────────────────────────
API_TOKEN: str | None = get_secret("API_TOKEN")
SERVER_HOST: str = os.getenv("SERVER_HOST", "0.0.0.0")
SERVER_PORT: int = int(os.getenv("SERVER_PORT", "8000"))
CORS_ORIGINS: list[str] = os.getenv(
    "CORS_ORIGINS",
    "http://localhost:3000,http://localhost:5173",
).split(",")
