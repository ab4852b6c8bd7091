"""CareStack adapter: OAuth client-credentials + REST, mapped onto PMSInterface.

Behaviour worth knowing before changing anything here:

* The access token is cached until ``expires_in - 60s``.  Expiry is checked
  lazily on the next call; there is no background refresh.
* A 401 from any endpoint drops the cached token, so the *following* call
  re-authenticates.  The failing call itself is not retried.
* Any other non-2xx response raises :class:`PMSError` with the HTTP status
  text.  Retrying is the caller's business.
* Providers, locations and operatories change rarely and are cached for
  ``REFERENCE_DATA_TTL_SECONDS``.
"""

from __future__ import annotations

import logging
import threading
import time
import uuid
from collections.abc import Callable
from typing import Any

import httpx

from clinicdesk.config import (
    CARESTACK_BASE_URL,
    CARESTACK_CLIENT_ID,
    CARESTACK_CLIENT_SECRET,
    REFERENCE_DATA_TTL_SECONDS,
    REQUEST_TIMEOUT_SECONDS,
)
from clinicdesk.pms.interface import (
    Address,
    Appointment,
    AppointmentData,
    DateRange,
    Location,
    Patient,
    PatientData,
    PMSAuthError,
    PMSError,
    PMSInterface,
    Provider,
    Slot,
)
from clinicdesk.services.cache import TTLCache
from clinicdesk.services.metrics import metrics

logger = logging.getLogger(__name__)

# Seconds shaved off the advertised token lifetime
TOKEN_SAFETY_MARGIN_SECONDS = 60

# ── Cache key prefixes ──────────────────────────────────────────────
_CK_PROVIDERS = "providers:"
_CK_LOCATIONS = "locations:"
_CK_OPERATORIES = "operatories:"


class TokenCache:
    """Holds one OAuth access token and its expiry.

    Owned by a single adapter instance; pass a shared instance explicitly
    if tokens should outlive the adapter.
    """

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._token: str | None = None
        self._expires_at = 0.0

    def get(self) -> str | None:
        if self._token and self._clock() < self._expires_at:
            return self._token
        return None

    def store(self, token: str, expires_in: float) -> None:
        self._token = token
        self._expires_at = self._clock() + expires_in - TOKEN_SAFETY_MARGIN_SECONDS

    def invalidate(self) -> None:
        self._token = None
        self._expires_at = 0.0


def _pick(data: dict[str, Any], *keys: str, default: Any = None) -> Any:
    """Return the first present key; CareStack mixes snake_case and camelCase."""
    for key in keys:
        if key in data and data[key] is not None:
            return data[key]
    return default


def _credential(credentials: dict[str, Any], snake: str, camel: str, fallback: Any) -> Any:
    return credentials.get(snake) or credentials.get(camel) or fallback


# ── Process-wide reference-data caches (thread-safe) ────────────────
_reference_caches: dict[tuple[str, str | None], TTLCache] = {}
_reference_lock = threading.Lock()


def get_reference_cache(credentials: dict[str, Any] | None = None) -> TTLCache:
    """Return the cache shared by every adapter for one CareStack account.

    Adapters are built per request, so providers, locations and operatories
    only stay cached across requests when the cache outlives the adapter.
    Accounts are told apart by base URL and client id.
    """
    credentials = credentials or {}
    key = (
        _credential(credentials, "base_url", "baseUrl", CARESTACK_BASE_URL),
        _credential(credentials, "client_id", "clientId", CARESTACK_CLIENT_ID),
    )
    cache = _reference_caches.get(key)
    if cache is None:
        with _reference_lock:
            cache = _reference_caches.get(key)
            if cache is None:
                cache = _reference_caches[key] = TTLCache(default_ttl=REFERENCE_DATA_TTL_SECONDS)
    return cache


def clear_reference_caches() -> None:
    with _reference_lock:
        _reference_caches.clear()


class CareStackAdapter(PMSInterface):
    """The production adapter.  One instance per request is the normal usage."""

    name = "carestack"

    def __init__(
        self,
        credentials: dict[str, Any] | None = None,
        *,
        http_client: httpx.Client | None = None,
        token_cache: TokenCache | None = None,
        cache: TTLCache | None = None,
    ):
        credentials = credentials or {}
        self._base_url = _credential(credentials, "base_url", "baseUrl", CARESTACK_BASE_URL)
        self._client_id = _credential(credentials, "client_id", "clientId", CARESTACK_CLIENT_ID)
        self._client_secret = _credential(
            credentials, "client_secret", "clientSecret", CARESTACK_CLIENT_SECRET,
        )
        self._owns_client = http_client is None
        self._client = http_client or httpx.Client(
            base_url=self._base_url,
            timeout=REQUEST_TIMEOUT_SECONDS,
        )
        self._tokens = token_cache or TokenCache()
        self._cache = cache if cache is not None else TTLCache(default_ttl=REFERENCE_DATA_TTL_SECONDS)
        logger.debug("CareStack adapter initialised (base_url=%s)", self._base_url)

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    # ── Auth ─────────────────────────────────────────────────────────

    def _get_access_token(self) -> str:
        token = self._tokens.get()
        if token:
            return token

        logger.info("Requesting CareStack access token")
        try:
            with metrics.track(self.name, "POST /oauth/token"):
                response = self._client.post(
                    "/oauth/token",
                    json={
                        "grant_type": "client_credentials",
                        "client_id": self._client_id,
                        "client_secret": self._client_secret,
                    },
                )
                if response.status_code >= 400:
                    raise PMSAuthError(
                        f"Failed to get CareStack token: {response.reason_phrase}",
                        status_code=response.status_code,
                    )
                data = response.json()
                token = data["access_token"]
                expires_in = float(data.get("expires_in", 3600))
        except (httpx.HTTPError, PMSAuthError, ValueError, KeyError, TypeError, AttributeError) as exc:
            logger.error("Error getting CareStack token: %s", exc)
            raise PMSAuthError("Failed to authenticate with CareStack") from exc

        self._tokens.store(token, expires_in)
        return token

    # ── Transport ────────────────────────────────────────────────────

    def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json_body: dict[str, Any] | None = None,
    ) -> Any:
        """Execute one authenticated call.  No retries at this layer."""
        token = self._get_access_token()
        with metrics.track(self.name, f"{method} {path}"):
            try:
                response = self._client.request(
                    method,
                    path,
                    params=params,
                    json=json_body,
                    headers={
                        "Authorization": f"Bearer {token}",
                        "Content-Type": "application/json",
                    },
                )
            except httpx.HTTPError as exc:
                logger.error("CareStack %s %s failed: %s", method, path, exc)
                raise PMSError(f"CareStack request failed: {exc}") from exc

            if response.status_code >= 400:
                logger.error(
                    "CareStack API error: %s %s → %d %s",
                    method, path, response.status_code, response.text,
                )
                if response.status_code == 429:
                    raise PMSError("Rate limit exceeded", status_code=429)
                if response.status_code == 401:
                    self._tokens.invalidate()
                    raise PMSError("Authentication failed", status_code=401)
                raise PMSError(
                    f"CareStack API error: {response.reason_phrase}",
                    status_code=response.status_code,
                )
            return response.json()

    # ── Field mapping ────────────────────────────────────────────────

    @staticmethod
    def _to_address(raw: dict[str, Any] | None) -> Address | None:
        if not raw:
            return None
        return Address(
            street=_pick(raw, "street", default=""),
            city=_pick(raw, "city", default=""),
            state=_pick(raw, "state", default=""),
            zip_code=_pick(raw, "zip_code", "zipCode", default=""),
        )

    @classmethod
    def _to_patient(cls, raw: dict[str, Any]) -> Patient:
        return Patient(
            id=str(raw["id"]),
            first_name=_pick(raw, "first_name", "firstName", default=""),
            last_name=_pick(raw, "last_name", "lastName", default=""),
            phone=_pick(raw, "phone", default=""),
            email=_pick(raw, "email"),
            date_of_birth=_pick(raw, "dob", "date_of_birth", "dateOfBirth"),
            address=cls._to_address(_pick(raw, "address")),
        )

    @staticmethod
    def _to_slot(raw: dict[str, Any]) -> Slot:
        return Slot(
            id=str(raw["id"]),
            start_time=_pick(raw, "start_time", "startTime", "start"),
            end_time=_pick(raw, "end_time", "endTime", "end"),
            provider_id=str(_pick(raw, "provider_id", "providerId")),
            location_id=_pick(raw, "location_id", "locationId"),
            available=bool(_pick(raw, "available", default=True)),
        )

    @staticmethod
    def _to_appointment(raw: dict[str, Any]) -> Appointment:
        return Appointment(
            id=str(raw["id"]),
            patient_id=str(_pick(raw, "patient_id", "patientId")),
            provider_id=str(_pick(raw, "provider_id", "providerId")),
            location_id=_pick(raw, "location_id", "locationId"),
            start_time=_pick(raw, "start", "start_time", "startTime"),
            end_time=_pick(raw, "end", "end_time", "endTime"),
            status=_pick(raw, "status", default="scheduled"),
            notes=_pick(raw, "notes"),
        )

    @staticmethod
    def _to_provider(raw: dict[str, Any]) -> Provider:
        first = _pick(raw, "first_name", "firstName", default="")
        last = _pick(raw, "last_name", "lastName", default="")
        return Provider(
            id=str(raw["id"]),
            name=_pick(raw, "name", default=f"{first} {last}".strip()),
            specialty=_pick(raw, "specialty"),
            location_ids=[str(x) for x in _pick(raw, "location_ids", "locationIds", default=[])],
        )

    @classmethod
    def _to_location(cls, raw: dict[str, Any]) -> Location:
        return Location(
            id=str(raw["id"]),
            name=_pick(raw, "name", default=""),
            address=cls._to_address(_pick(raw, "address")) or Address(),
            phone=_pick(raw, "phone"),
        )

    # ── PMSInterface ─────────────────────────────────────────────────

    def search_patient_by_phone(self, phone_number: str) -> list[Patient]:
        data = self._request("GET", "/patients/search", params={"phone": phone_number})
        return [self._to_patient(p) for p in data.get("items", [])]

    def create_patient(self, patient_data: PatientData) -> Patient:
        payload: dict[str, Any] = {
            "first_name": patient_data.first_name,
            "last_name": patient_data.last_name,
            "phone": patient_data.phone,
            "email": patient_data.email,
            "dob": patient_data.date_of_birth,
        }
        if patient_data.address:
            payload["address"] = patient_data.address.model_dump()
        data = self._request("POST", "/patients", json_body=payload)
        return self._to_patient(data)

    def get_available_slots(self, provider_id: str, date_range: DateRange) -> list[Slot]:
        data = self._request(
            "GET",
            "/appointments/availability",
            params={"providerId": provider_id, "from": date_range.from_, "to": date_range.to},
        )
        return [self._to_slot(s) for s in data.get("slots") or []]

    def book_appointment(self, appointment_data: AppointmentData) -> Appointment:
        payload = {
            "patient_id": appointment_data.patient_id,
            "provider_id": appointment_data.provider_id,
            "location_id": appointment_data.location_id,
            "start": appointment_data.start_time,
            "end": appointment_data.end_time,
            "notes": appointment_data.notes,
            "idempotency_key": f"appt_{uuid.uuid4().hex}",
        }
        data = self._request("POST", "/appointments", json_body=payload)
        return self._to_appointment(data)

    def list_providers(self) -> list[Provider]:
        key = f"{_CK_PROVIDERS}all"
        cached = self._cache.get(key)
        if cached is not None:
            return [Provider(**p) for p in cached]

        data = self._request("GET", "/providers")
        providers = [self._to_provider(p) for p in data.get("providers", [])]
        self._cache.put(key, [p.model_dump() for p in providers])
        return providers

    def list_locations(self) -> list[Location]:
        key = f"{_CK_LOCATIONS}all"
        cached = self._cache.get(key)
        if cached is not None:
            return [Location(**loc) for loc in cached]

        data = self._request("GET", "/locations")
        locations = [self._to_location(loc) for loc in data.get("locations", [])]
        self._cache.put(key, [loc.model_dump() for loc in locations])
        return locations

    # ── CareStack-specific ───────────────────────────────────────────

    def list_operatories(self, location_id: str | None = None) -> list[dict[str, Any]]:
        """List treatment rooms, optionally for one location (cached)."""
        key = f"{_CK_OPERATORIES}{location_id or 'all'}"
        cached = self._cache.get(key)
        if cached is not None:
            return cached

        params = {"locationId": location_id} if location_id else None
        data = self._request("GET", "/operatories", params=params)
        operatories = data.get("operatories", [])
        self._cache.put(key, operatories)
        return operatories

    def get_patient(self, patient_id: str) -> Patient | None:
        """Fetch one patient; ``None`` if CareStack answers 404."""
        try:
            data = self._request("GET", f"/patients/{patient_id}")
        except PMSError as exc:
            if exc.status_code == 404:
                return None
            raise
        return self._to_patient(data)

    def refresh_reference_data(self) -> int:
        """Drop cached providers, locations and operatories.  Returns count dropped."""
        return sum(
            self._cache.invalidate_prefix(prefix)
            for prefix in (_CK_PROVIDERS, _CK_LOCATIONS, _CK_OPERATORIES)
        )
