"""Tests for the CareStack adapter, driven through httpx.MockTransport."""

from __future__ import annotations

import json

import httpx
import pytest

from clinicdesk.pms.carestack import CareStackAdapter, TokenCache
from clinicdesk.pms.interface import AppointmentData, DateRange, PatientData, PMSAuthError, PMSError
from clinicdesk.services.cache import TTLCache

BASE_URL = "https://carestack.test/v1"


class FakeCareStack:
    """Records requests and answers from a route table."""

    def __init__(self, routes: dict[tuple[str, str], httpx.Response | list[httpx.Response]]):
        self.routes = routes
        self.requests: list[httpx.Request] = []
        self.token_calls = 0

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path.removeprefix("/v1")
        if request.method == "POST" and path == "/oauth/token":
            self.token_calls += 1
            return httpx.Response(200, json={"access_token": f"tok-{self.token_calls}", "expires_in": 3600})
        answer = self.routes[(request.method, path)]
        if isinstance(answer, list):
            return answer.pop(0)
        return answer

    def api_requests(self) -> list[httpx.Request]:
        return [r for r in self.requests if not r.url.path.endswith("/oauth/token")]


def _adapter(fake: FakeCareStack, *, clock=None, cache: TTLCache | None = None) -> CareStackAdapter:
    client = httpx.Client(base_url=BASE_URL, transport=httpx.MockTransport(fake.handler))
    return CareStackAdapter(
        {"client_id": "cid", "client_secret": "secret"},
        http_client=client,
        token_cache=TokenCache(clock=clock) if clock else None,
        cache=cache,
    )


PROVIDERS = {"providers": [
    {"id": 11, "first_name": "Ana", "last_name": "Silva", "specialty": "Ortho", "location_ids": [1, 2]},
]}


# ── Auth ─────────────────────────────────────────────────────────────


class TestTokenHandling:
    def test_token_is_requested_with_client_credentials(self):
        fake = FakeCareStack({("GET", "/providers"): httpx.Response(200, json=PROVIDERS)})
        _adapter(fake).list_providers()

        token_request = fake.requests[0]
        assert json.loads(token_request.content) == {
            "grant_type": "client_credentials",
            "client_id": "cid",
            "client_secret": "secret",
        }
        assert fake.requests[1].headers["Authorization"] == "Bearer tok-1"

    def test_token_is_reused_until_expiry(self, clock):
        fake = FakeCareStack({("GET", "/patients/search"): httpx.Response(200, json={"items": []})})
        adapter = _adapter(fake, clock=clock)

        adapter.search_patient_by_phone("555")
        clock.advance(3600 - 61)
        adapter.search_patient_by_phone("555")
        assert fake.token_calls == 1

    def test_token_refreshed_once_inside_safety_margin(self, clock):
        fake = FakeCareStack({("GET", "/patients/search"): httpx.Response(200, json={"items": []})})
        adapter = _adapter(fake, clock=clock)

        adapter.search_patient_by_phone("555")
        clock.advance(3600 - 60)
        adapter.search_patient_by_phone("555")
        adapter.search_patient_by_phone("555")
        assert fake.token_calls == 2
        assert fake.requests[-1].headers["Authorization"] == "Bearer tok-2"

    def test_401_invalidates_token_for_next_call(self):
        fake = FakeCareStack({("GET", "/locations"): [
            httpx.Response(401, json={}),
            httpx.Response(200, json={"locations": []}),
        ]})
        adapter = _adapter(fake)

        with pytest.raises(PMSError, match="Authentication failed"):
            adapter.list_locations()
        assert fake.token_calls == 1

        adapter.list_locations()
        assert fake.token_calls == 2

    def test_token_endpoint_failure_raises_auth_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(400, json={"error": "invalid_client"})

        client = httpx.Client(base_url=BASE_URL, transport=httpx.MockTransport(handler))
        adapter = CareStackAdapter({}, http_client=client)
        with pytest.raises(PMSAuthError, match="Failed to authenticate with CareStack"):
            adapter.list_providers()

    @pytest.mark.parametrize("body", [{"expires_in": 3600}, ["not", "a", "dict"]])
    def test_token_response_without_access_token(self, body):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json=body)

        client = httpx.Client(base_url=BASE_URL, transport=httpx.MockTransport(handler))
        adapter = CareStackAdapter({"client_id": "cid", "client_secret": "secret"}, http_client=client)
        with pytest.raises(PMSAuthError, match="Failed to authenticate with CareStack"):
            adapter.list_providers()


# ── Error mapping ────────────────────────────────────────────────────


class TestErrorMapping:
    def test_429_is_rate_limit(self):
        fake = FakeCareStack({("GET", "/patients/search"): httpx.Response(429)})
        with pytest.raises(PMSError, match="Rate limit exceeded") as exc_info:
            _adapter(fake).search_patient_by_phone("555")
        assert exc_info.value.status_code == 429

    def test_other_errors_carry_status_text(self):
        fake = FakeCareStack({("POST", "/appointments"): httpx.Response(503)})
        appointment = AppointmentData(
            patient_id="1", provider_id="2", start_time="2025-03-10T09:00:00", end_time="2025-03-10T09:30:00",
        )
        with pytest.raises(PMSError, match="CareStack API error: Service Unavailable"):
            _adapter(fake).book_appointment(appointment)

    def test_get_patient_returns_none_on_404(self):
        fake = FakeCareStack({("GET", "/patients/42"): httpx.Response(404)})
        assert _adapter(fake).get_patient("42") is None


# ── Operations ───────────────────────────────────────────────────────


class TestOperations:
    def test_search_maps_patients(self):
        fake = FakeCareStack({("GET", "/patients/search"): httpx.Response(200, json={"items": [
            {"id": 7, "first_name": "Jo", "last_name": "Doe", "phone": "555", "dob": "1990-01-01",
             "address": {"street": "1 A St", "city": "X", "state": "CA", "zip_code": "90001"}},
        ]})})
        patients = _adapter(fake).search_patient_by_phone("555")

        assert fake.api_requests()[0].url.params["phone"] == "555"
        assert patients[0].id == "7"
        assert patients[0].date_of_birth == "1990-01-01"
        assert patients[0].address.zip_code == "90001"

    def test_create_patient_sends_snake_case(self):
        fake = FakeCareStack({("POST", "/patients"): httpx.Response(
            200, json={"id": 8, "first_name": "Jo", "last_name": "Doe", "phone": "555"},
        )})
        patient = _adapter(fake).create_patient(PatientData(first_name="Jo", last_name="Doe", phone="555"))

        body = json.loads(fake.api_requests()[0].content)
        assert body["first_name"] == "Jo"
        assert patient.id == "8"

    def test_available_slots_query(self):
        fake = FakeCareStack({("GET", "/appointments/availability"): httpx.Response(200, json={"slots": [
            {"id": "s1", "start_time": "2025-03-10T09:00:00", "end_time": "2025-03-10T09:30:00",
             "provider_id": "11", "available": True},
        ]})})
        slots = _adapter(fake).get_available_slots(
            "11", DateRange(**{"from": "2025-03-10", "to": "2025-03-11"}),
        )

        params = fake.api_requests()[0].url.params
        assert (params["providerId"], params["from"], params["to"]) == ("11", "2025-03-10", "2025-03-11")
        assert slots[0].provider_id == "11"

    def test_book_appointment_sends_idempotency_key(self):
        fake = FakeCareStack({("POST", "/appointments"): httpx.Response(200, json={
            "id": 99, "patient_id": 1, "provider_id": 2,
            "start": "2025-03-10T09:00:00", "end": "2025-03-10T09:30:00", "status": "scheduled",
        })})
        appointment = _adapter(fake).book_appointment(AppointmentData(
            patient_id="1", provider_id="2", start_time="2025-03-10T09:00:00", end_time="2025-03-10T09:30:00",
        ))

        body = json.loads(fake.api_requests()[0].content)
        assert body["idempotency_key"].startswith("appt_")
        assert body["start"] == "2025-03-10T09:00:00"
        assert appointment.id == "99"
        assert appointment.status == "scheduled"

    def test_providers_are_cached(self):
        fake = FakeCareStack({("GET", "/providers"): httpx.Response(200, json=PROVIDERS)})
        adapter = _adapter(fake)

        first = adapter.list_providers()
        second = adapter.list_providers()
        assert len(fake.api_requests()) == 1
        assert first == second
        assert second[0].name == "Ana Silva"
        assert second[0].location_ids == ["1", "2"]

    def test_cached_providers_expire(self, clock):
        fake = FakeCareStack({("GET", "/providers"): httpx.Response(200, json=PROVIDERS)})
        adapter = _adapter(fake, cache=TTLCache(default_ttl=300, clock=clock))

        adapter.list_providers()
        clock.advance(301)
        adapter.list_providers()
        assert len(fake.api_requests()) == 2

    def test_refresh_reference_data_drops_cache(self):
        fake = FakeCareStack({
            ("GET", "/providers"): httpx.Response(200, json=PROVIDERS),
            ("GET", "/locations"): httpx.Response(200, json={"locations": [{"id": 1, "name": "Main"}]}),
        })
        adapter = _adapter(fake)
        adapter.list_providers()
        adapter.list_locations()

        assert adapter.refresh_reference_data() == 2
        adapter.list_providers()
        assert len(fake.api_requests()) == 3
