"""Tests for the CloudWatch metrics client."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest

from clinicdesk.services.metrics import MetricsClient


def _make_client(*, enabled: bool = False) -> MetricsClient:
    with patch.dict("os.environ", {"METRICS_ENABLED": str(enabled).lower()}):
        return MetricsClient()


class TestMetricsRecording:
    """record_success / record_failure buffer the right data points."""

    def test_record_success_appends_count_and_latency(self):
        client = _make_client()
        client.record_success("carestack", "GET /providers", latency_ms=123.4)
        names = {m["MetricName"] for m in client._buffer}
        assert names == {"PMS/RequestCount", "PMS/Latency"}

    def test_record_failure_without_latency(self):
        client = _make_client()
        client.record_failure("dentrix", "patients", error_type="CircuitOpenError")
        names = {m["MetricName"] for m in client._buffer}
        assert len(client._buffer) == 2
        assert names == {"PMS/RequestCount", "PMS/ErrorCount"}

    def test_record_failure_with_latency_appends_three_data_points(self):
        client = _make_client()
        client.record_failure("carestack", "POST /appointments", error_type="PMSError", latency_ms=500.0)
        assert len(client._buffer) == 3

    def test_failure_dimensions_include_error_type(self):
        client = _make_client()
        client.record_failure("carestack", "GET /locations", error_type="PMSAuthError")
        error_metric = next(m for m in client._buffer if m["MetricName"] == "PMS/ErrorCount")
        dim_map = {d["Name"]: d["Value"] for d in error_metric["Dimensions"]}
        assert dim_map == {"Service": "carestack", "ErrorType": "PMSAuthError"}


class TestTrack:
    def test_success_records_latency(self):
        client = _make_client()
        with client.track("carestack", "GET /providers"):
            pass
        count = next(m for m in client._buffer if m["MetricName"] == "PMS/RequestCount")
        assert {"Name": "Status", "Value": "success"} in count["Dimensions"]

    def test_exception_is_recorded_and_reraised(self):
        client = _make_client()
        with pytest.raises(ValueError), client.track("openai", "POST /realtime/sessions"):
            raise ValueError("boom")
        error_metric = next(m for m in client._buffer if m["MetricName"] == "PMS/ErrorCount")
        dim_map = {d["Name"]: d["Value"] for d in error_metric["Dimensions"]}
        assert dim_map["ErrorType"] == "ValueError"


class TestMetricsFlush:
    def test_flush_when_disabled_does_not_send(self):
        client = _make_client()
        client.record_success("carestack", "GET /providers", latency_ms=100.0)
        assert client.flush() == 0
        assert client._buffer == []

    def test_flush_when_enabled_calls_put_metric_data(self):
        client = _make_client(enabled=True)
        mock_cw = MagicMock()
        client._cw_client = mock_cw

        client.record_success("carestack", "GET /providers", latency_ms=100.0)
        sent = client.flush()

        assert sent == 2
        call_args = mock_cw.put_metric_data.call_args
        assert call_args[1]["Namespace"] == "ClinicDesk"
        assert len(call_args[1]["MetricData"]) == 2

    def test_flush_empty_buffer_returns_zero(self):
        client = _make_client(enabled=True)
        assert client.flush() == 0
