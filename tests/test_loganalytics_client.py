from __future__ import annotations

import base64

import httpx
import pytest

from logship.errors import ConfigurationError, DeliveryError
from logship.transport.loganalytics import LogAnalyticsClient, build_signature

KEY = base64.b64encode(b"shared-secret").decode("ascii")


def _client(handler, **kwargs) -> LogAnalyticsClient:
    return LogAnalyticsClient("ws-123", KEY, transport=httpx.MockTransport(handler), **kwargs)


def test_send_posts_signed_payload() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200)

    client = _client(handler, time_generated_field="TimeGenerated")
    client.send('{"name":"jobs.completed","count":7}', "RuntimeMetric")

    request = seen[0]
    assert request.method == "POST"
    assert request.url.host == "ws-123.ods.opinsights.azure.com"
    assert request.url.path == "/api/logs"
    assert request.url.params["api-version"] == "2016-04-01"
    assert request.headers["Log-Type"] == "RuntimeMetric"
    assert request.headers["time-generated-field"] == "TimeGenerated"
    assert request.headers["Content-Type"] == "application/json"
    assert request.content == b'{"name":"jobs.completed","count":7}'
    expected = build_signature("ws-123", b"shared-secret", request.headers["x-ms-date"], len(request.content))
    assert request.headers["Authorization"] == expected
    assert expected.startswith("SharedKey ws-123:")


def test_time_generated_header_is_optional() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200)

    _client(handler).send("{}", "RuntimeEvent")

    assert "time-generated-field" not in seen[0].headers


def test_rejected_payload_raises_delivery_error() -> None:
    client = _client(lambda request: httpx.Response(403, text="Forbidden"))

    with pytest.raises(DeliveryError, match="HTTP 403"):
        client.send("{}", "RuntimeMetric")


def test_transport_failure_raises_delivery_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(DeliveryError, match="ConnectError"):
        _client(handler).send("{}", "RuntimeMetric")


def test_invalid_credentials_are_configuration_errors() -> None:
    with pytest.raises(ConfigurationError):
        LogAnalyticsClient("", KEY)
    with pytest.raises(ConfigurationError):
        LogAnalyticsClient("ws", "not base64!")
    with pytest.raises(ConfigurationError):
        LogAnalyticsClient("ws", "")
