import json
from unittest.mock import AsyncMock

import httpx
import pytest

from app.core.config import Settings
from app.services.sms.gateway import GatewayConfig, SMSGatewayClient

BASE_URL = "https://api.sendchamp.test/api/v1"


def make_client(handler, **overrides):
    options = {"base_url": BASE_URL, "api_key": "test-key", **overrides}
    config = GatewayConfig(**options)
    sleep = AsyncMock(return_value=None)
    client = SMSGatewayClient(config, transport=httpx.MockTransport(handler), sleep=sleep)
    return client, sleep


def ok_response(gateway_id="sc-123", status="sent"):
    return httpx.Response(200, json={"code": 200, "status": "success", "data": {"id": gateway_id, "status": status}})


@pytest.mark.asyncio
async def test_send_posts_expected_request():
    captured = []

    def handler(request: httpx.Request):
        captured.append(request)
        return ok_response()

    client, _ = make_client(handler)
    result = await client.send("2348031234567", "Hello Ada")

    assert result.success
    assert result.gateway_message_id == "sc-123"
    assert result.error is None

    request = captured[0]
    assert request.method == "POST"
    assert request.url.path == "/api/v1/sms/send"
    assert request.headers["Authorization"] == "Bearer test-key"
    assert json.loads(request.content) == {
        "to": ["2348031234567"],
        "message": "Hello Ada",
        "sender_name": "MAPOLY",
        "route": "dnd",
    }
    assert request.extensions["timeout"]["read"] == 30.0


@pytest.mark.asyncio
async def test_rate_limited_once_then_succeeds_after_one_backoff():
    responses = [httpx.Response(429, json={"message": "Too many requests"}), ok_response()]
    calls = []

    def handler(request):
        calls.append(request)
        return responses[len(calls) - 1]

    client, sleep = make_client(handler)
    result = await client.send("2348031234567", "Hi")

    assert result.success
    assert len(calls) == 2
    sleep.assert_awaited_once_with(2.0)


@pytest.mark.asyncio
async def test_rate_limited_three_times_exhausts_retries():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(429, json={"message": "Too many requests"})

    client, sleep = make_client(handler)
    result = await client.send("2348031234567", "Hi")

    assert not result.success
    assert "Rate limited" in result.error
    assert len(calls) == 3
    assert sleep.await_count == 2


@pytest.mark.asyncio
async def test_client_error_returns_gateway_message_without_retry():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(400, json={"message": "Insufficient wallet balance"})

    client, sleep = make_client(handler)
    result = await client.send("2348031234567", "Hi")

    assert not result.success
    assert result.error == "Insufficient wallet balance"
    assert len(calls) == 1
    sleep.assert_not_awaited()


@pytest.mark.asyncio
async def test_server_error_without_body():
    client, _ = make_client(lambda request: httpx.Response(500))
    result = await client.send("2348031234567", "Hi")

    assert not result.success
    assert result.error == "HTTP 500"


@pytest.mark.asyncio
async def test_unauthorized_is_reported():
    client, _ = make_client(lambda request: httpx.Response(401, json={"message": "Invalid API key"}))
    result = await client.send("2348031234567", "Hi")

    assert not result.success
    assert result.error == "Invalid API key"


@pytest.mark.asyncio
async def test_timeout_is_a_failure_and_not_retried():
    calls = []

    def handler(request):
        calls.append(request)
        raise httpx.ReadTimeout("timed out", request=request)

    client, sleep = make_client(handler)
    result = await client.send("2348031234567", "Hi")

    assert not result.success
    assert "timed out" in result.error
    assert len(calls) == 1
    sleep.assert_not_awaited()


@pytest.mark.asyncio
async def test_network_failure_is_a_failure():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    client, _ = make_client(handler)
    result = await client.send("2348031234567", "Hi")

    assert not result.success
    assert "connection refused" in result.error


@pytest.mark.asyncio
async def test_missing_api_key_fails_without_request():
    calls = []

    def handler(request):
        calls.append(request)
        return ok_response()

    client, _ = make_client(handler, api_key="")
    result = await client.send("2348031234567", "Hi")

    assert not result.success
    assert "not configured" in result.error
    assert calls == []


@pytest.mark.asyncio
async def test_send_batch_sends_all_numbers_in_one_request():
    captured = []

    def handler(request):
        captured.append(json.loads(request.content))
        return httpx.Response(200, json={"id": "bulk-1"})

    client, _ = make_client(handler)
    result = await client.send_batch(["2348031111111", "2348033333333"], "Exam timetable is out")

    assert result.success
    assert result.gateway_message_id == "bulk-1"
    assert len(captured) == 1
    assert captured[0]["to"] == ["2348031111111", "2348033333333"]


@pytest.mark.asyncio
async def test_send_batch_without_numbers():
    client, _ = make_client(lambda request: ok_response())
    result = await client.send_batch([], "Hi")

    assert not result.success


@pytest.mark.asyncio
async def test_mock_mode_never_calls_gateway():
    calls = []

    def handler(request):
        calls.append(request)
        return ok_response()

    client, _ = make_client(handler, mock=True, api_key="")
    result = await client.send("2348031234567", "Hi")

    assert result.success
    assert result.gateway_message_id.startswith("mock_")
    assert calls == []


def test_config_from_settings():
    source = Settings(SMS_GATEWAY_API_KEY="secret", SMS_SENDER_NAME="POLY", SMS_RATE_LIMIT_BACKOFF=1.5)
    config = GatewayConfig.from_settings(source)

    assert config.api_key == "secret"
    assert config.sender_name == "POLY"
    assert config.route == "dnd"
    assert config.timeout == 30.0
    assert config.rate_limit_retries == 2
    assert config.rate_limit_backoff == 1.5
