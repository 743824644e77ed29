import asyncio
import json

import httpx
import pytest

from deepguard.core.config import Settings
from deepguard.core.cancellation import CancelToken
from deepguard.core.errors import (
    AnalysisCancelledError,
    AuthConfigurationError,
    GatewayError,
    InferenceTimeoutError,
    QuotaExceededError,
    RateLimitError,
)
from deepguard.detectors.frames import Frame, FrameSet
from deepguard.detectors.gateway import InferenceGateway
from deepguard.services.prompt import build_request

from conftest import VERDICT_JSON


def _request():
    frames = FrameSet((Frame(1.0, "data:image/jpeg;base64,AAA"), Frame(2.0, "data:image/jpeg;base64,BBB")))
    return build_request(frames)


def _completion(content):
    return {"choices": [{"message": {"role": "assistant", "content": content}}]}


def _gateway(settings, handler):
    return InferenceGateway(settings, transport=httpx.MockTransport(handler))


def test_missing_credential_fails_at_construction():
    settings = Settings(AI_GATEWAY_API_KEY=None, _env_file=None)

    with pytest.raises(AuthConfigurationError):
        InferenceGateway(settings)


def test_infer_posts_chat_completion(settings):
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["auth"] = request.headers["Authorization"]
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json=_completion(VERDICT_JSON))

    raw = asyncio.run(_gateway(settings, handler).infer(_request()))

    assert raw == VERDICT_JSON
    assert seen["url"] == settings.AI_GATEWAY_URL
    assert seen["auth"] == "Bearer test-key"

    body = seen["body"]
    assert body["model"] == "google/gemini-2.5-flash"
    assert body["temperature"] == 0.3
    assert len(body["messages"]) == 1
    assert body["messages"][0]["role"] == "user"
    content = body["messages"][0]["content"]
    assert content[0]["type"] == "text"
    assert [part["image_url"]["url"] for part in content[1:]] == [
        "data:image/jpeg;base64,AAA",
        "data:image/jpeg;base64,BBB",
    ]


@pytest.mark.parametrize(
    "status_code, error_type",
    [(429, RateLimitError), (402, QuotaExceededError), (500, GatewayError), (400, GatewayError)],
)
def test_non_success_status_maps_to_error(settings, status_code, error_type):
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(status_code, text="upstream said no")

    with pytest.raises(error_type):
        asyncio.run(_gateway(settings, handler).infer(_request()))

    # never retried
    assert len(calls) == 1


def test_gateway_error_carries_status_and_body(settings):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(503, text="overloaded")

    with pytest.raises(GatewayError) as exc_info:
        asyncio.run(_gateway(settings, handler).infer(_request()))

    assert exc_info.value.status_code == 503
    assert exc_info.value.body == "overloaded"
    assert "503" in str(exc_info.value)


def test_rate_limit_message(settings):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(429, json={"error": "slow down"})

    with pytest.raises(RateLimitError, match="Rate limit exceeded. Please try again later."):
        asyncio.run(_gateway(settings, handler).infer(_request()))


def test_timeout_is_its_own_error(settings):
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("timed out", request=request)

    with pytest.raises(InferenceTimeoutError):
        asyncio.run(_gateway(settings, handler).infer(_request()))


def test_connection_failure_is_gateway_error(settings):
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("no route", request=request)

    with pytest.raises(GatewayError):
        asyncio.run(_gateway(settings, handler).infer(_request()))


@pytest.mark.parametrize("payload", [{}, {"choices": []}, {"choices": [{"message": {}}]}])
def test_malformed_completion_is_gateway_error(settings, payload):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=payload)

    with pytest.raises(GatewayError):
        asyncio.run(_gateway(settings, handler).infer(_request()))


def test_non_json_body_is_gateway_error(settings):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="<html>oops</html>")

    with pytest.raises(GatewayError):
        asyncio.run(_gateway(settings, handler).infer(_request()))


def test_cancelled_token_skips_network(settings):
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(200, json=_completion(VERDICT_JSON))

    token = CancelToken()
    token.cancel()

    with pytest.raises(AnalysisCancelledError):
        asyncio.run(_gateway(settings, handler).infer(_request(), cancel_token=token))
    assert calls == []
