"""Tests for the Replicate client."""

import json

import httpx
import pytest

from system_agent.services.replicate_client import ReplicateClient, is_retryable_error


def _client(handler, api_key="r8-test"):
    return ReplicateClient(
        api_key=api_key,
        base_url="https://replicate.test/v1/",
        transport=httpx.MockTransport(handler),
    )


def test_create_prediction_posts_model_and_input():
    """Test the request shape and auth header."""
    requests = []

    def handler(request):
        requests.append(request)
        return httpx.Response(201, json={"id": "pred-1", "status": "starting"})

    prediction = _client(handler).create_prediction("google/imagen-4-fast", {"prompt": "a fox"})

    assert prediction == {"id": "pred-1", "status": "starting"}
    [request] = requests
    assert request.method == "POST"
    assert str(request.url) == "https://replicate.test/v1/predictions"
    assert request.headers["Authorization"] == "Token r8-test"
    assert json.loads(request.content) == {"model": "google/imagen-4-fast", "input": {"prompt": "a fox"}}


def test_create_prediction_client_error_is_not_retried():
    """Test 4xx responses raise immediately."""
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(422, json={"detail": "invalid input"})

    with pytest.raises(httpx.HTTPStatusError):
        _client(handler).create_prediction("m", {})

    assert len(calls) == 1


def test_get_prediction():
    """Test polling fetches the prediction by id."""

    def handler(request):
        assert request.method == "GET"
        assert request.url.path == "/v1/predictions/pred-7"
        return httpx.Response(200, json={"id": "pred-7", "status": "processing"})

    assert _client(handler).get_prediction("pred-7")["status"] == "processing"


def test_is_configured():
    """Test an empty key means not configured."""
    assert _client(lambda r: httpx.Response(200), api_key="r8-test").is_configured
    assert not _client(lambda r: httpx.Response(200), api_key="").is_configured


def test_get_prediction_not_found_is_not_retried():
    """Test a missing prediction raises after a single request."""
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(404, json={"detail": "Not found."})

    with pytest.raises(httpx.HTTPStatusError):
        _client(handler).get_prediction("gone")

    assert len(calls) == 1


def test_get_prediction_bad_json_is_not_retried():
    """Test an unparseable body raises after a single request."""
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(200, content=b"<html>")

    with pytest.raises(ValueError):
        _client(handler).get_prediction("pred-1")

    assert len(calls) == 1


def _status_error(status_code):
    request = httpx.Request("GET", "https://replicate.test/v1/predictions/p")
    return httpx.HTTPStatusError(
        "error", request=request, response=httpx.Response(status_code, request=request)
    )


def test_is_retryable_error():
    """Test only transport failures and retryable statuses are retried."""
    assert is_retryable_error(httpx.ConnectError("refused"))
    assert is_retryable_error(_status_error(503))
    assert is_retryable_error(_status_error(429))
    assert not is_retryable_error(_status_error(404))
    assert not is_retryable_error(_status_error(401))
    assert not is_retryable_error(ValueError("bad json"))
