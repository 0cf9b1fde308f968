import asyncio
from dataclasses import replace

import httpx
import pytest

from conftest import RecordingTransport, chat_completion
from profilegen.backends import PollinationsClient
from profilegen.errors import (
    ConfigurationError,
    ExhaustedRetriesError,
    TransientUpstreamError,
    UpstreamError,
)
from profilegen.executor import ResilientExecutor, backoff_delay, default_auth_strategies


def make_client(settings, executor, handler):
    transport = RecordingTransport(handler)
    return PollinationsClient(settings, executor, transport), transport


def test_strategy_order_with_token():
    names = [s.name for s in default_auth_strategies("tok")]
    assert names == ["authenticated header", "token in body", "no token"]


def test_strategy_order_without_token():
    assert [s.name for s in default_auth_strategies(None)] == ["no token"]


def test_backoff_is_exponential():
    assert [backoff_delay(a, 1.5) for a in (1, 2, 3)] == [1.5, 3.0, 6.0]


async def test_rejected_header_falls_back_to_next_strategy(settings, executor):
    def handler(request):
        if "authorization" in request.headers:
            return httpx.Response(401, text="bad token")
        return chat_completion("hello")

    events = []
    client, transport = make_client(settings, executor, handler)
    result = await client.complete("hi", "system", token="tok", observer=events.append)

    assert result == "hello"
    assert len(transport.requests) == 2
    attempted = {e.strategy for e in events if e.kind == "attempt"}
    assert attempted == {"authenticated header", "token in body"}
    assert transport.bodies()[1]["token"] == "tok"


async def test_bad_request_aborts_after_one_attempt(settings, executor, sleeper):
    client, transport = make_client(settings, executor, lambda request: httpx.Response(400, text="bad model"))

    with pytest.raises(ConfigurationError):
        await client.complete("hi", token="tok")

    assert len(transport.requests) == 1
    assert sleeper.delays == []


async def test_retries_transient_errors_with_backoff(settings, executor, sleeper):
    responses = iter([httpx.Response(503), httpx.Response(503), chat_completion("finally")])
    client, transport = make_client(settings, executor, lambda request: next(responses))

    assert await client.complete("hi") == "finally"
    assert len(transport.requests) == 3
    assert sleeper.delays == [2.0, 4.0]
    assert sleeper.delays == sorted(sleeper.delays)


async def test_token_never_leaks_into_later_attempts(settings, executor, sleeper):
    def handler(request):
        if "authorization" in request.headers:
            return httpx.Response(403)
        if b'"token"' in request.content:
            return httpx.Response(500, text="boom")
        return chat_completion("anonymous ok")

    client, transport = make_client(settings, executor, handler)
    assert await client.complete("hi", token="tok") == "anonymous ok"

    bodies = transport.bodies()
    assert len(bodies) == 5
    assert "token" not in bodies[0]
    assert all(b["token"] == "tok" for b in bodies[1:4])
    assert "token" not in bodies[4]
    assert "authorization" not in transport.requests[4].headers
    assert sleeper.delays == [2.0, 4.0]


async def test_empty_generation_is_retried_then_exhausted(settings, executor):
    client, transport = make_client(settings, executor, lambda request: chat_completion("   "))

    with pytest.raises(ExhaustedRetriesError) as exc_info:
        await client.complete("hi")

    assert len(transport.requests) == 3
    assert isinstance(exc_info.value.last_error, TransientUpstreamError)


async def test_timeout_is_treated_as_transient(settings, executor):
    calls = []

    def handler(request):
        calls.append(request)
        if len(calls) == 1:
            raise httpx.ReadTimeout("timed out", request=request)
        return chat_completion("after timeout")

    client, _ = make_client(settings, executor, handler)
    assert await client.complete("hi") == "after timeout"
    assert len(calls) == 2


async def test_unauthorized_without_token_is_a_generic_error(settings, executor):
    client, transport = make_client(settings, executor, lambda request: httpx.Response(401))

    with pytest.raises(ExhaustedRetriesError) as exc_info:
        await client.complete("hi")

    assert len(transport.requests) == 3
    assert type(exc_info.value.last_error) is UpstreamError
    assert exc_info.value.status_code == 401


async def test_exhausted_error_keeps_last_cause(settings, executor):
    client, _ = make_client(settings, executor, lambda request: httpx.Response(502))

    with pytest.raises(ExhaustedRetriesError) as exc_info:
        await client.complete("hi")

    assert exc_info.value.last_error.status_code == 502
    assert exc_info.value.__cause__ is exc_info.value.last_error


async def test_missing_choices_is_transient(settings):
    executor = ResilientExecutor(max_attempts=1, base_delay=0)
    client, _ = make_client(settings, executor, lambda request: httpx.Response(200, json={"choices": []}))

    with pytest.raises(ExhaustedRetriesError) as exc_info:
        await client.complete("hi")

    assert isinstance(exc_info.value.last_error, TransientUpstreamError)


@pytest.mark.parametrize("payload", [
    ["not", "an", "object"],
    {"choices": ["plain string"]},
    {"choices": [{"message": "plain string"}]},
    {"choices": [{"message": {"content": [{"type": "text", "text": "x"}]}}]},
])
async def test_unexpected_response_shape_is_transient(settings, payload):
    executor = ResilientExecutor(max_attempts=2, base_delay=0)
    client, transport = make_client(settings, executor, lambda request: httpx.Response(200, json=payload))

    with pytest.raises(ExhaustedRetriesError) as exc_info:
        await client.complete("hi")

    assert len(transport.requests) == 2
    assert isinstance(exc_info.value.last_error, TransientUpstreamError)


async def test_slow_backend_hits_the_per_attempt_deadline(settings):
    settings = replace(settings, pollinations_timeout=0.05)
    calls = []

    async def handler(request):
        calls.append(request)
        if len(calls) == 1:
            await asyncio.sleep(5)
        return chat_completion("fast enough")

    executor = ResilientExecutor(max_attempts=2, base_delay=0)
    client, _ = make_client(settings, executor, handler)

    assert await client.complete("hi") == "fast enough"
    assert len(calls) == 2


async def test_deadline_failure_keeps_the_timeout_cause(settings):
    settings = replace(settings, pollinations_timeout=0.05)

    async def handler(request):
        await asyncio.sleep(5)
        return chat_completion("too late")

    executor = ResilientExecutor(max_attempts=1, base_delay=0)
    client, _ = make_client(settings, executor, handler)

    with pytest.raises(ExhaustedRetriesError) as exc_info:
        await client.complete("hi")

    last_error = exc_info.value.last_error
    assert isinstance(last_error, TransientUpstreamError)
    assert "timed out" in str(last_error)
    assert isinstance(last_error.__cause__, asyncio.TimeoutError)
