from __future__ import annotations

import asyncio
import json
from collections.abc import AsyncIterator, Callable

import httpx
import pytest

from computer_agents.decoder import iter_events
from computer_agents.errors import (
    ApiHttpError,
    ApiProtocolError,
    ApiTimeoutError,
    ApiTransportError,
)
from computer_agents.transport import HttpTransport, StreamHandle, TransportRequest

from fakes import sse


def _transport(
    handler: Callable[[httpx.Request], object],
    *,
    base_url: str = "https://api.example.test/",
    timeout: float = 60.0,
) -> HttpTransport:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return HttpTransport("key-123", base_url=base_url, timeout=timeout, http_client=client)


def test_http_transport_requires_api_key() -> None:
    with pytest.raises(ValueError):
        HttpTransport("")


def test_buffered_request_sends_auth_json_and_query() -> None:
    captured: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        captured.append(request)
        return httpx.Response(200, json={"thread": {"id": "thread-1"}})

    async def _run() -> object:
        transport = _transport(handler)
        return await transport.send(
            TransportRequest(
                "POST",
                "/threads",
                query={"limit": 5, "archived": False, "status": None},
                body={"environmentId": "env-1"},
            )
        )

    result = asyncio.run(_run())

    assert result == {"thread": {"id": "thread-1"}}
    request = captured[0]
    assert request.url.path == "/threads"
    assert request.url.host == "api.example.test"
    assert dict(request.url.params) == {"limit": "5", "archived": "false"}
    assert request.headers["Authorization"] == "Bearer key-123"
    assert request.headers["Content-Type"] == "application/json"
    assert "text/event-stream" not in request.headers.get("Accept", "")
    assert json.loads(request.content) == {"environmentId": "env-1"}


def test_get_without_body_has_no_content_type() -> None:
    captured: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        captured.append(request)
        return httpx.Response(200, json={"data": []})

    asyncio.run(_transport(handler).get("/environments"))

    assert "Content-Type" not in captured[0].headers
    assert captured[0].content == b""


def test_no_content_response_returns_none() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(204)

    assert asyncio.run(_transport(handler).delete("/threads/thread-1")) is None


def test_structured_error_body_is_parsed() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            403,
            json={
                "error": "Forbidden",
                "message": "Budget exhausted",
                "code": "BUDGET_EXCEEDED",
                "details": {"remaining": 0},
            },
        )

    with pytest.raises(ApiHttpError) as exc_info:
        asyncio.run(_transport(handler).get("/threads"))

    error = exc_info.value
    assert error.status == 403
    assert error.message == "Budget exhausted"
    assert error.code == "BUDGET_EXCEEDED"
    assert error.details == {"remaining": 0}


def test_unparseable_error_body_is_synthesized_from_status() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(502, text="<html>bad gateway</html>")

    with pytest.raises(ApiHttpError) as exc_info:
        asyncio.run(_transport(handler).get("/threads"))

    assert exc_info.value.status == 502
    assert exc_info.value.message == "HTTP 502"
    assert exc_info.value.code is None


def test_connection_failure_becomes_network_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("name resolution failed", request=request)

    with pytest.raises(ApiTransportError) as exc_info:
        asyncio.run(_transport(handler).get("/health"))

    assert exc_info.value.status == 500
    assert exc_info.value.code == "NETWORK_ERROR"
    assert isinstance(exc_info.value.__cause__, httpx.ConnectError)


def test_httpx_timeout_becomes_timeout_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("read timed out", request=request)

    with pytest.raises(ApiTimeoutError) as exc_info:
        asyncio.run(_transport(handler, timeout=2.5).get("/health"))

    assert exc_info.value.status == 408
    assert exc_info.value.code == "TIMEOUT"
    assert exc_info.value.timeout == 2.5


def test_slow_response_exceeds_per_call_timeout() -> None:
    async def handler(request: httpx.Request) -> httpx.Response:
        await asyncio.sleep(1.0)
        return httpx.Response(200, json={})

    async def _run() -> None:
        await _transport(handler).send(TransportRequest("GET", "/health", timeout=0.05))

    with pytest.raises(ApiTimeoutError) as exc_info:
        asyncio.run(_run())

    assert exc_info.value.timeout == 0.05


def test_open_streams_events_with_event_stream_accept_header() -> None:
    captured: list[httpx.Request] = []

    async def body() -> AsyncIterator[bytes]:
        payload = sse({"type": "response.started"}, {"type": "stream.completed", "run": {"id": "run-1"}})
        yield payload[:20]
        yield payload[20:]

    def handler(request: httpx.Request) -> httpx.Response:
        captured.append(request)
        return httpx.Response(200, headers={"content-type": "text/event-stream"}, content=body())

    async def _run() -> tuple[list[str], StreamHandle]:
        transport = _transport(handler)
        handle = await transport.open(
            TransportRequest(
                "POST",
                "/threads/thread-1/messages",
                body={"content": "hi"},
                timeout=30.0,
                mode="streamed",
            )
        )
        types = [event.type async for event in iter_events(handle)]
        return types, handle

    types, handle = asyncio.run(_run())

    assert types == ["response.started", "stream.completed"]
    assert handle.closed
    assert handle.timeout == 30.0
    assert handle.headers["content-type"] == "text/event-stream"
    assert captured[0].headers["Accept"] == "text/event-stream"
    assert captured[0].headers["Content-Type"] == "application/json"


def test_open_error_status_raises_http_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(404, json={"error": "Thread not found"})

    async def _run() -> None:
        await _transport(handler).open(
            TransportRequest("POST", "/threads/nope/messages", body={"content": "x"}, mode="streamed")
        )

    with pytest.raises(ApiHttpError) as exc_info:
        asyncio.run(_run())

    assert exc_info.value.status == 404
    assert exc_info.value.message == "Thread not found"


def test_stream_read_failure_becomes_protocol_error() -> None:
    async def body() -> AsyncIterator[bytes]:
        yield sse({"type": "response.started"})
        raise httpx.RemoteProtocolError("peer closed connection")

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=body())

    seen: list[str] = []

    async def _run() -> None:
        handle = await _transport(handler).open(
            TransportRequest("POST", "/threads/t/messages", body={"content": "x"}, mode="streamed")
        )
        async for event in iter_events(handle):
            seen.append(event.type)

    with pytest.raises(ApiProtocolError) as exc_info:
        asyncio.run(_run())

    assert seen == ["response.started"]
    assert exc_info.value.code == "PROTOCOL_ERROR"


def test_close_leaves_injected_client_open() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={})

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))

    async def _run() -> None:
        transport = HttpTransport("key", http_client=client)
        await transport.close()
        assert not client.is_closed
        await client.aclose()

    asyncio.run(_run())


def test_stream_deadline_runs_from_request_issue() -> None:
    async def body() -> AsyncIterator[bytes]:
        yield sse({"type": "response.started"})
        await asyncio.sleep(0.2)
        yield sse({"type": "response.completed", "response": {"content": "late"}})

    async def handler(request: httpx.Request) -> httpx.Response:
        await asyncio.sleep(0.2)
        return httpx.Response(200, content=body())

    seen: list[str] = []
    opened: list[StreamHandle] = []

    async def _run() -> None:
        handle = await _transport(handler).open(
            TransportRequest(
                "POST",
                "/threads/t/messages",
                body={"content": "x"},
                timeout=0.3,
                mode="streamed",
            )
        )
        opened.append(handle)
        async for event in iter_events(handle):
            seen.append(event.type)

    with pytest.raises(ApiTimeoutError) as exc_info:
        asyncio.run(_run())

    assert exc_info.value.status == 408
    assert exc_info.value.code == "TIMEOUT"
    assert seen == ["response.started"]
    assert opened[0].closed


def test_open_error_body_read_is_bounded_by_deadline() -> None:
    async def body() -> AsyncIterator[bytes]:
        await asyncio.sleep(0.25)
        yield b'{"error": "Thread not found"}'

    async def handler(request: httpx.Request) -> httpx.Response:
        await asyncio.sleep(0.2)
        return httpx.Response(500, content=body())

    async def _run() -> None:
        await _transport(handler).open(
            TransportRequest(
                "POST",
                "/threads/t/messages",
                body={"content": "x"},
                timeout=0.3,
                mode="streamed",
            )
        )

    with pytest.raises(ApiHttpError) as exc_info:
        asyncio.run(_run())

    assert exc_info.value.status == 500
    assert exc_info.value.message == "HTTP 500"


def test_invalid_json_success_body_is_protocol_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="<html>maintenance</html>")

    with pytest.raises(ApiProtocolError) as exc_info:
        asyncio.run(_transport(handler).get("/threads"))

    assert exc_info.value.code == "PROTOCOL_ERROR"
    assert exc_info.value.status == 502
