from __future__ import annotations

import asyncio
import contextlib
import logging
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Awaitable, Callable, Mapping
from dataclasses import dataclass
from typing import Any, Literal

import httpx

from .errors import (
    ApiHttpError,
    ApiProtocolError,
    ApiTimeoutError,
    ApiTransportError,
)
from .protocol import (
    DEFAULT_BASE_URL,
    DEFAULT_REQUEST_TIMEOUT,
    build_headers,
    encode_query,
    parse_error_body,
)

logger = logging.getLogger(__name__)

TransportMode = Literal["buffered", "streamed"]


@dataclass(frozen=True, slots=True)
class TransportRequest:
    """One HTTP call as issued by the client.

    Attributes:
        method: HTTP method.
        path: Path relative to the base URL (e.g. `/threads`).
        query: Optional query parameters; `None` values are dropped.
        body: Optional JSON-serializable body.
        timeout: Per-call deadline override in seconds.
        mode: `buffered` returns the parsed body, `streamed` a `StreamHandle`.
    """

    method: str
    path: str
    query: Mapping[str, Any] | None = None
    body: Any = None
    timeout: float | None = None
    mode: TransportMode = "buffered"


class StreamHandle:
    """Live byte source of a streamed response.

    The handle owns the underlying connection until `aclose()` is called.
    Reads honour the deadline fixed when the request was issued.
    """

    def __init__(
        self,
        chunks: AsyncIterator[bytes],
        *,
        close: Callable[[], Awaitable[None]] | None = None,
        status_code: int = 200,
        headers: Mapping[str, str] | None = None,
        timeout: float | None = None,
        deadline: float | None = None,
    ) -> None:
        """Wrap a chunk iterator.

        Args:
            chunks: Async iterator yielding raw response bytes.
            close: Release routine for the underlying connection.
            status_code: HTTP status of the response.
            headers: Response headers.
            timeout: Deadline length in seconds, reported on expiry.
            deadline: Absolute event-loop time after which reads fail. When
                omitted but `timeout` is given, the deadline starts on the
                first read.
        """
        self._chunks = chunks
        self._close = close
        self.status_code = status_code
        self.headers = dict(headers) if headers is not None else {}
        self.timeout = timeout
        self._deadline = deadline
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def is_success(self) -> bool:
        return 200 <= self.status_code < 300

    def remaining(self) -> float | None:
        """Seconds left before the deadline, or None without a deadline."""
        if self.timeout is None:
            return None
        loop = asyncio.get_running_loop()
        if self._deadline is None:
            self._deadline = loop.time() + self.timeout
        return self._deadline - loop.time()

    async def read_chunk(self) -> bytes | None:
        """Return the next chunk, or None once the source is exhausted."""
        if self._closed:
            raise ApiProtocolError("stream handle is closed")
        remaining = self.remaining()
        if remaining is not None and remaining <= 0:
            raise ApiTimeoutError(self.timeout or 0.0)
        try:
            return await asyncio.wait_for(self._next_chunk(), timeout=remaining)
        except asyncio.TimeoutError as exc:
            raise ApiTimeoutError(self.timeout or 0.0) from exc

    async def _next_chunk(self) -> bytes | None:
        try:
            return await self._chunks.__anext__()
        except StopAsyncIteration:
            return None

    async def aclose(self) -> None:
        """Release the underlying connection. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        aclose = getattr(self._chunks, "aclose", None)
        try:
            if aclose is not None:
                await aclose()
        finally:
            if self._close is not None:
                await self._close()


class Transport(ABC):
    """Abstract transport interface for API calls."""

    @abstractmethod
    async def send(self, request: TransportRequest) -> Any:
        """Perform a buffered call and return the decoded JSON body."""
        raise NotImplementedError

    @abstractmethod
    async def open(self, request: TransportRequest) -> StreamHandle:
        """Perform a streamed call and return its live byte source."""
        raise NotImplementedError

    @abstractmethod
    async def close(self) -> None:
        """Close transport resources."""
        raise NotImplementedError

    async def request(
        self,
        method: str,
        path: str,
        *,
        body: Any = None,
        query: Mapping[str, Any] | None = None,
        timeout: float | None = None,
    ) -> Any:
        return await self.send(
            TransportRequest(method, path, query=query, body=body, timeout=timeout)
        )

    async def get(self, path: str, query: Mapping[str, Any] | None = None) -> Any:
        return await self.request("GET", path, query=query)

    async def post(self, path: str, body: Any = None) -> Any:
        return await self.request("POST", path, body=body)

    async def patch(self, path: str, body: Any = None) -> Any:
        return await self.request("PATCH", path, body=body)

    async def put(self, path: str, body: Any = None) -> Any:
        return await self.request("PUT", path, body=body)

    async def delete(self, path: str) -> Any:
        return await self.request("DELETE", path)


class HttpTransport(Transport):
    """Bearer-authenticated JSON/SSE transport over httpx."""

    def __init__(
        self,
        api_key: str,
        *,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = DEFAULT_REQUEST_TIMEOUT,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        """Configure HTTP transport.

        Args:
            api_key: API key sent as `Authorization: Bearer <key>`.
            base_url: API base URL.
            timeout: Default deadline in seconds for calls without an override.
            http_client: Optional pre-configured httpx client. The transport
                does not close clients it did not create.
        """
        if not api_key:
            raise ValueError("api_key must not be empty")
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._client = http_client
        self._owns_client = http_client is None

    @property
    def base_url(self) -> str:
        return self._base_url

    @property
    def timeout(self) -> float:
        return self._timeout

    async def send(self, request: TransportRequest) -> Any:
        """Perform a buffered call; `204` and empty bodies return None."""
        timeout = request.timeout if request.timeout is not None else self._timeout
        response = await self._dispatch(request, timeout=timeout, stream=False)

        if not response.is_success:
            raise _error_from_response(response)

        if response.status_code == 204 or not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise ApiProtocolError(
                f"received invalid JSON from {request.method} {request.path}"
            ) from exc

    async def open(self, request: TransportRequest) -> StreamHandle:
        """Perform a streamed call; the caller must `aclose()` the handle."""
        timeout = request.timeout if request.timeout is not None else self._timeout
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        response = await self._dispatch(request, timeout=timeout, stream=True)

        if not response.is_success:
            try:
                with contextlib.suppress(httpx.HTTPError, asyncio.TimeoutError):
                    await asyncio.wait_for(
                        response.aread(),
                        timeout=max(deadline - loop.time(), 0.0),
                    )
            finally:
                await response.aclose()
            raise _error_from_response(response)

        logger.debug(f"Stream opened: {request.method} {request.path} ({response.status_code})")
        return StreamHandle(
            _iter_response(response, timeout),
            close=response.aclose,
            status_code=response.status_code,
            headers=response.headers,
            timeout=timeout,
            deadline=deadline,
        )

    async def close(self) -> None:
        """Close the owned httpx client."""
        if self._client is None:
            return
        client = self._client
        self._client = None
        if self._owns_client:
            await client.aclose()

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient()
            self._owns_client = True
        return self._client

    async def _dispatch(
        self,
        request: TransportRequest,
        *,
        timeout: float,
        stream: bool,
    ) -> httpx.Response:
        client = self._get_client()
        url = f"{self._base_url}{request.path}"
        headers = build_headers(
            self._api_key,
            has_body=request.body is not None,
            stream=stream,
        )
        logger.debug(f"{request.method} {url}")

        http_request = client.build_request(
            request.method,
            url,
            params=encode_query(dict(request.query) if request.query else None),
            headers=headers,
            json=request.body,
            timeout=timeout,
        )
        try:
            return await asyncio.wait_for(
                client.send(http_request, stream=stream),
                timeout=timeout,
            )
        except (asyncio.TimeoutError, httpx.TimeoutException) as exc:
            raise ApiTimeoutError(timeout) from exc
        except httpx.HTTPError as exc:
            raise ApiTransportError(
                f"{request.method} {request.path} failed: "
                f"{exc.__class__.__name__}: {exc}"
            ) from exc


async def _iter_response(response: httpx.Response, timeout: float) -> AsyncIterator[bytes]:
    """Yield raw response bytes, normalizing httpx read failures."""
    try:
        async for chunk in response.aiter_bytes():
            yield chunk
    except httpx.TimeoutException as exc:
        raise ApiTimeoutError(timeout) from exc
    except httpx.HTTPError as exc:
        raise ApiProtocolError(
            f"stream closed uncleanly: {exc.__class__.__name__}: {exc}"
        ) from exc


def _error_from_response(response: httpx.Response) -> ApiHttpError:
    """Build an `ApiHttpError` from a non-2xx response."""
    status = response.status_code
    try:
        payload = response.json()
    except (ValueError, httpx.ResponseNotRead):
        payload = None

    body = parse_error_body(payload)
    if body is None:
        body = {"error": response.reason_phrase, "message": f"HTTP {status}"}

    message = body.get("message") or body.get("error") or f"HTTP {status}"
    code = body.get("code")
    details = body.get("details")
    return ApiHttpError(
        str(message),
        status,
        code=code if isinstance(code, str) else None,
        details=details if isinstance(details, dict) else None,
    )
