from __future__ import annotations

import contextlib
import inspect
from collections.abc import AsyncIterator, Callable, Mapping
from typing import Any

from .decoder import iter_events
from .errors import StreamError
from .models import (
    AgentConfig,
    ExecutionResult,
    MessageOptions,
    ResponseCompletedEvent,
    RunSummary,
    StreamCompletedEvent,
    StreamEvent,
    UnsetType,
    stream_error_details,
)
from .protocol import DEFAULT_EXECUTION_TIMEOUT, STREAM_ERROR, thread_path
from .transport import Transport, TransportRequest

#: Observer invoked once per event, in wire order. May return an awaitable,
#: which is awaited before the next chunk is read.
EventHandler = Callable[[StreamEvent], Any]


class ExecutionAggregator:
    """Send a message to a thread and consume the streamed execution."""

    def __init__(
        self,
        transport: Transport,
        *,
        default_timeout: float = DEFAULT_EXECUTION_TIMEOUT,
    ) -> None:
        """Create an aggregator bound to a transport.

        Args:
            transport: Transport used to open the message stream.
            default_timeout: Deadline in seconds for the whole streamed
                operation when the caller does not pass one.
        """
        self._transport = transport
        self._default_timeout = default_timeout

    @property
    def default_timeout(self) -> float:
        return self._default_timeout

    async def run(
        self,
        thread_id: str,
        content: str,
        *,
        agent_config: AgentConfig | Mapping[str, Any] | None = None,
        options: MessageOptions | None = None,
        on_event: EventHandler | None = None,
        timeout: float | None = None,
    ) -> ExecutionResult:
        """Send one message and wait for the execution to finish.

        Each event is appended to the result log and passed to `on_event`
        before the next chunk is requested, so a slow observer throttles
        consumption. Exceptions raised by `on_event` propagate and the stream
        is released.

        Raises:
            StreamError: The server emitted `stream.error`; `events` holds the
                log up to and including that event.
            ApiTimeoutError: The deadline expired.
            ApiHttpError: The server rejected the message.
            ApiProtocolError: The stream failed before any event or closed
                uncleanly.
        """
        events: list[StreamEvent] = []
        final_content = ""
        run_summary: RunSummary | None = None

        async with contextlib.aclosing(
            self._events(thread_id, content, agent_config, options, timeout)
        ) as stream:
            async for event in stream:
                events.append(event)
                if on_event is not None:
                    await _notify(on_event, event)

                if isinstance(event, ResponseCompletedEvent):
                    final_content = event.response.content
                elif isinstance(event, StreamCompletedEvent):
                    run_summary = event.run
                elif event.type == STREAM_ERROR:
                    raise _stream_error(event, list(events))

        return ExecutionResult(content=final_content, run=run_summary, events=events)

    async def stream(
        self,
        thread_id: str,
        content: str,
        *,
        agent_config: AgentConfig | Mapping[str, Any] | None = None,
        options: MessageOptions | None = None,
        timeout: float | None = None,
    ) -> AsyncIterator[StreamEvent]:
        """Send one message and yield its events as they arrive.

        A `stream.error` event is yielded, then `StreamError` is raised on the
        next pull. Close the iterator (or use `contextlib.aclosing`) when
        stopping early so the connection is released promptly.
        """
        seen: list[StreamEvent] = []
        async with contextlib.aclosing(
            self._events(thread_id, content, agent_config, options, timeout)
        ) as stream:
            async for event in stream:
                seen.append(event)
                yield event
                if event.type == STREAM_ERROR:
                    raise _stream_error(event, seen)

    async def _events(
        self,
        thread_id: str,
        content: str,
        agent_config: AgentConfig | Mapping[str, Any] | None,
        options: MessageOptions | None,
        timeout: float | None,
    ) -> AsyncIterator[StreamEvent]:
        request = TransportRequest(
            "POST",
            thread_path(thread_id, "messages"),
            body=_message_body(content, agent_config, options),
            timeout=timeout if timeout is not None else self._default_timeout,
            mode="streamed",
        )
        handle = await self._transport.open(request)
        async with contextlib.aclosing(iter_events(handle)) as events:
            async for event in events:
                yield event


def _stream_error(event: StreamEvent, events: list[StreamEvent]) -> StreamError:
    message, code = stream_error_details(event)
    return StreamError(message, code=code, event=event, events=events)


async def _notify(handler: EventHandler, event: StreamEvent) -> None:
    result = handler(event)
    if inspect.isawaitable(result):
        await result


def _message_body(
    content: str,
    agent_config: AgentConfig | Mapping[str, Any] | None,
    options: MessageOptions | None,
) -> dict[str, Any]:
    """Build the JSON body for `POST /threads/{id}/messages`."""
    body: dict[str, Any] = {"content": content}
    agent_params = _agent_config_to_params(agent_config)
    if agent_params:
        body["agentConfig"] = agent_params
    body.update(_message_options_to_params(options))
    return body


def _agent_config_to_params(
    config: AgentConfig | Mapping[str, Any] | None,
) -> dict[str, Any]:
    """Encode `AgentConfig` into request params (camelCase), omitting UNSET."""
    if config is None:
        return {}
    if isinstance(config, Mapping):
        return dict(config)

    mapping: tuple[tuple[str, str], ...] = (
        ("model", "model"),
        ("instructions", "instructions"),
        ("reasoning_effort", "reasoningEffort"),
    )
    params: dict[str, Any] = {}
    for attr_name, key_name in mapping:
        value = getattr(config, attr_name)
        if _is_unset(value):
            continue
        params[key_name] = value
    return params


def _message_options_to_params(options: MessageOptions | None) -> dict[str, Any]:
    """Encode `MessageOptions` into request params (camelCase), omitting UNSET."""
    if options is None:
        return {}

    mapping: tuple[tuple[str, str], ...] = (
        ("mcp_servers", "mcpServers"),
        ("env_vars", "envVars"),
        ("secrets", "secrets"),
        ("setup_scripts", "setupScripts"),
        ("internet_access", "internetAccess"),
        ("attachments", "attachments"),
        ("run_id", "runId"),
    )
    params: dict[str, Any] = {}
    for attr_name, key_name in mapping:
        value = getattr(options, attr_name)
        if _is_unset(value):
            continue
        params[key_name] = value
    return params


def _is_unset(value: Any) -> bool:
    return isinstance(value, UnsetType)
