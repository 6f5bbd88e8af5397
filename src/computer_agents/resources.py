from __future__ import annotations

from collections.abc import AsyncIterator, Mapping
from typing import Any

from .errors import ApiProtocolError
from .execution import EventHandler, ExecutionAggregator
from .models import (
    AgentConfig,
    Environment,
    ExecutionResult,
    MessageOptions,
    StreamEvent,
    Thread,
    ThreadMessage,
    ThreadPage,
)
from .protocol import (
    ENVIRONMENTS_PATH,
    THREADS_PATH,
    environment_path,
    thread_path,
)
from .transport import Transport


class EnvironmentsResource:
    """Environment CRUD. The owner is derived from the API key."""

    def __init__(self, transport: Transport) -> None:
        self._transport = transport

    async def list(
        self,
        *,
        is_active: bool | None = None,
        is_default: bool | None = None,
        limit: int | None = None,
        offset: int | None = None,
    ) -> list[Environment]:
        response = await self._transport.get(
            ENVIRONMENTS_PATH,
            {
                "isActive": is_active,
                "isDefault": is_default,
                "limit": limit,
                "offset": offset,
            },
        )
        return [Environment.model_validate(item) for item in _expect_field(response, "data")]

    async def create(
        self,
        name: str,
        *,
        description: str | None = None,
        internet_access: bool | None = None,
        is_default: bool | None = None,
        **fields: Any,
    ) -> Environment:
        """Create an environment.

        Extra keyword arguments are sent as-is (e.g. `setupScripts`,
        `environmentVariables`).
        """
        body: dict[str, Any] = {"name": name}
        if description is not None:
            body["description"] = description
        if internet_access is not None:
            body["internetAccess"] = internet_access
        if is_default is not None:
            body["isDefault"] = is_default
        body.update(fields)
        response = await self._transport.post(ENVIRONMENTS_PATH, body)
        return Environment.model_validate(_expect_field(response, "environment"))

    async def get(self, environment_id: str) -> Environment:
        response = await self._transport.get(environment_path(environment_id))
        return Environment.model_validate(_expect_field(response, "environment"))

    async def get_default(self) -> Environment:
        """Return the caller's default environment; the server creates it if missing."""
        response = await self._transport.get(environment_path("default"))
        if isinstance(response, Mapping) and "environment" in response:
            response = response["environment"]
        return Environment.model_validate(response)

    async def update(self, environment_id: str, **fields: Any) -> Environment:
        response = await self._transport.patch(environment_path(environment_id), fields)
        return Environment.model_validate(_expect_field(response, "environment"))

    async def delete(self, environment_id: str) -> None:
        await self._transport.delete(environment_path(environment_id))


class ThreadsResource:
    """Thread CRUD and streamed message execution."""

    def __init__(self, transport: Transport, executor: ExecutionAggregator) -> None:
        self._transport = transport
        self._executor = executor

    async def create(
        self,
        environment_id: str,
        *,
        agent_id: str | None = None,
        title: str | None = None,
    ) -> Thread:
        body: dict[str, Any] = {"environmentId": environment_id}
        if agent_id is not None:
            body["agentId"] = agent_id
        if title is not None:
            body["title"] = title
        response = await self._transport.post(THREADS_PATH, body)
        return Thread.model_validate(_expect_field(response, "thread"))

    async def list(
        self,
        *,
        environment_id: str | None = None,
        status: str | None = None,
        limit: int | None = None,
        offset: int | None = None,
    ) -> ThreadPage:
        response = await self._transport.get(
            THREADS_PATH,
            {
                "limit": limit,
                "offset": offset,
                "environmentId": environment_id,
                "status": status,
            },
        )
        return ThreadPage(
            data=[Thread.model_validate(item) for item in _expect_field(response, "data")],
            has_more=bool(response.get("has_more", False)),
            total=int(response.get("total_count", 0)),
        )

    async def get(self, thread_id: str) -> Thread:
        """Get a thread with its message history."""
        response = await self._transport.get(thread_path(thread_id))
        return Thread.model_validate(_expect_field(response, "thread"))

    async def update(
        self,
        thread_id: str,
        *,
        title: str | None = None,
        status: str | None = None,
    ) -> Thread:
        body: dict[str, Any] = {}
        if title is not None:
            body["title"] = title
        if status is not None:
            body["status"] = status
        response = await self._transport.patch(thread_path(thread_id), body)
        return Thread.model_validate(_expect_field(response, "thread"))

    async def delete(self, thread_id: str) -> None:
        await self._transport.delete(thread_path(thread_id))

    async def get_messages(self, thread_id: str) -> list[ThreadMessage]:
        response = await self._transport.get(thread_path(thread_id, "messages"))
        return [ThreadMessage.model_validate(item) for item in _expect_field(response, "data")]

    async def send_message(
        self,
        thread_id: str,
        content: str,
        *,
        agent_config: AgentConfig | Mapping[str, Any] | None = None,
        options: MessageOptions | None = None,
        on_event: EventHandler | None = None,
        timeout: float | None = None,
    ) -> ExecutionResult:
        """Send a message and wait for the streamed execution to finish."""
        return await self._executor.run(
            thread_id,
            content,
            agent_config=agent_config,
            options=options,
            on_event=on_event,
            timeout=timeout,
        )

    def stream_message(
        self,
        thread_id: str,
        content: str,
        *,
        agent_config: AgentConfig | Mapping[str, Any] | None = None,
        options: MessageOptions | None = None,
        timeout: float | None = None,
    ) -> AsyncIterator[StreamEvent]:
        """Send a message and iterate its events as they arrive."""
        return self._executor.stream(
            thread_id,
            content,
            agent_config=agent_config,
            options=options,
            timeout=timeout,
        )

    async def cancel(self, thread_id: str) -> None:
        """Cancel an in-progress execution."""
        await self._transport.post(thread_path(thread_id, "cancel"))

    async def resume(self, thread_id: str) -> Thread:
        response = await self._transport.post(thread_path(thread_id, "resume"))
        return Thread.model_validate(_expect_field(response, "thread"))

    async def copy(self, thread_id: str, *, title: str | None = None) -> Thread:
        """Copy a thread and its messages into a new thread."""
        body = {"title": title} if title is not None else None
        response = await self._transport.post(thread_path(thread_id, "copy"), body)
        return Thread.model_validate(_expect_field(response, "thread"))


def _expect_field(response: Any, key: str) -> Any:
    """Return `response[key]`, failing loudly on an unexpected envelope."""
    if not isinstance(response, Mapping) or key not in response:
        raise ApiProtocolError(f"response has no {key!r} field")
    return response[key]
