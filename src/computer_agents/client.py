from __future__ import annotations

import logging
import os
from collections.abc import AsyncIterator, Mapping
from typing import Any

import httpx

from .execution import EventHandler, ExecutionAggregator
from .models import (
    AgentConfig,
    Environment,
    ExecutionResult,
    HealthCheck,
    MessageOptions,
    Metrics,
    RunResult,
    StreamEvent,
    Thread,
    ThreadMessage,
)
from .protocol import (
    API_KEY_ENV_VARS,
    BASE_URL_ENV_VAR,
    DEFAULT_BASE_URL,
    DEFAULT_ENVIRONMENT_NAME,
    DEFAULT_EXECUTION_TIMEOUT,
    DEFAULT_REQUEST_TIMEOUT,
    HEALTH_PATH,
    METRICS_PATH,
)
from .resources import EnvironmentsResource, ThreadsResource
from .transport import HttpTransport, Transport

logger = logging.getLogger(__name__)


class ThreadHandle:
    """Thread-scoped API wrapper bound to one `thread_id`.

    The server owns thread state; `environment_id` and `status` are the last
    values this handle saw and are refreshed by `refresh()`.
    """

    def __init__(
        self,
        client: ComputerAgentsClient,
        thread_id: str,
        *,
        environment_id: str | None = None,
        status: str | None = None,
    ) -> None:
        self._client = client
        self._thread_id = thread_id
        self._environment_id = environment_id
        self._status = status

    @property
    def thread_id(self) -> str:
        """Thread id for this handle."""
        return self._thread_id

    @property
    def environment_id(self) -> str | None:
        return self._environment_id

    @property
    def status(self) -> str | None:
        return self._status

    def __repr__(self) -> str:
        return f"ThreadHandle(thread_id={self._thread_id!r}, status={self._status!r})"

    async def send(
        self,
        content: str,
        *,
        agent_config: AgentConfig | Mapping[str, Any] | None = None,
        options: MessageOptions | None = None,
        on_event: EventHandler | None = None,
        timeout: float | None = None,
    ) -> ExecutionResult:
        """Send one message on this thread and wait for the result."""
        return await self._client.threads.send_message(
            self._thread_id,
            content,
            agent_config=agent_config,
            options=options,
            on_event=on_event,
            timeout=timeout,
        )

    async def stream(
        self,
        content: str,
        *,
        agent_config: AgentConfig | Mapping[str, Any] | None = None,
        options: MessageOptions | None = None,
        timeout: float | None = None,
    ) -> AsyncIterator[StreamEvent]:
        """Stream events for one message on this thread."""
        async for event in self._client.threads.stream_message(
            self._thread_id,
            content,
            agent_config=agent_config,
            options=options,
            timeout=timeout,
        ):
            yield event

    async def refresh(self) -> Thread:
        """Read server-side thread state and update the local snapshot."""
        thread = await self._client.threads.get(self._thread_id)
        self._environment_id = thread.environment_id
        self._status = thread.status
        return thread

    async def messages(self) -> list[ThreadMessage]:
        return await self._client.threads.get_messages(self._thread_id)

    async def cancel(self) -> None:
        """Cancel the in-progress execution on this thread."""
        await self._client.threads.cancel(self._thread_id)


class ComputerAgentsClient:
    """High-level async client for the Computer Agents API.

    `run()` is the zero-setup entry point: it resolves a default environment,
    creates a thread, streams the execution and returns the final content
    together with the thread id for follow-up calls.
    """

    def __init__(
        self,
        api_key: str | None = None,
        *,
        base_url: str | None = None,
        timeout: float = DEFAULT_REQUEST_TIMEOUT,
        execution_timeout: float = DEFAULT_EXECUTION_TIMEOUT,
        http_client: httpx.AsyncClient | None = None,
        transport: Transport | None = None,
    ) -> None:
        """Create a client.

        Args:
            api_key: API key. Falls back to `COMPUTER_AGENTS_API_KEY`, then
                `TESTBASE_API_KEY`.
            base_url: API base URL. Falls back to `COMPUTER_AGENTS_BASE_URL`,
                then the production host.
            timeout: Default deadline in seconds for request/response calls.
            execution_timeout: Default deadline in seconds for a streamed
                message execution.
            http_client: Optional httpx client used by the HTTP transport.
            transport: Pre-built transport; when given, `api_key`, `base_url`,
                `timeout` and `http_client` are ignored.
        """
        if transport is None:
            resolved_key = api_key or _api_key_from_env()
            if not resolved_key:
                raise ValueError(
                    "ComputerAgentsClient requires an API key. Provide it via:\n"
                    '1. Constructor: ComputerAgentsClient(api_key="...")\n'
                    "2. Environment variable: COMPUTER_AGENTS_API_KEY "
                    "(or TESTBASE_API_KEY)"
                )
            resolved_url = base_url or os.getenv(BASE_URL_ENV_VAR) or DEFAULT_BASE_URL
            transport = HttpTransport(
                resolved_key,
                base_url=resolved_url,
                timeout=timeout,
                http_client=http_client,
            )

        self._transport = transport
        self._executor = ExecutionAggregator(transport, default_timeout=execution_timeout)
        self.threads = ThreadsResource(transport, self._executor)
        self.environments = EnvironmentsResource(transport)

        # Best-effort cache: concurrent first calls may each resolve (and, if
        # none exists yet, each create) a default environment.
        self._default_environment_id: str | None = None
        self._closed = False

    @property
    def transport(self) -> Transport:
        return self._transport

    @property
    def default_environment_id(self) -> str | None:
        """Cached default environment id, or None until first resolved."""
        return self._default_environment_id

    async def __aenter__(self) -> ComputerAgentsClient:
        """Support `async with ComputerAgentsClient(...)` usage."""
        return self

    async def __aexit__(self, exc_type: Any, exc: Any, tb: Any) -> None:
        """Close client on context-manager exit."""
        await self.close()

    async def close(self) -> None:
        """Close the underlying transport."""
        if self._closed:
            return
        self._closed = True
        await self._transport.close()

    async def run(
        self,
        task: str,
        *,
        environment_id: str | None = None,
        thread_id: str | None = None,
        agent_config: AgentConfig | Mapping[str, Any] | None = None,
        options: MessageOptions | None = None,
        on_event: EventHandler | None = None,
        timeout: float | None = None,
    ) -> RunResult:
        """Execute a task with automatic environment and thread management.

        The environment is always resolved first: `environment_id`, or the
        default environment (created on first use and cached). Without
        `thread_id` a new thread is created in it. Pass the returned
        `thread_id` back to continue the conversation.

        Failures from the execution propagate unchanged; nothing is retried.
        """
        resolved_environment_id = environment_id or await self._ensure_default_environment()

        active_thread_id = thread_id
        if active_thread_id is None:
            thread = await self.start_thread(resolved_environment_id)
            active_thread_id = thread.thread_id

        result = await self._executor.run(
            active_thread_id,
            task,
            agent_config=agent_config,
            options=options,
            on_event=on_event,
            timeout=timeout,
        )
        return RunResult(
            content=result.content,
            thread_id=active_thread_id,
            run=result.run,
        )

    async def start_thread(
        self,
        environment_id: str | None = None,
        *,
        agent_id: str | None = None,
        title: str | None = None,
    ) -> ThreadHandle:
        """Create a thread, in the default environment unless one is given."""
        resolved_environment_id = environment_id or await self._ensure_default_environment()
        thread = await self.threads.create(
            resolved_environment_id,
            agent_id=agent_id,
            title=title,
        )
        return ThreadHandle(
            self,
            thread.id,
            environment_id=thread.environment_id or resolved_environment_id,
            status=thread.status,
        )

    def thread(self, thread_id: str) -> ThreadHandle:
        """Return a handle for an existing thread without a network call."""
        return ThreadHandle(self, thread_id)

    async def quick_setup(
        self,
        *,
        internet_access: bool = True,
        environment_name: str = DEFAULT_ENVIRONMENT_NAME,
    ) -> Environment:
        """Return the default environment, creating it when none exists.

        `run()` does this automatically; call it to choose the name and
        internet access of a newly created default environment.
        """
        environment = await self._find_default_environment()
        if environment is None:
            environment = await self._create_default_environment(
                name=environment_name,
                internet_access=internet_access,
            )
        self._default_environment_id = environment.id
        return environment

    async def health(self) -> HealthCheck:
        """Check API health status."""
        return HealthCheck.model_validate(await self._transport.get(HEALTH_PATH))

    async def metrics(self) -> Metrics:
        return Metrics.model_validate(await self._transport.get(METRICS_PATH))

    async def _ensure_default_environment(self) -> str:
        """Return the cached default environment id, resolving it if needed."""
        if self._default_environment_id is not None:
            return self._default_environment_id

        environment = await self._find_default_environment()
        if environment is None:
            environment = await self._create_default_environment(
                name=DEFAULT_ENVIRONMENT_NAME,
                internet_access=True,
            )

        self._default_environment_id = environment.id
        return environment.id

    async def _find_default_environment(self) -> Environment | None:
        for environment in await self.environments.list():
            if environment.is_default:
                return environment
        return None

    async def _create_default_environment(
        self,
        *,
        name: str,
        internet_access: bool,
    ) -> Environment:
        environment = await self.environments.create(
            name,
            internet_access=internet_access,
            is_default=True,
        )
        logger.info(f"Created default environment {environment.id} ({name!r})")
        return environment


def _api_key_from_env() -> str | None:
    for name in API_KEY_ENV_VARS:
        value = os.getenv(name)
        if value:
            return value
    return None
