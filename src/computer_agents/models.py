from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Literal, TypeAlias

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from .protocol import (
    RESPONSE_COMPLETED,
    RESPONSE_ITEM_COMPLETED,
    RESPONSE_STARTED,
    STREAM_COMPLETED,
    STREAM_ERROR,
)


class StreamEvent(BaseModel):
    """One decoded `data:` frame of a message stream.

    Unknown discriminators are represented by this base class; every field the
    server sent is kept as an extra attribute.

    Attributes:
        type: Event discriminator (e.g. `response.completed`).
        timestamp: Server timestamp, when provided.
    """

    model_config = ConfigDict(extra="allow")

    type: str
    timestamp: Any = None


class ResponseStartedEvent(StreamEvent):
    """Execution began on the server."""

    type: Literal["response.started"] = RESPONSE_STARTED


class StreamItem(BaseModel):
    """Structured output item produced during execution.

    Attributes:
        type: Item kind: `text`, `tool_call`, `reasoning` or `file_change`.
        content: Text content of the item, when it has one.
    """

    model_config = ConfigDict(extra="allow")

    type: str
    content: str | None = None


class ResponseItemCompletedEvent(StreamEvent):
    """A structured output item finished."""

    type: Literal["response.item.completed"] = RESPONSE_ITEM_COMPLETED
    item: StreamItem


class ResponseBody(BaseModel):
    model_config = ConfigDict(extra="allow")

    content: str = ""

    @field_validator("content", mode="before")
    @classmethod
    def _null_content(cls, value: Any) -> Any:
        return "" if value is None else value


class ResponseCompletedEvent(StreamEvent):
    """The agent produced its final textual response."""

    type: Literal["response.completed"] = RESPONSE_COMPLETED
    response: ResponseBody = Field(default_factory=ResponseBody)


class TokenUsage(BaseModel):
    model_config = ConfigDict(extra="allow")

    input: int = 0
    output: int = 0

    @field_validator("input", "output", mode="before")
    @classmethod
    def _null_count(cls, value: Any) -> Any:
        return 0 if value is None else value


class RunSummary(BaseModel):
    """Run metadata reported by `stream.completed`.

    Attributes:
        id: Server-side run identifier.
        status: Final run status (e.g. `success`, `failed`).
        tokens: Token usage for the run.
    """

    model_config = ConfigDict(extra="allow")

    id: str | None = None
    status: str | None = None
    tokens: TokenUsage | None = None


class StreamCompletedEvent(StreamEvent):
    """The stream finished; carries run id, status and token usage."""

    type: Literal["stream.completed"] = STREAM_COMPLETED
    run: RunSummary | None = None


class StreamErrorEvent(StreamEvent):
    """The execution failed; the stream ends as a failure."""

    type: Literal["stream.error"] = STREAM_ERROR
    error: Any = None
    message: Any = None
    code: str | int | None = None

    @property
    def error_message(self) -> str:
        return stream_error_details(self)[0]


def stream_error_details(event: StreamEvent) -> tuple[str, str | None]:
    """Return `(message, code)` for a `stream.error` event of any shape.

    The message is taken from `message`, then `error`; object values use their
    own `message` key. Falls back to "stream failed".
    """
    message = _describe(getattr(event, "message", None)) or _describe(
        getattr(event, "error", None)
    )
    code = getattr(event, "code", None)
    return message or "stream failed", None if code is None else str(code)


def _describe(value: Any) -> str | None:
    if value is None or value == "":
        return None
    if isinstance(value, Mapping):
        nested = value.get("message")
        return nested if isinstance(nested, str) and nested else str(dict(value))
    return str(value)


EVENT_MODELS: dict[str, type[StreamEvent]] = {
    RESPONSE_STARTED: ResponseStartedEvent,
    RESPONSE_ITEM_COMPLETED: ResponseItemCompletedEvent,
    RESPONSE_COMPLETED: ResponseCompletedEvent,
    STREAM_COMPLETED: StreamCompletedEvent,
    STREAM_ERROR: StreamErrorEvent,
}


def parse_event(payload: dict[str, Any]) -> StreamEvent:
    """Validate a decoded frame into its typed event model.

    Raises:
        pydantic.ValidationError: If the payload does not fit its model.
    """
    model = EVENT_MODELS.get(payload.get("type", ""), StreamEvent)
    return model.model_validate(payload)


class ExecutionResult(BaseModel):
    """Aggregated result of one streamed message execution.

    Attributes:
        content: Content of the last `response.completed` event, or "".
        run: Run summary from `stream.completed`, when one arrived.
        events: Every event observed, in wire order.
    """

    content: str = ""
    run: RunSummary | None = None
    events: list[StreamEvent] = Field(default_factory=list)


class RunResult(BaseModel):
    """Result of `ComputerAgentsClient.run()`.

    Attributes:
        content: Final response content.
        thread_id: Thread used for the task; pass it back to continue.
        run: Run summary, when the server reported one.
    """

    content: str
    thread_id: str
    run: RunSummary | None = None


class _Record(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True, alias_generator=to_camel)


class Environment(_Record):
    """Server-side execution environment record."""

    id: str
    name: str | None = None
    description: str | None = None
    status: str | None = None
    internet_access: bool | None = None
    is_default: bool = False


class ThreadMessage(_Record):
    role: str
    content: str
    timestamp: str | None = None


class Thread(_Record):
    """Server-side conversation thread record."""

    id: str
    environment_id: str | None = None
    agent_id: str | None = None
    title: str | None = None
    status: str | None = None
    messages: list[ThreadMessage] | None = None
    message_count: int | None = None


class ThreadPage(BaseModel):
    data: list[Thread] = Field(default_factory=list)
    has_more: bool = False
    total: int = 0


class HealthCheck(_Record):
    status: str
    timestamp: str | None = None
    uptime: float | None = None
    checks: dict[str, Any] = Field(default_factory=dict)
    metrics: dict[str, Any] | None = None


class Metrics(_Record):
    total_executions: int = 0
    successful_executions: int = 0
    failed_executions: int = 0
    average_duration: float = 0.0
    total_tokens_used: int = 0
    total_cost: float = 0.0


class UnsetType:
    """Sentinel type representing an omitted request field."""

    __slots__ = ()

    def __repr__(self) -> str:
        return "UNSET"


UNSET = UnsetType()

#: Models accepted by the agent runtime.
AgentModel: TypeAlias = Literal["claude-opus-4-6", "claude-sonnet-4-5", "claude-haiku-4-5"]

#: Reasoning effort level, ordered lowest to highest.
ReasoningEffort: TypeAlias = Literal["minimal", "low", "medium", "high"]


@dataclass(slots=True)
class AgentConfig:
    """Per-message agent configuration override.

    Use `UNSET` (default) to omit a field from the request payload.
    Use `None` to explicitly send JSON `null`.

    Attributes:
        model: Model used for this message.
        instructions: Extra system instructions.
        reasoning_effort: Reasoning effort (`minimal`..`high`).
    """

    model: AgentModel | str | None | UnsetType = UNSET
    instructions: str | None | UnsetType = UNSET
    reasoning_effort: ReasoningEffort | None | UnsetType = UNSET


@dataclass(slots=True)
class MessageOptions:
    """Optional execution settings sent alongside a message.

    Use `UNSET` (default) to omit a field from the request payload.

    Attributes:
        mcp_servers: MCP server definitions for this execution.
        env_vars: Extra environment variables.
        secrets: Secret variables (`{"key": ..., "value": ...}` entries).
        setup_scripts: Shell scripts run before the agent starts.
        internet_access: Override the environment's internet access.
        attachments: Attachment payloads.
        run_id: Client-chosen run id.
    """

    mcp_servers: list[dict[str, Any]] | None | UnsetType = UNSET
    env_vars: dict[str, str] | None | UnsetType = UNSET
    secrets: list[dict[str, Any]] | None | UnsetType = UNSET
    setup_scripts: list[str] | None | UnsetType = UNSET
    internet_access: bool | None | UnsetType = UNSET
    attachments: list[Any] | None | UnsetType = UNSET
    run_id: str | None | UnsetType = UNSET
