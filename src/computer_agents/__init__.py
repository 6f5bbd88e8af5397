from .client import ComputerAgentsClient, ThreadHandle
from .decoder import Frame, SSEDecoder, iter_events, iter_frames
from .errors import (
    ApiClientError,
    ApiHttpError,
    ApiProtocolError,
    ApiTimeoutError,
    ApiTransportError,
    StreamError,
)
from .execution import EventHandler, ExecutionAggregator
from .models import (
    AgentConfig,
    Environment,
    ExecutionResult,
    HealthCheck,
    MessageOptions,
    Metrics,
    ResponseCompletedEvent,
    ResponseItemCompletedEvent,
    ResponseStartedEvent,
    RunResult,
    RunSummary,
    StreamCompletedEvent,
    StreamErrorEvent,
    StreamEvent,
    StreamItem,
    Thread,
    ThreadMessage,
    ThreadPage,
    TokenUsage,
    UNSET,
)
from .resources import EnvironmentsResource, ThreadsResource
from .transport import HttpTransport, StreamHandle, Transport, TransportRequest

__all__ = [
    "AgentConfig",
    "ApiClientError",
    "ApiHttpError",
    "ApiProtocolError",
    "ApiTimeoutError",
    "ApiTransportError",
    "ComputerAgentsClient",
    "Environment",
    "EnvironmentsResource",
    "EventHandler",
    "ExecutionAggregator",
    "ExecutionResult",
    "Frame",
    "HealthCheck",
    "HttpTransport",
    "MessageOptions",
    "Metrics",
    "ResponseCompletedEvent",
    "ResponseItemCompletedEvent",
    "ResponseStartedEvent",
    "RunResult",
    "RunSummary",
    "SSEDecoder",
    "StreamCompletedEvent",
    "StreamError",
    "StreamErrorEvent",
    "StreamEvent",
    "StreamHandle",
    "StreamItem",
    "Thread",
    "ThreadHandle",
    "ThreadMessage",
    "ThreadPage",
    "ThreadsResource",
    "TokenUsage",
    "Transport",
    "TransportRequest",
    "UNSET",
    "iter_events",
    "iter_frames",
]
