from __future__ import annotations

from typing import Any

DEFAULT_BASE_URL = "https://api.computer-agents.com"

# Environment variables consulted for the API key, in order.
API_KEY_ENV_VARS = ("COMPUTER_AGENTS_API_KEY", "TESTBASE_API_KEY")
BASE_URL_ENV_VAR = "COMPUTER_AGENTS_BASE_URL"

# Timeouts in seconds.
DEFAULT_REQUEST_TIMEOUT = 60.0
DEFAULT_EXECUTION_TIMEOUT = 600.0

JSON_CONTENT_TYPE = "application/json"
EVENT_STREAM_CONTENT_TYPE = "text/event-stream"

# Only lines starting with this marker carry a payload.
SSE_DATA_PREFIX = "data: "

# Stream event discriminators.
RESPONSE_STARTED = "response.started"
RESPONSE_ITEM_COMPLETED = "response.item.completed"
RESPONSE_COMPLETED = "response.completed"
STREAM_COMPLETED = "stream.completed"
STREAM_ERROR = "stream.error"

DEFAULT_ENVIRONMENT_NAME = "default"

ENVIRONMENTS_PATH = "/environments"
THREADS_PATH = "/threads"
HEALTH_PATH = "/health"
METRICS_PATH = "/metrics"


def thread_path(thread_id: str, *suffix: str) -> str:
    """Build `/threads/{id}[/suffix...]`."""
    return "/".join((THREADS_PATH, thread_id, *suffix))


def environment_path(environment_id: str, *suffix: str) -> str:
    """Build `/environments/{id}[/suffix...]`."""
    return "/".join((ENVIRONMENTS_PATH, environment_id, *suffix))


def build_headers(
    api_key: str,
    *,
    has_body: bool = False,
    stream: bool = False,
) -> dict[str, str]:
    """Build request headers for one call."""
    headers = {"Authorization": f"Bearer {api_key}"}
    if has_body:
        headers["Content-Type"] = JSON_CONTENT_TYPE
    if stream:
        headers["Accept"] = EVENT_STREAM_CONTENT_TYPE
    return headers


def encode_query(query: dict[str, Any] | None) -> dict[str, str]:
    """Drop `None` values and stringify the rest the way the API expects."""
    if not query:
        return {}
    params: dict[str, str] = {}
    for key, value in query.items():
        if value is None:
            continue
        if isinstance(value, bool):
            params[key] = "true" if value else "false"
        else:
            params[key] = str(value)
    return params


def parse_error_body(payload: Any) -> dict[str, Any] | None:
    """Return the error object if payload looks like `{error, message, ...}`."""
    if not isinstance(payload, dict):
        return None
    if "error" not in payload and "message" not in payload:
        return None
    return payload

