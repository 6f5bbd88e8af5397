from __future__ import annotations

import asyncio
from typing import Any

from computer_agents.client import ComputerAgentsClient, ThreadHandle

from fakes import FakeStream, FakeTransport, sse


def _thread(status: str = "active") -> dict[str, Any]:
    return {"thread": {"id": "thread-7", "environmentId": "env-2", "status": status}}


def test_start_thread_in_explicit_environment() -> None:
    transport = FakeTransport({("POST", "/threads"): _thread()})
    client = ComputerAgentsClient(transport=transport)

    handle = asyncio.run(client.start_thread("env-2", title="Refactor"))

    assert isinstance(handle, ThreadHandle)
    assert handle.thread_id == "thread-7"
    assert handle.environment_id == "env-2"
    assert handle.status == "active"
    assert transport.requests[0].body == {"environmentId": "env-2", "title": "Refactor"}


def test_send_and_stream_target_the_bound_thread() -> None:
    transport = FakeTransport()
    transport.streams.append(
        FakeStream([sse({"type": "response.completed", "response": {"content": "first"}})])
    )
    transport.streams.append(
        FakeStream(
            [
                sse(
                    {"type": "response.started"},
                    {"type": "response.completed", "response": {"content": "second"}},
                )
            ]
        )
    )
    handle = ComputerAgentsClient(transport=transport).thread("thread-3")

    async def _run() -> tuple[str, list[str]]:
        result = await handle.send("hello")
        types = [event.type async for event in handle.stream("again")]
        return result.content, types

    content, types = asyncio.run(_run())

    assert content == "first"
    assert types == ["response.started", "response.completed"]
    assert [r.path for r in transport.requests] == [
        "/threads/thread-3/messages",
        "/threads/thread-3/messages",
    ]
    assert all(stream.released for stream in transport.opened)


def test_refresh_updates_snapshot() -> None:
    transport = FakeTransport({("GET", "/threads/thread-7"): _thread(status="completed")})
    handle = ComputerAgentsClient(transport=transport).thread("thread-7")

    assert handle.status is None
    thread = asyncio.run(handle.refresh())

    assert thread.id == "thread-7"
    assert handle.status == "completed"
    assert handle.environment_id == "env-2"


def test_messages_and_cancel() -> None:
    transport = FakeTransport(
        {
            ("GET", "/threads/thread-7/messages"): {
                "data": [
                    {"role": "user", "content": "Build it"},
                    {"role": "assistant", "content": "Done", "timestamp": "2025-01-01T00:00:00Z"},
                ]
            },
            ("POST", "/threads/thread-7/cancel"): None,
        }
    )
    handle = ComputerAgentsClient(transport=transport).thread("thread-7")

    async def _run() -> Any:
        messages = await handle.messages()
        await handle.cancel()
        return messages

    messages = asyncio.run(_run())

    assert [message.role for message in messages] == ["user", "assistant"]
    assert messages[1].content == "Done"
    assert transport.calls("POST", "/threads/thread-7/cancel")[0].body is None
