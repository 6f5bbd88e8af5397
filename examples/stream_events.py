#!/usr/bin/env python3
"""Print stream events as they arrive, push style and pull style."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from computer_agents import (
    ApiClientError,
    ComputerAgentsClient,
    ResponseItemCompletedEvent,
    StreamCompletedEvent,
    StreamEvent,
)


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument(
        "--prompt",
        default="List the files in the workspace and describe them.",
        help="Prompt for the first message.",
    )
    parser.add_argument(
        "--follow-up",
        default="Now add a README.md summarizing them.",
        help="Prompt for the streamed follow-up.",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable debug logging for the client.",
    )
    return parser.parse_args()


def print_event(event: StreamEvent) -> None:
    if isinstance(event, ResponseItemCompletedEvent):
        text = (event.item.content or "").strip()
        print(f"[{event.type}:{event.item.type}] {text}")
    elif isinstance(event, StreamCompletedEvent) and event.run is not None:
        print(f"[{event.type}] run={event.run.id} status={event.run.status}")
    else:
        print(f"[{event.type}]")


async def run(args: argparse.Namespace) -> int:
    try:
        async with ComputerAgentsClient() as client:
            thread = await client.start_thread(title="stream events example")

            result = await thread.send(args.prompt, on_event=print_event)
            print(f"[final] {result.content}")

            async for event in thread.stream(args.follow_up):
                print_event(event)
    except ApiClientError as exc:
        print(f"[error] status={exc.status} code={exc.code} {exc}", file=sys.stderr)
        return 1
    return 0


def main() -> None:
    args = parse_args()
    if args.verbose:
        logging.basicConfig(level=logging.DEBUG)
    raise SystemExit(asyncio.run(run(args)))


if __name__ == "__main__":
    main()
