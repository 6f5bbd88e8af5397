#!/usr/bin/env python3
"""Continue a conversation by passing the returned thread id back to run()."""

from __future__ import annotations

import argparse
import asyncio
import sys

from computer_agents import ApiClientError, ComputerAgentsClient


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument(
        "--prompt",
        action="append",
        dest="prompts",
        help="Prompt for one turn; repeat for more turns.",
    )
    return parser.parse_args()


async def run(args: argparse.Namespace) -> int:
    prompts = args.prompts or [
        "Create a minimal Flask app in app.py.",
        "Add a /health endpoint to it.",
        "Write a pytest test for the /health endpoint.",
    ]

    try:
        async with ComputerAgentsClient() as client:
            thread_id: str | None = None
            for index, prompt in enumerate(prompts, start=1):
                result = await client.run(prompt, thread_id=thread_id)
                thread_id = result.thread_id
                print(f"[turn {index}] {result.content}")
            print(f"[thread] {thread_id}")
    except ApiClientError as exc:
        print(f"[error] status={exc.status} code={exc.code} {exc}", file=sys.stderr)
        return 1
    return 0


def main() -> None:
    args = parse_args()
    raise SystemExit(asyncio.run(run(args)))


if __name__ == "__main__":
    main()
