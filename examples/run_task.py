#!/usr/bin/env python3
"""Run one task with automatic environment and thread setup."""

from __future__ import annotations

import argparse
import asyncio
import sys

from computer_agents import (
    ApiHttpError,
    ApiProtocolError,
    ApiTimeoutError,
    ApiTransportError,
    ComputerAgentsClient,
    StreamError,
)


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument(
        "task",
        nargs="?",
        default="Create a Python script that prints the first 10 primes.",
        help="Task for the agent.",
    )
    parser.add_argument(
        "--base-url",
        default=None,
        help="Override the API base URL.",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=None,
        help="Execution deadline in seconds.",
    )
    return parser.parse_args()


async def run(args: argparse.Namespace) -> int:
    try:
        async with ComputerAgentsClient(base_url=args.base_url) as client:
            result = await client.run(args.task, timeout=args.timeout)
    except StreamError as exc:
        print(f"[error] execution failed: code={exc.code} {exc}", file=sys.stderr)
        return 2
    except ApiTimeoutError as exc:
        print(f"[error] timeout: {exc}", file=sys.stderr)
        return 3
    except ApiHttpError as exc:
        print(f"[error] http {exc.status}: {exc}", file=sys.stderr)
        return 4
    except ApiProtocolError as exc:
        print(f"[error] protocol: status={exc.status} {exc}", file=sys.stderr)
        return 5
    except ApiTransportError as exc:
        print(f"[error] transport: {exc}", file=sys.stderr)
        return 6

    print(result.content)
    print(f"[thread] {result.thread_id}")
    if result.run is not None and result.run.tokens is not None:
        tokens = result.run.tokens
        print(f"[tokens] input={tokens.input} output={tokens.output}")
    return 0


def main() -> None:
    args = parse_args()
    raise SystemExit(asyncio.run(run(args)))


if __name__ == "__main__":
    main()
