"""Command-line entry point: ask one question, optionally streamed.

    parley "What is the meaning of life?"
    parley --stream --system "You are terse." "Write a haiku about rivers"
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from parley.api.client import MessagesClient
from parley.api.usage import UsageTracker
from parley.config import Settings
from parley.errors import ParleyError

logger = logging.getLogger(__name__)


def _parse_args(argv: list[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="parley", description=__doc__.splitlines()[0])
    parser.add_argument("prompt", help="User message to send")
    parser.add_argument("--system", default=None, help="System prompt")
    parser.add_argument("--model", default=None, help="Model identifier (default from settings)")
    parser.add_argument("--max-tokens", type=int, default=None)
    parser.add_argument("--temperature", type=float, default=None)
    parser.add_argument("--stream", action="store_true", help="Print the answer as it arrives")
    parser.add_argument("--usage", action="store_true", help="Print a usage summary afterwards")
    return parser.parse_args(argv)


async def _run(args: argparse.Namespace, settings: Settings) -> None:
    tracker = UsageTracker()
    async with MessagesClient(settings, usage_tracker=tracker) as client:
        options = {
            "system": args.system,
            "model": args.model,
            "max_tokens": args.max_tokens,
            "temperature": args.temperature,
        }
        if args.stream:
            async for fragment in client.stream_complete(args.prompt, **options):
                print(fragment, end="", flush=True)
            print()
        else:
            print(await client.complete(args.prompt, **options))

    if args.usage:
        print(tracker.summary(), file=sys.stderr)


def main(argv: list[str] | None = None) -> None:
    """Entry point -- parse settings and arguments, run one request."""
    settings = Settings()
    args = _parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )
    logger.debug("Model: %s", args.model or settings.model)

    try:
        asyncio.run(_run(args, settings))
    except ParleyError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
