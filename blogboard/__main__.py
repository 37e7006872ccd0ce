"""
Command-line front-end for a running blogboard server.

Usage:
    python -m blogboard board "Rust async runtimes" --audience "backend devs"
    python -m blogboard board "Rust async runtimes" --retry-failed 2 --dismiss-failed
    python -m blogboard post "Rust async runtimes"            # one-shot outline
    python -m blogboard post "Rust async runtimes" --stream   # six outlines, streamed
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from typing import Optional

from dotenv import load_dotenv

from blogboard.board import BoardState
from blogboard.client import ANALYZE_PATH, FlowClient
from blogboard.kanban import KanbanOrchestrator
from blogboard.render import render_board, render_post
from config.settings import Settings

logger = logging.getLogger(__name__)


def _redraw(text: str) -> None:
    # Clear the terminal and home the cursor
    sys.stdout.write("\033[2J\033[H" + text + "\n")
    sys.stdout.flush()


async def drive_board(
    orchestrator: KanbanOrchestrator,
    topic: str,
    audience: Optional[str],
    retries: int = 0,
    dismiss: bool = False,
) -> BoardState:
    """Generate a board, then retry failed columns and cards up to ``retries`` rounds."""
    state = await orchestrator.generate(topic, audience)
    if state.error:
        return state

    for attempt in range(1, retries + 1):
        columns = state.failed_columns()
        if not columns and not state.failed_cards():
            break
        logger.info("Retry round %d/%d", attempt, retries)
        async with asyncio.TaskGroup() as group:
            for column_index in columns:
                group.create_task(orchestrator.retry_column(column_index))
            group.create_task(orchestrator.retry_failed_cards())
        state = orchestrator.state

    if dismiss:
        orchestrator.dismiss_all_errors()
    return orchestrator.state


async def run_board(
    settings: Settings,
    topic: str,
    audience: Optional[str],
    retries: int = 0,
    dismiss: bool = False,
) -> int:
    async with FlowClient.from_settings(settings) as client:

        def on_change(state: BoardState) -> None:
            _redraw(render_board(state))

        orchestrator = KanbanOrchestrator(client, on_change=on_change)
        state = await drive_board(orchestrator, topic, audience, retries, dismiss)
    return 1 if state.error else 0


async def run_post(
    settings: Settings, topic: str, audience: Optional[str], stream: bool
) -> int:
    async with FlowClient.from_settings(settings) as client:
        if not stream:
            post = await client.structured_output(topic, audience)
            print(render_post(post))
            return 0

        flow_input = {"topic": topic}
        if audience:
            flow_input["audience"] = audience
        async for _event_type, posts in client.stream(ANALYZE_PATH, flow_input):
            _redraw("\n\n".join(render_post(p) for p in posts or []))
    return 0


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="blogboard")
    sub = p.add_subparsers(dest="command", required=True)

    board_cmd = sub.add_parser("board", help="generate a kanban board of posts")
    board_cmd.add_argument("topic")
    board_cmd.add_argument("--audience")
    board_cmd.add_argument(
        "--retry-failed", type=int, default=0, metavar="N",
        help="retry failed columns and cards up to N rounds",
    )
    board_cmd.add_argument(
        "--dismiss-failed", action="store_true",
        help="clear the errors of cards that still failed",
    )

    post_cmd = sub.add_parser("post", help="generate a single post outline")
    post_cmd.add_argument("topic")
    post_cmd.add_argument("--audience")
    post_cmd.add_argument("--stream", action="store_true")
    return p


def main(argv: Optional[list[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    load_dotenv()
    logging.basicConfig(level=logging.WARNING)
    settings = Settings()

    if args.command == "board":
        return asyncio.run(run_board(
            settings, args.topic, args.audience, args.retry_failed, args.dismiss_failed
        ))
    try:
        return asyncio.run(run_post(settings, args.topic, args.audience, args.stream))
    except Exception as exc:
        logger.error("Post generation failed: %s", exc)
        print(f"Error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
