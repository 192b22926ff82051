# src/todo_sync/connectors/console_connector.py

from __future__ import annotations

import asyncio
import logging
from datetime import datetime

from ..cli.commands import registry as command_registry
from ..core.state import AppState

logger = logging.getLogger(__name__)

EXIT_COMMANDS = frozenset({"/exit", "/quit", "/q"})


def _stamp(text: str) -> None:
    now = datetime.now().astimezone().strftime("%H:%M:%S")
    for line in text.splitlines() or [""]:
        print(f"[{now}] {line}", flush=True)


def _prompt(state: AppState) -> str:
    user = state.session.user_id if state.session is not None else None
    return f"{user or 'signed-out'}> "


def _as_command(line: str) -> str:
    # Bare text is a new task title.
    return line if line.startswith("/") else f"/add {line}"


async def run_console_loop(state: AppState) -> None:
    """
    Read commands from stdin without blocking the event loop.

    input() runs on a worker thread so change-feed events and debounce timers
    keep being processed while the prompt is waiting.
    """
    logger.info("Console connector started.")
    _stamp("Type a task title to add it, /help for commands, /exit to quit.")

    while True:
        try:
            raw = await asyncio.to_thread(input, _prompt(state))
        except (EOFError, KeyboardInterrupt):
            logger.info("Console input closed.")
            print()
            break

        line = raw.strip()
        if not line:
            continue
        if line.lower() in EXIT_COMMANDS:
            break

        try:
            reply = await command_registry.handle(state, _as_command(line), emit=_stamp)
        except Exception:
            logger.exception("Command crashed: %r", line)
            reply = "Internal error while handling a command."

        if reply:
            _stamp(reply)

    logger.info("Console connector finished.")
