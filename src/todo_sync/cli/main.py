# src/todo_sync/cli/main.py

"""
CLI entrypoint.

Sets up logging, wires AppState, signs in TODO_DEFAULT_USER when configured,
then hands stdin to the console connector. The session is always closed on
the way out so the change-feed subscription and timers do not leak.
"""

from __future__ import annotations

import asyncio
import logging

from ..cli.bootstrap import create_initial_state, sign_in, sign_out
from ..config import Settings, get_settings
from ..connectors.console_connector import run_console_loop
from ..core.errors import TodoSyncError
from ..logging_setup import setup_logging

logger = logging.getLogger(__name__)


async def _run(settings: Settings) -> None:
    state = create_initial_state(settings=settings)

    if settings.default_user:
        try:
            await sign_in(state, settings.default_user)
        except TodoSyncError as e:
            logger.warning("Could not sign in %s on start: %s", settings.default_user, e)

    try:
        if settings.console_enabled:
            await run_console_loop(state)
        else:
            logger.info("Console disabled (TODO_CONSOLE_ENABLED=0); exiting.")
    finally:
        await sign_out(state)


def main() -> None:
    settings = get_settings()
    console_level = logging.getLevelName(settings.log_level.upper())
    if not isinstance(console_level, int):
        console_level = logging.INFO

    log_file = setup_logging(log_dir=settings.data_dir, console_level=console_level)
    logger.info("Starting %s (log file: %s)", settings.app_name, log_file)

    try:
        asyncio.run(_run(settings))
    except KeyboardInterrupt:
        logger.info("Interrupted.")
    logger.info("Bye.")


if __name__ == "__main__":
    main()
