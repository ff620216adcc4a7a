# src/hearth/cli/main.py

"""
CLI entrypoint.

Initializes logging, builds the SessionContext, then starts:
- the task runtime (dispatcher, background worker, fallback) in a background thread,
- the console REPL in the main thread.
"""

from __future__ import annotations

import logging

from ..cli.bootstrap import create_session
from ..config import get_settings
from ..connectors.console_connector import run_console_loop
from ..connectors.runtime import start_runtime
from ..logging_setup import setup_logging

logger = logging.getLogger(__name__)


def _shutdown(session, runtime) -> None:
    """Best-effort shutdown: every step runs even if an earlier one failed."""
    if runtime is not None:
        try:
            runtime.stop()
            runtime.join(timeout=15.0)
        except Exception:
            logger.exception("Failed to stop task runtime.")

    try:
        session.close()
    except Exception:
        logger.exception("Failed to close session.")


def main() -> None:
    settings = get_settings()

    setup_logging(log_dir=settings.data_dir, console_level=settings.log_level)

    logger.info("Starting %s...", settings.app_name)

    # IMPORTANT: reuse same settings object
    session = create_session(settings=settings)

    runtime = start_runtime(session, background=settings.background_enabled)
    if runtime is None:
        logger.warning("Task runtime unavailable; tasks will stay pending.")

    try:
        run_console_loop(session, runtime)
    finally:
        _shutdown(session, runtime)
        logger.info("Bye.")


if __name__ == "__main__":
    main()
