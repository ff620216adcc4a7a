# src/hearth/connectors/console_connector.py

from __future__ import annotations

import logging
from datetime import datetime

from ..cli.commands import registry as command_registry
from ..core.state import SessionContext
from ..errors import HearthError
from ..llm.client import friendly_upstream_error_message
from ..tasks.messages import NavigationRequest
from ..tasks.task_models import Task, TaskStatus
from .runtime import TaskRuntime

logger = logging.getLogger(__name__)


def _ts_local() -> str:
    return datetime.now().astimezone().strftime("%Y-%m-%d %H:%M:%S")


def _print_ts(text: str) -> None:
    print(f"[{_ts_local()}] {text}", flush=True)


def _announce_settled(task: Task) -> None:
    # runs on the runtime thread; print only
    if task.status is TaskStatus.COMPLETED:
        n = len((task.result or {}).get("messages", []) or (task.result or {}).get("memories", []))
        _print_ts(f"[TASK] {task.id} completed ({n} item(s)). Use /task {task.id}.")
    else:
        _print_ts(f"[TASK] {task.id} failed: {friendly_upstream_error_message(Exception(task.error or ''))}")


def _announce_navigation(req: NavigationRequest) -> None:
    _print_ts(f"[NAV] open conversation {req.owner_id} {req.title}".rstrip())


def run_console_loop(session: SessionContext, runtime: TaskRuntime | None = None) -> None:
    logger.info("Console connector started (runtime=%s).", runtime is not None)
    _print_ts("[CONSOLE] Type /help for commands. Use /exit to quit.\n")

    session.tasks.on_settled(_announce_settled)
    session.dispatcher.on_navigation(_announce_navigation)

    def emit(text: str) -> None:
        # Immediate user-visible feedback for long operations (export/import)
        _print_ts(text)

    while True:
        try:
            user_input = input(">>> ").strip()
        except EOFError:
            logger.info("Console EOF received, exiting.")
            break
        except KeyboardInterrupt:
            logger.info("Console KeyboardInterrupt, exiting.")
            print()
            break

        if not user_input:
            continue

        if user_input.lower() in ("/exit", "/quit"):
            logger.info("Console exit command received.")
            break

        if not user_input.startswith("/"):
            _print_ts("Commands start with '/'. Try /ask <owner> <text> or /help.")
            continue

        try:
            cmd_response = command_registry.handle(session, user_input, runtime=runtime, emit=emit)
        except HearthError as e:
            logger.info("Command failed: %s", e)
            cmd_response = friendly_upstream_error_message(e)
        except Exception:
            logger.exception("Command handler crashed.")
            cmd_response = "Internal error while handling a command."

        if cmd_response is not None:
            _print_ts(cmd_response)

    logger.info("Console connector finished.")
