# src/hearth/cli/commands.py

from __future__ import annotations

import base64
import binascii
import contextlib
import inspect
import json
import logging
from collections.abc import Callable
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any, cast

from ..core.state import SessionContext
from ..errors import StorageError
from ..storage.legacy import MIGRATION_MARKER_KEY, migrate_flat_mapping
from ..storage.schema import Partition
from ..tasks.task_api import create_chat_reply_task
from ..tasks.task_models import Task, TaskStatus

if TYPE_CHECKING:
    from ..connectors.runtime import TaskRuntime

CommandEmitter = Callable[[str], None]
# the third argument is the TaskRuntime (or None when no runtime is running)
CommandHandler3 = Callable[[SessionContext, list[str], Any], str]
CommandHandler4 = Callable[[SessionContext, list[str], Any, CommandEmitter | None], str]
CommandHandler = CommandHandler3 | CommandHandler4

logger = logging.getLogger(__name__)

EXPORT_FORMAT_VERSION = 1


class CommandRegistry:
    """Simple slash-command registry used by the console (/help, /tasks, ...)."""

    def __init__(self) -> None:
        self._handlers: dict[str, CommandHandler] = {}
        self._help: dict[str, str] = {}

    def register(
        self,
        name: str,
        handler: CommandHandler,
        help_text: str,
        aliases: list[str] | None = None,
    ) -> None:
        aliases = aliases or []
        key = name.lower()
        self._handlers[key] = handler
        self._help[key] = help_text
        for alias in aliases:
            self._handlers[alias.lower()] = handler

    def handle(
        self,
        session: SessionContext,
        line: str,
        runtime: TaskRuntime | None = None,
        emit: CommandEmitter | None = None,
    ) -> str | None:
        """
        Handle a string like "/command args".
        Returns a reply string or None if not a command.
        """
        if not line.startswith("/"):
            return None

        parts = line[1:].split()
        if not parts:
            return "Empty command. Use /help to list available commands."

        name = parts[0].lower()
        args = parts[1:]

        handler = self._handlers.get(name)
        if not handler:
            return f"Unknown command: /{name}. Use /help to list available commands."

        try:
            nparams = len(inspect.signature(handler).parameters)
        except (TypeError, ValueError):
            nparams = 4

        if nparams >= 4:
            h4 = cast(CommandHandler4, handler)
            return h4(session, args, runtime, emit)

        h3 = cast(CommandHandler3, handler)
        return h3(session, args, runtime)

    def build_help(self) -> str:
        lines = ["Available commands:"]
        for name, help_text in self._help.items():
            lines.append(f"  /{name} - {help_text}")
        return "\n".join(lines)


registry = CommandRegistry()


def _ts(epoch: float) -> str:
    return datetime.fromtimestamp(epoch).astimezone().strftime("%Y-%m-%d %H:%M:%S")


def _on_loop(runtime: TaskRuntime | None, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
    # channel queues belong to the runtime loop; without one, call inline
    if runtime is None:
        return fn(*args, **kwargs)
    return runtime.call(fn, *args, **kwargs)


def _task_line(t: Task) -> str:
    line = f"{t.id}  {t.status.value:<10}  {t.kind:<20}  owner={t.owner_id}  {_ts(t.created_at)}"
    if t.status is TaskStatus.FAILED and t.error:
        line += f"  error={t.error}"
    return line


def cmd_help(session: SessionContext, args: list[str], runtime: TaskRuntime | None) -> str:
    return registry.build_help()


def cmd_status(session: SessionContext, args: list[str], runtime: TaskRuntime | None) -> str:
    settings = session.settings
    all_tasks = session.tasks.list_tasks()
    by_status: dict[str, int] = {s.value: 0 for s in TaskStatus}
    for t in all_tasks:
        by_status[t.status.value] += 1
    worker = "ON" if runtime is not None and runtime.worker_running else "OFF"
    counts = ", ".join(f"{k}={v}" for k, v in by_status.items())
    return (
        "Status:\n"
        f"  Upstream: {type(session.upstream).__name__} model={getattr(settings, 'upstream_model', '?')}\n"
        f"  Background worker: {worker}\n"
        f"  Tasks: {len(all_tasks)} ({counts})\n"
        f"  Live blob handles: {len(session.handles)}"
    )


def cmd_ask(session: SessionContext, args: list[str], runtime: TaskRuntime | None) -> str:
    """
    /ask <owner> <text>  -> queue a chat reply task for <owner>
    """
    if len(args) < 2:
        return "Usage: /ask <owner> <text>"

    owner_id, text = args[0], " ".join(args[1:])
    system_prompt = (
        f"You are {owner_id}, chatting privately with the user. Reply with one JSON object: "
        '{"messages": [{"content": "..."}]}.'
    )
    task_id = _on_loop(
        runtime,
        create_chat_reply_task,
        session.tasks,
        owner_id=owner_id,
        character_name=owner_id,
        system_prompt=system_prompt,
        user_prompt=text,
    )
    return f"Queued task {task_id}. Check it with /task {task_id}."


def cmd_tasks(session: SessionContext, args: list[str], runtime: TaskRuntime | None) -> str:
    """
    /tasks          -> all tasks
    /tasks <owner>  -> tasks of one owner
    """
    if args:
        tasks = session.tasks.get_tasks_by_owner(args[0])
        header = f"Tasks of {args[0]}:"
    else:
        tasks = session.tasks.list_tasks()
        header = "Tasks:"
    if not tasks:
        return "No tasks."
    return "\n".join([header, *(f"  {_task_line(t)}" for t in tasks)])


def cmd_task(session: SessionContext, args: list[str], runtime: TaskRuntime | None) -> str:
    if not args:
        return "Usage: /task <id>"
    task = session.tasks.get_task(args[0])
    if task is None:
        return f"No task with id {args[0]}."

    lines = [
        f"Task {task.id}",
        f"  owner: {task.owner_id}",
        f"  kind: {task.kind}",
        f"  status: {task.status.value}",
        f"  created: {_ts(task.created_at)}",
        f"  updated: {_ts(task.updated_at)}",
    ]
    if task.error:
        lines.append(f"  error: {task.error}")
    if task.result:
        for msg in task.result.get("messages", []) or []:
            lines.append(f"  <<< {msg.get('sender_name') or '?'}: {msg.get('text', '')}")
        for mem in task.result.get("memories", []) or []:
            lines.append(f"  [{mem.get('type')}] {mem.get('content')}")
    return "\n".join(lines)


def cmd_cleanup(session: SessionContext, args: list[str], runtime: TaskRuntime | None) -> str:
    """
    /cleanup          -> drop settled tasks older than the retention window
    /cleanup <hours>  -> custom window
    """
    max_age = float(getattr(session.settings, "task_retention_seconds", 24 * 3600))
    if args:
        try:
            max_age = float(args[0]) * 3600
        except ValueError:
            return "Usage: /cleanup [hours]"
    removed = session.tasks.cleanup(max_age_seconds=max_age)
    return f"Removed {removed} settled task(s)."


def cmd_blobs(session: SessionContext, args: list[str], runtime: TaskRuntime | None) -> str:
    stats = session.blobs.category_stats()
    lines = ["Blob storage by category:"]
    total = 0
    for category, st in stats.items():
        total += st.count
        lines.append(f"  {category:<14} {st.count:>5} items  {st.size_kb:>10} KB")
    lines.append(f"  total: {total}")
    return "\n".join(lines)


def cmd_gc(session: SessionContext, args: list[str], runtime: TaskRuntime | None) -> str:
    """
    /gc <key> [key...] -> delete every blob except the listed keys
    """
    if not args:
        return "Usage: /gc <live key> [live key...] (everything else is deleted)"
    removed = session.blobs.garbage_collect(args)
    return f"Deleted {removed} unused blob(s)."


def cmd_export(
    session: SessionContext,
    args: list[str],
    runtime: TaskRuntime | None,
    emit: CommandEmitter | None = None,
) -> str:
    if not args:
        return "Usage: /export <path>"
    path = Path(args[0]).expanduser()

    if emit:
        with contextlib.suppress(Exception):
            emit(f"[EXPORT] Writing snapshot to {path}...")

    blobs = {
        key: {"category": category, "data": base64.b64encode(data).decode("ascii")}
        for key, (data, category) in session.blobs.export_all().items()
    }
    snapshot = {
        "version": EXPORT_FORMAT_VERSION,
        "store": session.store.export_all(),
        "blobs": blobs,
    }
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(snapshot, ensure_ascii=False), "utf-8")
    return f"Exported {sum(len(v) for v in snapshot['store'].values())} records and {len(blobs)} blobs to {path}."


def cmd_import(
    session: SessionContext,
    args: list[str],
    runtime: TaskRuntime | None,
    emit: CommandEmitter | None = None,
) -> str:
    if not args:
        return "Usage: /import <path>"
    path = Path(args[0]).expanduser()
    try:
        snapshot = json.loads(path.read_text("utf-8"))
    except FileNotFoundError:
        return f"No such file: {path}"
    except json.JSONDecodeError as e:
        return f"Not a snapshot file ({e})."

    if not isinstance(snapshot, dict):
        return "Not a snapshot file."

    if emit:
        with contextlib.suppress(Exception):
            emit(f"[IMPORT] Replacing data from {path}...")

    try:
        records = session.store.import_all(snapshot.get("store") or {})
    except StorageError as e:
        logger.exception("Import failed")
        return f"Import failed: {e}"

    blobs: dict[str, tuple[bytes, str]] = {}
    for key, entry in (snapshot.get("blobs") or {}).items():
        if not isinstance(entry, dict):
            continue
        try:
            blobs[key] = (base64.b64decode(entry.get("data") or ""), str(entry.get("category") or ""))
        except (binascii.Error, ValueError):
            logger.warning("Import: skipping undecodable blob %s", key)
    n_blobs = session.blobs.import_all(blobs)

    session.invalidate(clear_all=True)
    return f"Imported {records} records and {n_blobs} blobs."


def cmd_migrate(session: SessionContext, args: list[str], runtime: TaskRuntime | None) -> str:
    """
    /migrate <path> -> one-shot import of a flat legacy key/value JSON dump
    """
    if not args:
        return "Usage: /migrate <path>"
    path = Path(args[0]).expanduser()
    try:
        mapping = json.loads(path.read_text("utf-8"))
    except FileNotFoundError:
        return f"No such file: {path}"
    except json.JSONDecodeError as e:
        return f"Not a JSON file ({e})."
    if not isinstance(mapping, dict):
        return "Legacy dump must be a JSON object of key -> value."

    if session.store.get(Partition.MISC, MIGRATION_MARKER_KEY):
        return "Legacy data was already migrated."
    n = migrate_flat_mapping(session.store, mapping)
    session.invalidate()
    return f"Migrated {n} legacy key(s)."


def cmd_worker(session: SessionContext, args: list[str], runtime: TaskRuntime | None) -> str:
    """
    /worker      -> show status
    /worker on   -> attach the background worker
    /worker off  -> detach it (new tasks go to the in-page fallback)
    """
    if runtime is None:
        return "No task runtime is running."
    if not args:
        return f"Background worker is {'ON' if runtime.worker_running else 'OFF'}. Use /worker on or /worker off."

    arg = args[0].lower()
    if arg in ("on", "1", "true", "yes"):
        return "Background worker attached." if runtime.set_worker(True) else "Background worker is already ON."
    if arg in ("off", "0", "false", "no"):
        return "Background worker detached." if runtime.set_worker(False) else "Background worker is already OFF."
    return "Usage: /worker on or /worker off."


def cmd_diag(session: SessionContext, args: list[str], runtime: TaskRuntime | None) -> str:
    d = session.store.diagnose()
    lines = [
        "Diagnostics:",
        f"  store: {d['store']} v{d['version']} at {d['path']}",
        f"  partitions: {len(d['available'])} available, missing: {', '.join(d['missing']) or 'none'}",
        f"  read/write check: {'ok' if d['read_write_ok'] else 'FAILED'}",
    ]
    for partition in session.store.partitions:
        lines.append(f"    {partition:<14} {len(session.store.list_keys(partition)):>5} keys  {session.store.partition_size(partition)} bytes")
    pending = session.tasks.get_pending_tasks()
    lines.append(f"  pending tasks: {len(pending)}")
    lines.append(f"  channel backlog: to-background={session.channel.pending_for_background()} "
                 f"to-page={session.channel.pending_for_page()}")
    return "\n".join(lines)


registry.register("help", cmd_help, help_text="Show available commands.", aliases=["h", "?"])
registry.register("status", cmd_status, help_text="Show upstream, worker and task counts.")
registry.register("ask", cmd_ask, help_text="Queue a chat reply: /ask <owner> <text>.")
registry.register("tasks", cmd_tasks, help_text="List tasks: /tasks [owner].")
registry.register("task", cmd_task, help_text="Show one task: /task <id>.")
registry.register("cleanup", cmd_cleanup, help_text="Drop old settled tasks: /cleanup [hours].")
registry.register("blobs", cmd_blobs, help_text="Blob storage usage by category.")
registry.register("gc", cmd_gc, help_text="Delete blobs not listed: /gc <key>...")
registry.register("export", cmd_export, help_text="Write a full snapshot: /export <path>.")
registry.register("import", cmd_import, help_text="Replace data from a snapshot: /import <path>.")
registry.register("migrate", cmd_migrate, help_text="Import a legacy key/value dump once: /migrate <path>.")
registry.register("worker", cmd_worker, help_text="Background worker: /worker on | /worker off.")
registry.register("diag", cmd_diag, help_text="Storage and queue diagnostics.")
