# src/hearth/tasks/task_queue.py

from __future__ import annotations

import logging
import time
from typing import Any

from ..core.ports import SettledListener, TaskDispatcher
from ..errors import TaskNotFound
from ..storage.kv_store import KeyValueStore
from ..storage.schema import Partition
from .task_models import Task, TaskStatus, new_task_id

logger = logging.getLogger(__name__)

DEFAULT_RETENTION_SECONDS = 24 * 60 * 60


class TaskQueue:
    """
    Persistent task records in the `aiTasks` partition of the record store.

    The queue is shared by both executing contexts: the background worker and
    the in-page fallback write to the same records. It does not decide where a
    task runs; that is the attached dispatcher's job.
    """

    def __init__(
        self,
        store: KeyValueStore,
        dispatcher: TaskDispatcher | None = None,
        *,
        partition: str = Partition.AI_TASKS,
    ) -> None:
        self._store = store
        self._partition = partition
        self.dispatcher = dispatcher
        self._listeners: list[SettledListener] = []
        self._last_created = 0.0

    # ---- listeners ----

    def on_settled(self, callback: SettledListener) -> None:
        self._listeners.append(callback)

    def _notify_settled(self, task: Task) -> None:
        for cb in list(self._listeners):
            try:
                cb(task)
            except Exception:
                logger.exception("Settled listener failed task_id=%s", task.id)

    # ---- low-level helpers ----

    def _load(self, task_id: str) -> Task | None:
        rec = self._store.get(self._partition, task_id)
        if not isinstance(rec, dict):
            return None
        try:
            return Task.from_record(rec)
        except (KeyError, TypeError, ValueError):
            logger.warning("Skipping malformed task record %s", task_id)
            return None

    def _require(self, task_id: str) -> Task:
        task = self._load(task_id)
        if task is None:
            raise TaskNotFound(task_id)
        return task

    def _save(self, task: Task) -> None:
        self._store.set(self._partition, task.id, task.to_record())

    def _all(self) -> list[Task]:
        out: list[Task] = []
        for key, rec in self._store.get_all(self._partition).items():
            if not isinstance(rec, dict):
                continue
            try:
                out.append(Task.from_record(rec))
            except (KeyError, TypeError, ValueError):
                logger.warning("Skipping malformed task record %s", key)
        out.sort(key=lambda t: (t.created_at, t.id))
        return out

    # ---- creation ----

    def create_task(self, owner_id: str, kind: str, payload: dict[str, Any] | None = None) -> str:
        """
        Persist a pending task, then hand it to the dispatcher.

        The record is readable as soon as this returns, before any outcome of the
        dispatch is known.
        """
        if not owner_id:
            raise ValueError("owner_id must be non-empty")
        if not kind:
            raise ValueError("kind must be non-empty")

        # strictly increasing so creation order survives equal clock readings
        now = max(time.time(), self._last_created + 1e-6)
        self._last_created = now
        task = Task(
            id=new_task_id(now),
            owner_id=str(owner_id),
            kind=str(kind),
            status=TaskStatus.PENDING,
            created_at=now,
            updated_at=now,
            payload=dict(payload or {}),
        )
        self._save(task)
        logger.info("Task created id=%s owner=%s kind=%s", task.id, task.owner_id, task.kind)

        if self.dispatcher is not None:
            try:
                self.dispatcher.dispatch(task)
            except Exception:
                # the task stays pending; nothing retries it
                logger.exception("Dispatch failed task_id=%s", task.id)
        else:
            logger.warning("No dispatcher attached; task %s stays pending", task.id)

        return task.id

    # ---- reads ----

    def get_task(self, task_id: str) -> Task | None:
        return self._load(task_id)

    def get_tasks_by_owner(self, owner_id: str) -> list[Task]:
        return [t for t in self._all() if t.owner_id == owner_id]

    def get_pending_tasks(self) -> list[Task]:
        return [t for t in self._all() if t.status is TaskStatus.PENDING]

    def list_tasks(self) -> list[Task]:
        return self._all()

    # ---- transitions ----

    def update_status(self, task_id: str, status: TaskStatus, error: str | None = None) -> Task:
        status = TaskStatus(status)
        if status is TaskStatus.COMPLETED:
            raise ValueError("use complete_task() to complete a task")
        if status is TaskStatus.FAILED:
            if not error:
                raise ValueError("failing a task requires an error text")
            return self.fail_task(task_id, error)

        task = self._require(task_id)
        task.status = status
        task.updated_at = time.time()
        task.result = None
        task.error = None
        self._save(task)
        logger.debug("Task %s -> %s", task_id, status.value)
        return task

    def complete_task(self, task_id: str, result: dict[str, Any]) -> Task:
        task = self._require(task_id)
        if task.status.is_terminal:
            logger.warning(
                "Task %s already %s; overwriting with completion", task_id, task.status.value
            )
        task.status = TaskStatus.COMPLETED
        task.updated_at = time.time()
        task.result = dict(result)
        task.error = None
        self._save(task)
        logger.info("Task completed id=%s", task_id)
        self._notify_settled(task)
        return task

    def fail_task(self, task_id: str, error: str) -> Task:
        task = self._require(task_id)
        if task.status.is_terminal:
            logger.warning(
                "Task %s already %s; overwriting with failure", task_id, task.status.value
            )
        task.status = TaskStatus.FAILED
        task.updated_at = time.time()
        task.result = None
        task.error = str(error) or "unknown error"
        self._save(task)
        logger.info("Task failed id=%s error=%s", task_id, task.error)
        self._notify_settled(task)
        return task

    # ---- housekeeping ----

    def delete_task(self, task_id: str) -> bool:
        if self._load(task_id) is None:
            return False
        self._store.delete(self._partition, task_id)
        return True

    def cleanup(self, max_age_seconds: float = DEFAULT_RETENTION_SECONDS, now: float | None = None) -> int:
        """Delete settled tasks last updated more than max_age_seconds ago."""
        cutoff = (time.time() if now is None else now) - float(max_age_seconds)
        doomed = [t for t in self._all() if t.status.is_terminal and t.updated_at < cutoff]
        for task in doomed:
            self._store.delete(self._partition, task.id)
        if doomed:
            logger.info("Cleaned up %d settled tasks", len(doomed))
        return len(doomed)
