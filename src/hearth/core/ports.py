# src/hearth/core/ports.py

from __future__ import annotations

"""
Ports (interfaces) used by the core.

The task layer depends on Protocols instead of concrete implementations.
This keeps the upstream provider and the dispatch transport swappable and makes
testing easier.
"""

from collections.abc import Callable
from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    from ..llm.request import ChatRequest
    from ..tasks.task_models import Task, TaskStatus

ChatMessage = dict[str, Any]
# OpenAI-style chat messages: {"role": "...", "content": "..."}; content may be a
# list of parts for vision requests.


class UpstreamClient(Protocol):
    """Non-streaming chat completion client (OpenAI-compatible)."""

    def complete(self, request: ChatRequest) -> str: ...

    def describe_image(self, request: ChatRequest) -> str: ...


class TaskDispatcher(Protocol):
    def dispatch(self, task: Task) -> Any: ...


class TaskRepo(Protocol):
    # Read API
    def get_task(self, task_id: str) -> Task | None: ...
    def get_tasks_by_owner(self, owner_id: str) -> list[Task]: ...

    # Transitions
    def update_status(self, task_id: str, status: TaskStatus, error: str | None = None) -> Task: ...
    def complete_task(self, task_id: str, result: dict[str, Any]) -> Task: ...
    def fail_task(self, task_id: str, error: str) -> Task: ...


SettledListener = Callable[["Task"], None]
