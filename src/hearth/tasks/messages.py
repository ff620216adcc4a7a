# src/hearth/tasks/messages.py

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from ..llm.request import ChatRequest
from .task_models import Task


class DispatchOutcome(StrEnum):
    SENT = "sent"
    FALLBACK = "fallback"
    REJECTED = "rejected"


# ---- page -> background ----


@dataclass(frozen=True, slots=True)
class DispatchMessage:
    task_id: str
    owner_id: str
    kind: str
    request: ChatRequest


# ---- background -> page ----


@dataclass(frozen=True, slots=True)
class TaskResultMessage:
    task_id: str
    owner_id: str
    outcome: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class TaskFailureMessage:
    task_id: str
    owner_id: str
    error_text: str


@dataclass(frozen=True, slots=True)
class NavigationRequest:
    """A tapped notification asking the page to open an owner's conversation."""

    owner_id: str
    title: str = ""


InboundMessage = TaskResultMessage | TaskFailureMessage | NavigationRequest


# ---- in-process ----


@dataclass(frozen=True, slots=True)
class FallbackNotice:
    task: Task
    request: ChatRequest
