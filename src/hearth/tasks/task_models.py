# src/hearth/tasks/task_models.py

from __future__ import annotations

import random
import string
import time
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any


class TaskStatus(StrEnum):
    """
    Task lifecycle status.

    pending -> processing -> completed | failed

    Tasks routed to the in-page fallback go straight from pending to a
    terminal status; "fallback-notified" is never stored.
    """

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (TaskStatus.COMPLETED, TaskStatus.FAILED)

    @classmethod
    def from_db(cls, raw: str | None) -> TaskStatus:
        if not raw:
            return cls.PENDING
        try:
            return cls(raw)
        except ValueError:
            return cls.PENDING


class TaskKind:
    PRIVATE_CHAT_REPLY = "private_chat_reply"
    MEMORY_EXTRACTION = "memory_extraction"


_ID_ALPHABET = string.ascii_lowercase + string.digits


def new_task_id(now: float | None = None) -> str:
    """
    Time component plus a random component.

    Not collision-checked: two creators in the same millisecond can, rarely,
    draw the same suffix.
    """
    ms = int((time.time() if now is None else now) * 1000)
    suffix = "".join(random.choices(_ID_ALPHABET, k=9))
    return f"task_{ms}_{suffix}"


@dataclass(slots=True)
class Task:
    id: str
    owner_id: str
    kind: str
    status: TaskStatus
    created_at: float
    updated_at: float
    payload: dict[str, Any] = field(default_factory=dict)

    result: dict[str, Any] | None = None
    error: str | None = None

    def to_record(self) -> dict[str, Any]:
        rec: dict[str, Any] = {
            "id": self.id,
            "owner_id": self.owner_id,
            "kind": self.kind,
            "status": self.status.value,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "payload": self.payload,
        }
        if self.result is not None:
            rec["result"] = self.result
        if self.error is not None:
            rec["error"] = self.error
        return rec

    @classmethod
    def from_record(cls, rec: dict[str, Any]) -> Task:
        payload = rec.get("payload")
        result = rec.get("result")
        return cls(
            id=str(rec["id"]),
            owner_id=str(rec.get("owner_id") or ""),
            kind=str(rec.get("kind") or "generic"),
            status=TaskStatus.from_db(rec.get("status")),
            created_at=float(rec.get("created_at") or 0.0),
            updated_at=float(rec.get("updated_at") or 0.0),
            payload=payload if isinstance(payload, dict) else {},
            result=result if isinstance(result, dict) else None,
            error=rec.get("error"),
        )
