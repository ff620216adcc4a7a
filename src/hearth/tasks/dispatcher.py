# src/hearth/tasks/dispatcher.py

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import Any

from ..core.ports import TaskRepo
from ..errors import DispatchUnavailable, TaskNotFound
from ..llm.request import ChatRequest
from .channel import MessageChannel
from .messages import (
    DispatchMessage,
    DispatchOutcome,
    FallbackNotice,
    InboundMessage,
    NavigationRequest,
    TaskFailureMessage,
    TaskResultMessage,
)
from .task_models import Task

logger = logging.getLogger(__name__)

FallbackListener = Callable[[FallbackNotice], None]
NavigationListener = Callable[[NavigationRequest], None]


class Dispatcher:
    """
    Page-side router.

    Every dispatched task ends in exactly one of two places: one message to the
    background worker, or one fallback notice to in-page listeners. The choice
    is made once per task and never revisited. A task whose payload cannot be
    turned into a request is failed right away and goes to neither.
    """

    def __init__(self, channel: MessageChannel, tasks: TaskRepo, *, defaults: Any = None) -> None:
        self._channel = channel
        self._tasks = tasks
        self._defaults = defaults
        self._fallback_listeners: list[FallbackListener] = []
        self._navigation_listeners: list[NavigationListener] = []

    def on_fallback(self, callback: FallbackListener) -> None:
        self._fallback_listeners.append(callback)

    def on_navigation(self, callback: NavigationListener) -> None:
        self._navigation_listeners.append(callback)

    # ---- outbound ----

    def build_request(self, task: Task) -> ChatRequest:
        return ChatRequest.from_payload(task.payload, defaults=self._defaults)

    def dispatch(self, task: Task) -> DispatchOutcome:
        try:
            request = self.build_request(task)
        except (TypeError, ValueError) as e:
            # neither context could run it; record why instead of leaving it pending
            logger.warning("Task %s has an unusable payload: %s", task.id, e)
            self._tasks.fail_task(task.id, f"Invalid task payload: {e}")
            return DispatchOutcome.REJECTED

        if self._channel.is_reachable():
            try:
                self._channel.post_to_background(
                    DispatchMessage(
                        task_id=task.id, owner_id=task.owner_id, kind=task.kind, request=request
                    )
                )
            except DispatchUnavailable:
                logger.warning("Background went away while posting task %s", task.id)
            else:
                logger.debug("Task %s sent to background", task.id)
                return DispatchOutcome.SENT

        logger.info("Background unreachable; task %s goes to in-page fallback", task.id)
        notice = FallbackNotice(task=task, request=request)
        for cb in list(self._fallback_listeners):
            try:
                cb(notice)
            except Exception:
                logger.exception("Fallback listener failed task_id=%s", task.id)
        return DispatchOutcome.FALLBACK

    # ---- inbound ----

    def on_result_message(self, msg: InboundMessage) -> bool:
        """Apply one inbound message. Returns False when it was dropped."""
        if isinstance(msg, NavigationRequest):
            for cb in list(self._navigation_listeners):
                try:
                    cb(msg)
                except Exception:
                    logger.exception("Navigation listener failed owner=%s", msg.owner_id)
            return True

        try:
            if isinstance(msg, TaskResultMessage):
                self._tasks.complete_task(msg.task_id, msg.outcome)
            elif isinstance(msg, TaskFailureMessage):
                self._tasks.fail_task(msg.task_id, msg.error_text)
            else:
                logger.warning("Ignoring unknown inbound message %r", msg)
                return False
        except TaskNotFound:
            logger.warning("Dropping result for unknown task %s", msg.task_id)
            return False
        return True

    async def run(self) -> None:
        logger.info("Dispatcher listening for background messages")
        while True:
            msg = await self._channel.receive_on_page()
            try:
                self.on_result_message(msg)
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Failed to apply inbound message %r", msg)
