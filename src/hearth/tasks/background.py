# src/hearth/tasks/background.py

from __future__ import annotations

import asyncio
import logging

from ..core.ports import TaskRepo, UpstreamClient
from ..decoding.result_decoder import DEFAULT_PREVIEW_CHARS
from ..errors import TaskNotFound
from .channel import MessageChannel
from .execution import describe_failure, execute_request
from .messages import DispatchMessage, NavigationRequest, TaskFailureMessage, TaskResultMessage
from .task_models import TaskStatus

logger = logging.getLogger(__name__)


class BackgroundWorker:
    """
    Background-side actor.

    Reachable while `run()` is active. It owns no task state of its own: it
    marks tasks processing in the shared queue and reports outcomes as messages
    to the page side, which performs the terminal write.
    """

    def __init__(
        self,
        channel: MessageChannel,
        tasks: TaskRepo,
        upstream: UpstreamClient,
        *,
        name: str = "background",
        preview_chars: int = DEFAULT_PREVIEW_CHARS,
    ) -> None:
        self._channel = channel
        self._tasks = tasks
        self._upstream = upstream
        self._name = name
        self._preview_chars = int(preview_chars)
        self.handled = 0
        self._run_token: object | None = None

    async def handle(self, msg: DispatchMessage) -> None:
        try:
            self._tasks.update_status(msg.task_id, TaskStatus.PROCESSING)
        except TaskNotFound:
            logger.warning("Task %s vanished before processing; skipping", msg.task_id)
            return

        logger.info("Processing task %s kind=%s", msg.task_id, msg.kind)
        try:
            outcome = await asyncio.to_thread(
                execute_request,
                self._upstream,
                msg.kind,
                msg.request,
                preview_chars=self._preview_chars,
            )
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.info("Task %s failed: %s", msg.task_id, e)
            self._channel.post_to_page(
                TaskFailureMessage(
                    task_id=msg.task_id, owner_id=msg.owner_id, error_text=describe_failure(e)
                )
            )
        else:
            self._channel.post_to_page(
                TaskResultMessage(task_id=msg.task_id, owner_id=msg.owner_id, outcome=outcome)
            )
        finally:
            self.handled += 1

    def notification_clicked(self, owner_id: str, title: str = "") -> None:
        self._channel.post_to_page(NavigationRequest(owner_id=owner_id, title=title))

    def detach(self) -> None:
        self._run_token = None
        self._channel.detach()

    async def run(self) -> None:
        token = object()
        self._run_token = token
        self._channel.attach(self._name)
        try:
            while True:
                msg = await self._channel.receive_in_background()
                await self.handle(msg)
        finally:
            # a restarted run owns the attachment now
            if self._run_token is token:
                self.detach()
