# src/hearth/tasks/fallback.py

from __future__ import annotations

import asyncio
import logging

from ..core.ports import TaskRepo, UpstreamClient
from ..decoding.result_decoder import DEFAULT_PREVIEW_CHARS
from ..errors import TaskNotFound
from .dispatcher import Dispatcher
from .execution import describe_failure, execute_request
from .messages import FallbackNotice

logger = logging.getLogger(__name__)


class FallbackExecutor:
    """
    Runs tasks in-page when the background worker is unreachable.

    Same pipeline as the worker; the terminal write happens here directly.
    Notices must arrive on the event loop thread (dispatch is called there).
    """

    def __init__(
        self,
        tasks: TaskRepo,
        upstream: UpstreamClient,
        *,
        preview_chars: int = DEFAULT_PREVIEW_CHARS,
    ) -> None:
        self._tasks = tasks
        self._upstream = upstream
        self._preview_chars = int(preview_chars)
        self._inflight: set[asyncio.Task[None]] = set()

    def attach(self, dispatcher: Dispatcher) -> None:
        dispatcher.on_fallback(self.on_fallback)

    def on_fallback(self, notice: FallbackNotice) -> None:
        loop = asyncio.get_running_loop()
        t = loop.create_task(self.run(notice), name=f"fallback-{notice.task.id}")
        self._inflight.add(t)
        t.add_done_callback(self._inflight.discard)

    async def run(self, notice: FallbackNotice) -> None:
        task = notice.task
        logger.info("Fallback executing task %s kind=%s", task.id, task.kind)
        try:
            outcome = await asyncio.to_thread(
                execute_request,
                self._upstream,
                task.kind,
                notice.request,
                preview_chars=self._preview_chars,
            )
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.info("Fallback task %s failed: %s", task.id, e)
            try:
                self._tasks.fail_task(task.id, describe_failure(e))
            except TaskNotFound:
                logger.warning("Fallback task %s was removed before failing", task.id)
            return

        try:
            self._tasks.complete_task(task.id, outcome)
        except TaskNotFound:
            logger.warning("Fallback task %s was removed before completing", task.id)

    @property
    def inflight(self) -> int:
        return len(self._inflight)

    async def drain(self) -> None:
        while self._inflight:
            await asyncio.gather(*list(self._inflight), return_exceptions=True)
