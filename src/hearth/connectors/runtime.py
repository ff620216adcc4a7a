# src/hearth/connectors/runtime.py

from __future__ import annotations

import asyncio
import contextlib
import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, TypeVar

from ..core.state import SessionContext
from ..tasks.background import BackgroundWorker
from ..tasks.fallback import FallbackExecutor

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def _call(fn: Callable[..., T], args: tuple[Any, ...], kwargs: dict[str, Any]) -> T:
    return fn(*args, **kwargs)


@dataclass
class TaskRuntime:
    """
    Event loop thread hosting the dispatcher, the background worker and the fallback.

    The console REPL is blocking (input()), so the actors live on their own loop.
    Anything that touches the channel queues must run on that loop: use call().
    """

    thread: threading.Thread
    loop: asyncio.AbstractEventLoop
    stop_event: asyncio.Event
    worker: BackgroundWorker
    fallback: FallbackExecutor
    _worker_task: asyncio.Task[None] | None = field(default=None, repr=False)

    def call(self, fn: Callable[..., T], *args: Any, timeout: float | None = 30.0, **kwargs: Any) -> T:
        """Run a plain callable on the loop thread and wait for its result."""
        fut = asyncio.run_coroutine_threadsafe(_call(fn, args, kwargs), self.loop)
        return fut.result(timeout=timeout)

    @property
    def worker_running(self) -> bool:
        return self._worker_task is not None and not self._worker_task.done()

    def _start_worker(self) -> bool:
        if self.worker_running:
            return False
        self._worker_task = self.loop.create_task(self.worker.run(), name="background-worker")
        return True

    def _stop_worker(self) -> bool:
        if not self.worker_running:
            return False
        assert self._worker_task is not None
        # unreachable from now on, before the cancellation lands
        self.worker.detach()
        self._worker_task.cancel()
        self._worker_task = None
        return True

    def set_worker(self, enabled: bool) -> bool:
        """Attach or detach the background worker. Returns False if nothing changed."""
        return self.call(self._start_worker if enabled else self._stop_worker)

    def drain(self, timeout: float | None = 60.0) -> None:
        fut = asyncio.run_coroutine_threadsafe(self.fallback.drain(), self.loop)
        fut.result(timeout=timeout)

    def stop(self) -> None:
        try:
            self.loop.call_soon_threadsafe(self.stop_event.set)
        except RuntimeError:
            logger.debug("Failed to signal runtime stop.", exc_info=True)

    def join(self, timeout: float | None = None) -> None:
        self.thread.join(timeout=timeout)


async def _serve(session: SessionContext, runtime_holder: dict[str, Any], stop_event: asyncio.Event) -> None:
    dispatcher_task = asyncio.create_task(session.dispatcher.run(), name="dispatcher")
    try:
        await stop_event.wait()
    finally:
        runtime = runtime_holder.get("runtime")
        if isinstance(runtime, TaskRuntime):
            runtime._stop_worker()
            with contextlib.suppress(asyncio.CancelledError, asyncio.TimeoutError):
                await asyncio.wait_for(runtime.fallback.drain(), timeout=10.0)

        dispatcher_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await dispatcher_task
        logger.info("Task runtime stopped.")


def start_runtime(session: SessionContext, *, background: bool = True) -> TaskRuntime | None:
    """Start the actors in a background thread so the console REPL can run in parallel."""
    settings = session.settings
    preview = int(getattr(settings, "decoder_preview_chars", 500))

    worker = BackgroundWorker(
        session.channel, session.tasks, session.upstream, preview_chars=preview
    )
    fallback = FallbackExecutor(session.tasks, session.upstream, preview_chars=preview)
    fallback.attach(session.dispatcher)

    ready = threading.Event()
    holder: dict[str, Any] = {}

    def runner() -> None:
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        stop_event = asyncio.Event()

        holder["loop"] = loop
        holder["stop_event"] = stop_event
        ready.set()

        try:
            loop.run_until_complete(_serve(session, holder, stop_event))
        finally:
            with contextlib.suppress(RuntimeError):
                loop.run_until_complete(loop.shutdown_default_executor())
            loop.close()

    t = threading.Thread(target=runner, name="hearth-runtime", daemon=True)
    t.start()

    ready.wait(timeout=5.0)
    loop = holder.get("loop")
    stop_event = holder.get("stop_event")

    if not isinstance(loop, asyncio.AbstractEventLoop) or not isinstance(stop_event, asyncio.Event):
        logger.error("Runtime thread did not initialize properly.")
        return None

    runtime = TaskRuntime(
        thread=t, loop=loop, stop_event=stop_event, worker=worker, fallback=fallback
    )
    holder["runtime"] = runtime

    if background:
        runtime.set_worker(True)

    logger.info("Task runtime started (background=%s).", background)
    return runtime
