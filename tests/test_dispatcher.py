# tests/test_dispatcher.py

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import Callable
from types import SimpleNamespace

import pytest

from hearth.errors import UpstreamAPIError
from hearth.llm.request import ChatRequest
from hearth.storage.kv_store import KeyValueStore
from hearth.tasks.background import BackgroundWorker
from hearth.tasks.channel import MessageChannel
from hearth.tasks.dispatcher import Dispatcher
from hearth.tasks.fallback import FallbackExecutor
from hearth.tasks.messages import (
    DispatchMessage,
    DispatchOutcome,
    TaskFailureMessage,
    TaskResultMessage,
)
from hearth.tasks.task_models import TaskKind, TaskStatus
from hearth.tasks.task_queue import TaskQueue

from .fakes import FakeUpstream, Recorder, fallback_tasks, navigations, reply_json

CHAT_PAYLOAD = {"system_prompt": "be nice", "user_prompt": "hi", "character_name": "Mika"}


def _wire(store: KeyValueStore, settings: SimpleNamespace) -> tuple[MessageChannel, TaskQueue, Dispatcher]:
    channel = MessageChannel()
    tasks = TaskQueue(store)
    dispatcher = Dispatcher(channel, tasks, defaults=settings)
    tasks.dispatcher = dispatcher
    return channel, tasks, dispatcher


async def _until(pred: Callable[[], bool], timeout: float = 5.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not pred():
        if loop.time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.01)


async def _cancel(*tasks: asyncio.Task[None]) -> None:
    for t in tasks:
        t.cancel()
    for t in tasks:
        with contextlib.suppress(asyncio.CancelledError):
            await t


def _settled(tasks: TaskQueue, task_id: str) -> Callable[[], bool]:
    def check() -> bool:
        task = tasks.get_task(task_id)
        return task is not None and task.status.is_terminal

    return check


@pytest.mark.asyncio
async def test_reachable_background_gets_exactly_one_message(store, settings) -> None:
    channel, tasks, dispatcher = _wire(store, settings)
    rec = Recorder()
    dispatcher.on_fallback(rec)
    channel.attach("bg")

    tid = tasks.create_task("alice", TaskKind.PRIVATE_CHAT_REPLY, CHAT_PAYLOAD)

    assert channel.pending_for_background() == 1
    assert fallback_tasks(rec) == []

    msg = await channel.receive_in_background()
    assert isinstance(msg, DispatchMessage)
    assert msg.task_id == tid
    assert msg.request.model == "test-model"
    assert msg.request.sender_name == "Mika"


@pytest.mark.asyncio
async def test_unreachable_background_falls_back_once(store, settings) -> None:
    channel, tasks, dispatcher = _wire(store, settings)
    rec = Recorder()
    dispatcher.on_fallback(rec)

    tid = tasks.create_task("alice", TaskKind.PRIVATE_CHAT_REPLY, CHAT_PAYLOAD)

    assert channel.pending_for_background() == 0
    assert fallback_tasks(rec) == [tid]
    assert tasks.get_task(tid).status is TaskStatus.PENDING


@pytest.mark.asyncio
async def test_dispatch_reports_outcome(store, settings) -> None:
    channel, tasks, dispatcher = _wire(store, settings)
    tasks.dispatcher = None
    tid = tasks.create_task("alice", TaskKind.PRIVATE_CHAT_REPLY, CHAT_PAYLOAD)
    task = tasks.get_task(tid)

    assert dispatcher.dispatch(task) is DispatchOutcome.FALLBACK
    channel.attach("bg")
    assert dispatcher.dispatch(task) is DispatchOutcome.SENT


def test_unusable_payload_fails_instead_of_hanging(store, settings) -> None:
    channel, tasks, dispatcher = _wire(store, settings)
    rec = Recorder()
    dispatcher.on_fallback(rec)
    channel.attach("bg")

    tid = tasks.create_task("alice", TaskKind.PRIVATE_CHAT_REPLY, {"user_prompt": "hi", "temperature": "warm"})

    task = tasks.get_task(tid)
    assert task.status is TaskStatus.FAILED
    assert task.error.startswith("Invalid task payload")
    assert fallback_tasks(rec) == []
    assert channel.pending_for_background() == 0
    assert dispatcher.dispatch(task) is DispatchOutcome.REJECTED


def test_results_for_unknown_tasks_are_dropped(store, settings) -> None:
    _, _, dispatcher = _wire(store, settings)

    assert dispatcher.on_result_message(TaskResultMessage("task_nope", "alice", {})) is False
    assert dispatcher.on_result_message(TaskFailureMessage("task_nope", "alice", "boom")) is False


def test_result_messages_settle_tasks(store, settings) -> None:
    _, tasks, dispatcher = _wire(store, settings)
    tasks.dispatcher = None
    ok = tasks.create_task("alice", TaskKind.PRIVATE_CHAT_REPLY, CHAT_PAYLOAD)
    bad = tasks.create_task("alice", TaskKind.PRIVATE_CHAT_REPLY, CHAT_PAYLOAD)

    assert dispatcher.on_result_message(TaskResultMessage(ok, "alice", {"messages": []}))
    assert dispatcher.on_result_message(TaskFailureMessage(bad, "alice", "boom"))

    assert tasks.get_task(ok).status is TaskStatus.COMPLETED
    assert tasks.get_task(bad).error == "boom"


@pytest.mark.asyncio
async def test_notification_click_reaches_navigation_listeners(store, settings, upstream) -> None:
    channel, tasks, dispatcher = _wire(store, settings)
    rec = Recorder()
    dispatcher.on_navigation(rec)
    worker = BackgroundWorker(channel, tasks, upstream)

    worker.notification_clicked("alice", "Mika replied")
    msg = await channel.receive_on_page()

    assert dispatcher.on_result_message(msg) is True
    [nav] = navigations(rec)
    assert (nav.owner_id, nav.title) == ("alice", "Mika replied")


@pytest.mark.asyncio
async def test_worker_completes_task_end_to_end(store, settings) -> None:
    upstream = FakeUpstream(reply_json({"content": "hello"}, {"stickerId": "wave"}))
    channel, tasks, dispatcher = _wire(store, settings)
    fallback = Recorder()
    dispatcher.on_fallback(fallback)
    worker = BackgroundWorker(channel, tasks, upstream)

    wt = asyncio.create_task(worker.run())
    dt = asyncio.create_task(dispatcher.run())
    await _until(channel.is_reachable)
    try:
        tid = tasks.create_task("alice", TaskKind.PRIVATE_CHAT_REPLY, CHAT_PAYLOAD)
        await _until(_settled(tasks, tid))
    finally:
        await _cancel(wt, dt)

    task = tasks.get_task(tid)
    assert task.status is TaskStatus.COMPLETED
    assert [m["text"] for m in task.result["messages"]] == ["hello", "[sticker]"]
    assert task.result["sender_name"] == "Mika"
    assert len(upstream.calls) == 1
    assert fallback_tasks(fallback) == []
    assert worker.handled == 1
    # cancelling the run detaches the worker
    assert not channel.is_reachable()


@pytest.mark.asyncio
async def test_worker_runs_vision_step_first(store, settings, upstream) -> None:
    channel, tasks, dispatcher = _wire(store, settings)
    worker = BackgroundWorker(channel, tasks, upstream)
    payload = {**CHAT_PAYLOAD, "image_data_url": "data:image/jpeg;base64,AAAA"}

    wt = asyncio.create_task(worker.run())
    dt = asyncio.create_task(dispatcher.run())
    await _until(channel.is_reachable)
    try:
        tid = tasks.create_task("alice", TaskKind.PRIVATE_CHAT_REPLY, payload)
        await _until(_settled(tasks, tid))
    finally:
        await _cancel(wt, dt)

    assert tasks.get_task(tid).status is TaskStatus.COMPLETED
    assert len(upstream.vision_calls) == 1
    [call] = upstream.calls
    assert call.image_data_url is None
    assert "a small red cube" in call.messages[-1]["content"]


@pytest.mark.asyncio
async def test_worker_reports_upstream_failure(store, settings) -> None:
    upstream = FakeUpstream(error=UpstreamAPIError("API error (401): bad key", status_code=401))
    channel, tasks, dispatcher = _wire(store, settings)
    worker = BackgroundWorker(channel, tasks, upstream)

    wt = asyncio.create_task(worker.run())
    dt = asyncio.create_task(dispatcher.run())
    await _until(channel.is_reachable)
    try:
        tid = tasks.create_task("alice", TaskKind.PRIVATE_CHAT_REPLY, CHAT_PAYLOAD)
        await _until(_settled(tasks, tid))
    finally:
        await _cancel(wt, dt)

    task = tasks.get_task(tid)
    assert task.status is TaskStatus.FAILED
    assert "401" in task.error
    assert task.result is None


@pytest.mark.asyncio
async def test_worker_skips_vanished_task(store, settings, upstream) -> None:
    channel, tasks, _ = _wire(store, settings)
    worker = BackgroundWorker(channel, tasks, upstream)
    request = ChatRequest.from_payload(CHAT_PAYLOAD, defaults=settings)

    await worker.handle(DispatchMessage("task_gone", "alice", TaskKind.PRIVATE_CHAT_REPLY, request))

    assert channel.pending_for_page() == 0
    assert upstream.calls == []


@pytest.mark.asyncio
async def test_fallback_completes_task(store, settings, upstream) -> None:
    channel, tasks, dispatcher = _wire(store, settings)
    executor = FallbackExecutor(tasks, upstream)
    executor.attach(dispatcher)

    tid = tasks.create_task("alice", TaskKind.PRIVATE_CHAT_REPLY, CHAT_PAYLOAD)
    assert executor.inflight == 1
    await executor.drain()

    task = tasks.get_task(tid)
    assert task.status is TaskStatus.COMPLETED
    assert task.result["messages"][0]["text"] == "ok"
    assert channel.pending_for_background() == 0


@pytest.mark.asyncio
async def test_fallback_records_format_error(store, settings) -> None:
    upstream = FakeUpstream("I would rather not answer in JSON.")
    _, tasks, dispatcher = _wire(store, settings)
    executor = FallbackExecutor(tasks, upstream)
    executor.attach(dispatcher)

    tid = tasks.create_task("alice", TaskKind.PRIVATE_CHAT_REPLY, CHAT_PAYLOAD)
    await executor.drain()
    await _until(_settled(tasks, tid))

    task = tasks.get_task(tid)
    assert task.status is TaskStatus.FAILED
    assert task.error.startswith("Response format error")
    assert "I would rather not answer in JSON." in task.error


@pytest.mark.asyncio
async def test_fallback_runs_memory_extraction(store, settings) -> None:
    upstream = FakeUpstream('{"permanent": ["likes tea"], "summary": "quiet chat"}')
    _, tasks, dispatcher = _wire(store, settings)
    executor = FallbackExecutor(tasks, upstream)
    executor.attach(dispatcher)

    tid = tasks.create_task("alice", TaskKind.MEMORY_EXTRACTION, {"user_prompt": "transcript"})
    await executor.drain()

    result = tasks.get_task(tid).result
    assert [m["type"] for m in result["memories"]] == ["permanent", "summary"]


@pytest.mark.asyncio
async def test_detached_worker_sends_new_tasks_to_fallback(store, settings, upstream) -> None:
    channel, tasks, dispatcher = _wire(store, settings)
    rec = Recorder()
    dispatcher.on_fallback(rec)
    worker = BackgroundWorker(channel, tasks, upstream)

    wt = asyncio.create_task(worker.run())
    await _until(channel.is_reachable)
    worker.detach()
    try:
        tid = tasks.create_task("alice", TaskKind.PRIVATE_CHAT_REPLY, CHAT_PAYLOAD)
    finally:
        await _cancel(wt)

    assert fallback_tasks(rec) == [tid]
    assert channel.pending_for_background() == 0
