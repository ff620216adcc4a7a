# tests/test_commands.py

from __future__ import annotations

import json

from hearth.cli.commands import CommandRegistry, registry
from hearth.storage.schema import Partition
from hearth.tasks.task_models import TaskKind, TaskStatus


def test_command_registry_routes_3_and_4_params(session) -> None:
    reg = CommandRegistry()
    called = {"h3": 0, "h4": 0}
    notes: list[str] = []

    def h3(session, args, runtime):
        called["h3"] += 1
        return "h3"

    def h4(session, args, runtime, emit):
        called["h4"] += 1
        if emit is not None:
            emit("note")
        return "h4"

    reg.register("a", h3, "a")
    reg.register("b", h4, "b", aliases=["bee"])

    assert reg.handle(session, "/a x") == "h3"
    assert reg.handle(session, "/BEE y", emit=notes.append) == "h4"
    assert called == {"h3": 1, "h4": 1}
    assert notes == ["note"]


def test_command_registry_unknown_and_non_command(session) -> None:
    reg = CommandRegistry()
    assert reg.handle(session, "hello") is None
    assert "Empty command" in (reg.handle(session, "/") or "")
    assert "Unknown command" in (reg.handle(session, "/nope") or "")


def test_help_lists_registered_commands(session) -> None:
    out = registry.handle(session, "/help") or ""
    for name in ("/ask", "/tasks", "/export", "/import", "/worker", "/diag"):
        assert name in out


def test_ask_without_runtime_leaves_task_pending(session, upstream) -> None:
    out = registry.handle(session, "/ask mika hello there") or ""
    assert out.startswith("Queued task task_")

    [task] = session.tasks.get_tasks_by_owner("mika")
    assert task.status is TaskStatus.PENDING
    assert task.kind == TaskKind.PRIVATE_CHAT_REPLY
    assert task.payload["user_prompt"] == "hello there"
    # nothing listens for fallbacks and no worker is attached
    assert upstream.calls == []


def test_ask_usage(session) -> None:
    assert (registry.handle(session, "/ask mika") or "").startswith("Usage")


def test_tasks_and_task_views(session) -> None:
    session.tasks.dispatcher = None
    tid = session.tasks.create_task("mika", TaskKind.PRIVATE_CHAT_REPLY, {"user_prompt": "hi"})
    session.tasks.complete_task(
        tid, {"messages": [{"sender_name": "Mika", "text": "hey you"}], "sender_name": "Mika"}
    )
    failed = session.tasks.create_task("rin", TaskKind.PRIVATE_CHAT_REPLY, {"user_prompt": "hi"})
    session.tasks.fail_task(failed, "API error (429): slow down")

    listing = registry.handle(session, "/tasks") or ""
    assert tid in listing and failed in listing
    assert "error=API error (429)" in listing

    only_mika = registry.handle(session, "/tasks mika") or ""
    assert tid in only_mika and failed not in only_mika

    detail = registry.handle(session, f"/task {tid}") or ""
    assert "status: completed" in detail
    assert "<<< Mika: hey you" in detail

    assert "No task" in (registry.handle(session, "/task task_missing") or "")
    assert registry.handle(session, "/tasks nobody") == "No tasks."


def test_cleanup_command(session) -> None:
    session.tasks.dispatcher = None
    tid = session.tasks.create_task("mika", TaskKind.PRIVATE_CHAT_REPLY, {})
    session.tasks.fail_task(tid, "boom")

    assert registry.handle(session, "/cleanup") == "Removed 0 settled task(s)."
    assert registry.handle(session, "/cleanup -1") == "Removed 1 settled task(s)."
    assert (registry.handle(session, "/cleanup soon") or "").startswith("Usage")


def test_diag_and_status(session) -> None:
    diag = registry.handle(session, "/diag") or ""
    assert "read/write check: ok" in diag
    assert "missing: none" in diag
    assert Partition.AI_TASKS in diag

    status = registry.handle(session, "/status") or ""
    assert "Background worker: OFF" in status
    assert "FakeUpstream" in status


def test_export_then_import_restores_snapshot(session, tmp_path) -> None:
    session.store.set(Partition.USER_DATA, "userData", {"name": "Ann"})
    session.blobs.save_blob("meme-1", b"\x01\x02\x03")
    path = tmp_path / "backup" / "snap.json"
    notes: list[str] = []

    out = registry.handle(session, f"/export {path}", emit=notes.append) or ""
    assert out.startswith("Exported")
    assert notes and "[EXPORT]" in notes[0]
    snapshot = json.loads(path.read_text("utf-8"))
    assert snapshot["blobs"]["meme-1"]["category"] == "memes"

    session.store.set(Partition.USER_DATA, "userData", {"name": "changed"})
    session.store.set(Partition.USER_DATA, "extra", 1)
    session.blobs.delete_blob("meme-1")
    session.profile.set_display_name("mika", "Mika-chan")

    out = registry.handle(session, f"/import {path}") or ""
    assert out.startswith("Imported")
    assert "1 blobs" in out

    assert session.store.get(Partition.USER_DATA, "userData") == {"name": "Ann"}
    assert session.store.get(Partition.USER_DATA, "extra") is None
    handle = session.blobs.get_blob("meme-1")
    assert handle is not None and handle.read() == b"\x01\x02\x03"
    # import drops cached profile state
    assert session.profile.remarks == {}


def test_import_rejects_bad_files(session, tmp_path) -> None:
    assert "No such file" in (registry.handle(session, f"/import {tmp_path / 'nope.json'}") or "")
    bad = tmp_path / "bad.json"
    bad.write_text("{not json", "utf-8")
    assert "Not a snapshot" in (registry.handle(session, f"/import {bad}") or "")


def test_blobs_and_gc(session) -> None:
    session.blobs.save_blob("meme-1", b"a")
    session.blobs.save_blob("meme-2", b"b")

    assert "memes" in (registry.handle(session, "/blobs") or "")
    assert registry.handle(session, "/gc meme-1") == "Deleted 1 unused blob(s)."
    assert session.blobs.get_blob("meme-2") is None


def test_worker_without_runtime(session) -> None:
    assert registry.handle(session, "/worker on") == "No task runtime is running."


def test_migrate_runs_once(session, tmp_path) -> None:
    dump = tmp_path / "legacy.json"
    dump.write_text(
        json.dumps({"userData": '{"name": "Ann"}', "chat_messages_mika": "[]", "random_flag": "1"}),
        "utf-8",
    )

    assert registry.handle(session, f"/migrate {dump}") == "Migrated 2 legacy key(s)."
    assert session.store.get(Partition.USER_DATA, "userData") == {"name": "Ann"}
    assert registry.handle(session, f"/migrate {dump}") == "Legacy data was already migrated."
