# tests/test_task_api.py

from __future__ import annotations

import base64
import io

from PIL import Image

from hearth.tasks.task_api import (
    MEMORY_EXTRACTION_PROMPT,
    create_chat_reply_task,
    create_memory_extraction_task,
)
from hearth.tasks.task_models import TaskKind
from hearth.tasks.task_queue import TaskQueue


def _png(width: int, height: int) -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", (width, height), (10, 120, 200)).save(buf, format="PNG")
    return buf.getvalue()


def test_chat_reply_payload(queue: TaskQueue) -> None:
    tid = create_chat_reply_task(
        queue,
        owner_id="mika",
        character_name="Mika",
        system_prompt="sys",
        user_prompt="hello",
        display_name="Mika-chan",
        api={"model": "gpt-x", "api_key": None},
    )

    task = queue.get_task(tid)
    assert task.kind == TaskKind.PRIVATE_CHAT_REPLY
    assert task.payload == {
        "system_prompt": "sys",
        "user_prompt": "hello",
        "character_name": "Mika",
        "model": "gpt-x",
        "display_name": "Mika-chan",
    }


def test_pending_image_is_shrunk_into_a_data_url(queue: TaskQueue) -> None:
    tid = create_chat_reply_task(
        queue,
        owner_id="mika",
        character_name="Mika",
        system_prompt="sys",
        user_prompt="look",
        pending_image=_png(2048, 1024),
        image_prompt="what is this?",
    )

    payload = queue.get_task(tid).payload
    prefix = "data:image/jpeg;base64,"
    assert payload["image_data_url"].startswith(prefix)
    assert payload["image_prompt"] == "what is this?"

    jpeg = base64.b64decode(payload["image_data_url"][len(prefix):])
    with Image.open(io.BytesIO(jpeg)) as img:
        assert img.format == "JPEG"
        assert img.size == (1024, 512)


def test_undecodable_pending_image_is_dropped(queue: TaskQueue) -> None:
    tid = create_chat_reply_task(
        queue,
        owner_id="mika",
        character_name="Mika",
        system_prompt="sys",
        user_prompt="look",
        pending_image=b"not an image",
    )
    assert "image_data_url" not in queue.get_task(tid).payload


def test_memory_extraction_payload(queue: TaskQueue) -> None:
    tid = create_memory_extraction_task(queue, owner_id="mika", transcript="me: hi\nMika: hey")

    task = queue.get_task(tid)
    assert task.kind == TaskKind.MEMORY_EXTRACTION
    assert task.payload["system_prompt"] == MEMORY_EXTRACTION_PROMPT
    assert task.payload["user_prompt"] == "me: hi\nMika: hey"
