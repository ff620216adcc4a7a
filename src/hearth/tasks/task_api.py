# src/hearth/tasks/task_api.py

from __future__ import annotations

import logging
from typing import Any

from ..blobs.transforms import encode_data_url, recompress_image
from .task_models import TaskKind
from .task_queue import TaskQueue

logger = logging.getLogger(__name__)

PENDING_IMAGE_MAX_PX = 1024
PENDING_IMAGE_QUALITY = 80

MEMORY_EXTRACTION_PROMPT = (
    "You are a memory extraction module. Read the conversation and answer with one JSON "
    'object: {"permanent": [facts that never expire], "event": [{"content": ..., '
    '"tags": [...], "expire_at": "YYYY-MM-DD" or "suggested_expire_days": N}], '
    '"summary": "one paragraph"}. Output JSON only.'
)


def _api_overrides(api: dict[str, Any] | None) -> dict[str, Any]:
    out: dict[str, Any] = {}
    for key in ("api_key", "base_url", "model", "temperature", "max_tokens"):
        if api and api.get(key) is not None:
            out[key] = api[key]
    return out


def create_chat_reply_task(
    tasks: TaskQueue,
    *,
    owner_id: str,
    character_name: str,
    system_prompt: str,
    user_prompt: str,
    display_name: str | None = None,
    user_nickname: str | None = None,
    pending_image: bytes | None = None,
    image_prompt: str | None = None,
    api: dict[str, Any] | None = None,
) -> str:
    """
    Convenience helper: queue a private-chat reply.

    A pending image is shrunk and embedded as a data URL so the executing
    context can run the vision step first.
    """
    payload: dict[str, Any] = {
        "system_prompt": system_prompt,
        "user_prompt": user_prompt,
        "character_name": character_name,
        **_api_overrides(api),
    }
    if display_name:
        payload["display_name"] = display_name
    if user_nickname:
        payload["user_nickname"] = user_nickname

    if pending_image:
        try:
            jpeg = recompress_image(
                pending_image, max_px=PENDING_IMAGE_MAX_PX, quality=PENDING_IMAGE_QUALITY
            )
        except ValueError:
            logger.warning("Pending image for %s is not decodable; sending without it", owner_id)
        else:
            payload["image_data_url"] = encode_data_url(jpeg, "image/jpeg")
            if image_prompt:
                payload["image_prompt"] = image_prompt

    return tasks.create_task(owner_id, TaskKind.PRIVATE_CHAT_REPLY, payload)


def create_memory_extraction_task(
    tasks: TaskQueue,
    *,
    owner_id: str,
    transcript: str,
    character_name: str = "",
    instructions: str = MEMORY_EXTRACTION_PROMPT,
    api: dict[str, Any] | None = None,
) -> str:
    payload: dict[str, Any] = {
        "system_prompt": instructions,
        "user_prompt": transcript,
        "character_name": character_name,
        **_api_overrides(api),
    }
    return tasks.create_task(owner_id, TaskKind.MEMORY_EXTRACTION, payload)
