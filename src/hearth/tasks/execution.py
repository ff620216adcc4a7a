# src/hearth/tasks/execution.py

from __future__ import annotations

import logging
from typing import Any

from ..core.ports import UpstreamClient
from ..decoding.memory_decoder import build_memory_outcome
from ..decoding.result_decoder import DEFAULT_PREVIEW_CHARS, build_reply_outcome
from ..errors import ResponseFormatError
from ..llm.request import ChatRequest
from .task_models import TaskKind

logger = logging.getLogger(__name__)


def execute_request(
    upstream: UpstreamClient,
    kind: str,
    request: ChatRequest,
    *,
    preview_chars: int = DEFAULT_PREVIEW_CHARS,
) -> dict[str, Any]:
    """
    Run one task request end to end and return the result for `complete_task`.

    Blocking; both executors call it (the background worker via a thread).
    Raises UpstreamAPIError or ResponseFormatError on task-level failure.
    """
    if request.image_data_url:
        description = upstream.describe_image(request)
        logger.info("Vision step produced %d chars", len(description))
        request = request.with_image_description(description.strip())

    raw = upstream.complete(request)
    logger.debug("Upstream raw response (%d chars)", len(raw))

    if kind == TaskKind.MEMORY_EXTRACTION:
        return build_memory_outcome(raw, preview_chars=preview_chars)

    return build_reply_outcome(
        raw,
        sender_name=request.sender_name,
        display_name=request.display_name,
        preview_chars=preview_chars,
    )


def describe_failure(exc: BaseException) -> str:
    """
    Error text stored on a failed task.

    Format errors keep the start of the raw upstream text so the failure can be
    inspected after the fact.
    """
    msg = str(exc).strip() or exc.__class__.__name__
    if isinstance(exc, ResponseFormatError) and exc.raw_preview:
        msg = f"{msg}\nRaw response: {exc.raw_preview}"
    return msg
