# src/hearth/decoding/result_decoder.py

from __future__ import annotations

import json
import logging
import re
from typing import Any

from ..errors import ResponseFormatError
from .items import ReplyItem, classify, to_message

logger = logging.getLogger(__name__)

DEFAULT_PREVIEW_CHARS = 500

_FENCED_RE = re.compile(r"```(?:[\w-]*)?\s*(\{[\s\S]*?\})\s*```")


def _preview(text: str, limit: int) -> str:
    return text[: max(0, int(limit))]


def _as_object(text: str) -> dict[str, Any] | None:
    try:
        val = json.loads(text)
    except (json.JSONDecodeError, ValueError, RecursionError):
        # RecursionError: nesting deeper than the interpreter stack
        return None
    return val if isinstance(val, dict) else None


def _first_balanced_object(text: str) -> str | None:
    """
    Substring from the first '{' to the brace that closes it.

    Braces inside JSON string literals are counted too, so text such as
    `{"content": "a } b"}` closes early.
    """
    start = text.find("{")
    if start == -1:
        return None
    depth = 0
    for i in range(start, len(text)):
        ch = text[i]
        if ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return text[start : i + 1]
    return None


def parse_structured(
    raw: str, *, preview_chars: int = DEFAULT_PREVIEW_CHARS
) -> tuple[dict[str, Any], str]:
    """
    Extract the first JSON object from free-form upstream text.

    Returns (object, strategy) where strategy is "direct", "fenced" or "braces".
    Raises ResponseFormatError when no strategy yields an object.
    """
    text = raw or ""

    obj = _as_object(text.strip())
    if obj is not None:
        return obj, "direct"

    m = _FENCED_RE.search(text)
    if m:
        obj = _as_object(m.group(1))
        if obj is not None:
            return obj, "fenced"

    candidate = _first_balanced_object(text)
    if candidate is not None:
        obj = _as_object(candidate)
        if obj is not None:
            return obj, "braces"
        reason = "extracted object is not valid JSON"
    elif "{" in text:
        reason = "object is never closed"
    else:
        reason = "no JSON object found"

    logger.warning("Unparsable upstream response (%s): %r", reason, _preview(text, 200))
    raise ResponseFormatError(
        f"Response format error: {reason}", raw_preview=_preview(text, preview_chars)
    )


def decode_reply(raw: str, *, preview_chars: int = DEFAULT_PREVIEW_CHARS) -> list[ReplyItem]:
    obj, strategy = parse_structured(raw, preview_chars=preview_chars)
    logger.debug("Reply decoded via %s strategy", strategy)

    messages = obj.get("messages")
    if not isinstance(messages, list) or not messages:
        raise ResponseFormatError(
            "Response contained no messages", raw_preview=_preview(raw or "", preview_chars)
        )

    return [classify(m if isinstance(m, dict) else {"content": str(m)}) for m in messages]


def build_reply_outcome(
    raw: str,
    *,
    sender_name: str,
    display_name: str | None = None,
    preview_chars: int = DEFAULT_PREVIEW_CHARS,
    now: float | None = None,
) -> dict[str, Any]:
    """Decode a chat reply into the result stored on a completed task."""
    items = decode_reply(raw, preview_chars=preview_chars)
    messages = [
        to_message(item, index=i, sender_name=sender_name, now=now) for i, item in enumerate(items)
    ]
    out: dict[str, Any] = {"messages": messages, "sender_name": sender_name}
    if display_name:
        out["display_name"] = display_name
    return out
