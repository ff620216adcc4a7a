# src/hearth/decoding/memory_decoder.py

from __future__ import annotations

import logging
import random
import re
import string
import time
from datetime import date, timedelta
from typing import Any

from .result_decoder import DEFAULT_PREVIEW_CHARS, parse_structured

logger = logging.getLogger(__name__)

_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_ID_ALPHABET = string.ascii_lowercase + string.digits


def _memory_id() -> str:
    return f"{int(time.time() * 1000):x}" + "".join(random.choices(_ID_ALPHABET, k=5))


def _tags_of(raw: Any) -> list[str]:
    if isinstance(raw, list):
        return [str(t) for t in raw]
    if isinstance(raw, str):
        return [raw]
    return []


def _entry(kind: str, content: str, today: date, tags: list[str]) -> dict[str, Any]:
    return {
        "id": _memory_id(),
        "type": kind,
        "content": content,
        "created_at": today.isoformat(),
        "active": True,
        "tags": tags,
    }


def decode_memories(
    raw: str, *, preview_chars: int = DEFAULT_PREVIEW_CHARS, today: date | None = None
) -> list[dict[str, Any]]:
    """
    Decode a memory-extraction response.

    Expected object: {"permanent": [str], "event": [{content, tags, expire_at |
    suggested_expire_days}], "summary": str | {content, tags}}. Missing sections
    are fine; an unparsable response raises ResponseFormatError.
    """
    obj, _ = parse_structured(raw, preview_chars=preview_chars)
    today = today or date.today()
    items: list[dict[str, Any]] = []

    permanent = obj.get("permanent")
    if isinstance(permanent, list):
        for content in permanent:
            if isinstance(content, str) and content.strip():
                items.append(_entry("permanent", content.strip(), today, []))

    events = obj.get("event")
    if isinstance(events, list):
        for ev in events:
            if not isinstance(ev, dict) or not ev.get("content"):
                continue
            entry = _entry("event", str(ev["content"]), today, _tags_of(ev.get("tags")))
            expire_at = ev.get("expire_at")
            if isinstance(expire_at, str) and _DATE_RE.match(expire_at):
                entry["expires_at"] = expire_at
            elif ev.get("suggested_expire_days"):
                try:
                    days = int(float(ev["suggested_expire_days"]))
                    expires = today + timedelta(days=days)
                except (TypeError, ValueError, OverflowError):
                    logger.debug("Ignoring bad suggested_expire_days=%r", ev["suggested_expire_days"])
                else:
                    entry["expires_at"] = expires.isoformat()
            items.append(entry)

    summary = obj.get("summary")
    if isinstance(summary, dict) and summary.get("content"):
        items.append(_entry("summary", str(summary["content"]), today, _tags_of(summary.get("tags"))))
    elif isinstance(summary, str) and summary:
        items.append(_entry("summary", summary, today, []))

    return items


def build_memory_outcome(raw: str, *, preview_chars: int = DEFAULT_PREVIEW_CHARS) -> dict[str, Any]:
    memories = decode_memories(raw, preview_chars=preview_chars)
    if not memories:
        logger.info("Memory extraction produced no entries")
    return {"memories": memories}
