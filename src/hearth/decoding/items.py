# src/hearth/decoding/items.py

from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

PLACEHOLDER_MAX_CHARS = 100
SYSTEM_SENDER_ID = "system"
SYSTEM_SENDER_NAME = "System"
CHARACTER_SENDER_ID = "character"


class ItemKind(StrEnum):
    TEXT = "text"
    STICKER = "sticker"
    PLACEHOLDER_IMAGE = "placeholder_image"
    GIFT = "gift"
    SYSTEM = "system"


@dataclass(frozen=True, slots=True)
class Quote:
    sender: str
    content: str


@dataclass(frozen=True, slots=True)
class TextItem:
    text: str
    quote: Quote | None = None
    kind: ItemKind = field(default=ItemKind.TEXT, init=False)


@dataclass(frozen=True, slots=True)
class StickerItem:
    sticker_id: str
    quote: Quote | None = None
    kind: ItemKind = field(default=ItemKind.STICKER, init=False)

    @property
    def text(self) -> str:
        return "[sticker]"


@dataclass(frozen=True, slots=True)
class PlaceholderImageItem:
    description: str
    kind: ItemKind = field(default=ItemKind.PLACEHOLDER_IMAGE, init=False)

    @property
    def text(self) -> str:
        return self.description


@dataclass(frozen=True, slots=True)
class GiftItem:
    amount: float
    blessing: str = ""
    kind: ItemKind = field(default=ItemKind.GIFT, init=False)

    @property
    def text(self) -> str:
        return "[gift]"


@dataclass(frozen=True, slots=True)
class SystemNotice:
    text: str
    kind: ItemKind = field(default=ItemKind.SYSTEM, init=False)


ReplyItem = TextItem | StickerItem | PlaceholderImageItem | GiftItem | SystemNotice

_EXPLICIT_TYPES = {
    "text": ItemKind.TEXT,
    "sticker": ItemKind.STICKER,
    "placeholder_image": ItemKind.PLACEHOLDER_IMAGE,
    "image": ItemKind.PLACEHOLDER_IMAGE,
    "gift": ItemKind.GIFT,
    "red_packet": ItemKind.GIFT,
    "system": ItemKind.SYSTEM,
}


def _quote_of(raw: dict[str, Any]) -> Quote | None:
    q = raw.get("quote")
    if not isinstance(q, dict):
        return None
    return Quote(sender=str(q.get("sender") or ""), content=str(q.get("content") or ""))


def _gift_of(raw: dict[str, Any]) -> GiftItem:
    gift = raw.get("redPacket") or raw.get("gift") or {}
    if not isinstance(gift, dict):
        gift = {}
    try:
        amount = float(gift.get("amount") or 0)
    except (TypeError, ValueError):
        amount = 0.0
    return GiftItem(amount=amount, blessing=str(gift.get("blessing") or ""))


def _build(kind: ItemKind, raw: dict[str, Any]) -> ReplyItem:
    content = str(raw.get("content") or "")
    if kind is ItemKind.SYSTEM:
        return SystemNotice(text=content)
    if kind is ItemKind.PLACEHOLDER_IMAGE:
        return PlaceholderImageItem(description=content[:PLACEHOLDER_MAX_CHARS])
    if kind is ItemKind.GIFT:
        return _gift_of(raw)
    if kind is ItemKind.STICKER:
        return StickerItem(sticker_id=str(raw.get("stickerId") or ""), quote=_quote_of(raw))
    return TextItem(text=content, quote=_quote_of(raw))


def classify(raw: dict[str, Any]) -> ReplyItem:
    """
    Turn one raw upstream message into a tagged item.

    A recognized explicit `type` wins. Otherwise the first match of:
    system sender, placeholder image, gift, sticker, plain text.
    """
    explicit = _EXPLICIT_TYPES.get(str(raw.get("type") or "").strip().lower())
    if explicit is not None:
        return _build(explicit, raw)

    if raw.get("sender") == "system":
        return _build(ItemKind.SYSTEM, raw)
    if raw.get("isPlaceholderImage"):
        return _build(ItemKind.PLACEHOLDER_IMAGE, raw)
    if raw.get("redPacket"):
        return _build(ItemKind.GIFT, raw)
    if raw.get("stickerId"):
        return _build(ItemKind.STICKER, raw)
    return _build(ItemKind.TEXT, raw)


def to_message(
    item: ReplyItem,
    *,
    index: int,
    sender_name: str,
    now: float | None = None,
) -> dict[str, Any]:
    """Owner-facing message dict for one item."""
    ts = time.time() if now is None else now
    msg: dict[str, Any] = {
        "id": f"{int(ts * 1000)}-{index}",
        "text": item.text,
        "sender_id": CHARACTER_SENDER_ID,
        "sender_name": sender_name,
        "timestamp": datetime.fromtimestamp(ts, tz=UTC).isoformat(),
        "kind": item.kind.value,
        "is_read": True,
    }

    if isinstance(item, SystemNotice):
        msg["sender_id"] = SYSTEM_SENDER_ID
        msg["sender_name"] = SYSTEM_SENDER_NAME
    elif isinstance(item, PlaceholderImageItem):
        msg["placeholder_image"] = True
    elif isinstance(item, GiftItem):
        msg["gift"] = {"amount": item.amount, "blessing": item.blessing, "opened": False}
    elif isinstance(item, StickerItem):
        msg["sticker_id"] = item.sticker_id

    quote = getattr(item, "quote", None)
    if quote is not None:
        msg["quote"] = {"sender": quote.sender, "content": quote.content}

    return msg
