# src/hearth/blobs/categories.py

from __future__ import annotations

from enum import StrEnum


class BlobCategory(StrEnum):
    AVATARS = "avatars"  # user avatar, character avatars, chat avatars
    MEMES = "memes"  # stickers
    CHAT_IMAGES = "chat_images"
    SYSTEM = "system"  # wallpapers, desktop widgets, backgrounds


UNCATEGORIZED = "uncategorized"

_SYSTEM_KEYS = frozenset({"profileBackground", "desktop-wallpaper", "chat-background", "anniversary"})


def category_for_key(key: str) -> BlobCategory:
    """Infer the category from the key's naming convention. Unknown keys are SYSTEM."""
    if (
        key in ("avatar", "chat-avatar")
        or key.startswith("character-avatar-")
        or (key.startswith("character-") and key.endswith("-avatar"))
    ):
        return BlobCategory.AVATARS
    if key in _SYSTEM_KEYS or key.startswith("desktop2_"):
        return BlobCategory.SYSTEM
    if key.startswith("meme-"):
        return BlobCategory.MEMES
    if key.startswith("chat-image-"):
        return BlobCategory.CHAT_IMAGES
    return BlobCategory.SYSTEM


def build_storage_key(key: str, category: BlobCategory | str | None = None) -> str:
    """`category/key`. Keys that already carry a path are used as-is."""
    if "/" in key:
        return key
    cat = category or category_for_key(key)
    return f"{cat}/{key}"


def split_storage_key(storage_key: str) -> tuple[str, str]:
    """Return (category, original_key); bare legacy keys are UNCATEGORIZED."""
    category, sep, rest = storage_key.partition("/")
    if not sep:
        return UNCATEGORIZED, storage_key
    return category, rest
