# src/hearth/storage/schema.py

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class StoreSchema:
    """
    A named persistence unit: a version plus the partitions valid for that version.

    Versions only go up. Opening a store with a lower version than the one
    recorded on disk is rejected.
    """

    name: str
    version: int
    partitions: tuple[str, ...]

    def __post_init__(self) -> None:
        if self.version < 1:
            raise ValueError("schema version must be >= 1")
        if not self.partitions:
            raise ValueError("schema must declare at least one partition")
        if len(set(self.partitions)) != len(self.partitions):
            raise ValueError("duplicate partition names in schema")


class Partition:
    """Partition names of the application record store."""

    USER_DATA = "userData"
    CHARACTERS = "characters"
    CHATS = "chats"
    CHAT_MESSAGES = "chatMessages"
    CHAT_SETTINGS = "chatSettings"
    WORLD_BOOKS = "worldBooks"
    API_SETTINGS = "apiSettings"
    APPEARANCE = "appearance"
    MISC = "misc"  # wallpapers, widget images, free-form flags
    STICKERS = "stickers"
    BUBBLE_PRESETS = "bubblePresets"
    AI_TASKS = "aiTasks"
    HEALTH = "health"
    SCHEDULE = "schedule"


APP_SCHEMA = StoreSchema(
    name="companion",
    version=9,  # 9: schedule partition
    partitions=(
        Partition.USER_DATA,
        Partition.CHARACTERS,
        Partition.CHATS,
        Partition.CHAT_MESSAGES,
        Partition.CHAT_SETTINGS,
        Partition.WORLD_BOOKS,
        Partition.API_SETTINGS,
        Partition.APPEARANCE,
        Partition.MISC,
        Partition.STICKERS,
        Partition.BUBBLE_PRESETS,
        Partition.AI_TASKS,
        Partition.HEALTH,
        Partition.SCHEDULE,
    ),
)

BLOB_PARTITION = "images"

BLOB_SCHEMA = StoreSchema(
    name="images",
    version=3,  # 3: binary payloads instead of base64 text
    partitions=(BLOB_PARTITION,),
)
