# src/hearth/core/state.py

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from ..blobs.cache import BlobCache
from ..blobs.handles import HandleRegistry
from ..storage.kv_store import KeyValueStore
from ..storage.schema import Partition
from ..tasks.channel import MessageChannel
from ..tasks.dispatcher import Dispatcher
from ..tasks.task_queue import TaskQueue
from .ports import UpstreamClient

logger = logging.getLogger(__name__)

_UNSET: Any = object()


class ProfileCache:
    """
    Short-lived copies of profile data read on every chat screen.

    Chat settings, user data and the character list expire after `ttl_seconds`.
    Display-name remarks, the user avatar key and per-owner message lists stay
    until an explicit `invalidate(clear_all=True)`.
    """

    def __init__(self, ttl_seconds: float = 5.0, *, clock: Callable[[], float] = time.monotonic) -> None:
        self.ttl_seconds = float(ttl_seconds)
        self._clock = clock

        self.chat_settings: Any = None
        self.user_data: Any = None
        self.characters: list[Any] | None = None
        self.last_update: float | None = None

        self.messages: dict[str, list[dict[str, Any]]] = {}
        self.remarks: dict[str, str] = {}
        self._user_avatar_key: Any = _UNSET

    def is_valid(self) -> bool:
        if self.last_update is None:
            return False
        return self._clock() - self.last_update < self.ttl_seconds

    def refresh(self, store: KeyValueStore) -> None:
        self.chat_settings = store.get(Partition.CHAT_SETTINGS, "chatSettings")
        self.user_data = store.get(Partition.USER_DATA, "userData")
        chars = store.get(Partition.CHARACTERS, "characters", [])
        self.characters = chars if isinstance(chars, list) else []
        self.last_update = self._clock()

    def ensure_loaded(self, store: KeyValueStore) -> None:
        if not self.is_valid():
            self.refresh(store)

    # ---- display names ----

    def display_name(self, owner_id: str, fallback: str) -> str:
        return self.remarks.get(owner_id) or fallback

    def set_display_name(self, owner_id: str, remark: str) -> None:
        self.remarks[owner_id] = remark

    # ---- avatar ----

    @property
    def user_avatar_loaded(self) -> bool:
        return self._user_avatar_key is not _UNSET

    @property
    def user_avatar_key(self) -> str | None:
        return None if self._user_avatar_key is _UNSET else self._user_avatar_key

    def set_user_avatar_key(self, key: str | None) -> None:
        self._user_avatar_key = key

    # ---- messages ----

    def messages_for(self, owner_id: str) -> list[dict[str, Any]] | None:
        return self.messages.get(owner_id)

    def set_messages(self, owner_id: str, messages: list[dict[str, Any]]) -> None:
        self.messages[owner_id] = list(messages)

    def append_messages(self, owner_id: str, messages: list[dict[str, Any]]) -> None:
        self.messages.setdefault(owner_id, []).extend(messages)

    def invalidate(self, clear_all: bool = False) -> None:
        self.chat_settings = None
        self.user_data = None
        self.characters = None
        self.last_update = None

        if clear_all:
            self.messages = {}
            self.remarks = {}
            self._user_avatar_key = _UNSET


@dataclass
class SessionContext:
    """Everything one running session owns; torn down by close()."""

    settings: Any
    store: KeyValueStore
    blobs: BlobCache
    tasks: TaskQueue
    channel: MessageChannel
    dispatcher: Dispatcher
    upstream: UpstreamClient

    profile: ProfileCache = field(default_factory=ProfileCache)

    @property
    def handles(self) -> HandleRegistry:
        return self.blobs.handles

    def invalidate(self, clear_all: bool = False) -> None:
        self.profile.invalidate(clear_all=clear_all)
        if clear_all:
            n = self.handles.revoke_all()
            logger.debug("Session invalidated; %d handles revoked", n)

    def close(self) -> None:
        self.invalidate(clear_all=True)
        self.blobs.close()
        self.store.close()
        close = getattr(self.upstream, "close", None)
        if callable(close):
            close()
        logger.info("Session closed")
