# src/hearth/storage/legacy.py

"""
One-shot import of a flat legacy key/value mapping (the old browser localStorage
layout) into the partitioned store.

Routing is by key: first matching route wins. Keys that match no route are left
behind. A marker in the misc partition makes the import run only once.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from .kv_store import KeyValueStore
from .schema import Partition

logger = logging.getLogger(__name__)

MIGRATION_MARKER_KEY = "migrated_from_localstorage"


@dataclass(frozen=True, slots=True)
class LegacyRoute:
    partition: str
    exact: frozenset[str] = frozenset()
    prefixes: tuple[str, ...] = ()
    contains: tuple[str, ...] = ()

    def matches(self, key: str) -> bool:
        if key in self.exact:
            return True
        if any(key.startswith(p) for p in self.prefixes):
            return True
        return any(c in key for c in self.contains)


DEFAULT_ROUTES: tuple[LegacyRoute, ...] = (
    LegacyRoute(Partition.USER_DATA, exact=frozenset({"userData", "user_description"})),
    LegacyRoute(Partition.CHARACTERS, exact=frozenset({"characters"})),
    LegacyRoute(Partition.CHATS, exact=frozenset({"chat_list"})),
    LegacyRoute(Partition.CHAT_MESSAGES, prefixes=("chat_messages_",)),
    LegacyRoute(
        Partition.CHAT_SETTINGS,
        exact=frozenset({"chat_settings"}),
        prefixes=("chat_detail_settings_",),
    ),
    LegacyRoute(Partition.WORLD_BOOKS, exact=frozenset({"world_books"})),
    LegacyRoute(Partition.API_SETTINGS, prefixes=("api_",)),
    # before misc: "accent_color" would otherwise match the "color" rule
    LegacyRoute(Partition.APPEARANCE, exact=frozenset({"accent_color", "dark_mode"})),
    LegacyRoute(
        Partition.MISC,
        exact=frozenset({"organizations"}),
        prefixes=("desktop", "image_", "customText"),
        contains=("wallpaper", "color", "font"),
    ),
)


def _decode_legacy_value(raw: Any) -> Any:
    if not isinstance(raw, str):
        return raw
    try:
        return json.loads(raw)
    except ValueError:
        return raw


def route_for(key: str, routes: Sequence[LegacyRoute] = DEFAULT_ROUTES) -> str | None:
    for route in routes:
        if route.matches(key):
            return route.partition
    return None


def migrate_flat_mapping(
    store: KeyValueStore,
    mapping: Mapping[str, Any],
    routes: Sequence[LegacyRoute] = DEFAULT_ROUTES,
) -> int:
    """
    Copy routed keys from `mapping` into `store`. Runs at most once per store.

    Returns the number of migrated keys (0 if the marker was already set).
    """
    if store.get(Partition.MISC, MIGRATION_MARKER_KEY):
        return 0

    logger.info("Migrating %d legacy keys into store %s", len(mapping), store.schema.name)

    migrated = 0
    skipped: list[str] = []
    for key, raw in mapping.items():
        if raw is None or raw == "":
            continue
        partition = route_for(key, routes)
        if partition is None:
            skipped.append(key)
            continue
        store.set(partition, key, _decode_legacy_value(raw))
        migrated += 1

    store.set(Partition.MISC, MIGRATION_MARKER_KEY, True)

    if skipped:
        logger.debug("Legacy migration left %d unrouted keys: %s", len(skipped), skipped[:20])
    logger.info("Legacy migration done: %d keys", migrated)
    return migrated
