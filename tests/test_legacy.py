# tests/test_legacy.py

from __future__ import annotations

from hearth.storage.kv_store import KeyValueStore
from hearth.storage.legacy import MIGRATION_MARKER_KEY, migrate_flat_mapping, route_for
from hearth.storage.schema import Partition


def test_routes_follow_key_conventions() -> None:
    assert route_for("userData") == Partition.USER_DATA
    assert route_for("chat_messages_c1") == Partition.CHAT_MESSAGES
    assert route_for("chat_detail_settings_c1") == Partition.CHAT_SETTINGS
    assert route_for("api_settings") == Partition.API_SETTINGS
    assert route_for("accent_color") == Partition.APPEARANCE
    assert route_for("desktop-wallpaper") == Partition.MISC
    assert route_for("bubble_font") == Partition.MISC
    assert route_for("something_else") is None


def test_migration_decodes_json_and_runs_once(store: KeyValueStore) -> None:
    legacy = {
        "characters": '[{"id": "c1"}]',
        "chat_messages_c1": '[{"text": "hi"}]',
        "customTextTitle": "not json at all",
        "random_key": "ignored",
        "api_settings": "",
    }

    assert migrate_flat_mapping(store, legacy) == 3
    assert store.get(Partition.CHARACTERS, "characters") == [{"id": "c1"}]
    assert store.get(Partition.CHAT_MESSAGES, "chat_messages_c1") == [{"text": "hi"}]
    assert store.get(Partition.MISC, "customTextTitle") == "not json at all"
    assert store.get(Partition.MISC, MIGRATION_MARKER_KEY) is True

    # second run is a no-op
    assert migrate_flat_mapping(store, {"characters": "[]"}) == 0
    assert store.get(Partition.CHARACTERS, "characters") == [{"id": "c1"}]
