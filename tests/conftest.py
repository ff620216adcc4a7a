# tests/conftest.py

from __future__ import annotations

from pathlib import Path
from types import SimpleNamespace

import pytest

from hearth.cli.bootstrap import create_session
from hearth.core.state import SessionContext
from hearth.storage.kv_store import KeyValueStore
from hearth.tasks.task_queue import TaskQueue

from .fakes import FakeUpstream


@pytest.fixture()
def settings(tmp_path: Path) -> SimpleNamespace:
    """
    Minimal settings object compatible with the session and core modules.

    We intentionally use a SimpleNamespace rather than importing real config,
    to keep unit tests isolated and deterministic.
    """
    return SimpleNamespace(
        app_name="hearth-test",
        log_level="DEBUG",
        # Paths (tmp per test run)
        data_dir=tmp_path,
        store_db_path=tmp_path / "store.sqlite3",
        blob_db_path=tmp_path / "blobs.sqlite3",
        # Upstream defaults used when a payload carries none
        upstream_api_key="test-key",
        upstream_base_url="http://upstream.invalid/v1",
        upstream_model="test-model",
        upstream_temperature=0.5,
        upstream_max_tokens=None,
        upstream_connect_timeout=1.0,
        upstream_read_timeout=1.0,
        # Tasks / blobs / decoding
        task_retention_seconds=24 * 3600,
        background_enabled=False,
        avatar_max_px=200,
        avatar_quality=90,
        decoder_preview_chars=500,
        profile_cache_ttl_seconds=5.0,
    )


@pytest.fixture()
def upstream() -> FakeUpstream:
    return FakeUpstream()


@pytest.fixture()
def store(tmp_path: Path) -> KeyValueStore:
    return KeyValueStore(tmp_path / "store.sqlite3")


@pytest.fixture()
def queue(store: KeyValueStore) -> TaskQueue:
    """Task queue without a dispatcher: tasks stay pending."""
    return TaskQueue(store)


@pytest.fixture()
def session(settings: SimpleNamespace, upstream: FakeUpstream):
    """
    SessionContext wired with a deterministic upstream.

    NOTE: We keep real SQLite stores here because their correctness is part
    of what we want to test.
    """
    s: SessionContext = create_session(settings=settings, upstream=upstream)
    yield s
    s.close()
