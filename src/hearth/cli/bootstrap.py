# src/hearth/cli/bootstrap.py

"""
CLI bootstrap helpers.

This module is the "composition root":
- loads settings once,
- ensures local (gitignored) directories exist,
- wires concrete implementations into a SessionContext (stores/tasks/upstream).
"""

from __future__ import annotations

import logging

from ..blobs.cache import BlobCache
from ..config import get_settings
from ..core.ports import UpstreamClient
from ..core.state import ProfileCache, SessionContext
from ..llm.client import OpenAIUpstreamClient
from ..llm.offline import OfflineUpstreamClient
from ..storage.kv_store import KeyValueStore
from ..tasks.channel import MessageChannel
from ..tasks.dispatcher import Dispatcher
from ..tasks.task_queue import TaskQueue

logger = logging.getLogger(__name__)


def _ensure_local_dirs(settings) -> None:
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    settings.store_db_path.parent.mkdir(parents=True, exist_ok=True)
    settings.blob_db_path.parent.mkdir(parents=True, exist_ok=True)


def build_upstream(settings) -> UpstreamClient:
    """Real client when a key is configured, otherwise the offline demo client."""
    if not getattr(settings, "upstream_api_key", None):
        logger.warning("No upstream API key configured; using offline demo client.")
        return OfflineUpstreamClient()
    return OpenAIUpstreamClient(
        connect_timeout=settings.upstream_connect_timeout,
        read_timeout=settings.upstream_read_timeout,
    )


def create_session(*, settings=None, upstream: UpstreamClient | None = None) -> SessionContext:
    """
    Create a SessionContext from the provided settings.

    Keeping settings injectable makes the app easier to test and avoids hidden global config reads.
    If settings is None, falls back to get_settings().
    """
    if settings is None:
        settings = get_settings()

    _ensure_local_dirs(settings)

    store = KeyValueStore(settings.store_db_path)
    blobs = BlobCache(
        settings.blob_db_path,
        avatar_max_px=settings.avatar_max_px,
        avatar_quality=settings.avatar_quality,
    )

    channel = MessageChannel()
    tasks = TaskQueue(store)
    dispatcher = Dispatcher(channel, tasks, defaults=settings)
    # the queue and the dispatcher reference each other
    tasks.dispatcher = dispatcher

    session = SessionContext(
        settings=settings,
        store=store,
        blobs=blobs,
        tasks=tasks,
        channel=channel,
        dispatcher=dispatcher,
        upstream=upstream if upstream is not None else build_upstream(settings),
        profile=ProfileCache(ttl_seconds=settings.profile_cache_ttl_seconds),
    )
    logger.info("Session ready store=%s blobs=%s", settings.store_db_path, settings.blob_db_path)
    return session
