# src/hearth/blobs/cache.py

from __future__ import annotations

import logging
import threading
from collections.abc import Iterable, Mapping
from concurrent.futures import Future, ThreadPoolExecutor, wait
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from ..storage.engine import MISSING, StorageEngine
from ..storage.schema import BLOB_SCHEMA, StoreSchema
from .categories import (
    UNCATEGORIZED,
    BlobCategory,
    build_storage_key,
    category_for_key,
    split_storage_key,
)
from .handles import BlobHandle, HandleRegistry
from .transforms import decode_text_payload, recompress_image

logger = logging.getLogger(__name__)

_CATEGORY_VALUES = frozenset(c.value for c in BlobCategory)


@dataclass(frozen=True, slots=True)
class BlobEntry:
    original_key: str
    storage_key: str
    category: str


@dataclass(frozen=True, slots=True)
class CategoryStats:
    count: int
    size_bytes: int

    @property
    def size_kb(self) -> str:
        return f"{self.size_bytes / 1024:.2f}"


class BlobCache:
    """
    Binary payload store keyed by category (`category/key`), with display handles.

    Reads discover two legacy layouts lazily and migrate them forward on a
    background thread: entries stored under the bare key, and entries stored as
    base64 text instead of bytes. Migration never blocks or fails the read.

    Saves keep one stored copy per key. It normally lives under the category inferred
    from the key; a save with an explicit category puts it elsewhere, so lookups
    and deletes check every category prefix and the bare key.
    """

    def __init__(
        self,
        db_path: str | Path,
        *,
        handles: HandleRegistry | None = None,
        avatar_max_px: int = 200,
        avatar_quality: int = 90,
        schema: StoreSchema = BLOB_SCHEMA,
    ) -> None:
        self._engine = StorageEngine(db_path, schema)
        self._engine.open()
        self._partition = schema.partitions[0]
        self.handles = handles if handles is not None else HandleRegistry()
        self._avatar_max_px = int(avatar_max_px)
        self._avatar_quality = int(avatar_quality)

        self._migrator = ThreadPoolExecutor(max_workers=1, thread_name_prefix="blob-migrate")
        self._pending: set[Future[None]] = set()
        self._pending_lock = threading.Lock()

        # writes and migration rewrites are serialized; a rewrite only lands if the
        # key was not saved, deleted or cleared since it was read
        self._write_lock = threading.Lock()
        self._generations: dict[str, int] = {}
        self._epoch = 0

    def close(self) -> None:
        self.wait_for_migrations()
        self._migrator.shutdown(wait=True)

    # ---- save-time transform ----

    def _transform(self, key: str, payload: bytes, category: BlobCategory) -> bytes:
        if category is not BlobCategory.AVATARS:
            return payload
        try:
            return recompress_image(
                payload, max_px=self._avatar_max_px, quality=self._avatar_quality
            )
        except ValueError:
            logger.warning("Avatar %s is not a decodable image; storing as-is", key)
            return payload

    # ---- background migration ----

    def _bump(self, key: str) -> None:
        # caller holds _write_lock; queued rewrites for this key become stale
        self._generations[key] = self._generations.get(key, 0) + 1

    def _stamp(self, key: str) -> tuple[int, int]:
        with self._write_lock:
            return self._epoch, self._generations.get(key, 0)

    def _schedule_rewrite(
        self, key: str, storage_key: str, data: bytes, reason: str, stamp: tuple[int, int]
    ) -> None:
        logger.info("Migrating blob %s (%s)", key, reason)
        fut = self._migrator.submit(self._rewrite, key, storage_key, data, stamp)
        with self._pending_lock:
            self._pending.add(fut)
        fut.add_done_callback(self._forget)

    def _forget(self, fut: Future[None]) -> None:
        with self._pending_lock:
            self._pending.discard(fut)

    def _rewrite(self, key: str, storage_key: str, data: bytes, stamp: tuple[int, int]) -> None:
        try:
            with self._write_lock:
                if (self._epoch, self._generations.get(key, 0)) != stamp:
                    logger.debug("Blob %s changed since it was read; migration skipped", key)
                    return
                self._engine.put(self._partition, storage_key, data)
        except Exception:
            logger.exception("Blob migration failed for %s", key)
            return
        logger.info("Blob %s migrated to %s", key, storage_key)

    def wait_for_migrations(self, timeout: float | None = None) -> None:
        with self._pending_lock:
            pending = list(self._pending)
        if pending:
            wait(pending, timeout=timeout)

    # ---- lookup ----

    @staticmethod
    def _locations(key: str) -> list[str]:
        """Every storage key an entry for `key` may live under, in lookup order."""
        if "/" in key:
            return [key]
        primary = build_storage_key(key)
        hinted = [f"{c.value}/{key}" for c in BlobCategory if f"{c.value}/{key}" != primary]
        return [primary, *hinted, key]

    def _read(self, key: str) -> tuple[bytes, str, str | None] | None:
        """
        Find the stored payload for `key`.

        Returns (data, storage_key to keep it under, migration reason or None).
        Categorized locations win over the bare legacy key.
        """
        for location in self._locations(key):
            raw = self._engine.get(self._partition, location)
            if raw is MISSING or raw is None:
                continue

            bare = "/" not in location
            target = build_storage_key(key) if bare else location
            if isinstance(raw, str):
                try:
                    data = decode_text_payload(raw)
                except ValueError:
                    logger.warning("Blob %s holds undecodable text; ignoring", key)
                    return None
                return data, target, "base64 text -> binary"
            return bytes(raw), target, "bare key -> categorized key" if bare else None
        return None

    def _drop_locations(self, key: str, keep: str | None = None) -> None:
        # caller holds _write_lock
        for location in self._locations(key):
            if location != keep:
                self._engine.delete(self._partition, location)

    # ---- public API ----

    def save_blob(
        self, key: str, payload: bytes, category: BlobCategory | str | None = None
    ) -> BlobHandle:
        cat = BlobCategory(category) if category else category_for_key(key)
        data = self._transform(key, bytes(payload), cat)
        storage_key = build_storage_key(key, cat)
        with self._write_lock:
            self._bump(key)
            self._engine.put(self._partition, storage_key, data)
            # one stored copy per key, wherever an earlier save or legacy layout put it
            self._drop_locations(key, keep=storage_key)
        logger.debug("Saved blob %s (%d bytes)", storage_key, len(data))
        return self.handles.issue(key, data)

    def get_blob(self, key: str) -> BlobHandle | None:
        live = self.handles.get(key)
        if live is not None:
            return live

        # stamped before the read so a delete racing this read wins
        stamp = self._stamp(key)
        found = self._read(key)
        if found is None:
            return None
        data, storage_key, reason = found
        if reason is not None:
            self._schedule_rewrite(key, storage_key, data, reason, stamp)
        return self.handles.issue(key, data)

    def delete_blob(self, key: str) -> None:
        self.handles.revoke(key)
        with self._write_lock:
            self._bump(key)
            self._drop_locations(key)

    def copy_blob(self, from_key: str, to_key: str) -> BlobHandle | None:
        found = self._read(from_key)
        if found is None:
            return None
        data = found[0]
        storage_key = build_storage_key(to_key)
        with self._write_lock:
            self._bump(to_key)
            self._engine.put(self._partition, storage_key, data)
            self._drop_locations(to_key, keep=storage_key)
        return self.handles.issue(to_key, data)

    def list_all(self) -> list[BlobEntry]:
        out: list[BlobEntry] = []
        for storage_key in self._engine.keys(self._partition):
            category, original = split_storage_key(storage_key)
            out.append(BlobEntry(original_key=original, storage_key=storage_key, category=category))
        return out

    def category_stats(self) -> dict[str, CategoryStats]:
        counts: dict[str, list[int]] = {c.value: [0, 0] for c in BlobCategory}
        counts[UNCATEGORIZED] = [0, 0]

        for storage_key, raw in self._engine.items(self._partition):
            category, _ = split_storage_key(storage_key)
            if category not in counts:
                category = UNCATEGORIZED
            counts[category][0] += 1
            counts[category][1] += _stored_size(raw)

        return {c: CategoryStats(count=n, size_bytes=size) for c, (n, size) in counts.items()}

    def garbage_collect(self, live_keys: Iterable[str]) -> int:
        """Delete every entry whose key is not in live_keys. Values are not inspected."""
        keep = set(live_keys)
        doomed = [e for e in self.list_all() if e.original_key not in keep]

        logger.info("Garbage collecting %d unused blobs", len(doomed))
        for entry in doomed:
            self.handles.revoke(entry.original_key)
            with self._write_lock:
                self._bump(entry.original_key)
                self._engine.delete(self._partition, entry.storage_key)
        return len(doomed)

    # ---- bulk ----

    def export_all(self) -> dict[str, tuple[bytes, str]]:
        out: dict[str, tuple[bytes, str]] = {}
        for storage_key, raw in self._engine.items(self._partition):
            category, original = split_storage_key(storage_key)
            if raw is None:
                continue
            if isinstance(raw, str):
                try:
                    data = decode_text_payload(raw)
                except ValueError:
                    logger.warning("Export: skipping undecodable blob %s", storage_key)
                    continue
            else:
                data = bytes(raw)
            # a categorized entry wins over its bare legacy twin
            if original in out and category == UNCATEGORIZED:
                continue
            out[original] = (data, category)
        return out

    def import_all(self, data: Mapping[str, Any]) -> int:
        """
        Write payloads under their categorized keys (no save-time transform).

        Values are bytes, or (bytes, category) pairs as produced by export_all.
        """
        n = 0
        for key, value in data.items():
            if isinstance(value, tuple):
                payload, category = value
                cat = category if category in _CATEGORY_VALUES else None
            else:
                payload, cat = value, None
            storage_key = build_storage_key(key, cat)
            with self._write_lock:
                self._bump(key)
                self._engine.put(self._partition, storage_key, bytes(payload))
                self._drop_locations(key, keep=storage_key)
            self.handles.revoke(key)
            n += 1
        logger.info("Imported %d blobs", n)
        return n

    def clear_all(self) -> None:
        self.handles.revoke_all()
        with self._write_lock:
            self._epoch += 1
            self._generations.clear()
            self._engine.clear(self._partition)
        logger.info("All blobs cleared")


def _stored_size(raw: Any) -> int:
    if isinstance(raw, (bytes, bytearray, memoryview)):
        return len(raw)
    if isinstance(raw, str):
        return len(raw.encode("utf-8"))
    return 0
