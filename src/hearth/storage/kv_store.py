# src/hearth/storage/kv_store.py

from __future__ import annotations

import json
import logging
from collections.abc import Iterable, Mapping
from pathlib import Path
from typing import Any

from .engine import MISSING, StorageEngine
from .schema import APP_SCHEMA, Partition, StoreSchema

logger = logging.getLogger(__name__)

DEFAULT_LOOKUP_ORDER = (Partition.MISC, Partition.USER_DATA, Partition.APPEARANCE)


class KeyValueStore:
    """
    Partitioned persistent map of JSON-serializable values.

    Every call is its own transaction. There are no multi-key transactions:
    callers doing read-modify-write on one key (append to a list value, bump a
    counter) must avoid interleaving themselves.
    """

    def __init__(self, db_path: str | Path, schema: StoreSchema = APP_SCHEMA) -> None:
        self._engine = StorageEngine(db_path, schema)
        self.open()

    def open(self) -> None:
        """(Re)open the store, upgrading or recreating it to match the schema."""
        self._engine.open()

    def close(self) -> None:
        """Compatibility hook for shutdown (no persistent connections to close)."""
        return

    @property
    def schema(self) -> StoreSchema:
        return self._engine.schema

    @property
    def partitions(self) -> tuple[str, ...]:
        return self._engine.partitions

    @property
    def path(self) -> Path:
        return self._engine.path

    # ---- codec ----

    @staticmethod
    def _encode(value: Any) -> str:
        return json.dumps(value, ensure_ascii=False)

    @staticmethod
    def _decode(raw: Any) -> Any:
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8")
        return json.loads(raw)

    # ---- single-key operations ----

    def get(self, partition: str, key: str, default: Any = None) -> Any:
        raw = self._engine.get(partition, key)
        if raw is MISSING:
            return default
        return self._decode(raw)

    def set(self, partition: str, key: str, value: Any) -> None:
        self._engine.put(partition, key, self._encode(value))

    def delete(self, partition: str, key: str) -> None:
        self._engine.delete(partition, key)

    def get_first(
        self,
        key: str,
        partitions: Iterable[str] = DEFAULT_LOOKUP_ORDER,
        default: Any = None,
    ) -> Any:
        """Look a key up in several partitions, first hit wins."""
        for partition in partitions:
            raw = self._engine.get(partition, key)
            if raw is not MISSING:
                return self._decode(raw)
        return default

    # ---- partition operations ----

    def list_keys(self, partition: str) -> list[str]:
        return self._engine.keys(partition)

    def get_all(self, partition: str) -> dict[str, Any]:
        return {k: self._decode(v) for k, v in self._engine.items(partition)}

    def clear(self, partition: str) -> None:
        n = self._engine.clear(partition)
        logger.debug("Cleared partition=%s removed=%d", partition, n)

    def clear_all(self) -> None:
        for partition in self._engine.partitions:
            self._engine.clear(partition)
        logger.info("Cleared all partitions of store %s", self.schema.name)

    def partition_size(self, partition: str) -> int:
        """Approximate size in bytes of the partition's JSON encoding."""
        data = self.get_all(partition)
        return len(json.dumps(data, ensure_ascii=False).encode("utf-8"))

    # ---- backup / restore ----

    def export_all(self) -> dict[str, dict[str, Any]]:
        return {p: self.get_all(p) for p in self.schema.partitions}

    def import_all(self, snapshot: Mapping[str, Mapping[str, Any]]) -> int:
        """
        Replace partitions with the snapshot's content.

        Each partition named in the snapshot is cleared before writing (replace,
        not merge). Partitions that are not part of the schema are skipped.
        Returns the number of records written.
        """
        written = 0
        for partition, data in snapshot.items():
            if partition not in self.schema.partitions:
                logger.warning("Import: skipping unknown partition %r", partition)
                continue
            if not isinstance(data, Mapping):
                logger.warning("Import: partition %r is not a mapping; skipping", partition)
                continue
            written += self._engine.replace_partition(
                partition,
                ((str(k), self._encode(v)) for k, v in data.items()),
            )
        logger.info("Imported %d records into store %s", written, self.schema.name)
        return written

    # ---- diagnostics ----

    def diagnose(self) -> dict[str, Any]:
        """Report partitions and run a write/read/delete check in the misc partition."""
        required = list(self.schema.partitions)
        available = list(self._engine.partitions)
        missing = [p for p in required if p not in available]

        check_ok = False
        check_partition = Partition.MISC if Partition.MISC in available else (available or [None])[0]
        if check_partition is not None:
            check_key = "__diag_check__"
            try:
                self.set(check_partition, check_key, "check")
                check_ok = self.get(check_partition, check_key) == "check"
            finally:
                self._engine.delete(check_partition, check_key)

        return {
            "store": self.schema.name,
            "version": self._engine.version,
            "path": str(self.path),
            "available": available,
            "missing": missing,
            "read_write_ok": check_ok,
        }
