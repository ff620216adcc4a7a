# src/hearth/storage/engine.py

from __future__ import annotations

import contextlib
import logging
import sqlite3
from collections.abc import Iterable, Iterator
from pathlib import Path
from typing import Any

from ..errors import (
    PartitionNotFound,
    SchemaDowngrade,
    SchemaMismatch,
    StorageError,
    StorageUnavailable,
)
from .schema import StoreSchema

logger = logging.getLogger(__name__)

MISSING: Any = object()


class StorageEngine:
    """
    Versioned, partitioned SQLite map.

    Layout:
    - _meta(name, value): recorded schema version
    - _partitions(name): partitions created so far
    - records(partition, key, value): values are stored as given (TEXT/BLOB/...)

    Open protocol:
    - new file            -> create all partitions, record version
    - recorded < requested -> create missing partitions, record new version
    - recorded > requested -> SchemaDowngrade
    - any required partition still missing -> destructive recreate (logged)

    Thread-safety:
    - each operation opens its own SQLite connection and commits on exit
    """

    def __init__(self, db_path: str | Path, schema: StoreSchema) -> None:
        self._db_path = Path(db_path)
        self._schema = schema
        self._partitions: frozenset[str] = frozenset()
        self._version: int | None = None

    @property
    def path(self) -> Path:
        return self._db_path

    @property
    def schema(self) -> StoreSchema:
        return self._schema

    @property
    def version(self) -> int | None:
        return self._version

    @property
    def partitions(self) -> tuple[str, ...]:
        known = [p for p in self._schema.partitions if p in self._partitions]
        extra = sorted(p for p in self._partitions if p not in self._schema.partitions)
        return tuple(known + extra)

    # ---- open / recreate ----

    def open(self) -> None:
        try:
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageUnavailable(f"Cannot create directory for {self._db_path}") from e

        try:
            self._open_once()
        except SchemaMismatch as e:
            logger.warning(
                "Store %s (%s) is missing partitions %s; deleting and recreating. "
                "All stored data in this store is lost.",
                self._schema.name,
                self._db_path,
                e.missing,
            )
            self.destroy()
            try:
                self._open_once()
            except SchemaMismatch as e2:
                raise StorageUnavailable(
                    f"Store {self._schema.name} still missing partitions after recreate"
                ) from e2

        logger.info(
            "Store ready name=%s version=%s db=%s partitions=%d",
            self._schema.name,
            self._version,
            self._db_path,
            len(self._partitions),
        )

    def _open_once(self) -> None:
        try:
            conn = self._get_conn()
        except sqlite3.Error as e:
            raise StorageUnavailable(f"Failed to open store at {self._db_path}") from e

        try:
            cur = conn.cursor()
            cur.execute("CREATE TABLE IF NOT EXISTS _meta (name TEXT PRIMARY KEY, value TEXT)")
            cur.execute("CREATE TABLE IF NOT EXISTS _partitions (name TEXT PRIMARY KEY)")
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS records (
                    partition TEXT NOT NULL,
                    key TEXT NOT NULL,
                    value,
                    PRIMARY KEY (partition, key)
                )
                """
            )

            cur.execute("SELECT value FROM _meta WHERE name = 'version'")
            row = cur.fetchone()
            recorded = int(row["value"]) if row is not None else None
            requested = self._schema.version

            if recorded is not None and recorded > requested:
                raise SchemaDowngrade(recorded, requested)

            if recorded is None or recorded < requested:
                logger.info(
                    "Store %s upgrade needed from version %s to %s",
                    self._schema.name,
                    recorded,
                    requested,
                )
                for name in self._schema.partitions:
                    cur.execute("INSERT OR IGNORE INTO _partitions(name) VALUES (?)", (name,))
                cur.execute(
                    "INSERT OR REPLACE INTO _meta(name, value) VALUES ('version', ?)",
                    (str(requested),),
                )
            conn.commit()

            cur.execute("SELECT name FROM _partitions")
            present = {r["name"] for r in cur.fetchall()}
        except sqlite3.DatabaseError as e:
            raise StorageUnavailable(f"Store at {self._db_path} is not usable") from e
        finally:
            conn.close()

        missing = [p for p in self._schema.partitions if p not in present]
        if missing:
            raise SchemaMismatch(missing)

        self._partitions = frozenset(present)
        self._version = requested

    def destroy(self) -> None:
        """Delete the database file (and its WAL side files)."""
        self._partitions = frozenset()
        self._version = None
        for suffix in ("", "-wal", "-shm"):
            with contextlib.suppress(FileNotFoundError):
                Path(str(self._db_path) + suffix).unlink()

    # ---- low-level helpers ----

    def _get_conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self._db_path), timeout=30.0)
        conn.row_factory = sqlite3.Row
        self._configure_conn(conn)
        return conn

    @staticmethod
    def _configure_conn(conn: sqlite3.Connection) -> None:
        with contextlib.suppress(Exception):
            conn.execute("PRAGMA journal_mode=WAL")

    @contextlib.contextmanager
    def _session(self) -> Iterator[sqlite3.Cursor]:
        if self._version is None:
            raise StorageError(f"Store {self._schema.name} is not open")
        try:
            conn = self._get_conn()
        except sqlite3.Error as e:
            raise StorageUnavailable(f"Failed to open store at {self._db_path}") from e
        try:
            yield conn.cursor()
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            raise StorageError(f"Store {self._schema.name} operation failed: {e}") from e
        finally:
            conn.close()

    def require(self, partition: str) -> None:
        if self._version is None:
            raise StorageError(f"Store {self._schema.name} is not open")
        if partition not in self._partitions:
            raise PartitionNotFound(partition, list(self.partitions))

    # ---- public API ----

    def get(self, partition: str, key: str) -> Any:
        """Return the stored value, or MISSING."""
        self.require(partition)
        with self._session() as cur:
            cur.execute(
                "SELECT value FROM records WHERE partition = ? AND key = ?",
                (partition, key),
            )
            row = cur.fetchone()
        return MISSING if row is None else row["value"]

    def put(self, partition: str, key: str, value: Any) -> None:
        self.require(partition)
        with self._session() as cur:
            cur.execute(
                "INSERT OR REPLACE INTO records(partition, key, value) VALUES (?, ?, ?)",
                (partition, key, value),
            )

    def replace_partition(self, partition: str, items: Iterable[tuple[str, Any]]) -> int:
        """Clear the partition and write items, in one transaction."""
        self.require(partition)
        rows = [(partition, k, v) for k, v in items]
        with self._session() as cur:
            cur.execute("DELETE FROM records WHERE partition = ?", (partition,))
            cur.executemany(
                "INSERT OR REPLACE INTO records(partition, key, value) VALUES (?, ?, ?)",
                rows,
            )
        return len(rows)

    def delete(self, partition: str, key: str) -> bool:
        self.require(partition)
        with self._session() as cur:
            cur.execute("DELETE FROM records WHERE partition = ? AND key = ?", (partition, key))
            return cur.rowcount > 0

    def keys(self, partition: str) -> list[str]:
        self.require(partition)
        with self._session() as cur:
            cur.execute("SELECT key FROM records WHERE partition = ? ORDER BY key", (partition,))
            return [str(r["key"]) for r in cur.fetchall()]

    def items(self, partition: str) -> list[tuple[str, Any]]:
        self.require(partition)
        with self._session() as cur:
            cur.execute(
                "SELECT key, value FROM records WHERE partition = ? ORDER BY key",
                (partition,),
            )
            return [(str(r["key"]), r["value"]) for r in cur.fetchall()]

    def clear(self, partition: str) -> int:
        self.require(partition)
        with self._session() as cur:
            cur.execute("DELETE FROM records WHERE partition = ?", (partition,))
            return cur.rowcount

    def count(self, partition: str) -> int:
        self.require(partition)
        with self._session() as cur:
            cur.execute("SELECT COUNT(*) FROM records WHERE partition = ?", (partition,))
            (n,) = cur.fetchone()
            return int(n)
