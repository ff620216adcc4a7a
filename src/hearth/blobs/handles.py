# src/hearth/blobs/handles.py

from __future__ import annotations

import logging
import threading
from types import TracebackType

from ..errors import HandleRevoked

logger = logging.getLogger(__name__)


class BlobHandle:
    """
    Short-lived, process-local reference to a blob payload, used for display.

    Use it as a context manager to tie its lifetime to whatever shows it:

        with cache.get_blob("avatar") as handle:
            render(handle.read())
    """

    __slots__ = ("_key", "_data", "_revoked", "_registry")

    def __init__(self, key: str, data: bytes, registry: HandleRegistry | None = None) -> None:
        self._key = key
        self._data: bytes | None = bytes(data)
        self._revoked = False
        self._registry = registry

    @property
    def key(self) -> str:
        return self._key

    @property
    def revoked(self) -> bool:
        return self._revoked

    @property
    def size(self) -> int:
        return len(self.read())

    def read(self) -> bytes:
        if self._revoked or self._data is None:
            raise HandleRevoked(self._key)
        return self._data

    def release(self) -> None:
        """Release this handle. A no-op if a newer handle already replaced it."""
        if self._registry is not None:
            self._registry.release(self)
        else:
            self._revoke()

    def _revoke(self) -> None:
        self._revoked = True
        self._data = None

    def __enter__(self) -> BlobHandle:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.release()

    def __repr__(self) -> str:
        state = "revoked" if self._revoked else f"{len(self._data or b'')} bytes"
        return f"BlobHandle({self._key!r}, {state})"


class HandleRegistry:
    """
    At most one live handle per key.

    Issuing a handle for a key revokes the previous one first. Owned by the
    session (see core.state.SessionContext), never module-global.
    """

    def __init__(self) -> None:
        self._handles: dict[str, BlobHandle] = {}
        self._lock = threading.Lock()

    def issue(self, key: str, data: bytes) -> BlobHandle:
        handle = BlobHandle(key, data, registry=self)
        with self._lock:
            prev = self._handles.get(key)
            if prev is not None:
                prev._revoke()
            self._handles[key] = handle
        return handle

    def get(self, key: str) -> BlobHandle | None:
        with self._lock:
            return self._handles.get(key)

    def revoke(self, key: str) -> bool:
        with self._lock:
            handle = self._handles.pop(key, None)
        if handle is None:
            return False
        handle._revoke()
        return True

    def release(self, handle: BlobHandle) -> None:
        with self._lock:
            if self._handles.get(handle.key) is handle:
                del self._handles[handle.key]
        handle._revoke()

    def revoke_all(self) -> int:
        with self._lock:
            handles = list(self._handles.values())
            self._handles.clear()
        for h in handles:
            h._revoke()
        if handles:
            logger.debug("Revoked %d blob handles", len(handles))
        return len(handles)

    def __len__(self) -> int:
        with self._lock:
            return len(self._handles)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._handles
