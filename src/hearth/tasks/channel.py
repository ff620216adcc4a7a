# src/hearth/tasks/channel.py

from __future__ import annotations

import asyncio
import logging

from ..errors import DispatchUnavailable
from .messages import DispatchMessage, InboundMessage

logger = logging.getLogger(__name__)


class MessageChannel:
    """
    Two one-way queues between the page side and the background side.

    The background side is reachable only while a worker is attached. Queues
    must be used from the event loop that owns them.
    """

    def __init__(self) -> None:
        self._to_background: asyncio.Queue[DispatchMessage] = asyncio.Queue()
        self._to_page: asyncio.Queue[InboundMessage] = asyncio.Queue()
        self._attached: str | None = None

    # ---- background presence ----

    def attach(self, name: str = "background") -> None:
        if self._attached and self._attached != name:
            logger.warning("Replacing attached worker %s with %s", self._attached, name)
        self._attached = name
        logger.info("Background worker attached: %s", name)

    def detach(self) -> None:
        if self._attached:
            logger.info("Background worker detached: %s", self._attached)
        self._attached = None

    def is_reachable(self) -> bool:
        return self._attached is not None

    # ---- page side ----

    def post_to_background(self, msg: DispatchMessage) -> None:
        if self._attached is None:
            raise DispatchUnavailable("no background worker attached")
        self._to_background.put_nowait(msg)

    async def receive_on_page(self) -> InboundMessage:
        return await self._to_page.get()

    # ---- background side ----

    def post_to_page(self, msg: InboundMessage) -> None:
        self._to_page.put_nowait(msg)

    async def receive_in_background(self) -> DispatchMessage:
        return await self._to_background.get()

    def pending_for_background(self) -> int:
        return self._to_background.qsize()

    def pending_for_page(self) -> int:
        return self._to_page.qsize()
