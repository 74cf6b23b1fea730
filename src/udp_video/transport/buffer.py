"""
Datagram Backlog
================

Hand-off between the asyncio datagram protocol and a receiver session.

The protocol's datagram_received() callback is the producer: it runs
synchronously on the event loop and must never wait. The session is the
single consumer and pulls one datagram body per receive().

Rules:
    - Holds at most `maxsize` datagram bodies
    - When full, the stalest body is evicted to admit the new one
    - Bodies are kept whole and in arrival order
    - Empty bodies are stored like any other
"""

import asyncio
import logging
from typing import Optional


logger = logging.getLogger(__name__)


class DatagramBuffer:
    """
    Small latest-wins backlog of datagram bodies.

    A receiver that falls behind catches up by losing its stalest frames
    first, never by growing a queue of old ones.

    Attributes:
        maxsize: Capacity in datagrams
        dropped_count: Bodies evicted to make room
        total_put: Bodies offered by the protocol callback
    """

    def __init__(self, maxsize: int = 4) -> None:
        if maxsize < 1:
            raise ValueError("maxsize must be >= 1")

        self._maxsize = maxsize
        self._pending: asyncio.Queue[bytes] = asyncio.Queue(maxsize=maxsize)
        self._dropped_count: int = 0
        self._total_put: int = 0

    @property
    def maxsize(self) -> int:
        return self._maxsize

    @property
    def size(self) -> int:
        return self._pending.qsize()

    @property
    def dropped_count(self) -> int:
        return self._dropped_count

    @property
    def total_put(self) -> int:
        return self._total_put

    def put_nowait(self, payload: bytes) -> bool:
        """
        Admit one datagram body from the protocol callback.

        Returns:
            False if a stale body had to be evicted, True otherwise
        """
        self._total_put += 1
        evicted = False

        if self._pending.full():
            try:
                self._pending.get_nowait()
            except asyncio.QueueEmpty:
                pass
            else:
                self._dropped_count += 1
                evicted = True
                logger.debug(f"Backlog full, evicted stale datagram ({self._dropped_count} so far)")

        self._pending.put_nowait(payload)
        return not evicted

    async def get(self, timeout: Optional[float] = None) -> Optional[bytes]:
        """Next datagram body, or None if `timeout` seconds pass first."""
        try:
            return await asyncio.wait_for(self._pending.get(), timeout=timeout)
        except asyncio.TimeoutError:
            return None

    def get_nowait(self) -> Optional[bytes]:
        try:
            return self._pending.get_nowait()
        except asyncio.QueueEmpty:
            return None

    def clear(self) -> int:
        """Discard the backlog; returns how many bodies were discarded."""
        discarded = 0
        while self.get_nowait() is not None:
            discarded += 1
        return discarded

    def metrics(self) -> dict:
        return {
            "size": self.size,
            "maxsize": self._maxsize,
            "dropped_count": self._dropped_count,
            "total_put": self._total_put,
        }
