"""Bounded single-loop channel used for both control signals and output chunks.

A thin layer over ``asyncio.Queue``: sends never block (``try_send`` either
enqueues or raises), receivers can await the next item or poll. What the
queue lacks is an end of stream, so closing adds one: items already queued
are still delivered, then receivers see None.
"""
from __future__ import annotations

import asyncio
from typing import Any, AsyncIterator, Generic, Optional, TypeVar

from .errors import ChannelClosedError, ChannelFullError

T = TypeVar("T")

# Queued by close() to wake a receiver blocked on an empty queue.
_END: Any = object()
_NOTHING: Any = object()


class Channel(Generic[T]):
    def __init__(self, capacity: int, name: str = "channel") -> None:
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self.capacity = capacity
        self.name = name
        self._queue: "asyncio.Queue[Any]" = asyncio.Queue(maxsize=capacity)
        self._closed = False
        self._end_queued = False
        # Item taken off the queue by wait_nonempty() but not yet received.
        self._held: Any = _NOTHING

    def __len__(self) -> int:
        return self._queue.qsize() - int(self._end_queued) + int(self._held is not _NOTHING)

    @property
    def closed(self) -> bool:
        return self._closed

    def try_send(self, item: T) -> None:
        if self._closed:
            raise ChannelClosedError(f"{self.name} is closed")
        try:
            self._queue.put_nowait(item)
        except asyncio.QueueFull:
            raise ChannelFullError(f"{self.name} is full ({self.capacity} items)") from None

    async def receive(self) -> Optional[T]:
        """Wait for the next item; None once the channel is closed and drained."""
        if self._held is not _NOTHING:
            return self._take_held()
        if self._closed and self._queue.empty():
            return None
        return self._unwrap(await self._queue.get())

    def try_receive(self) -> Optional[T]:
        """Next item, or None if nothing is queued right now."""
        if self._held is not _NOTHING:
            return self._take_held()
        try:
            item = self._unwrap(self._queue.get_nowait())
        except asyncio.QueueEmpty:
            item = None
        if item is None and self._closed:
            raise ChannelClosedError(f"{self.name} is closed")
        return item

    async def wait_nonempty(self, timeout: float) -> bool:
        """Wait up to ``timeout`` seconds for an item (or close); True if one is there."""
        if self._held is not _NOTHING or not self._queue.empty() or self._closed:
            return True
        try:
            item = await asyncio.wait_for(self._queue.get(), timeout)
        except asyncio.TimeoutError:
            return False
        item = self._unwrap(item)
        if item is not None:
            self._held = item
        return True

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            self._queue.put_nowait(_END)
            self._end_queued = True
        except asyncio.QueueFull:
            # Nobody can be blocked on a full queue; receive() ends once it drains.
            pass

    async def __aiter__(self) -> AsyncIterator[T]:
        while True:
            item = await self.receive()
            if item is None:
                return
            yield item

    def _take_held(self) -> T:
        item, self._held = self._held, _NOTHING
        return item

    def _unwrap(self, item: Any) -> Optional[T]:
        if item is _END:
            # Put the marker back so every later receiver sees the end too.
            self._queue.put_nowait(_END)
            return None
        return item


__all__ = ["Channel"]
