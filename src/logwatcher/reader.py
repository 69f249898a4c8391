"""Buffered file reader with the two read strategies used by watchers.

``read_next`` performs one read and publishes zero or one chunk to the output
channel, returning how many bytes it handled:

- DRAIN_TO_END reads until end-of-stream and publishes everything as one chunk.
- NEXT_LINE reads one line. Unterminated tails stay pending across calls until
  a newline arrives, or until the pending line reaches ``max_line_bytes``, in
  which case it is published anyway so memory stays bounded.

File I/O runs on aiofiles' thread pool: a long read holds up its own watcher
but never the event loop. A vanished file or a short read
(``FileNotFoundError``/``EOFError``) counts as zero bytes; the state machine
sorts that out. Every other ``OSError`` propagates, as does
``ChannelFullError`` from a full output channel.
"""
from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import Any, Optional

import aiofiles

from .channel import Channel
from .config import WatcherConfig
from .metrics import WatcherStats
from .probe import PathLike, probe

_TRANSIENT = (FileNotFoundError, EOFError)


class ReadMode(Enum):
    DRAIN_TO_END = "drain"
    NEXT_LINE = "line"


class BufferedReader:
    def __init__(
        self,
        handle: Any,
        path: Path,
        mode: ReadMode,
        channel: "Channel[bytes]",
        config: WatcherConfig,
        last_token: int = 0,
        stats: Optional[WatcherStats] = None,
    ) -> None:
        self.handle = handle
        self.path = path
        self.mode = mode
        self.channel = channel
        self.config = config
        self.last_token = last_token
        self.stats = stats
        self._pending = bytearray()

    @classmethod
    async def open(
        cls,
        path: PathLike,
        mode: ReadMode,
        channel: "Channel[bytes]",
        config: WatcherConfig,
        stats: Optional[WatcherStats] = None,
    ) -> "BufferedReader":
        path = Path(path)
        handle = await aiofiles.open(path, "rb")
        try:
            token = await probe(path)
        except BaseException:
            await handle.close()
            raise
        return cls(handle, path, mode, channel, config, last_token=token, stats=stats)

    @property
    def pending(self) -> int:
        return len(self._pending)

    @property
    def closed(self) -> bool:
        return self.handle.closed

    async def tell(self) -> int:
        return await self.handle.tell()

    async def seek_to_end(self) -> int:
        return await self.handle.seek(0, 2)

    async def read_next(self) -> int:
        if self.mode is ReadMode.NEXT_LINE:
            return await self._read_line()
        return await self._read_to_end()

    def flush_pending(self) -> int:
        """Publish a buffered partial line, if any."""
        if not self._pending:
            return 0
        chunk = bytes(self._pending)
        self._pending.clear()
        self._publish(chunk)
        return len(chunk)

    async def refresh_token(self) -> None:
        try:
            self.last_token = await probe(self.path)
        except _TRANSIENT:
            # Path vanished right after a read; the next zero read notices.
            pass

    async def close(self) -> None:
        await self.handle.close()

    async def _read_to_end(self) -> int:
        try:
            data = await self.handle.read()
        except _TRANSIENT:
            return 0
        if not data:
            return 0
        self._publish(data)
        await self.refresh_token()
        return len(data)

    async def _read_line(self) -> int:
        room = self.config.max_line_bytes - len(self._pending)
        try:
            piece = await self.handle.readline(room)
        except _TRANSIENT:
            return 0
        if not piece:
            return 0
        self._pending += piece
        if piece.endswith(b"\n"):
            size = self.flush_pending()
            await self.refresh_token()
            return size
        if len(self._pending) >= self.config.max_line_bytes:
            if self.stats is not None:
                self.stats.forced_flushes += 1
            size = self.flush_pending()
            await self.refresh_token()
            return size
        # Hit end-of-file mid-line; keep the tail until its terminator shows up.
        return len(piece)

    def _publish(self, chunk: bytes) -> None:
        self.channel.try_send(chunk)
        if self.stats is not None:
            self.stats.record_chunk(len(chunk))

    def __repr__(self) -> str:  # pragma: no cover - debugging aid
        return f"BufferedReader(path={str(self.path)!r}, mode={self.mode.value}, pending={len(self._pending)})"


__all__ = ["BufferedReader", "ReadMode"]
