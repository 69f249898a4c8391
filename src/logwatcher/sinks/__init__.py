"""Chunk sink abstractions.

Consumers of a watcher hand each emitted chunk to a sink. Used by the CLI for
stdout and JSONL output; embedding applications can plug their own.
"""
from __future__ import annotations
import json
import time
from typing import BinaryIO, List, Protocol

class ChunkSink(Protocol):  # pragma: no cover - simple protocol
    def emit(self, chunk: bytes) -> None: ...  # noqa: D401,E701 - protocol stub
    def close(self) -> None: ...

class StreamSink:
    """Write raw chunk bytes to a binary stream (e.g. ``sys.stdout.buffer``)."""

    def __init__(self, stream: BinaryIO) -> None:
        self._stream = stream

    def emit(self, chunk: bytes) -> None:
        self._stream.write(chunk)
        self._stream.flush()

    def close(self) -> None:  # pragma: no cover - caller owns the stream
        self._stream.flush()

class JsonlSink:
    def __init__(self, path: str, source: str = "") -> None:
        self.path = path
        self.source = source
        self._fh = open(path, "a", encoding="utf-8")

    def emit(self, chunk: bytes) -> None:
        record = {
            "ts": time.time(),
            "path": self.source,
            "bytes": len(chunk),
            "text": chunk.decode("utf-8", errors="replace"),
        }
        self._fh.write(json.dumps(record) + "\n")
        self._fh.flush()

    def close(self) -> None:
        self._fh.close()

class MultiSink:
    def __init__(self, sinks: List[ChunkSink]):
        self._sinks = sinks

    def emit(self, chunk: bytes) -> None:
        for s in self._sinks:
            try:
                s.emit(chunk)
            except Exception:  # noqa: BLE001
                # Best-effort; individual sink failure should not cascade.
                pass

    def close(self) -> None:
        for s in self._sinks:
            try:
                s.close()
            except Exception:  # noqa: BLE001
                pass

__all__ = ["ChunkSink", "JsonlSink", "MultiSink", "StreamSink"]
