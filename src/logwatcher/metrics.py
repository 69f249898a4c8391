"""Metrics helper for watchers.

Provides a lightweight, dependency-free snapshot of internal counters suitable
for exposure via logging or an embedding application's own endpoint. Reading
the snapshot never touches the watcher loop.
"""
from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import TYPE_CHECKING, Any, Dict

if TYPE_CHECKING:  # pragma: no cover - typing only
    from .watcher import LogWatcher


@dataclass
class WatcherStats:
    chunks: int = 0
    bytes: int = 0
    forced_flushes: int = 0
    rotations: int = 0
    reloads: int = 0
    signals: int = 0

    def record_chunk(self, size: int) -> None:
        self.chunks += 1
        self.bytes += size


def watcher_metrics(watcher: "LogWatcher") -> Dict[str, Any]:
    cfg = watcher.config
    return {
        "path": str(watcher.path),
        "mode": watcher.mode.value,
        "state": watcher.state,
        "queued_chunks": watcher.queued,
        **asdict(watcher.stats),
        "config": {
            "poll_interval": cfg.poll_interval,
            "reload_interval": cfg.reload_interval,
            "read_chunk_threshold": cfg.read_chunk_threshold,
            "max_line_bytes": cfg.max_line_bytes,
            "output_capacity": cfg.output_capacity,
            "signal_capacity": cfg.signal_capacity,
        },
    }

__all__ = ["WatcherStats", "watcher_metrics"]
