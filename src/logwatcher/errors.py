"""Exception taxonomy for watcher loops.

Transient absence (file not found, unexpected end of stream) never surfaces
here; it drives the Missing -> Reloading cycle instead. What remains is fatal
and propagates out of the driving task.
"""
from __future__ import annotations


class WatcherError(Exception):
    """Base class for logwatcher-specific failures."""


class ChannelFullError(WatcherError, OSError):
    """Publishing to a bounded channel found it at capacity.

    Raised from the output path this terminates the watcher loop; a slow
    consumer is not given backpressure.
    """


class ChannelClosedError(WatcherError):
    """The channel was closed (its watcher loop has exited)."""


class AlreadySpawnedError(WatcherError, RuntimeError):
    """``spawn()`` was called twice on the same watcher."""


__all__ = ["AlreadySpawnedError", "ChannelClosedError", "ChannelFullError", "WatcherError"]
