"""Package metadata and public surface for logwatcher.

Expose a single source of truth for the version. Prefer reading from
importlib.metadata so that an editable install or wheel always reports
the version declared in pyproject.toml. Fallback to a hardcoded string
when metadata is unavailable (direct source usage without installation).
"""

from __future__ import annotations

from importlib import metadata as _metadata

from .config import WatcherConfig
from .errors import AlreadySpawnedError, ChannelClosedError, ChannelFullError, WatcherError
from .reader import ReadMode
from .signals import Close, Reload, Swap
from .watcher import LogWatcher

__all__ = [
	"__version__",
	"AlreadySpawnedError",
	"ChannelClosedError",
	"ChannelFullError",
	"Close",
	"LogWatcher",
	"ReadMode",
	"Reload",
	"Swap",
	"WatcherConfig",
	"WatcherError",
]

_FALLBACK_VERSION = "0.1.0"  # MUST match pyproject.toml [project].version

try:  # pragma: no cover - success path covered indirectly via CLI test
	__version__ = _metadata.version("logwatcher")  # type: ignore[assignment]
except Exception:  # pragma: no cover - fallback exercised if metadata missing
	__version__ = _FALLBACK_VERSION
