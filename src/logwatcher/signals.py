"""Control signals accepted by a running watcher."""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Union


@dataclass(frozen=True)
class Close:
    pass


@dataclass(frozen=True)
class Reload:
    pass


@dataclass(frozen=True)
class Swap:
    path: Path

    def __post_init__(self) -> None:
        object.__setattr__(self, "path", Path(self.path))


ControlSignal = Union[Close, Reload, Swap]

__all__ = ["Close", "ControlSignal", "Reload", "Swap"]
