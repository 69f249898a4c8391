"""Cheap metadata probes used for rotation/replacement detection.

A change token is a single ``stat`` away: inode-change time on POSIX,
last-write time on Windows (where ctime means creation time). Tokens are only
ever compared, never interpreted. Path stats go through ``aiofiles.os`` so a
slow filesystem stalls only the watcher that asked.
"""
from __future__ import annotations

import os
import stat
from pathlib import Path
from typing import Any, Optional, Union

import aiofiles.os

PathLike = Union[str, Path]


def token_from_stat(st: os.stat_result) -> int:
    if os.name == "nt":
        return st.st_mtime_ns
    return st.st_ctime_ns


async def probe(path: PathLike) -> int:
    """Return the change token for ``path``; raises ``FileNotFoundError`` if absent."""
    return token_from_stat(await aiofiles.os.stat(path))


async def is_regular_file(path: PathLike) -> bool:
    # Missing or unreadable metadata means "not there yet" for reload purposes.
    try:
        st = await aiofiles.os.stat(path)
    except (FileNotFoundError, PermissionError):
        return False
    return stat.S_ISREG(st.st_mode)


async def replacement_reason(handle: Any, path: PathLike) -> Optional[str]:
    """Explain why ``path`` no longer refers to the file behind ``handle``.

    ``handle`` is an open aiofiles binary file. Returns None when the path
    still names the same, un-shrunk file (a newer token then only means a
    write landed after our last read). Raises ``FileNotFoundError`` when the
    path is gone.
    """
    st_path = await aiofiles.os.stat(path)
    try:
        # fstat works on the descriptor alone, no path lookup involved
        st_handle = os.fstat(handle.fileno())
    except OSError:
        return "handle invalid"
    if getattr(st_handle, "st_nlink", 1) == 0:
        return "unlinked"
    ino = getattr(st_handle, "st_ino", 0)
    # Some filesystems (and older Windows builds) report st_ino == 0; skip identity then.
    if ino and (st_path.st_ino, st_path.st_dev) != (ino, st_handle.st_dev):
        return "inode changed"
    if st_path.st_size < await handle.tell():
        return "truncated"
    return None


__all__ = ["PathLike", "is_regular_file", "probe", "replacement_reason", "token_from_stat"]
