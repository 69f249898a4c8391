"""Tailer state machine.

Each watched file is always in exactly one of the states below. ``advance``
performs a single step (one read attempt, one metadata check, or one reopen
attempt) and returns the next state; the previous state object is dead after
that. ``apply_signal`` folds an external control signal into the current
state before the next step.

    Initializing -> Waiting <-> Reading
                      |           |
                      +-> Missing <+
                            |
                            v
                        Reloading -> Waiting
    (any) --Close--> Closed

Replacement is detected only by polling: a zero-byte read is followed by a
change-token probe, and a moved token is confirmed against the open handle
(unlinked, inode changed, truncated) before the handle is given up. After a
reload the new file is tailed from offset 0; only the very first open may
skip existing content.
"""
from __future__ import annotations

import asyncio
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Union

from .channel import Channel
from .config import WatcherConfig
from .logutil import get_logger
from .metrics import WatcherStats
from .probe import is_regular_file, probe, replacement_reason
from .reader import BufferedReader, ReadMode
from .signals import Close, ControlSignal, Reload, Swap

log = get_logger()


@dataclass
class Initializing:
    reader: BufferedReader


@dataclass
class Waiting:
    reader: BufferedReader


@dataclass
class Reading:
    reader: BufferedReader


@dataclass
class Missing:
    reader: BufferedReader
    reason: str = "missing"


@dataclass
class Reloading:
    path: Path


@dataclass
class Closed:
    pass


TailerState = Union[Initializing, Waiting, Reading, Missing, Reloading, Closed]


@dataclass
class TailContext:
    """Everything the states share: mode, tunables, output channel, counters."""

    mode: ReadMode
    config: WatcherConfig
    output: "Channel[bytes]"
    stats: WatcherStats = field(default_factory=WatcherStats)
    # Sleeps end early when a control signal arrives.
    signals: "Optional[Channel[ControlSignal]]" = None

    async def sleep(self, seconds: float) -> None:
        if self.signals is None:
            await asyncio.sleep(seconds)
        else:
            await self.signals.wait_nonempty(seconds)

    async def open_reader(self, path: Path) -> BufferedReader:
        return await BufferedReader.open(path, self.mode, self.output, self.config, stats=self.stats)


def state_name(state: TailerState) -> str:
    return type(state).__name__.lower()


async def advance(state: TailerState, ctx: TailContext) -> TailerState:
    if isinstance(state, Initializing):
        await state.reader.seek_to_end()
        await state.reader.refresh_token()
        return Waiting(state.reader)

    if isinstance(state, Reading):
        size = await state.reader.read_next()
        if size < ctx.config.read_chunk_threshold:
            return Waiting(state.reader)
        return state

    if isinstance(state, Waiting):
        return await _advance_waiting(state, ctx)

    if isinstance(state, Missing):
        reader = state.reader
        ctx.stats.rotations += 1
        log.info("%s: %s; releasing handle at offset %d", reader.path, state.reason, await reader.tell())
        await _release(reader, final_read=True)
        return Reloading(reader.path)

    if isinstance(state, Reloading):
        return await _advance_reloading(state, ctx)

    return state


async def _advance_waiting(state: Waiting, ctx: TailContext) -> TailerState:
    reader = state.reader
    size = await reader.read_next()
    if size > ctx.config.read_chunk_threshold:
        return Reading(reader)
    if size > 0:
        # A line read leaves whatever else is on disk for the next call.
        if ctx.mode is not ReadMode.NEXT_LINE:
            await ctx.sleep(ctx.config.poll_interval)
        return state

    try:
        token = await probe(reader.path)
    except FileNotFoundError:
        return Missing(reader, "deleted")
    if token != reader.last_token:
        try:
            reason = await replacement_reason(reader.handle, reader.path)
        except FileNotFoundError:
            reason = "deleted"
        if reason is not None:
            return Missing(reader, reason)
        # Same file; an append landed between our read and the probe.
        reader.last_token = token
        return state

    await ctx.sleep(ctx.config.poll_interval)
    return state


async def _advance_reloading(state: Reloading, ctx: TailContext) -> TailerState:
    if await is_regular_file(state.path):
        try:
            reader = await ctx.open_reader(state.path)
        except FileNotFoundError:
            pass
        else:
            ctx.stats.reloads += 1
            log.info("%s: reopened, tailing from offset 0", state.path)
            return Waiting(reader)
    await ctx.sleep(ctx.config.reload_interval)
    return state


async def apply_signal(state: TailerState, signal: ControlSignal, ctx: TailContext) -> TailerState:
    """Fold one control signal into ``state``. Closed is absorbing."""
    if not isinstance(signal, (Close, Reload, Swap)):
        raise TypeError(f"unknown control signal: {signal!r}")
    ctx.stats.signals += 1
    if isinstance(state, Closed):
        return state

    if isinstance(state, Reloading):
        if isinstance(signal, Close):
            return Closed()
        if isinstance(signal, Swap):
            return Reloading(signal.path)
        return state

    reader = state.reader
    # Initializing has not skipped past existing content yet; never emit it.
    await _release(reader, final_read=not isinstance(state, Initializing))
    if isinstance(signal, Close):
        return Closed()
    if isinstance(signal, Swap):
        log.info("%s: swapping to %s", reader.path, signal.path)
        return Reloading(signal.path)
    log.info("%s: reload requested", reader.path)
    return Reloading(reader.path)


async def release_state(state: TailerState) -> None:
    """Drop any file handle held by ``state`` without reading."""
    reader = getattr(state, "reader", None)
    if reader is not None and not reader.closed:
        await reader.close()


async def _release(reader: BufferedReader, final_read: bool) -> None:
    # Best effort: whatever can still be read and flushed goes out, failures are logged.
    try:
        if final_read:
            await _final_read(reader)
        reader.flush_pending()
    except OSError as exc:
        log.warning("%s: final flush failed: %s", reader.path, exc)
    finally:
        await reader.close()


async def _final_read(reader: BufferedReader) -> None:
    end = os.fstat(reader.handle.fileno()).st_size
    while await reader.read_next() > 0 and await reader.tell() < end:
        pass


__all__ = [
    "Closed",
    "Initializing",
    "Missing",
    "Reading",
    "Reloading",
    "TailContext",
    "TailerState",
    "Waiting",
    "advance",
    "apply_signal",
    "release_state",
    "state_name",
]
