"""Public watcher handle.

``LogWatcher`` owns both channels and starts the driving loop as an asyncio
task. The loop polls at most one control signal per iteration, then advances
the state machine one step, until the state is Closed or a fatal error ends
it. Either way both channels are closed on exit and the file handle is
released; consumers see the end as ``receive_next()`` returning None.

Usage::

    watcher = LogWatcher("/var/log/app.log", mode=ReadMode.NEXT_LINE)
    task = watcher.spawn()
    async for chunk in watcher:
        ...
    await watcher.wait()   # re-raises the fatal error, if any

A signal sent while a read is in flight is seen once that read returns;
reads are not cancelled, but they run off the event loop so other watchers
and the consumer keep going. Sleeps end as soon as a signal arrives.
"""
from __future__ import annotations

import asyncio
import contextlib
from pathlib import Path
from typing import AsyncIterator, Optional

from .channel import Channel
from .config import WatcherConfig
from .errors import AlreadySpawnedError, WatcherError
from .logutil import get_logger
from .metrics import WatcherStats
from .probe import PathLike
from .reader import ReadMode
from .signals import Close, ControlSignal, Reload, Swap
from .state import (
    Closed,
    Initializing,
    Reloading,
    TailContext,
    TailerState,
    Waiting,
    advance,
    apply_signal,
    release_state,
    state_name,
)

log = get_logger()


class LogWatcher:
    def __init__(
        self,
        path: PathLike,
        mode: ReadMode = ReadMode.DRAIN_TO_END,
        skip_to_end: bool = True,
        config: Optional[WatcherConfig] = None,
    ) -> None:
        self.path = Path(path)
        self.mode = mode
        self.skip_to_end = skip_to_end
        self.config = (config or WatcherConfig()).validate()
        self.stats = WatcherStats()
        self._output: Channel[bytes] = Channel(self.config.output_capacity, "output channel")
        self._signals: Channel[ControlSignal] = Channel(self.config.signal_capacity, "signal channel")
        self._task: Optional["asyncio.Task[None]"] = None
        self._state = "idle"

    @property
    def state(self) -> str:
        return self._state

    @property
    def queued(self) -> int:
        return len(self._output)

    @property
    def task(self) -> Optional["asyncio.Task[None]"]:
        return self._task

    def spawn(self) -> "asyncio.Task[None]":
        """Start the driving loop on the running event loop."""
        if self._task is not None:
            raise AlreadySpawnedError(f"watcher for {self.path} spawned twice")
        loop = asyncio.get_running_loop()
        self._task = loop.create_task(self._run(), name=f"logwatcher:{self.path}")
        return self._task

    # Control surface -----------------------------------------------------

    def send_signal(self, signal: ControlSignal) -> None:
        """Queue a signal; raises ChannelClosedError once the loop has exited."""
        self._signals.try_send(signal)

    def close(self) -> None:
        self.send_signal(Close())

    def reload(self) -> None:
        self.send_signal(Reload())

    def swap(self, path: PathLike) -> None:
        self.send_signal(Swap(Path(path)))

    # Consumer surface ----------------------------------------------------

    async def receive_next(self) -> Optional[bytes]:
        return await self._output.receive()

    def try_receive_next(self) -> Optional[bytes]:
        return self._output.try_receive()

    def __aiter__(self) -> AsyncIterator[bytes]:
        return self._output.__aiter__()

    async def wait(self) -> None:
        if self._task is None:
            raise WatcherError(f"watcher for {self.path} was never spawned")
        await self._task

    async def __aenter__(self) -> "LogWatcher":
        if self._task is None:
            self.spawn()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if self._task is None:
            return
        if not self._signals.closed:
            self.close()
        if exc_type is None:
            await self._task
        else:
            # Already unwinding; do not mask the original exception.
            with contextlib.suppress(Exception):
                await self._task

    # Driving loop --------------------------------------------------------

    async def _initial_state(self, ctx: TailContext) -> TailerState:
        try:
            reader = await ctx.open_reader(self.path)
        except FileNotFoundError:
            log.info("%s: not present yet, waiting for it to appear", self.path)
            return Reloading(self.path)
        if self.skip_to_end:
            return Initializing(reader)
        return Waiting(reader)

    def _set_state(self, state: TailerState) -> None:
        name = state_name(state)
        if name != self._state:
            log.debug("%s: %s -> %s", self.path, self._state, name)
            self._state = name

    async def _run(self) -> None:
        ctx = TailContext(self.mode, self.config, self._output, self.stats, signals=self._signals)
        state: TailerState = Closed()
        try:
            state = await self._initial_state(ctx)
            self._set_state(state)
            while True:
                signal = self._signals.try_receive()
                if signal is not None:
                    state = await apply_signal(state, signal, ctx)
                    self._set_state(state)
                if isinstance(state, Closed):
                    break
                state = await advance(state, ctx)
                self._set_state(state)
                # Let the consumer and other watchers run between steps.
                await asyncio.sleep(0)
        except Exception as exc:
            log.error("%s: watcher stopped: %s", self.path, exc)
            raise
        finally:
            await release_state(state)
            self._output.close()
            self._signals.close()
            self._set_state(Closed())

    def __repr__(self) -> str:  # pragma: no cover - debugging aid
        return f"LogWatcher(path={str(self.path)!r}, mode={self.mode.value}, state={self._state})"


__all__ = ["LogWatcher"]
