import asyncio
import os
import time
from pathlib import Path

import pytest

from logwatcher.channel import Channel
from logwatcher.config import WatcherConfig
from logwatcher.probe import probe
from logwatcher.reader import ReadMode
from logwatcher.signals import Close, Reload, Swap
from logwatcher.state import (
    Closed,
    Initializing,
    Missing,
    Reading,
    Reloading,
    TailContext,
    Waiting,
    advance,
    apply_signal,
    release_state,
    state_name,
)


def make_ctx(mode: ReadMode = ReadMode.DRAIN_TO_END, **overrides) -> TailContext:
    overrides.setdefault("poll_interval", 0.01)
    overrides.setdefault("reload_interval", 0.01)
    return TailContext(mode, WatcherConfig(**overrides), Channel(64))


def drain(ctx: TailContext) -> list:
    out = []
    while True:
        item = ctx.output.try_receive()
        if item is None:
            return out
        out.append(item)


def append(p: Path, data: bytes) -> None:
    with p.open("ab") as h:
        h.write(data)


def test_initializing_skips_existing_content(tmp_path: Path):
    p = tmp_path / "app.log"
    p.write_bytes(b"old line\n")
    ctx = make_ctx()

    async def run():
        state = Initializing(await ctx.open_reader(p))
        state = await advance(state, ctx)
        assert isinstance(state, Waiting)
        assert await state.reader.tell() == 9
        # Nothing new: stays Waiting, nothing emitted
        state = await advance(state, ctx)
        assert isinstance(state, Waiting)
        assert drain(ctx) == []
        await state.reader.close()

    asyncio.run(run())


def test_small_and_large_reads_switch_waiting_and_reading(tmp_path: Path):
    p = tmp_path / "app.log"
    p.write_bytes(b"")
    ctx = make_ctx()

    async def run():
        state = Waiting(await ctx.open_reader(p))
        append(p, b"small\n")
        state = await advance(state, ctx)
        assert isinstance(state, Waiting)
        assert drain(ctx) == [b"small\n"]

        append(p, b"x" * 5000)
        state = await advance(state, ctx)
        assert isinstance(state, Reading)

        append(p, b"y" * 4096)
        state = await advance(state, ctx)
        assert isinstance(state, Reading)

        append(p, b"z" * 10)
        state = await advance(state, ctx)
        assert isinstance(state, Waiting)
        assert b"".join(drain(ctx)) == b"x" * 5000 + b"y" * 4096 + b"z" * 10
        await state.reader.close()

    asyncio.run(run())


def test_drain_small_read_waits_poll_interval(tmp_path: Path):
    p = tmp_path / "app.log"
    p.write_bytes(b"")
    ctx = make_ctx(poll_interval=0.2)

    async def run():
        state = Waiting(await ctx.open_reader(p))
        append(p, b"just a line\n")
        started = time.monotonic()
        state = await advance(state, ctx)
        elapsed = time.monotonic() - started
        assert isinstance(state, Waiting)
        assert drain(ctx) == [b"just a line\n"]
        await state.reader.close()
        return elapsed

    assert asyncio.run(run()) >= 0.15


def test_drain_read_at_threshold_still_waits(tmp_path: Path):
    p = tmp_path / "app.log"
    p.write_bytes(b"")
    ctx = make_ctx(poll_interval=0.2, read_chunk_threshold=64)

    async def run():
        state = Waiting(await ctx.open_reader(p))
        append(p, b"q" * 64)
        started = time.monotonic()
        state = await advance(state, ctx)
        elapsed = time.monotonic() - started
        assert isinstance(state, Waiting)
        await state.reader.close()
        return elapsed

    assert asyncio.run(run()) >= 0.15


def test_token_bump_on_same_file_is_not_a_rotation(tmp_path: Path):
    p = tmp_path / "app.log"
    p.write_bytes(b"")
    ctx = make_ctx()

    async def run():
        state = Waiting(await ctx.open_reader(p))
        state.reader.last_token -= 1  # as if an append landed after our read
        state = await advance(state, ctx)
        assert isinstance(state, Waiting)
        assert state.reader.last_token == await probe(p)
        await state.reader.close()

    asyncio.run(run())


def test_truncation_reloads_from_start(tmp_path: Path):
    p = tmp_path / "app.log"
    p.write_bytes(b"")
    ctx = make_ctx()

    async def run():
        state = Waiting(await ctx.open_reader(p))
        append(p, b"first line before truncate\n")
        state = await advance(state, ctx)
        assert drain(ctx) == [b"first line before truncate\n"]

        time.sleep(0.05)  # let the coarse ctime clock tick
        p.write_bytes(b"")
        append(p, b"fresh\n")
        state = await advance(state, ctx)
        assert isinstance(state, Missing)
        assert state.reason == "truncated"
        state = await advance(state, ctx)
        assert isinstance(state, Reloading)
        state = await advance(state, ctx)
        assert isinstance(state, Waiting)
        await advance(state, ctx)
        assert drain(ctx) == [b"fresh\n"]
        assert ctx.stats.rotations == 1 and ctx.stats.reloads == 1
        await state.reader.close()

    asyncio.run(run())


@pytest.mark.skipif(os.name == "nt", reason="POSIX unlink semantics")
def test_deleted_file_goes_missing_then_reloads_from_offset_zero(tmp_path: Path):
    p = tmp_path / "app.log"
    p.write_bytes(b"")
    ctx = make_ctx()

    async def run():
        state = Waiting(await ctx.open_reader(p))
        old_reader = state.reader
        os.remove(p)
        state = await advance(state, ctx)
        assert isinstance(state, Missing)
        assert state.reason == "deleted"

        state = await advance(state, ctx)
        assert isinstance(state, Reloading)
        assert old_reader.closed

        # Still absent: keeps retrying
        state = await advance(state, ctx)
        assert isinstance(state, Reloading)

        p.write_bytes(b"new file\n")
        state = await advance(state, ctx)
        assert isinstance(state, Waiting)
        await advance(state, ctx)
        assert drain(ctx) == [b"new file\n"]
        await state.reader.close()

    asyncio.run(run())


@pytest.mark.skipif(os.name == "nt", reason="POSIX rename semantics")
def test_renamed_and_recreated_file_is_detected(tmp_path: Path):
    p = tmp_path / "app.log"
    p.write_bytes(b"")
    ctx = make_ctx()

    async def run():
        state = Waiting(await ctx.open_reader(p))
        time.sleep(0.05)
        os.replace(p, tmp_path / "app.log.1")
        p.write_bytes(b"rotated\n")
        state = await advance(state, ctx)
        assert isinstance(state, Missing)
        assert state.reason in {"inode changed", "truncated"}
        state = await advance(state, ctx)
        state = await advance(state, ctx)
        assert isinstance(state, Waiting)
        await advance(state, ctx)
        assert drain(ctx) == [b"rotated\n"]
        await state.reader.close()

    asyncio.run(run())


def test_reloading_treats_denied_stat_as_absent(tmp_path: Path, monkeypatch):
    import aiofiles.os

    p = tmp_path / "app.log"
    p.write_bytes(b"hello\n")
    ctx = make_ctx()
    real_stat = aiofiles.os.stat

    async def denied(path, *args, **kwargs):
        raise PermissionError(13, "Permission denied", str(path))

    async def run():
        monkeypatch.setattr(aiofiles.os, "stat", denied)
        state = await advance(Reloading(p), ctx)
        assert isinstance(state, Reloading)
        state = await advance(state, ctx)
        assert isinstance(state, Reloading)
        assert ctx.stats.reloads == 0

        monkeypatch.setattr(aiofiles.os, "stat", real_stat)
        state = await advance(state, ctx)
        assert isinstance(state, Waiting)
        await advance(state, ctx)
        assert drain(ctx) == [b"hello\n"]
        await state.reader.close()

    asyncio.run(run())


def test_missing_flushes_partial_line(tmp_path: Path):
    p = tmp_path / "app.log"
    p.write_bytes(b"")
    ctx = make_ctx(ReadMode.NEXT_LINE)

    async def run():
        state = Waiting(await ctx.open_reader(p))
        append(p, b"partial")
        state = await advance(state, ctx)
        assert drain(ctx) == []
        state = await advance(Missing(state.reader), ctx)
        assert isinstance(state, Reloading)
        assert drain(ctx) == [b"partial"]

    asyncio.run(run())


def test_next_line_mode_does_not_sleep_between_lines(tmp_path: Path):
    p = tmp_path / "app.log"
    p.write_bytes(b"")
    ctx = make_ctx(ReadMode.NEXT_LINE, poll_interval=5.0)

    async def run():
        state = Waiting(await ctx.open_reader(p))
        append(p, b"".join(b"%d\n" % i for i in range(50)))
        started = time.monotonic()
        for _ in range(50):
            state = await advance(state, ctx)
        assert time.monotonic() - started < 2.0
        assert drain(ctx) == [b"%d\n" % i for i in range(50)]
        await state.reader.close()

    asyncio.run(run())


def test_close_signal_flushes_then_closes(tmp_path: Path):
    p = tmp_path / "app.log"
    p.write_bytes(b"")
    ctx = make_ctx()

    async def run():
        reader = await ctx.open_reader(p)
        append(p, b"last words\n")
        state = await apply_signal(Waiting(reader), Close(), ctx)
        assert isinstance(state, Closed)
        assert reader.closed
        assert drain(ctx) == [b"last words\n"]
        # Closed absorbs everything
        assert await apply_signal(state, Close(), ctx) is state
        assert await apply_signal(state, Reload(), ctx) is state

    asyncio.run(run())
    assert ctx.stats.signals == 3


def test_close_while_initializing_emits_nothing(tmp_path: Path):
    p = tmp_path / "app.log"
    p.write_bytes(b"existing content\n")
    ctx = make_ctx()

    async def run():
        return await apply_signal(Initializing(await ctx.open_reader(p)), Close(), ctx)

    assert isinstance(asyncio.run(run()), Closed)
    assert drain(ctx) == []


def test_reload_and_swap_signals(tmp_path: Path):
    p = tmp_path / "app.log"
    other = tmp_path / "other.log"
    p.write_bytes(b"")
    ctx = make_ctx()

    async def run():
        state = await apply_signal(Waiting(await ctx.open_reader(p)), Reload(), ctx)
        assert state == Reloading(p)
        # Reload while already reloading is a no-op
        assert await apply_signal(state, Reload(), ctx) is state

        state = await apply_signal(state, Swap(other), ctx)
        assert state == Reloading(other)

        state = await apply_signal(Reading(await ctx.open_reader(p)), Swap(str(other)), ctx)
        assert state == Reloading(other)

        assert isinstance(await apply_signal(state, Close(), ctx), Closed)

    asyncio.run(run())


def test_unknown_signal_rejected(tmp_path: Path):
    p = tmp_path / "app.log"
    p.write_bytes(b"")
    ctx = make_ctx()

    async def run():
        reader = await ctx.open_reader(p)
        with pytest.raises(TypeError):
            await apply_signal(Waiting(reader), "stop", ctx)  # type: ignore[arg-type]
        # Rejected before anything was released
        assert not reader.closed
        await release_state(Waiting(reader))
        assert reader.closed

    asyncio.run(run())
    assert ctx.stats.signals == 0


def test_closed_advance_is_noop():
    ctx = make_ctx()
    state = Closed()

    async def run():
        await release_state(state)
        return await advance(state, ctx)

    assert asyncio.run(run()) is state
    assert state_name(state) == "closed"
    assert state_name(Reloading(Path("a"))) == "reloading"
