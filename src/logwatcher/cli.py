import argparse
import asyncio
import contextlib
import signal
import sys
from typing import Any, Dict, List, Optional, TYPE_CHECKING

from . import __version__
from .config import DEFAULT_POLL_INTERVAL, DEFAULT_RELOAD_INTERVAL, WatcherConfig
from .errors import ChannelClosedError
from .metrics import watcher_metrics
from .reader import ReadMode
from .sinks import ChunkSink, JsonlSink, MultiSink, StreamSink
from .watcher import LogWatcher

if TYPE_CHECKING:  # pragma: no cover - typing only
    from rich.console import Console as _Console
else:  # runtime optional import
    try:  # noqa: SIM105
        from rich.console import Console as _Console  # type: ignore
    except Exception:  # noqa: BLE001
        _Console = None  # type: ignore

ConsoleType = Optional["_Console"]


def _maybe_console(args: argparse.Namespace) -> ConsoleType:
    if getattr(args, "no_color", False):
        return None
    if _Console is None:
        return None
    # Status lines go to stderr; stdout carries the tailed bytes untouched.
    return _Console(stderr=True, highlight=False)


def _status(console: ConsoleType, message: str, style: Optional[str] = None) -> None:
    if console is not None:
        console.print(f"[logwatcher] {message}", style=style, markup=False)
    else:
        print(f"[logwatcher] {message}", file=sys.stderr, flush=True)


def _format_stats(metrics: Dict[str, Any]) -> str:
    return (
        f"state={metrics['state']} chunks={metrics['chunks']} bytes={metrics['bytes']} "
        f"rotations={metrics['rotations']} reloads={metrics['reloads']} "
        f"forced_flushes={metrics['forced_flushes']} queued={metrics['queued_chunks']}"
    )


def build_config(args: argparse.Namespace) -> WatcherConfig:
    cfg = WatcherConfig()
    if getattr(args, "poll_interval", None) is not None:
        cfg.poll_interval = float(args.poll_interval)
    if getattr(args, "reload_interval", None) is not None:
        cfg.reload_interval = float(args.reload_interval)
    return cfg.validate()


def _build_sink(args: argparse.Namespace, console: ConsoleType) -> ChunkSink:
    sinks: List[ChunkSink] = [StreamSink(sys.stdout.buffer)]
    if getattr(args, "jsonl", None):
        try:
            sinks.append(JsonlSink(args.jsonl, source=args.file))
        except OSError as exc:
            _status(console, f"could not open JSONL file {args.jsonl}: {exc}", style="yellow")
    return MultiSink(sinks)


def _install_close_handlers(loop: asyncio.AbstractEventLoop, request_close) -> None:
    for signum in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(signum, request_close)
        except (NotImplementedError, RuntimeError, ValueError):  # pragma: no cover - Windows
            pass


async def _follow(args: argparse.Namespace, cfg: WatcherConfig, console: ConsoleType) -> int:
    watcher = LogWatcher(args.file, mode=ReadMode(args.mode), skip_to_end=not args.from_start, config=cfg)
    sink = _build_sink(args, console)
    loop = asyncio.get_running_loop()

    def _request_close() -> None:
        try:
            watcher.close()
        except ChannelClosedError:
            pass

    _install_close_handlers(loop, _request_close)
    watcher.spawn()
    if args.run_for:
        loop.call_later(float(args.run_for), _request_close)

    stats_task: Optional["asyncio.Task[None]"] = None
    if args.stats_interval:
        async def _stats_loop() -> None:
            while True:
                await asyncio.sleep(float(args.stats_interval))
                _status(console, "stats: " + _format_stats(watcher_metrics(watcher)))

        stats_task = asyncio.ensure_future(_stats_loop())

    rc = 0
    try:
        async for chunk in watcher:
            sink.emit(chunk)
        await watcher.wait()
    except Exception as exc:  # noqa: BLE001 - surface and map to exit status
        _status(console, f"watcher failed: {exc}", style="bold red")
        rc = 1
    finally:
        if stats_task is not None:
            stats_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await stats_task
        sink.close()
        _status(console, "summary: " + _format_stats(watcher_metrics(watcher)))
    return rc


def cmd_follow(args: argparse.Namespace) -> int:
    console = _maybe_console(args)
    try:
        cfg = build_config(args)
    except ValueError as exc:
        _status(console, f"invalid option: {exc}", style="bold red")
        return 2
    return asyncio.run(_follow(args, cfg, console))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="logwatcher", description="Tail a growing log file across rotations.")
    # Global --version (argparse will exit 0 before validating subcommands)
    parser.add_argument(
        "--version",
        action="version",
        version=f"logwatcher {__version__}",
        help="Show version and exit",
    )
    sub = parser.add_subparsers(dest="cmd")

    follow_parser = sub.add_parser("follow", help="Follow a file and write new bytes to stdout")
    follow_parser.add_argument("file")
    follow_parser.add_argument(
        "--mode",
        choices=[m.value for m in ReadMode],
        default=ReadMode.DRAIN_TO_END.value,
        help="drain: everything new per poll; line: one line per chunk",
    )
    follow_parser.add_argument("--from-start", action="store_true", help="Emit existing content instead of skipping to the end")
    follow_parser.add_argument("--poll-interval", type=float, help=f"Idle poll interval in seconds (default {DEFAULT_POLL_INTERVAL})")
    follow_parser.add_argument("--reload-interval", type=float, help=f"Reopen retry interval in seconds (default {DEFAULT_RELOAD_INTERVAL})")
    follow_parser.add_argument("--jsonl", help="Also write one JSON record per chunk to this file")
    follow_parser.add_argument("--run-for", type=float, help="Close the watcher after this many seconds")
    follow_parser.add_argument("--stats-interval", type=float, help="Seconds between watcher stats lines (stderr)")
    follow_parser.add_argument("--no-color", action="store_true", help="Disable colorized status output even if rich present")
    follow_parser.set_defaults(func=cmd_follow)

    # Simple 'version' subcommand for shells/users preferring explicit command
    version_parser = sub.add_parser("version", help="Show version and exit")
    version_parser.set_defaults(func=lambda _: (print(f"logwatcher {__version__}"), 0)[1])

    return parser


def main() -> int:
    parser = build_parser()
    args = parser.parse_args()
    if not getattr(args, "cmd", None):  # No subcommand provided
        parser.print_help()
        return 0
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
