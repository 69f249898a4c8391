from dataclasses import dataclass

DEFAULT_POLL_INTERVAL = 0.2
DEFAULT_RELOAD_INTERVAL = 1.0
DEFAULT_READ_CHUNK_THRESHOLD = 4096
DEFAULT_MAX_LINE_BYTES = 64 * 1024
DEFAULT_CHANNEL_CAPACITY = 4096


@dataclass
class WatcherConfig:
    # Idle sleep (seconds) between polls while caught up
    poll_interval: float = DEFAULT_POLL_INTERVAL
    # Sleep (seconds) between reopen attempts while the file is missing
    reload_interval: float = DEFAULT_RELOAD_INTERVAL
    # Reads larger than this switch to catch-up mode (no sleep between reads)
    read_chunk_threshold: int = DEFAULT_READ_CHUNK_THRESHOLD
    # Line mode: force a publish once an unterminated line reaches this size
    max_line_bytes: int = DEFAULT_MAX_LINE_BYTES
    # Bounded queue sizes; a full output queue is fatal to the watcher loop
    output_capacity: int = DEFAULT_CHANNEL_CAPACITY
    signal_capacity: int = DEFAULT_CHANNEL_CAPACITY

    def validate(self) -> "WatcherConfig":
        for name in ("poll_interval", "reload_interval"):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be positive, got {getattr(self, name)!r}")
        for name in ("read_chunk_threshold", "max_line_bytes", "output_capacity", "signal_capacity"):
            value = getattr(self, name)
            if not isinstance(value, int) or value <= 0:
                raise ValueError(f"{name} must be a positive integer, got {value!r}")
        return self
