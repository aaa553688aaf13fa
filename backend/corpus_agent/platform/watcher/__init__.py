"""Polling filesystem watcher."""

from corpus_agent.platform.watcher.events import (
    ALL_OPS,
    WatchEvent,
    WatchHandler,
    WatchOp,
    WatchOptions,
)
from corpus_agent.platform.watcher.glob import compile_glob, expand_braces
from corpus_agent.platform.watcher.watcher import PollingWatcher, diff_snapshots, watch

__all__ = [
    "ALL_OPS",
    "PollingWatcher",
    "WatchEvent",
    "WatchHandler",
    "WatchOp",
    "WatchOptions",
    "compile_glob",
    "diff_snapshots",
    "expand_braces",
    "watch",
]
