"""Polling watcher.

Periodically snapshots a directory tree and diffs consecutive snapshots into
watch events. Polling works the same way over every backend, including the
remote ones that have no change notifications.

Usage:
    options = WatchOptions(directory="docs", recursive=True)
    await watch(fs, handler, options)  # runs until cancelled
"""

import asyncio
import posixpath
from collections import defaultdict
from typing import Dict, List, Optional, Set, Tuple

from corpus_agent.core.logging import ContextualLogger
from corpus_agent.core.logging import logger as default_logger
from corpus_agent.platform.filesystem import (
    EPOCH,
    FileInfo,
    Filesystem,
    clean_path,
    join_path,
    walk,
)
from corpus_agent.platform.watcher.events import (
    WatchEvent,
    WatchHandler,
    WatchOp,
    WatchOptions,
)

Snapshot = Dict[str, FileInfo]


def _same_file(old: FileInfo, new: FileInfo) -> bool:
    if old.is_dir != new.is_dir:
        return False
    if old.inode is not None and new.inode is not None:
        return old.inode == new.inode
    if old.inode is not None or new.inode is not None:
        return False
    return (
        old.size == new.size
        and old.mod_time == new.mod_time
        and old.mod_time != EPOCH
    )


def _pair_renames(
    removed: Snapshot, created: Snapshot
) -> List[Tuple[str, str]]:
    """Pair removed and created paths that are the same file.

    Without inode data a pair only counts when the match is unique on both
    sides.
    """
    candidates: Dict[str, List[str]] = defaultdict(list)
    reverse: Dict[str, List[str]] = defaultdict(list)
    for old_path, old_info in removed.items():
        for new_path, new_info in created.items():
            if _same_file(old_info, new_info):
                candidates[old_path].append(new_path)
                reverse[new_path].append(old_path)

    pairs = []
    for old_path in sorted(candidates):
        new_paths = candidates[old_path]
        if len(new_paths) == 1 and len(reverse[new_paths[0]]) == 1:
            pairs.append((old_path, new_paths[0]))
    return pairs


def diff_snapshots(
    previous: Snapshot, current: Snapshot, events: Optional[Set[WatchOp]] = None
) -> List[WatchEvent]:
    """Compute the events turning ``previous`` into ``current``.

    Args:
        previous: Earlier snapshot
        current: Later snapshot
        events: Requested event kinds; decides whether a cross-directory
            rename is reported as MOVE or as REMOVE plus CREATE

    Returns:
        Events ordered renames, removals, creations, writes, then mode changes
    """
    events = set(events) if events is not None else set(WatchOp)

    removed = {p: i for p, i in previous.items() if p not in current}
    created = {p: i for p, i in current.items() if p not in previous}

    # A file replaced by a directory (or the other way around) is a new entry
    for path in previous.keys() & current.keys():
        if previous[path].is_dir != current[path].is_dir:
            removed[path] = previous[path]
            created[path] = current[path]

    result: List[WatchEvent] = []

    for old_path, new_path in _pair_renames(removed, created):
        same_parent = posixpath.dirname(old_path) == posixpath.dirname(new_path)
        if same_parent:
            op = WatchOp.RENAME
        elif WatchOp.MOVE in events:
            op = WatchOp.MOVE
        else:
            continue
        result.append(WatchEvent(op=op, path=new_path, old_path=old_path, info=created[new_path]))
        del removed[old_path]
        del created[new_path]

    for path in sorted(removed):
        result.append(WatchEvent(op=WatchOp.REMOVE, path=path, old_path=path, info=removed[path]))

    for path in sorted(created):
        result.append(WatchEvent(op=WatchOp.CREATE, path=path, info=created[path]))

    changed = sorted(p for p in previous.keys() & current.keys() if p not in created)
    for path in changed:
        old, new = previous[path], current[path]
        if old.mod_time != new.mod_time or old.size != new.size:
            result.append(WatchEvent(op=WatchOp.WRITE, path=path, info=new))
    for path in changed:
        old, new = previous[path], current[path]
        if old.mode != new.mode:
            result.append(WatchEvent(op=WatchOp.CHMOD, path=path, info=new))

    return result


class PollingWatcher:
    """Watches one directory of a filesystem and feeds a handler.

    Each event is handled in its own task, concurrently with the next polls.
    Handler errors are logged and never stop the watcher.
    """

    def __init__(
        self,
        fs: Filesystem,
        handler: WatchHandler,
        options: Optional[WatchOptions] = None,
        logger: Optional[ContextualLogger] = None,
    ):
        """Initialize the watcher.

        Args:
            fs: Filesystem to poll
            handler: Receives the events
            options: Watch options, defaults apply when omitted
            logger: Logger, the package logger when omitted
        """
        self.fs = fs
        self.handler = handler
        self.options = options or WatchOptions()
        self.logger = logger or default_logger
        self.directory = clean_path(self.options.directory)
        self._tasks: Set[asyncio.Task] = set()

    # ---- Snapshots ----

    async def snapshot(self) -> Snapshot:
        """Collect the watched entries.

        The watched directory itself is not part of the snapshot. When a filter
        is set, only files passing it are kept.
        """
        root_info = await self.fs.stat(self.directory)
        if not root_info.is_dir:
            return {self.directory: root_info} if self._accepts(self.directory, root_info) else {}

        snapshot: Snapshot = {}
        if self.options.recursive:
            async for path, info in walk(self.fs, self.directory):
                if path != self.directory and self._accepts(path, info):
                    snapshot[path] = info
        else:
            async with await self.fs.open(self.directory) as directory:
                entries = await directory.readdir(-1)
            for info in entries:
                path = join_path(self.directory, info.name)
                if self._accepts(path, info):
                    snapshot[path] = info
        return snapshot

    def _accepts(self, path: str, info: FileInfo) -> bool:
        if self.options.filter is None:
            return True
        return not info.is_dir and self.options.matches(path)

    # ---- Dispatch ----

    def dispatch(self, event: WatchEvent) -> None:
        """Hand an event to the handler in a new task, unless it was not requested."""
        if event.op not in self.options.events:
            self.logger.debug(f"ignoring event {event}")
            return

        self.logger.debug(f"new event {event}")
        task = asyncio.create_task(self._handle(event))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _handle(self, event: WatchEvent) -> None:
        try:
            await self.handler.handle(event)
        except Exception as e:
            self.logger.with_context(file=event.path).error(
                f"error while handling event {event}: {e}", exc_info=True
            )

    async def _drain(self) -> None:
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    # ---- Main loop ----

    async def bootstrap(self, snapshot: Snapshot) -> None:
        """Emit CREATE for every pre-existing file of the initial snapshot."""
        self.logger.info("watcher started, checking for pre-existing files")
        for path, info in sorted(snapshot.items()):
            if info.is_dir:
                continue
            self.logger.debug(f"triggering create event for pre-existing file {path}")
            self.dispatch(WatchEvent(op=WatchOp.CREATE, path=path, info=info))
        self.logger.info("done checking for pre-existing files")

    async def run(self) -> None:
        """Poll until cancelled.

        Raises:
            FilesystemException: If the initial snapshot cannot be taken
        """
        interval = self.options.interval.total_seconds()
        self.logger.info(f"starting watcher on '{self.directory}' every {interval}s")

        try:
            previous = await self.snapshot()
            for path in sorted(previous):
                self.logger.debug(f"watching file {path}")

            if WatchOp.CREATE in self.options.events:
                await self.bootstrap(previous)

            while True:
                await asyncio.sleep(interval)
                try:
                    current = await self.snapshot()
                except Exception as e:
                    # The previous snapshot stays the reference
                    self.logger.error(f"error while watching files: {e}")
                    continue

                for event in diff_snapshots(previous, current, set(self.options.events)):
                    self.dispatch(event)
                previous = current
        finally:
            await self._drain()
            self.logger.info("watcher stopped")


async def watch(
    fs: Filesystem,
    handler: WatchHandler,
    options: Optional[WatchOptions] = None,
    logger: Optional[ContextualLogger] = None,
) -> None:
    """Watch a filesystem until cancelled.

    Args:
        fs: Filesystem to poll
        handler: Receives the events
        options: Watch options
        logger: Logger
    """
    await PollingWatcher(fs, handler, options, logger).run()
