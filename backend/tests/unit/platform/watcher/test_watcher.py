"""Tests for the polling watcher."""

import asyncio
import os
from datetime import datetime, timedelta, timezone
from typing import List
from unittest.mock import MagicMock

import pytest

from corpus_agent.platform.backends import LocalBackend
from corpus_agent.platform.filesystem import FileInfo, FilesystemNotFoundError
from corpus_agent.platform.watcher import (
    PollingWatcher,
    WatchEvent,
    WatchHandler,
    WatchOp,
    WatchOptions,
    compile_glob,
    diff_snapshots,
)

T0 = datetime(2024, 1, 1, tzinfo=timezone.utc)
T1 = T0 + timedelta(seconds=5)


def info(name, size=10, mod_time=T0, is_dir=False, mode=0o644, inode=None):
    return FileInfo(name=name, size=size, mod_time=mod_time, is_dir=is_dir, mode=mode, inode=inode)


class RecordingHandler(WatchHandler):
    """Handler keeping every event it receives."""

    def __init__(self):
        self.events: List[WatchEvent] = []

    async def handle(self, event: WatchEvent) -> None:
        self.events.append(event)


async def wait_for_events(handler, count, timeout=5.0):
    """Wait until the handler saw at least ``count`` events."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while len(handler.events) < count:
        if loop.time() > deadline:
            raise AssertionError(f"expected {count} events, got {handler.events}")
        await asyncio.sleep(0.01)


class TestDiffSnapshots:
    """Tests for snapshot diffing."""

    def test_create_write_remove_chmod(self):
        """Test the plain event kinds and their order."""
        previous = {
            "gone.txt": info("gone.txt", size=1, inode=(1, 1)),
            "edited.txt": info("edited.txt", inode=(1, 2)),
            "locked.txt": info("locked.txt", inode=(1, 3)),
        }
        current = {
            "edited.txt": info("edited.txt", mod_time=T1, inode=(1, 2)),
            "locked.txt": info("locked.txt", mode=0o600, inode=(1, 3)),
            "new.txt": info("new.txt", size=2, inode=(1, 4)),
        }

        events = diff_snapshots(previous, current)

        assert [(e.op, e.path) for e in events] == [
            (WatchOp.REMOVE, "gone.txt"),
            (WatchOp.CREATE, "new.txt"),
            (WatchOp.WRITE, "edited.txt"),
            (WatchOp.CHMOD, "locked.txt"),
        ]
        # Verify a removal carries the removed path as old path
        assert events[0].old_path == "gone.txt"

    def test_size_change_is_a_write(self):
        """Test that a size change alone triggers WRITE."""
        events = diff_snapshots({"a": info("a", size=1)}, {"a": info("a", size=2)})

        assert [e.op for e in events] == [WatchOp.WRITE]

    def test_rename_in_same_directory_by_inode(self):
        """Test that an inode match in one directory is a RENAME."""
        previous = {"d/old.txt": info("old.txt", inode=(1, 7))}
        current = {"d/new.txt": info("new.txt", mod_time=T1, inode=(1, 7))}

        events = diff_snapshots(previous, current)

        assert len(events) == 1
        assert events[0].op == WatchOp.RENAME
        assert events[0].old_path == "d/old.txt"
        assert events[0].path == "d/new.txt"

    def test_rename_without_inode_needs_a_unique_match(self):
        """Test that size and mtime pair files only when unambiguous."""
        previous = {"old.txt": info("old.txt")}
        current = {"new.txt": info("new.txt")}

        assert [e.op for e in diff_snapshots(previous, current)] == [WatchOp.RENAME]

        current = {"new1.txt": info("new1.txt"), "new2.txt": info("new2.txt")}
        ops = [e.op for e in diff_snapshots(previous, current)]

        assert ops == [WatchOp.REMOVE, WatchOp.CREATE, WatchOp.CREATE]

    def test_unknown_mod_time_never_pairs(self):
        """Test that files without a modification time are not paired."""
        previous = {"old.txt": info("old.txt", mod_time=datetime.fromtimestamp(0, timezone.utc))}
        current = {"new.txt": info("new.txt", mod_time=datetime.fromtimestamp(0, timezone.utc))}

        ops = [e.op for e in diff_snapshots(previous, current)]

        assert ops == [WatchOp.REMOVE, WatchOp.CREATE]

    def test_cross_directory_rename(self):
        """Test MOVE when requested, REMOVE plus CREATE otherwise."""
        previous = {"a/file.txt": info("file.txt", inode=(1, 9))}
        current = {"b/file.txt": info("file.txt", inode=(1, 9))}

        moved = diff_snapshots(previous, current, {WatchOp.MOVE})
        split = diff_snapshots(previous, current, {WatchOp.RENAME, WatchOp.CREATE})

        assert [(e.op, e.old_path, e.path) for e in moved] == [
            (WatchOp.MOVE, "a/file.txt", "b/file.txt")
        ]
        assert [(e.op, e.path) for e in split] == [
            (WatchOp.REMOVE, "a/file.txt"),
            (WatchOp.CREATE, "b/file.txt"),
        ]

    def test_type_change(self):
        """Test that a file replaced by a directory is removed then created."""
        previous = {"x": info("x")}
        current = {"x": info("x", is_dir=True)}

        events = diff_snapshots(previous, current)

        assert [(e.op, e.path) for e in events] == [
            (WatchOp.REMOVE, "x"),
            (WatchOp.CREATE, "x"),
        ]
        assert events[1].is_dir

    def test_identical_snapshots(self):
        """Test that nothing changed means no event."""
        snapshot = {"a": info("a"), "b": info("b", is_dir=True)}

        assert diff_snapshots(snapshot, dict(snapshot)) == []


@pytest.fixture
def tree(tmp_path):
    """Create a small directory tree."""
    (tmp_path / "watched" / "sub").mkdir(parents=True)
    (tmp_path / "watched" / "1.txt").write_bytes(b"one")
    (tmp_path / "watched" / "sub" / "2.md").write_bytes(b"two")
    (tmp_path / "other.txt").write_bytes(b"other")
    return tmp_path


@pytest.fixture
async def local_fs(tree):
    """Mount the tree."""
    async with LocalBackend(str(tree)).mount() as fs:
        yield fs


class TestSnapshot:
    """Tests for PollingWatcher.snapshot."""

    @pytest.mark.asyncio
    async def test_non_recursive(self, local_fs):
        """Test that only direct children are listed."""
        watcher = PollingWatcher(local_fs, RecordingHandler(), WatchOptions(directory="watched"))

        snapshot = await watcher.snapshot()

        assert sorted(snapshot) == ["watched/1.txt", "watched/sub"]

    @pytest.mark.asyncio
    async def test_recursive_excludes_root(self, local_fs):
        """Test a recursive snapshot of the whole mount."""
        watcher = PollingWatcher(local_fs, RecordingHandler(), WatchOptions(recursive=True))

        snapshot = await watcher.snapshot()

        assert sorted(snapshot) == [
            "other.txt",
            "watched",
            "watched/1.txt",
            "watched/sub",
            "watched/sub/2.md",
        ]

    @pytest.mark.asyncio
    async def test_filter_keeps_matching_files_only(self, local_fs):
        """Test that a filter drops directories and other files."""
        options = WatchOptions(recursive=True, filter=compile_glob("watched/**/*.md"))
        watcher = PollingWatcher(local_fs, RecordingHandler(), options)

        snapshot = await watcher.snapshot()

        assert list(snapshot) == ["watched/sub/2.md"]

    @pytest.mark.asyncio
    async def test_file_root(self, local_fs):
        """Test watching a single file."""
        watcher = PollingWatcher(local_fs, RecordingHandler(), WatchOptions(directory="other.txt"))

        assert list(await watcher.snapshot()) == ["other.txt"]


class TestRun:
    """Tests for the watch loop."""

    @pytest.mark.asyncio
    async def test_bootstrap_emits_create_for_existing_files(self, local_fs):
        """Test that pre-existing files are reported once, directories are not."""
        handler = RecordingHandler()
        options = WatchOptions(recursive=True, interval=timedelta(seconds=10))
        task = asyncio.create_task(PollingWatcher(local_fs, handler, options).run())

        await wait_for_events(handler, 3)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert sorted(e.path for e in handler.events) == [
            "other.txt",
            "watched/1.txt",
            "watched/sub/2.md",
        ]
        assert {e.op for e in handler.events} == {WatchOp.CREATE}

    @pytest.mark.asyncio
    async def test_changes_are_detected(self, local_fs, tree):
        """Test a write and a removal between two polls."""
        handler = RecordingHandler()
        options = WatchOptions(
            directory="watched",
            interval=timedelta(milliseconds=50),
            events=frozenset({WatchOp.WRITE, WatchOp.REMOVE}),
        )
        task = asyncio.create_task(PollingWatcher(local_fs, handler, options).run())
        await asyncio.sleep(0.1)

        (tree / "watched" / "1.txt").write_bytes(b"one, edited")
        os.utime(tree / "watched" / "1.txt", (1800000000, 1800000000))
        await wait_for_events(handler, 1)
        (tree / "watched" / "1.txt").unlink()
        await wait_for_events(handler, 2)

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert [(e.op, e.path) for e in handler.events] == [
            (WatchOp.WRITE, "watched/1.txt"),
            (WatchOp.REMOVE, "watched/1.txt"),
        ]

    @pytest.mark.asyncio
    async def test_missing_directory_is_fatal(self, local_fs):
        """Test that the initial snapshot failure stops the watcher."""
        watcher = PollingWatcher(local_fs, RecordingHandler(), WatchOptions(directory="missing"))

        with pytest.raises(FilesystemNotFoundError):
            await watcher.run()

    @pytest.mark.asyncio
    async def test_handler_errors_are_logged(self, local_fs):
        """Test that a failing handler does not stop the watcher."""
        handler = MagicMock(spec=WatchHandler)
        handler.handle.side_effect = RuntimeError("boom")
        log = MagicMock()
        log.with_context.return_value = log
        watcher = PollingWatcher(local_fs, handler, WatchOptions(directory="watched"), log)

        await watcher._handle(WatchEvent(op=WatchOp.CREATE, path="watched/1.txt"))

        # Verify the error was logged with the event
        message = log.error.call_args.args[0]
        assert 'CREATE "watched/1.txt"' in message
        assert "boom" in message

    @pytest.mark.asyncio
    async def test_unrequested_events_are_ignored(self, local_fs):
        """Test that dispatch drops event kinds not asked for."""
        handler = RecordingHandler()
        options = WatchOptions(events=frozenset({WatchOp.CREATE}))
        watcher = PollingWatcher(local_fs, handler, options)

        watcher.dispatch(WatchEvent(op=WatchOp.CHMOD, path="a"))
        await asyncio.sleep(0)

        assert handler.events == []
