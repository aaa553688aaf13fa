"""Tests for the local backend."""

import os
from datetime import datetime, timezone

import pytest

from corpus_agent.platform.backends import DSN, LocalBackend, new_backend
from corpus_agent.platform.filesystem import (
    FilesystemExistsError,
    FilesystemNotFoundError,
    NotADirectoryFilesystemError,
)


@pytest.fixture
def root(tmp_path):
    """Create a directory with one file."""
    (tmp_path / "watched").mkdir()
    (tmp_path / "watched" / "1.txt").write_bytes(b"hello")
    os.utime(tmp_path / "watched" / "1.txt", (1700000000, 1700000000))
    return tmp_path


def test_from_dsn_joins_host_and_path(root):
    """Test that the base path is built from the DSN host and path."""
    backend = LocalBackend.from_dsn(DSN.parse(f"local://{root}/watched"))

    assert backend.base_path == f"{root}/watched"


def test_registry_builds_local_backend(root):
    """Test that the local scheme is registered."""
    assert isinstance(new_backend(f"local://{root}"), LocalBackend)


@pytest.mark.asyncio
async def test_mount_presents_the_directory(root):
    """Test stat, readdir and read through a mount."""
    async with LocalBackend(str(root)).mount() as fs:
        info = await fs.stat("watched/1.txt")
        assert info.name == "1.txt"
        assert info.size == 5
        assert info.mod_time == datetime.fromtimestamp(1700000000, tz=timezone.utc)
        assert not info.is_dir
        assert info.inode is not None

        async with await fs.open("watched") as directory:
            assert await directory.readdirnames() == ["1.txt"]

        async with await fs.open("watched/1.txt") as file:
            assert await file.read_at(3, 1) == b"ell"
            assert await file.read() == b"hello"


@pytest.mark.asyncio
async def test_mount_fails_on_missing_directory(tmp_path):
    """Test that mounting a missing directory fails."""
    with pytest.raises(FilesystemNotFoundError):
        async with LocalBackend(str(tmp_path / "missing")).mount():
            pass


@pytest.mark.asyncio
async def test_write_rename_remove(root):
    """Test the write operations of the local filesystem."""
    async with LocalBackend(str(root)).mount() as fs:
        async with await fs.create("watched/2.txt") as file:
            await file.write(b"new")
            await file.write_at(b"N", 0)

        assert (root / "watched" / "2.txt").read_bytes() == b"New"

        await fs.rename("watched/2.txt", "watched/3.txt")
        assert not await fs.exists("watched/2.txt")

        await fs.chmod("watched/3.txt", 0o600)
        assert (await fs.stat("watched/3.txt")).mode == 0o600

        mtime = datetime(2024, 1, 1, tzinfo=timezone.utc)
        await fs.chtimes("watched/3.txt", mtime, mtime)
        assert (await fs.stat("watched/3.txt")).mod_time == mtime

        await fs.remove("watched/3.txt")
        assert not (root / "watched" / "3.txt").exists()

        with pytest.raises(FilesystemExistsError):
            await fs.mkdir("watched")

        async with await fs.open("watched/1.txt") as file:
            with pytest.raises(NotADirectoryFilesystemError):
                await file.readdir()
