"""Abstract filesystem.

Every backend presents its transport through the same async interface: a
session-scoped ``Filesystem`` handing out ``File`` objects. Paths are
forward-slash separated and relative to the mount root.

Usage:
    async with backend.mount() as fs:
        async with await fs.open("docs/readme.md") as f:
            content = await f.read()
"""

import os
import posixpath
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import AsyncIterator, List, Optional, Tuple

from corpus_agent.platform.filesystem.exceptions import (
    FilesystemExistsError,
    FilesystemNotFoundError,
    NotADirectoryFilesystemError,
    NotSupportedError,
)

SEEK_SET = os.SEEK_SET
SEEK_CUR = os.SEEK_CUR
SEEK_END = os.SEEK_END

_WRITE_FLAGS = os.O_WRONLY | os.O_RDWR

EPOCH = datetime.fromtimestamp(0, tz=timezone.utc)


@dataclass(frozen=True)
class FileInfo:
    """Metadata of a file or directory.

    ``mode`` is best-effort: several backends report a constant. ``inode`` is a
    ``(device, inode)`` pair when the backend knows it.
    """

    name: str
    size: int = 0
    mod_time: datetime = EPOCH
    is_dir: bool = False
    mode: int = 0o644
    inode: Optional[Tuple[int, int]] = None

    def with_name(self, name: str) -> "FileInfo":
        """Return a copy carrying another name."""
        return FileInfo(
            name=name,
            size=self.size,
            mod_time=self.mod_time,
            is_dir=self.is_dir,
            mode=self.mode,
            inode=self.inode,
        )


def clean_path(path: str) -> str:
    """Normalize a slash separated path, ``""`` becoming ``"."``."""
    cleaned = posixpath.normpath(path or ".")
    if cleaned.startswith("//"):
        cleaned = "/" + cleaned.lstrip("/")
    return cleaned


def join_path(parent: str, name: str) -> str:
    """Join a child name to a parent path without a leading ``./``."""
    if parent in ("", "."):
        return name
    return posixpath.join(parent, name)


def to_utc(value: Optional[datetime]) -> datetime:
    """Make a datetime timezone aware, assuming UTC for naive values."""
    if value is None:
        return EPOCH
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class File(ABC):
    """An open file or directory handle.

    Only reading, stat, directory listing and close are mandatory; the other
    operations raise ``NotSupportedError`` unless a backend implements them.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Path the file was opened with."""
        pass

    @abstractmethod
    async def read(self, size: int = -1) -> bytes:
        """Read up to ``size`` bytes from the current position.

        Args:
            size: Number of bytes, ``-1`` for everything left

        Returns:
            The bytes read, ``b""`` at end of file
        """
        pass

    @abstractmethod
    async def stat(self) -> FileInfo:
        """Return the file metadata."""
        pass

    @abstractmethod
    async def readdir(self, count: int = -1) -> List[FileInfo]:
        """List directory entries.

        Args:
            count: Maximum number of entries, ``-1`` (or ``0``) for all of them

        Returns:
            Entries in lexical order

        Raises:
            NotADirectoryFilesystemError: If the file is not a directory
        """
        pass

    @abstractmethod
    async def close(self) -> None:
        """Release the handle, flushing pending writes."""
        pass

    async def readdirnames(self, count: int = -1) -> List[str]:
        """List directory entry names."""
        return [info.name for info in await self.readdir(count)]

    async def read_at(self, size: int, offset: int) -> bytes:
        """Read ``size`` bytes at ``offset`` without moving the position."""
        raise NotSupportedError("read_at", type(self).__name__)

    async def write(self, data: bytes) -> int:
        """Write bytes at the current position."""
        raise NotSupportedError("write", type(self).__name__)

    async def write_at(self, data: bytes, offset: int) -> int:
        """Write bytes at ``offset``."""
        raise NotSupportedError("write_at", type(self).__name__)

    async def seek(self, offset: int, whence: int = SEEK_SET) -> int:
        """Move the position and return the new absolute offset."""
        raise NotSupportedError("seek", type(self).__name__)

    async def truncate(self, size: int) -> None:
        """Resize the file."""
        raise NotSupportedError("truncate", type(self).__name__)

    async def sync(self) -> None:
        """Flush pending writes without closing."""
        return None

    async def __aenter__(self) -> "File":
        """Enter an ``async with`` block."""
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        """Close the file on block exit."""
        await self.close()


class Filesystem(ABC):
    """Session-scoped filesystem.

    Implementations provide ``open``, ``create``, ``stat``, ``mkdir``,
    ``remove`` and ``rename``. ``open_file``, ``mkdir_all`` and ``remove_all``
    are built on top of them and may be overridden when the transport offers
    something better.
    """

    @property
    def name(self) -> str:
        """Human readable name of the filesystem."""
        return type(self).__name__

    @abstractmethod
    async def open(self, path: str) -> File:
        """Open a file or directory for reading.

        Raises:
            FilesystemNotFoundError: If the path does not exist
        """
        pass

    @abstractmethod
    async def create(self, path: str) -> File:
        """Create (or truncate) a file and open it for writing."""
        pass

    @abstractmethod
    async def stat(self, path: str) -> FileInfo:
        """Return metadata of a path.

        Raises:
            FilesystemNotFoundError: If the path does not exist
        """
        pass

    @abstractmethod
    async def mkdir(self, path: str, mode: int = 0o755) -> None:
        """Create a single directory.

        Raises:
            FilesystemExistsError: If the path already exists
        """
        pass

    @abstractmethod
    async def remove(self, path: str) -> None:
        """Remove a file or an empty directory."""
        pass

    @abstractmethod
    async def rename(self, old_path: str, new_path: str) -> None:
        """Rename a file or directory."""
        pass

    async def chmod(self, path: str, mode: int) -> None:
        """Change the permission bits of a path."""
        raise NotSupportedError("chmod", self.name)

    async def chtimes(self, path: str, atime: datetime, mtime: datetime) -> None:
        """Change the access and modification times of a path."""
        raise NotSupportedError("chtimes", self.name)

    async def exists(self, path: str) -> bool:
        """Return whether a path exists."""
        try:
            await self.stat(path)
        except FileNotFoundError:
            return False
        return True

    async def open_file(self, path: str, flags: int = os.O_RDONLY, mode: int = 0o644) -> File:
        """Open a file with ``os.O_*`` flags.

        Args:
            path: File path
            flags: Combination of ``os.O_RDONLY``, ``os.O_WRONLY``, ``os.O_RDWR``,
                ``os.O_CREAT``, ``os.O_EXCL``, ``os.O_TRUNC`` and ``os.O_APPEND``
            mode: Permission bits applied to a created file when supported

        Returns:
            The opened file

        Raises:
            FilesystemExistsError: On ``O_CREAT | O_EXCL`` with an existing path
            FilesystemNotFoundError: Without ``O_CREAT`` on a missing path
        """
        exists = await self.exists(path)

        if exists and flags & os.O_CREAT and flags & os.O_EXCL:
            raise FilesystemExistsError(f"file exists: {path}")

        if not exists:
            if not flags & os.O_CREAT:
                raise FilesystemNotFoundError(f"no such file or directory: {path}")
            file = await self.create(path)
        elif flags & os.O_TRUNC and flags & _WRITE_FLAGS:
            file = await self.create(path)
        else:
            file = await self.open(path)

        if flags & os.O_APPEND:
            await file.seek(0, SEEK_END)

        return file

    async def mkdir_all(self, path: str, mode: int = 0o755) -> None:
        """Create a directory and all missing parents.

        Raises:
            NotADirectoryFilesystemError: If a path component is a regular file
        """
        path = clean_path(path)
        if path in (".", "/"):
            return

        try:
            info = await self.stat(path)
        except FileNotFoundError:
            info = None

        if info is not None:
            if not info.is_dir:
                raise NotADirectoryFilesystemError(f"not a directory: {path}")
            return

        parent = posixpath.dirname(path)
        if parent and parent != path:
            await self.mkdir_all(parent, mode)

        try:
            await self.mkdir(path, mode)
        except FileExistsError:
            pass

    async def remove_all(self, path: str) -> None:
        """Remove a path and everything below it; a missing path is not an error."""
        try:
            info = await self.stat(path)
        except FileNotFoundError:
            return

        if info.is_dir:
            async with await self.open(path) as directory:
                names = await directory.readdirnames(-1)
            for name in names:
                await self.remove_all(join_path(path, name))

        await self.remove(path)


async def walk(fs: Filesystem, root: str = ".") -> AsyncIterator[Tuple[str, FileInfo]]:
    """Walk a tree top-down in lexical order.

    The root itself is yielded first, then every descendant.

    Args:
        fs: Filesystem to walk
        root: Path to start from

    Yields:
        ``(path, info)`` pairs
    """
    root = clean_path(root)
    info = await fs.stat(root)
    yield root, info

    if info.is_dir:
        async for entry in _walk_dir(fs, root):
            yield entry


async def _walk_dir(fs: Filesystem, directory: str) -> AsyncIterator[Tuple[str, FileInfo]]:
    async with await fs.open(directory) as handle:
        entries = await handle.readdir(-1)

    for entry in sorted(entries, key=lambda e: e.name):
        path = join_path(directory, entry.name)
        yield path, entry
        if entry.is_dir:
            async for child in _walk_dir(fs, path):
                yield child
