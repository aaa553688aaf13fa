"""Logging decorator tracing every filesystem call."""

import os
from datetime import datetime
from typing import Any, Awaitable, List, TypeVar

from corpus_agent.core.logging import ContextualLogger
from corpus_agent.platform.filesystem.base import SEEK_SET, File, FileInfo, Filesystem

T = TypeVar("T")


async def _traced(log: ContextualLogger, operation: str, call: Awaitable[T], **args: Any) -> T:
    rendered = ", ".join(f"{key}={value!r}" for key, value in args.items())
    try:
        result = await call
    except Exception as e:
        log.debug(f"{operation}({rendered}) failed: {e}")
        raise
    log.debug(f"{operation}({rendered})")
    return result


class LoggingFile(File):
    """File wrapper writing one debug line per call."""

    def __init__(self, inner: File, log: ContextualLogger):
        self._inner = inner
        self._log = log.with_context(file=inner.name)

    @property
    def name(self) -> str:
        return self._inner.name

    async def read(self, size: int = -1) -> bytes:
        return await _traced(self._log, "File.Read", self._inner.read(size), size=size)

    async def read_at(self, size: int, offset: int) -> bytes:
        return await _traced(
            self._log, "File.ReadAt", self._inner.read_at(size, offset), size=size, offset=offset
        )

    async def write(self, data: bytes) -> int:
        return await _traced(self._log, "File.Write", self._inner.write(data), length=len(data))

    async def write_at(self, data: bytes, offset: int) -> int:
        return await _traced(
            self._log,
            "File.WriteAt",
            self._inner.write_at(data, offset),
            length=len(data),
            offset=offset,
        )

    async def seek(self, offset: int, whence: int = SEEK_SET) -> int:
        return await _traced(
            self._log, "File.Seek", self._inner.seek(offset, whence), offset=offset, whence=whence
        )

    async def stat(self) -> FileInfo:
        return await _traced(self._log, "File.Stat", self._inner.stat())

    async def readdir(self, count: int = -1) -> List[FileInfo]:
        return await _traced(self._log, "File.Readdir", self._inner.readdir(count), count=count)

    async def readdirnames(self, count: int = -1) -> List[str]:
        return await _traced(
            self._log, "File.Readdirnames", self._inner.readdirnames(count), count=count
        )

    async def truncate(self, size: int) -> None:
        await _traced(self._log, "File.Truncate", self._inner.truncate(size), size=size)

    async def sync(self) -> None:
        await _traced(self._log, "File.Sync", self._inner.sync())

    async def close(self) -> None:
        await _traced(self._log, "File.Close", self._inner.close())


class LoggingFilesystem(Filesystem):
    """Filesystem decorator writing one debug line per call."""

    def __init__(self, inner: Filesystem, log: ContextualLogger):
        """Initialize the decorator.

        Args:
            inner: Wrapped filesystem
            log: Logger receiving the trace lines
        """
        self._inner = inner
        self._log = log.with_context(filesystem=inner.name)

    @property
    def name(self) -> str:
        return self._inner.name

    async def open(self, path: str) -> File:
        file = await _traced(self._log, "Open", self._inner.open(path), path=path)
        return LoggingFile(file, self._log)

    async def create(self, path: str) -> File:
        file = await _traced(self._log, "Create", self._inner.create(path), path=path)
        return LoggingFile(file, self._log)

    async def open_file(self, path: str, flags: int = os.O_RDONLY, mode: int = 0o644) -> File:
        file = await _traced(
            self._log,
            "OpenFile",
            self._inner.open_file(path, flags, mode),
            path=path,
            flags=flags,
            mode=oct(mode),
        )
        return LoggingFile(file, self._log)

    async def stat(self, path: str) -> FileInfo:
        return await _traced(self._log, "Stat", self._inner.stat(path), path=path)

    async def mkdir(self, path: str, mode: int = 0o755) -> None:
        await _traced(self._log, "Mkdir", self._inner.mkdir(path, mode), path=path, mode=oct(mode))

    async def mkdir_all(self, path: str, mode: int = 0o755) -> None:
        await _traced(
            self._log, "MkdirAll", self._inner.mkdir_all(path, mode), path=path, mode=oct(mode)
        )

    async def remove(self, path: str) -> None:
        await _traced(self._log, "Remove", self._inner.remove(path), path=path)

    async def remove_all(self, path: str) -> None:
        await _traced(self._log, "RemoveAll", self._inner.remove_all(path), path=path)

    async def rename(self, old_path: str, new_path: str) -> None:
        await _traced(
            self._log,
            "Rename",
            self._inner.rename(old_path, new_path),
            old_path=old_path,
            new_path=new_path,
        )

    async def chmod(self, path: str, mode: int) -> None:
        await _traced(self._log, "Chmod", self._inner.chmod(path, mode), path=path, mode=oct(mode))

    async def chtimes(self, path: str, atime: datetime, mtime: datetime) -> None:
        await _traced(
            self._log,
            "Chtimes",
            self._inner.chtimes(path, atime, mtime),
            path=path,
            atime=atime.isoformat(),
            mtime=mtime.isoformat(),
        )
