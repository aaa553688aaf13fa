"""Base-path view over another filesystem."""

import os
import posixpath
from datetime import datetime
from typing import List

from corpus_agent.platform.filesystem.base import (
    SEEK_SET,
    File,
    FileInfo,
    Filesystem,
    clean_path,
)
from corpus_agent.platform.filesystem.exceptions import FilesystemNotFoundError


class BasePathFile(File):
    """File wrapper reporting names relative to the base path."""

    def __init__(self, inner: File, base: str):
        self._inner = inner
        self._base = base

    @property
    def name(self) -> str:
        return _strip_base(self._inner.name, self._base)

    async def read(self, size: int = -1) -> bytes:
        return await self._inner.read(size)

    async def read_at(self, size: int, offset: int) -> bytes:
        return await self._inner.read_at(size, offset)

    async def write(self, data: bytes) -> int:
        return await self._inner.write(data)

    async def write_at(self, data: bytes, offset: int) -> int:
        return await self._inner.write_at(data, offset)

    async def seek(self, offset: int, whence: int = SEEK_SET) -> int:
        return await self._inner.seek(offset, whence)

    async def stat(self) -> FileInfo:
        return await self._inner.stat()

    async def readdir(self, count: int = -1) -> List[FileInfo]:
        return await self._inner.readdir(count)

    async def truncate(self, size: int) -> None:
        await self._inner.truncate(size)

    async def sync(self) -> None:
        await self._inner.sync()

    async def close(self) -> None:
        await self._inner.close()


class BasePathFilesystem(Filesystem):
    """Filesystem view rooted at ``base`` inside ``inner``.

    Every path is resolved below ``base``; paths escaping it with ``..`` are
    reported as missing.
    """

    def __init__(self, inner: Filesystem, base: str):
        """Initialize the view.

        Args:
            inner: Wrapped filesystem
            base: Path prefix inside ``inner``
        """
        self._inner = inner
        self._base = clean_path(base)

    @property
    def name(self) -> str:
        return f"BasePathFilesystem({self._inner.name}:{self._base})"

    def real_path(self, path: str) -> str:
        """Resolve a path to its location inside the wrapped filesystem.

        Raises:
            FilesystemNotFoundError: If the path escapes the base
        """
        relative = clean_path(path).lstrip("/") or "."
        resolved = clean_path(posixpath.join(self._base, relative))

        if self._base not in (".", "/"):
            if resolved != self._base and not resolved.startswith(self._base.rstrip("/") + "/"):
                raise FilesystemNotFoundError(f"no such file or directory: {path}")
        elif self._base == "." and (resolved == ".." or resolved.startswith("../")):
            raise FilesystemNotFoundError(f"no such file or directory: {path}")

        return resolved

    async def open(self, path: str) -> File:
        return BasePathFile(await self._inner.open(self.real_path(path)), self._base)

    async def create(self, path: str) -> File:
        return BasePathFile(await self._inner.create(self.real_path(path)), self._base)

    async def open_file(self, path: str, flags: int = os.O_RDONLY, mode: int = 0o644) -> File:
        inner = await self._inner.open_file(self.real_path(path), flags, mode)
        return BasePathFile(inner, self._base)

    async def stat(self, path: str) -> FileInfo:
        return await self._inner.stat(self.real_path(path))

    async def mkdir(self, path: str, mode: int = 0o755) -> None:
        await self._inner.mkdir(self.real_path(path), mode)

    async def mkdir_all(self, path: str, mode: int = 0o755) -> None:
        await self._inner.mkdir_all(self.real_path(path), mode)

    async def remove(self, path: str) -> None:
        await self._inner.remove(self.real_path(path))

    async def remove_all(self, path: str) -> None:
        await self._inner.remove_all(self.real_path(path))

    async def rename(self, old_path: str, new_path: str) -> None:
        await self._inner.rename(self.real_path(old_path), self.real_path(new_path))

    async def chmod(self, path: str, mode: int) -> None:
        await self._inner.chmod(self.real_path(path), mode)

    async def chtimes(self, path: str, atime: datetime, mtime: datetime) -> None:
        await self._inner.chtimes(self.real_path(path), atime, mtime)


def _strip_base(path: str, base: str) -> str:
    path = clean_path(path)
    if base in (".", "/") and not path.startswith("/"):
        return path
    prefix = base.rstrip("/") + "/"
    if path == base or path == base.rstrip("/"):
        return "."
    if path.startswith(prefix):
        return path[len(prefix):]
    return path
