"""Local filesystem backend.

DSN: ``local://<root>/<subpath>`` mounts the host directory ``<root>/<subpath>``.
"""

import os
import posixpath
import stat as stat_module
from contextlib import asynccontextmanager, contextmanager
from datetime import datetime, timezone
from typing import AsyncIterator, Iterator, List, Optional

import aiofiles
import aiofiles.os

from corpus_agent.platform.async_helpers import run_in_thread_pool
from corpus_agent.platform.backends._base import Backend
from corpus_agent.platform.backends.dsn import DSN
from corpus_agent.platform.filesystem import (
    SEEK_SET,
    BasePathFilesystem,
    File,
    FileClosedError,
    FileInfo,
    Filesystem,
    FilesystemExistsError,
    FilesystemNotFoundError,
    NotADirectoryFilesystemError,
    clean_path,
)


@contextmanager
def _translate_os_errors(path: str) -> Iterator[None]:
    try:
        yield
    except FileNotFoundError as e:
        if isinstance(e, FilesystemNotFoundError):
            raise
        raise FilesystemNotFoundError(f"no such file or directory: {path}") from e
    except FileExistsError as e:
        if isinstance(e, FilesystemExistsError):
            raise
        raise FilesystemExistsError(f"file exists: {path}") from e
    except NotADirectoryError as e:
        if isinstance(e, NotADirectoryFilesystemError):
            raise
        raise NotADirectoryFilesystemError(f"not a directory: {path}") from e


def file_info_from_stat(name: str, st: os.stat_result) -> FileInfo:
    """Build a FileInfo from an ``os.stat_result``."""
    return FileInfo(
        name=name,
        size=st.st_size,
        mod_time=datetime.fromtimestamp(st.st_mtime, tz=timezone.utc),
        is_dir=stat_module.S_ISDIR(st.st_mode),
        mode=stat_module.S_IMODE(st.st_mode),
        inode=(st.st_dev, st.st_ino),
    )


def _open_mode(flags: int) -> str:
    access = flags & (os.O_RDONLY | os.O_WRONLY | os.O_RDWR)
    append = bool(flags & os.O_APPEND)
    if access == os.O_WRONLY:
        return "ab" if append else "wb"
    if access == os.O_RDWR:
        return "a+b" if append else "r+b"
    return "rb"


class OsFile(File):
    """Handle on a host file or directory."""

    def __init__(self, path: str, handle=None):
        self._path = path
        self._handle = handle
        self._closed = False

    @property
    def name(self) -> str:
        return self._path

    def _check_open(self) -> None:
        if self._closed:
            raise FileClosedError(f"file already closed: {self._path}")

    def _require_handle(self):
        self._check_open()
        if self._handle is None:
            raise IsADirectoryError(f"is a directory: {self._path}")
        return self._handle

    async def read(self, size: int = -1) -> bytes:
        return await self._require_handle().read(size)

    async def read_at(self, size: int, offset: int) -> bytes:
        handle = self._require_handle()
        return await run_in_thread_pool(os.pread, handle.fileno(), size, offset)

    async def write(self, data: bytes) -> int:
        return await self._require_handle().write(data)

    async def write_at(self, data: bytes, offset: int) -> int:
        handle = self._require_handle()
        await handle.flush()
        return await run_in_thread_pool(os.pwrite, handle.fileno(), data, offset)

    async def seek(self, offset: int, whence: int = SEEK_SET) -> int:
        return await self._require_handle().seek(offset, whence)

    async def truncate(self, size: int) -> None:
        await self._require_handle().truncate(size)

    async def sync(self) -> None:
        handle = self._require_handle()
        await handle.flush()
        await run_in_thread_pool(os.fsync, handle.fileno())

    async def stat(self) -> FileInfo:
        self._check_open()
        with _translate_os_errors(self._path):
            st = await aiofiles.os.stat(self._path)
        return file_info_from_stat(posixpath.basename(self._path) or self._path, st)

    async def readdir(self, count: int = -1) -> List[FileInfo]:
        self._check_open()
        if self._handle is not None:
            raise NotADirectoryFilesystemError(f"not a directory: {self._path}")

        with _translate_os_errors(self._path):
            names = sorted(await aiofiles.os.listdir(self._path))

        entries: List[FileInfo] = []
        for name in names:
            try:
                st = await aiofiles.os.stat(
                    os.path.join(self._path, name), follow_symlinks=False
                )
            except FileNotFoundError:
                # Removed between listdir and lstat
                continue
            entries.append(file_info_from_stat(name, st))
            if 0 < count <= len(entries):
                break
        return entries

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._handle is not None:
            await self._handle.close()


class OsFilesystem(Filesystem):
    """Host filesystem addressed with host paths."""

    @property
    def name(self) -> str:
        return "OsFilesystem"

    async def open(self, path: str) -> File:
        return await self.open_file(path, os.O_RDONLY)

    async def create(self, path: str) -> File:
        return await self.open_file(path, os.O_RDWR | os.O_CREAT | os.O_TRUNC, 0o666)

    async def open_file(self, path: str, flags: int = os.O_RDONLY, mode: int = 0o644) -> File:
        with _translate_os_errors(path):
            try:
                st: Optional[os.stat_result] = await aiofiles.os.stat(path)
            except FileNotFoundError:
                if not flags & os.O_CREAT:
                    raise
                st = None

            if st is not None and stat_module.S_ISDIR(st.st_mode):
                return OsFile(path)

            handle = await aiofiles.open(
                path,
                _open_mode(flags),
                opener=lambda p, _: os.open(p, flags, mode),
            )
        return OsFile(path, handle)

    async def stat(self, path: str) -> FileInfo:
        with _translate_os_errors(path):
            st = await aiofiles.os.stat(path)
        return file_info_from_stat(posixpath.basename(path) or path, st)

    async def mkdir(self, path: str, mode: int = 0o755) -> None:
        with _translate_os_errors(path):
            await aiofiles.os.mkdir(path, mode)

    async def remove(self, path: str) -> None:
        with _translate_os_errors(path):
            if await aiofiles.os.path.isdir(path):
                await aiofiles.os.rmdir(path)
            else:
                await aiofiles.os.remove(path)

    async def rename(self, old_path: str, new_path: str) -> None:
        with _translate_os_errors(old_path):
            await aiofiles.os.rename(old_path, new_path)

    async def chmod(self, path: str, mode: int) -> None:
        with _translate_os_errors(path):
            await run_in_thread_pool(os.chmod, path, mode)

    async def chtimes(self, path: str, atime: datetime, mtime: datetime) -> None:
        with _translate_os_errors(path):
            await run_in_thread_pool(os.utime, path, (atime.timestamp(), mtime.timestamp()))


class LocalBackend(Backend):
    """Backend mounting a host directory."""

    scheme = "local"

    def __init__(self, base_path: str):
        """Initialize local backend.

        Args:
            base_path: Host directory presented as the mount root
        """
        super().__init__()
        self.base_path = clean_path(base_path)

    @classmethod
    def from_dsn(cls, dsn: DSN) -> "LocalBackend":
        """Build the backend from ``local://<root>/<subpath>``."""
        return cls(dsn.host + "/" + dsn.path)

    @asynccontextmanager
    async def mount(self) -> AsyncIterator[Filesystem]:
        """Check the base directory exists and present it."""
        with _translate_os_errors(self.base_path):
            await aiofiles.os.stat(self.base_path)

        self.logger.debug(f"Mounting local directory {self.base_path}")
        yield BasePathFilesystem(OsFilesystem(), self.base_path)
