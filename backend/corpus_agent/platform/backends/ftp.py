"""FTP backend.

DSN: ``ftp://[user:pass@]host[:port]/<base>?timeout=10s``

Connections are short-lived: every filesystem operation borrows a fresh
control connection (connect, login, work, logout, quit). ``ftplib`` is
blocking, so each borrowed connection runs in the shared thread pool.
"""

import ftplib
import io
import posixpath
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncIterator, Callable, Dict, List, Optional, TypeVar

from corpus_agent.core.durations import parse_duration
from corpus_agent.core.logging import ContextualLogger
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
    NotSupportedError,
    WriteBuffer,
    clean_path,
    join_path,
)

T = TypeVar("T")

DEFAULT_PORT = 21

STATUS_BAD_COMMAND = 500
STATUS_BAD_ARGUMENTS = 501
STATUS_NOT_IMPLEMENTED = 502
STATUS_FILE_UNAVAILABLE = 550

# FTP servers do not report permissions in a portable way
CONSTANT_MODE = 0o777

ConnFunc = Callable[[ftplib.FTP], T]


def ftp_status(error: BaseException) -> Optional[int]:
    """Extract the reply code of an ``ftplib`` error."""
    text = str(error)[:3]
    return int(text) if text.isdigit() else None


def _is_status(error: BaseException, *codes: int) -> bool:
    return isinstance(error, ftplib.Error) and ftp_status(error) in codes


def parse_ftp_time(value: str) -> datetime:
    """Parse a ``YYYYMMDDHHMMSS[.sss]`` timestamp (always UTC)."""
    value = value.strip()
    main, _, fraction = value.partition(".")
    parsed = datetime.strptime(main[:14], "%Y%m%d%H%M%S").replace(tzinfo=timezone.utc)
    if fraction:
        parsed = parsed.replace(microsecond=int(fraction[:6].ljust(6, "0")))
    return parsed


def format_ftp_time(value: datetime) -> str:
    """Format a datetime for ``MFMT``."""
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc)
    return value.strftime("%Y%m%d%H%M%S")


def _info_from_facts(name: str, facts: Dict[str, str]) -> FileInfo:
    kind = facts.get("type", "file").lower()
    modify = facts.get("modify")
    return FileInfo(
        name=name,
        size=int(facts.get("size", facts.get("sizd", "0")) or 0),
        mod_time=parse_ftp_time(modify) if modify else datetime.fromtimestamp(0, tz=timezone.utc),
        is_dir=kind in ("dir", "cdir", "pdir"),
        mode=CONSTANT_MODE,
    )


def _parse_mlst(reply: str) -> Dict[str, str]:
    # 250-Listing <path>\n type=file;size=12;modify=20240101000000; <path>\n250 End
    lines = reply.splitlines()
    fact_line = next((line for line in lines[1:] if line.startswith(" ")), "")
    facts_text = fact_line.strip().split(" ", 1)[0]
    facts: Dict[str, str] = {}
    for fact in facts_text.split(";"):
        key, sep, value = fact.partition("=")
        if sep:
            facts[key.lower()] = value
    return facts


def get_file_info(conn: ftplib.FTP, path: str) -> FileInfo:
    """Stat a path over an open connection.

    Tries ``MLST``, then the parent's ``MLSD`` listing, then ``SIZE``/``MDTM``
    and finally a ``CWD`` check for directories.

    Raises:
        FilesystemNotFoundError: If the path does not exist
    """
    path = clean_path(path)
    name = posixpath.basename(path) or path

    try:
        facts = _parse_mlst(conn.sendcmd(f"MLST {path}"))
        if facts:
            return _info_from_facts(name, facts)
    except ftplib.Error as e:
        if not _is_status(
            e,
            STATUS_BAD_COMMAND,
            STATUS_BAD_ARGUMENTS,
            STATUS_NOT_IMPLEMENTED,
            STATUS_FILE_UNAVAILABLE,
        ):
            raise

    if path not in (".", "/"):
        parent = posixpath.dirname(path) or "."
        try:
            for entry_name, facts in conn.mlsd(parent):
                if entry_name == name:
                    return _info_from_facts(name, facts)
        except ftplib.Error as e:
            if not _is_status(
                e, STATUS_BAD_COMMAND, STATUS_NOT_IMPLEMENTED, STATUS_FILE_UNAVAILABLE
            ):
                raise

    try:
        modified = conn.sendcmd(f"MDTM {path}")
        size = conn.size(path)
        return FileInfo(
            name=name,
            size=size or 0,
            mod_time=parse_ftp_time(modified[4:]),
            is_dir=False,
            mode=CONSTANT_MODE,
        )
    except ftplib.Error as e:
        if not _is_status(e, STATUS_FILE_UNAVAILABLE, STATUS_NOT_IMPLEMENTED, STATUS_BAD_COMMAND):
            raise

    if _is_directory(conn, path):
        return FileInfo(name=name, is_dir=True, mode=CONSTANT_MODE)

    raise FilesystemNotFoundError(f"no such file or directory: {path}")


def _is_directory(conn: ftplib.FTP, path: str) -> bool:
    current = conn.pwd()
    try:
        conn.cwd(path)
    except ftplib.error_perm:
        return False
    conn.cwd(current)
    return True


def list_directory(conn: ftplib.FTP, path: str) -> List[FileInfo]:
    """List a directory with ``MLSD``, falling back to ``NLST`` plus stat."""
    try:
        entries = [
            _info_from_facts(name, facts)
            for name, facts in conn.mlsd(path)
            if name not in (".", "..") and facts.get("type", "").lower() not in ("cdir", "pdir")
        ]
    except ftplib.Error as e:
        if not _is_status(e, STATUS_BAD_COMMAND, STATUS_NOT_IMPLEMENTED):
            raise
        entries = []
        for raw in conn.nlst(path):
            entry_name = posixpath.basename(raw.rstrip("/"))
            if entry_name in (".", ".."):
                continue
            entries.append(get_file_info(conn, join_path(path, entry_name)))
    return sorted(entries, key=lambda e: e.name)


class FTPConnector:
    """Opens one logged-in control connection per operation."""

    def __init__(
        self,
        host: str,
        port: int,
        username: str,
        password: str,
        timeout: Optional[float],
        logger: ContextualLogger,
    ):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.timeout = timeout
        self.logger = logger

    def _run(self, fn: ConnFunc) -> T:
        conn = ftplib.FTP(timeout=self.timeout) if self.timeout else ftplib.FTP()
        conn.connect(self.host, self.port)
        try:
            logged_in = False
            if self.username and self.password:
                conn.login(self.username, self.password)
                logged_in = True
            try:
                return fn(conn)
            finally:
                if logged_in:
                    self._logout(conn)
        finally:
            self._quit(conn)

    def _logout(self, conn: ftplib.FTP) -> None:
        try:
            conn.sendcmd("REIN")
        except ftplib.Error as e:
            if not _is_status(e, STATUS_BAD_COMMAND, STATUS_NOT_IMPLEMENTED):
                self.logger.error(f"could not logout from ftp server: {e}")

    def _quit(self, conn: ftplib.FTP) -> None:
        try:
            conn.quit()
        except (ftplib.Error, OSError, EOFError) as e:
            self.logger.error(f"could not quit ftp server: {e}")
            conn.close()

    async def with_conn(self, fn: ConnFunc) -> T:
        """Run ``fn`` with a fresh logged-in connection."""
        return await run_in_thread_pool(self._run, fn)


class FTPFile(File):
    """FTP file.

    Reads download the whole content once (``RETR``) and serve every read from
    memory. Writes accumulate in a WriteBuffer uploaded with ``STOR`` on close.
    """

    def __init__(self, connector: FTPConnector, path: str):
        self._connector = connector
        self._path = path
        self._reader: Optional[io.BytesIO] = None
        self._writer: Optional[WriteBuffer] = None
        self._closed = False

    @property
    def name(self) -> str:
        return self._path

    def _check_open(self) -> None:
        if self._closed:
            raise FileClosedError(f"file already closed: {self._path}")

    async def _get_reader(self) -> io.BytesIO:
        self._check_open()
        if self._reader is None:

            def retrieve(conn: ftplib.FTP) -> bytes:
                chunks = io.BytesIO()
                conn.retrbinary(f"RETR {self._path}", chunks.write)
                return chunks.getvalue()

            self._reader = io.BytesIO(await self._connector.with_conn(retrieve))
        return self._reader

    def _get_writer(self) -> WriteBuffer:
        self._check_open()
        if self._writer is None:
            self._writer = WriteBuffer()
        return self._writer

    async def read(self, size: int = -1) -> bytes:
        return (await self._get_reader()).read(size)

    async def read_at(self, size: int, offset: int) -> bytes:
        data = (await self._get_reader()).getbuffer()
        return bytes(data[offset : offset + size])

    async def seek(self, offset: int, whence: int = SEEK_SET) -> int:
        return (await self._get_reader()).seek(offset, whence)

    async def write(self, data: bytes) -> int:
        return self._get_writer().write(data)

    async def write_at(self, data: bytes, offset: int) -> int:
        return self._get_writer().write_at(data, offset)

    async def truncate(self, size: int) -> None:
        raise NotSupportedError("truncate", "ftp")

    async def stat(self) -> FileInfo:
        self._check_open()
        return await self._connector.with_conn(lambda conn: get_file_info(conn, self._path))

    async def readdir(self, count: int = -1) -> List[FileInfo]:
        self._check_open()
        entries = await self._connector.with_conn(lambda conn: list_directory(conn, self._path))
        return entries[:count] if count > 0 else entries

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._reader = None
        writer, self._writer = self._writer, None
        if writer is None:
            return

        content = writer.getvalue()
        await self._connector.with_conn(
            lambda conn: conn.storbinary(f"STOR {self._path}", io.BytesIO(content))
        )


class FTPFilesystem(Filesystem):
    """Filesystem over FTP, borrowing one connection per call."""

    def __init__(self, connector: FTPConnector):
        self._connector = connector

    @property
    def name(self) -> str:
        return "ftpfs"

    async def open(self, path: str) -> File:
        await self.stat(path)
        return FTPFile(self._connector, path)

    async def create(self, path: str) -> File:
        await self._connector.with_conn(
            lambda conn: conn.storbinary(f"STOR {path}", io.BytesIO(b""))
        )
        return FTPFile(self._connector, path)

    async def stat(self, path: str) -> FileInfo:
        return await self._connector.with_conn(lambda conn: get_file_info(conn, path))

    async def mkdir(self, path: str, mode: int = 0o755) -> None:
        def make(conn: ftplib.FTP) -> None:
            name = posixpath.basename(clean_path(path))
            parent = posixpath.dirname(clean_path(path)) or "."
            for entry in list_directory(conn, parent):
                if entry.name != name:
                    continue
                if not entry.is_dir:
                    raise FilesystemExistsError(
                        f"file '{path}' already exists and is not a directory"
                    )
                return
            conn.mkd(path)

        await self._connector.with_conn(make)

    async def remove(self, path: str) -> None:
        def delete(conn: ftplib.FTP) -> None:
            info = get_file_info(conn, path)
            if info.is_dir:
                conn.rmd(path)
            else:
                conn.delete(path)

        await self._connector.with_conn(delete)

    async def rename(self, old_path: str, new_path: str) -> None:
        await self._connector.with_conn(lambda conn: conn.rename(old_path, new_path))

    async def chmod(self, path: str, mode: int) -> None:
        return None

    async def chtimes(self, path: str, atime: datetime, mtime: datetime) -> None:
        await self._connector.with_conn(
            lambda conn: conn.sendcmd(f"MFMT {format_ftp_time(mtime)} {path}")
        )


class FTPBackend(Backend):
    """FTP transport."""

    scheme = "ftp"

    def __init__(
        self,
        host: str,
        port: int = DEFAULT_PORT,
        base_path: str = "",
        username: str = "",
        password: str = "",
        timeout: Optional[float] = None,
    ):
        """Initialize FTP backend.

        Args:
            host: Server host name
            port: Server port
            base_path: Directory presented as the mount root, relative to the login directory
            username: Login user, anonymous access when empty
            password: Login password
            timeout: Socket timeout in seconds
        """
        super().__init__()
        self.host = host
        self.port = port
        self.base_path = base_path
        self.username = username
        self.password = password
        self.timeout = timeout

    @classmethod
    def from_dsn(cls, dsn: DSN) -> "FTPBackend":
        """Build the backend from ``ftp://[user:pass@]host[:port]/<base>?timeout=<dur>``."""
        timeout: Optional[float] = None
        raw_timeout = dsn.pop("timeout")
        if raw_timeout is not None:
            timeout = parse_duration(raw_timeout).total_seconds()

        return cls(
            host=dsn.host,
            port=dsn.port or DEFAULT_PORT,
            base_path=dsn.path.lstrip("/"),
            username=dsn.username or "",
            password=dsn.password or "",
            timeout=timeout,
        )

    @asynccontextmanager
    async def mount(self) -> AsyncIterator[Filesystem]:
        """Present the server as a filesystem; no connection outlives a call."""
        connector = FTPConnector(
            self.host, self.port, self.username, self.password, self.timeout, self.logger
        )
        fs: Filesystem = FTPFilesystem(connector)
        if self.base_path:
            fs = BasePathFilesystem(fs, self.base_path)
        yield fs
