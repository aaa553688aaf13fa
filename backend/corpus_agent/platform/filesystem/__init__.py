"""Abstract filesystem shared by every backend."""

from corpus_agent.platform.filesystem.base import (
    EPOCH,
    SEEK_CUR,
    SEEK_END,
    SEEK_SET,
    File,
    FileInfo,
    Filesystem,
    clean_path,
    join_path,
    walk,
)
from corpus_agent.platform.filesystem.base_path import BasePathFilesystem
from corpus_agent.platform.filesystem.exceptions import (
    FileClosedError,
    FilesystemException,
    FilesystemExistsError,
    FilesystemNotFoundError,
    NotADirectoryFilesystemError,
    NotSupportedError,
)
from corpus_agent.platform.filesystem.logged import LoggingFilesystem
from corpus_agent.platform.filesystem.write_buffer import WriteBuffer

__all__ = [
    "EPOCH",
    "SEEK_CUR",
    "SEEK_END",
    "SEEK_SET",
    "BasePathFilesystem",
    "File",
    "FileClosedError",
    "FileInfo",
    "Filesystem",
    "FilesystemException",
    "FilesystemExistsError",
    "FilesystemNotFoundError",
    "LoggingFilesystem",
    "NotADirectoryFilesystemError",
    "NotSupportedError",
    "WriteBuffer",
    "clean_path",
    "join_path",
    "walk",
]
