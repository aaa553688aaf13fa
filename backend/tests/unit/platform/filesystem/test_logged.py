"""Tests for the filesystem logging decorator."""

from unittest.mock import MagicMock

import pytest

from corpus_agent.platform.backends.local import OsFilesystem
from corpus_agent.platform.filesystem import (
    BasePathFilesystem,
    FilesystemNotFoundError,
    LoggingFilesystem,
)


@pytest.fixture
def mock_logger():
    """Create a logger whose with_context returns itself."""
    log = MagicMock()
    log.with_context.return_value = log
    return log


@pytest.fixture
def fs(tmp_path, mock_logger):
    """Wrap a local directory in the logging decorator."""
    (tmp_path / "doc.txt").write_bytes(b"hello")
    return LoggingFilesystem(BasePathFilesystem(OsFilesystem(), str(tmp_path)), mock_logger)


@pytest.mark.asyncio
async def test_calls_are_traced_at_debug_level(fs, mock_logger):
    """Test that filesystem and file calls each produce one debug line."""
    async with await fs.open("doc.txt") as file:
        assert await file.read() == b"hello"

    lines = [call.args[0] for call in mock_logger.debug.call_args_list]
    assert "Open(path='doc.txt')" in lines
    assert "File.Read(size=-1)" in lines
    assert "File.Close()" in lines


@pytest.mark.asyncio
async def test_failures_are_traced_and_reraised(fs, mock_logger):
    """Test that a failing call is logged then propagated."""
    with pytest.raises(FilesystemNotFoundError):
        await fs.stat("missing.txt")

    last_line = mock_logger.debug.call_args_list[-1].args[0]
    assert last_line.startswith("Stat(path='missing.txt') failed:")
