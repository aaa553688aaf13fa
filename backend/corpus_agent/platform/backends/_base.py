"""Base filesystem backend."""

from abc import ABC, abstractmethod
from contextlib import AbstractAsyncContextManager
from typing import Optional

from corpus_agent.core.logging import ContextualLogger
from corpus_agent.core.logging import logger as default_logger
from corpus_agent.platform.filesystem import Filesystem


class Backend(ABC):
    """A transport able to mount a filesystem.

    Backends are built from a DSN by the registry and own no state until
    mounted. A mount is a scoped session: every connection, pool, temporary
    directory or background task it opens is released when the ``async with``
    block exits, whether normally, on error or on cancellation.

    Usage:
        async with backend.mount() as fs:
            info = await fs.stat("docs/readme.md")
    """

    scheme: str = ""

    def __init__(self):
        """Initialize the base backend."""
        self._logger: Optional[ContextualLogger] = None

    @property
    def logger(self) -> ContextualLogger:
        """Get the logger for this backend, falling back to the default one."""
        if self._logger is not None:
            return self._logger
        return default_logger.with_context(backend=self.scheme)

    def set_logger(self, logger: ContextualLogger) -> None:
        """Set a contextual logger for this backend."""
        self._logger = logger

    @abstractmethod
    def mount(self) -> AbstractAsyncContextManager[Filesystem]:
        """Open a session and yield the filesystem it presents."""
        pass
