"""Filesystem exceptions.

All filesystem-related exceptions inherit from FilesystemException. The
not-found, exists and not-a-directory variants also inherit from their
builtin counterparts so callers can catch either.
"""


class FilesystemException(Exception):
    """Base exception for filesystem operations."""

    pass


class FilesystemNotFoundError(FilesystemException, FileNotFoundError):
    """Raised when a path does not exist."""

    pass


class FilesystemExistsError(FilesystemException, FileExistsError):
    """Raised when a path already exists."""

    pass


class NotADirectoryFilesystemError(FilesystemException, NotADirectoryError):
    """Raised when a directory operation targets a regular file."""

    pass


class NotSupportedError(FilesystemException):
    """Raised when a backend does not implement an operation."""

    def __init__(self, operation: str, backend: str = ""):
        """Initialize not supported error.

        Args:
            operation: Name of the unsupported operation
            backend: Name of the filesystem rejecting it
        """
        self.operation = operation
        self.backend = backend
        where = f" by {backend}" if backend else ""
        super().__init__(f"operation '{operation}' is not supported{where}")


class FileClosedError(FilesystemException):
    """Raised when an operation targets a closed file."""

    pass
