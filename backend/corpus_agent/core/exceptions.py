"""Core exceptions for the corpus agent."""

from typing import Optional


class CorpusAgentException(Exception):
    """Base exception for the agent."""

    pass


class ConfigurationError(CorpusAgentException):
    """Raised when a DSN, a duration, a glob or a parameter cannot be parsed.

    Configuration errors are fatal at start-up.
    """

    pass


class SchemeNotRegisteredError(CorpusAgentException):
    """Raised when no filesystem backend is registered for a DSN scheme."""

    def __init__(self, scheme: str):
        """Initialize with the unknown scheme."""
        self.scheme = scheme
        super().__init__(f"scheme was not registered: no driver associated with scheme '{scheme}'")


class CorpusClientError(CorpusAgentException):
    """Base exception for indexing service errors."""

    pass


class UnexpectedStatusError(CorpusClientError):
    """Raised when the indexing service answers with a non-2xx status."""

    def __init__(self, status_code: int, reason: str, method: str = "", url: str = ""):
        """Initialize with the response status.

        Args:
            status_code: HTTP status code
            reason: HTTP reason phrase
            method: Request method
            url: Request URL
        """
        self.status_code = status_code
        self.reason = reason
        self.method = method
        self.url = url
        super().__init__(f"unexpected response code {status_code} ({reason})")


class TaskFailedError(CorpusClientError):
    """Raised when a remote task ends in the failed state."""

    def __init__(self, task_id: str, error: Optional[str], message: Optional[str]):
        """Initialize with the task's error details."""
        self.task_id = task_id
        self.error = error or ""
        self.message = message or ""
        super().__init__(f"indexation failed: {self.error} ({self.message})")


class RequestNotReplayableError(CorpusClientError):
    """Raised when a rate-limited request has a one-shot body that cannot be resent."""

    pass
