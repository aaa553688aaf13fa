"""Workflow exceptions."""

from typing import List, Sequence

from corpus_agent.core.exceptions import CorpusAgentException


class CompensationError(CorpusAgentException):
    """Raised when a step failed and undoing the previous steps failed too.

    Attributes:
        execution_error: The error raised by the failing step
        compensation_errors: Errors raised by compensations, in the order they ran
    """

    def __init__(
        self, execution_error: BaseException, compensation_errors: Sequence[BaseException]
    ):
        """Initialize with the execution error and the compensation errors."""
        self.execution_error = execution_error
        self.compensation_errors: List[BaseException] = list(compensation_errors)
        details = ", ".join(f"[{idx}] {err}" for idx, err in enumerate(self.compensation_errors))
        super().__init__(
            f"compensation error: execution error '{execution_error}' "
            f"resulted in following compensation errors: {details}"
        )
