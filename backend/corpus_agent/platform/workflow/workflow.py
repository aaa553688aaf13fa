"""Sequential steps with compensation.

A ``Workflow`` runs its steps in order. When step ``i`` fails, the compensations
of steps ``i`` down to ``0`` run in reverse order, the failing step included, so
each compensation must tolerate a partially executed step. If every
compensation succeeds the original error is re-raised; otherwise a
``CompensationError`` carries both.
"""

from dataclasses import dataclass
from typing import Awaitable, Callable, List, Optional

from corpus_agent.platform.workflow.exceptions import CompensationError

StepCallable = Callable[[], Awaitable[None]]


@dataclass
class Step:
    """One unit of work and its optional undo."""

    execute: Optional[StepCallable] = None
    compensate: Optional[StepCallable] = None

    async def run(self) -> None:
        if self.execute is not None:
            await self.execute()

    async def undo(self) -> None:
        if self.compensate is not None:
            await self.compensate()


class Workflow:
    """Ordered list of steps."""

    def __init__(self, *steps: Step):
        self.steps: List[Step] = list(steps)

    async def execute(self) -> None:
        """Run every step.

        Raises:
            CompensationError: If a step failed and some compensations failed too
            Exception: The failing step's error when every compensation succeeded
        """
        for idx, step in enumerate(self.steps):
            try:
                await step.run()
            except Exception as execution_error:
                compensation_errors = await self._compensate(idx)
                if compensation_errors:
                    raise CompensationError(
                        execution_error, compensation_errors
                    ) from execution_error
                raise

    async def _compensate(self, from_index: int) -> List[Exception]:
        errors: List[Exception] = []
        for step in reversed(self.steps[: from_index + 1]):
            try:
                await step.undo()
            except Exception as e:
                errors.append(e)
        return errors
