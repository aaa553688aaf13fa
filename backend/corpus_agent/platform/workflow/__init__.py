"""Compensating workflows."""

from corpus_agent.platform.workflow.exceptions import CompensationError
from corpus_agent.platform.workflow.workflow import Step, Workflow

__all__ = ["CompensationError", "Step", "Workflow"]
