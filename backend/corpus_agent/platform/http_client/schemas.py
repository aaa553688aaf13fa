"""Indexing service response schemas."""

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class TaskStatus(str, Enum):
    """Remote task states."""

    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class DocumentHeader(BaseModel):
    """Indexed document summary."""

    id: str = Field(..., description="Document identifier")
    source: str = Field("", description="Source URL the document was indexed from")
    etag: Optional[str] = Field(None, description="ETag sent when the document was indexed")


class DocumentPage(BaseModel):
    """One page of a document query."""

    documents: List[DocumentHeader] = Field(default_factory=list)
    total: int = 0
    page: int = 0
    limit: int = 0


class Task(BaseModel):
    """Asynchronous remote operation."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    status: str = TaskStatus.PENDING.value
    type: str = ""
    progress: float = 0.0
    scheduled_at: Optional[datetime] = Field(None, alias="scheduledAt")
    finished_at: Optional[datetime] = Field(None, alias="finishedAt")
    error: Optional[str] = None
    message: Optional[str] = None

    @property
    def finished(self) -> bool:
        """Whether the task reached a terminal state."""
        if self.finished_at is not None:
            return True
        return self.status in (TaskStatus.SUCCEEDED.value, TaskStatus.FAILED.value)

    @property
    def failed(self) -> bool:
        """Whether the task ended in error."""
        return self.status == TaskStatus.FAILED.value
