"""Watch events, handlers and options."""

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import timedelta
from enum import Enum
from typing import Any, FrozenSet, Optional

import pathspec
from pydantic import BaseModel, ConfigDict, Field, field_validator

from corpus_agent.platform.filesystem import FileInfo


class WatchOp(str, Enum):
    """Kinds of filesystem changes."""

    CREATE = "CREATE"
    WRITE = "WRITE"
    REMOVE = "REMOVE"
    RENAME = "RENAME"
    CHMOD = "CHMOD"
    MOVE = "MOVE"

    def __str__(self) -> str:
        return self.value


ALL_OPS: FrozenSet[WatchOp] = frozenset(WatchOp)


@dataclass(frozen=True)
class WatchEvent:
    """A detected change.

    ``path`` is always the post-operation path. ``old_path`` is the previous
    path for RENAME and MOVE, the removed path for REMOVE, and empty otherwise.
    ``info`` is captured at detection time and may be stale.
    """

    op: WatchOp
    path: str
    info: Optional[FileInfo] = None
    old_path: str = ""

    @property
    def is_dir(self) -> bool:
        return self.info is not None and self.info.is_dir

    def __str__(self) -> str:
        if self.op in (WatchOp.RENAME, WatchOp.MOVE):
            return f'{self.op} "{self.old_path}" -> "{self.path}"'
        return f'{self.op} "{self.path}"'


class WatchHandler(ABC):
    """Receives watch events.

    ``handle`` may be called concurrently for different events.
    """

    @abstractmethod
    async def handle(self, event: WatchEvent) -> None:
        """Process one event.

        Args:
            event: The detected change
        """
        pass


class WatchOptions(BaseModel):
    """Watch configuration.

    ``filter`` is either a compiled regular expression (searched in the path)
    or a ``pathspec.PathSpec`` (see ``compile_glob``). It is matched against
    mount-relative file paths such as ``watched/1.txt``.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    directory: str = Field(".", description="Watched directory, relative to the mount root")
    recursive: bool = Field(False, description="Watch sub-directories too")
    interval: timedelta = Field(timedelta(seconds=30), description="Delay between two polls")
    filter: Optional[Any] = Field(None, description="re.Pattern or pathspec.PathSpec")
    events: FrozenSet[WatchOp] = Field(ALL_OPS, description="Event kinds to report")

    @field_validator("interval")
    @classmethod
    def validate_interval(cls, value: timedelta) -> timedelta:
        """Reject non-positive intervals."""
        if value <= timedelta(0):
            raise ValueError("interval must be positive")
        return value

    @field_validator("filter")
    @classmethod
    def validate_filter(cls, value: Any) -> Any:
        """Accept only regular expressions and path specs."""
        if value is None or isinstance(value, (re.Pattern, pathspec.PathSpec)):
            return value
        raise ValueError(f"unsupported filter type '{type(value).__name__}'")

    def matches(self, path: str) -> bool:
        """Return whether a path passes the filter."""
        if self.filter is None:
            return True
        if isinstance(self.filter, re.Pattern):
            return self.filter.search(path) is not None
        return self.filter.match_file(path)
