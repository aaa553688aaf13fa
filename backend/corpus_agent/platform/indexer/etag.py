"""Local content fingerprints."""

from enum import Enum

from corpus_agent.core.exceptions import ConfigurationError
from corpus_agent.platform.filesystem import FileInfo


class ETagKind(str, Enum):
    """How a file's ETag is derived from its metadata.

    ``SIZE`` exists for backends reporting a constant modification time.
    """

    MODTIME = "modtime"
    SIZE = "size"

    @classmethod
    def parse(cls, value: str) -> "ETagKind":
        """Parse a ``corpusEtag`` value.

        Raises:
            ConfigurationError: If the value is not a known kind
        """
        try:
            return cls(value)
        except ValueError as e:
            raise ConfigurationError(
                f"could not parse parameter 'corpusEtag', unexpected value '{value}'"
            ) from e


def compute_etag(kind: ETagKind, info: FileInfo) -> str:
    """Compute the ETag of a file, without reading it."""
    if kind == ETagKind.MODTIME:
        return f"modtime-{int(info.mod_time.timestamp())}"
    return f"size-{info.size}"
