"""Agent-level DSN parameters.

These keys configure the indexer and the watcher, not the backend, and are
removed from the DSN before the backend is built:

- ``corpusCollections``: comma separated collection names
- ``corpusSource``: source URL template (``__PATH__``, ``__ESCAPED_PATH__``)
- ``corpusEtag``: ``modtime`` (default) or ``size``
- ``watchRecursive``: ``false`` to watch only the top directory
- ``watchInterval``: poll interval as a duration literal, ``30s`` by default
- ``watchDirectory``: watched directory, relative to the mount root
- ``watchFilter``: glob matched against mount-relative file paths
"""

from datetime import timedelta
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from corpus_agent.core.durations import parse_duration
from corpus_agent.core.exceptions import ConfigurationError
from corpus_agent.platform.backends.dsn import DSN
from corpus_agent.platform.indexer.etag import ETagKind
from corpus_agent.platform.indexer.source import validate_source_template
from corpus_agent.platform.watcher import WatchOptions, compile_glob

PARAM_COLLECTIONS = "corpusCollections"
PARAM_SOURCE = "corpusSource"
PARAM_ETAG = "corpusEtag"
PARAM_RECURSIVE = "watchRecursive"
PARAM_INTERVAL = "watchInterval"
PARAM_DIRECTORY = "watchDirectory"
PARAM_FILTER = "watchFilter"

AGENT_PARAMS = (
    PARAM_COLLECTIONS,
    PARAM_SOURCE,
    PARAM_ETAG,
    PARAM_RECURSIVE,
    PARAM_INTERVAL,
    PARAM_DIRECTORY,
    PARAM_FILTER,
)


class AgentOptions(BaseModel):
    """Indexing and watch settings of one watched filesystem."""

    model_config = ConfigDict(frozen=True)

    collections: List[str] = Field(default_factory=list)
    source_template: Optional[str] = None
    etag_kind: ETagKind = ETagKind.MODTIME
    watch: WatchOptions = Field(default_factory=lambda: WatchOptions(recursive=True))

    @classmethod
    def from_dsn(cls, dsn: DSN) -> "AgentOptions":
        """Pop the agent-level keys off a DSN and parse them.

        Args:
            dsn: Parsed DSN, modified in place

        Returns:
            The parsed options

        Raises:
            ConfigurationError: If a value cannot be parsed
        """
        raw_collections = dsn.pop(PARAM_COLLECTIONS) or ""
        collections = [c.strip() for c in raw_collections.split(",") if c.strip()]

        source_template = dsn.pop(PARAM_SOURCE) or None
        if source_template is not None:
            validate_source_template(source_template)

        raw_etag = dsn.pop(PARAM_ETAG) or ""
        etag_kind = ETagKind.parse(raw_etag) if raw_etag else ETagKind.MODTIME

        recursive = dsn.pop(PARAM_RECURSIVE) != "false"

        interval = timedelta(seconds=30)
        raw_interval = dsn.pop(PARAM_INTERVAL) or ""
        if raw_interval:
            try:
                interval = parse_duration(raw_interval)
            except ConfigurationError as e:
                raise ConfigurationError(
                    f"could not parse '{PARAM_INTERVAL}' parameter: {e}"
                ) from e
            if interval <= timedelta(0):
                raise ConfigurationError(f"'{PARAM_INTERVAL}' parameter must be positive")

        directory = dsn.pop(PARAM_DIRECTORY) or "."

        filter_ = None
        raw_filter = dsn.pop(PARAM_FILTER) or ""
        if raw_filter:
            try:
                filter_ = compile_glob(raw_filter)
            except ConfigurationError as e:
                raise ConfigurationError(f"could not parse '{PARAM_FILTER}' parameter: {e}") from e

        return cls(
            collections=collections,
            source_template=source_template,
            etag_kind=etag_kind,
            watch=WatchOptions(
                directory=directory,
                recursive=recursive,
                interval=interval,
                filter=filter_,
            ),
        )
