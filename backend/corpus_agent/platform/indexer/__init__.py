"""Watch event to index operation pipeline."""

from corpus_agent.platform.indexer.debounce import Debouncer
from corpus_agent.platform.indexer.etag import ETagKind, compute_etag
from corpus_agent.platform.indexer.indexer import INDEXER_EVENTS, FilesystemIndexer
from corpus_agent.platform.indexer.options import AGENT_PARAMS, AgentOptions
from corpus_agent.platform.indexer.source import source_url

__all__ = [
    "AGENT_PARAMS",
    "AgentOptions",
    "Debouncer",
    "ETagKind",
    "FilesystemIndexer",
    "INDEXER_EVENTS",
    "compute_etag",
    "source_url",
]
