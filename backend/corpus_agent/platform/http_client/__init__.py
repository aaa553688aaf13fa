"""Indexing service HTTP client."""

from corpus_agent.platform.http_client.corpus_client import CorpusClient
from corpus_agent.platform.http_client.rate_limit import RateLimitTransport, wait_time
from corpus_agent.platform.http_client.schemas import (
    DocumentHeader,
    DocumentPage,
    Task,
    TaskStatus,
)

__all__ = [
    "CorpusClient",
    "DocumentHeader",
    "DocumentPage",
    "RateLimitTransport",
    "Task",
    "TaskStatus",
    "wait_time",
]
