"""Unit test conftest: test environment and a fake indexing service."""

import json
import os
import re
from typing import Dict, List, Optional
from urllib.parse import parse_qsl
from unittest.mock import AsyncMock

# Set the environment before importing any corpus_agent module
# so Settings picks these values up at import time
os.environ.setdefault("CORPUS_SERVER_URL", "http://corpus.test")
os.environ.setdefault("LOG_LEVEL", "DEBUG")
os.environ.setdefault("WATCH_DEBUG_FILESYSTEM", "false")

import httpx  # noqa: E402
import pytest  # noqa: E402

from corpus_agent.platform.http_client import CorpusClient, RateLimitTransport  # noqa: E402

_DISPOSITION = re.compile(rb'name="([^"]*)"(?:; filename="([^"]*)")?')


def parse_multipart(request: httpx.Request) -> Dict[str, List]:
    """Parse a multipart/form-data request into ``{name: [value, ...]}``.

    File parts are stored as ``(filename, content)`` tuples.
    """
    content_type = request.headers["Content-Type"]
    boundary = content_type.split("boundary=", 1)[1].encode()
    fields: Dict[str, List] = {}
    for part in request.content.split(b"--" + boundary):
        if not part.strip() or part.strip() == b"--":
            continue
        head, _, body = part.lstrip(b"\r\n").partition(b"\r\n\r\n")
        match = _DISPOSITION.search(head)
        if match is None:
            continue
        name = match.group(1).decode()
        body = body[:-2] if body.endswith(b"\r\n") else body
        if match.group(2) is not None:
            fields.setdefault(name, []).append((match.group(2).decode(), body))
        else:
            fields.setdefault(name, []).append(body.decode())
    return fields


class FakeCorpusService:
    """In-process indexing service speaking the ``/api/v1`` HTTP API.

    Index tasks finish as soon as they are created. Every call is recorded in
    ``calls`` as ``(method, path)``.
    """

    def __init__(self):
        self.documents: Dict[str, Dict] = {}
        self.tasks: Dict[str, Dict] = {}
        self.uploads: List[Dict] = []
        self.calls: List[tuple] = []
        self.fail_next_task: Optional[Dict[str, str]] = None
        self.rate_limited: List[httpx.Response] = []
        self._next_id = 0

    def _new_id(self, prefix: str) -> str:
        self._next_id += 1
        return f"{prefix}-{self._next_id}"

    def count(self, method: str, prefix: str) -> int:
        """Number of recorded calls whose path starts with ``prefix``."""
        return sum(1 for m, p in self.calls if m == method and p.startswith(prefix))

    def handle(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        self.calls.append((request.method, path))

        if self.rate_limited:
            return self.rate_limited.pop(0)

        if request.method == "POST" and path == "/api/v1/index":
            return self._index(request)
        if request.method == "GET" and path == "/api/v1/documents":
            return self._list(request)
        if request.method == "DELETE" and path.startswith("/api/v1/documents/"):
            return self._delete(path.rsplit("/", 1)[1])
        if request.method == "GET" and path.startswith("/api/v1/tasks/"):
            task = self.tasks.get(path.rsplit("/", 1)[1])
            if task is None:
                return httpx.Response(404)
            return httpx.Response(200, json={"task": task})
        return httpx.Response(404)

    def _index(self, request: httpx.Request) -> httpx.Response:
        fields = parse_multipart(request)
        filename, content = fields["file"][0]
        source = fields.get("source", [""])[0]
        etag = fields.get("etag", [""])[0]
        self.uploads.append(
            {
                "filename": filename,
                "content": content,
                "source": source,
                "etag": etag,
                "collections": fields.get("collection", []),
            }
        )

        task_id = self._new_id("task")
        if self.fail_next_task is not None:
            failure, self.fail_next_task = self.fail_next_task, None
            task = {"id": task_id, "status": "failed", "finishedAt": "2024-01-01T00:00:00Z"}
            task.update(failure)
        else:
            for doc_id in [i for i, d in self.documents.items() if d["source"] == source]:
                del self.documents[doc_id]
            doc_id = self._new_id("doc")
            self.documents[doc_id] = {"id": doc_id, "source": source, "etag": etag}
            task = {
                "id": task_id,
                "status": "succeeded",
                "type": "index_file",
                "progress": 1,
                "scheduledAt": "2024-01-01T00:00:00Z",
                "finishedAt": "2024-01-01T00:00:01Z",
                "message": "",
            }
        self.tasks[task_id] = task
        return httpx.Response(200, json={"task": {"id": task_id, "status": "pending"}})

    def _list(self, request: httpx.Request) -> httpx.Response:
        params = parse_qsl(request.url.query.decode())
        source = dict(params).get("source")
        documents = [d for d in self.documents.values() if source is None or d["source"] == source]
        body = {"documents": documents, "total": len(documents), "page": 0, "limit": 10}
        return httpx.Response(200, content=json.dumps(body).encode())

    def _delete(self, doc_id: str) -> httpx.Response:
        if self.documents.pop(doc_id, None) is None:
            return httpx.Response(404)
        return httpx.Response(204)


@pytest.fixture
def corpus_service():
    """Create an empty fake indexing service."""
    return FakeCorpusService()


@pytest.fixture
def rate_limit_sleep():
    """Sleep replacement recording the rate limit waits."""
    return AsyncMock()


@pytest.fixture
async def corpus_client(corpus_service, rate_limit_sleep):
    """Create a client talking to the fake service."""
    transport = RateLimitTransport(
        transport=httpx.MockTransport(corpus_service.handle),
        max_retries=10,
        default_wait=1.0,
        sleep=rate_limit_sleep,
    )
    client = CorpusClient(base_url="http://corpus.test", token="", transport=transport)
    yield client
    await client.aclose()
