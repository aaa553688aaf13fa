"""Client for the document indexing service.

Every call goes to ``<base url>/api/v1``. Any 2xx answer is a success, any other
status raises ``UnexpectedStatusError``. Rate limited calls are retried by
``RateLimitTransport`` before they reach this layer.
"""

import asyncio
from typing import Any, Dict, Iterable, List, Optional
from urllib.parse import urlsplit, urlunsplit

import httpx

from corpus_agent.core.config import settings
from corpus_agent.core.exceptions import UnexpectedStatusError
from corpus_agent.core.logging import ContextualLogger
from corpus_agent.core.logging import logger as default_logger
from corpus_agent.platform.http_client.rate_limit import RateLimitTransport
from corpus_agent.platform.http_client.schemas import DocumentHeader, DocumentPage, Task

API_PREFIX = "/api/v1"


def _split_credentials(base_url: str):
    """Remove the userinfo from a URL, returning it as basic auth."""
    parts = urlsplit(base_url)
    if parts.username is None:
        return base_url, None
    netloc = parts.hostname or ""
    if ":" in netloc:
        netloc = f"[{netloc}]"
    if parts.port is not None:
        netloc = f"{netloc}:{parts.port}"
    stripped = urlunsplit((parts.scheme, netloc, parts.path, parts.query, parts.fragment))
    return stripped, httpx.BasicAuth(parts.username, parts.password or "")


class CorpusClient:
    """Typed client of the indexing service HTTP API.

    Usage:
        async with CorpusClient("http://localhost:3002") as client:
            task = await client.index("1.txt", b"hello", source="file:///1.txt")
            task = await client.wait_for(task.id)
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        token: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        logger: Optional[ContextualLogger] = None,
    ):
        """Initialize the client.

        Args:
            base_url: Service URL, ``settings.CORPUS_SERVER_URL`` by default. Userinfo
                in the URL is sent as basic auth.
            token: Bearer token, ``settings.CORPUS_AUTH_TOKEN`` by default
            timeout: Per-request timeout in seconds
            transport: Transport to send requests through, a ``RateLimitTransport``
                over the default pooled transport when omitted
            logger: Logger
        """
        base_url, auth = _split_credentials(base_url or settings.CORPUS_SERVER_URL)
        token = token if token is not None else settings.CORPUS_AUTH_TOKEN

        headers = {"Accept": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
            auth = None

        self.logger = logger or default_logger
        self.base_url = base_url.rstrip("/") + API_PREFIX
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            auth=auth,
            headers=headers,
            timeout=timeout if timeout is not None else settings.CORPUS_HTTP_TIMEOUT,
            transport=transport or RateLimitTransport(logger=self.logger),
            trust_env=True,
        )

    async def __aenter__(self) -> "CorpusClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Close the underlying connection pool."""
        await self._client.aclose()

    # ---- Transport ----

    async def _send(self, request: httpx.Request) -> httpx.Response:
        self.logger.debug(f"new client request {request.method} {request.url.path}")
        response = await self._client.send(request)
        if not 200 <= response.status_code < 300:
            raise UnexpectedStatusError(
                response.status_code,
                response.reason_phrase,
                method=request.method,
                url=str(request.url),
            )
        return response

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        return await self._send(self._client.build_request(method, path, **kwargs))

    # ---- Operations ----

    async def index(
        self,
        filename: str,
        content: bytes,
        collections: Iterable[str] = (),
        source: Optional[str] = None,
        etag: Optional[str] = None,
    ) -> Task:
        """Upload a file for indexing.

        Args:
            filename: Name of the uploaded file
            content: File content
            collections: Collections the document belongs to
            source: Source URL identifying the document
            etag: Fingerprint stored with the document

        Returns:
            The indexing task
        """
        data: Dict[str, Any] = {}
        collections = list(collections)
        if collections:
            data["collection"] = collections
        if source:
            data["source"] = source
        if etag:
            data["etag"] = etag

        request = self._client.build_request(
            "POST", "/index", data=data, files={"file": (filename, content)}
        )
        # Buffer the multipart body so a rate limited upload can be sent again
        await request.aread()

        response = await self._send(request)
        return Task.model_validate(response.json()["task"])

    async def query_documents(
        self,
        source: Optional[str] = None,
        collections: Iterable[str] = (),
        page: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> DocumentPage:
        """List documents, optionally restricted to one source or some collections."""
        params: List[tuple] = [("collection", c) for c in collections]
        if source is not None:
            params.append(("source", source))
        if page is not None:
            params.append(("page", str(page)))
        if limit is not None:
            params.append(("limit", str(limit)))

        response = await self._request("GET", "/documents", params=params)
        return DocumentPage.model_validate(response.json())

    async def find_by_source(self, source: str) -> List[DocumentHeader]:
        """Return the documents indexed from a source."""
        page = await self.query_documents(source=source)
        return page.documents

    async def delete_document(self, document_id: str) -> bool:
        """Delete a document.

        Returns:
            False if the document did not exist
        """
        try:
            await self._request("DELETE", f"/documents/{document_id}")
        except UnexpectedStatusError as e:
            if e.status_code == 404:
                return False
            raise
        return True

    async def get_task(self, task_id: str) -> Task:
        """Fetch the current state of a task."""
        response = await self._request("GET", f"/tasks/{task_id}")
        return Task.model_validate(response.json()["task"])

    async def wait_for(self, task_id: str, poll_interval: Optional[float] = None) -> Task:
        """Poll a task until it finishes.

        Args:
            task_id: Task identifier
            poll_interval: Seconds between polls, ``settings.CORPUS_TASK_POLL_INTERVAL``
                by default

        Returns:
            The finished task, whatever its status
        """
        interval = (
            settings.CORPUS_TASK_POLL_INTERVAL if poll_interval is None else poll_interval
        )
        while True:
            task = await self.get_task(task_id)
            if task.finished:
                return task
            await asyncio.sleep(interval)
