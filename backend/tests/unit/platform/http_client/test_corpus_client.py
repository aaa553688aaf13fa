"""Tests for the indexing service client."""

import base64

import httpx
import pytest

from corpus_agent.core.exceptions import UnexpectedStatusError
from corpus_agent.platform.http_client import CorpusClient, TaskStatus


@pytest.mark.asyncio
async def test_index_sends_multipart_upload(corpus_client, corpus_service):
    """Test the multipart fields of an upload."""
    task = await corpus_client.index(
        "1.txt",
        b"hello",
        collections=["docs", "archive"],
        source="file:///watched/1.txt",
        etag="modtime-1700000000",
    )

    # Verify the returned task and the recorded upload
    assert task.id == "task-1"
    assert task.status == TaskStatus.PENDING.value
    assert not task.finished
    assert corpus_service.uploads == [
        {
            "filename": "1.txt",
            "content": b"hello",
            "source": "file:///watched/1.txt",
            "etag": "modtime-1700000000",
            "collections": ["docs", "archive"],
        }
    ]


@pytest.mark.asyncio
async def test_index_omits_empty_fields(corpus_client, corpus_service):
    """Test that unset source, etag and collections are not sent."""
    await corpus_client.index("1.txt", b"hello")

    upload = corpus_service.uploads[0]
    assert upload["source"] == ""
    assert upload["etag"] == ""
    assert upload["collections"] == []


@pytest.mark.asyncio
async def test_rate_limited_upload_is_sent_again(
    corpus_client, corpus_service, rate_limit_sleep
):
    """Test that a multipart upload survives a 429."""
    corpus_service.rate_limited.append(httpx.Response(429, headers={"Retry-After": "1"}))

    task = await corpus_client.index("1.txt", b"hello", source="file:///1.txt")

    assert task.id == "task-1"
    assert corpus_service.count("POST", "/api/v1/index") == 2
    assert corpus_service.uploads[0]["content"] == b"hello"
    rate_limit_sleep.assert_awaited_once()


@pytest.mark.asyncio
async def test_find_by_source(corpus_client, corpus_service):
    """Test that documents are filtered by source."""
    corpus_service.documents = {
        "doc-a": {"id": "doc-a", "source": "file:///a.txt", "etag": "size-1"},
        "doc-b": {"id": "doc-b", "source": "file:///b.txt", "etag": None},
    }

    documents = await corpus_client.find_by_source("file:///a.txt")

    assert [(d.id, d.etag) for d in documents] == [("doc-a", "size-1")]


@pytest.mark.asyncio
async def test_query_documents_parameters():
    """Test the query string of a document listing."""
    seen = []

    def handler(request):
        seen.append(request.url)
        return httpx.Response(200, json={"documents": [], "total": 0, "page": 2, "limit": 5})

    client = CorpusClient(
        base_url="http://corpus.test", token="", transport=httpx.MockTransport(handler)
    )
    async with client:
        page = await client.query_documents(collections=["a", "b"], page=2, limit=5)

    assert page.page == 2
    assert seen[0].path == "/api/v1/documents"
    assert seen[0].params.get_list("collection") == ["a", "b"]
    assert seen[0].params["limit"] == "5"


@pytest.mark.asyncio
async def test_delete_document(corpus_client, corpus_service):
    """Test deletion and the 404 case."""
    corpus_service.documents = {"doc-a": {"id": "doc-a", "source": "file:///a.txt"}}

    assert await corpus_client.delete_document("doc-a") is True
    assert await corpus_client.delete_document("doc-a") is False


@pytest.mark.asyncio
async def test_wait_for_polls_until_finished(corpus_client, corpus_service):
    """Test that wait_for returns the finished task."""
    created = await corpus_client.index("1.txt", b"hello", source="file:///1.txt")

    task = await corpus_client.wait_for(created.id, poll_interval=0)

    assert task.finished
    assert task.status == TaskStatus.SUCCEEDED.value
    assert task.finished_at is not None


@pytest.mark.asyncio
async def test_wait_for_failed_task(corpus_client, corpus_service):
    """Test that a failed task is returned, not raised."""
    corpus_service.fail_next_task = {"error": "unsupported", "message": "bad format"}
    created = await corpus_client.index("1.bin", b"\x00", source="file:///1.bin")

    task = await corpus_client.wait_for(created.id, poll_interval=0)

    assert task.failed
    assert task.error == "unsupported"


@pytest.mark.asyncio
async def test_unexpected_status(corpus_client):
    """Test that non-2xx answers raise UnexpectedStatusError."""
    with pytest.raises(UnexpectedStatusError) as exc_info:
        await corpus_client.get_task("missing")

    assert exc_info.value.status_code == 404
    assert "404" in str(exc_info.value)


@pytest.mark.asyncio
async def test_authentication_headers():
    """Test bearer tokens and basic auth from the URL."""
    seen = []

    def handler(request):
        seen.append(request.headers.get("Authorization"))
        return httpx.Response(200, json={"task": {"id": "t", "status": "succeeded"}})

    transport = httpx.MockTransport(handler)
    async with CorpusClient("http://user:pw@corpus.test", token="", transport=transport) as c:
        await c.get_task("t")
    async with CorpusClient("http://user:pw@corpus.test", token="tok", transport=transport) as c:
        await c.get_task("t")

    assert seen[0] == "Basic " + base64.b64encode(b"user:pw").decode()
    assert seen[1] == "Bearer tok"
