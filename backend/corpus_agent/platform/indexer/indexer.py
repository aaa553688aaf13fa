"""Filesystem indexer.

Turns watch events into calls against the indexing service:

- CREATE indexes the file
- WRITE indexes the file once writes have stopped for the debounce delay
- REMOVE deletes the documents indexed from the file
- RENAME deletes the old documents, then indexes the file under its new path

A file is only uploaded when its ETag differs from the one stored with the
remote document, so restarting the agent does not re-index unchanged files.
Errors are logged and the event is dropped; the next poll will notice any
change that still needs indexing.
"""

import asyncio
import posixpath
import threading
from typing import Dict, Iterable, List, Optional, Set

from corpus_agent.core.config import settings
from corpus_agent.core.exceptions import TaskFailedError
from corpus_agent.core.logging import ContextualLogger
from corpus_agent.core.logging import logger as default_logger
from corpus_agent.platform.backends._base import Backend
from corpus_agent.platform.filesystem import FileInfo, Filesystem, LoggingFilesystem
from corpus_agent.platform.http_client import CorpusClient, Task, TaskStatus
from corpus_agent.platform.indexer.debounce import Debouncer
from corpus_agent.platform.indexer.etag import ETagKind, compute_etag
from corpus_agent.platform.indexer.source import source_url
from corpus_agent.platform.watcher import WatchEvent, WatchHandler, WatchOp, WatchOptions, watch
from corpus_agent.platform.workflow import Step, Workflow

INDEXER_EVENTS = frozenset({WatchOp.CREATE, WatchOp.REMOVE, WatchOp.WRITE, WatchOp.RENAME})


class FilesystemIndexer(WatchHandler):
    """Keeps the indexing service in sync with one watched filesystem."""

    def __init__(
        self,
        client: CorpusClient,
        backend: Backend,
        collections: Iterable[str] = (),
        source_template: Optional[str] = None,
        etag_kind: ETagKind = ETagKind.MODTIME,
        concurrency: Optional[int] = None,
        debounce_delay: Optional[float] = None,
        poll_interval: Optional[float] = None,
        logger: Optional[ContextualLogger] = None,
    ):
        """Initialize the indexer.

        Args:
            client: Indexing service client
            backend: Backend of the watched filesystem
            collections: Collections attached to indexed documents
            source_template: Source URL template, ``file:///<path>`` when unset
            etag_kind: How ETags are computed
            concurrency: Maximum number of concurrent index and remove operations
            debounce_delay: Seconds of write inactivity before a written file is indexed
            poll_interval: Seconds between two task status polls
            logger: Logger
        """
        self.client = client
        self.backend = backend
        self.collections: List[str] = list(collections)
        self.source_template = source_template
        self.etag_kind = etag_kind
        self.debounce_delay = (
            settings.WATCH_DEBOUNCE_DELAY if debounce_delay is None else debounce_delay
        )
        self.poll_interval = poll_interval
        self.logger = logger or default_logger
        self.fs: Optional[Filesystem] = None

        self._semaphore = asyncio.Semaphore(concurrency or settings.WATCH_CONCURRENCY)
        self._debouncers: Dict[str, Debouncer] = {}
        self._firing: Set[Debouncer] = set()
        self._debouncers_lock = threading.Lock()

    async def watch(self, options: Optional[WatchOptions] = None) -> None:
        """Mount the filesystem and index its changes until cancelled.

        Args:
            options: Watch options; the event set is replaced by the events
                the indexer handles
        """
        options = (options or WatchOptions(recursive=True)).model_copy(
            update={"events": INDEXER_EVENTS}
        )

        async with self.backend.mount() as fs:
            self.logger.info("filesystem mounted")
            if settings.WATCH_DEBUG_FILESYSTEM:
                fs = LoggingFilesystem(fs, self.logger)

            self.fs = fs
            try:
                await watch(fs, self, options, self.logger)
            finally:
                self.fs = None
                self.cancel_pending()

    def cancel_pending(self) -> None:
        """Drop every debounced index operation."""
        with self._debouncers_lock:
            debouncers = list(self._debouncers.values()) + list(self._firing)
            self._debouncers.clear()
            self._firing.clear()
        for debouncer in debouncers:
            debouncer.cancel()

    # ---- Event handling ----

    async def handle(self, event: WatchEvent) -> None:
        """Dispatch one watch event."""
        if event.is_dir:
            return

        log = self.logger.with_context(file=event.path, oldPath=event.old_path)

        if event.op == WatchOp.CREATE:
            try:
                await self.index_file(event.path, event.info, log)
            except Exception as e:
                log.error(f"could not index file: {e}", exc_info=True)

        elif event.op == WatchOp.REMOVE:
            try:
                await self.remove_file(event.path, log)
            except Exception as e:
                log.error(f"could not remove file: {e}", exc_info=True)

        elif event.op == WatchOp.WRITE:
            self.index_file_debounced(event.path, event.info, log)

        elif event.op == WatchOp.RENAME:
            try:
                await self.remove_file(event.old_path, log)
            except Exception as e:
                log.error(f"could not remove file: {e}", exc_info=True)
                return
            try:
                await self.index_file(event.path, event.info, log)
            except Exception as e:
                log.error(f"could not index file: {e}", exc_info=True)

    def index_file_debounced(
        self, path: str, info: Optional[FileInfo], log: Optional[ContextualLogger] = None
    ) -> None:
        """Index a file once it has not been written for the debounce delay."""
        log = log or self.logger.with_context(file=path)

        with self._debouncers_lock:
            debouncer = self._debouncers.get(path)
            if debouncer is None:
                debouncer = Debouncer(self.debounce_delay)
                self._debouncers[path] = debouncer

        async def run() -> None:
            # Writes arriving from now on start a new burst with their own debouncer
            with self._debouncers_lock:
                if self._debouncers.get(path) is debouncer:
                    del self._debouncers[path]
                self._firing.add(debouncer)
            try:
                await self.index_file(path, info, log)
            except Exception as e:
                log.error(f"could not index file: {e}", exc_info=True)
            finally:
                with self._debouncers_lock:
                    self._firing.discard(debouncer)

        debouncer.schedule(run)

    # ---- Operations ----

    def _require_fs(self) -> Filesystem:
        if self.fs is None:
            raise RuntimeError("filesystem is not mounted")
        return self.fs

    async def index_file(
        self, path: str, info: Optional[FileInfo] = None, log: Optional[ContextualLogger] = None
    ) -> None:
        """Upload a file unless the service already holds it with the same ETag.

        Args:
            path: Mount-relative path
            info: File metadata, fetched when omitted
            log: Logger carrying the event context

        Raises:
            TaskFailedError: If the indexing task failed
            CompensationError: If the task failed and discarding its result failed too
        """
        log = log or self.logger.with_context(file=path)

        async with self._semaphore:
            fs = self._require_fs()
            if info is None:
                info = await fs.stat(path)

            source = source_url(path, self.source_template)
            etag = compute_etag(self.etag_kind, info)
            log = log.with_context(source=source)

            documents = await self.client.find_by_source(source)
            if documents and documents[0].etag == etag:
                log.info(f"document already indexed, skipping (etag {etag})")
                return

            async with await fs.open(path) as file:
                content = await file.read()

            log.info("indexing new document")
            uploaded: Dict[str, Task] = {}

            async def upload() -> None:
                uploaded["task"] = await self.client.index(
                    posixpath.basename(path),
                    content,
                    collections=self.collections,
                    source=source,
                    etag=etag,
                )

            async def discard_upload() -> None:
                if "task" not in uploaded:
                    return
                for document in await self.client.find_by_source(source):
                    if document.etag == etag:
                        log.info(f"discarding document {document.id} of failed indexation")
                        await self.client.delete_document(document.id)

            async def wait_for_task() -> None:
                task_log = log.with_context(taskID=uploaded["task"].id)
                task_log.info("waiting for indexation to complete")
                task = await self.client.wait_for(uploaded["task"].id, self.poll_interval)
                if task.status != TaskStatus.SUCCEEDED.value:
                    raise TaskFailedError(task.id, task.error, task.message)
                task_log.info("indexation succeeded")

            await Workflow(
                Step(execute=upload, compensate=discard_upload),
                Step(execute=wait_for_task),
            ).execute()

    async def remove_file(self, path: str, log: Optional[ContextualLogger] = None) -> None:
        """Delete every document indexed from a path.

        Deletion errors are logged per document and do not stop the others.
        """
        log = log or self.logger.with_context(file=path)

        async with self._semaphore:
            source = source_url(path, self.source_template)
            log = log.with_context(source=source)

            documents = await self.client.find_by_source(source)
            if not documents:
                log.info("document not found, skipping")
                return

            for document in documents:
                doc_log = log.with_context(documentID=document.id)
                doc_log.info("deleting document")
                try:
                    await self.client.delete_document(document.id)
                except Exception as e:
                    doc_log.error(f"could not delete document: {e}")
