"""Supervisor running one indexer per watched filesystem.

Every DSN is parsed before any watch starts, so a configuration error stops
the agent before it touches a filesystem. Watches then run side by side; as
soon as one of them ends, the others are cancelled.
"""

import asyncio
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

from corpus_agent.core.logging import ContextualLogger, LoggerConfigurator
from corpus_agent.core.logging import logger as default_logger
from corpus_agent.platform.backends import DSN, new_backend
from corpus_agent.platform.http_client import CorpusClient
from corpus_agent.platform.indexer import AgentOptions, FilesystemIndexer


@dataclass
class WatchTarget:
    """One watched filesystem, ready to run."""

    name: str
    indexer: FilesystemIndexer
    options: AgentOptions
    logger: ContextualLogger


class WatchSupervisor:
    """Runs and supervises the watches of several filesystems."""

    def __init__(
        self,
        client: CorpusClient,
        concurrency: Optional[int] = None,
        logger: Optional[ContextualLogger] = None,
    ):
        """Initialize the supervisor.

        Args:
            client: Indexing service client shared by every indexer
            concurrency: Concurrency gate capacity of each indexer
            logger: Logger
        """
        self.client = client
        self.concurrency = concurrency
        self.logger = logger or default_logger

    def prepare(self, dsns: Iterable[str]) -> List[WatchTarget]:
        """Parse the DSNs and build one indexer per filesystem.

        Raises:
            ConfigurationError: If a DSN or one of its parameters is invalid
            SchemeNotRegisteredError: If a DSN uses an unknown scheme
        """
        targets = []
        for raw in dsns:
            dsn = DSN.parse(raw)
            options = AgentOptions.from_dsn(dsn)
            backend = new_backend(dsn)

            name = dsn.scrubbed()
            log = LoggerConfigurator.configure_logger(
                "corpus_agent.watch", dimensions={"filesystem": name}
            )
            backend.set_logger(log)

            indexer = FilesystemIndexer(
                client=self.client,
                backend=backend,
                collections=options.collections,
                source_template=options.source_template,
                etag_kind=options.etag_kind,
                concurrency=self.concurrency,
                logger=log,
            )
            targets.append(WatchTarget(name=name, indexer=indexer, options=options, logger=log))
        return targets

    async def run(self, dsns: Iterable[str], stop: Optional[asyncio.Event] = None) -> int:
        """Watch every filesystem until one watch ends or ``stop`` is set.

        Args:
            dsns: Filesystem DSNs
            stop: Event requesting a clean shutdown

        Returns:
            1 if a watch ended with an error, 0 otherwise

        Raises:
            ConfigurationError: If a DSN or one of its parameters is invalid
            SchemeNotRegisteredError: If a DSN uses an unknown scheme
        """
        targets = self.prepare(dsns)
        if not targets:
            self.logger.warning("no filesystem to watch")
            return 0

        tasks: Dict[asyncio.Task, WatchTarget] = {}
        for target in targets:
            target.logger.info(f"watching filesystem {target.name}")
            task = asyncio.create_task(
                target.indexer.watch(target.options.watch), name=f"watch {target.name}"
            )
            tasks[task] = target

        waiters = set(tasks)
        stop_task: Optional[asyncio.Task] = None
        if stop is not None:
            stop_task = asyncio.create_task(stop.wait(), name="stop")
            waiters.add(stop_task)

        exit_code = 0
        try:
            done, _ = await asyncio.wait(waiters, return_when=asyncio.FIRST_COMPLETED)
            if stop_task is not None and stop_task in done:
                self.logger.info("stopping watchers")
        finally:
            for task in waiters:
                task.cancel()
            await asyncio.gather(*waiters, return_exceptions=True)

        for task, target in tasks.items():
            if task.cancelled():
                continue
            error = task.exception()
            if error is not None:
                target.logger.error(
                    f"could not watch filesystem: {error}", exc_info=error
                )
                exit_code = 1
            else:
                target.logger.info("watch ended")

        return exit_code
