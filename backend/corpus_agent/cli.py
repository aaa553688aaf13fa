"""Command line entry point.

Usage:
    python -m corpus_agent watch -f 'local:///srv/docs?watchInterval=1m' --concurrency 5
"""

import argparse
import asyncio
import signal
import sys
from typing import List, Optional

from corpus_agent.core.config import settings
from corpus_agent.core.exceptions import ConfigurationError, SchemeNotRegisteredError
from corpus_agent.core.logging import LoggerConfigurator, logger
from corpus_agent.platform.async_helpers import shutdown_executor
from corpus_agent.platform.http_client import CorpusClient
from corpus_agent.platform.supervisor import WatchSupervisor


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser."""
    parser = argparse.ArgumentParser(
        prog="corpus-agent",
        description="Watch filesystems and keep a document index in sync",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    watch = subparsers.add_parser(
        "watch", help="Watch one or more filesystems and index files on change"
    )
    watch.add_argument(
        "-f",
        "--filesystem",
        dest="filesystems",
        action="append",
        default=[],
        metavar="DSN",
        help="Filesystem DSN, repeatable (default: WATCH_FILESYSTEMS)",
    )
    watch.add_argument(
        "--concurrency",
        type=int,
        default=None,
        help="Maximum concurrent index operations per filesystem (default: WATCH_CONCURRENCY)",
    )
    watch.add_argument("--server", default=None, help="Indexing service URL")
    watch.add_argument("--token", default=None, help="Indexing service bearer token")
    watch.add_argument("--log-level", default=None, help="Log level")
    return parser


async def run_watch(
    filesystems: List[str],
    concurrency: Optional[int] = None,
    server: Optional[str] = None,
    token: Optional[str] = None,
) -> int:
    """Watch filesystems until a signal arrives or a watch ends."""
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()

    def handle_signal(sig_name: str) -> None:
        logger.info(f"received {sig_name}, shutting down")
        stop.set()

    try:
        loop.add_signal_handler(signal.SIGTERM, handle_signal, "SIGTERM")
        loop.add_signal_handler(signal.SIGINT, handle_signal, "SIGINT")
    except NotImplementedError:
        signal.signal(signal.SIGTERM, lambda *_: loop.call_soon_threadsafe(stop.set))
        signal.signal(signal.SIGINT, lambda *_: loop.call_soon_threadsafe(stop.set))

    async with CorpusClient(base_url=server, token=token) as client:
        supervisor = WatchSupervisor(client, concurrency=concurrency)
        return await supervisor.run(filesystems, stop=stop)


def main(argv: Optional[List[str]] = None) -> int:
    """Parse arguments and run the requested command."""
    args = build_parser().parse_args(argv)
    LoggerConfigurator.setup(level=args.log_level)

    filesystems = args.filesystems or list(settings.WATCH_FILESYSTEMS)
    try:
        return asyncio.run(
            run_watch(filesystems, args.concurrency, server=args.server, token=args.token)
        )
    except (ConfigurationError, SchemeNotRegisteredError) as e:
        logger.error(f"invalid configuration: {e}")
        return 2
    finally:
        shutdown_executor()


if __name__ == "__main__":
    sys.exit(main())
