"""Git backend.

DSN: ``git://host/owner/repo.git?gitScheme=<https|http|ssh>&gitBranch=<name>&gitPullInterval=<dur>``

The repository is cloned into a temporary working tree when mounted and
force-pulled periodically in the background. Local writes never leave the
process: nothing is ever pushed.
"""

import asyncio
import shutil
import tempfile
from contextlib import asynccontextmanager
from datetime import timedelta
from typing import AsyncIterator, List, Optional

from corpus_agent.core.durations import parse_duration
from corpus_agent.platform.async_helpers import run_in_thread_pool
from corpus_agent.platform.backends._base import Backend
from corpus_agent.platform.backends.dsn import DSN
from corpus_agent.platform.backends.local import OsFilesystem
from corpus_agent.platform.filesystem import (
    BasePathFilesystem,
    File,
    FileInfo,
    FilesystemNotFoundError,
    clean_path,
)
from corpus_agent.platform.filesystem.base_path import BasePathFile

DEFAULT_GIT_SCHEME = "https"
DEFAULT_PULL_INTERVAL = timedelta(minutes=30)

GIT_DIR = ".git"


class GitWorktreeFile(BasePathFile):
    """Working tree handle hiding the repository metadata directory."""

    async def readdir(self, count: int = -1) -> List[FileInfo]:
        entries = [e for e in await super().readdir(-1) if not self._is_git_dir(e.name)]
        return entries[:count] if count > 0 else entries

    def _is_git_dir(self, name: str) -> bool:
        return self.name == "." and name == GIT_DIR


class GitWorktreeFilesystem(BasePathFilesystem):
    """Working tree of a clone, with ``.git`` hidden."""

    @property
    def name(self) -> str:
        return "gitfs"

    def real_path(self, path: str) -> str:
        relative = clean_path(path).lstrip("/")
        if relative == GIT_DIR or relative.startswith(GIT_DIR + "/"):
            raise FilesystemNotFoundError(f"no such file or directory: {path}")
        return super().real_path(path)

    async def open(self, path: str) -> File:
        inner = await self._inner.open(self.real_path(path))
        return GitWorktreeFile(inner, self._base)


class GitBackend(Backend):
    """Git transport (clone plus periodic pull)."""

    scheme = "git"

    def __init__(
        self,
        repo_url: str,
        branch: str = "",
        pull_interval: timedelta = DEFAULT_PULL_INTERVAL,
    ):
        """Initialize git backend.

        Args:
            repo_url: Remote repository URL
            branch: Branch to track, the remote HEAD when empty
            pull_interval: Delay between two pulls
        """
        super().__init__()
        self.repo_url = repo_url
        self.branch = branch
        self.pull_interval = pull_interval

    @classmethod
    def from_dsn(cls, dsn: DSN) -> "GitBackend":
        """Build the backend from a ``git://`` DSN."""
        git_scheme = dsn.pop("gitScheme") or DEFAULT_GIT_SCHEME
        branch = dsn.pop("gitBranch") or ""

        pull_interval = DEFAULT_PULL_INTERVAL
        raw_interval = dsn.pop("gitPullInterval")
        if raw_interval is not None:
            pull_interval = parse_duration(raw_interval)

        return cls(dsn.render(scheme=git_scheme), branch, pull_interval)

    def _clone(self, path: str):
        import git

        options = {"single_branch": True}
        if self.branch:
            options["branch"] = self.branch
        return git.Repo.clone_from(self.repo_url, path, **options)

    def _pull(self, repo) -> None:
        branch = self.branch or repo.active_branch.name
        repo.remotes.origin.fetch()
        repo.git.reset("--hard", f"origin/{branch}")

    async def _pull_periodically(self, repo) -> None:
        import git

        log = self.logger
        while True:
            await asyncio.sleep(self.pull_interval.total_seconds())
            log.debug("refreshing repository")
            try:
                await run_in_thread_pool(self._pull, repo)
            except git.GitCommandError as e:
                log.error(f"could not pull from remote repository: {e}")

    @asynccontextmanager
    async def mount(self) -> AsyncIterator[GitWorktreeFilesystem]:
        """Clone into a temporary directory, pull in the background, clean up on exit."""
        workdir = tempfile.mkdtemp(prefix="corpus-agent-git-")
        repo_path = f"{workdir}/repo"
        log = self.logger.with_context(repoPath=repo_path)
        puller: Optional[asyncio.Task] = None
        try:
            log.debug("cloning repository")
            repo = await run_in_thread_pool(self._clone, repo_path)
            await run_in_thread_pool(self._pull, repo)

            puller = asyncio.create_task(self._pull_periodically(repo))
            yield GitWorktreeFilesystem(OsFilesystem(), repo_path)
        finally:
            if puller is not None:
                puller.cancel()
                try:
                    await puller
                except asyncio.CancelledError:
                    pass
            await run_in_thread_pool(shutil.rmtree, workdir, ignore_errors=True)
