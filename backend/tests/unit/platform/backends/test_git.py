"""Tests for the git backend against a local upstream repository."""

import asyncio
import os
from datetime import timedelta
from unittest.mock import patch

import pytest

from corpus_agent.platform.backends.git import GitBackend
from corpus_agent.platform.filesystem import FilesystemNotFoundError

git = pytest.importorskip("git")

AUTHOR = git.Actor("Corpus Agent", "agent@corpus.test")


def commit_file(repo, relative: str, content: bytes, message: str) -> None:
    path = os.path.join(repo.working_tree_dir, relative)
    os.makedirs(os.path.dirname(path), exist_ok=True)
    with open(path, "wb") as f:
        f.write(content)
    repo.index.add([relative])
    repo.index.commit(message, author=AUTHOR, committer=AUTHOR)


@pytest.fixture
def upstream(tmp_path):
    """Create an upstream repository with one committed document."""
    repo = git.Repo.init(tmp_path / "upstream")
    commit_file(repo, "docs/readme.md", b"# corpus", "initial commit")
    return repo


def puller_tasks():
    return [
        task
        for task in asyncio.all_tasks()
        if getattr(task.get_coro(), "__qualname__", "").endswith("_pull_periodically")
    ]


@pytest.mark.asyncio
async def test_mount_presents_the_clone(upstream):
    """Test that the working tree is readable and the metadata directory hidden."""
    backend = GitBackend(upstream.working_tree_dir)

    async with backend.mount() as fs:
        info = await fs.stat("docs/readme.md")
        assert info.size == len(b"# corpus")
        assert not info.is_dir

        async with await fs.open(".") as root:
            assert await root.readdirnames() == ["docs"]

        async with await fs.open("docs/readme.md") as file:
            assert await file.read() == b"# corpus"

        # Verify the repository metadata cannot be reached
        with pytest.raises(FilesystemNotFoundError):
            await fs.stat(".git")
        with pytest.raises(FilesystemNotFoundError):
            await fs.open(".git/HEAD")


@pytest.mark.asyncio
async def test_periodic_pull_brings_new_commits(upstream):
    """Test that commits pushed upstream show up after a pull interval."""
    backend = GitBackend(upstream.working_tree_dir, pull_interval=timedelta(seconds=0.05))

    async with backend.mount() as fs:
        assert not await fs.exists("docs/new.md")

        commit_file(upstream, "docs/new.md", b"fresh", "add new document")

        for _ in range(100):
            if await fs.exists("docs/new.md"):
                break
            await asyncio.sleep(0.05)

        async with await fs.open("docs/new.md") as file:
            assert await file.read() == b"fresh"


@pytest.mark.asyncio
async def test_mount_exit_releases_clone_and_puller(upstream):
    """Test that leaving the mount removes the temporary clone and stops pulling."""
    backend = GitBackend(upstream.working_tree_dir, pull_interval=timedelta(seconds=0.05))

    async with backend.mount() as fs:
        workdir = os.path.dirname(fs._base)
        assert os.path.isdir(workdir)
        assert len(puller_tasks()) == 1

    assert not os.path.exists(workdir)
    assert puller_tasks() == []


@pytest.mark.asyncio
async def test_mount_exit_on_error_releases_clone(upstream):
    """Test that an error inside the mount still cleans up."""
    backend = GitBackend(upstream.working_tree_dir)

    with pytest.raises(RuntimeError):
        async with backend.mount() as fs:
            workdir = os.path.dirname(fs._base)
            raise RuntimeError("watch failed")

    assert not os.path.exists(workdir)
    assert puller_tasks() == []


@pytest.mark.asyncio
async def test_clone_failure_leaves_nothing_behind(tmp_path):
    """Test that a failing clone removes its temporary directory."""
    backend = GitBackend(str(tmp_path / "no-such-repo"))
    workdir = tmp_path / "workdir"
    workdir.mkdir()

    with patch(
        "corpus_agent.platform.backends.git.tempfile.mkdtemp", return_value=str(workdir)
    ):
        with pytest.raises(git.GitCommandError):
            async with backend.mount():
                pass

    assert not workdir.exists()
    assert puller_tasks() == []
