from __future__ import annotations

import sys
from dataclasses import dataclass
from pathlib import Path

import pytest
from git import Actor, Repo

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

ACTOR = Actor("Test", "test@example.com")


@pytest.fixture(scope="session")
def anyio_backend():
    """GitTools offloads subprocesses with asyncio.to_thread, so pin anyio to asyncio."""
    return "asyncio"


def commit_file(repo: Repo, name: str, content: str, message: str) -> str:
    path = Path(repo.working_tree_dir) / name
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content)
    repo.index.add([name])
    return repo.index.commit(message, author=ACTOR, committer=ACTOR).hexsha


@dataclass
class RepoSetup:
    remote: Path
    work: Path
    other: Path

    @property
    def work_repo(self) -> Repo:
        return Repo(self.work)

    @property
    def other_repo(self) -> Repo:
        return Repo(self.other)


@pytest.fixture
def repo_setup(tmp_path: Path) -> RepoSetup:
    """A bare remote, a working clone on main, and a second clone to push from."""
    remote_path = tmp_path / "remote.git"
    Repo.init(remote_path, bare=True)

    work_path = tmp_path / "work"
    work_path.mkdir()
    work = Repo.init(work_path)
    commit_file(work, "README.md", "# Work\n", "Initial commit")
    work.git.branch("-M", "main")
    work.create_remote("origin", str(remote_path))
    work.git.push("origin", "main")

    other_path = tmp_path / "other"
    Repo.clone_from(str(remote_path), other_path, branch="main")
    return RepoSetup(remote=remote_path, work=work_path, other=other_path)
