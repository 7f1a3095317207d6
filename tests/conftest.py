"""
Pytest configuration and shared fixtures.

Provides real temporary git repositories (a bare remote with two clones),
an in-memory repository adapter for engine-level tests, and isolation of
the user's git and sage configuration.
"""

import subprocess
from dataclasses import dataclass
from pathlib import Path

import pytest

from sagegit.core.config import clear_cache
from sagegit.core.errors import GitError
from sagegit.core.git.models import (
    IntegrationResult,
    ResetMode,
    StashEntry,
    StashPopResult,
    WorkingTreeStatus,
)
from sagegit.core.history import OperationLog

# ==============================================================================
# Environment isolation
# ==============================================================================


@pytest.fixture(autouse=True)
def isolated_env(tmp_path, monkeypatch):
    """Keep tests away from the real ~/.config, git identity and SAGE_* vars."""
    config_home = tmp_path / "xdg"
    config_home.mkdir()
    monkeypatch.setenv("XDG_CONFIG_HOME", str(config_home))

    global_gitconfig = tmp_path / "gitconfig"
    global_gitconfig.write_text("")
    monkeypatch.setenv("GIT_CONFIG_GLOBAL", str(global_gitconfig))
    monkeypatch.setenv("GIT_CONFIG_NOSYSTEM", "1")
    for var in ("GIT_AUTHOR_NAME", "GIT_COMMITTER_NAME"):
        monkeypatch.setenv(var, "Test User")
    for var in ("GIT_AUTHOR_EMAIL", "GIT_COMMITTER_EMAIL"):
        monkeypatch.setenv(var, "test@example.com")

    for var in (
        "SAGE_DEFAULT_BRANCH",
        "SAGE_REMOTE",
        "SAGE_SYNC_STRATEGY",
        "SAGE_UNDO_CASCADE",
        "SAGE_GIT_TIMEOUT",
    ):
        monkeypatch.delenv(var, raising=False)

    clear_cache()
    yield
    clear_cache()


# ==============================================================================
# Real git repositories
# ==============================================================================


def _git(cwd: Path, *args: str) -> str:
    """Run a git command in cwd and return its stripped stdout."""
    result = subprocess.run(
        ["git", *args],
        cwd=cwd,
        capture_output=True,
        text=True,
        check=True,
    )
    return result.stdout.strip()


def _commit_file(repo: Path, name: str, content: str, message: str | None = None) -> str:
    """Write a file, commit it, and return the new HEAD sha."""
    path = repo / name
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content)
    _git(repo, "add", name)
    _git(repo, "commit", "-q", "-m", message or f"Update {name}")
    return _git(repo, "rev-parse", "HEAD")


@pytest.fixture
def git_repo(tmp_path: Path) -> Path:
    """Create a temporary git repository on branch main."""
    repo = tmp_path / "repo"
    repo.mkdir()
    _git(repo, "init", "-q")
    _git(repo, "symbolic-ref", "HEAD", "refs/heads/main")
    return repo


@pytest.fixture
def git_repo_with_commit(git_repo: Path) -> Path:
    """Create a git repo with an initial commit."""
    _commit_file(git_repo, "README.md", "# Test Repo\n", "Initial commit")
    return git_repo


@dataclass
class RemoteSetup:
    """A bare remote plus two clones: `work` (under test) and `other` (a teammate)."""
    remote: Path
    work: Path
    other: Path


@pytest.fixture
def remote_setup(tmp_path: Path) -> RemoteSetup:
    """
    Create a bare remote with main, and two clones tracking origin/main.

    Both clones start at the same initial commit.
    """
    remote = tmp_path / "remote.git"
    _git(tmp_path, "init", "-q", "--bare", str(remote))
    _git(remote, "symbolic-ref", "HEAD", "refs/heads/main")

    seed = tmp_path / "seed"
    seed.mkdir()
    _git(seed, "init", "-q")
    _git(seed, "symbolic-ref", "HEAD", "refs/heads/main")
    _commit_file(seed, "README.md", "# Shared\n", "Initial commit")
    _commit_file(seed, "app.py", "print('v1')\n", "Add app")
    _git(seed, "remote", "add", "origin", str(remote))
    _git(seed, "push", "-q", "origin", "main")

    work = tmp_path / "work"
    other = tmp_path / "other"
    _git(tmp_path, "clone", "-q", str(remote), str(work))
    _git(tmp_path, "clone", "-q", str(remote), str(other))
    return RemoteSetup(remote=remote, work=work, other=other)


# ==============================================================================
# In-memory repository adapter
# ==============================================================================


class FakeRepository:
    """
    RepositoryAdapter backed by dictionaries.

    Models just enough of git for the engines: branch tips with parent
    links, a live remote and its fetched copy, stash entries carrying
    their paths, and a dirty working tree as path lists. Mutating calls
    are appended to `calls`; `fail` maps a method name to an exception
    raised the next time that method runs.
    """

    def __init__(self, root: Path) -> None:
        self.root = root
        self.parents: dict[str, tuple[str, ...]] = {}
        self.branches: dict[str, str] = {}
        self.current: str | None = "main"
        self.detached_head: str | None = None
        self.staged: list[str] = []
        self.unstaged: list[str] = []
        self.untracked: list[str] = []
        self.in_progress = False
        self.live_remote: dict[tuple[str, str], str] = {}
        self.tracking: dict[tuple[str, str], str] = {}
        self.upstreams: dict[str, tuple[str, str]] = {}
        self.stashes: list[tuple[str, str, list[str]]] = []
        self.next_conflicts: list[str] = []
        self.next_stash_conflicts: list[str] = []
        self.calls: list[str] = []
        self.fail: dict[str, Exception] = {}
        self._counter = 0

        self.branches["main"] = self.new_commit()

    # -- helpers -------------------------------------------------------

    def new_commit(self, *parents: str | None) -> str:
        self._counter += 1
        sha = f"{self._counter:040x}"
        self.parents[sha] = tuple(p for p in parents if p is not None)
        return sha

    def _mutate(self, name: str) -> None:
        if name in self.fail:
            raise self.fail.pop(name)
        self.calls.append(name)

    def _set_head(self, sha: str) -> None:
        if self.current is not None:
            self.branches[self.current] = sha
        else:
            self.detached_head = sha

    def _resolve(self, ref: str) -> str:
        if ref in self.branches:
            return self.branches[ref]
        if "/" in ref:
            remote, _, branch = ref.partition("/")
            if (remote, branch) in self.tracking:
                return self.tracking[(remote, branch)]
        if ref in self.parents:
            return ref
        raise GitError(f"unknown ref {ref}", command=["git", "rev-parse", ref])

    # -- reads ---------------------------------------------------------

    @property
    def work_dir(self) -> Path:
        return self.root

    def git_dir(self) -> Path:
        return self.root / ".git"

    def status(self) -> WorkingTreeStatus:
        return WorkingTreeStatus(
            branch=self.current,
            head=self.current_ref(),
            staged=list(self.staged),
            unstaged=list(self.unstaged),
            untracked=list(self.untracked),
            merge_in_progress=self.in_progress,
        )

    def current_branch(self) -> str | None:
        return self.current

    def current_ref(self) -> str | None:
        if self.current is not None:
            return self.branches.get(self.current)
        return self.detached_head

    def branch_sha(self, branch: str) -> str | None:
        return self.branches.get(branch)

    def remote_ref(self, remote: str, branch: str) -> str | None:
        return self.tracking.get((remote, branch))

    def ls_remote(self, remote: str, branch: str) -> str | None:
        return self.live_remote.get((remote, branch))

    def upstream_of(self, branch: str) -> tuple[str, str] | None:
        return self.upstreams.get(branch)

    def is_ancestor(self, ancestor: str, descendant: str) -> bool:
        pending = [descendant]
        seen: set[str] = set()
        while pending:
            sha = pending.pop()
            if sha == ancestor:
                return True
            if sha not in seen:
                seen.add(sha)
                pending.extend(self.parents.get(sha, ()))
        return False

    def stash_list(self) -> list[StashEntry]:
        return [
            StashEntry(index=i, sha=sha, message=message)
            for i, (sha, message, _paths) in enumerate(self.stashes)
        ]

    def stash_paths(self, stash_sha: str) -> list[str]:
        for sha, _message, paths in self.stashes:
            if sha == stash_sha:
                return list(paths)
        return []

    # -- mutations -----------------------------------------------------

    def branch_create(self, name: str, start_point: str) -> str:
        self._mutate("branch_create")
        sha = self._resolve(start_point)
        self.branches[name] = sha
        return sha

    def branch_delete(self, name: str, *, force: bool = False) -> None:
        self._mutate("branch_delete")
        del self.branches[name]

    def checkout(self, ref: str) -> None:
        self._mutate("checkout")
        if ref in self.branches:
            self.current = ref
            self.detached_head = None
        else:
            self.current = None
            self.detached_head = self._resolve(ref)

    def stage_all(self) -> None:
        self._mutate("stage_all")
        self.staged = sorted(set(self.staged) | set(self.unstaged) | set(self.untracked))
        self.unstaged, self.untracked = [], []

    def commit(self, message: str, *, allow_empty: bool = False) -> str:
        self._mutate("commit")
        if not self.staged and not allow_empty:
            raise GitError("nothing to commit", command=["git", "commit"])
        sha = self.new_commit(self.current_ref())
        self._set_head(sha)
        self.staged = []
        return sha

    def reset_to(self, ref: str, mode: ResetMode) -> None:
        self._mutate("reset_to")
        self._set_head(self._resolve(ref))

    def stash_push(self, message: str, *, include_untracked: bool = True) -> str | None:
        self._mutate("stash_push")
        paths = set(self.staged) | set(self.unstaged)
        if include_untracked:
            paths |= set(self.untracked)
        if not paths:
            return None
        sha = self.new_commit(self.current_ref())
        self.stashes.insert(0, (sha, message, sorted(paths)))
        self.staged, self.unstaged = [], []
        if include_untracked:
            self.untracked = []
        return sha

    def stash_pop(self, stash_sha: str) -> StashPopResult:
        self._mutate("stash_pop")
        for i, (sha, _message, paths) in enumerate(self.stashes):
            if sha == stash_sha:
                break
        else:
            raise GitError(f"Stash entry {stash_sha} not found", command=["git", "stash"])

        if self.next_stash_conflicts:
            conflicts, self.next_stash_conflicts = self.next_stash_conflicts, []
            return StashPopResult(stash_sha=stash_sha, applied=False, conflicts=conflicts)

        del self.stashes[i]
        self.unstaged = sorted(set(self.unstaged) | set(paths))
        return StashPopResult(stash_sha=stash_sha, applied=True)

    def fetch(self, remote: str) -> None:
        self._mutate("fetch")
        for (r, b), sha in self.live_remote.items():
            if r == remote:
                self.tracking[(r, b)] = sha

    def _integrate(self, ref: str, ff_only: bool) -> IntegrationResult:
        target = self._resolve(ref)
        if self.next_conflicts:
            conflicts, self.next_conflicts = self.next_conflicts, []
            self.in_progress = True
            return IntegrationResult(head=self.current_ref() or "", conflicts=conflicts)
        if ff_only:
            self._set_head(target)
        else:
            self._set_head(self.new_commit(self.current_ref(), target))
        return IntegrationResult(head=self.current_ref() or "")

    def merge(self, ref: str, *, ff_only: bool = False) -> IntegrationResult:
        self._mutate("merge")
        return self._integrate(ref, ff_only)

    def rebase(self, onto: str) -> IntegrationResult:
        self._mutate("rebase")
        return self._integrate(onto, False)

    def abort_integration(self) -> None:
        self._mutate("abort_integration")
        self.in_progress = False

    def push(
        self,
        remote: str,
        branch: str,
        *,
        force: bool = False,
        set_upstream: bool = False,
    ) -> None:
        self._mutate("push")
        self.live_remote[(remote, branch)] = self.branches[branch]
        self.tracking[(remote, branch)] = self.branches[branch]
        if set_upstream:
            self.upstreams[branch] = (remote, branch)

    def push_ref(self, remote: str, branch: str, sha: str, *, expected_sha: str) -> None:
        self._mutate("push_ref")
        if self.live_remote.get((remote, branch)) != expected_sha:
            raise GitError("stale info", command=["git", "push"])
        self.live_remote[(remote, branch)] = sha

    def delete_remote_branch(self, remote: str, branch: str, *, expected_sha: str) -> None:
        self._mutate("delete_remote_branch")
        if self.live_remote.get((remote, branch)) != expected_sha:
            raise GitError("stale info", command=["git", "push"])
        del self.live_remote[(remote, branch)]


@pytest.fixture
def fake_repo(tmp_path: Path) -> FakeRepository:
    """In-memory repository on main with one root commit."""
    return FakeRepository(tmp_path)


@pytest.fixture
def op_log(tmp_path: Path) -> OperationLog:
    """Empty operation log in a temporary control directory."""
    return OperationLog.for_control_dir(tmp_path / "control")


# ==============================================================================
# Helper fixtures
# ==============================================================================


@pytest.fixture
def git():
    """Run a git command in a directory: git(cwd, *args) -> stdout."""
    return _git


@pytest.fixture
def commit_file():
    """Write and commit a file: commit_file(repo, name, content, message=None) -> sha."""
    return _commit_file
