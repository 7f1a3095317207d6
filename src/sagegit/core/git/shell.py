"""
Repository adapter backed by the git command line.

Every operation shells out to `git` in the work tree. Porcelain output is
parsed into the result models of sagegit.core.git.models; failures become
GitError with the command line and stderr attached.

Example:
    >>> repo = ShellGitAdapter(Path("."))
    >>> status = repo.status()
    >>> if status.dirty:
    ...     stash_sha = repo.stash_push("wip")
"""

from __future__ import annotations

import logging
import os
import subprocess
from pathlib import Path

from sagegit.core.errors import GitError
from sagegit.core.git.models import (
    IntegrationResult,
    ResetMode,
    StashEntry,
    StashPopResult,
    WorkingTreeStatus,
)

logger = logging.getLogger(__name__)

# Two-letter porcelain codes for unmerged paths
UNMERGED_CODES = frozenset({"DD", "AU", "UD", "UA", "DU", "AA", "UU"})


class ShellGitAdapter:
    """
    RepositoryAdapter implementation that runs git as a subprocess.

    Attributes:
        work_dir: Root of the work tree commands run in
        timeout: Seconds before a git command is killed
    """

    def __init__(self, work_dir: Path | None = None, timeout: int = 120) -> None:
        self._work_dir = (work_dir or Path.cwd()).resolve()
        self.timeout = timeout
        self._git_dir: Path | None = None

    @property
    def work_dir(self) -> Path:
        return self._work_dir

    def _exec(
        self,
        args: list[str],
        *,
        check: bool = True,
    ) -> subprocess.CompletedProcess[str]:
        """
        Run a git command and return the completed process.

        Args:
            args: Git command arguments (without "git" prefix).
            check: Whether to raise on non-zero exit code.

        Raises:
            GitError: If the command fails and check=True, times out,
                or git is not installed.
        """
        cmd = ["git"] + args
        logger.debug("Running git command: %s", " ".join(cmd))

        env = os.environ.copy()
        # Never block on credential prompts or editors
        env["GIT_TERMINAL_PROMPT"] = "0"
        env["GIT_EDITOR"] = "true"

        try:
            result = subprocess.run(
                cmd,
                cwd=self._work_dir,
                capture_output=True,
                text=True,
                timeout=self.timeout,
                env=env,
            )
        except subprocess.TimeoutExpired as e:
            raise GitError(f"Git command timed out: {' '.join(cmd)}", command=cmd) from e
        except FileNotFoundError as e:
            raise GitError("git not found in PATH", command=cmd) from e

        if check and result.returncode != 0:
            stderr = result.stderr.strip() if result.stderr else ""
            raise GitError(
                f"Git command failed: {' '.join(cmd)}",
                command=cmd,
                stderr=stderr,
            )
        return result

    def _run_git(self, args: list[str], *, check: bool = True, strip: bool = True) -> str:
        """Run a git command and return its stdout."""
        result = self._exec(args, check=check)
        out = result.stdout or ""
        return out.strip() if strip else out

    def _rev_parse(self, ref: str) -> str | None:
        sha = self._run_git(["rev-parse", "--verify", "--quiet", ref], check=False)
        return sha or None

    def _unmerged_paths(self) -> list[str]:
        out = self._run_git(["diff", "--name-only", "--diff-filter=U"], check=False)
        return sorted({line for line in out.splitlines() if line})

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def git_dir(self) -> Path:
        if self._git_dir is None:
            self._git_dir = Path(self._run_git(["rev-parse", "--absolute-git-dir"]))
        return self._git_dir

    def status(self) -> WorkingTreeStatus:
        out = self._run_git(
            ["status", "--porcelain=v1", "-z", "--untracked-files=all"], strip=False
        )
        staged: list[str] = []
        unstaged: list[str] = []
        untracked: list[str] = []
        conflicted: list[str] = []

        entries = out.split("\0")
        i = 0
        while i < len(entries):
            entry = entries[i]
            i += 1
            if len(entry) < 4:
                continue
            x, y, path = entry[0], entry[1], entry[3:]
            if x in "RC":
                # Renames and copies carry the source path as the next entry
                i += 1
            code = x + y
            if code == "??":
                untracked.append(path)
            elif code in UNMERGED_CODES:
                conflicted.append(path)
            else:
                if x not in " ?!":
                    staged.append(path)
                if y not in " ?!":
                    unstaged.append(path)

        git_dir = self.git_dir()
        return WorkingTreeStatus(
            branch=self.current_branch(),
            head=self.current_ref(),
            staged=staged,
            unstaged=unstaged,
            untracked=untracked,
            conflicted=conflicted,
            merge_in_progress=(git_dir / "MERGE_HEAD").exists(),
            rebase_in_progress=(git_dir / "rebase-merge").exists()
            or (git_dir / "rebase-apply").exists(),
        )

    def current_branch(self) -> str | None:
        branch = self._run_git(["symbolic-ref", "--quiet", "--short", "HEAD"], check=False)
        return branch or None

    def current_ref(self) -> str | None:
        return self._rev_parse("HEAD")

    def branch_sha(self, branch: str) -> str | None:
        return self._rev_parse(f"refs/heads/{branch}")

    def remote_ref(self, remote: str, branch: str) -> str | None:
        return self._rev_parse(f"refs/remotes/{remote}/{branch}")

    def ls_remote(self, remote: str, branch: str) -> str | None:
        ref = f"refs/heads/{branch}"
        out = self._run_git(["ls-remote", "--heads", remote, ref])
        for line in out.splitlines():
            sha, _, name = line.partition("\t")
            if name == ref:
                return sha
        return None

    def upstream_of(self, branch: str) -> tuple[str, str] | None:
        remote = self._run_git(["config", "--get", f"branch.{branch}.remote"], check=False)
        merge = self._run_git(["config", "--get", f"branch.{branch}.merge"], check=False)
        if not remote or not merge or remote == ".":
            return None
        return remote, merge.removeprefix("refs/heads/")

    def is_ancestor(self, ancestor: str, descendant: str) -> bool:
        result = self._exec(["merge-base", "--is-ancestor", ancestor, descendant], check=False)
        if result.returncode == 0:
            return True
        if result.returncode == 1:
            return False
        raise GitError(
            f"Could not compare {ancestor} and {descendant}",
            command=["git", "merge-base", "--is-ancestor", ancestor, descendant],
            stderr=result.stderr.strip(),
        )

    def stash_list(self) -> list[StashEntry]:
        out = self._run_git(["stash", "list", "--format=%H %gs"], check=False)
        entries: list[StashEntry] = []
        for index, line in enumerate(filter(None, out.split("\n"))):
            sha, _, message = line.partition(" ")
            entries.append(StashEntry(index=index, sha=sha, message=message))
        return entries

    def stash_paths(self, stash_sha: str) -> list[str]:
        out = self._run_git(["diff", "--name-only", f"{stash_sha}^1", stash_sha])
        paths = {line for line in out.splitlines() if line}
        # Untracked files live in the third parent when stashed with -u
        if self._rev_parse(f"{stash_sha}^3"):
            out = self._run_git(["ls-tree", "-r", "--name-only", f"{stash_sha}^3"])
            paths.update(line for line in out.splitlines() if line)
        return sorted(paths)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def branch_create(self, name: str, start_point: str) -> str:
        self._run_git(["branch", name, start_point])
        sha = self.branch_sha(name)
        if sha is None:
            raise GitError(f"Branch {name} was not created", command=["git", "branch", name])
        return sha

    def branch_delete(self, name: str, *, force: bool = False) -> None:
        self._run_git(["branch", "-D" if force else "-d", name])

    def checkout(self, ref: str) -> None:
        self._run_git(["checkout", "--quiet", ref, "--"])

    def stage_all(self) -> None:
        self._run_git(["add", "--all"])

    def commit(self, message: str, *, allow_empty: bool = False) -> str:
        args = ["commit", "--quiet", "-m", message]
        if allow_empty:
            args.append("--allow-empty")
        self._run_git(args)
        sha = self.current_ref()
        if sha is None:
            raise GitError("HEAD is missing after commit", command=["git"] + args)
        return sha

    def reset_to(self, ref: str, mode: ResetMode) -> None:
        self._run_git(["reset", "--quiet", f"--{mode.value}", ref])

    def stash_push(self, message: str, *, include_untracked: bool = True) -> str | None:
        before = self._rev_parse("refs/stash")
        args = ["stash", "push", "-m", message]
        if include_untracked:
            args.append("--include-untracked")
        self._run_git(args)
        after = self._rev_parse("refs/stash")
        if after is None or after == before:
            return None
        return after

    def stash_pop(self, stash_sha: str) -> StashPopResult:
        entry = next((e for e in self.stash_list() if e.sha == stash_sha), None)
        if entry is None:
            raise GitError(f"Stash entry {stash_sha} not found", command=["git", "stash", "list"])

        result = self._exec(["stash", "pop", entry.ref], check=False)
        if result.returncode == 0:
            return StashPopResult(stash_sha=stash_sha, applied=True)

        conflicts = self._unmerged_paths()
        if conflicts:
            logger.warning("Stash %s conflicted on %d path(s)", stash_sha[:12], len(conflicts))
            return StashPopResult(stash_sha=stash_sha, applied=False, conflicts=conflicts)
        raise GitError(
            f"Git command failed: git stash pop {entry.ref}",
            command=["git", "stash", "pop", entry.ref],
            stderr=result.stderr.strip(),
        )

    def fetch(self, remote: str) -> None:
        self._run_git(["fetch", "--quiet", remote])

    def _integrate(self, args: list[str]) -> IntegrationResult:
        result = self._exec(args, check=False)
        head = self.current_ref() or ""
        if result.returncode == 0:
            return IntegrationResult(head=head)

        conflicts = self._unmerged_paths()
        if conflicts:
            return IntegrationResult(head=head, conflicts=conflicts)
        raise GitError(
            f"Git command failed: git {' '.join(args)}",
            command=["git"] + args,
            stderr=result.stderr.strip(),
        )

    def merge(self, ref: str, *, ff_only: bool = False) -> IntegrationResult:
        args = ["merge", "--no-edit"]
        if ff_only:
            args.append("--ff-only")
        args.append(ref)
        return self._integrate(args)

    def rebase(self, onto: str) -> IntegrationResult:
        return self._integrate(["rebase", onto])

    def abort_integration(self) -> None:
        git_dir = self.git_dir()
        if (git_dir / "MERGE_HEAD").exists():
            self._run_git(["merge", "--abort"])
        elif (git_dir / "rebase-merge").exists() or (git_dir / "rebase-apply").exists():
            self._run_git(["rebase", "--abort"])
        else:
            raise GitError("No merge or rebase in progress", command=["git", "merge", "--abort"])

    def push(
        self,
        remote: str,
        branch: str,
        *,
        force: bool = False,
        set_upstream: bool = False,
    ) -> None:
        args = ["push", "--quiet"]
        if set_upstream:
            args.append("--set-upstream")
        if force:
            args.append("--force-with-lease")
        args += [remote, branch]
        self._run_git(args)

    def push_ref(self, remote: str, branch: str, sha: str, *, expected_sha: str) -> None:
        self._run_git(
            [
                "push",
                "--quiet",
                f"--force-with-lease=refs/heads/{branch}:{expected_sha}",
                remote,
                f"{sha}:refs/heads/{branch}",
            ]
        )

    def delete_remote_branch(self, remote: str, branch: str, *, expected_sha: str) -> None:
        self._run_git(
            [
                "push",
                "--quiet",
                f"--force-with-lease=refs/heads/{branch}:{expected_sha}",
                remote,
                f":refs/heads/{branch}",
            ]
        )
