"""
Per-command repository session for the CLI.

Commands open a session to get the adapter, operation log, configuration
and plugin host for the repository they run in. Mutating commands hold the
repository lock for the whole session. Any SageError escaping the session
is printed with guidance and turned into the matching exit code.
"""

import logging
import sys
from collections.abc import Iterator
from contextlib import ExitStack, contextmanager
from dataclasses import dataclass
from pathlib import Path

import typer
from pydantic import ValidationError

from sagegit.cli.errors import ExitCode, handle_sage_error, print_error
from sagegit.core.config import SageConfig, load_config
from sagegit.core.errors import SageError
from sagegit.core.git import ShellGitAdapter
from sagegit.core.history import OperationLog
from sagegit.core.hooks import HookPluginHost, PluginHost
from sagegit.core.lock import RepositoryLock
from sagegit.utils.project import control_dir_for, get_repo_root

logger = logging.getLogger(__name__)


def setup_logging(debug: bool = False) -> None:
    """
    Configure logging for sage commands.

    Args:
        debug: If True, log DEBUG (every git command) to stderr
    """
    level = logging.DEBUG if debug else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )


@dataclass
class RepositorySession:
    """Everything a command needs to act on one repository."""
    repo: ShellGitAdapter
    log: OperationLog
    config: SageConfig
    control_dir: Path
    plugins: PluginHost


def open_session(start: Path | None = None) -> RepositorySession:
    """Discover the repository and load its configuration."""
    root = get_repo_root(start)
    repo = ShellGitAdapter(root)
    control_dir = control_dir_for(repo.git_dir())
    config = load_config(control_dir)
    repo.timeout = config.git.timeout_seconds
    return RepositorySession(
        repo=repo,
        log=OperationLog.for_control_dir(control_dir),
        config=config,
        control_dir=control_dir,
        plugins=HookPluginHost(control_dir, root, config.hooks),
    )


@contextmanager
def repository_session(
    *,
    lock: bool = True,
    start: Path | None = None,
) -> Iterator[RepositorySession]:
    """
    Open a session for the repository containing the working directory.

    Args:
        lock: Hold the repository lock until the block exits
        start: Directory to discover the repository from (defaults to cwd)

    Raises:
        typer.Exit: On any SageError, invalid configuration or Ctrl+C
    """
    try:
        with ExitStack() as stack:
            session = open_session(start)
            if lock:
                stack.enter_context(RepositoryLock(session.control_dir))
            yield session
    except SageError as e:
        logger.debug("Command failed with context %s", e.context)
        raise typer.Exit(handle_sage_error(e))
    except ValidationError as e:
        first = e.errors()[0]
        location = ".".join(str(part) for part in first["loc"])
        print_error(
            "Invalid configuration",
            reason=f"{location}: {first['msg']}",
            solution="sage config list  # then sage config set <key> <value>",
        )
        raise typer.Exit(ExitCode.USER_ERROR)
    except KeyboardInterrupt:
        print_error("Interrupted")
        raise typer.Exit(ExitCode.SIGINT)
