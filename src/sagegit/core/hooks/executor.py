"""
Hook executor for lifecycle hooks.

Runs discovered hook scripts with their context passed in environment
variables:

- SAGE_HOOK_NAME: the lifecycle hook being run
- SAGE_HOOK_CONTEXT: the JSON-serialized context model
- SAGE_REPO_DIR: the repository work tree

Scripts run from the work tree with a per-script timeout. Output is
captured and returned as HookResult objects; the caller decides what a
failure means (pre-push rejects, post-commit only warns).

Example hook script:
    #!/bin/bash
    BRANCH=$(echo "$SAGE_HOOK_CONTEXT" | jq -r '.branch')
    [ "$BRANCH" != "main" ] || { echo "no direct pushes to main" >&2; exit 1; }
"""

import logging
import os
import subprocess
import time
from datetime import datetime
from pathlib import Path

from pydantic import BaseModel

from sagegit.core.config.models import HooksConfig
from sagegit.core.hooks.discovery import discover_hooks
from sagegit.core.hooks.models import HookResult

logger = logging.getLogger(__name__)


class HookExecutor:
    """
    Executor for lifecycle hook scripts.

    Attributes:
        control_dir: The repository's sage control directory
        work_dir: Work tree the scripts run in
        config: Hook configuration (timeout, enabled hooks, directories)
    """

    def __init__(
        self,
        control_dir: Path,
        work_dir: Path,
        config: HooksConfig | None = None,
    ):
        self.control_dir = control_dir
        self.work_dir = work_dir
        self.config = config or HooksConfig()

    def run(
        self,
        hook_name: str,
        context: BaseModel,
        *,
        stop_on_failure: bool = False,
    ) -> list[HookResult]:
        """
        Run all hooks for a given lifecycle event.

        Args:
            hook_name: Lifecycle hook name (pre-push, post-commit)
            context: Context model serialized into SAGE_HOOK_CONTEXT
            stop_on_failure: Skip the remaining scripts after the first failure

        Returns:
            List of HookResult objects, one per executed script
        """
        if not self.config.is_hook_enabled(hook_name):
            logger.debug("Hook %s is disabled, skipping", hook_name)
            return []

        scripts = discover_hooks(hook_name, self.control_dir, self.config)
        if not scripts:
            logger.debug("No hook scripts found for %s", hook_name)
            return []

        logger.info("Running %d hook(s) for %s", len(scripts), hook_name)

        results: list[HookResult] = []
        for script in scripts:
            result = self._execute_script(script, hook_name, context)
            results.append(result)

            if result.success:
                logger.info(
                    "Hook %s completed successfully in %.2fs",
                    script.name,
                    result.duration_seconds,
                )
                continue

            logger.error(
                "Hook %s failed with exit code %d: %s",
                script.name,
                result.exit_code,
                result.error_message,
            )
            if stop_on_failure:
                break

        return results

    def _execute_script(
        self,
        script_path: Path,
        hook_name: str,
        context: BaseModel,
    ) -> HookResult:
        env = self._build_environment(hook_name, context.model_dump_json())

        start_time = time.time()
        try:
            result = subprocess.run(
                [str(script_path)],
                cwd=str(self.work_dir),
                env=env,
                capture_output=True,
                text=True,
                timeout=self.config.timeout_seconds,
            )
        except subprocess.TimeoutExpired as e:
            return HookResult(
                script=script_path.name,
                success=False,
                exit_code=-1,
                stdout=_decode(e.stdout),
                stderr=_decode(e.stderr),
                duration_seconds=time.time() - start_time,
                timestamp=datetime.now(),
                error_message=f"Hook timed out after {self.config.timeout_seconds}s",
            )
        except OSError as e:
            return HookResult(
                script=script_path.name,
                success=False,
                exit_code=-1,
                duration_seconds=time.time() - start_time,
                timestamp=datetime.now(),
                error_message=f"Failed to execute hook: {e}",
            )

        failed = result.returncode != 0
        error_message = None
        if failed:
            error_message = result.stderr.strip() or result.stdout.strip() or None
        return HookResult(
            script=script_path.name,
            success=not failed,
            exit_code=result.returncode,
            stdout=result.stdout,
            stderr=result.stderr,
            duration_seconds=time.time() - start_time,
            timestamp=datetime.now(),
            error_message=error_message,
        )

    def _build_environment(self, hook_name: str, context_json: str) -> dict[str, str]:
        env = os.environ.copy()
        env["SAGE_HOOK_NAME"] = hook_name
        env["SAGE_HOOK_CONTEXT"] = context_json
        env["SAGE_REPO_DIR"] = str(self.work_dir)
        return env


def _decode(output: bytes | str | None) -> str:
    if output is None:
        return ""
    if isinstance(output, bytes):
        return output.decode(errors="replace")
    return output
