"""
Hook data models for sage.

Defines the context models passed to lifecycle hook scripts and the models
for hook execution results.

Lifecycle hooks:
- pre-push: Before a push runs. A failing script rejects the push, so
  nothing is pushed and nothing is recorded.
- post-commit: After a commit has been made and recorded. Failures are
  logged and otherwise ignored.

Context models serialize to JSON and are passed to hook scripts via the
SAGE_HOOK_CONTEXT environment variable.
"""

from datetime import datetime

from pydantic import BaseModel, Field


class PrePushContext(BaseModel):
    """
    Context for the pre-push hook.

    Fires before the push reaches the remote.
    """

    branch: str = Field(description="Local branch being pushed")
    remote: str = Field(description="Remote being pushed to")
    sha: str = Field(description="Commit the remote branch will point at")
    forced: bool = Field(default=False, description="Push uses --force-with-lease")
    repo_dir: str = Field(description="Absolute path to the work tree")
    timestamp: datetime = Field(default_factory=datetime.now, description="When the push started")

    def to_json(self) -> str:
        """Serialize to JSON string for environment variable passing."""
        return self.model_dump_json()


class PostCommitContext(BaseModel):
    """
    Context for the post-commit hook.

    Fires after the commit's operation record has been appended.
    """

    commit_sha: str = Field(description="Sha of the new commit")
    operation_id: str = Field(description="Id of the commit's operation record")
    branch: str | None = Field(default=None, description="Branch the commit was made on")
    message: str = Field(default="", description="Commit message")
    repo_dir: str = Field(description="Absolute path to the work tree")
    timestamp: datetime = Field(
        default_factory=datetime.now, description="When the commit was made"
    )

    def to_json(self) -> str:
        """Serialize to JSON string for environment variable passing."""
        return self.model_dump_json()


class HookResult(BaseModel):
    """
    Result from hook script execution.

    Captures the success/failure status, output, and timing information
    from a hook script invocation.
    """

    script: str = Field(description="File name of the hook script")
    success: bool = Field(description="Whether hook executed successfully")
    exit_code: int = Field(default=0, description="Exit code from hook script")
    stdout: str = Field(default="", description="Standard output from hook")
    stderr: str = Field(default="", description="Standard error from hook")
    duration_seconds: float = Field(description="Hook execution duration")
    timestamp: datetime = Field(default_factory=datetime.now, description="When hook was executed")
    error_message: str | None = Field(default=None, description="Error message if execution failed")

    @property
    def failed(self) -> bool:
        return not self.success


class GateDecision(BaseModel):
    """Answer of a pre-mutation gate: proceed or stop."""

    allowed: bool
    hook: str | None = Field(default=None, description="Script that rejected, if any")
    reason: str | None = Field(default=None, description="Why the gate rejected")

    @classmethod
    def allow(cls) -> "GateDecision":
        return cls(allowed=True)
