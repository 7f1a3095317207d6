"""
Undo plan and result models.

An UndoPlan is what `sage undo --preview` shows: every record that would be
reversed (dependents first, newest first), the reverse actions for each, and
anything that currently blocks the undo.
"""

from pydantic import BaseModel, Field

from sagegit.core.history.models import OperationCategory


class UndoStep(BaseModel):
    """Reversal of a single operation record."""

    operation_id: str
    category: OperationCategory
    description: str
    actions: list[str] = Field(default_factory=list, description="Reverse actions, in order")
    blockers: list[str] = Field(
        default_factory=list, description="Precondition failures found by the read-only check"
    )
    remote: bool = Field(default=False, description="Reversal rewrites a remote branch")

    @property
    def ready(self) -> bool:
        return not self.blockers


class UndoPlan(BaseModel):
    """
    Read-only description of what undoing a record would do.

    Example:
        >>> plan = engine.preview("018f3c2a9d4e1000")
        >>> for step in plan.steps:
        ...     print(step.operation_id, step.actions)
    """

    target_id: str
    steps: list[UndoStep] = Field(default_factory=list, description="Execution order")
    cascade_ids: list[str] = Field(
        default_factory=list, description="Same-group dependents undone before the target"
    )
    blocking_dependents: list[str] = Field(
        default_factory=list, description="Dependents from other commands; these refuse the undo"
    )
    restored_stash_ids: list[str] = Field(
        default_factory=list,
        description="Stashes the same sync already popped; marked Superseded, not reversed",
    )

    @property
    def executable(self) -> bool:
        return not self.blocking_dependents and all(step.ready for step in self.steps)

    @property
    def requires_remote(self) -> bool:
        return any(step.remote for step in self.steps)


class UndoResult(BaseModel):
    """Outcome of a completed undo."""

    target_id: str
    undone_ids: list[str] = Field(default_factory=list, description="Records now Undone")
    undo_record_id: str | None = Field(
        default=None, description="Id of the record documenting this undo"
    )
    steps: list[UndoStep] = Field(default_factory=list)

    def summary(self) -> str:
        count = len(self.undone_ids)
        if count == 1:
            return f"Undid operation {self.target_id}"
        return f"Undid operation {self.target_id} and {count - 1} dependent operation(s)"
