"""
Undo engine for recorded operations.

Example:
    >>> from sagegit.core.undo import UndoEngine
    >>> engine = UndoEngine(log, repo)
    >>> print(engine.preview().steps)
    >>> engine.undo()
"""

from sagegit.core.undo.engine import UndoEngine, depends_on
from sagegit.core.undo.models import UndoPlan, UndoResult, UndoStep

__all__ = ["UndoEngine", "UndoPlan", "UndoResult", "UndoStep", "depends_on"]
