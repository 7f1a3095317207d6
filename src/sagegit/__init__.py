"""
Sage - a safer workflow layer over git

Records every mutating command in a per-repository operation log so that
any of them can be undone later, one step or one whole command at a time.
"""

__version__ = "0.4.0"

# Re-export core models for convenience
from sagegit.core.config.models import SageConfig
from sagegit.core.history.models import OperationCategory, OperationRecord, OperationStatus

__all__ = ["SageConfig", "OperationCategory", "OperationRecord", "OperationStatus", "__version__"]
