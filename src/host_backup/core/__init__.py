"""Core backup operations for host-backup.

One module per pipeline stage; ``pipeline.BackupRun`` ties them together.
"""

from .pipeline import BackupRun, RunContext
from .steps import StepResult, StepStatus

__all__ = [
    "BackupRun",
    "RunContext",
    "StepResult",
    "StepStatus",
]
