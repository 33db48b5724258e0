"""Execution results and summaries.

The runner, the repeat-until controller and the step model live in the
submodules of this package; only the leaf result types are exported here
so that the flow control evaluator can depend on them.
"""

from .results import Outcome, StepResult
from .summary import ExecutionSummary, Level, StepMessage

__all__ = (
    'ExecutionSummary',
    'Level',
    'Outcome',
    'StepMessage',
    'StepResult',
)
