"""Execution summary.

Summaries form a tree (execution, script, iteration, scenario and
activity). Activities are counted directly by the case runner; every
other level aggregates its children when they complete.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from typing import Any

from tabex.execution.results import Outcome


class Level(StrEnum):
    """Summary levels, outermost first."""

    EXECUTION = 'execution'
    SCRIPT = 'script'
    ITERATION = 'iteration'
    SCENARIO = 'scenario'
    ACTIVITY = 'activity'


@dataclass
class StepMessage:
    """Nested message recorded for one step."""

    row: int
    command: str
    outcome: Outcome
    message: str
    description: str = ''
    elapsed_ms: int = 0
    nested: bool = False

    def to_dict(self) -> dict[str, Any]:
        """Export as plain data."""
        return {
            'row': self.row + 1,
            'command': self.command,
            'outcome': self.outcome.value,
            'message': self.message,
            'description': self.description,
            'elapsed_ms': self.elapsed_ms,
            'nested': self.nested,
        }


@dataclass
class ExecutionSummary:
    """Counters and messages of one summary level.

    Invariants after aggregation: `executed == passed + failed` and
    `total >= executed`.
    """

    name: str
    level: Level
    total: int = 0
    executed: int = 0
    passed: int = 0
    failed: int = 0
    warned: int = 0
    start_time: datetime | None = None
    end_time: datetime | None = None
    error: str | None = None
    messages: list[StepMessage] = field(default_factory=list)
    children: list['ExecutionSummary'] = field(default_factory=list)

    def start(self) -> None:
        """Record the start time."""
        self.start_time = datetime.now().astimezone()

    def end(self) -> None:
        """Record the end time and aggregate children, if any."""
        self.end_time = datetime.now().astimezone()
        if self.children:
            self.aggregate()

    def add_child(self, child: 'ExecutionSummary') -> 'ExecutionSummary':
        """Attach a child summary."""
        self.children.append(child)
        return child

    def adjust_total(self, delta: int) -> None:
        """Grow or shrink the number of expected steps."""
        self.total = max(self.total + delta, 0)

    def increment_executed(self) -> None:
        """Count an executed step."""
        self.executed += 1

    def increment_pass(self) -> None:
        """Count a passed step."""
        self.passed += 1

    def increment_fail(self) -> None:
        """Count a failed step."""
        self.failed += 1

    def increment_warn(self) -> None:
        """Count a warning; warnings do not affect pass or fail."""
        self.warned += 1

    def add_message(self, message: StepMessage) -> None:
        """Record a nested step message."""
        self.messages.append(message)

    def aggregate(self) -> None:
        """Recompute counters as the sum of the children."""
        self.total = sum(child.total for child in self.children)
        self.executed = sum(child.executed for child in self.children)
        self.passed = sum(child.passed for child in self.children)
        self.failed = sum(child.failed for child in self.children)
        self.warned = sum(child.warned for child in self.children)

    @property
    def skipped(self) -> int:
        """Steps counted in the total but never executed."""
        return self.total - self.executed

    @property
    def success_rate(self) -> float:
        """Share of passed steps among executed ones."""
        if not self.executed:
            return 0.0

        return self.passed / self.executed

    @property
    def is_failed(self) -> bool:
        """Check whether anything failed at this level."""
        return self.failed > 0 or self.error is not None

    def to_dict(self) -> dict[str, Any]:
        """Export the summary tree as plain data."""
        data: dict[str, Any] = {
            'name': self.name,
            'level': self.level.value,
            'total': self.total,
            'executed': self.executed,
            'passed': self.passed,
            'failed': self.failed,
            'warned': self.warned,
            'success_rate': round(self.success_rate, 4),
        }

        if self.start_time:
            data['start_time'] = self.start_time.isoformat()
        if self.end_time:
            data['end_time'] = self.end_time.isoformat()
        if self.error:
            data['error'] = self.error
        if self.messages:
            data['messages'] = [message.to_dict() for message in self.messages]
        if self.children:
            data['children'] = [child.to_dict() for child in self.children]

        return data
