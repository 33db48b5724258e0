"""Step results.

Every executed, skipped or short-circuited step produces exactly one
`StepResult`. Skips, ends and loop breaks are outcomes, not failures:
they never count as failed steps.
"""

from enum import StrEnum
from typing import TYPE_CHECKING

from pydantic import Field

from tabex.models import SchemaModel

if TYPE_CHECKING:
    from collections.abc import Sequence
    from typing import Self


class Outcome(StrEnum):
    """Possible outcomes of a step."""

    PASS = 'pass'
    FAIL = 'fail'
    WARN = 'warn'
    SKIPPED = 'skipped'
    ENDED = 'ended'


class StepResult(SchemaModel):
    """Result of a step invocation."""

    outcome: Outcome = Field(
        title='Outcome',
    )

    message: str = Field(
        default='',
        title='Message',
        description='Human-readable description of the outcome.',
    )

    error: BaseException | None = Field(
        default=None,
        title='Error',
        description='Exception raised by the command, if any.',
        exclude=True,
    )

    param_values: tuple[str | None, ...] = Field(
        default=(),
        title='Parameter values',
        description='Resolved parameters the command was invoked with.',
    )

    @classmethod
    def success(cls, message: str = '', *,
                param_values: 'Sequence[str | None]' = ()) -> 'Self':
        """Build a passing result."""
        return cls(outcome=Outcome.PASS, message=message, param_values=tuple(param_values))

    @classmethod
    def fail(cls, message: str, *,
             error: BaseException | None = None,
             param_values: 'Sequence[str | None]' = ()) -> 'Self':
        """Build a failing result."""
        return cls(outcome=Outcome.FAIL, message=message, error=error, param_values=tuple(param_values))

    @classmethod
    def warn(cls, message: str) -> 'Self':
        """Build a passing result carrying a warning."""
        return cls(outcome=Outcome.WARN, message=message)

    @classmethod
    def skipped(cls, message: str) -> 'Self':
        """Build a skipped result."""
        return cls(outcome=Outcome.SKIPPED, message=message)

    @classmethod
    def ended(cls, message: str) -> 'Self':
        """Build a result ending the execution."""
        return cls(outcome=Outcome.ENDED, message=message)

    @property
    def is_success(self) -> bool:
        """Passing, warning and ending results are successful."""
        return self.outcome in {Outcome.PASS, Outcome.WARN, Outcome.ENDED}

    @property
    def is_failed(self) -> bool:
        """Check whether the step failed."""
        return self.outcome is Outcome.FAIL

    @property
    def is_skipped(self) -> bool:
        """Check whether the step was skipped."""
        return self.outcome is Outcome.SKIPPED

    @property
    def is_ended(self) -> bool:
        """Check whether the step ended the execution."""
        return self.outcome is Outcome.ENDED

    def with_params(self, param_values: 'Sequence[str | None]') -> 'Self':
        """Attach resolved parameters to the result."""
        return self.model_copy(update={'param_values': tuple(param_values)})
