"""Scenario builder.

Turns the expanded rows of each activity into a scenario arena. Every
`base.repeatUntil(steps, maxWait)` row claims the `steps` rows that
follow it, nested blocks included, and is validated here so that a
broken block fails before anything runs.
"""

import logging
from typing import TYPE_CHECKING

from tabex.errors import ConfigurationError
from tabex.execution.steps import CaseRange, RepeatBlock, Scenario

if TYPE_CHECKING:
    from collections.abc import Sequence

    from tabex.execution.steps import StepManifest
    from tabex.resolution.tokens import TokenResolver

logger = logging.getLogger(__name__)

MIN_WAIT_MS = 1000
REPEAT_PARAMS = 2

#: Activity name and its expanded rows.
type ActivityRows = tuple[str, Sequence[StepManifest]]


class ScenarioBuilder:
    """Builder of scenario arenas."""

    def __init__(self, resolver: 'TokenResolver | None' = None) -> None:
        """Initialize the builder.

        Args:
            resolver: Resolver of repeat-until parameters written as tokens.
        """
        self.resolver = resolver

    def build(self, name: str, activities: 'Sequence[ActivityRows]',
              description: str | None = None) -> Scenario:
        """Build a scenario.

        Args:
            name: Scenario name.
            activities: Activities with their expanded rows.
            description: Scenario description.

        Returns:
            Scenario arena.

        Raises:
            ConfigurationError: If a repeat-until block is malformed.
        """
        steps: list[StepManifest] = []
        cases: list[CaseRange] = []
        repeats: dict[int, RepeatBlock] = {}

        for activity, rows in activities:
            offset = len(steps)
            steps.extend(rows)
            sequence = self._collect(steps, offset, len(steps), repeats)
            cases.append(CaseRange(name=activity, steps=tuple(sequence)))

        logger.debug(
            'scenario %r built: %d step(s), %d activity(ies), %d repeat block(s)',
            name, len(steps), len(cases), len(repeats),
        )

        return Scenario(
            name=name,
            description=description,
            steps=tuple(steps),
            cases=tuple(cases),
            repeats=repeats,
        )

    def _collect(self, steps: 'Sequence[StepManifest]', start: int, end: int,
                 repeats: dict[int, RepeatBlock]) -> list[int]:
        """Collect the direct sequence of a row range, registering repeat blocks."""
        sequence: list[int] = []

        index = start
        while index < end:
            sequence.append(index)

            step = steps[index]
            if step.is_repeat_until:
                size, max_wait_ms = self._repeat_params(step, available=end - index - 1)
                if not steps[index + 1].is_assertion:
                    raise ConfigurationError(
                        f'First command MUST be an assertion in {step.name} at {step.position}: '
                        f'{steps[index + 1].name}',
                    )

                members = self._collect(steps, index + 1, index + 1 + size, repeats)
                repeats[index] = RepeatBlock(owner=index, steps=tuple(members), max_wait_ms=max_wait_ms)
                index += size

            index += 1

        return sequence

    def _number(self, value: str | None) -> int:
        """Resolve a numeric parameter."""
        if self.resolver is not None:
            value = self.resolver.resolve(value)

        return int(str(value).strip())

    def _repeat_params(self, step: 'StepManifest', available: int) -> tuple[int, int]:
        """Validate the parameters of a repeat-until row.

        Returns:
            Number of member rows and maximum wait in milliseconds.
        """
        if len(step.params) != REPEAT_PARAMS:
            raise ConfigurationError(
                f'wrong parameters specified for {step.name} at {step.position}: {list(step.params)}',
            )

        try:
            size = self._number(step.params[0])
        except ValueError:
            raise ConfigurationError(
                f'Invalid step count {step.params[0]!r} for {step.name} at {step.position}',
            ) from None

        if size < 1:
            raise ConfigurationError(f'{step.name} at {step.position} must own at least one step')

        if size > available:
            raise ConfigurationError(
                f'{step.name} at {step.position} claims {size} step(s) '
                f'but only {available} follow',
            )

        try:
            max_wait_ms = self._number(step.params[1])
        except ValueError:
            raise ConfigurationError(
                f'Invalid maximum wait {step.params[1]!r} for {step.name} at {step.position}',
            ) from None

        if max_wait_ms != -1 and max_wait_ms < MIN_WAIT_MS:
            raise ConfigurationError(
                f'Invalid maximum wait {max_wait_ms} for {step.name} at {step.position}: '
                f'minimum wait time is {MIN_WAIT_MS}ms',
            )

        return size, max_wait_ms
