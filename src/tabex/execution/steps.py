"""Executable step model.

A scenario is kept as an arena: one flat tuple of step manifests plus
sequences of arena indices. Activities and repeat-until blocks are index
sequences over the same arena, so a step never holds a reference to its
owner and nested blocks need no back pointers.
"""

from typing import TYPE_CHECKING

from pydantic import Field

from tabex.errors import ConfigurationError
from tabex.flow import FlowControls
from tabex.models import SchemaModel

if TYPE_CHECKING:
    from collections.abc import Sequence

BASE_TARGET = 'base'
SECTION_COMMAND = 'section'
REPEAT_UNTIL_COMMAND = 'repeatUntil'
MACRO_COMMAND = 'macro'
ASSERTION_PREFIX = 'assert'


class StepManifest(SchemaModel):
    """One row of a script bound to its position."""

    description: str = Field(
        default='',
        title='Description',
    )

    target: str = Field(
        title='Command target',
        description='Namespace of the command, for example `base`.',
    )

    command: str = Field(
        title='Command',
    )

    params: tuple[str | None, ...] = Field(
        default=(),
        title='Parameters',
        description='Raw parameter templates, resolved right before invocation.',
    )

    flow_controls: FlowControls = Field(
        default_factory=FlowControls,
        title='Flow controls',
    )

    capture_screen: bool = Field(
        default=False,
        title='Capture screen',
        description='Request a screen capture after the step; handled by external collaborators.',
    )

    row: int = Field(
        default=0,
        ge=0,
        title='Row index',
        description='Zero-based row index within the activity.',
    )

    source: str | None = Field(
        default=None,
        title='Source',
        description='Macro the step was inlined from, if any.',
    )

    @property
    def name(self) -> str:
        """Qualified `target.command` name."""
        return f'{self.target}.{self.command}'

    @property
    def position(self) -> str:
        """Human-readable position of the step."""
        return f'row {self.row + 1}'

    @property
    def is_section(self) -> bool:
        """Check whether the step opens a section."""
        return self.target == BASE_TARGET and self.command == SECTION_COMMAND

    @property
    def is_repeat_until(self) -> bool:
        """Check whether the step owns a repeat-until block."""
        return self.target == BASE_TARGET and self.command == REPEAT_UNTIL_COMMAND

    @property
    def is_macro(self) -> bool:
        """Check whether the step invokes a macro."""
        return self.target == BASE_TARGET and self.command == MACRO_COMMAND

    @property
    def is_assertion(self) -> bool:
        """Check whether the command is an assertion."""
        return self.command.startswith(ASSERTION_PREFIX)

    @property
    def section_size(self) -> int:
        """Number of direct member rows of a section.

        Raises:
            ConfigurationError: If the step is not a section or its
                count is not a non-negative integer.
        """
        if not self.is_section:
            raise ConfigurationError(f'{self.name} at {self.position} is not a section')

        count = self.params[0] if self.params else None
        try:
            size = int(str(count).strip())
        except ValueError:
            raise ConfigurationError(
                f'Invalid section step count {count!r} at {self.position}',
            ) from None

        if size < 0:
            raise ConfigurationError(f'Invalid section step count {size} at {self.position}')

        return size


class RepeatBlock(SchemaModel):
    """Repeat-until block owned by a `base.repeatUntil` step."""

    owner: int = Field(
        ge=0,
        title='Owner',
        description='Arena index of the owning step.',
    )

    steps: tuple[int, ...] = Field(
        min_length=1,
        title='Member steps',
        description='Arena indices of the members; nested repeat members are excluded.',
    )

    max_wait_ms: int = Field(
        default=-1,
        title='Maximum wait',
        description='Deadline of the whole block in milliseconds, -1 for none.',
    )


class CaseRange(SchemaModel):
    """Activity: a named sequence of arena indices."""

    name: str

    steps: tuple[int, ...] = Field(
        default=(),
        description='Arena indices of the direct steps; repeat members are excluded.',
    )


class Scenario(SchemaModel):
    """Scenario arena."""

    name: str

    description: str | None = None

    steps: tuple[StepManifest, ...] = ()

    cases: tuple[CaseRange, ...] = ()

    repeats: dict[int, RepeatBlock] = Field(
        default_factory=dict,
        description='Repeat-until blocks keyed by the arena index of their owner.',
    )

    def step(self, index: int) -> StepManifest:
        """Get a step by arena index."""
        return self.steps[index]

    def repeat(self, index: int) -> RepeatBlock | None:
        """Get the repeat-until block owned by a step, if any."""
        return self.repeats.get(index)


def section_span(steps: 'Sequence[StepManifest]', sequence: 'Sequence[int]', position: int) -> int:
    """Count the sequence entries covered by a section.

    A section lists its direct members only. Members that are sections
    themselves bring their own span along, so the result covers every
    nested member. The span never runs past the end of the sequence.

    Args:
        steps: Step arena.
        sequence: Arena indices the section belongs to.
        position: Position of the section step within `sequence`.

    Returns:
        Number of entries following `position` owned by the section.
    """
    remaining = steps[sequence[position]].section_size
    cursor = position + 1

    while remaining > 0 and cursor < len(sequence):
        member = steps[sequence[cursor]]
        cursor += 1
        if member.is_section:
            cursor += section_span(steps, sequence, cursor - 1)
        remaining -= 1

    return min(cursor, len(sequence)) - position - 1
