"""Flow control directives.

Each step may carry flow controls written as `Directive(conditions)`
groups, for example::

    SkipIf(${env} = prod) PauseAfter() FailAfterIf(${count} > 3)

Conditions are filter lists chained with ` & `. Pause directives accept
an empty condition meaning "always"; any other directive with an empty
condition is simply absent.

Before the invocation the directives are evaluated in a fixed order:
`FailIf`, `EndLoopIf`, `EndIf`, `SkipIf`, then `ProceedIf`. After the
invocation `FailAfterIf`, `EndLoopAfterIf` and `EndAfterIf` may still
turn the result into a terminal signal.
"""

import logging
import re
from collections.abc import Callable
from enum import StrEnum
from typing import TYPE_CHECKING

import click
from pydantic import Field

from tabex.errors import ConfigurationError
from tabex.execution.results import StepResult
from tabex.filtering.filters import FilterList
from tabex.models import SchemaModel

if TYPE_CHECKING:
    from tabex.context import ExecutionContext
    from tabex.execution.steps import StepManifest

logger = logging.getLogger(__name__)

DIRECTIVE_START = re.compile(r'(\w+)\s*\(')

#: Gate blocking the execution until an operator resumes it.
type PauseGate = Callable[[str], None]


class Directive(StrEnum):
    """Flow control directives."""

    SKIP_IF = 'SkipIf'
    PAUSE_BEFORE = 'PauseBefore'
    PAUSE_AFTER = 'PauseAfter'
    END_IF = 'EndIf'
    FAIL_IF = 'FailIf'
    END_LOOP_IF = 'EndLoopIf'
    PROCEED_IF = 'ProceedIf'
    END_AFTER_IF = 'EndAfterIf'
    END_LOOP_AFTER_IF = 'EndLoopAfterIf'
    FAIL_AFTER_IF = 'FailAfterIf'

    @property
    def condition_required(self) -> bool:
        """Pause directives do not require a condition."""
        return self not in {Directive.PAUSE_BEFORE, Directive.PAUSE_AFTER}


def _closing_parenthesis(text: str, start: int) -> int:
    """Find the parenthesis closing a group opened right before `start`."""
    depth = 1
    for index in range(start, len(text)):
        if text[index] == '(':
            depth += 1
        elif text[index] == ')':
            depth -= 1
            if depth == 0:
                return index

    return -1


class FlowControls(SchemaModel):
    """Flow control map of a step: at most one filter list per directive."""

    text: str = ''

    controls: dict[Directive, FilterList] = Field(
        default_factory=dict,
        title='Flow controls',
        description='Filter list of each directive present on the step.',
    )

    @classmethod
    def parse(cls, text: str | None) -> 'FlowControls':
        """Parse flow control text.

        Args:
            text: Space separated `Directive(conditions)` groups.

        Returns:
            Parsed flow controls.

        Raises:
            ConfigurationError: If a directive is unknown, repeated,
                unbalanced, or its conditions are malformed.
        """
        if not text or not text.strip():
            return cls()

        source = text
        text = re.sub(r'[\r\n\t]', ' ', text).strip()

        controls: dict[Directive, FilterList] = {}
        position = 0
        while position < len(text):
            if text[position].isspace():
                position += 1
                continue

            match = DIRECTIVE_START.match(text, position)
            if not match:
                raise ConfigurationError(f'Invalid flow control {source!r} near {text[position:]!r}')

            end = _closing_parenthesis(text, match.end())
            if end < 0:
                raise ConfigurationError(f'Unbalanced flow control {source!r}')

            try:
                directive = Directive(match.group(1))
            except ValueError as base:
                raise ConfigurationError(f'Unknown flow control directive {match.group(1)!r}') from base

            if directive in controls:
                raise ConfigurationError(f'Flow control directive {directive.value!r} is repeated')

            conditions = text[match.end():end].strip()
            if conditions or not directive.condition_required:
                controls[directive] = FilterList.parse(conditions)

            position = end + 1

        return cls(text=source, controls=controls)

    def get(self, directive: Directive) -> FilterList | None:
        """Get the filter list of a directive, if present."""
        return self.controls.get(directive)

    def __bool__(self) -> bool:
        """Check whether any directive is present."""
        return bool(self.controls)


def console_pause_gate(message: str) -> None:
    """Block on the console until a key is pressed."""
    click.pause(info=f'{message}. Press any key to continue...')


class FlowControlEvaluator:
    """Evaluator of step flow controls against an execution context."""

    def __init__(self, context: 'ExecutionContext',
                 pause_gate: PauseGate | None = None) -> None:
        """Initialize the evaluator.

        Args:
            context: Execution context holding the short-circuit flags.
            pause_gate: Gate invoked by matching pause directives in
                interactive mode; the console gate by default.
        """
        self.context = context
        self.pause_gate = pause_gate if pause_gate is not None else console_pause_gate

    def _matched(self, step: 'StepManifest', directive: Directive) -> FilterList | None:
        """Return the directive filters if present and matching."""
        filters = step.flow_controls.get(directive)
        if filters is None:
            return None

        if filters.matches(self.context.resolver, self.context.files):
            return filters

        return None

    def before(self, step: 'StepManifest') -> StepResult | None:
        """Evaluate pre-invocation directives.

        Args:
            step: Step about to be invoked.

        Returns:
            A terminal or skipped result, or `None` when the step must
            be invoked.
        """
        if not step.flow_controls:
            return None

        if filters := self._matched(step, Directive.FAIL_IF):
            logger.info('step %s failed: %s', step.position, filters.text)
            self.context.fail_immediate = True
            return StepResult.fail(f'current step failed: {filters.text}')

        if filters := self._matched(step, Directive.END_LOOP_IF):
            logger.info('current iteration ends at %s: %s', step.position, filters.text)
            self.context.break_current_iteration = True
            return StepResult.skipped(f'current iteration ends here: {filters.text}')

        if filters := self._matched(step, Directive.END_IF):
            logger.info('test ends at %s: %s', step.position, filters.text)
            self.context.end_immediate = True
            return StepResult.ended(f'test execution ends here: {filters.text}')

        skipped = None
        if filters := self._matched(step, Directive.SKIP_IF):
            logger.info('step %s skipped: %s', step.position, filters.text)
            skipped = StepResult.skipped(f'current step skipped: {filters.text}')

        proceed = step.flow_controls.get(Directive.PROCEED_IF)
        if proceed:
            if proceed.matches(self.context.resolver, self.context.files):
                return None
            return StepResult.skipped(f'current step skipped: {proceed.text}')

        return skipped

    def after(self, step: 'StepManifest', result: StepResult) -> StepResult:
        """Evaluate post-invocation directives.

        Args:
            step: Step just invoked.
            result: Result of the invocation.

        Returns:
            The result, possibly turned into a failure.
        """
        if not step.flow_controls or result.is_skipped:
            return result

        if filters := self._matched(step, Directive.FAIL_AFTER_IF):
            logger.info('step %s failed after invocation: %s', step.position, filters.text)
            self.context.fail_immediate = True
            return StepResult.fail(
                f'current step failed: {filters.text}',
                param_values=result.param_values,
            )

        if filters := self._matched(step, Directive.END_LOOP_AFTER_IF):
            logger.info('current iteration ends after %s: %s', step.position, filters.text)
            self.context.break_current_iteration = True

        if filters := self._matched(step, Directive.END_AFTER_IF):
            logger.info('test ends after %s: %s', step.position, filters.text)
            self.context.end_immediate = True

        return result

    def _pause(self, step: 'StepManifest', directive: Directive, label: str) -> None:
        """Invoke the pause gate when a pause directive matches."""
        if not self.context.interactive:
            return

        filters = self._matched(step, directive)
        if filters is not None:
            conditions = filters.text or 'always'
            self.pause_gate(f'{label} - {step.position}, conditions: {conditions}')

    def pause_before(self, step: 'StepManifest') -> None:
        """Pause before the invocation if `PauseBefore` matches."""
        self._pause(step, Directive.PAUSE_BEFORE, 'PAUSE BEFORE EXECUTION')

    def pause_after(self, step: 'StepManifest') -> None:
        """Pause after the invocation if `PauseAfter` matches."""
        self._pause(step, Directive.PAUSE_AFTER, 'PAUSE AFTER EXECUTION')
