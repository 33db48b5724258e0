"""Repeat-until controller.

A `base.repeatUntil(steps, maxWait)` step owns the block of rows that
follows it. The first member is an assertion: the block loops over its
members until that assertion passes, the deadline elapses, a member
breaks the iteration, or a failing member stops the block under
fail-fast rules.
"""

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING

from tabex.execution.results import StepResult
from tabex.execution.steps import section_span
from tabex.names import system_variable

if TYPE_CHECKING:
    from tabex.context import ExecutionContext
    from tabex.execution.runner import StepRunner
    from tabex.execution.steps import RepeatBlock
    from tabex.execution.summary import ExecutionSummary

logger = logging.getLogger(__name__)

REPEAT_INDEX = system_variable('repeatUntil.index')
REPEAT_START_TIME = system_variable('repeatUntil.startTime')
REPEAT_END_TIME = system_variable('repeatUntil.endTime')

#: Millisecond clock.
type Clock = Callable[[], float]


def monotonic_ms() -> float:
    """Monotonic clock in milliseconds."""
    return time.monotonic() * 1000


class RepeatState(StrEnum):
    """States of a repeat-until block."""

    RUNNING = 'running'
    ITERATION_BREAK = 'iteration-break'
    TERMINATED_TIMEOUT = 'terminated-timeout'
    TERMINATED_PASS = 'terminated-pass'
    TERMINATED_FAIL = 'terminated-fail'


@dataclass
class RepeatRun:
    """Final state of a repeat-until block."""

    state: RepeatState
    iterations: int
    result: StepResult


class RepeatUntilController:
    """Loop driver of repeat-until blocks.

    Members are run through the step runner, so flow control, pauses,
    outcome variables and nested messages apply to them as to any step.
    """

    def __init__(self, runner: 'StepRunner', clock: Clock = monotonic_ms) -> None:
        """Initialize the controller.

        Args:
            runner: Step runner of the scenario.
            clock: Millisecond clock used for the deadline.
        """
        self.runner = runner
        self.clock = clock

    @property
    def context(self) -> 'ExecutionContext':
        """Execution context of the runner."""
        return self.runner.context

    def execute(self, block: 'RepeatBlock', summary: 'ExecutionSummary') -> StepResult:
        """Run a block and return its result."""
        return self.run(block, summary).result

    def run(self, block: 'RepeatBlock', summary: 'ExecutionSummary') -> RepeatRun:
        """Run a block.

        Args:
            block: Repeat-until block.
            summary: Summary receiving the member messages.

        Returns:
            Final state, iteration count and result of the block.
        """
        if not block.steps:
            return RepeatRun(RepeatState.TERMINATED_FAIL, 0, StepResult.fail('No steps to repeat/execute'))

        start = self.clock()
        deadline = -1 if block.max_wait_ms == -1 else start + block.max_wait_ms
        self.context.store.set(REPEAT_START_TIME, int(time.time() * 1000))
        self.context.store.set(
            REPEAT_END_TIME,
            -1 if deadline == -1 else int(time.time() * 1000) + block.max_wait_ms,
        )

        previous = self.context.store.get(REPEAT_INDEX)
        iterations = 0
        try:
            while not self._expired(deadline):
                iterations += 1
                self.context.store.set(REPEAT_INDEX, iterations)
                logger.info('repeat-until entering loop #%d', iterations)

                run = self._iterate(block, summary, deadline, iterations)
                if run.state is not RepeatState.RUNNING:
                    return run
        finally:
            if previous is None:
                self.context.store.remove(REPEAT_INDEX)
            else:
                self.context.store.set(REPEAT_INDEX, previous)

        logger.warning('repeat-until timed out after %d iteration(s)', iterations)
        return RepeatRun(
            RepeatState.TERMINATED_TIMEOUT,
            iterations,
            StepResult.fail(f'Unable to complete repeat-until execution within {block.max_wait_ms}ms.'),
        )

    def _expired(self, deadline: float) -> bool:
        """Check whether the deadline has passed."""
        return deadline != -1 and self.clock() >= deadline

    def _iterate(self, block: 'RepeatBlock', summary: 'ExecutionSummary',
                 deadline: float, iterations: int) -> RepeatRun:
        """Run the members of a block once."""
        steps = self.runner.scenario.steps
        result = StepResult.success()

        position = 0
        while position < len(block.steps):
            if self._expired(deadline):
                break

            index = block.steps[position]
            step = steps[index]
            result = self.runner.execute(index, summary, nested=True)

            if self.context.break_current_iteration or self.context.end_immediate:
                logger.info('repeat-until loop ends at %s', step.position)
                return RepeatRun(RepeatState.ITERATION_BREAK, iterations, result)

            if position == 0:
                if result.is_success:
                    return RepeatRun(
                        RepeatState.TERMINATED_PASS,
                        iterations,
                        StepResult.success('repeat-until execution completed'),
                    )

                if self.context.fail_immediate or (self._escalates(result) and self.context.fail_fast):
                    return RepeatRun(RepeatState.TERMINATED_FAIL, iterations, result)

                logger.info('repeat-until condition not met (%s); loop proceeds', result.message)

            elif result.is_failed and self.context.should_stop(step):
                logger.error('repeat-until stopped by critical failure of %s', step.name)
                return RepeatRun(RepeatState.TERMINATED_FAIL, iterations, result)

            if result.is_skipped and step.is_section:
                position += section_span(steps, block.steps, position)

            position += 1

        return RepeatRun(RepeatState.RUNNING, iterations, result)

    @staticmethod
    def _escalates(result: StepResult) -> bool:
        """Check whether a failed assertion raised something else than an assertion error."""
        return result.error is not None and not isinstance(result.error, AssertionError)
