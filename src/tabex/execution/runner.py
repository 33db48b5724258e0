"""Step, activity, scenario and script runners.

The runners walk the scenario arena and apply the execution rules:

- a step resolves its parameters, evaluates pre-invocation flow
  control, invokes its command (or its repeat-until block) and
  evaluates post-invocation flow control;
- an activity counts executed, passed and failed steps, drops skipped
  steps (and the span of skipped sections) from its total, and stops
  on ending, breaking and fail-fast conditions;
- a scenario runs its activities in order and a script runs its
  scenarios, each on a copy of the previous store.
"""

import logging
import time
from typing import TYPE_CHECKING

from tabex.errors import TabexError
from tabex.execution.repeater import RepeatUntilController, monotonic_ms
from tabex.execution.results import Outcome, StepResult
from tabex.execution.steps import section_span
from tabex.execution.summary import ExecutionSummary, Level, StepMessage
from tabex.names import system_variable

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

    from tabex.context import ExecutionContext
    from tabex.execution.repeater import Clock
    from tabex.execution.steps import CaseRange, Scenario, StepManifest
    from tabex.values import RuntimeValue

logger = logging.getLogger(__name__)

MIN_DELAY_MS = 100
ITERATION = system_variable('iteration')


def root_cause(error: BaseException) -> BaseException:
    """Follow the chain of explicit causes down to the first engine error or the first cause."""
    while error.__cause__ is not None and not isinstance(error, TabexError):
        error = error.__cause__

    return error


def describe_error(error: BaseException) -> str:
    """Render an exception as a step message."""
    message = str(error) or type(error).__name__
    if isinstance(error, IndexError):
        return f'position/index not found: {message}'

    return message


class StepRunner:
    """Runner of single steps of a scenario."""

    def __init__(self, context: 'ExecutionContext', scenario: 'Scenario', *,
                 clock: 'Clock | None' = None) -> None:
        """Initialize the runner.

        Args:
            context: Execution context.
            scenario: Scenario arena the steps belong to.
            clock: Millisecond clock of the repeat-until deadlines.
        """
        self.context = context
        self.scenario = scenario
        self.repeater = RepeatUntilController(self, clock or monotonic_ms)

    def invoke(self, index: int, summary: ExecutionSummary) -> StepResult:
        """Resolve, control and invoke a step.

        Args:
            index: Arena index of the step.
            summary: Summary receiving nested messages of a repeat block.

        Returns:
            Result of the step after flow control.

        Raises:
            Exception: Anything raised by parameter resolution or by the
                command itself.
        """
        step = self.scenario.step(index)
        params = tuple(self.context.resolver.resolve_all(step.params))

        result = self.context.flow.before(step)
        if result is not None:
            return result.with_params(params)

        logger.info(
            'executing %s(%s) at %s', step.name,
            ', '.join(self.context.mask(param) or '' for param in params),
            step.position,
        )

        block = self.scenario.repeat(index) if step.is_repeat_until else None
        if block is not None:
            result = self.repeater.execute(block, summary)
        else:
            result = self.context.commands.invoke(step.target, step.command, params, self.context)

        return self.context.flow.after(step, result.with_params(params))

    def execute(self, index: int, summary: ExecutionSummary, *, nested: bool = False) -> StepResult:
        """Run a step and record its outcome.

        Exceptions never propagate: they become failed results carrying
        the root cause.

        Args:
            index: Arena index of the step.
            summary: Summary receiving the step message.
            nested: Whether the step is a member of a repeat-until block.

        Returns:
            Result of the step.
        """
        step = self.scenario.step(index)

        self.context.flow.pause_before(step)

        delay = self.context.delay_between_steps_ms
        if delay >= MIN_DELAY_MS:
            time.sleep(delay / 1000)

        started = time.perf_counter()
        try:
            result = self.invoke(index, summary)
        except Exception as error:  # noqa: BLE001
            cause = root_cause(error)
            logger.debug('step %s raised', step.position, exc_info=error)
            result = StepResult.fail(describe_error(cause), error=cause)
        finally:
            self.context.flow.pause_after(step)

        elapsed = int((time.perf_counter() - started) * 1000)
        self.context.record_outcome(result, elapsed)
        self._report(step, result, elapsed, summary, nested=nested)

        return result

    def _report(self, step: 'StepManifest', result: StepResult, elapsed: int,
                summary: ExecutionSummary, *, nested: bool) -> None:
        """Log the outcome and record the step message."""
        message = self.context.mask(result.message) or ''

        if result.is_failed:
            logger.error('%s %s FAILED: %s', step.position, step.name, message)
        elif result.is_skipped:
            logger.warning('%s %s skipped: %s', step.position, step.name, message)
        else:
            logger.info('%s %s %s: %s', step.position, step.name, result.outcome.value, message)

        summary.add_message(StepMessage(
            row=step.row,
            command=step.name,
            outcome=result.outcome,
            message=message,
            description=step.description,
            elapsed_ms=elapsed,
            nested=nested,
        ))


class CaseRunner:
    """Runner of one activity."""

    def __init__(self, runner: StepRunner) -> None:
        """Initialize the runner.

        Args:
            runner: Step runner of the scenario.
        """
        self.runner = runner
        self.context = runner.context

    def run(self, case: 'CaseRange') -> ExecutionSummary:
        """Run the steps of an activity.

        Args:
            case: Activity to run.

        Returns:
            Activity summary.
        """
        steps = self.runner.scenario.steps
        sequence = case.steps

        summary = ExecutionSummary(name=case.name, level=Level.ACTIVITY, total=len(sequence))
        summary.start()
        logger.info('activity %r started', case.name)

        self.context.break_current_iteration = False

        position = 0
        while position < len(sequence):
            if self.context.fail_immediate or self.context.end_immediate:
                logger.warning('activity %r interrupted before %s', case.name, steps[sequence[position]].position)
                break

            step = steps[sequence[position]]
            result = self.runner.execute(sequence[position], summary)
            self.context.evaluate_result(result)

            if result.is_ended:
                summary.adjust_total(-1)
                break

            if result.is_skipped:
                summary.adjust_total(-1)
                if step.is_section:
                    span = section_span(steps, sequence, position)
                    summary.adjust_total(-span)
                    position += span
            else:
                summary.increment_executed()
                if result.is_failed:
                    summary.increment_fail()
                else:
                    summary.increment_pass()
                if result.outcome is Outcome.WARN:
                    summary.increment_warn()

                if result.is_failed and self.context.should_stop(step):
                    logger.error('activity %r stopped by failure at %s', case.name, step.position)
                    break

            if self.context.break_current_iteration:
                if not step.is_repeat_until:
                    logger.info('activity %r ends at %s', case.name, step.position)
                    break
                self.context.break_current_iteration = False

            if self.context.end_immediate:
                break

            position += 1

        self.context.break_current_iteration = False
        summary.end()
        logger.info(
            'activity %r done: %d/%d executed, %d passed, %d failed',
            case.name, summary.executed, summary.total, summary.passed, summary.failed,
        )

        return summary


class ScenarioRunner:
    """Runner of the activities of a scenario."""

    def __init__(self, context: 'ExecutionContext', *, clock: 'Clock | None' = None) -> None:
        """Initialize the runner.

        Args:
            context: Execution context of the scenario.
            clock: Millisecond clock of the repeat-until deadlines.
        """
        self.context = context
        self.clock = clock

    def run(self, scenario: 'Scenario') -> ExecutionSummary:
        """Run every activity of a scenario in order."""
        summary = ExecutionSummary(name=scenario.name, level=Level.SCENARIO)
        summary.start()
        logger.info('scenario %r started', scenario.name)

        cases = CaseRunner(StepRunner(self.context, scenario, clock=self.clock))
        for case in scenario.cases:
            if self.context.fail_immediate or self.context.end_immediate:
                logger.warning('scenario %r interrupted before activity %r', scenario.name, case.name)
                break

            activity = summary.add_child(cases.run(case))
            if activity.is_failed and self.context.fail_fast:
                logger.error('scenario %r stopped by failed activity %r', scenario.name, case.name)
                break

        summary.end()
        return summary


class ScriptRunner:
    """Runner of the scenarios of a script.

    Every iteration starts from a copy of the initial store seeded with
    the iteration data. Within an iteration each scenario receives a
    copy of the store left by the previous one.
    """

    def __init__(self, context: 'ExecutionContext', *, clock: 'Clock | None' = None) -> None:
        """Initialize the runner.

        Args:
            context: Initial execution context.
            clock: Millisecond clock of the repeat-until deadlines.
        """
        self.context = context
        self.clock = clock

    def run(self, name: str, scenarios: 'Sequence[Scenario]',
            iterations: 'Sequence[Mapping[str, RuntimeValue]]' = ({},)) -> ExecutionSummary:
        """Run the scenarios of a script once per iteration.

        Args:
            name: Script name.
            scenarios: Scenarios to run in order.
            iterations: Data of each iteration.

        Returns:
            Script summary.
        """
        summary = ExecutionSummary(name=name, level=Level.SCRIPT)
        summary.start()

        for number, data in enumerate(iterations, start=1):
            if self.context.fail_immediate or self.context.end_immediate:
                break

            iteration = summary.add_child(ExecutionSummary(name=f'{name} #{number}', level=Level.ITERATION))
            iteration.start()

            context = self.context.fork()
            context.store.seed(data)
            context.store.set(ITERATION, number)

            for scenario in scenarios:
                if context.fail_immediate or context.end_immediate:
                    break

                iteration.add_child(ScenarioRunner(context, clock=self.clock).run(scenario))
                context = context.fork()

            iteration.end()
            self.context.fail_immediate = context.fail_immediate
            self.context.end_immediate = context.end_immediate
            self.context.failures = context.failures

        summary.end()
        return summary
