"""Tests for flow control directives."""

from typing import TYPE_CHECKING

import pytest

from tabex.errors import ConfigurationError
from tabex.execution.results import Outcome, StepResult
from tabex.flow import Directive, FlowControls

from .conftest import make_step

if TYPE_CHECKING:
    from collections.abc import Callable

    from pytest_mock import MockerFixture

    from tabex.context import ExecutionContext


def test_parse_flow_controls() -> None:
    """Parse directives with their conditions."""
    controls = FlowControls.parse('SkipIf(${a} = 1 & ${b} is empty)\n PauseAfter() EndIf([TEXT(x) => upper] = X)')

    assert set(controls.controls) == {Directive.SKIP_IF, Directive.PAUSE_AFTER, Directive.END_IF}
    assert len(controls.get(Directive.SKIP_IF).filters) == 2
    assert not controls.get(Directive.PAUSE_AFTER)
    assert controls.get(Directive.FAIL_IF) is None


def test_empty_conditions() -> None:
    """Drop directives with an empty condition, except pauses."""
    assert not FlowControls.parse('SkipIf()')
    assert not FlowControls.parse('   ')
    assert FlowControls.parse('PauseBefore( )')


@pytest.mark.parametrize('text, expect_message', (
    pytest.param('Nope(${a} = 1)', r"^Unknown flow control directive 'Nope'", id='unknown directive'),
    pytest.param('SkipIf(${a} = 1', r'^Unbalanced flow control', id='unbalanced'),
    pytest.param('SkipIf(true) SkipIf(false)', r"^Flow control directive 'SkipIf' is repeated", id='repeated'),
    pytest.param('garbage', r'^Invalid flow control', id='no directive'),
    pytest.param('SkipIf(abc)', r'does not match required format$', id='invalid condition'),
))
def test_invalid_flow_controls(text: str, expect_message: str) -> None:
    """Reject malformed flow control text."""
    with pytest.raises(ConfigurationError, match=expect_message):
        FlowControls.parse(text)


@pytest.mark.parametrize('flow, outcome, flag', (
    pytest.param('FailIf(true)', Outcome.FAIL, 'fail_immediate', id='fail if'),
    pytest.param('EndLoopIf(true)', Outcome.SKIPPED, 'break_current_iteration', id='end loop if'),
    pytest.param('EndIf(true)', Outcome.ENDED, 'end_immediate', id='end if'),
    pytest.param('SkipIf(true) FailIf(true)', Outcome.FAIL, 'fail_immediate', id='fail if first'),
    pytest.param('EndIf(true) EndLoopIf(true)', Outcome.SKIPPED, 'break_current_iteration', id='end loop first'),
))
def test_before_terminal(make_context: 'Callable[..., ExecutionContext]',
                         flow: str, outcome: Outcome, flag: str) -> None:
    """Short-circuit a step and raise the matching context flag."""
    context = make_context()
    result = context.flow.before(make_step('verbose', 'x', flow=flow))

    assert result is not None
    assert result.outcome is outcome
    assert getattr(context, flag) is True


@pytest.mark.parametrize('flow, data, skipped', (
    pytest.param('SkipIf(${env} = prod)', {'env': 'prod'}, True, id='skip'),
    pytest.param('SkipIf(${env} = prod)', {'env': 'qa'}, False, id='no skip'),
    pytest.param('SkipIf(true) ProceedIf(${env} = qa)', {'env': 'qa'}, False, id='proceed overrides skip'),
    pytest.param('ProceedIf(${env} = qa)', {'env': 'prod'}, True, id='proceed not met'),
    pytest.param('FailIf(false) EndIf(false)', {}, False, id='no match'),
))
def test_before_skip(make_context: 'Callable[..., ExecutionContext]',
                     flow: str, data: dict, skipped: bool) -> None:
    """Skip or proceed with a step."""
    context = make_context(data)
    result = context.flow.before(make_step('verbose', 'x', flow=flow))

    if skipped:
        assert result is not None
        assert result.is_skipped
        assert result.message.startswith('current step skipped: ')
    else:
        assert result is None

    assert not context.fail_immediate
    assert not context.end_immediate


def test_after_fail(make_context: 'Callable[..., ExecutionContext]') -> None:
    """Turn a passing result into an immediate failure."""
    context = make_context({'count': 4})
    step = make_step('verbose', 'x', flow='FailAfterIf(${count} > 3)')

    result = context.flow.after(step, StepResult.success('ok', param_values=('x',)))

    assert result.is_failed
    assert result.message == 'current step failed: ${count} > 3'
    assert result.param_values == ('x',)
    assert context.fail_immediate


@pytest.mark.parametrize('flow, flag', (
    pytest.param('EndAfterIf(true)', 'end_immediate', id='end after if'),
    pytest.param('EndLoopAfterIf(true)', 'break_current_iteration', id='end loop after if'),
))
def test_after_flags(make_context: 'Callable[..., ExecutionContext]', flow: str, flag: str) -> None:
    """Keep the result and raise the matching flag."""
    context = make_context()
    passed = StepResult.success('ok')

    result = context.flow.after(make_step('verbose', 'x', flow=flow), passed)

    assert result is passed
    assert getattr(context, flag) is True


def test_after_ignores_skipped(make_context: 'Callable[..., ExecutionContext]') -> None:
    """Never evaluate post-invocation directives of a skipped step."""
    context = make_context()
    skipped = StepResult.skipped('skipped')

    result = context.flow.after(make_step('verbose', 'x', flow='FailAfterIf(true)'), skipped)

    assert result is skipped
    assert not context.fail_immediate


def test_pause_interactive(make_context: 'Callable[..., ExecutionContext]', mocker: 'MockerFixture') -> None:
    """Invoke the pause gate in interactive mode only."""
    gate = mocker.Mock()
    step = make_step('verbose', 'x', flow='PauseBefore() PauseAfter(${a} = 1)', row=2)

    context = make_context({'a': 1}, pause_gate=gate, interactive=True)
    context.flow.pause_before(step)
    context.flow.pause_after(step)

    assert gate.call_args_list == [
        mocker.call('PAUSE BEFORE EXECUTION - row 3, conditions: always'),
        mocker.call('PAUSE AFTER EXECUTION - row 3, conditions: ${a} = 1'),
    ]

    gate.reset_mock()
    context = make_context({'a': 1}, pause_gate=gate)
    context.flow.pause_before(step)

    gate.assert_not_called()
