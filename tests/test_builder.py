"""Tests for the scenario builder."""

import pytest

from tabex.errors import ConfigurationError
from tabex.execution.steps import section_span
from tabex.resolution import TokenResolver
from tabex.script import ScenarioBuilder
from tabex.settings import EngineSettings
from tabex.store import VariableStore

from .conftest import make_step


def test_build_activities() -> None:
    """Lay out activities over one arena."""
    scenario = ScenarioBuilder().build('checkout', [
        ('login', [make_step('save', 'a', '1'), make_step('verbose', '${a}')]),
        ('pay', [make_step('verbose', 'paid')]),
    ], description='happy path')

    assert scenario.name == 'checkout'
    assert scenario.description == 'happy path'
    assert len(scenario.steps) == 3
    assert [case.name for case in scenario.cases] == ['login', 'pay']
    assert [case.steps for case in scenario.cases] == [(0, 1), (2,)]
    assert scenario.repeats == {}


def test_build_repeat_block() -> None:
    """Keep repeat members out of the activity sequence."""
    scenario = ScenarioBuilder().build('s', [
        ('a', [
            make_step('repeatUntil', '2', '-1'),
            make_step('assertEqual', '${x}', '3'),
            make_step('increment', 'x', '1'),
            make_step('verbose', 'done'),
        ]),
    ])

    assert scenario.cases[0].steps == (0, 3)
    assert scenario.repeat(0).steps == (1, 2)
    assert scenario.repeat(0).max_wait_ms == -1
    assert scenario.repeat(3) is None


def test_build_nested_repeat_blocks() -> None:
    """Register nested blocks with their own members."""
    scenario = ScenarioBuilder().build('s', [
        ('a', [
            make_step('verbose', 'start'),
            make_step('repeatUntil', '4', '5000'),
            make_step('assertEqual', '1', '1'),
            make_step('repeatUntil', '2', '-1'),
            make_step('assertEqual', '2', '2'),
            make_step('verbose', 'inner'),
            make_step('verbose', 'end'),
        ]),
    ])

    assert scenario.cases[0].steps == (0, 1, 6)
    assert scenario.repeat(1).steps == (2, 3)
    assert scenario.repeat(1).max_wait_ms == 5000
    assert scenario.repeat(3).steps == (4, 5)


def test_build_token_parameters() -> None:
    """Resolve repeat-until parameters written as tokens."""
    resolver = TokenResolver(VariableStore({'count': 1, 'wait': 2000}, settings=EngineSettings()))
    scenario = ScenarioBuilder(resolver).build('s', [
        ('a', [
            make_step('repeatUntil', '${count}', '${wait}'),
            make_step('assertEqual', '1', '1'),
        ]),
    ])

    assert scenario.repeat(0).steps == (1,)
    assert scenario.repeat(0).max_wait_ms == 2000


@pytest.mark.parametrize('rows, expect_message', (
    pytest.param(
        [make_step('repeatUntil', '1', '-1'), make_step('verbose', 'x')],
        r'^First command MUST be an assertion in base.repeatUntil at row 1',
        id='first member is not an assertion',
    ),
    pytest.param(
        [make_step('repeatUntil', '1'), make_step('assertEqual', '1', '1')],
        r'^wrong parameters specified for base.repeatUntil',
        id='missing maximum wait',
    ),
    pytest.param(
        [make_step('repeatUntil', '3', '-1'), make_step('assertEqual', '1', '1')],
        r'claims 3 step\(s\) but only 1 follow$',
        id='claims too many steps',
    ),
    pytest.param(
        [make_step('repeatUntil', '0', '-1'), make_step('assertEqual', '1', '1')],
        r'must own at least one step$',
        id='no steps',
    ),
    pytest.param(
        [make_step('repeatUntil', 'x', '-1'), make_step('assertEqual', '1', '1')],
        r"^Invalid step count 'x'",
        id='non-numeric step count',
    ),
    pytest.param(
        [make_step('repeatUntil', '1', '500'), make_step('assertEqual', '1', '1')],
        r'minimum wait time is 1000ms$',
        id='maximum wait too short',
    ),
))
def test_build_invalid_repeat(rows: list, expect_message: str) -> None:
    """Reject malformed repeat-until blocks before anything runs."""
    with pytest.raises(ConfigurationError, match=expect_message):
        ScenarioBuilder().build('s', [('a', rows)])


def test_section_span() -> None:
    """Cover direct members and the members of nested sections."""
    steps = [
        make_step('section', '2'),
        make_step('section', '1'),
        make_step('verbose', 'a'),
        make_step('verbose', 'b'),
        make_step('verbose', 'c'),
        make_step('section', '5'),
        make_step('verbose', 'd'),
    ]
    sequence = list(range(len(steps)))

    assert section_span(steps, sequence, 0) == 3
    assert section_span(steps, sequence, 1) == 1
    assert section_span(steps, sequence, 5) == 1
