"""Tests for macro expansion."""

from typing import TYPE_CHECKING, Any

import pytest

from tabex.errors import ConfigurationError, ScriptError
from tabex.resolution import TokenResolver
from tabex.script import MacroExpander, YamlMacroLibrary
from tabex.settings import EngineSettings
from tabex.store import VariableStore

from .conftest import make_step

if TYPE_CHECKING:
    from pyfakefs.fake_filesystem import FakeFilesystem

    from tabex.execution.steps import StepManifest


class DictLibrary:
    """Macro library over a mapping of macro keys to rows."""

    def __init__(self, macros: dict[tuple[str, str, str], list['StepManifest']]) -> None:
        self.macros = macros

    def load(self, file: str, sheet: str, name: str) -> list['StepManifest']:
        return self.macros[file, sheet, name]


def make_expander(macros: dict[tuple[str, str, str], list['StepManifest']],
                  data: dict[str, Any] | None = None) -> MacroExpander:
    """Build an expander over an in-memory library."""
    resolver = TokenResolver(VariableStore(data, settings=EngineSettings()))
    return MacroExpander(resolver, DictLibrary(macros))


def test_expand_macro() -> None:
    """Replace a macro row by a section followed by the macro rows."""
    expander = make_expander({
        ('lib.yaml', 'main', 'login'): [
            make_step('save', 'user', 'bob'),
            make_step('verbose', '${user}'),
        ],
    }, {'sheet': 'main'})

    rows = expander.expand([
        make_step('save', 'a', '1'),
        make_step('macro', 'lib.yaml', '${sheet}', 'login'),
        make_step('verbose', '${a}'),
    ])

    assert [step.command for step in rows] == ['save', 'section', 'save', 'verbose', 'verbose']
    assert [step.row for step in rows] == [0, 1, 2, 3, 4]
    assert rows[1].params == ('2',)
    assert rows[1].target == 'base'
    assert all(step.description.startswith('► ') for step in rows[2:4])
    assert not rows[4].description.startswith('► ')


def test_expand_grows_open_repeats() -> None:
    """Grow a repeat-until block by the number of inlined rows."""
    expander = make_expander({
        ('f', 's', 'm'): [
            make_step('verbose', 'x'),
            make_step('verbose', 'y'),
        ],
    })

    rows = expander.expand([
        make_step('repeatUntil', '2', '-1'),
        make_step('assertEqual', '1', '1'),
        make_step('macro', 'f', 's', 'm'),
        make_step('verbose', 'after'),
    ])

    assert [step.command for step in rows] == [
        'repeatUntil', 'assertEqual', 'section', 'verbose', 'verbose', 'verbose',
    ]
    assert rows[0].params == ('4', '-1')
    assert rows[2].params == ('2',)


def test_expand_grows_repeats_counted_by_tokens() -> None:
    """Resolve token step counts before growing a repeat-until block."""
    expander = make_expander({
        ('f', 's', 'm'): [
            make_step('verbose', 'x'),
            make_step('verbose', 'y'),
        ],
    }, {'n': 2})

    rows = expander.expand([
        make_step('repeatUntil', '${n}', '-1'),
        make_step('assertEqual', '1', '1'),
        make_step('macro', 'f', 's', 'm'),
        make_step('verbose', 'after'),
    ])

    assert rows[0].params == ('4', '-1')
    assert rows[2].params == ('2',)


@pytest.mark.parametrize('count', (
    pytest.param('x', id='text'),
    pytest.param('${missing}', id='missing token'),
))
def test_expand_invalid_repeat_count(count: str) -> None:
    """Reject repeat-until rows whose step count is not a number."""
    expander = make_expander({('f', 's', 'm'): [make_step('verbose', 'x')]})

    with pytest.raises(ConfigurationError, match=r'^Invalid step count'):
        expander.expand([
            make_step('repeatUntil', count, '-1'),
            make_step('assertEqual', '1', '1'),
            make_step('macro', 'f', 's', 'm'),
        ])


def test_expand_counts_direct_members() -> None:
    """Count only the direct members of the macro in its section."""
    expander = make_expander({
        ('f', 's', 'm'): [
            make_step('section', '1'),
            make_step('verbose', 'a'),
            make_step('repeatUntil', '1', '-1'),
            make_step('assertEqual', '1', '1'),
            make_step('verbose', 'b'),
        ],
    })

    rows = expander.expand([make_step('macro', 'f', 's', 'm')])

    assert len(rows) == 6
    assert rows[0].params == ('3',)


def test_expand_nested_macros() -> None:
    """Expand macros invoked from other macros."""
    expander = make_expander({
        ('f', 's', 'outer'): [
            make_step('macro', 'f', 's', 'inner'),
            make_step('verbose', 'outer'),
        ],
        ('f', 's', 'inner'): [
            make_step('verbose', 'inner'),
        ],
    })

    rows = expander.expand([make_step('macro', 'f', 's', 'outer')])

    assert [step.command for step in rows] == ['section', 'section', 'verbose', 'verbose']
    assert [step.params for step in rows] == [('2',), ('1',), ('inner',), ('outer',)]
    assert [step.description for step in rows[1:]] == ['► ', '► ', '► ']


def test_expand_cycle() -> None:
    """Reject macros including themselves."""
    expander = make_expander({
        ('f', 's', 'a'): [make_step('macro', 'f', 's', 'b')],
        ('f', 's', 'b'): [make_step('macro', 'f', 's', 'a')],
    })

    with pytest.raises(ScriptError, match=r'^Macro cycle detected: f:s:a -> f:s:b -> f:s:a'):
        expander.expand([make_step('macro', 'f', 's', 'a')])


@pytest.mark.parametrize('params', (
    pytest.param(('f', 's'), id='too few'),
    pytest.param(('f', None, 'm'), id='null sheet'),
    pytest.param(('f', 's', '${missing}'), id='unresolved name'),
))
def test_expand_invalid_parameters(params: tuple[str | None, ...]) -> None:
    """Reject macro rows without file, sheet and macro name."""
    expander = make_expander({})

    with pytest.raises(ConfigurationError, match=r'requires file, sheet and macro name'):
        expander.expand([make_step('macro', *params)])


MACROS = """
spec: macros
sheets:
  common:
    login:
      - target: base
        command: save
        params: [user, bob]
      - description: greet
        target: base
        command: verbose
        params: ['hello ${user}']
        flowControls: SkipIf(${user} is empty)
"""


def test_yaml_library(fs: 'FakeFilesystem') -> None:
    """Load macro rows from a YAML document."""
    fs.create_file('/scripts/macros.yaml', contents=MACROS)
    library = YamlMacroLibrary('/scripts')

    rows = library.load('macros.yaml', 'common', 'login')

    assert [step.name for step in rows] == ['base.save', 'base.verbose']
    assert [step.row for step in rows] == [0, 1]
    assert rows[1].description == 'greet'
    assert rows[1].flow_controls
    assert all(step.source == 'macros.yaml:common:login' for step in rows)


@pytest.mark.parametrize('file, sheet, name, expect_message', (
    pytest.param('other.yaml', 'common', 'login', r"^Macro file '/scripts/other.yaml' not found", id='file'),
    pytest.param('macros.yaml', 'nope', 'login', r"^Sheet 'nope' not found in macro file", id='sheet'),
    pytest.param('macros.yaml', 'common', 'nope', r"^Macro 'nope' not found in 'macros.yaml'", id='macro'),
))
def test_yaml_library_missing(fs: 'FakeFilesystem', file: str, sheet: str, name: str,
                              expect_message: str) -> None:
    """Report missing macro files, sheets and macros."""
    fs.create_file('/scripts/macros.yaml', contents=MACROS)
    library = YamlMacroLibrary('/scripts')

    with pytest.raises(ScriptError, match=expect_message):
        library.load(file, sheet, name)


def test_yaml_library_invalid(fs: 'FakeFilesystem') -> None:
    """Reject macro documents of another kind."""
    fs.create_file('/scripts/macros.yaml', contents='spec: script\nsheets: {}\n')

    with pytest.raises(ScriptError, match=r"^Input should be 'macros'"):
        YamlMacroLibrary('/scripts').load('macros.yaml', 'common', 'login')
