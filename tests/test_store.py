"""Tests for the variable store."""

from typing import Any

import pytest

from tabex.errors import ConfigurationError, TypeMismatchError
from tabex.settings import EngineSettings
from tabex.store import VariableStore


def test_set_and_get() -> None:
    """Write a value and read it back as-is."""
    store = VariableStore({'number': 42, 'items': ['a', 'b']})

    assert store.get('number') == 42
    assert store.get('items') == ['a', 'b']
    assert store.get('missing', 'default') == 'default'
    assert store.has(' number ')


@pytest.mark.parametrize('value', (
    pytest.param('(null)', id='null sentinel'),
    pytest.param([], id='empty list'),
    pytest.param({}, id='empty mapping'),
))
def test_set_removes_on_empty_values(value: Any) -> None:
    """Remove a name when null or an empty collection is written."""
    store = VariableStore({'name': 'value'})
    store.set('name', value)

    assert not store.has('name')


def test_custom_null_sentinel() -> None:
    """Honor the configured null sentinel."""
    store = VariableStore({'name': 'value'}, settings=EngineSettings(null_value='<nil>'))
    store.set('name', '(null)')

    assert store.get('name') == '(null)'

    store.set('name', '<nil>')

    assert not store.has('name')


def test_overrides_shadow_execution_values() -> None:
    """Read override sources before execution values."""
    store = VariableStore({'env': 'qa', 'user': 'alice'}, overrides=({'env': 'prod'},))

    assert store.get('env') == 'prod'
    assert store.get('user') == 'alice'


def test_writes_take_priority_over_overrides() -> None:
    """Keep step writes and removals visible over override sources."""
    store = VariableStore({'count': '1'}, overrides=({'count': '0', 'env': 'prod'},))

    assert store.get('count') == '0'

    store.set('count', '5')
    assert store.get('count') == '5'

    store.remove('count')
    assert not store.has('count')
    assert 'count' not in store.scan('')

    store.seed({'env': 'qa'})
    assert store.get('env') == 'prod'


def test_fork_keeps_write_priority() -> None:
    """Carry step writes into forked stores ahead of overrides."""
    store = VariableStore(overrides=({'count': '0', 'env': 'prod'},))
    store.set('count', '5')

    forked = store.fork()

    assert forked.get('count') == '5'
    assert forked.get('env') == 'prod'


def test_restore_snapshot() -> None:
    """Import a snapshot exported by another store."""
    source = VariableStore({'items': ['a'], 'name': 'alice'})
    target = VariableStore(overrides=({'name': 'bob'},))

    target.restore(source.snapshot())

    assert target.get('items') == ['a']
    assert target.get('name') == 'alice'


def test_system_variables() -> None:
    """Expose settings as system variables shadowed by explicit writes."""
    store = VariableStore(settings=EngineSettings(fail_fast=False, text_delim='|'))

    assert store.get_bool('tabex.failFast') is False
    assert store.text_delim == '|'

    store.set('tabex.failFast', 'yes')

    assert store.get_bool('tabex.failFast') is True


@pytest.mark.parametrize('value, getter, expected', (
    pytest.param('5', 'get_int', 5, id='int from text'),
    pytest.param(7.0, 'get_int', 7, id='int from whole float'),
    pytest.param('5.5', 'get_float', 5.5, id='float from text'),
    pytest.param('yes', 'get_bool', True, id='bool yes'),
    pytest.param('OFF', 'get_bool', False, id='bool off'),
    pytest.param(True, 'get_str', 'true', id='str from bool'),
    pytest.param(['x', 'y'], 'get_str', 'x,y', id='str from list'),
    pytest.param('x,y', 'get_list', ['x', 'y'], id='list from text'),
))
def test_typed_getters(value: Any, getter: str, expected: Any) -> None:
    """Convert stored values through the typed getters."""
    store = VariableStore({'value': value})

    assert getattr(store, getter)('value') == expected


@pytest.mark.parametrize('getter, type_name', (
    pytest.param('get_int', 'int', id='int'),
    pytest.param('get_float', 'double', id='float'),
    pytest.param('get_bool', 'boolean', id='bool'),
    pytest.param('get_map', 'map', id='map'),
))
def test_typed_getters_mismatch(getter: str, type_name: str) -> None:
    """Fail typed reads of unparsable values without a default."""
    store = VariableStore({'value': 'abc'})

    with pytest.raises(TypeMismatchError, match=rf"^Unable to parse data 'value' as {type_name}"):
        getattr(store, getter)('value')


def test_typed_getters_default() -> None:
    """Return defaults for unparsable and missing values."""
    store = VariableStore({'value': 'abc'})

    assert store.get_int('value', 7) == 7
    assert store.get_float('missing', 1.5) == 1.5
    assert store.get_bool('value', True) is True
    assert store.get_str('missing') is None


def test_read_only_names() -> None:
    """Refuse to remove read-only names."""
    store = VariableStore({'name': 'value'}, read_only=('name',))

    with pytest.raises(ConfigurationError, match=r'is read-only'):
        store.remove('name')

    with pytest.raises(ConfigurationError, match=r'is read-only'):
        store.set('name', '(null)')

    assert store.get('name') == 'value'
    assert store.is_read_only(' name ')

    store.mark_read_only('other')
    assert store.is_read_only('other')
    assert not store.is_read_only('value')


def test_fork_copies_values() -> None:
    """Seed a forked store with a copy, never an alias."""
    store = VariableStore({'items': ['a']})
    forked = store.fork()

    forked.get('items').append('b')
    forked.set('other', 1)

    assert store.get('items') == ['a']
    assert not store.has('other')
    assert forked.get('items') == ['a', 'b']


def test_scan_by_prefix() -> None:
    """Collect values by name prefix, overrides included."""
    store = VariableStore(
        {'job.id': 1, 'job.state': 'done', 'other': 3},
        overrides=({'job.owner': 'bob'},),
    )

    assert store.scan('job.') == {'job.id': 1, 'job.state': 'done', 'job.owner': 'bob'}
