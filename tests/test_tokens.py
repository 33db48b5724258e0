"""Tests for template text resolution."""

from types import SimpleNamespace
from typing import Any

import pytest

from tabex.builtins import functions
from tabex.errors import ConfigurationError, ResolutionError
from tabex.resolution import CryptCodec, FunctionTable, TokenResolver
from tabex.settings import EngineSettings
from tabex.store import VariableStore


def make_resolver(data: dict[str, Any] | None = None, **settings: Any) -> TokenResolver:  # noqa: ANN401
    """Build a resolver over a fresh store."""
    store = VariableStore(data, settings=EngineSettings(**settings))
    table = FunctionTable([
        functions.array,
        functions.format,
        functions.number,
        functions.text,
    ])

    return TokenResolver(store, functions=table)


DATA = {
    'name': 'Alice',
    'items': ['a', 'b'],
    'csv': 'x,y,z',
    'user': {'name': 'Bob', 'roles': ['admin', 'dev']},
    'users': [{'name': 'Ann'}, {'name': 'Joe'}],
    'point': SimpleNamespace(x=1, y=2),
    'index': 1,
}


@pytest.mark.parametrize('text, expected', (
    pytest.param('plain text', 'plain text', id='plain text'),
    pytest.param('${name}', 'Alice', id='single token'),
    pytest.param('Hello ${name}, you have ${items}[0]', 'Hello Alice, you have a', id='scalar and list item'),
    pytest.param('${items}', 'a,b', id='whole list'),
    pytest.param('${items}[${index}]', 'b', id='index token'),
    pytest.param('${csv}[2]', 'z', id='delimited text item'),
    pytest.param('${user}.name', 'Bob', id='map property'),
    pytest.param('${user}.roles[1]', 'dev', id='map property item'),
    pytest.param('${user}.[name]', 'Bob', id='bracketed property'),
    pytest.param('${users}.name', 'Ann,Joe', id='list projection'),
    pytest.param('${point}.y', '2', id='struct property'),
    pytest.param('x ${missing} y', 'x  y', id='missing token inside text'),
    pytest.param(r'\${name} costs \$5', '${name} costs $5', id='escaped markers'),
))
def test_resolve(text: str, expected: str) -> None:
    """Resolve template text against the store."""
    assert make_resolver(DATA).resolve(text) == expected


@pytest.mark.parametrize('text', (
    pytest.param(None, id='none'),
    pytest.param('(null)', id='null sentinel'),
    pytest.param('${missing}', id='missing token'),
    pytest.param('${missing} ${other}', id='only missing tokens'),
))
def test_resolve_to_null(text: str | None) -> None:
    """Resolve null-standing text to `None`."""
    assert make_resolver(DATA).resolve(text) is None


def test_unresolved_as_is() -> None:
    """Keep tokens of missing names when configured."""
    resolver = make_resolver(DATA, unresolved_as_is=True)

    assert resolver.resolve('${missing} and ${name}') == '${missing} and Alice'


def test_substituted_values_are_not_resolved_again() -> None:
    """Never resolve markers produced by a substituted value."""
    resolver = make_resolver({'template': '${name}', 'name': 'Alice'})

    assert resolver.resolve('${template}') == '${name}'


@pytest.mark.parametrize('text, expected', (
    pytest.param('$(format|upper|abc)', 'ABC', id='simple function'),
    pytest.param('$(format|upper|${name})', 'ALICE', id='token parameter'),
    pytest.param('$(format|upper|$(text|trim| hi ))', 'HI', id='nested function'),
    pytest.param(r'$(text|concat|a\|b|c)', 'a|bc', id='escaped separator'),
    pytest.param('$(nope|upper|abc)', '$(nope|upper|abc)', id='unknown function'),
    pytest.param('$(format', '$(format', id='unbalanced function'),
    pytest.param('[TEXT(${name}) => upper]', 'ALICE', id='expression'),
))
def test_resolve_functions(text: str, expected: str) -> None:
    """Resolve function tokens and embedded expressions."""
    assert make_resolver(DATA).resolve(text) == expected


@pytest.mark.parametrize('text, expected', (
    pytest.param(r'\(a\)', '(a)', id='escaped parentheses'),
    pytest.param(r'a\)\)', 'a))', id='repeated escapes'),
    pytest.param(r'\$(format|upper|x)', '$(format|upper|x)', id='escaped function marker'),
    pytest.param(r'$(text|concat|\(|x\))', '(x)', id='escaped parentheses in parameters'),
    pytest.param(r'$(format|upper|\$\(x\))', '$(X)', id='escaped markers in parameters'),
))
def test_escapes_are_removed_once(text: str, expected: str) -> None:
    """Un-escape every escaped marker exactly once."""
    assert make_resolver(DATA).resolve(text) == expected


@pytest.mark.parametrize('delim, numbers', (
    pytest.param(';', '1;2;3', id='semicolon'),
    pytest.param('|', r'1\|2\|3', id='parameter separator'),
))
def test_list_delimiter(delim: str, numbers: str) -> None:
    """Split and join lists with the configured delimiter."""
    resolver = make_resolver({'items': ['a', 'b', 'c'], 'csv': f'x{delim}y{delim}z'}, text_delim=delim)

    assert resolver.resolve('${items}') == f'a{delim}b{delim}c'
    assert resolver.resolve('${items}[1]') == 'b'
    assert resolver.resolve('${csv}[2]') == 'z'
    assert resolver.resolve('$(array|length|${items})') == '3'
    assert resolver.resolve('$(array|reverse|${items})') == f'c{delim}b{delim}a'
    assert resolver.resolve('$(array|item|${csv}|1)') == 'y'
    assert resolver.resolve(f'$(number|sum|{numbers})') == '6'


def test_function_failure() -> None:
    """Wrap failures of function operations."""
    resolver = make_resolver(DATA)

    with pytest.raises(ResolutionError, match=r'^Invalid built-in function \$\(number\|sum\)'):
        resolver.resolve('$(number|sum|a,b)')

    with pytest.raises(ResolutionError, match=r"invalid operation 'nope'"):
        resolver.resolve('$(format|nope|abc)')


def test_invoke_function() -> None:
    """Invoke a single function token."""
    resolver = make_resolver(DATA)

    assert resolver.invoke_function('$(format|lower|ABC)') == 'abc'
    assert resolver.invoke_function('array|length|a,b,c') == '3'

    with pytest.raises(ConfigurationError, match=r'^nope does not resolve to a function'):
        resolver.invoke_function('nope|upper|abc')

    with pytest.raises(ConfigurationError, match=r'NOT shown via the \$\(\.\.\.\|\.\.\.\) format'):
        resolver.invoke_function('format')


def test_resolve_all() -> None:
    """Resolve step parameters keeping nulls."""
    resolver = make_resolver(DATA)

    assert resolver.resolve_all(['${name}', None, '${missing}']) == ['Alice', None, None]


def test_crypt_values() -> None:
    """Decrypt `crypt:` values and mask their plaintexts."""
    key = CryptCodec.generate_key()
    secret = CryptCodec(key).encrypt('s3cret')

    resolver = make_resolver({'password': secret}, crypt_key=key)

    assert secret.startswith('crypt:')
    assert resolver.resolve('${password}') == 's3cret'
    assert resolver.crypt.mask('password is s3cret') == f'password is {secret}'


def test_crypt_without_key() -> None:
    """Refuse to decrypt without a configured key."""
    secret = CryptCodec(CryptCodec.generate_key()).encrypt('s3cret')
    resolver = make_resolver({'password': secret})

    with pytest.raises(ConfigurationError, match=r'^No crypt key configured'):
        resolver.resolve('${password}')


def test_crypt_invalid_key() -> None:
    """Reject malformed crypt keys."""
    with pytest.raises(ConfigurationError, match=r'^Invalid crypt key'):
        CryptCodec('not a key')
