"""Tests for the filter engine."""

from typing import TYPE_CHECKING, Any

import pytest

from tabex.errors import ConfigurationError
from tabex.filtering import ComparisonFilter, Filter, FilterList, PathFileChecker, UnaryFilter
from tabex.filtering.comparators import Comparator
from tabex.resolution import TokenResolver
from tabex.settings import EngineSettings
from tabex.store import VariableStore

if TYPE_CHECKING:
    from pyfakefs.fake_filesystem import FakeFilesystem


def make_resolver(data: dict[str, Any] | None = None) -> TokenResolver:
    """Build a resolver over a fresh store."""
    return TokenResolver(VariableStore(data, settings=EngineSettings()))


@pytest.mark.parametrize('text, data, expected', (
    pytest.param('true', {}, True, id='true'),
    pytest.param('false', {}, False, id='false'),
    pytest.param('${flag}', {'flag': 'yes'}, True, id='flag'),
    pytest.param('!${flag}', {'flag': 'yes'}, False, id='negated flag'),
    pytest.param('not ${flag}', {'flag': 'false'}, True, id='not flag'),
    pytest.param('${flag}', {}, False, id='missing flag'),
    pytest.param('${a} between [10|5]', {'a': 7}, True, id='between reversed bounds'),
    pytest.param('${a} between [5|10]', {'a': 11}, False, id='not between'),
    pytest.param('${a} = 5.0', {'a': '5'}, True, id='numeric equality'),
    pytest.param('${a} = "hello world"', {'a': 'hello world'}, True, id='quoted control'),
    pytest.param('${a} != x', {'a': 'y'}, True, id='not equal'),
    pytest.param('${a} > 3', {'a': '4'}, True, id='greater'),
    pytest.param('${a} >= 4', {'a': '4'}, True, id='greater or equal'),
    pytest.param('${a} < 3', {'a': 'abc'}, False, id='ordering on text'),
    pytest.param('${a} in [x|y|z]', {'a': 'y'}, True, id='in'),
    pytest.param('${a} not in [x|y]', {'a': 'z'}, True, id='not in'),
    pytest.param('${a} is [ ]', {}, True, id='is empty list'),
    pytest.param('${a} is empty', {}, True, id='is empty'),
    pytest.param('${a} is not empty', {'a': 'x'}, True, id='is not empty'),
    pytest.param('${a} is defined', {'a': 'x'}, True, id='is defined'),
    pytest.param('${b} is undefined', {'a': 'x'}, True, id='is undefined'),
    pytest.param('${a} contain [foo|bar]', {'a': 'xbarx'}, True, id='contain any'),
    pytest.param('${a} not contain foo', {'a': 'bar'}, True, id='not contain'),
    pytest.param('${a} start with ab', {'a': 'abc'}, True, id='start with'),
    pytest.param('${a} end with [x|c]', {'a': 'abc'}, True, id='end with'),
    pytest.param(r'${a} match \d+', {'a': '123'}, True, id='match'),
    pytest.param('${a} match [', {'a': '123'}, False, id='invalid regex'),
    pytest.param('${a} has length of 3', {'a': 'abc'}, True, id='has length of'),
    pytest.param('${a} = 1 & ${b} = 2', {'a': 1, 'b': 2}, True, id='chained'),
    pytest.param('${a} = 1 & ${b} = 2', {'a': 1, 'b': 3}, False, id='chained mismatch'),
    pytest.param('[TEXT(a = b) => upper] = A = B', {}, True, id='expression subject'),
    pytest.param('${login} = x', {'login': 'x'}, True, id='word comparator inside token'),
))
def test_filter_matches(text: str, data: dict[str, Any], expected: bool) -> None:
    """Evaluate filters against the store."""
    assert FilterList.parse(text).matches(make_resolver(data)) is expected


def test_filter_shapes() -> None:
    """Parse filters into unary and comparison shapes."""
    unary = Filter.parse('!${flag}')
    comparison = Filter.parse('${a} between [1|10]')

    assert isinstance(unary, UnaryFilter)
    assert unary.negate is True
    assert unary.subject == '${flag}'

    assert isinstance(comparison, ComparisonFilter)
    assert comparison.comparator is Comparator.BETWEEN
    assert comparison.controls == ('1', '10')


def test_empty_filter_list() -> None:
    """Match always with an empty filter list."""
    filters = FilterList.parse('  ')

    assert not filters
    assert filters.matches(make_resolver())


@pytest.mark.parametrize('text, expect_message', (
    pytest.param('', r'empty$', id='empty'),
    pytest.param('abc', r'does not match required format$', id='no comparator'),
    pytest.param('= 5', r'empty/blank subject$', id='no subject'),
    pytest.param('${a} between 5', r'expects 2 control\(s\)', id='between with one control'),
    pytest.param('${a} > abc', r'expects numeric control', id='non-numeric control'),
    pytest.param('${a} is empty foo', r'does not expect control values', id='unexpected control'),
    pytest.param('${a} =', r'expects control value\(s\)', id='missing control'),
))
def test_invalid_filters(text: str, expect_message: str) -> None:
    """Reject malformed filters when they are parsed."""
    with pytest.raises(ConfigurationError, match=expect_message):
        Filter.parse(text)


def test_file_comparators(fs: 'FakeFilesystem') -> None:
    """Check files through the file checker."""
    fs.create_file('/data/report.txt', contents='status: done')
    fs.create_dir('/data/empty')

    resolver = make_resolver({'file': '/data/report.txt', 'dir': '/data/empty'})
    files = PathFileChecker()

    assert FilterList.parse('${file} is readable-file').matches(resolver, files)
    assert FilterList.parse('${dir} is readable-path').matches(resolver, files)
    assert FilterList.parse('${dir} is empty-path').matches(resolver, files)
    assert FilterList.parse('${file} has file-content status: \\w+').matches(resolver, files)
    assert not FilterList.parse('${dir} is readable-file').matches(resolver, files)
    assert not FilterList.parse('${file} is after 2999-01-01 00:00:00').matches(resolver, files)
