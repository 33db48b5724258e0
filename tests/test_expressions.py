"""Tests for the embedded expression language."""

import pytest

from tabex.resolution import ExpressionProcessor, find_expressions
from tabex.resolution.expressions import ExpressionError


@pytest.mark.parametrize('text, expected', (
    pytest.param('[TEXT(Hello World) => upper remove(O) length]', '9', id='text chain'),
    pytest.param('[TEXT( padded ) => trim]', 'padded', id='text trim'),
    pytest.param('[TEXT(a-b-c) => list(-) reverse text]', 'c,b,a', id='text to list'),
    pytest.param('[TEXT(key=value) => after(=)]', 'value', id='text after'),
    pytest.param('[TEXT(7) => padLeft(0,3)]', '007', id='text pad'),
    pytest.param('[NUMBER(2.5) => round]', '3', id='number round'),
    pytest.param('[NUMBER(10) => divide(4)]', '2.5', id='number divide'),
    pytest.param('[NUMBER(-3.2) => abs ceiling]', '4', id='number abs ceiling'),
    pytest.param('[LIST(3,10,2) => ascending]', '2,3,10', id='list numeric sort'),
    pytest.param('[LIST(a,b,a) => distinct length]', '2', id='list distinct'),
    pytest.param('[LIST(1,2,3) => sum]', '6', id='list sum'),
    pytest.param('total: [NUMBER(1) => add(2,3)] items', 'total: 6 items', id='embedded'),
    pytest.param('[TEXT(a) => upper] and [TEXT(B) => lower]', 'A and b', id='several'),
    pytest.param('not [an expression]', 'not [an expression]', id='no expression'),
    pytest.param('[NUMBER(1) => upper]', '[NUMBER(1) => upper]', id='unsupported operation'),
    pytest.param('[NUMBER(abc) => add(1)]', '[NUMBER(abc) => add(1)]', id='not a number'),
))
def test_process(text: str, expected: str) -> None:
    """Evaluate expressions embedded in text."""
    assert ExpressionProcessor().process(text) == expected


def test_list_delimiter() -> None:
    """Split and render lists with the configured delimiter."""
    assert ExpressionProcessor('|').process('[LIST(c|a|b) => ascending]') == 'a|b|c'


def test_evaluate_failure() -> None:
    """Raise on unsupported operations when evaluated directly."""
    with pytest.raises(ExpressionError, match=r"^Operation 'upper' is not supported on NUMBER"):
        ExpressionProcessor().evaluate('[NUMBER(1) => upper]')


def test_find_expressions() -> None:
    """Locate complete expressions only."""
    text = 'a [TEXT(x) => upper] b [TEXT(y) c'

    assert find_expressions(text) == [(2, 20)]
