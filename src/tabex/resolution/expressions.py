"""Embedded expression sub-language.

Template text may embed bracketed expressions of the form::

    [TEXT(Hello World) => upper remove(O) length]

The leading part declares a data type and a value; the operations after
`=>` are applied left to right, each one producing a new typed value.
Supported types are `TEXT`, `NUMBER` and `LIST`. Expressions are
independent from tokens and functions: they run after both, on already
resolved text.

A failing expression never raises out of `ExpressionProcessor.process`;
the input text is returned unchanged and a warning is logged.
"""

import logging
import re
from base64 import b64decode, b64encode
from collections.abc import Callable
from dataclasses import dataclass
from enum import StrEnum
from math import ceil, floor
from typing import TYPE_CHECKING, Any

from tabex.errors import ResolutionError
from tabex.values import format_number, to_number

if TYPE_CHECKING:
    from collections.abc import Sequence

logger = logging.getLogger(__name__)

EXPRESSION_START = re.compile(r'\[(TEXT|NUMBER|LIST)\(')
OPERATION_NAME = re.compile(r'[A-Za-z][\w]*')
ARROW = '=>'


class DataType(StrEnum):
    """Expression data types."""

    TEXT = 'TEXT'
    NUMBER = 'NUMBER'
    LIST = 'LIST'


class ExpressionError(ResolutionError):
    """Error raised when an expression can not be parsed or evaluated."""


@dataclass(frozen=True)
class Typed:
    """A value tagged with its expression data type."""

    type: DataType
    value: Any


@dataclass(frozen=True)
class Operation:
    """One parsed `name(args)` operation."""

    name: str
    args: tuple[str, ...] = ()


type Handler = Callable[[Typed, 'Sequence[str]', str], Typed]


def _closing(text: str, start: int, opening: str, closing: str) -> int:
    """Find the index of the bracket closing the one before `start`."""
    depth = 1
    for index in range(start, len(text)):
        char = text[index]
        if char == opening:
            depth += 1
        elif char == closing:
            depth -= 1
            if depth == 0:
                return index

    return -1


def _expression_end(text: str, start: int) -> int:
    """Find the end (exclusive) of an expression starting at `start`.

    Returns:
        End index, or `-1` when the text at `start` is not a complete
        expression.
    """
    match = EXPRESSION_START.match(text, start)
    if not match:
        return -1

    value_end = _closing(text, match.end(), '(', ')')
    if value_end < 0:
        return -1

    rest = text[value_end + 1:]
    stripped = rest.lstrip()
    if not stripped.startswith(ARROW):
        return -1

    cursor = value_end + 1 + (len(rest) - len(stripped)) + len(ARROW)
    depth = 0
    for index in range(cursor, len(text)):
        char = text[index]
        if char == '(':
            depth += 1
        elif char == ')':
            depth -= 1
        elif char == ']' and depth == 0:
            return index + 1

    return -1


def find_expressions(text: str) -> list[tuple[int, int]]:
    """Locate embedded expressions.

    Args:
        text: Text possibly containing expressions.

    Returns:
        List of `(start, end)` spans, in order of appearance.
    """
    spans = []
    position = 0
    while match := EXPRESSION_START.search(text, position):
        end = _expression_end(text, match.start())
        if end < 0:
            position = match.start() + 1
            continue
        spans.append((match.start(), end))
        position = end

    return spans


def has_expression(text: str | None) -> bool:
    """Check whether a text contains at least one expression."""
    return bool(text) and bool(find_expressions(text))


def parse_operations(text: str) -> list[Operation]:
    """Parse the operation chain after `=>`.

    Raises:
        ExpressionError: If the chain is malformed.
    """
    operations = []
    cursor = 0
    while cursor < len(text):
        if text[cursor].isspace():
            cursor += 1
            continue

        match = OPERATION_NAME.match(text, cursor)
        if not match:
            raise ExpressionError(f'Invalid operation near {text[cursor:]!r}')

        cursor = match.end()
        args: tuple[str, ...] = ()
        if cursor < len(text) and text[cursor] == '(':
            end = _closing(text, cursor + 1, '(', ')')
            if end < 0:
                raise ExpressionError(f'Unbalanced parameters for {match.group()!r}')
            raw = text[cursor + 1:end]
            args = tuple(raw.split(',')) if raw else ()
            cursor = end + 1

        operations.append(Operation(match.group(), args))

    return operations


def _number(value: Any) -> float:  # noqa: ANN401
    """Coerce an operand into a number."""
    number = to_number(value)
    if number is None:
        raise ExpressionError(f'{value!r} is not a number')

    return number


def _index(value: str) -> int:
    """Coerce an operand into an index."""
    return int(_number(value))


def _text(value: Any) -> Typed:  # noqa: ANN401
    return Typed(DataType.TEXT, '' if value is None else str(value))


def _numeric(value: Any) -> Typed:  # noqa: ANN401
    return Typed(DataType.NUMBER, _number(value))


def _items(value: Any) -> Typed:  # noqa: ANN401
    return Typed(DataType.LIST, list(value))


def _pad(text: str, args: 'Sequence[str]', *, left: bool) -> Typed:
    """Pad a text with a fill character up to a given length."""
    fill, size = args[0] or ' ', _index(args[1])
    missing = max(size - len(text), 0)
    padding = (fill * missing)[:missing]
    return _text(padding + text if left else text + padding)


def _between(text: str, start: str, end: str) -> str:
    """Extract the part of a text between two markers."""
    head = text.find(start)
    if head < 0:
        return ''
    head += len(start)
    tail = text.find(end, head)
    return text[head:] if tail < 0 else text[head:tail]


TEXT_OPERATIONS: dict[str, Handler] = {
    'text': lambda data, args, delim: data,
    'upper': lambda data, args, delim: _text(data.value.upper()),
    'lower': lambda data, args, delim: _text(data.value.lower()),
    'title': lambda data, args, delim: _text(data.value.title()),
    'trim': lambda data, args, delim: _text(data.value.strip()),
    'pack': lambda data, args, delim: _text(' '.join(data.value.split())),
    'length': lambda data, args, delim: _numeric(len(data.value)),
    'number': lambda data, args, delim: _numeric(data.value),
    'count': lambda data, args, delim: _numeric(data.value.count(args[0])),
    'list': lambda data, args, delim: _items(data.value.split(args[0] if args else delim)),
    'before': lambda data, args, delim: _text(data.value.partition(args[0])[0]),
    'after': lambda data, args, delim: _text(data.value.partition(args[0])[2]),
    'between': lambda data, args, delim: _text(_between(data.value, args[0], args[1])),
    'substring': lambda data, args, delim: _text(
        data.value[_index(args[0]):_index(args[1]) if len(args) > 1 else None],
    ),
    'remove': lambda data, args, delim: _text(data.value.replace(args[0], '')),
    'replace': lambda data, args, delim: _text(data.value.replace(args[0], args[1] if len(args) > 1 else '')),
    'replaceRegex': lambda data, args, delim: _text(
        re.sub(args[0], args[1] if len(args) > 1 else '', data.value),
    ),
    'prepend': lambda data, args, delim: _text(''.join(args) + data.value),
    'append': lambda data, args, delim: _text(data.value + ''.join(args)),
    'repeat': lambda data, args, delim: _text(data.value * _index(args[0])),
    'padLeft': lambda data, args, delim: _pad(data.value, args, left=True),
    'padRight': lambda data, args, delim: _pad(data.value, args, left=False),
    'base64encode': lambda data, args, delim: _text(b64encode(data.value.encode()).decode()),
    'base64decode': lambda data, args, delim: _text(b64decode(data.value.encode()).decode()),
}


def _arith(data: Typed, args: 'Sequence[str]', operator: Callable[[float, float], float]) -> Typed:
    """Fold operands into a number with a binary operator."""
    result = data.value
    for arg in args:
        result = operator(result, _number(arg))
    return _numeric(result)


def _round(data: Typed, args: 'Sequence[str]') -> Typed:
    """Round half up, optionally to a number of decimal places."""
    places = _index(args[0]) if args else 0
    factor = 10 ** places
    return _numeric(floor(data.value * factor + 0.5) / factor)


NUMBER_OPERATIONS: dict[str, Handler] = {
    'text': lambda data, args, delim: _text(format_number(data.value)),
    'round': lambda data, args, delim: _round(data, args),
    'floor': lambda data, args, delim: _numeric(floor(data.value)),
    'ceiling': lambda data, args, delim: _numeric(ceil(data.value)),
    'abs': lambda data, args, delim: _numeric(abs(data.value)),
    'add': lambda data, args, delim: _arith(data, args, lambda a, b: a + b),
    'minus': lambda data, args, delim: _arith(data, args, lambda a, b: a - b),
    'multiply': lambda data, args, delim: _arith(data, args, lambda a, b: a * b),
    'divide': lambda data, args, delim: _arith(data, args, lambda a, b: a / b),
}


def _numbers(data: Typed) -> list[float]:
    """Coerce all list items into numbers."""
    return [_number(item) for item in data.value]


def _distinct(items: list) -> list:
    """Drop duplicates keeping the first occurrence."""
    return list(dict.fromkeys(items))


def _sort(items: list, *, reverse: bool = False) -> list:
    """Sort numerically when every item is a number, textually otherwise."""
    if items and all(to_number(item) is not None for item in items):
        return sorted(items, key=to_number, reverse=reverse)
    return sorted(items, reverse=reverse)


def _without(items: list, index: int) -> list:
    """Copy a list without one position."""
    return items[:index] + items[index + 1:]


LIST_OPERATIONS: dict[str, Handler] = {
    'text': lambda data, args, delim: _text(delim.join(data.value)),
    'join': lambda data, args, delim: _text((args[0] if args else '').join(data.value)),
    'length': lambda data, args, delim: _numeric(len(data.value)),
    'size': lambda data, args, delim: _numeric(len(data.value)),
    'item': lambda data, args, delim: _text(data.value[_index(args[0])]),
    'first': lambda data, args, delim: _text(data.value[0] if data.value else ''),
    'last': lambda data, args, delim: _text(data.value[-1] if data.value else ''),
    'reverse': lambda data, args, delim: _items(reversed(data.value)),
    'ascending': lambda data, args, delim: _items(_sort(data.value)),
    'descending': lambda data, args, delim: _items(_sort(data.value, reverse=True)),
    'distinct': lambda data, args, delim: _items(_distinct(data.value)),
    'pack': lambda data, args, delim: _items(item for item in data.value if item.strip()),
    'append': lambda data, args, delim: _items([*data.value, *args]),
    'prepend': lambda data, args, delim: _items([*args, *data.value]),
    'remove': lambda data, args, delim: _items(_without(data.value, _index(args[0]))),
    'replace': lambda data, args, delim: _items(
        args[1] if len(args) > 1 and item == args[0] else item
        for item in data.value
    ),
    'sublist': lambda data, args, delim: _items(
        data.value[_index(args[0]):_index(args[1]) if len(args) > 1 else None],
    ),
    'sum': lambda data, args, delim: _numeric(sum(_numbers(data))),
    'min': lambda data, args, delim: _numeric(min(_numbers(data))),
    'max': lambda data, args, delim: _numeric(max(_numbers(data))),
    'average': lambda data, args, delim: _numeric(sum(_numbers(data)) / len(data.value)),
}

OPERATIONS: dict[DataType, dict[str, Handler]] = {
    DataType.TEXT: TEXT_OPERATIONS,
    DataType.NUMBER: NUMBER_OPERATIONS,
    DataType.LIST: LIST_OPERATIONS,
}


class ExpressionProcessor:
    """Evaluator of embedded expressions.

    Attributes:
        delim: Delimiter used to split `LIST` values and render lists.
    """

    def __init__(self, delim: str = ',') -> None:
        """Initialize the processor."""
        self.delim = delim

    def process(self, text: str) -> str:
        """Evaluate every expression embedded in a text.

        Args:
            text: Resolved template text.

        Returns:
            The text with every expression replaced by its result, or
            the input unchanged if any expression fails.
        """
        spans = find_expressions(text)
        if not spans:
            return text

        try:
            parts = []
            position = 0
            for start, end in spans:
                parts.append(text[position:start])
                parts.append(self.evaluate(text[start:end]))
                position = end
            parts.append(text[position:])

        except (ResolutionError, ArithmeticError, IndexError, ValueError, re.error) as error:
            logger.warning('unable to evaluate expression in %r: %s', text, error)
            return text

        return ''.join(parts)

    def evaluate(self, expression: str) -> str:
        """Evaluate one bracketed expression.

        Raises:
            ExpressionError: If the expression is malformed or an
                operation is not supported for the current type.
        """
        match = EXPRESSION_START.match(expression)
        if not match or _expression_end(expression, 0) != len(expression):
            raise ExpressionError(f'Invalid expression {expression!r}')

        value_end = _closing(expression, match.end(), '(', ')')
        raw = expression[match.end():value_end]
        chain = expression[value_end + 1:-1].strip().removeprefix(ARROW)

        data = self.typed(DataType(match.group(1)), raw)
        for operation in parse_operations(chain):
            handler = OPERATIONS[data.type].get(operation.name)
            if handler is None:
                raise ExpressionError(f'Operation {operation.name!r} is not supported on {data.type}')
            data = handler(data, operation.args, self.delim)

        return self.render(data)

    def typed(self, data_type: DataType, raw: str) -> Typed:
        """Build the initial typed value."""
        if data_type is DataType.NUMBER:
            return _numeric(raw)

        if data_type is DataType.LIST:
            return _items(raw.split(self.delim) if raw else [])

        return _text(raw)

    def render(self, data: Typed) -> str:
        """Render a typed value back into text."""
        if data.type is DataType.NUMBER:
            return format_number(data.value)

        if data.type is DataType.LIST:
            return self.delim.join(str(item) for item in data.value)

        return data.value
