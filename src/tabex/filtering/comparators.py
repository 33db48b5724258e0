"""Filter comparators.

Each comparator is identified by its symbol as written in filter text
and declares the shape of the control values it accepts:

- `0`: no control value (`is empty`, `is defined`, ...);
- `1`: exactly one control value (`=`, `match`, ...);
- `2`: exactly two values in brackets (`between [1|10]`);
- `-1`: a single value or a bracketed list (`in [a|b|c]`).
"""

from enum import StrEnum
from re import escape
from typing import NamedTuple


class Shape(NamedTuple):
    """Control value contract of a comparator."""

    size: int
    numeric: bool = False


class Comparator(StrEnum):
    """All supported comparators, keyed by their symbol."""

    GREATER_OR_EQUAL = '>='
    GREATER = '>'
    LESSER_OR_EQUAL = '<='
    LESSER = '<'
    NOT_EQUAL = '!='
    EQUAL = '='

    NOT_IN = 'not in'
    IN = 'in'
    IS_NOT_EMPTY = 'is not empty'
    IS_EMPTY = 'is empty'
    IS_NOT = 'is not'
    IS_DEFINED = 'is defined'
    IS_UNDEFINED = 'is undefined'
    IS = 'is'

    BETWEEN = 'between'
    NOT_CONTAIN = 'not contain'
    CONTAIN = 'contain'
    NOT_START_WITH = 'not start with'
    START_WITH = 'start with'
    NOT_END_WITH = 'not end with'
    END_WITH = 'end with'
    MATCH = 'match'
    HAS_LENGTH_OF = 'has length of'

    IS_READABLE_FILE = 'is readable-file'
    IS_READABLE_PATH = 'is readable-path'
    IS_NOT_EMPTY_PATH = 'is not empty-path'
    IS_EMPTY_PATH = 'is empty-path'
    HAS_FILE_CONTENT = 'has file-content'
    IS_BEFORE = 'is before'
    IS_AFTER = 'is after'

    @property
    def shape(self) -> Shape:
        """Control value contract."""
        return SHAPES[self]

    @property
    def is_symbolic(self) -> bool:
        """Check whether the symbol is an operator rather than words."""
        return not self.value[0].isalpha()


SHAPES: dict[Comparator, Shape] = {
    Comparator.GREATER_OR_EQUAL: Shape(1, numeric=True),
    Comparator.GREATER: Shape(1, numeric=True),
    Comparator.LESSER_OR_EQUAL: Shape(1, numeric=True),
    Comparator.LESSER: Shape(1, numeric=True),
    Comparator.NOT_EQUAL: Shape(1),
    Comparator.EQUAL: Shape(1),
    Comparator.NOT_IN: Shape(-1),
    Comparator.IN: Shape(-1),
    Comparator.IS_NOT_EMPTY: Shape(0),
    Comparator.IS_EMPTY: Shape(0),
    Comparator.IS_NOT: Shape(-1),
    Comparator.IS_DEFINED: Shape(0),
    Comparator.IS_UNDEFINED: Shape(0),
    Comparator.IS: Shape(-1),
    Comparator.BETWEEN: Shape(2, numeric=True),
    Comparator.NOT_CONTAIN: Shape(-1),
    Comparator.CONTAIN: Shape(-1),
    Comparator.NOT_START_WITH: Shape(-1),
    Comparator.START_WITH: Shape(-1),
    Comparator.NOT_END_WITH: Shape(-1),
    Comparator.END_WITH: Shape(-1),
    Comparator.MATCH: Shape(1),
    Comparator.HAS_LENGTH_OF: Shape(1, numeric=True),
    Comparator.IS_READABLE_FILE: Shape(0),
    Comparator.IS_READABLE_PATH: Shape(0),
    Comparator.IS_NOT_EMPTY_PATH: Shape(0),
    Comparator.IS_EMPTY_PATH: Shape(0),
    Comparator.HAS_FILE_CONTENT: Shape(1),
    Comparator.IS_BEFORE: Shape(1),
    Comparator.IS_AFTER: Shape(1),
}


def _symbol_pattern(comparator: Comparator) -> str:
    """Build the regex fragment matching one comparator symbol.

    Word comparators must be surrounded by whitespace so that `in` does
    not match inside `${login}`.
    """
    if comparator.is_symbolic:
        return escape(comparator.value)

    words = r'\s+'.join(escape(word) for word in comparator.value.split())
    return rf'(?<=\s){words}(?=\s|$)'


def comparators_pattern() -> str:
    """Build the alternation of all comparator symbols.

    Longer symbols come first so that the longest match wins: `is not`
    before `is`, `>=` before `>`, `is not empty-path` before
    `is not empty`.
    """
    ordered = sorted(Comparator, key=lambda item: len(item.value), reverse=True)
    return '|'.join(_symbol_pattern(comparator) for comparator in ordered)


def find_comparator(symbol: str) -> Comparator:
    """Find a comparator by its symbol, ignoring extra inner whitespace.

    Raises:
        ValueError: If the symbol is unknown.
    """
    return Comparator(' '.join(symbol.split()))
