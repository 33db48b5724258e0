"""Filter engine.

A filter is a structured predicate parsed from text. Three shapes are
recognized, in priority order:

1. unary filters: `true`, `false`, `${flag}`, `!${flag}`, `not ${flag}`;
2. comparisons: `subject comparator control`;
3. anything else is rejected with a `ConfigurationError`.

Embedded expressions (`[TEXT(a = b) => upper]`) are replaced by numbered
placeholders before the shape is detected so that their content never
collides with comparator symbols.

Filters are immutable. Malformed text and comparator/control mismatches
fail when the filter is built; evaluation only resolves values and
compares them, logging (not raising) on non-numeric ordering operands.
"""

import logging
import re
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING

from pydantic import Field, model_validator

from tabex.errors import ConfigurationError
from tabex.filtering.comparators import Comparator, comparators_pattern, find_comparator
from tabex.filtering.files import FileChecker, PathFileChecker
from tabex.models import SchemaModel
from tabex.names import TOKEN_PATTERN
from tabex.resolution.expressions import find_expressions
from tabex.resolution.tokens import has_markers
from tabex.store import TRUE_WORDS
from tabex.values import to_number, unquote

if TYPE_CHECKING:
    from typing import Self

    from tabex.resolution.tokens import TokenResolver
    from tabex.store import VariableStore

logger = logging.getLogger(__name__)

UNARY_PATTERN = re.compile(r'^(true|false|\$\{[^}]+\}|!\$\{[^}]+\}|not\s+\$\{[^}]+\})$')

CONTROLS_PATTERN = r'(".+?"|.+?)?'
FILTER_PATTERN = re.compile(
    rf'^\s*{CONTROLS_PATTERN}\s*({comparators_pattern()})\s*{CONTROLS_PATTERN}\s*$',
    flags=re.DOTALL,
)

CHAINING_PATTERN = re.compile(r'\s+&\s+')
ITEM_SEPARATOR = re.compile(r'(?<!\\)\|')
LIST_OPEN = '['
LIST_CLOSE = ']'

EXPRESSION_KEY = '__expression_{}__'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'


def _hide_expressions(text: str) -> tuple[str, dict[str, str]]:
    """Replace embedded expressions by numbered placeholders."""
    expressions = {}
    parts = []
    position = 0
    for index, (start, end) in enumerate(find_expressions(text)):
        key = EXPRESSION_KEY.format(index)
        expressions[key] = text[start:end]
        parts.append(text[position:start])
        parts.append(key)
        position = end
    parts.append(text[position:])

    return ''.join(parts), expressions


def _show_expressions(text: str, expressions: dict[str, str]) -> str:
    """Restore expressions hidden by `_hide_expressions`."""
    for key, expression in expressions.items():
        text = text.replace(key, expression)

    return text


def _is_bracketed(text: str) -> bool:
    return text.startswith(LIST_OPEN) and text.endswith(LIST_CLOSE)


def parse_controls(comparator: Comparator, text: str | None) -> tuple[str, ...]:
    """Split control text according to the comparator shape.

    Args:
        comparator: Comparator of the filter.
        text: Raw control text, possibly bracketed.

    Returns:
        Normalized control values with surrounding quotes removed.

    Raises:
        ConfigurationError: If the control values do not fit the shape.
    """
    size = comparator.shape.size
    text = (text or '').strip()

    if not text:
        if size != 0:
            raise ConfigurationError(f'Comparator {comparator.value!r} expects control value(s)')
        return ()

    if size == 0:
        raise ConfigurationError(f'Comparator {comparator.value!r} does not expect control values: {text!r}')

    if size == 1:
        return (unquote(text),)

    if not _is_bracketed(text):
        if size == -1:
            return (unquote(text),)
        text = f'{LIST_OPEN}{text}{LIST_CLOSE}'

    inner = text[len(LIST_OPEN):-len(LIST_CLOSE)].strip()
    controls = tuple(unquote(item) for item in ITEM_SEPARATOR.split(inner)) if inner else ()

    if size > 0 and len(controls) != size:
        raise ConfigurationError(f'Comparator {comparator.value!r} expects {size} control(s): {text!r}')

    return controls


@dataclass(frozen=True)
class Operands:
    """Resolved operands handed to a comparator evaluator."""

    subject: str
    actual: str
    controls: list[str]
    store: 'VariableStore'
    files: FileChecker
    comparator: Comparator


type Evaluator = Callable[[Operands], bool]


def is_equal(actual: str, expected: str) -> bool:
    """Compare two texts, falling back to numeric equality."""
    if actual == expected:
        return True

    left, right = to_number(actual), to_number(expected)
    return left is not None and right is not None and left == right


def _numbers(operands: Operands, *values: str) -> list[float] | None:
    """Coerce operands into numbers, logging the first failure."""
    numbers = []
    for value in values:
        number = to_number(value)
        if number is None:
            logger.error('[%s] - NOT A NUMBER: %r', operands.comparator.value, value)
            return None
        numbers.append(number)

    return numbers


def _ordering(compare: Callable[[float, float], bool]) -> Evaluator:
    """Build an evaluator for numeric ordering comparators."""
    def evaluate(operands: Operands) -> bool:
        numbers = _numbers(operands, operands.actual, operands.controls[0])
        return numbers is not None and compare(*numbers)

    return evaluate


def _between(operands: Operands) -> bool:
    numbers = _numbers(operands, operands.actual, *operands.controls)
    if numbers is None:
        return False

    actual, low, high = numbers
    low, high = min(low, high), max(low, high)

    return low <= actual <= high


def _length(operands: Operands) -> bool:
    numbers = _numbers(operands, operands.controls[0])
    return numbers is not None and len(operands.actual) == numbers[0]


def _is_in(operands: Operands) -> bool:
    """Membership; an empty list only matches empty data."""
    if not operands.controls:
        return not operands.actual

    return operands.actual in operands.controls


def _any_affix(check: Callable[[str, str], bool]) -> Evaluator:
    """Build an evaluator succeeding when any control satisfies `check`."""
    def evaluate(operands: Operands) -> bool:
        return any(check(operands.actual, control) for control in operands.controls)

    return evaluate


def _negate(evaluator: Evaluator) -> Evaluator:
    """Build the negation of an evaluator."""
    def evaluate(operands: Operands) -> bool:
        return not evaluator(operands)

    return evaluate


def _match(operands: Operands) -> bool:
    try:
        return re.fullmatch(operands.controls[0], operands.actual, flags=re.DOTALL) is not None
    except re.error as error:
        logger.error('[%s] - invalid regular expression %r: %s', operands.comparator.value,
                     operands.controls[0], error)
        return False


def _variable_name(subject: str) -> str:
    """Extract a variable name from `${name}` or a bare name."""
    subject = subject.strip()
    if match := TOKEN_PATTERN.fullmatch(subject):
        return match.group(1)

    return subject


def _defined(operands: Operands) -> bool:
    return operands.store.has(_variable_name(operands.subject))


def _file_content(operands: Operands) -> bool:
    content = operands.files.read_text(operands.actual)
    if content is None:
        return False

    try:
        return re.search(operands.controls[0], content) is not None
    except re.error:
        return operands.controls[0] in content


def _to_datetime(operands: Operands, value: str) -> datetime | None:
    """Parse a `YYYY-MM-DD HH:MM:SS` date or an epoch in milliseconds."""
    value = value.strip()
    if value.isdigit():
        return datetime.fromtimestamp(int(value) / 1000)  # noqa: DTZ006

    try:
        return datetime.strptime(value, DATE_FORMAT)  # noqa: DTZ007
    except ValueError:
        logger.error('[%s] - NOT A DATE: %r', operands.comparator.value, value)
        return None


def _modified(compare: Callable[[datetime, datetime], bool]) -> Evaluator:
    """Build an evaluator comparing the modification time of a file."""
    def evaluate(operands: Operands) -> bool:
        modified = operands.files.modified_time(operands.actual)
        control = _to_datetime(operands, operands.controls[0])
        return modified is not None and control is not None and compare(modified, control)

    return evaluate


EVALUATORS: dict[Comparator, Evaluator] = {
    Comparator.EQUAL: lambda operands: is_equal(operands.actual, operands.controls[0]),
    Comparator.NOT_EQUAL: lambda operands: not is_equal(operands.actual, operands.controls[0]),
    Comparator.GREATER: _ordering(lambda actual, expected: actual > expected),
    Comparator.GREATER_OR_EQUAL: _ordering(lambda actual, expected: actual >= expected),
    Comparator.LESSER: _ordering(lambda actual, expected: actual < expected),
    Comparator.LESSER_OR_EQUAL: _ordering(lambda actual, expected: actual <= expected),
    Comparator.IS: _is_in,
    Comparator.IN: _is_in,
    Comparator.IS_NOT: _negate(_is_in),
    Comparator.NOT_IN: _negate(_is_in),
    Comparator.BETWEEN: _between,
    Comparator.CONTAIN: _any_affix(lambda actual, control: control in actual),
    Comparator.NOT_CONTAIN: _negate(_any_affix(lambda actual, control: control in actual)),
    Comparator.START_WITH: _any_affix(str.startswith),
    Comparator.NOT_START_WITH: _negate(_any_affix(str.startswith)),
    Comparator.END_WITH: _any_affix(str.endswith),
    Comparator.NOT_END_WITH: _negate(_any_affix(str.endswith)),
    Comparator.MATCH: _match,
    Comparator.HAS_LENGTH_OF: _length,
    Comparator.IS_EMPTY: lambda operands: not operands.actual,
    Comparator.IS_NOT_EMPTY: lambda operands: bool(operands.actual),
    Comparator.IS_DEFINED: _defined,
    Comparator.IS_UNDEFINED: _negate(_defined),
    Comparator.IS_READABLE_FILE: lambda operands: operands.files.is_readable_file(operands.actual),
    Comparator.IS_READABLE_PATH: lambda operands: operands.files.is_readable_path(operands.actual),
    Comparator.IS_EMPTY_PATH: lambda operands: operands.files.is_empty_path(operands.actual),
    Comparator.IS_NOT_EMPTY_PATH: lambda operands: (
        operands.files.is_readable_path(operands.actual)
        and not operands.files.is_empty_path(operands.actual)
    ),
    Comparator.HAS_FILE_CONTENT: _file_content,
    Comparator.IS_BEFORE: _modified(lambda modified, control: modified < control),
    Comparator.IS_AFTER: _modified(lambda modified, control: modified > control),
}


class Filter(SchemaModel):
    """Base of all filters."""

    text: str = Field(
        title='Filter text',
        description='Original text the filter was parsed from.',
    )

    @classmethod
    def parse(cls, text: str) -> 'Filter':
        """Parse a single filter.

        Args:
            text: Filter text.

        Returns:
            A `UnaryFilter` or a `ComparisonFilter`.

        Raises:
            ConfigurationError: If the text is blank, does not match any
                filter shape, or its controls do not fit the comparator.
        """
        if not text or not text.strip():
            raise ConfigurationError(f'Invalid filter {text!r}: empty')

        unary = text.strip()
        if UNARY_PATTERN.fullmatch(unary):
            negate = unary.startswith(('!', 'not '))
            subject = unary.lstrip('!').removeprefix('not').strip()
            return UnaryFilter(text=text, subject=subject, negate=negate)

        hidden, expressions = _hide_expressions(text)
        match = FILTER_PATTERN.fullmatch(hidden)
        if not match:
            raise ConfigurationError(f'Invalid filter {text!r}: does not match required format')

        subject, symbol, controls = match.groups()
        subject = _show_expressions((subject or '').strip(), expressions)
        if not subject:
            raise ConfigurationError(f'Invalid filter {text!r}: empty/blank subject')

        comparator = find_comparator(symbol)
        controls = parse_controls(comparator, controls)

        return ComparisonFilter(
            text=text,
            subject=subject,
            comparator=comparator,
            controls=tuple(_show_expressions(control, expressions) for control in controls),
        )

    def matches(self, resolver: 'TokenResolver', files: FileChecker | None = None) -> bool:
        """Evaluate the filter against the current variable store.

        Args:
            resolver: Token resolver bound to the variable store.
            files: File-system checker used by file comparators.

        Returns:
            True if the filter matches.
        """
        raise NotImplementedError  # pragma: no cover


class UnaryFilter(Filter):
    """Boolean literal or boolean variable filter."""

    subject: str
    negate: bool = False

    def matches(self, resolver: 'TokenResolver', files: FileChecker | None = None) -> bool:  # noqa: ARG002
        """Evaluate the subject as a boolean word."""
        value = resolver.resolve(self.subject) or ''
        result = value.strip().lower() in TRUE_WORDS

        return result != self.negate


class ComparisonFilter(Filter):
    """`subject comparator control` filter."""

    subject: str = Field(
        title='Subject',
        description='Template text resolved to the actual value.',
    )

    comparator: Comparator = Field(
        title='Comparator',
    )

    controls: tuple[str, ...] = Field(
        default=(),
        title='Control values',
        description='Template texts resolved to the expected value(s).',
    )

    @model_validator(mode='after')
    def check_comparator(self) -> 'Self':
        """Reject comparators without evaluator and literal non-numbers.

        Raises:
            ConfigurationError: If the filter can never be evaluated.
        """
        if self.comparator not in EVALUATORS:
            raise ConfigurationError(f'Unsupported comparator {self.comparator.value!r}')

        shape = self.comparator.shape
        if shape.size > 0 and len(self.controls) != shape.size:
            raise ConfigurationError(
                f'Comparator {self.comparator.value!r} expects {shape.size} control(s)',
            )

        if shape.numeric:
            for control in self.controls:
                if not has_markers(control) and to_number(control) is None:
                    raise ConfigurationError(
                        f'Comparator {self.comparator.value!r} expects numeric control: {control!r}',
                    )

        return self

    def matches(self, resolver: 'TokenResolver', files: FileChecker | None = None) -> bool:
        """Resolve subject and controls, then apply the comparator."""
        operands = Operands(
            subject=self.subject,
            actual=resolver.resolve(self.subject) or '',
            controls=[resolver.resolve(control) or '' for control in self.controls],
            store=resolver.store,
            files=files if files is not None else PathFileChecker(),
            comparator=self.comparator,
        )

        result = EVALUATORS[self.comparator](operands)
        logger.debug('filter %r => %s', self.text, 'MATCHED' if result else 'NOT MATCHED')

        return result


class FilterList(SchemaModel):
    """Filters combined with AND."""

    text: str = ''
    filters: tuple[Filter, ...] = ()

    @classmethod
    def parse(cls, text: str | None) -> 'FilterList':
        """Parse filters chained with ` & `.

        Raises:
            ConfigurationError: If any filter is malformed.
        """
        if not text or not text.strip():
            return cls(text=text or '')

        hidden, expressions = _hide_expressions(text)
        filters = tuple(
            Filter.parse(_show_expressions(part, expressions))
            for part in CHAINING_PATTERN.split(hidden.strip())
        )

        return cls(text=text, filters=filters)

    def __bool__(self) -> bool:
        """Check whether the list holds at least one filter."""
        return bool(self.filters)

    def matches(self, resolver: 'TokenResolver', files: FileChecker | None = None) -> bool:
        """Check that every filter matches; an empty list always matches."""
        return all(item.matches(resolver, files) for item in self.filters)
