"""Built-in `base` commands.

Assertions report a failed result instead of raising so that a
repeat-until block keeps looping on an unmet condition. Commands that
manage the execution itself (`end`, `failImmediate`) raise the matching
context flag.
"""

import logging
import re
import time
from typing import TYPE_CHECKING

from tabex.errors import ConfigurationError
from tabex.execution.results import StepResult
from tabex.extensions import Command
from tabex.filtering.filters import is_equal
from tabex.store import FALSE_WORDS, TRUE_WORDS
from tabex.values import to_number

if TYPE_CHECKING:
    from tabex.context import ExecutionContext

logger = logging.getLogger(__name__)


def _text(value: str | None) -> str:
    return value if value is not None else ''


def _assert_equal(context: 'ExecutionContext', expected: str | None, actual: str | None) -> StepResult:  # noqa: ARG001
    """Compare two values, numerically when both are numbers."""
    if is_equal(_text(actual), _text(expected)):
        return StepResult.success(f'validated EXPECTED = ACTUAL; {_text(expected)!r} = {_text(actual)!r}')

    return StepResult.fail(f'EXPECTED {_text(expected)!r} but found {_text(actual)!r}')


def _assert_not_equal(context: 'ExecutionContext', expected: str | None, actual: str | None) -> StepResult:  # noqa: ARG001
    if not is_equal(_text(actual), _text(expected)):
        return StepResult.success(f'validated {_text(expected)!r} not equal to {_text(actual)!r}')

    return StepResult.fail(f'EXPECTED {_text(expected)!r} not equal to {_text(actual)!r}')


def _assert_true(context: 'ExecutionContext', value: str | None) -> StepResult:  # noqa: ARG001
    if _text(value).strip().lower() in TRUE_WORDS:
        return StepResult.success(f'validated {_text(value)!r} is true')

    return StepResult.fail(f'EXPECTED true but found {_text(value)!r}')


def _assert_false(context: 'ExecutionContext', value: str | None) -> StepResult:  # noqa: ARG001
    if _text(value).strip().lower() in FALSE_WORDS:
        return StepResult.success(f'validated {_text(value)!r} is false')

    return StepResult.fail(f'EXPECTED false but found {_text(value)!r}')


def _assert_contains(context: 'ExecutionContext', text: str | None, substring: str | None) -> StepResult:  # noqa: ARG001
    if _text(substring) in _text(text):
        return StepResult.success(f'validated text contains {_text(substring)!r}')

    return StepResult.fail(f'EXPECTED {_text(text)!r} to contain {_text(substring)!r}')


def _assert_not_contain(context: 'ExecutionContext', text: str | None, substring: str | None) -> StepResult:  # noqa: ARG001
    if _text(substring) not in _text(text):
        return StepResult.success(f'validated text does not contain {_text(substring)!r}')

    return StepResult.fail(f'EXPECTED {_text(text)!r} not to contain {_text(substring)!r}')


def _assert_empty(context: 'ExecutionContext', value: str | None = None) -> StepResult:  # noqa: ARG001
    if not _text(value):
        return StepResult.success('validated value is empty')

    return StepResult.fail(f'EXPECTED empty value but found {_text(value)!r}')


def _assert_not_empty(context: 'ExecutionContext', value: str | None = None) -> StepResult:  # noqa: ARG001
    if _text(value):
        return StepResult.success('validated value is not empty')

    return StepResult.fail('EXPECTED non-empty value but found empty value')


def _assert_match(context: 'ExecutionContext', text: str | None, regex: str | None) -> StepResult:  # noqa: ARG001
    if re.fullmatch(_text(regex), _text(text), flags=re.DOTALL):
        return StepResult.success(f'validated text matches {_text(regex)!r}')

    return StepResult.fail(f'EXPECTED {_text(text)!r} to match {_text(regex)!r}')


def _assert_var_present(context: 'ExecutionContext', name: str | None) -> StepResult:
    if context.store.has(_text(name)):
        return StepResult.success(f'validated variable {_text(name)!r} is present')

    return StepResult.fail(f'EXPECTED variable {_text(name)!r} to be present')


def _assert_var_not_present(context: 'ExecutionContext', name: str | None) -> StepResult:
    if not context.store.has(_text(name)):
        return StepResult.success(f'validated variable {_text(name)!r} is not present')

    return StepResult.fail(f'EXPECTED variable {_text(name)!r} not to be present')


def _save(context: 'ExecutionContext', name: str | None, value: str | None) -> StepResult:
    """Write a value; the null sentinel removes the name."""
    if not _text(name).strip():
        raise ConfigurationError('Variable name is required')

    context.store.set(_text(name), value if value is not None else context.store.null_value)
    return StepResult.success(f'saved {_text(name)!r}')


def _clear(context: 'ExecutionContext', names: str | None) -> StepResult:
    """Remove comma separated names."""
    removed = []
    for name in _text(names).split(','):
        if name.strip() and context.store.has(name):
            context.store.remove(name)
            removed.append(name.strip())

    return StepResult.success(f'cleared {", ".join(removed) or "nothing"}')


def _split(context: 'ExecutionContext', text: str | None, delim: str | None, name: str | None) -> StepResult:
    """Save the parts of a text as a list."""
    parts = _text(text).split(delim or context.store.text_delim)
    context.store.set(_text(name), parts)
    return StepResult.success(f'saved {len(parts)} item(s) to {_text(name)!r}')


def _increment(context: 'ExecutionContext', name: str | None, amount: str | None = '1') -> StepResult:
    """Add an amount to a numeric variable; missing variables start from 0."""
    current = context.store.get_float(_text(name), 0)
    step = to_number(amount if amount is not None else '1')
    if step is None:
        raise ConfigurationError(f'Invalid increment {amount!r}')

    total = current + step
    context.store.set(_text(name), int(total) if float(total).is_integer() else total)
    return StepResult.success(f'{_text(name)!r} is now {context.store.get_str(_text(name))}')


def _verbose(context: 'ExecutionContext', text: str | None) -> StepResult:
    """Log a message."""
    message = context.mask(_text(text))
    logger.info('verbose: %s', message)
    return StepResult.success(message or '')


def _section(context: 'ExecutionContext', count: str | None) -> StepResult:  # noqa: ARG001
    """Open a section; the members run as ordinary steps."""
    return StepResult.success(f'section of {_text(count)} step(s)')


def _wait(context: 'ExecutionContext', wait_ms: str | None) -> StepResult:  # noqa: ARG001
    delay = to_number(wait_ms)
    if delay is None or delay < 0:
        raise ConfigurationError(f'Invalid wait time {wait_ms!r}')

    time.sleep(delay / 1000)
    return StepResult.success(f'waited {int(delay)}ms')


def _fail(context: 'ExecutionContext', text: str | None) -> StepResult:  # noqa: ARG001
    return StepResult.fail(_text(text))


def _fail_immediate(context: 'ExecutionContext', text: str | None) -> StepResult:
    context.fail_immediate = True
    return StepResult.fail(_text(text))


def _end(context: 'ExecutionContext', text: str | None = None) -> StepResult:
    context.end_immediate = True
    return StepResult.ended(f'test execution ends here: {_text(text)}')


def _warn(context: 'ExecutionContext', text: str | None) -> StepResult:  # noqa: ARG001
    return StepResult.warn(_text(text))


commands = [
    Command(name='assertEqual', runner=_assert_equal, params=('expected', 'actual')),
    Command(name='assertNotEqual', runner=_assert_not_equal, params=('expected', 'actual')),
    Command(name='assertTrue', runner=_assert_true, params=('value',)),
    Command(name='assertFalse', runner=_assert_false, params=('value',)),
    Command(name='assertContains', runner=_assert_contains, params=('text', 'substring')),
    Command(name='assertNotContain', runner=_assert_not_contain, params=('text', 'substring')),
    Command(name='assertEmpty', runner=_assert_empty, params=('value',), optional=1),
    Command(name='assertNotEmpty', runner=_assert_not_empty, params=('value',), optional=1),
    Command(name='assertMatch', runner=_assert_match, params=('text', 'regex')),
    Command(name='assertVarPresent', runner=_assert_var_present, params=('var',)),
    Command(name='assertVarNotPresent', runner=_assert_var_not_present, params=('var',)),
    Command(name='save', runner=_save, params=('var', 'value')),
    Command(name='clear', runner=_clear, params=('vars',)),
    Command(name='split', runner=_split, params=('text', 'delim', 'saveVar')),
    Command(name='increment', runner=_increment, params=('var', 'amount'), optional=1),
    Command(name='verbose', runner=_verbose, params=('text',)),
    Command(name='section', runner=_section, params=('steps',)),
    Command(name='wait', runner=_wait, params=('waitMs',)),
    Command(name='fail', runner=_fail, params=('text',)),
    Command(name='failImmediate', runner=_fail_immediate, params=('text',)),
    Command(name='end', runner=_end, params=('reason',), optional=1),
    Command(name='warn', runner=_warn, params=('text',)),
]
