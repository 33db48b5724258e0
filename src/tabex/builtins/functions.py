"""Built-in functions for `$(name|operation|params...)` tokens.

Every operation receives its parameters as text and returns a value the
resolver renders back into text. Lists are passed around as text joined
with the list delimiter of the execution (`tabex.textDelim`), which
operations over lists receive as their `delim` keyword.
"""

import base64
import random as _random
import re
import string
from datetime import datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal
from math import ceil, floor
from urllib.parse import quote_plus, unquote_plus

from tabex.resolution.functions import Function
from tabex.values import format_number, to_number

JAVA_DATE_TOKENS = re.compile(r'y+|M+|d+|H+|h+|m+|s+|S+|E+|a')
JAVA_DATE_FORMATS = {
    'yyyy': '%Y',
    'yy': '%y',
    'MMMM': '%B',
    'MMM': '%b',
    'MM': '%m',
    'dd': '%d',
    'HH': '%H',
    'hh': '%I',
    'mm': '%M',
    'ss': '%S',
    'EEEE': '%A',
    'EEE': '%a',
    'a': '%p',
}


def _items(array: str, delim: str) -> list[str]:
    """Split delimited text into items; blank text has no items."""
    if not array:
        return []

    return array.split(delim)


def _number(text: str) -> float:
    """Parse a numeric parameter."""
    number = to_number(text)
    if number is None:
        raise ValueError(f'{text!r} is not a number')

    return number


def _int(text: str) -> int:
    """Parse an integer parameter."""
    return int(_number(text))


def _array_item(array: str, index: str, *, delim: str) -> str:
    items = _items(array, delim)
    position = _int(index)
    return items[position] if 0 <= position < len(items) else ''


def _array_remove(array: str, index: str, *, delim: str) -> list[str]:
    items = _items(array, delim)
    position = _int(index)
    if 0 <= position < len(items):
        del items[position]
    return items


def _array_insert(array: str, index: str, item: str, *, delim: str) -> list[str]:
    items = _items(array, delim)
    items.insert(min(max(_int(index), 0), len(items)), item)
    return items


def _array_index(array: str, item: str, *, delim: str) -> int:
    items = _items(array, delim)
    return items.index(item) if item in items else -1


array = Function(
    name='array',
    description='Operations over text delimited with the list delimiter.',
    operations={
        'item': _array_item,
        'length': lambda array, *, delim: len(_items(array, delim)),
        'reverse': lambda array, *, delim: _items(array, delim)[::-1],
        'subarray': lambda array, start, end, *, delim: _items(array, delim)[_int(start):_int(end)],
        'distinct': lambda array, *, delim: list(dict.fromkeys(_items(array, delim))),
        'ascending': lambda array, *, delim: sorted(_items(array, delim)),
        'descending': lambda array, *, delim: sorted(_items(array, delim), reverse=True),
        'remove': _array_remove,
        'insert': _array_insert,
        'prepend': lambda array, item, *, delim: [item, *_items(array, delim)],
        'append': lambda array, item, *, delim: [*_items(array, delim), item],
        'index': _array_index,
        'pack': lambda array, *, delim: [item for item in _items(array, delim) if item.strip()],
        'replica': lambda array, count, *, delim: _items(array, delim) * _int(count),
    },
)


count = Function(
    name='count',
    description='Character counts.',
    operations={
        'upper': lambda text: sum(1 for char in text if char.isupper()),
        'lower': lambda text: sum(1 for char in text if char.islower()),
        'alpha': lambda text: sum(1 for char in text if char.isalpha()),
        'numeric': lambda text: sum(1 for char in text if char.isdigit()),
        'alphanumeric': lambda text: sum(1 for char in text if char.isalnum()),
        'whitespace': lambda text: sum(1 for char in text if char.isspace()),
        'any': lambda text, chars: sum(1 for char in text if char in chars),
        'size': len,
    },
)


def _left(text: str, length: str) -> str:
    return text[:max(_int(length), 0)]


def _right(text: str, length: str) -> str:
    size = max(_int(length), 0)
    return text[-size:] if size else ''


def _custom(text: str, pattern: str) -> str:
    """Fill `#` placeholders of a pattern with the characters of the text."""
    chars = iter(text)
    return ''.join(next(chars, '') if char == '#' else char for char in pattern)


def _mask(text: str, start: str, end: str, mask_char: str = '#') -> str:
    first, last = max(_int(start), 0), min(_int(end), len(text))
    if first >= last:
        return text
    return text[:first] + (mask_char or '#') * (last - first) + text[last:]


format = Function(  # noqa: A001
    name='format',
    description='Text formatting.',
    operations={
        'upper': str.upper,
        'lower': str.lower,
        'titlecase': lambda text: ' '.join(word.capitalize() for word in text.split(' ')),
        'left': _left,
        'right': _right,
        'integer': lambda text: f'{round(_number(text)):,}',
        'number': lambda text, digits: f'{_number(text):,.{_int(digits)}f}',
        'percent': lambda text: f'{_number(text):.0%}',
        'dollar': lambda text: f'${_number(text):,.2f}',
        'strip': lambda text, omit: ''.join(char for char in text if char not in omit),
        'custom': _custom,
        'mask': _mask,
        'urlencode': quote_plus,
        'urldecode': unquote_plus,
        'base64encode': lambda text: base64.b64encode(text.encode('utf-8')).decode('ascii'),
        'base64decode': lambda text: base64.b64decode(text).decode('utf-8'),
    },
)


def _numbers(array: str, delim: str) -> list[float]:
    return [_number(item) for item in _items(array, delim) if item.strip()]


def _average(array: str, *, delim: str) -> str:
    numbers = _numbers(array, delim)
    return format_number(sum(numbers) / len(numbers))


def _round_to(value: str, closest: str) -> str:
    """Round to the closest multiple, for example 0.01 or 100."""
    step = Decimal(str(_number(closest)))
    rounded = (Decimal(str(_number(value))) / step).quantize(Decimal(1), rounding=ROUND_HALF_UP) * step
    return format_number(float(rounded))


number = Function(
    name='number',
    description='Arithmetic over numbers and delimited numbers.',
    operations={
        'sum': lambda array, *, delim: format_number(sum(_numbers(array, delim))),
        'average': _average,
        'max': lambda array, *, delim: format_number(max(_numbers(array, delim))),
        'min': lambda array, *, delim: format_number(min(_numbers(array, delim))),
        'round': lambda value: format_number(float(Decimal(str(_number(value))).quantize(
            Decimal(1), rounding=ROUND_HALF_UP,
        ))),
        'roundTo': _round_to,
        'ceiling': lambda value: ceil(_number(value)),
        'floor': lambda value: floor(_number(value)),
        'increment': lambda value, amount='1': format_number(_number(value) + _number(amount)),
        'decrement': lambda value, amount='1': format_number(_number(value) - _number(amount)),
    },
)


def _random_chars(chars: str, length: str) -> str:
    size = _int(length)
    if size < 1:
        return ''
    return ''.join(_random.choice(chars) for _ in range(size))  # noqa: S311


def _random_integer(length: str) -> str:
    size = _int(length)
    if size < 1:
        return ''
    return _random_chars(string.digits[1:], '1') + _random_chars(string.digits, str(size - 1))


def _random_decimal(spec: str, *, delim: str) -> str:
    """Random decimal shaped as `integer_digits,fraction_digits`."""
    whole, _, fraction = spec.partition(delim)
    result = _random_integer(whole) or '0'
    if fraction.strip():
        result += '.' + _random_chars(string.digits, fraction)
    return result


random = Function(
    name='random',
    description='Random data.',
    operations={
        'integer': _random_integer,
        'decimal': _random_decimal,
        'letter': lambda length: _random_chars(string.ascii_letters, length),
        'alphanumeric': lambda length: _random_chars(string.ascii_letters + string.digits, length),
        'any': lambda length: _random_chars(string.ascii_letters + string.digits + string.punctuation, length),
        'characters': _random_chars,
    },
)


def date_format(pattern: str) -> str:
    """Translate a `yyyy-MM-dd HH:mm:ss` style pattern into `strftime` form."""
    def replace(match: re.Match) -> str:
        token = match.group(0)
        if token.startswith('S'):
            return '%f'
        return JAVA_DATE_FORMATS.get(token, token)

    return JAVA_DATE_TOKENS.sub(replace, pattern)


def _format_date(moment: datetime, pattern: str) -> str:
    if not pattern:
        return str(int(moment.timestamp() * 1000))
    return moment.strftime(date_format(pattern))


def _now() -> datetime:
    return datetime.now()  # noqa: DTZ005


def _first_dow(pattern: str) -> str:
    today = _now()
    return _format_date(today - timedelta(days=(today.weekday() + 1) % 7), pattern)


def _last_dow(pattern: str) -> str:
    today = _now()
    return _format_date(today + timedelta(days=6 - (today.weekday() + 1) % 7), pattern)


def _last_dom(pattern: str) -> str:
    today = _now()
    following = today.replace(day=28) + timedelta(days=4)
    return _format_date(following - timedelta(days=following.day), pattern)


sysdate = Function(
    name='sysdate',
    description='Current date and time in `yyyy-MM-dd HH:mm:ss` style patterns.',
    operations={
        'now': lambda pattern='': _format_date(_now(), pattern),
        'today': lambda pattern='': _format_date(_now(), pattern),
        'yesterday': lambda pattern='': _format_date(_now() - timedelta(days=1), pattern),
        'tomorrow': lambda pattern='': _format_date(_now() + timedelta(days=1), pattern),
        'firstDOM': lambda pattern='': _format_date(_now().replace(day=1), pattern),
        'lastDOM': _last_dom,
        'firstDOW': _first_dow,
        'lastDOW': _last_dow,
    },
)


text = Function(
    name='text',
    description='Text manipulation.',
    operations={
        'length': len,
        'trim': str.strip,
        'substring': lambda text, start, end=None: text[_int(start):_int(end) if end else None],
        'replace': lambda text, search, replace: text.replace(search, replace),
        'concat': lambda *parts: ''.join(parts),
        'repeat': lambda text, times: text * _int(times),
    },
)
