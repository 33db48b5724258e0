"""Core value definitions for the execution engine.

This module defines the value types stored in the variable store and
consumed by the token resolver, filters and commands. It also provides
small helpers shared by those components for numeric coercion and for
rendering values back into template text.
"""

from dataclasses import asdict, is_dataclass
from datetime import date, datetime, timedelta
from decimal import Decimal, InvalidOperation
from typing import Any

from pydantic import BaseModel, SecretStr

#: Any Python object received from commands, plugins or YAML loaders.
#: Opaque objects are kept as-is and navigated through their attributes.
type RuntimeValue = Any

MAPPINGS = (dict,)
SCALARS = (date, datetime, timedelta, str, bytes, int, float, bool, Decimal, SecretStr)
SEQUENCES = (list, tuple, set)

NUMBER_STRIP_CHARS = ' \t\r\n"\''


def is_scalar(value: RuntimeValue) -> bool:
    """Check whether a value is substituted directly into text."""
    return value is None or isinstance(value, SCALARS)


def to_number(value: RuntimeValue) -> float | None:
    """Coerce a value into a float when it looks numeric.

    Surrounding whitespace and quotes are ignored, as is a single
    leading `$` sign, so that `"$ 1,200"` style currency is *not*
    accepted but `$12.5` is.

    Args:
        value: Candidate value.

    Returns:
        The numeric value, or `None` if the value is not a number.
    """
    if isinstance(value, bool) or value is None:
        return None

    if isinstance(value, (int, float, Decimal)):
        return float(value)

    text = str(value).strip(NUMBER_STRIP_CHARS)
    text = text.removeprefix('$').strip()
    if not text:
        return None

    try:
        return float(Decimal(text))
    except (InvalidOperation, ValueError):
        return None


def format_number(value: float) -> str:
    """Render a number without a trailing `.0` for whole values."""
    if float(value).is_integer() and abs(value) < 1e16:  # noqa: PLR2004
        return str(int(value))

    return str(value)


def stringify(value: RuntimeValue, delim: str = ',') -> str:
    """Render a value as template text.

    Booleans are rendered lower-case, secrets are revealed, collections
    are flattened with the given delimiter and mappings are rendered as
    `key=value` lines.

    Args:
        value: Value to render.
        delim: Delimiter used to join sequence items.

    Returns:
        Textual representation of the value.
    """
    if value is None:
        return ''

    if isinstance(value, bool):
        return 'true' if value else 'false'

    if isinstance(value, SecretStr):
        return value.get_secret_value()

    if isinstance(value, bytes):
        return value.decode('utf-8', errors='replace')

    if isinstance(value, MAPPINGS):
        return '\n'.join(
            f'{key}={stringify(item, delim)}'
            for key, item in value.items()
        )

    if isinstance(value, SEQUENCES):
        return delim.join(
            stringify(item, delim)
            for item in value
        )

    if isinstance(value, BaseModel):
        return stringify(value.model_dump(), delim)

    if is_dataclass(value) and not isinstance(value, type):
        return stringify(asdict(value), delim)

    return str(value)


def unquote(text: str | None) -> str | None:
    """Trim a text and strip one pair of surrounding double quotes."""
    if text is None:
        return None

    text = text.strip()
    if len(text) >= 2 and text.startswith('"') and text.endswith('"'):  # noqa: PLR2004
        return text[1:-1]

    return text
