"""Nested value navigation for complex tokens.

Navigation walks `.prop`, `.[prop]` and `[index]` hops after a token,
one hop at a time, over a closed set of value shapes:

- scalars end the walk;
- lists accept index hops, and project property hops over items;
- maps accept property hops, missing keys yield an empty string;
- structs (pydantic models, dataclasses, namespaces) accept property
  hops on their declared fields.

Anything else is rejected with a `ResolutionError`; callers fall back to
rendering the last value reached.
"""

from dataclasses import dataclass, fields, is_dataclass
from enum import StrEnum
from re import compile as regexp
from types import SimpleNamespace
from typing import TYPE_CHECKING

from pydantic import BaseModel

from tabex.errors import ResolutionError
from tabex.values import MAPPINGS, SEQUENCES, is_scalar

if TYPE_CHECKING:
    from tabex.values import RuntimeValue

PROPERTY_PATTERN = regexp(r'^\.([A-Za-z0-9_\-]+)')
BRACKET_PROPERTY_PATTERN = regexp(r'^\.\[([^\]]+)\]')
INDEX_PATTERN = regexp(r'^\[([^\]]+)\]')


class Shape(StrEnum):
    """Navigable value shapes."""

    SCALAR = 'scalar'
    LIST = 'list'
    MAP = 'map'
    STRUCT = 'struct'


@dataclass(frozen=True)
class Hop:
    """One navigation step parsed from text."""

    key: str
    length: int
    bracketed: bool

    @property
    def index(self) -> int | None:
        """Numeric index of the hop, if the key is made of digits."""
        return int(self.key) if self.key.isdigit() else None


def shape_of(value: 'RuntimeValue') -> Shape:
    """Classify a value.

    Raises:
        ResolutionError: If the value has no navigable shape.
    """
    if is_scalar(value):
        return Shape.SCALAR

    if isinstance(value, SEQUENCES):
        return Shape.LIST

    if isinstance(value, MAPPINGS):
        return Shape.MAP

    if isinstance(value, (BaseModel, SimpleNamespace)):
        return Shape.STRUCT

    if is_dataclass(value) and not isinstance(value, type):
        return Shape.STRUCT

    raise ResolutionError(f'Unable to navigate value of type {type(value).__name__!r}')


def struct_fields(value: 'RuntimeValue') -> dict[str, 'RuntimeValue']:
    """Expose the named fields of a struct value."""
    if isinstance(value, BaseModel):
        return {
            name: getattr(value, name)
            for name in type(value).model_fields
        }

    if isinstance(value, SimpleNamespace):
        return dict(vars(value))

    return {
        field.name: getattr(value, field.name)
        for field in fields(value)
    }


def parse_hop(text: str) -> Hop | None:
    """Parse the hop at the start of a text, if any."""
    if match := BRACKET_PROPERTY_PATTERN.match(text):
        return Hop(match.group(1), match.end(), bracketed=True)

    if match := PROPERTY_PATTERN.match(text):
        return Hop(match.group(1), match.end(), bracketed=False)

    if match := INDEX_PATTERN.match(text):
        return Hop(match.group(1), match.end(), bracketed=True)

    return None


def project(items: 'RuntimeValue', key: str) -> list['RuntimeValue']:
    """Read one property from every item of a list.

    Items without the property contribute `None`.
    """
    values = []
    for item in items:
        try:
            shape = shape_of(item)
        except ResolutionError:
            values.append(None)
            continue

        if shape is Shape.MAP:
            values.append(item.get(key))
        elif shape is Shape.STRUCT:
            values.append(struct_fields(item).get(key))
        else:
            values.append(None)

    return values


def step(value: 'RuntimeValue', hop: Hop) -> 'RuntimeValue':
    """Apply one hop to a value.

    Args:
        value: Current value.
        hop: Hop to apply.

    Returns:
        The value reached by the hop.

    Raises:
        ResolutionError: If the hop does not apply to the value.
    """
    shape = shape_of(value)

    if shape is Shape.LIST:
        items = list(value)
        if hop.index is None:
            return project(items, hop.key)
        return items[hop.index] if hop.index < len(items) else ''

    if shape is Shape.MAP:
        if hop.bracketed and hop.index is not None and hop.key not in value:
            raise ResolutionError(f'Index {hop.key} does not apply to a map')
        item = value.get(hop.key)
        return '' if item is None else item

    if shape is Shape.STRUCT:
        values = struct_fields(value)
        if hop.key not in values:
            raise ResolutionError(f'Unknown property {hop.key!r} of {type(value).__name__!r}')
        item = values[hop.key]
        return '' if item is None else item

    raise ResolutionError(f'Property {hop.key!r} does not apply to a scalar')


def navigate(value: 'RuntimeValue', text: str) -> tuple['RuntimeValue', int]:
    """Follow as many hops from a text as the value allows.

    A map reached through `[index]` is not indexed; navigation stops
    there. Any failing hop stops navigation as well.

    Args:
        value: Starting value.
        text: Text immediately following the token.

    Returns:
        A tuple of the last value reached and the number of characters
        of `text` consumed.
    """
    consumed = 0

    while not is_scalar(value):
        hop = parse_hop(text[consumed:])
        if hop is None:
            break

        if hop.bracketed and not text[consumed:].startswith('.') and not isinstance(value, SEQUENCES):
            break

        try:
            value = step(value, hop)
        except ResolutionError:
            break

        consumed += hop.length

    return value, consumed
