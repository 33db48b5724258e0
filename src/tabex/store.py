"""Variable store of an execution.

The store is an ordered mapping of names to values, created when an
execution starts and discarded when it ends. Reads consult, in order:

1. values written or removed by steps during the execution;
2. override sources (for example values forced on the command line or
   taken from the environment), first match wins;
3. seeded data (script and iteration data);
4. engine settings exposed as `tabex.*` system variables.

Once a step writes a name, the write persists until the name is
removed, whatever the override sources hold. Scenarios that share data
within one execution receive a *copy* of the previous store through
`fork()`, never a live alias.
"""

import logging
from collections.abc import Mapping
from copy import deepcopy
from typing import TYPE_CHECKING, Any, overload

from tabex.errors import ConfigurationError, TypeMismatchError
from tabex.settings import EngineSettings
from tabex.values import MAPPINGS, SEQUENCES, stringify, to_number

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from tabex.values import RuntimeValue

logger = logging.getLogger(__name__)

TRUE_WORDS = frozenset(('true', 'yes', 'y', 'on', 't', '1'))
FALSE_WORDS = frozenset(('false', 'no', 'n', 'off', 'f', '0'))

_MISSING: Any = object()


class VariableStore:
    """Layered name-to-value mapping consulted by the resolver and commands.

    Attributes:
        settings: Engine settings backing the `tabex.*` system variables.
        overrides: Ordered override sources shadowing seeded data.
    """

    def __init__(self, data: 'Mapping[str, RuntimeValue] | None' = None, *,
                 settings: EngineSettings | None = None,
                 overrides: 'Sequence[Mapping[str, RuntimeValue]]' = (),
                 read_only: 'Iterable[str]' = ()) -> None:
        """Initialize a store.

        Args:
            data: Seeded values, shadowed by override sources.
            settings: Engine settings. Defaults are resolved from the
                environment when omitted.
            overrides: Override sources, highest priority first.
            read_only: Names that can not be removed.
        """
        self.settings = settings if settings is not None else EngineSettings()
        self.overrides = tuple(overrides)

        self._data: dict[str, RuntimeValue] = {}
        self._written: set[str] = set()
        self._read_only: set[str] = set(read_only)
        self._system = EngineSettings.variables()

        self.seed(data or {})

    @property
    def null_value(self) -> str:
        """Sentinel token standing for `null`."""
        return self.get_str(EngineSettings.variable_name('null_value'))

    @property
    def text_delim(self) -> str:
        """Delimiter used to join and split list values."""
        return self.get_str(EngineSettings.variable_name('text_delim')) or ','

    def _lookup(self, name: str) -> tuple[bool, 'RuntimeValue']:
        """Find a value through all layers."""
        if name not in self._written:
            for source in self.overrides:
                if name in source:
                    return True, source[name]

        if name in self._data:
            return True, self._data[name]

        if field := self._system.get(name):
            return True, getattr(self.settings, field)

        return False, None

    def lookup(self, name: str) -> tuple[bool, 'RuntimeValue']:
        """Read a value and tell whether the name is defined at all.

        Returns:
            A tuple of a definition flag and the value; the value is
            `None` both for missing names and names stored as `None`.
        """
        return self._lookup(name.strip())

    def has(self, name: str) -> bool:
        """Check whether a name is defined in any layer."""
        found, _ = self._lookup(name.strip())
        return found

    def is_read_only(self, name: str) -> bool:
        """Check whether a name is protected against removal."""
        return name.strip() in self._read_only

    def mark_read_only(self, name: str) -> None:
        """Protect a name against removal."""
        self._read_only.add(name.strip())

    def get(self, name: str, default: 'RuntimeValue' = None) -> 'RuntimeValue':
        """Read a raw value.

        Args:
            name: Variable name.
            default: Value returned when the name is not defined.

        Returns:
            The stored object as-is.
        """
        found, value = self._lookup(name.strip())
        return value if found else default

    def _clears(self, value: 'RuntimeValue') -> bool:
        """Check whether writing a value removes the name instead."""
        if isinstance(value, str) and value == self._null_sentinel():
            return True

        return isinstance(value, SEQUENCES + MAPPINGS) and not value

    def set(self, name: str, value: 'RuntimeValue') -> None:
        """Write a value into the execution layer.

        The write takes priority over override sources from now on.
        Writing the null sentinel, an empty list or an empty mapping
        removes the name instead. Blank names are ignored.

        Args:
            name: Variable name; surrounding whitespace is dropped.
            value: Value to store.

        Raises:
            ConfigurationError: If the write removes a read-only name.
        """
        name = name.strip()
        if not name:
            logger.debug('ignoring write to a blank variable name')
            return

        if self._clears(value):
            self.remove(name)
            return

        self._data[name] = value
        self._written.add(name)

    def seed(self, values: 'Mapping[str, RuntimeValue]') -> None:
        """Load script or iteration data.

        Unlike `set`, seeded values stay shadowed by override sources,
        so values forced on the command line win over script data.
        """
        for name, value in values.items():
            name = name.strip()
            if not name:
                continue

            if self._clears(value):
                self._data.pop(name, None)
            else:
                self._data[name] = value

    def _null_sentinel(self) -> str:
        """Current null sentinel, read without recursion into `set`."""
        found, value = self._lookup(EngineSettings.variable_name('null_value'))
        return stringify(value) if found else self.settings.null_value

    def update(self, values: 'Mapping[str, RuntimeValue]') -> None:
        """Write several values at once."""
        for name, value in values.items():
            self.set(name, value)

    def remove(self, name: str) -> 'RuntimeValue':
        """Remove a name from the execution layer.

        The removal also hides the name in override sources.

        Args:
            name: Variable name.

        Returns:
            The removed value, or `None` if the name was not written.

        Raises:
            ConfigurationError: If the name is read-only.
        """
        name = name.strip()
        if name in self._read_only:
            raise ConfigurationError(f'Variable {name!r} is read-only and can not be removed')

        self._written.add(name)
        return self._data.pop(name, None)

    def names(self) -> list[str]:
        """List names written during the execution, in write order."""
        return list(self._data)

    def scan(self, prefix: str) -> dict[str, 'RuntimeValue']:
        """Collect all values whose names start with a prefix.

        Override sources and system variables are included, with the
        same priorities as single reads.

        Args:
            prefix: Name prefix.

        Returns:
            Mapping of matching names to values.
        """
        names: dict[str, None] = {}
        for name in self._system:
            names[name] = None
        for name in self._data:
            names[name] = None
        for source in reversed(self.overrides):
            for name in source:
                names[name] = None

        found = {}
        for name in names:
            if name.startswith(prefix):
                defined, value = self._lookup(name)
                if defined:
                    found[name] = value

        return found

    def snapshot(self) -> dict[str, 'RuntimeValue']:
        """Export a deep copy of the execution layer."""
        return deepcopy(self._data)

    def restore(self, snapshot: 'Mapping[str, RuntimeValue]') -> None:
        """Import values exported by `snapshot` from another store."""
        self.update(deepcopy(dict(snapshot)))

    def fork(self) -> 'VariableStore':
        """Create a new store seeded from a snapshot of this one.

        Names written by steps keep their priority over override sources
        in the forked store.
        """
        store = VariableStore(
            self.snapshot(),
            settings=self.settings,
            overrides=self.overrides,
            read_only=self._read_only,
        )
        store._written.update(self._written)

        return store

    def get_str(self, name: str, default: str | None = None) -> str | None:
        """Read a value rendered as text.

        Args:
            name: Variable name.
            default: Value returned when the name is not defined.

        Returns:
            Text representation, or the default.
        """
        found, value = self._lookup(name.strip())
        if not found or value is None:
            return default

        if isinstance(value, SEQUENCES + MAPPINGS):
            found, delim = self._lookup(EngineSettings.variable_name('text_delim'))
            return stringify(value, stringify(delim) if found else ',')

        return stringify(value)

    @overload
    def get_int(self, name: str) -> int:
        ...  # pragma: no cover

    @overload
    def get_int(self, name: str, default: int) -> int:
        ...  # pragma: no cover

    def get_int(self, name: str, default: int = _MISSING) -> int:
        """Read a value as an integer.

        Args:
            name: Variable name.
            default: Value returned for missing or unparsable data.

        Returns:
            The integer value.

        Raises:
            TypeMismatchError: If no default is given and the value is
                missing or not an integer.
        """
        value = self.get(name)
        number = to_number(value)
        if number is not None and float(number).is_integer():
            return int(number)

        if default is not _MISSING:
            return default

        raise TypeMismatchError(name, value, 'int')

    @overload
    def get_float(self, name: str) -> float:
        ...  # pragma: no cover

    @overload
    def get_float(self, name: str, default: float) -> float:
        ...  # pragma: no cover

    def get_float(self, name: str, default: float = _MISSING) -> float:
        """Read a value as a float.

        Raises:
            TypeMismatchError: If no default is given and the value is
                missing or not numeric.
        """
        value = self.get(name)
        number = to_number(value)
        if number is not None:
            return number

        if default is not _MISSING:
            return default

        raise TypeMismatchError(name, value, 'double')

    @overload
    def get_bool(self, name: str) -> bool:
        ...  # pragma: no cover

    @overload
    def get_bool(self, name: str, default: bool) -> bool:  # noqa: FBT001
        ...  # pragma: no cover

    def get_bool(self, name: str, default: bool = _MISSING) -> bool:  # noqa: FBT001
        """Read a value as a boolean.

        Recognized words are `true/false`, `yes/no`, `on/off`, `y/n`,
        `t/f` and `1/0`, case-insensitively.

        Raises:
            TypeMismatchError: If no default is given and the value is
                missing or not a recognized boolean word.
        """
        value = self.get(name)
        if isinstance(value, bool):
            return value

        word = stringify(value).strip().lower() if value is not None else ''
        if word in TRUE_WORDS:
            return True
        if word in FALSE_WORDS:
            return False

        if default is not _MISSING:
            return default

        raise TypeMismatchError(name, value, 'boolean')

    def get_list(self, name: str, default: list | None = None) -> list:
        """Read a value as a list.

        Text values are split on the text delimiter.

        Args:
            name: Variable name.
            default: Value returned when the name is not defined.

        Returns:
            List of values.
        """
        value = self.get(name)
        if value is None:
            return default if default is not None else []

        if isinstance(value, SEQUENCES):
            return list(value)

        if isinstance(value, MAPPINGS):
            return list(value.values())

        return stringify(value).split(self.text_delim)

    def get_map(self, name: str, default: dict | None = None) -> dict:
        """Read a value as a mapping.

        Raises:
            TypeMismatchError: If no default is given and the value is
                not a mapping.
        """
        value = self.get(name)
        if isinstance(value, MAPPINGS):
            return dict(value)

        if default is not None:
            return default

        raise TypeMismatchError(name, value, 'map')
