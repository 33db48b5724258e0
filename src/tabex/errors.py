"""Core exception hierarchy.

This module defines the error and warning types used across the engine
to report plugin loading issues, malformed scripts and control text,
value resolution failures, and step execution errors in a structured
way.

Skips, ends, loop breaks and fail-immediate aborts are *not* errors:
they travel as step results and flags on the execution context.
"""

from os import linesep
from typing import TYPE_CHECKING, Any, TypedDict

from yaml import dump
from yaml.error import MarkedYAMLError

from tabex.values import MAPPINGS, SCALARS, SEQUENCES

if TYPE_CHECKING:
    from importlib.metadata import EntryPoint
    from typing import Self

    from pydantic_core import ValidationError

SNIPPET_MARKER = f' ...{linesep}'
SNIPPET_INDENT = 2

FORMAT_REPLACER = '<runtime object>'
FORMAT_FILENAME = '<unicode string>'
FORMAT_INDENT = 4


class ErrorContext(TypedDict, total=False):
    """Where an error happened and what it was about.

    Every key is optional; the formatter renders what is present.
    """

    filename: str | None
    line_num: int | None
    column_num: int | None

    scenario: str | None
    activity: str | None

    #: Exception reported by a parser or validator.
    error: Exception | None
    #: Script fragment rendered as a YAML snippet.
    element: Any


class ErrorFormatter:
    """Render engine errors with their location and a script snippet."""

    @classmethod
    def format(cls, message: str, context: ErrorContext | None = None) -> str:
        """Format an error message using contextual information.

        Args:
            message: Base human-readable error message.
            context: Optional error context with location and data.

        Returns:
            The message followed by the location lines and a snippet.
        """
        if not context:
            return message

        lines = [message, *cls.location_lines(context)]
        if snippet := cls.snippet_lines(context):
            lines.extend(' ' * FORMAT_INDENT * 2 + line for line in snippet)

        return linesep.join(lines)

    @staticmethod
    def location_lines(context: ErrorContext) -> list[str]:
        """Describe the source position and the scenario/activity pair."""
        padding = ' ' * FORMAT_INDENT

        position = f'in "{context.get("filename") or FORMAT_FILENAME}"'
        if (line_num := context.get('line_num')) is not None:
            position += f', line {line_num + 1}'
            if (column_num := context.get('column_num')) is not None:
                position += f', column {column_num + 1}'

        lines = [padding + position]

        owners = [
            f'{kind} {name!r}'
            for kind, name in (
                ('scenario', context.get('scenario')),
                ('activity', context.get('activity')),
            )
            if name
        ]
        if owners:
            lines.append(f'{padding}on {", ".join(owners)}')

        return lines

    @classmethod
    def snippet_lines(cls, context: ErrorContext) -> list[str]:
        """Return the YAML source excerpt or the dumped failing element."""
        error = context.get('error')
        if isinstance(error, MarkedYAMLError) and error.problem_mark:
            excerpt = error.problem_mark.get_snippet(indent=0) or ''
            return [line for line in excerpt.splitlines() if line.strip()]

        if element := context.get('element'):
            dumped = dump(
                cls.sanitize(element),
                indent=SNIPPET_INDENT,
                sort_keys=False,
                allow_unicode=True,
            )
            return [SNIPPET_MARKER.rstrip(), *(line for line in dumped.splitlines() if line.strip())]

        return []

    @classmethod
    def sanitize(cls, value: Any) -> Any:  # noqa: ANN401
        """Replace objects YAML cannot represent safely with a placeholder."""
        if value is None or isinstance(value, SCALARS):
            return value

        if isinstance(value, MAPPINGS):
            return {key: cls.sanitize(item) for key, item in value.items()}

        if isinstance(value, SEQUENCES):
            return [cls.sanitize(item) for item in value]

        return FORMAT_REPLACER


class PluginWarning(UserWarning):
    """Warning emitted for non-fatal plugin-related issues.

    Used when a plugin cannot be loaded or shadows an existing command
    or function, but strict mode is disabled.
    """


class TabexError(Exception, ErrorFormatter):
    """Base exception for all engine errors.

    All custom exceptions raised by the library inherit from this class
    to allow unified error handling by callers.
    """

    def __init__(self, message: str, *,
                 context: ErrorContext | None = None) -> None:
        """Initialize an error.

        Args:
            message: Human-readable error description.
            context: Error context containing optional runtime values.
        """
        self.message = message
        self.context = context

        super().__init__(message)

    def __str__(self) -> str:
        """String representation."""
        return self.format(self.message, self.context)


class PluginError(TabexError):
    """Error raised for fatal plugin-related failures.

    Raised when a plugin entry point is invalid, misconfigured, or fails
    to load in strict mode.
    """

    def __init__(self, message: str, *,
                 entrypoint: 'EntryPoint | None' = None) -> None:
        """Initialize a plugin error.

        Args:
            message: Human-readable error description.
            entrypoint: Optional plugin entry point associated with the error.
        """
        self.entrypoint = entrypoint

        super().__init__(message)


class ConfigurationError(TabexError):
    """Error raised for malformed control text or engine configuration.

    Covers invalid filter and flow-control text, comparator/control
    shape mismatches, unknown functions, removal of read-only names and
    invalid block parameters. It is raised at parse or construction time
    and is fatal only for the construct that is actually exercised.
    """


class ResolutionError(TabexError):
    """Error raised when template text or a value cannot be resolved."""


class TypeMismatchError(ResolutionError):
    """Error raised by typed store getters on unparsable values."""

    def __init__(self, name: str, value: Any, type_name: str) -> None:  # noqa: ANN401
        """Initialize a type mismatch error.

        Args:
            name: Variable name being read.
            value: Stored value that failed to convert.
            type_name: Name of the requested type.
        """
        self.name = name
        self.value = value

        super().__init__(f'Unable to parse data {name!r} as {type_name} ({value})')


class ScriptError(TabexError):
    """Error raised when a script or macro library is invalid.

    This exception is used for YAML syntax errors, schema violations and
    structural problems such as broken repeat-until blocks or recursive
    macros.
    """

    @classmethod
    def from_yaml_error(cls, error: MarkedYAMLError) -> 'Self':
        """Create a script error from a YAML parsing failure.

        Args:
            error: Exception raised by the YAML parser.

        Returns:
            ScriptError representing the YAML parsing failure.
        """
        mark = error.problem_mark
        error_context = ErrorContext(
            filename=mark.name if mark else None,
            line_num=mark.line if mark else None,
            column_num=mark.column if mark else None,
            error=error,
        )

        message = 'Invalid YAML'
        if error.problem:
            message += f'{linesep}{" " * FORMAT_INDENT}{error.problem}'

        return cls(message, context=error_context)

    @classmethod
    def from_pydantic_error(cls, error: 'ValidationError', *,
                            data: Any = None,  # noqa: ANN401
                            filename: str | None = None) -> 'Self':
        """Create a script error from a Pydantic validation failure.

        Only the first reported problem is kept. When the document is a
        mapping, the top-level entry it points at becomes the snippet.

        Args:
            error: ValidationError raised by Pydantic.
            data: Validated document data.
            filename: Name of the source file.

        Returns:
            ScriptError representing the validation failure.
        """
        error_context = ErrorContext(filename=filename, error=error)

        details = error.errors(include_url=False, include_input=False)
        if not details:
            return cls('Validation error', context=error_context)

        first = details[0]
        location = '.'.join(str(part) for part in first['loc'])
        message = (first.get('msg') or 'Validation error').strip()
        if location:
            message = f'{message} at {location!r}'

        if isinstance(data, dict) and first['loc'] and first['loc'][0] in data:
            key = first['loc'][0]
            error_context['element'] = {key: data[key]}

        return cls(message, context=error_context)
