"""Macro expansion.

A `base.macro(file, sheet, name)` row is replaced in place by a
`base.section(count)` row followed by the rows of the macro. The section
count is the number of direct members of the macro: rows owned by a
nested section or by a nested repeat-until block are not counted, since
they belong to their owner.

Inlining grows every repeat-until block still open at the macro row by
the number of inlined rows; repeat-until counts rows grossly. Enclosing
sections keep their count because the rewritten row is still one direct
member of theirs.
"""

import logging
from pathlib import Path
from typing import TYPE_CHECKING, Protocol

from pydantic import ValidationError
from yaml import SafeLoader, load
from yaml.error import MarkedYAMLError

from tabex.errors import ConfigurationError, ErrorContext, ScriptError
from tabex.execution.steps import BASE_TARGET, SECTION_COMMAND
from tabex.schema import MacroLibraryDocument

if TYPE_CHECKING:
    from collections.abc import Sequence

    from tabex.execution.steps import StepManifest
    from tabex.resolution.tokens import TokenResolver

logger = logging.getLogger(__name__)

MACRO_PREFIX = '► '

#: Identity of a macro: file, sheet and macro name.
type MacroKey = tuple[str, str, str]


class MacroLibrary(Protocol):
    """Source of macro rows."""

    def load(self, file: str, sheet: str, name: str) -> 'Sequence[StepManifest]':
        """Load the rows of a macro.

        Raises:
            ScriptError: If the macro can not be found.
        """


class YamlMacroLibrary:
    """Macro library backed by YAML documents under a base directory."""

    def __init__(self, base_dir: str | Path = '.') -> None:
        """Initialize the library.

        Args:
            base_dir: Directory relative macro file names are resolved against.
        """
        self.base_dir = Path(base_dir)
        self._documents: dict[Path, MacroLibraryDocument] = {}

    def _document(self, file: str) -> MacroLibraryDocument:
        """Read and validate a macro file once."""
        path = self.base_dir / file
        if path in self._documents:
            return self._documents[path]

        if not path.is_file():
            raise ScriptError(f'Macro file {str(path)!r} not found', context=ErrorContext(filename=str(path)))

        with path.open(encoding='utf-8') as stream:
            try:
                content = load(stream, Loader=SafeLoader)
            except MarkedYAMLError as base:
                raise ScriptError.from_yaml_error(base) from base

        try:
            document = MacroLibraryDocument.model_validate(content)
        except ValidationError as base:
            raise ScriptError.from_pydantic_error(base, data=content, filename=str(path)) from base

        self._documents[path] = document
        return document

    def load(self, file: str, sheet: str, name: str) -> 'list[StepManifest]':
        """Load the rows of a macro.

        Raises:
            ScriptError: If the file, the sheet or the macro is missing
                or malformed.
        """
        document = self._document(file)

        macros = document.sheets.get(sheet)
        if macros is None:
            raise ScriptError(f'Sheet {sheet!r} not found in macro file {file!r}')

        rows = macros.get(name)
        if rows is None:
            raise ScriptError(f'Macro {name!r} not found in {file!r} sheet {sheet!r}')

        source = f'{file}:{sheet}:{name}'
        try:
            return [row.to_manifest(position, source) for position, row in enumerate(rows)]
        except ConfigurationError as base:
            raise ScriptError(f'Invalid macro {source}: {base.message}') from base


def repeat_size(step: 'StepManifest', resolver: 'TokenResolver | None' = None) -> int:
    """Resolve the number of rows a repeat-until row declares.

    Raises:
        ConfigurationError: If the row has no count or the count is not
            a number.
    """
    if not step.params:
        raise ConfigurationError(
            f'wrong parameters specified for {step.name} at {step.position}: {list(step.params)}',
        )

    value = step.params[0]
    if resolver is not None:
        value = resolver.resolve(value)

    try:
        return max(int(str(value).strip()), 0)
    except ValueError:
        raise ConfigurationError(
            f'Invalid step count {step.params[0]!r} for {step.name} at {step.position}',
        ) from None


def block_span(rows: 'Sequence[StepManifest]', position: int,
               resolver: 'TokenResolver | None' = None) -> int:
    """Count the raw rows owned by the row at a position.

    A section owns its direct members plus whatever those members own;
    a repeat-until owns the number of rows it declares.
    """
    step = rows[position]
    if step.is_repeat_until:
        return repeat_size(step, resolver)

    if not step.is_section:
        return 0

    remaining = step.section_size
    cursor = position + 1
    while remaining > 0 and cursor < len(rows):
        cursor += 1 + block_span(rows, cursor, resolver)
        remaining -= 1

    return min(cursor, len(rows)) - position - 1


def direct_count(rows: 'Sequence[StepManifest]', resolver: 'TokenResolver | None' = None) -> int:
    """Count the rows not owned by another row."""
    count = 0
    cursor = 0
    while cursor < len(rows):
        cursor += 1 + block_span(rows, cursor, resolver)
        count += 1

    return count


class MacroExpander:
    """Expander of macro rows into sections."""

    def __init__(self, resolver: 'TokenResolver', library: MacroLibrary) -> None:
        """Initialize the expander.

        Args:
            resolver: Resolver of the macro row parameters.
            library: Source of macro rows.
        """
        self.resolver = resolver
        self.library = library

    def expand(self, rows: 'Sequence[StepManifest]') -> list['StepManifest']:
        """Expand every macro row, recursively.

        Args:
            rows: Rows of an activity.

        Returns:
            Rows without macro invocations, renumbered from zero.

        Raises:
            ConfigurationError: If a macro row has malformed parameters.
            ScriptError: If a macro is missing or includes itself.
        """
        expanded = self._expand(rows, ())
        return [
            step.model_copy(update={'row': position})
            for position, step in enumerate(expanded)
        ]

    def _key(self, step: 'StepManifest') -> MacroKey:
        """Resolve the identity of the macro a row invokes."""
        params = self.resolver.resolve_all(step.params)
        if len(params) != 3 or not all(params):  # noqa: PLR2004
            raise ConfigurationError(
                f'{step.name} at {step.position} requires file, sheet and macro name, '
                f'got {list(step.params)}',
            )

        file, sheet, name = (str(param).strip() for param in params)
        return file, sheet, name

    def _expand(self, rows: 'Sequence[StepManifest]', stack: tuple[MacroKey, ...]) -> list['StepManifest']:
        """Expand the macros of a row list; `stack` holds the macros being expanded."""
        output: list[StepManifest] = []
        # Open repeat-until blocks: output index of the owner, raw rows left.
        open_repeats: list[list[int]] = []

        for step in rows:
            for block in open_repeats:
                block[1] -= 1

            if not step.is_macro:
                output.append(step)
                if step.is_repeat_until and (size := repeat_size(step, self.resolver)):
                    open_repeats.append([len(output) - 1, size])
                open_repeats = [block for block in open_repeats if block[1] > 0]
                continue

            key = self._key(step)
            if key in stack:
                chain = ' -> '.join(':'.join(item) for item in (*stack, key))
                raise ScriptError(f'Macro cycle detected: {chain}')

            logger.debug('expanding macro %s at %s', ':'.join(key), step.position)
            inlined = [
                member.model_copy(update={
                    'description': (
                        member.description
                        if member.description.startswith(MACRO_PREFIX) else
                        f'{MACRO_PREFIX}{member.description}'
                    ),
                })
                for member in self._expand(self.library.load(*key), (*stack, key))
            ]

            output.append(step.model_copy(update={
                'command': SECTION_COMMAND,
                'target': BASE_TARGET,
                'params': (str(direct_count(inlined, self.resolver)),),
            }))
            output.extend(inlined)

            for block in open_repeats:
                owner = output[block[0]]
                grown = repeat_size(owner, self.resolver) + len(inlined)
                output[block[0]] = owner.model_copy(update={
                    'params': (str(grown), *owner.params[1:]),
                })

            open_repeats = [block for block in open_repeats if block[1] > 0]

        return output
