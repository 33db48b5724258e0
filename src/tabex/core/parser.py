"""Script parser and runtime integration.

This module defines a high-level parser responsible for integrating all
extensions into script preparation. The parser coordinates:
- built-in `base` commands and functions,
- plugin-provided commands and functions,
- YAML parsing and validation of script documents,
- macro expansion and scenario building.

As a result, a YAML script becomes a list of scenario arenas ready to
be run by the script runner against an execution context.
"""

import logging
from pathlib import Path
from typing import TYPE_CHECKING

from pydantic import ValidationError
from yaml import SafeLoader, load
from yaml.error import MarkedYAMLError

from tabex.builtins import commands, functions
from tabex.context import ExecutionContext
from tabex.errors import ConfigurationError, ErrorContext, ScriptError, TabexError
from tabex.execution.runner import ScriptRunner
from tabex.schema import Script
from tabex.script import MacroExpander, ScenarioBuilder, YamlMacroLibrary
from tabex.store import VariableStore

from .loader import ExtensionsLoaderMixin

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence
    from io import TextIOBase

    from tabex.execution.repeater import Clock
    from tabex.execution.steps import Scenario
    from tabex.execution.summary import ExecutionSummary
    from tabex.filtering.files import FileChecker
    from tabex.flow import PauseGate
    from tabex.script import MacroLibrary
    from tabex.settings import EngineSettings
    from tabex.values import RuntimeValue

logger = logging.getLogger(__name__)

BASE_TARGET = 'base'


class ScriptParser(ExtensionsLoaderMixin):
    """Script parser with plugin and extension support.

    This class is responsible for:
    - registering built-in and plugin-provided commands and functions;
    - parsing and validating YAML scripts;
    - expanding macros and building scenario arenas;
    - creating execution contexts bound to the registered extensions.
    """

    def __init__(self, strict: bool = False,
                 macro_library: 'MacroLibrary | None' = None) -> None:
        """Initialize the script parser.

        Args:
            strict: Whether to raise errors on plugin loading failures
                instead of emitting warnings.
            macro_library: Source of macro rows. By default macros are
                read from YAML files next to the parsed script.
        """
        self.strict_mode = strict
        self.macro_library = macro_library

        self.clear_plugins()

        for command in commands.commands:
            self.add_command(BASE_TARGET, command)

        self.add_function(functions.array)
        self.add_function(functions.count)
        self.add_function(functions.format)
        self.add_function(functions.number)
        self.add_function(functions.random)
        self.add_function(functions.sysdate)
        self.add_function(functions.text)

        self.load_plugins()

    def parse(self, content: 'TextIOBase | str', filename: str | None = None) -> Script:
        """Parse and validate a YAML script.

        Args:
            content: YAML content as a string or file-like object.
            filename: Name of the source file, for diagnostics.

        Returns:
            Validated script document.

        Raises:
            ScriptError: If YAML parsing or validation fails.
        """
        try:
            document = load(content, Loader=SafeLoader)

        except MarkedYAMLError as base:
            raise ScriptError.from_yaml_error(base) from base

        except Exception as base:
            raise ScriptError('Unexpected error', context=ErrorContext(filename=filename)) from base

        try:
            return Script.model_validate(document)

        except ValidationError as base:
            raise ScriptError.from_pydantic_error(base, data=document, filename=filename) from base

    def parse_file(self, path: str | Path) -> Script:
        """Parse a YAML script file.

        Raises:
            ScriptError: If the file can not be read, parsed or validated.
        """
        path = Path(path)
        try:
            with path.open(encoding='utf-8') as stream:
                return self.parse(stream, filename=str(path))

        except OSError as base:
            raise ScriptError(f'Unable to read script {str(path)!r}: {base.strerror}') from base

    def create_context(self, script: Script | None = None, *,
                       settings: 'EngineSettings | None' = None,
                       overrides: 'Sequence[Mapping[str, RuntimeValue]]' = (),
                       files: 'FileChecker | None' = None,
                       pause_gate: 'PauseGate | None' = None) -> ExecutionContext:
        """Create an execution context bound to the registered extensions.

        Args:
            script: Script whose initial data seeds the store.
            settings: Engine settings.
            overrides: Override sources, highest priority first.
            files: File checker of the file comparators.
            pause_gate: Gate of the pause directives.

        Returns:
            Fresh execution context.
        """
        store = VariableStore(
            script.data if script is not None else None,
            settings=settings,
            overrides=overrides,
        )

        return ExecutionContext(
            store,
            functions=self.functions,
            commands=self.commands,
            files=files,
            pause_gate=pause_gate,
        )

    def prepare(self, script: Script, context: ExecutionContext,
                base_dir: str | Path = '.') -> list['Scenario']:
        """Expand macros and build the scenarios of a script.

        Args:
            script: Validated script document.
            context: Context whose resolver handles macro and
                repeat-until parameters.
            base_dir: Directory macro files are resolved against when
                no macro library was given.

        Returns:
            Scenario arenas in script order.

        Raises:
            ScriptError: If a row, a macro or a block is malformed.
        """
        library = self.macro_library or YamlMacroLibrary(base_dir)
        expander = MacroExpander(context.resolver, library)
        builder = ScenarioBuilder(context.resolver)

        scenarios = []
        for sheet in script.scenarios:
            activities = []
            activity_name = None

            try:
                for activity in sheet.activities:
                    activity_name = activity.name
                    activities.append((
                        activity.name,
                        expander.expand([
                            row.to_manifest(position)
                            for position, row in enumerate(activity.steps)
                        ]),
                    ))

                activity_name = None
                scenarios.append(builder.build(sheet.name, activities, sheet.description))

            except ConfigurationError as base:
                raise ScriptError(
                    f'Invalid scenario {sheet.name!r}: {base.message}',
                    context=ErrorContext(scenario=sheet.name, activity=activity_name),
                ) from base

        return scenarios

    def execute(self, script: Script, context: ExecutionContext, *,
                base_dir: str | Path = '.',
                clock: 'Clock | None' = None) -> 'ExecutionSummary':
        """Prepare and run a script.

        Args:
            script: Validated script document.
            context: Execution context.
            base_dir: Directory macro files are resolved against.
            clock: Millisecond clock of the repeat-until deadlines.

        Returns:
            Script summary.

        Raises:
            ScriptError: If the script can not be prepared.
        """
        try:
            scenarios = self.prepare(script, context, base_dir)
        except TabexError:
            raise
        except Exception as base:
            raise ScriptError(f'Unable to prepare script {script.name!r}') from base

        return ScriptRunner(context, clock=clock).run(script.name, scenarios, script.iterations)
