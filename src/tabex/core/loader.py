"""Extensions discovery and extension loading infrastructure.

This module defines a mixin responsible for discovering, loading, and
registering plugins exposed via Python entry points.

Plugins are loaded defensively: individual failures do not interrupt
the loading process unless strict mode is enabled. Each plugin may
contribute commands and functions.
"""

from typing import TYPE_CHECKING
from warnings import warn

from pydantic import ValidationError

from tabex.errors import PluginError, PluginWarning
from tabex.execution.commands import CommandRegistry
from tabex.extensions import Plugin
from tabex.resolution.functions import FunctionTable

if TYPE_CHECKING:
    from importlib.metadata import EntryPoint

    from tabex.extensions import Command, Function

PLUGINS_GROUP = 'tabex_plugins'


class ExtensionsLoaderMixin:
    """Mixin defining plugin extension loading behavior.

    This mixin encapsulates logic for discovering and loading plugins
    via entry points and registering their declared commands and
    functions.

    Attributes:
        strict_mode: If True, any plugin loading issue raises an error.
            If False, issues are emitted as warnings and loading continues.
    """

    strict_mode: bool = False

    commands: CommandRegistry
    functions: FunctionTable

    def add_command(self, target: str, command: 'Command',
                    entrypoint: 'EntryPoint | None' = None) -> None:
        """Register a command under a target namespace.

        Args:
            target: Command target, the plugin name.
            command: Declarative command definition.
            entrypoint: Entry point from which the command was loaded,
                if applicable. Used for diagnostics and warnings.

        Raises:
            PluginError: If the command shadows another one on strict mode.
        """
        module = entrypoint.value if entrypoint else 'builtins'

        shadowing = self.commands.has(target, command.name)
        if shadowing and (error := self.emit_plugin_issue(
            f'Command {target}.{command.name!s} from {module!r} is shadowing an existing',
            entrypoint,
        )):
            raise error

        self.commands.register(target, command, replace=shadowing)

    def add_function(self, function: 'Function',
                     entrypoint: 'EntryPoint | None' = None) -> None:
        """Register a function.

        Args:
            function: Declarative function definition.
            entrypoint: Entry point from which the function was loaded,
                if applicable. Used for diagnostics and warnings.

        Raises:
            PluginError: If the function shadows another one on strict mode.
        """
        module = entrypoint.value if entrypoint else 'builtins'

        if function.name in self.functions and (error := self.emit_plugin_issue(
            f'Function {function.name!r} from {module!r} is shadowing an existing',
            entrypoint,
        )):
            raise error

        self.functions.register(function)

    def emit_plugin_issue(self, message: str,
                          entrypoint: 'EntryPoint | None' = None) -> Exception | None:
        """Emit a plugin warning or return the exception.

        Args:
            message: Warning message to emit.
            entrypoint: Entry point the issue relates to, if applicable.

        Returns:
            PluginError on strict mode, otherwise `None`
                with producing a PluginWarning.
        """
        if self.strict_mode:
            return PluginError(message, entrypoint=entrypoint)

        warn(message, category=PluginWarning, stacklevel=2)

        return None

    def _load_plugin(self, entrypoint: 'EntryPoint') -> None:
        """Load and register a single plugin entry point.

        Args:
            entrypoint: Entry point describing the plugin to load.

        Raises:
            PluginError: If any loading issues occur on strict mode.
        """
        try:
            plugin = entrypoint.load()

        except ValidationError as base:
            if error := self.emit_plugin_issue(
                f'Failed to validate entrypoint {entrypoint.name!r}',
                entrypoint,
            ):
                raise error from base
            return None

        except Exception as base:
            if error := self.emit_plugin_issue(
                f'Failed to load entrypoint {entrypoint.name!r}',
                entrypoint,
            ):
                raise error from base
            return None

        if not isinstance(plugin, Plugin):
            if error := self.emit_plugin_issue(
                f'Loaded from entrypoint {entrypoint.name!r} object is not a plugin',
                entrypoint,
            ):
                raise error
            return None

        for command in plugin.commands:
            self.add_command(plugin.name, command, entrypoint)

        for function in plugin.functions:
            self.add_function(function, entrypoint)

        return None

    def clear_plugins(self) -> None:
        """Clear all registered commands and functions."""
        self.commands = CommandRegistry()
        self.functions = FunctionTable()

    def load_plugins(self) -> None:
        """Load plugins via entry points and register their extensions.

        Discovers plugins from the `tabex_plugins` entry point group.

        Raises:
            PluginError: If any loading issues occur on strict mode.
        """
        from importlib.metadata import entry_points  # noqa: PLC0415

        for entrypoint in entry_points().select(group=PLUGINS_GROUP):
            self._load_plugin(entrypoint)
