"""Command invocation interface and registry.

Commands are plain callables registered under `target.command` names.
They receive the execution context followed by the resolved parameters
and return a `StepResult`. A command returning `None` is treated as a
pass; a command raising an exception is reported as a failure by the
step runner.
"""

import logging
from collections.abc import Callable
from typing import TYPE_CHECKING, Protocol

from tabex.errors import ConfigurationError
from tabex.execution.results import StepResult

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from tabex.context import ExecutionContext
    from tabex.extensions.commands import Command

logger = logging.getLogger(__name__)

#: Callable implementing a command.
type CommandRunner = Callable[..., StepResult | None]


class CommandInvoker(Protocol):
    """Anything able to invoke a `target.command` with resolved arguments."""

    def invoke(self, target: str, command: str,
               args: 'Sequence[str | None]',
               context: 'ExecutionContext') -> StepResult:
        """Invoke a command."""


class CommandRegistry:
    """Registry of declarative commands keyed by `target.command`."""

    def __init__(self) -> None:
        """Initialize an empty registry."""
        self._commands: dict[str, Command] = {}

    def register(self, target: str, command: 'Command', *, replace: bool = False) -> None:
        """Register a command under a target namespace.

        Args:
            target: Command target.
            command: Declarative command definition.
            replace: Whether an existing command of the same name is replaced.

        Raises:
            ConfigurationError: If the name is already taken and
                replacing is not allowed.
        """
        name = f'{target}.{command.name}'
        if name in self._commands and not replace:
            raise ConfigurationError(f'Command {name!r} is already registered')

        self._commands[name] = command
        logger.debug('registered command %s', name)

    def register_all(self, target: str, commands: 'Iterable[Command]') -> None:
        """Register several commands under one target namespace."""
        for command in commands:
            self.register(target, command)

    def has(self, target: str, command: str) -> bool:
        """Check whether a command is registered."""
        return f'{target}.{command}' in self._commands

    def targets(self) -> set[str]:
        """Registered target namespaces."""
        return {name.split('.', 1)[0] for name in self._commands}

    def invoke(self, target: str, command: str,
               args: 'Sequence[str | None]',
               context: 'ExecutionContext') -> StepResult:
        """Invoke a registered command.

        Args:
            target: Command target namespace.
            command: Command name.
            args: Resolved parameters.
            context: Execution context passed to the command.

        Returns:
            Result of the command; a pass if it returned nothing.

        Raises:
            ConfigurationError: If the command is unknown or receives a
                wrong number of parameters.
        """
        if target not in self.targets():
            raise ConfigurationError(f'Unknown/unsupported command target {target}')

        name = f'{target}.{command}'
        definition = self._commands.get(name)
        if definition is None:
            raise ConfigurationError(f'Unknown/unsupported command {name}')

        definition.check_arguments(name, args)

        result = definition.runner(context, *args)
        if result is None:
            return StepResult.success()

        return result
