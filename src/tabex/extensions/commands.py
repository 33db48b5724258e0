"""Declarative command definitions.

A command is registered under the namespace of its plugin and invoked
by script rows as `target.command`. The definition only describes the
command: the callable and its parameter names. Invocation is handled by
the command registry of the execution context.
"""

from typing import TYPE_CHECKING

from pydantic import Field

from tabex.errors import ConfigurationError
from tabex.execution.commands import CommandRunner  # noqa: TC001
from tabex.models import DescribedMixin, SchemaModel
from tabex.names import Name  # noqa: TC001

if TYPE_CHECKING:
    from collections.abc import Sequence


class Command(DescribedMixin, SchemaModel):
    """Declarative command definition."""

    name: Name = Field(
        title='Command name',
        description='Name of the command within its target namespace.',
    )

    runner: CommandRunner = Field(
        title='Command function',
        description=(
            'Callable implementing the command.\n'
            'Receives the execution context followed by the resolved parameters '
            'and returns a step result, or `None` for a pass.'
        ),
    )

    params: tuple[str, ...] = Field(
        default=(),
        title='Parameter names',
        description='Names of the positional parameters, used for validation and help.',
    )

    optional: int = Field(
        default=0,
        ge=0,
        title='Optional parameters',
        description='Number of trailing parameters that may be omitted.',
    )

    def check_arguments(self, name: str, args: 'Sequence[str | None]') -> None:
        """Validate the number of arguments.

        Raises:
            ConfigurationError: If the number of arguments does not fit
                the declared parameters.
        """
        required = len(self.params) - self.optional
        if required <= len(args) <= len(self.params):
            return

        expected = ', '.join(self.params) or 'no parameters'
        raise ConfigurationError(
            f'Mismatched parameters for {name}: '
            f'expected {expected} but received {len(args)} value(s)',
        )
