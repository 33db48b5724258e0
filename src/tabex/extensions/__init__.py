"""Declarative plugin definition.

This module defines the top-level declarative container used to describe
extensions provided by a tabex plugin.

A plugin aggregates:
- commands, invoked by script rows as `target.command` where the target
  is the plugin name;
- functions, invoked from template text as `$(function|operation|...)`.

The plugin model itself is purely declarative. It contains no execution
logic and is consumed by the plugin loader during initialization to
register all provided extensions in a structured and validated form.
"""

from pydantic import Field

from tabex.models import SchemaModel
from tabex.names import Name  # noqa: TC001
from tabex.resolution.functions import Function

from .commands import Command

__all__ = (
    'Command',
    'Function',
    'Plugin',
)


class Plugin(SchemaModel):
    """Declarative container for plugin extensions.

    The plugin name is the command target of its commands: a plugin named
    `web` contributes `web.click`, `web.open` and so on. Functions are
    registered under their own names.
    """

    name: Name = Field(
        title='Plugin namespace',
        description=(
            'Logical namespace of the plugin. '
            'Used as the command target and for diagnostics and conflict detection.'
        ),
    )

    version: int = Field(
        default=1,
        title='Plugin contract version',
        description=(
            'Version of the plugin contract. '
            'This is not a semantic version of the plugin implementation.'
        ),
    )

    commands: list[Command] = Field(
        default_factory=list,
        title='Commands',
        description='Declarative command definitions provided by the plugin.',
    )

    functions: list[Function] = Field(
        default_factory=list,
        title='Functions',
        description='Declarative function definitions usable in `$(...)` tokens.',
    )
