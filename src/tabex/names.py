"""Identifier patterns used by scripts, tokens and plugins.

This module defines the name rules shared by the script schema, the
token resolver and the plugin registry: variable names referenced by
`${...}` tokens, and function names referenced by `$(...)` tokens.
"""

from re import ASCII, DOTALL
from re import compile as regexp
from typing import Annotated

from pydantic import Field

#: Base pattern for plugin-level identifiers (targets, commands, functions).
_NAME_PATTERN = r'[a-zA-Z][\w]*'

#: Variable names are looser: dots and dashes are allowed so that
#: namespaced system variables (`tabex.lastOutcome`) can be referenced.
_VARIABLE_PATTERN = r'[^${}\[\]\s][^${}\[\]]*?'

#: Compiled pattern matching one `${name}` token, with optional index
#: or property suffixes captured separately by the resolver.
TOKEN_PATTERN = regexp(rf'\$\{{({_VARIABLE_PATTERN})\}}')

#: Compiled pattern for the body of a `$(name|op|args...)` function token.
FUNCTION_PATTERN = regexp(r'^(\w+)\|(\w+)(\|.*)?$', flags=ASCII | DOTALL)

#: Namespace for variables maintained by the engine itself.
SYSTEM_NAMESPACE = 'tabex.'


Name = Annotated[
    str, Field(
        pattern=rf'^{_NAME_PATTERN}$',
        title='Identifier',
        description=(
            'Name of a plugin, target, command or function. '
            'Identifiers must start with a letter and may contain '
            'letters, digits, or underscores.'
        ),
        examples=[
            'base',
            'assertEqual',
        ],
    ),
]

def system_variable(name: str) -> str:
    """Build a name inside the engine namespace."""
    return f'{SYSTEM_NAMESPACE}{name}'
