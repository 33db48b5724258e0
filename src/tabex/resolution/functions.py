"""Function table used by the `$(name|op|args...)` token pass.

Functions are declarative groups of named operations. The table resolves
an `(name, operation)` pair by static lookup and invokes the operation
with positional string parameters; any failure during invocation is
wrapped into a single descriptive `ResolutionError`.
"""

from collections.abc import Callable
from inspect import Parameter, signature
from typing import TYPE_CHECKING, Any

from pydantic import Field

from tabex.errors import ConfigurationError, ResolutionError
from tabex.models import DescribedMixin, SchemaModel
from tabex.names import Name  # noqa: TC001
from tabex.values import stringify

if TYPE_CHECKING:
    from collections.abc import Iterator, Sequence

#: A function operation receives positional string parameters and returns
#: any value; the value is rendered back into text by the resolver.
type Operation = Callable[..., Any]


class Function(DescribedMixin, SchemaModel):
    """Declarative built-in function.

    A function groups related operations under one name, for example
    `$(format|upper|text)` invokes the `upper` operation of the `format`
    function with a single parameter.
    """

    name: Name = Field(
        title='Function name',
        description='Name referenced by the first segment of a `$(...)` token.',
    )

    operations: dict[Name, Operation] = Field(
        min_length=1,
        title='Operations',
        description=(
            'Mapping of operation names to callables. '
            'Each callable receives the token parameters as strings, '
            'and the list delimiter as its keyword-only `delim` parameter when it declares one.'
        ),
    )


class FunctionTable:
    """Registry of functions keyed by name."""

    def __init__(self, functions: 'Sequence[Function]' = ()) -> None:
        """Initialize the table.

        Args:
            functions: Functions registered initially.
        """
        self._functions: dict[str, Function] = {}
        for function in functions:
            self.register(function)

    def __contains__(self, name: object) -> bool:
        """Check whether a function name is registered."""
        return name in self._functions

    def __iter__(self) -> 'Iterator[str]':
        """Iterate over registered function names."""
        return iter(self._functions)

    def register(self, function: Function) -> None:
        """Register or replace a function."""
        self._functions[function.name] = function

    def lookup(self, name: str, operation: str) -> Operation:
        """Find a function operation.

        Args:
            name: Function name.
            operation: Operation name.

        Returns:
            The operation callable.

        Raises:
            ConfigurationError: If the function is not registered.
            ResolutionError: If the function has no such operation.
        """
        function = self._functions.get(name)
        if function is None:
            raise ConfigurationError(f'{name} does not resolve to a function')

        runner = function.operations.get(operation)
        if runner is None:
            raise ResolutionError(
                f'Invalid built-in function $({name}|{operation}) - '
                f'invalid operation {operation!r}',
            )

        return runner

    def invoke(self, name: str, operation: str, params: 'Sequence[str]',
               delim: str = ',') -> str:
        """Invoke a function operation and render its result.

        Operations declaring a keyword-only `delim` parameter receive the
        active list delimiter through it.

        Args:
            name: Function name.
            operation: Operation name.
            params: Positional string parameters.
            delim: Delimiter used to split list parameters and to render
                list results.

        Returns:
            The rendered result; `None` results render as an empty string.

        Raises:
            ConfigurationError: If the function is not registered.
            ResolutionError: If the operation is unknown or fails.
        """
        runner = self.lookup(name, operation)
        options = {'delim': delim} if accepts_delim(runner) else {}

        try:
            result = runner(*params, **options)

        except Exception as base:
            raise ResolutionError(
                f'Invalid built-in function $({name}|{operation}) '
                f'with {len(params)} parameter(s) - error on {operation!r}: {base}',
            ) from base

        return stringify(result, delim)


def accepts_delim(runner: Operation) -> bool:
    """Check whether an operation declares a keyword-only `delim` parameter."""
    try:
        parameter = signature(runner).parameters.get('delim')
    except (TypeError, ValueError):
        return False

    return parameter is not None and parameter.kind is Parameter.KEYWORD_ONLY
