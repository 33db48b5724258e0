"""Script and macro library documents.

A script is a single YAML document with the `script` marker. It holds
initial data, optional iteration data and the scenarios to run. A macro
library is a YAML document with the `macros` marker mapping sheets to
named macros.
"""

from typing import Literal

from pydantic import Field

from tabex.models import DescribedMixin, SchemaModel
from tabex.values import RuntimeValue  # noqa: TC001

from .rows import StepRow  # noqa: TC001


class Activity(DescribedMixin, SchemaModel):
    """Named group of rows within a scenario."""

    name: str = Field(
        min_length=1,
        title='Activity name',
    )

    steps: list[StepRow] = Field(
        default_factory=list,
        title='Steps',
    )


class ScenarioSheet(DescribedMixin, SchemaModel):
    """Scenario: ordered activities sharing one store."""

    name: str = Field(
        min_length=1,
        title='Scenario name',
    )

    activities: list[Activity] = Field(
        default_factory=list,
        min_length=1,
        title='Activities',
    )


class Script(DescribedMixin, SchemaModel):
    """Executable script document."""

    #: Internal specification marker. Always `script` for scripts.
    spec: Literal['script'] = 'script'

    name: str = Field(
        min_length=1,
        title='Script name',
    )

    data: dict[str, RuntimeValue] = Field(
        default_factory=dict,
        title='Initial data',
        description='Variables written into the store before the first scenario.',
    )

    iterations: list[dict[str, RuntimeValue]] = Field(
        default_factory=lambda: [{}],
        min_length=1,
        title='Iterations',
        description='Variables of each iteration; the scenarios run once per entry.',
    )

    scenarios: list[ScenarioSheet] = Field(
        min_length=1,
        title='Scenarios',
    )


class MacroLibraryDocument(DescribedMixin, SchemaModel):
    """Macro library document: sheet name to macro name to rows."""

    #: Internal specification marker. Always `macros` for macro libraries.
    spec: Literal['macros'] = 'macros'

    sheets: dict[str, dict[str, list[StepRow]]] = Field(
        default_factory=dict,
        title='Sheets',
    )
