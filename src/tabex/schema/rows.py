"""Script row model.

A row is the YAML rendition of one line of a test script::

    - description: wait for the job
      target: base
      command: repeatUntil
      params: [2, 5000]
      flowControls: SkipIf(${job} is empty)

Parameters are kept as text templates: numbers and booleans written as
YAML scalars are turned into their textual form, `null` stays `None`.
"""

from typing import Annotated, Any

from pydantic import BeforeValidator, ConfigDict, Field

from tabex.execution.steps import StepManifest
from tabex.flow import FlowControls
from tabex.models import SchemaModel
from tabex.values import stringify


def _as_template(value: Any) -> str | None:  # noqa: ANN401
    """Turn a YAML scalar into template text."""
    if value is None or isinstance(value, str):
        return value

    return stringify(value)


#: Template text written as any YAML scalar.
Template = Annotated[str | None, BeforeValidator(_as_template)]


class StepRow(SchemaModel):
    """One script row as written in YAML."""

    model_config = ConfigDict(
        populate_by_name=True,
    )

    description: str = Field(
        default='',
        title='Description',
    )

    target: str = Field(
        min_length=1,
        title='Command target',
    )

    command: str = Field(
        min_length=1,
        title='Command',
    )

    params: list[Template] = Field(
        default_factory=list,
        title='Parameters',
    )

    flow_controls: str | None = Field(
        default=None,
        alias='flowControls',
        title='Flow controls',
        description='Directives such as `SkipIf(${env} = prod) PauseAfter()`.',
    )

    capture_screen: bool = Field(
        default=False,
        alias='captureScreen',
        title='Capture screen',
    )

    def to_manifest(self, row: int = 0, source: str | None = None) -> StepManifest:
        """Build the executable step of this row.

        Args:
            row: Zero-based row index.
            source: Macro the row belongs to, if any.

        Returns:
            Step manifest.

        Raises:
            ConfigurationError: If the flow controls are malformed.
        """
        return StepManifest(
            description=self.description,
            target=self.target.strip(),
            command=self.command.strip(),
            params=tuple(self.params),
            flow_controls=FlowControls.parse(self.flow_controls),
            capture_screen=self.capture_screen,
            row=row,
            source=source,
        )
