"""Engine runtime settings.

Settings are the lowest-priority override source of the variable store:
a value written explicitly into the store always wins, otherwise the
store falls back to the matching settings field. Settings themselves are
resolved from `TABEX_*` environment variables and from keyword overrides
(for example those given on the command line).
"""

from pydantic import Field, SecretStr
from pydantic_settings import SettingsConfigDict

from tabex.models import SettingsModel
from tabex.names import system_variable

DEFAULT_TEXT_DELIM = ','
DEFAULT_NULL_VALUE = '(null)'


class EngineSettings(SettingsModel):
    """Execution settings of the engine.

    Each field is reachable from scripts as a system variable. The
    `tabex.` prefix plus the camel-cased field name (for example
    `tabex.failFast`) reads or overrides the field for one execution.
    """

    model_config = SettingsConfigDict(
        env_prefix='TABEX_',
        frozen=True,
        extra='ignore',
    )

    fail_fast: bool = Field(
        default=True,
        title='Fail fast',
        description='Stop the current activity and scenario on the first failed step.',
    )

    fail_after: int = Field(
        default=-1,
        title='Fail after',
        description=(
            'Number of failed steps after which the execution is aborted '
            'immediately. A negative value disables the threshold.'
        ),
    )

    fail_fast_commands: list[str] = Field(
        default_factory=list,
        title='Fail-fast commands',
        description='Commands (`target.command`) whose failure always stops the activity.',
    )

    interactive: bool = Field(
        default=False,
        title='Interactive mode',
        description='Interactive mode disables fail-fast and enables pause gates.',
    )

    text_delim: str = Field(
        default=DEFAULT_TEXT_DELIM,
        min_length=1,
        title='Text delimiter',
        description='Delimiter used to join and split list values in template text.',
    )

    null_value: str = Field(
        default=DEFAULT_NULL_VALUE,
        min_length=1,
        title='Null sentinel',
        description='Token that stands for `null`. Writing it into the store removes a name.',
    )

    unresolved_as_is: bool = Field(
        default=False,
        title='Keep unresolved tokens',
        description='Keep `${name}` tokens referencing missing names instead of blanking them.',
    )

    delay_between_steps_ms: int = Field(
        default=0,
        ge=0,
        title='Delay between steps',
        description='Wait (milliseconds) before each step invocation. Values under 100 are ignored.',
    )

    crypt_key: SecretStr | None = Field(
        default=None,
        title='Crypt key',
        description='Fernet key used to decrypt `crypt:` values.',
    )

    @classmethod
    def variable_name(cls, field_name: str) -> str:
        """Map a settings field to its system variable name.

        Args:
            field_name: Name of a settings field, for example `fail_fast`.

        Returns:
            System variable name, for example `tabex.failFast`.
        """
        head, *tail = field_name.split('_')
        return system_variable(head + ''.join(part.title() for part in tail))

    @classmethod
    def variables(cls) -> dict[str, str]:
        """Map every system variable name to its settings field."""
        return {
            cls.variable_name(name): name
            for name in cls.model_fields
        }
