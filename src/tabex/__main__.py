"""Command-line interface of the tabex engine.

`tabex run` executes a YAML script and prints its execution summary.
The `resolve` and `filter` commands expose the token resolver and the
filter engine for debugging template text against ad-hoc variables.
"""

import logging
import sys
from json import dumps
from pathlib import Path
from typing import TYPE_CHECKING

from click import Choice, Context, Parameter, echo, group, option, pass_context
from click import Path as PathParam
from click import BadParameter, ClickException, argument
from yaml import safe_dump

from tabex.core import ScriptParser
from tabex.errors import TabexError
from tabex.execution.summary import ExecutionSummary, Level
from tabex.filtering.filters import FilterList
from tabex.resolution.crypt import CryptCodec
from tabex.schema import Script
from tabex.settings import EngineSettings

if TYPE_CHECKING:
    from collections.abc import Sequence

LOG_FORMAT = '%(asctime)s %(levelname)-8s %(name)s: %(message)s'
LOG_LEVELS = ('DEBUG', 'INFO', 'WARNING', 'ERROR')

ScriptFilepath = PathParam(
    exists=True,
    dir_okay=False,
    readable=True,
    path_type=Path,
)

OutputFilepath = PathParam(
    dir_okay=False,
    writable=True,
    path_type=Path,
)


def _parse_variables(context: Context, parameter: Parameter,  # noqa: ARG001
                     values: 'Sequence[str]') -> dict[str, str]:
    """Parse repeated `name=value` options."""
    variables = {}
    for item in values:
        name, separator, value = item.partition('=')
        if not separator or not name.strip():
            raise BadParameter(f'{item!r} is not a name=value pair')
        variables[name.strip()] = value

    return variables


def _settings(**options: object) -> EngineSettings:
    """Build settings from the environment and the given options."""
    return EngineSettings(**{
        name: value
        for name, value in options.items()
        if value is not None
    })


variables_option = option(
    '-v', '--var', 'variables',
    multiple=True,
    callback=_parse_variables,
    help='Variable as name=value; overrides script data. May be repeated.',
)


@group(help='Tabular test-script execution engine.')
@option(
    '--log-level',
    type=Choice(LOG_LEVELS, case_sensitive=False),
    default='WARNING',
    show_default=True,
    help='Logging level of the engine.',
)
@option('--strict', is_flag=True, help='Fail on plugin loading issues.')
@pass_context
def cli(context: Context, log_level: str, strict: bool) -> None:  # noqa: FBT001
    """Root CLI group."""
    logging.basicConfig(level=log_level.upper(), format=LOG_FORMAT, stream=sys.stderr)
    context.obj = ScriptParser(strict=strict)


@cli.command(name='run', help='Run a YAML script and print its execution summary.')
@argument('script', type=ScriptFilepath)
@variables_option
@option('--fail-fast/--no-fail-fast', default=None, help='Stop on the first failed step.')
@option('--fail-after', type=int, default=None, help='Abort after this many failed steps.')
@option('--interactive', is_flag=True, default=None, help='Enable pause directives.')
@option('-o', '--output', type=OutputFilepath, default=None, help='Write the summary to a YAML file.')
@pass_context
def run_script(context: Context, script: Path, variables: dict[str, str],
               fail_fast: bool | None, fail_after: int | None,  # noqa: FBT001
               interactive: bool | None, output: Path | None) -> None:  # noqa: FBT001
    """Run a script."""
    parser: ScriptParser = context.obj

    try:
        document = parser.parse_file(script)
        engine = parser.create_context(
            document,
            settings=_settings(fail_fast=fail_fast, fail_after=fail_after, interactive=interactive),
            overrides=(variables,),
        )

        execution = ExecutionSummary(name=document.name, level=Level.EXECUTION)
        execution.start()
        execution.add_child(parser.execute(document, engine, base_dir=script.parent))
        execution.end()

    except TabexError as error:
        raise ClickException(str(error)) from error

    report = safe_dump(execution.to_dict(), allow_unicode=True, sort_keys=False)
    if output is not None:
        output.write_text(report, encoding='utf-8')
    else:
        echo(report)

    echo(
        f'{execution.executed}/{execution.total} executed, '
        f'{execution.passed} passed, {execution.failed} failed',
        err=True,
    )

    if execution.is_failed:
        context.exit(1)


@cli.command(name='resolve', help='Resolve template text against variables.')
@argument('text')
@variables_option
@pass_context
def resolve_text(context: Context, text: str, variables: dict[str, str]) -> None:
    """Resolve template text."""
    parser: ScriptParser = context.obj
    engine = parser.create_context(overrides=(variables,))

    try:
        resolved = engine.resolver.resolve(text)
    except TabexError as error:
        raise ClickException(str(error)) from error

    echo(resolved if resolved is not None else engine.store.null_value)


@cli.command(name='filter', help='Evaluate filter conditions against variables.')
@argument('text')
@variables_option
@pass_context
def evaluate_filter(context: Context, text: str, variables: dict[str, str]) -> None:
    """Evaluate filters; exit with 1 when they do not match."""
    parser: ScriptParser = context.obj
    engine = parser.create_context(overrides=(variables,))

    try:
        matched = FilterList.parse(text).matches(engine.resolver, engine.files)
    except TabexError as error:
        raise ClickException(str(error)) from error

    echo('true' if matched else 'false')
    if not matched:
        context.exit(1)


@cli.command(name='encrypt', help='Encrypt a secret into a crypt: value.')
@argument('text')
@option('--key', envvar='TABEX_CRYPT_KEY', required=True, help='Fernet key.')
def encrypt_text(text: str, key: str) -> None:
    """Encrypt a secret."""
    try:
        echo(CryptCodec(key).encrypt(text))
    except TabexError as error:
        raise ClickException(str(error)) from error


@cli.command(name='genkey', help='Generate a new crypt key.')
def generate_key() -> None:
    """Print a fresh Fernet key."""
    echo(CryptCodec.generate_key())


@cli.command(name='schema', help='Print the JSON Schema of script documents.')
def print_schema() -> None:
    """Generate and print the JSON Schema."""
    echo(dumps(Script.model_json_schema(by_alias=True), ensure_ascii=False, indent=2))


if __name__ == '__main__':
    cli()
