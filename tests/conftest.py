"""Tests configurations and fixtures."""

from importlib.metadata import EntryPoint, EntryPoints
from typing import TYPE_CHECKING, Any

import pytest

from tabex.core import ScriptParser
from tabex.execution.steps import StepManifest
from tabex.flow import FlowControls
from tabex.settings import EngineSettings

if TYPE_CHECKING:
    from collections.abc import Callable

    from pytest_mock import MockerFixture, MockType

    from tabex.context import ExecutionContext
    from tabex.flow import PauseGate


def make_step(command: str, *params: Any, target: str = 'base',  # noqa: ANN401
              flow: str | None = None, row: int = 0) -> StepManifest:
    """Build a step manifest with textual parameters."""
    return StepManifest(
        target=target,
        command=command,
        params=tuple(None if param is None else str(param) for param in params),
        flow_controls=FlowControls.parse(flow),
        row=row,
    )


@pytest.fixture
def patch_entrypoints(mocker: 'MockerFixture') -> 'Callable[..., MockType]':
    """Provide a factory for mocking `importlib.metadata.entry_points`.

    Returns a callable that patches `entry_points()` to simulate
    discovery of plugins in the `tabex_plugins` entry point group.

    The returned factory allows configuring:
    - successfully loadable plugins,
    - or an exception raised during plugin loading,
    - or an empty entry point list.
    """
    def patch(*plugins: Any, raises: Exception | None = None) -> 'MockType':  # noqa: ANN401
        """Patch `entry_points` with a controlled plugin configuration.

        Args:
            plugins: Objects to be returned by `EntryPoint.load()`.
                If empty, no entry points are registered.
            raises: Exception to raise when `EntryPoint.load()` is called.
                Used to simulate plugin load failures.

        Returns:
            A mock patch object produced by `mocker.patch` that replaces
            `importlib.metadata.entry_points` for the duration of the test.
        """
        entrypoints = []
        for plugin in plugins:
            ep = mocker.Mock(spec=EntryPoint)
            ep.group = 'tabex_plugins'
            ep.name = 'tests'
            ep.value = 'tests.plugins:test'
            ep.load.return_value = plugin
            if raises is not None:
                ep.load.side_effect = raises
            entrypoints.append(ep)

        return mocker.patch(
            'importlib.metadata.entry_points',
            return_value=EntryPoints(entrypoints),
        )

    return patch


@pytest.fixture
def parser(patch_entrypoints: 'Callable[..., MockType]') -> ScriptParser:
    """Provide a script parser with built-in extensions only."""
    patch_entrypoints()
    return ScriptParser()


@pytest.fixture
def make_context(parser: ScriptParser) -> 'Callable[..., ExecutionContext]':
    """Provide a factory of execution contexts bound to the built-ins.

    The factory accepts initial variables, an optional pause gate and
    engine settings as keyword arguments.
    """
    def make(data: dict[str, Any] | None = None, *,
             pause_gate: 'PauseGate | None' = None,
             **settings: Any) -> 'ExecutionContext':  # noqa: ANN401
        context = parser.create_context(
            settings=EngineSettings(**settings),
            pause_gate=pause_gate,
        )
        context.store.update(data or {})
        return context

    return make
