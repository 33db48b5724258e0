"""Execution context shared by the runners and the commands.

The context bundles the collaborators of one scenario execution (variable
store, token resolver, command registry, file checker and flow control
evaluator) together with the short-circuit flags raised by flow control
and fail-fast rules.
"""

import logging
from typing import TYPE_CHECKING

from tabex.execution.commands import CommandRegistry
from tabex.filtering.files import PathFileChecker
from tabex.flow import FlowControlEvaluator
from tabex.resolution.tokens import TokenResolver
from tabex.settings import EngineSettings

if TYPE_CHECKING:
    from tabex.execution.commands import CommandInvoker
    from tabex.execution.results import StepResult
    from tabex.execution.steps import StepManifest
    from tabex.filtering.files import FileChecker
    from tabex.flow import PauseGate
    from tabex.resolution.functions import FunctionTable
    from tabex.store import VariableStore

logger = logging.getLogger(__name__)

LAST_OUTCOME = 'tabex.lastOutcome'
LAST_ELAPSED_TIME = 'tabex.lastElapsedTime'


class ExecutionContext:
    """State of one scenario execution.

    Attributes:
        store: Variable store.
        resolver: Token resolver over the store.
        commands: Command registry.
        files: File-system checker used by file comparators.
        flow: Flow control evaluator.
        fail_immediate: Abort the whole execution after the current step.
        end_immediate: End the whole execution successfully.
        break_current_iteration: End the current activity or repeat
            iteration.
        failures: Number of failed steps seen by this context.
    """

    def __init__(self, store: 'VariableStore', *,
                 functions: 'FunctionTable | None' = None,
                 commands: 'CommandInvoker | None' = None,
                 files: 'FileChecker | None' = None,
                 pause_gate: 'PauseGate | None' = None) -> None:
        """Initialize the context.

        Args:
            store: Variable store of the execution.
            functions: Function table of the resolver.
            commands: Command registry; empty when omitted.
            files: File checker; the local file system when omitted.
            pause_gate: Gate used by pause directives.
        """
        self.store = store
        self.functions = functions
        self.resolver = TokenResolver(store, functions=functions)
        self.commands = commands if commands is not None else CommandRegistry()
        self.files = files if files is not None else PathFileChecker()
        self.pause_gate = pause_gate
        self.flow = FlowControlEvaluator(self, pause_gate)

        self.fail_immediate = False
        self.end_immediate = False
        self.break_current_iteration = False
        self.failures = 0

    def fork(self) -> 'ExecutionContext':
        """Create a context for the next scenario.

        The store is copied, never shared. Flags ending or aborting the
        whole execution are carried over.
        """
        context = ExecutionContext(
            self.store.fork(),
            functions=self.functions,
            commands=self.commands,
            files=self.files,
            pause_gate=self.pause_gate,
        )
        context.fail_immediate = self.fail_immediate
        context.end_immediate = self.end_immediate
        context.failures = self.failures

        return context

    @property
    def interactive(self) -> bool:
        """Check whether the execution runs in interactive mode."""
        return self.store.get_bool(EngineSettings.variable_name('interactive'), False)

    @property
    def fail_fast(self) -> bool:
        """Check whether a failed step stops the execution.

        Fail-fast never applies in interactive mode.
        """
        if self.interactive:
            return False

        return self.store.get_bool(EngineSettings.variable_name('fail_fast'), True)

    @property
    def fail_after(self) -> int:
        """Failure threshold; negative when disabled."""
        return self.store.get_int(EngineSettings.variable_name('fail_after'), -1)

    @property
    def delay_between_steps_ms(self) -> int:
        """Wait before each step invocation."""
        return self.store.get_int(EngineSettings.variable_name('delay_between_steps_ms'), 0)

    def is_fail_fast_command(self, step: 'StepManifest') -> bool:
        """Check whether a failure of this command always stops the activity."""
        commands = self.store.get_list(EngineSettings.variable_name('fail_fast_commands'), [])
        return step.name in {str(command).strip() for command in commands}

    def should_stop(self, step: 'StepManifest') -> bool:
        """Check whether a failure of the step stops the enclosing activity."""
        return self.fail_immediate or self.fail_fast or self.is_fail_fast_command(step)

    def evaluate_result(self, result: 'StepResult') -> None:
        """Count a failure and apply the failure threshold."""
        if not result.is_failed:
            return

        self.failures += 1

        threshold = self.fail_after
        if 0 < threshold <= self.failures and not self.fail_immediate:
            logger.error('failure threshold of %d reached; aborting the execution', threshold)
            self.fail_immediate = True

    def record_outcome(self, result: 'StepResult', elapsed_ms: int) -> None:
        """Expose the outcome of the last step to the scripts."""
        self.store.set(LAST_OUTCOME, result.is_success)
        self.store.set(LAST_ELAPSED_TIME, elapsed_ms)

    def mask(self, text: str | None) -> str | None:
        """Hide decrypted secrets in text meant for logs and reports."""
        if text is None:
            return None

        return self.resolver.crypt.mask(text)
