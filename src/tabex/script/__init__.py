"""Script preparation: macro expansion and scenario building."""

from .builder import ScenarioBuilder
from .macros import MacroExpander, MacroLibrary, YamlMacroLibrary

__all__ = (
    'MacroExpander',
    'MacroLibrary',
    'ScenarioBuilder',
    'YamlMacroLibrary',
)
