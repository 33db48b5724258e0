"""YAML document schema.

Defines immutable Pydantic models describing scripts, scenarios,
activities, rows and macro libraries as written in YAML.
"""

from .rows import StepRow
from .scripts import Activity, MacroLibraryDocument, ScenarioSheet, Script

__all__ = (
    'Activity',
    'MacroLibraryDocument',
    'ScenarioSheet',
    'Script',
    'StepRow',
)
