"""Tabular test-script execution engine.

Scripts are YAML documents whose scenarios hold activities of step rows
(`target`, `command`, parameters and flow controls). The engine resolves
`${...}` tokens, `$(...)` functions and `[...]` expressions, expands
macros, runs sections and repeat-until loops, and produces an execution
summary per script, iteration, scenario and activity.
"""
