"""Core script parsing and extension loading."""

from .loader import ExtensionsLoaderMixin
from .parser import ScriptParser

__all__ = (
    'ExtensionsLoaderMixin',
    'ScriptParser',
)
