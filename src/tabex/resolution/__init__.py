"""Template text resolution.

This package turns template text into concrete values. It provides:
- the function table invoked by `$(name|operation|param...)` tokens;
- navigation over nested lists, mappings and structs;
- the embedded `[TYPE(value) => operations]` expression language;
- decryption of `crypt:` values;
- the `TokenResolver` running all passes in a fixed order.
"""

from .crypt import CRYPT_PREFIX, CryptCodec
from .expressions import ExpressionProcessor, find_expressions
from .functions import Function, FunctionTable
from .tokens import TokenResolver

__all__ = (
    'CRYPT_PREFIX',
    'CryptCodec',
    'ExpressionProcessor',
    'Function',
    'FunctionTable',
    'TokenResolver',
    'find_expressions',
)
