"""Token resolver.

The resolver turns template text into concrete text by running fixed
passes, each one on the output of the previous:

1. function tokens `$(name|operation|param...)`, innermost first;
2. variable tokens `${name}` holding scalar values;
3. list values: `${name}`, `${name}[i]` and `${name}.prop`;
4. nested values: `.prop`, `.[prop]` and `[i]` navigation;
5. embedded expressions `[TYPE(value) => operations]`;
6. decryption of `crypt:` values.

Escaped markers (`\\$`, `\\(`, `\\)` and `\\|`) are protected by
placeholders for the whole resolution and un-escaped exactly once at
the end. Values produced by a pass are protected in the same way, so a
substituted value is never resolved again.
"""

import logging
import re
from typing import TYPE_CHECKING

from tabex.errors import ConfigurationError
from tabex.names import FUNCTION_PATTERN, TOKEN_PATTERN
from tabex.resolution.crypt import CryptCodec
from tabex.resolution.expressions import ExpressionProcessor, has_expression
from tabex.resolution.functions import FunctionTable
from tabex.resolution.navigation import INDEX_PATTERN, navigate, parse_hop, project
from tabex.values import SEQUENCES, is_scalar, stringify

if TYPE_CHECKING:
    from collections.abc import Iterable

    from tabex.store import VariableStore
    from tabex.values import RuntimeValue

logger = logging.getLogger(__name__)

#: Escape sequences and the placeholders protecting them.
ESCAPES = {
    '\\$': '\ue000',
    '\\(': '\ue001',
    '\\)': '\ue002',
    '\\|': '\ue003',
}

#: Literal characters of produced values and the same placeholders.
LITERALS = {
    '$': '\ue000',
    '(': '\ue001',
    ')': '\ue002',
    '|': '\ue003',
    '\\': '\ue004',
}

RESTORES = {
    placeholder: char
    for char, placeholder in LITERALS.items()
}

INERT_OPEN = '\ue005'
INERT_CLOSE = '\ue006'
ESCAPED_DOT = '\ue007'
DEFERRED_PREFIX = '\ue008'

FUNCTION_OPEN = '$('
FUNCTION_CLOSE = ')'
FUNCTION_SEPARATOR = '|'


def protect(text: str) -> str:
    """Turn every marker character of a produced value into a literal."""
    for char, placeholder in LITERALS.items():
        text = text.replace(char, placeholder)

    return text


def unprotect(text: str) -> str:
    """Restore literal characters and inert function tokens."""
    for placeholder, char in RESTORES.items():
        text = text.replace(placeholder, char)

    return text.replace(INERT_OPEN, FUNCTION_OPEN).replace(INERT_CLOSE, FUNCTION_CLOSE)


def has_markers(text: str) -> bool:
    """Check whether a text needs resolution at all."""
    if FUNCTION_OPEN in text or '${' in text:
        return True

    if any(escape in text for escape in ESCAPES):
        return True

    return CryptCodec.is_encrypted(text) or has_expression(text)


class TokenResolver:
    """Resolver of template text against a variable store.

    Attributes:
        store: Variable store consulted for `${...}` tokens.
        functions: Function table used by `$(...)` tokens.
        crypt: Codec decrypting `crypt:` values.
    """

    def __init__(self, store: 'VariableStore', *,
                 functions: FunctionTable | None = None,
                 crypt: CryptCodec | None = None) -> None:
        """Initialize the resolver.

        Args:
            store: Variable store.
            functions: Function table; an empty table when omitted.
            crypt: Crypt codec; built from the store settings when omitted.
        """
        self.store = store
        self.functions = functions if functions is not None else FunctionTable()
        self.crypt = crypt if crypt is not None else CryptCodec(store.settings.crypt_key)

    def resolve(self, text: str | None) -> str | None:
        """Resolve template text.

        Args:
            text: Template text.

        Returns:
            The resolved text, or `None` when the text stands for null:
            the null sentinel itself, a single token referencing a
            missing or null value, or text made only of such tokens.

        Raises:
            ResolutionError: If a function invocation fails or a crypt
                value can not be decrypted.
        """
        if text is None or text == self.store.null_value:
            return None

        if not has_markers(text):
            return text

        resolved = self._resolve_protected(self._protect_escapes(text))
        if resolved is None:
            return None

        resolved = unprotect(resolved)
        if CryptCodec.is_encrypted(resolved):
            resolved = self.crypt.decrypt(resolved)

        return resolved

    def resolve_all(self, texts: 'Iterable[str | None]') -> list[str | None]:
        """Resolve several texts, for example the parameters of a step."""
        return [self.resolve(text) for text in texts]

    def invoke_function(self, token: str) -> str:
        """Invoke a single function token.

        Args:
            token: Function token, with or without the `$(...)` wrapper.

        Returns:
            The rendered function result.

        Raises:
            ConfigurationError: If the token does not name a registered
                function with an operation.
            ResolutionError: If the invocation fails.
        """
        body = token.strip()
        if body.startswith(FUNCTION_OPEN) and body.endswith(FUNCTION_CLOSE):
            body = body[len(FUNCTION_OPEN):-len(FUNCTION_CLOSE)]

        if FUNCTION_SEPARATOR not in body:
            raise ConfigurationError(
                f'{body} is a reference to a built-in function '
                f'NOT shown via the $(...|...) format',
            )

        name = body.split(FUNCTION_SEPARATOR, 1)[0]
        if name not in self.functions:
            raise ConfigurationError(f'{name} does not resolve to a function')

        return unprotect(self._call(self._protect_escapes(body)))

    @staticmethod
    def _protect_escapes(text: str) -> str:
        """Swap escape sequences for placeholders."""
        for escape, placeholder in ESCAPES.items():
            text = text.replace(escape, placeholder)

        return text

    def _resolve_protected(self, text: str) -> str | None:
        """Run the resolution passes over protected text."""
        text = self._resolve_functions(text)

        result = self._resolve_variables(text)
        if result is None:
            return None

        text, sequences, complexes = result
        text = self._resolve_sequences(text, sequences, complexes)
        if text is None:
            return None

        text = self._resolve_complexes(text, complexes)

        return ExpressionProcessor(self.store.text_delim).process(text)

    def _is_function(self, body: str) -> bool:
        """Check whether a token body invokes a registered function."""
        match = FUNCTION_PATTERN.match(body)
        return match is not None and match.group(1) in self.functions

    def _resolve_functions(self, text: str) -> str:
        """Expand function tokens, innermost and rightmost first."""
        while (start := text.rfind(FUNCTION_OPEN)) >= 0:
            head = text[:start]
            body_start = start + len(FUNCTION_OPEN)

            end = text.find(FUNCTION_CLOSE, body_start)
            if end < 0:
                text = head + INERT_OPEN + text[body_start:]
                continue

            body = text[body_start:end]
            tail = text[end + len(FUNCTION_CLOSE):]

            if not body.strip() or not self._is_function(body):
                logger.debug('leaving %r unresolved: not a known function', unprotect(body))
                text = head + INERT_OPEN + body + INERT_CLOSE + tail
                continue

            text = head + protect(self._call(body)) + tail

        return text

    def _call(self, body: str) -> str:
        """Invoke a protected function token body."""
        name, operation, *rest = body.split(FUNCTION_SEPARATOR, 2)

        params = []
        if rest:
            for param in rest[0].split(FUNCTION_SEPARATOR):
                resolved = self._resolve_protected(param)
                params.append('' if resolved is None else unprotect(resolved))

        return self.functions.invoke(name, operation, params, self.store.text_delim)

    def _resolve_variables(self, text: str) -> tuple[str, dict, dict] | None:
        """Substitute scalar tokens, collect list and nested values."""
        names = list(dict.fromkeys(TOKEN_PATTERN.findall(text)))
        if not names:
            return text, {}, {}

        only_tokens = not TOKEN_PATTERN.sub('', text).strip()
        keep_missing = self.store.settings.unresolved_as_is

        sequences: dict[str, list] = {}
        complexes: dict[str, RuntimeValue] = {}
        all_null = True

        # Reverse order resolves index tokens such as `${x}[${i}]` first
        for name in reversed(names):
            token = f'${{{name}}}'
            found, value = self.store.lookup(name)

            if value is None:
                if not found and keep_missing:
                    all_null = False
                    continue

                if text == token:
                    return None

                text = text.replace(token, '')
                continue

            all_null = False

            if isinstance(value, SEQUENCES):
                sequences[name] = list(value)
            elif is_scalar(value):
                text = self._substitute_scalar(text, token, value)
            else:
                complexes[name] = value

        if all_null and only_tokens:
            return None

        return text, sequences, complexes

    def _substitute_scalar(self, text: str, token: str, value: 'RuntimeValue') -> str:
        """Replace a scalar token, including its indexed forms."""
        rendered = stringify(value)
        delim = self.store.text_delim
        indexed = re.compile(re.escape(token) + r'\[(\d+)\]')

        if isinstance(value, str) and delim in rendered and rendered != delim:
            items = rendered.split(delim)

            def pick(match: re.Match) -> str:
                index = int(match.group(1))
                return protect(items[index]) if index < len(items) else ''

            text = indexed.sub(pick, text)

        else:
            text = re.sub(re.escape(token) + r'\[0\]', lambda _: protect(rendered), text)

        return text.replace(token, protect(rendered))

    def _resolve_sequences(self, text: str, sequences: dict[str, list],
                           complexes: dict) -> str | None:
        """Substitute list tokens.

        Non-scalar items picked by index are deferred to the nested
        value pass under a synthetic token name.
        """
        delim = self.store.text_delim

        for name, items in sequences.items():
            token = f'${{{name}}}'

            while (start := text.find(token)) >= 0:
                post = text[start + len(token):]
                consumed = 0

                if (match := INDEX_PATTERN.match(post)) and match.group(1).isdigit():
                    consumed = match.end()
                    index = int(match.group(1))
                    replacement = ''
                    if index < len(items):
                        item = items[index]
                        if is_scalar(item):
                            replacement = protect(stringify(item, delim))
                        else:
                            deferred = f'{DEFERRED_PREFIX}{name}.{index}'
                            complexes[deferred] = item
                            replacement = f'${{{deferred}}}'

                elif post.startswith('.') and (hop := parse_hop(post)):
                    consumed = hop.length
                    values = project(items, hop.key)
                    if all(value is None for value in values):
                        if text == token + post[:consumed]:
                            return None
                        replacement = ''
                    else:
                        replacement = protect(delim.join(stringify(value, delim) for value in values))

                else:
                    replacement = protect(stringify(items, delim))

                text = text[:start] + replacement + text[start + len(token) + consumed:]

        return text

    def _resolve_complexes(self, text: str, complexes: dict) -> str:
        """Substitute nested value tokens through navigation."""
        if not complexes:
            return text

        delim = self.store.text_delim
        text = text.replace('\\.', ESCAPED_DOT)

        for name, value in complexes.items():
            token = f'${{{name}}}'

            while (start := text.find(token)) >= 0:
                end = start + len(token)
                result, consumed = navigate(value, text[end:])
                if not is_scalar(result):
                    logger.debug('rendering nested value of %r as text', name)
                text = text[:start] + protect(stringify(result, delim)) + text[end + consumed:]

        return text.replace(ESCAPED_DOT, '.')
