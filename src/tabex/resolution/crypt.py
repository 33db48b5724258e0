"""Encrypted values marked with the `crypt:` prefix.

Secrets are kept encrypted in scripts and data files and decrypted by the
last resolution pass. Decrypted plaintexts are remembered so that they
can be re-encoded before anything is logged or reported.
"""

from typing import TYPE_CHECKING

from cryptography.fernet import Fernet, InvalidToken
from pydantic import SecretStr

from tabex.errors import ConfigurationError, ResolutionError

if TYPE_CHECKING:
    from collections.abc import Iterator

CRYPT_PREFIX = 'crypt:'


class CryptCodec:
    """Fernet-based codec for `crypt:` values.

    Attributes:
        secrets: Decrypted plaintexts mapped to their encrypted form.
    """

    def __init__(self, key: SecretStr | str | bytes | None = None) -> None:
        """Initialize the codec.

        Args:
            key: URL-safe base64 Fernet key. A codec without a key can
                recognize encrypted values but not decrypt them.

        Raises:
            ConfigurationError: If the key is not a valid Fernet key.
        """
        if isinstance(key, SecretStr):
            key = key.get_secret_value()

        self._fernet: Fernet | None = None
        if key:
            try:
                self._fernet = Fernet(key)
            except ValueError as base:
                raise ConfigurationError(f'Invalid crypt key: {base}') from base

        self.secrets: dict[str, str] = {}

    @staticmethod
    def generate_key() -> str:
        """Generate a new random key."""
        return Fernet.generate_key().decode('ascii')

    @staticmethod
    def is_encrypted(text: str | None) -> bool:
        """Check whether a text carries the crypt marker."""
        return bool(text) and text.startswith(CRYPT_PREFIX)

    def _require_fernet(self) -> Fernet:
        """Return the configured cipher."""
        if self._fernet is None:
            raise ConfigurationError('No crypt key configured; set TABEX_CRYPT_KEY')

        return self._fernet

    def encrypt(self, plaintext: str) -> str:
        """Encrypt a plaintext into a `crypt:` value."""
        token = self._require_fernet().encrypt(plaintext.encode('utf-8'))
        return f'{CRYPT_PREFIX}{token.decode("ascii")}'

    def decrypt(self, text: str) -> str:
        """Decrypt a `crypt:` value and remember its plaintext.

        Args:
            text: Encrypted value including the prefix.

        Returns:
            The plaintext.

        Raises:
            ConfigurationError: If no key is configured.
            ResolutionError: If the value can not be decrypted.
        """
        token = text.removeprefix(CRYPT_PREFIX).strip()

        try:
            plaintext = self._require_fernet().decrypt(token.encode('ascii')).decode('utf-8')
        except (InvalidToken, UnicodeError) as base:
            raise ResolutionError('Unable to decrypt a crypt: value') from base

        if plaintext:
            self.secrets[plaintext] = text

        return plaintext

    def mask(self, text: str) -> str:
        """Re-encode known plaintexts found in a text."""
        for plaintext in self._longest_first():
            text = text.replace(plaintext, self.secrets[plaintext])

        return text

    def _longest_first(self) -> 'Iterator[str]':
        """Iterate over plaintexts so that longer secrets mask first."""
        return iter(sorted(self.secrets, key=len, reverse=True))
