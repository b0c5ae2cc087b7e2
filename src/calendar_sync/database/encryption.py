"""Encryption of OAuth tokens stored for linked accounts.

Uses Fernet symmetric encryption. The key is derived from the application
secret with PBKDF2-HMAC-SHA256 (480,000 iterations, 32-byte key) and the
deployment's encryption salt.

## Usage

```python
from calendar_sync.database.encryption import get_token_cipher

cipher = get_token_cipher()
stored = cipher.encrypt(access_token)
access_token = cipher.decrypt(stored)
```
"""

from __future__ import annotations

import base64
import logging
from functools import lru_cache

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from calendar_sync.config import get_settings

logger = logging.getLogger(__name__)

PBKDF2_ITERATIONS = 480_000


class TokenCipher:
    """Encrypts and decrypts token strings with a derived Fernet key."""

    def __init__(self, secret_key: str, salt: str):
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=32,  # 256 bits for Fernet
            salt=salt.encode("utf-8"),
            iterations=PBKDF2_ITERATIONS,
        )
        key = base64.urlsafe_b64encode(kdf.derive(secret_key.encode("utf-8")))
        self._fernet = Fernet(key)

    def encrypt(self, plaintext: str | None) -> str:
        """Encrypt a token; empty input stays empty."""
        if not plaintext:
            return ""
        return self._fernet.encrypt(plaintext.encode("utf-8")).decode("utf-8")

    def decrypt(self, ciphertext: str | None) -> str:
        """Decrypt a stored token.

        Raises:
            ValueError: If decryption fails (invalid token or wrong key)
        """
        if not ciphertext:
            return ""
        try:
            return self._fernet.decrypt(ciphertext.encode("utf-8")).decode("utf-8")
        except InvalidToken as e:
            logger.error("Failed to decrypt token: invalid token or key")
            raise ValueError("Failed to decrypt token") from e


@lru_cache
def get_token_cipher() -> TokenCipher:
    """Cipher built from the current settings (cached)."""
    settings = get_settings()
    return TokenCipher(settings.secret_key, settings.encryption_salt)
