"""Encryption of provider credentials at rest"""

import base64
import hashlib
from typing import Optional

from cryptography.fernet import Fernet, InvalidToken

from ..config import INTEGRATION_ENCRYPTION_KEY, SECRET_KEY


def get_cipher(key: Optional[str] = None) -> Fernet:
    """
    Build the Fernet cipher for integration tokens.

    Uses INTEGRATION_ENCRYPTION_KEY when configured, otherwise derives a
    key from SECRET_KEY so development setups work without extra config.
    """
    key = key or INTEGRATION_ENCRYPTION_KEY
    if key:
        return Fernet(key.encode())
    derived = base64.urlsafe_b64encode(hashlib.sha256(SECRET_KEY.encode()).digest())
    return Fernet(derived)


def encrypt_token(value: str, cipher: Optional[Fernet] = None) -> str:
    return (cipher or get_cipher()).encrypt(value.encode()).decode()


def decrypt_token(value: str, cipher: Optional[Fernet] = None) -> str:
    """
    Raises:
        ValueError: If the token was encrypted with another key or is corrupted
    """
    try:
        return (cipher or get_cipher()).decrypt(value.encode()).decode()
    except InvalidToken as e:
        raise ValueError("Could not decrypt integration credential") from e
