"""Cryptographic utilities for credential encryption."""

from functools import lru_cache
from typing import Optional
from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC
import base64


class CredentialDecryptionError(Exception):
    """Stored credential could not be decrypted with the configured key."""
    pass


@lru_cache(maxsize=8)
def generate_key(password: str, salt: bytes) -> bytes:
    """Derive a Fernet key from a password and a fixed salt."""
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=32,
        salt=salt,
        iterations=100000,
    )
    return base64.urlsafe_b64encode(kdf.derive(password.encode()))


def encrypt_token(token: str, encryption_key: str, salt: str) -> str:
    """Encrypt a credential secret."""
    f = Fernet(generate_key(encryption_key, salt.encode()))
    return f.encrypt(token.encode()).decode()


def decrypt_token(encrypted_token: str, encryption_key: str, salt: str) -> str:
    """Decrypt a credential secret."""
    f = Fernet(generate_key(encryption_key, salt.encode()))
    try:
        return f.decrypt(encrypted_token.encode()).decode()
    except InvalidToken as e:
        raise CredentialDecryptionError("Stored credential cannot be decrypted") from e


def encrypt_optional(value: Optional[str], encryption_key: str, salt: str) -> Optional[str]:
    """Encrypt a value if present."""
    return encrypt_token(value, encryption_key, salt) if value else value


def decrypt_optional(value: Optional[str], encryption_key: str, salt: str) -> Optional[str]:
    """Decrypt a value if present."""
    return decrypt_token(value, encryption_key, salt) if value else value
