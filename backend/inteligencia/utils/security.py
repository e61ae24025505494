"""
Security utilities - provider API key encryption at rest

Keys are encrypted with AES-256-GCM under a 256-bit key derived by scrypt
from the server-side ENCRYPTION_KEY and a fresh random salt per call.
Stored blob layout: base64(IV || auth tag || ciphertext); salt is base64.
"""

import base64
import binascii
import logging
import os
from typing import NamedTuple, Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.scrypt import Scrypt

from inteligencia.config import get_settings
from inteligencia.errors import DecryptionError, EncryptionError

logger = logging.getLogger(__name__)

KEY_LENGTH = 32
IV_LENGTH = 16
SALT_LENGTH = 64
TAG_LENGTH = 16

# Expected key prefixes per provider
KEY_PREFIXES = {
    "openai": ("sk-",),
    "anthropic": ("sk-ant-",),
    "google": ("AIza",),
    "perplexity": ("pplx-",),
}


class EncryptedSecret(NamedTuple):
    ciphertext: str
    salt: str


def _derive_key(salt: bytes, secret: Optional[str] = None) -> bytes:
    """Derive the AES key from the server secret and a per-record salt"""
    settings = get_settings()
    secret = secret if secret is not None else settings.ENCRYPTION_KEY
    kdf = Scrypt(
        salt=salt,
        length=KEY_LENGTH,
        n=settings.SCRYPT_N,
        r=settings.SCRYPT_R,
        p=settings.SCRYPT_P,
    )
    return kdf.derive(secret.encode("utf-8"))


def encrypt_api_key(api_key: str, secret: Optional[str] = None) -> EncryptedSecret:
    """Encrypt an API key for storage"""
    if not api_key:
        raise EncryptionError("Cannot encrypt an empty API key")

    try:
        salt = os.urandom(SALT_LENGTH)
        iv = os.urandom(IV_LENGTH)
        key = _derive_key(salt, secret)
        # AESGCM appends the tag to the ciphertext
        sealed = AESGCM(key).encrypt(iv, api_key.encode("utf-8"), None)
    except (ValueError, TypeError) as e:
        raise EncryptionError(f"Encryption failed: {type(e).__name__}") from e

    ciphertext, tag = sealed[:-TAG_LENGTH], sealed[-TAG_LENGTH:]
    blob = iv + tag + ciphertext
    return EncryptedSecret(
        ciphertext=base64.b64encode(blob).decode("ascii"),
        salt=base64.b64encode(salt).decode("ascii"),
    )


def decrypt_api_key(ciphertext: str, salt: str, secret: Optional[str] = None) -> str:
    """
    Decrypt an API key from storage.

    Raises DecryptionError when the blob is malformed or the authentication
    tag does not verify (tampering or a server secret mismatch).
    """
    try:
        blob = base64.b64decode(ciphertext, validate=True)
        salt_bytes = base64.b64decode(salt, validate=True)
    except (binascii.Error, ValueError) as e:
        raise DecryptionError("Encrypted key is not valid base64") from e

    if len(blob) <= IV_LENGTH + TAG_LENGTH or not salt_bytes:
        raise DecryptionError("Encrypted key blob is truncated")

    iv = blob[:IV_LENGTH]
    tag = blob[IV_LENGTH:IV_LENGTH + TAG_LENGTH]
    body = blob[IV_LENGTH + TAG_LENGTH:]

    try:
        key = _derive_key(salt_bytes, secret)
        plaintext = AESGCM(key).decrypt(iv, body + tag, None)
    except InvalidTag as e:
        raise DecryptionError("Authentication tag mismatch") from e
    except (ValueError, TypeError) as e:
        raise DecryptionError(f"Decryption failed: {type(e).__name__}") from e

    try:
        return plaintext.decode("utf-8")
    except UnicodeDecodeError as e:
        raise DecryptionError("Decrypted key is not valid UTF-8") from e


def is_valid_encrypted_data(ciphertext: Optional[str], salt: Optional[str]) -> bool:
    """Cheap structural check; does not verify the tag"""
    if not ciphertext or not salt:
        return False
    try:
        blob = base64.b64decode(ciphertext, validate=True)
        salt_bytes = base64.b64decode(salt, validate=True)
    except (binascii.Error, ValueError):
        return False
    return len(blob) > IV_LENGTH + TAG_LENGTH and len(salt_bytes) == SALT_LENGTH


def validate_key_format(provider: str, api_key: str) -> bool:
    """Check the vendor's documented key prefix"""
    if not api_key or len(api_key) < 10:
        return False
    prefixes = KEY_PREFIXES.get(provider)
    if prefixes is None:
        return True
    return api_key.startswith(prefixes)


def mask_api_key(api_key: str) -> str:
    """Mask an API key for display (e.g., sk-...abc123)"""
    if len(api_key) <= 8:
        return "***"
    return f"{api_key[:3]}...{api_key[-6:]}"
