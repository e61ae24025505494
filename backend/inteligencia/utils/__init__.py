"""
Utility modules
"""

from .database import get_db, get_db_context, init_db, close_db
from .security import (
    EncryptedSecret,
    encrypt_api_key,
    decrypt_api_key,
    is_valid_encrypted_data,
    validate_key_format,
    mask_api_key,
)

__all__ = [
    "get_db",
    "get_db_context",
    "init_db",
    "close_db",
    "EncryptedSecret",
    "encrypt_api_key",
    "decrypt_api_key",
    "is_valid_encrypted_data",
    "validate_key_format",
    "mask_api_key",
]
