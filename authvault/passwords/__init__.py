# Password Module
"""
Password hashing implementations including:
- Self-describing Argon2id hash codec - codec.py
- Argon2id hashing and constant-time verification - hasher.py
- Password policy validation - hasher.py
"""

from .codec import (
    HashParameters,
    encode_hash,
    decode_hash,
)

from .hasher import (
    PasswordHasher_,
    hash_password,
    verify_password,
    validate_password_strength,
    ARGON2_CONFIG,
)

__all__ = [
    # Codec
    'HashParameters',
    'encode_hash',
    'decode_hash',
    # Hasher
    'PasswordHasher_',
    'hash_password',
    'verify_password',
    'validate_password_strength',
    'ARGON2_CONFIG',
]
