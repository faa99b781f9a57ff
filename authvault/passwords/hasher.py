"""
Password Hashing Module

Implements salted, memory-hard password hashing using Argon2id.

Features:
- Argon2id derivation (winner of the Password Hashing Competition)
- Fresh cryptographically secure salt per hash
- Self-describing encoded output (see codec.py)
- Constant-time digest comparison on verification
- Password length policy with optional character-class rules

Security considerations:
- Never store plaintext passwords
- Never derive a salt from user input
- A malformed stored hash raises HashFormatError; callers must map it to
  the same response as a wrong password
"""

import hmac
import re
import secrets
from typing import Dict, Optional

from argon2 import Type
from argon2.exceptions import HashingError
from argon2.low_level import hash_secret_raw

from ..errors import HashFormatError, WeakPassword
from .codec import HashParameters, decode_hash, encode_hash


# Argon2id configuration
# - time_cost: number of iterations
# - memory_cost: memory usage in KiB
# - parallelism: number of parallel lanes
# - hash_len: length of the derived digest
# - salt_len: length of the random salt
ARGON2_CONFIG = {
    'time_cost': 3,          # Number of iterations
    'memory_cost': 65536,    # 64 MiB memory
    'parallelism': 4,        # 4 parallel lanes
    'hash_len': 32,          # 256-bit hash
    'salt_len': 16,          # 128-bit salt
}


# Password policy
PASSWORD_MIN_LENGTH = 8
PASSWORD_MAX_LENGTH = 128
PASSWORD_REQUIREMENTS = {
    'min_length': PASSWORD_MIN_LENGTH,
    'max_length': PASSWORD_MAX_LENGTH,
    'require_uppercase': False,
    'require_lowercase': False,
    'require_digit': False,
    'require_special': False,
}

_SPECIAL_RE = r'[!@#$%^&*(),.?":{}|<>]'


class PasswordHasher_:
    """
    Argon2id password hasher producing self-describing hash strings.

    Example:
        >>> hasher = PasswordHasher_()
        >>> encoded = hasher.hash("correcthorsebattery")
        >>> hasher.verify(encoded, "correcthorsebattery")
        True
    """

    def __init__(self, policy: Optional[Dict] = None, **kwargs):
        """
        Initialize the hasher.

        Args:
            policy: Override PASSWORD_REQUIREMENTS entries
            **kwargs: Override ARGON2_CONFIG entries
        """
        config = ARGON2_CONFIG.copy()
        config.update(kwargs)
        self._params = HashParameters(
            memory_cost=config['memory_cost'],
            time_cost=config['time_cost'],
            parallelism=config['parallelism'],
            salt_len=config['salt_len'],
            hash_len=config['hash_len'],
        )
        self._policy = PASSWORD_REQUIREMENTS.copy()
        if policy:
            self._policy.update(policy)

    @property
    def parameters(self) -> HashParameters:
        """Cost parameters applied to new hashes."""
        return self._params

    def hash(self, password: str) -> str:
        """
        Hash a password with a fresh random salt.

        Args:
            password: Plaintext password

        Returns:
            Encoded Argon2id hash string

        Raises:
            WeakPassword: If the password violates the policy
        """
        validation = validate_password_strength(password, self._policy)
        if not validation['valid']:
            raise WeakPassword(validation['errors'])

        salt = secrets.token_bytes(self._params.salt_len)
        digest = self._derive(password, salt, self._params)
        return encode_hash(self._params, salt, digest)

    def verify(self, encoded: str, password: str) -> bool:
        """
        Verify a password against an encoded hash.

        Re-derives using the parameters and salt stored in the hash and
        compares digests in constant time.

        Args:
            encoded: Stored hash string
            password: Plaintext candidate

        Returns:
            True if the password matches

        Raises:
            HashFormatError: If the stored hash is malformed or unsupported
        """
        params, salt, expected = decode_hash(encoded)
        try:
            candidate = self._derive(password, salt, params)
        except HashingError as e:
            raise HashFormatError(f"stored parameters rejected: {e}") from e
        return hmac.compare_digest(candidate, expected)

    def needs_rehash(self, encoded: str) -> bool:
        """
        Check whether a stored hash was made with other parameters.

        Args:
            encoded: Stored hash string

        Returns:
            True if it should be regenerated with the current parameters
        """
        params, _, _ = decode_hash(encoded)
        current = self._params
        return (
            params.memory_cost != current.memory_cost
            or params.time_cost != current.time_cost
            or params.parallelism != current.parallelism
            or params.hash_len != current.hash_len
            or params.salt_len != current.salt_len
        )

    @staticmethod
    def _derive(password: str, salt: bytes, params: HashParameters) -> bytes:
        return hash_secret_raw(
            secret=password.encode('utf-8'),
            salt=salt,
            time_cost=params.time_cost,
            memory_cost=params.memory_cost,
            parallelism=params.parallelism,
            hash_len=params.hash_len,
            type=Type.ID,
            version=params.version,
        )


def validate_password_strength(password: str,
                               requirements: Optional[Dict] = None) -> Dict:
    """
    Validate a password against the policy.

    Args:
        password: Password to validate
        requirements: Policy to apply (defaults to PASSWORD_REQUIREMENTS)

    Returns:
        Dict with 'valid' bool and 'errors' list
    """
    rules = requirements or PASSWORD_REQUIREMENTS
    errors = []

    if not isinstance(password, str):
        return {'valid': False, 'errors': ["Must be a string"]}

    if len(password) < rules['min_length']:
        errors.append(f"Must be at least {rules['min_length']} characters")
    if len(password) > rules['max_length']:
        errors.append(f"Must be at most {rules['max_length']} characters")

    if rules.get('require_uppercase') and not re.search(r'[A-Z]', password):
        errors.append("Must contain at least one uppercase letter")
    if rules.get('require_lowercase') and not re.search(r'[a-z]', password):
        errors.append("Must contain at least one lowercase letter")
    if rules.get('require_digit') and not re.search(r'\d', password):
        errors.append("Must contain at least one digit")
    if rules.get('require_special') and not re.search(_SPECIAL_RE, password):
        errors.append("Must contain at least one special character")

    return {'valid': len(errors) == 0, 'errors': errors}


# Module-level hasher instance
_default_hasher = PasswordHasher_()


def hash_password(password: str) -> str:
    """Convenience function to hash a password."""
    return _default_hasher.hash(password)


def verify_password(encoded: str, password: str) -> bool:
    """Convenience function to verify a password."""
    return _default_hasher.verify(encoded, password)
