"""
Engine Configuration

Tunables are kept as module-level constants and aggregated into a frozen
AuthConfig that components receive at construction. Loading values from
files or the environment is left to the embedding application; it can hand
a plain dict to AuthConfig.from_mapping().
"""

from dataclasses import dataclass, fields, replace
from typing import Any, Dict, Mapping


# Token lifetimes
ACCESS_TOKEN_TTL_SECONDS = 15 * 60          # 15 minutes
CHALLENGE_TOKEN_TTL_SECONDS = 5 * 60        # 5 minutes
REFRESH_TOKEN_TTL_SECONDS = 7 * 24 * 3600   # 7 days
TOKEN_LEEWAY_SECONDS = 0                    # exact comparison by default

# Token audiences and issuer
TOKEN_ISSUER = "authvault"
ACCESS_AUDIENCE = "app"
CHALLENGE_AUDIENCE = "mfa-challenge"

# One-time codes delivered out of band
OTP_CODE_LENGTH = 6
OTP_CODE_ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789"
SMS_CODE_TTL_SECONDS = 5 * 60
EMAIL_CODE_TTL_SECONDS = 15 * 60

# Backup codes
BACKUP_CODE_COUNT = 10
BACKUP_CODE_LENGTH = 8

# HOTP look-ahead window (0 = only the current counter is accepted)
HOTP_WINDOW = 0

# Names shown in authenticator apps and outbound messages
MFA_ISSUER_NAME = "AuthVault"
SMS_MESSAGE_TEMPLATE = "Your {issuer} verification code is: {code}"
EMAIL_SUBJECT_TEMPLATE = "{issuer} MFA Code"
EMAIL_BODY_TEMPLATE = "Your verification code is: {code}"


@dataclass(frozen=True)
class AuthConfig:
    """All engine tunables in one immutable object."""
    access_token_ttl: int = ACCESS_TOKEN_TTL_SECONDS
    challenge_token_ttl: int = CHALLENGE_TOKEN_TTL_SECONDS
    refresh_token_ttl: int = REFRESH_TOKEN_TTL_SECONDS
    token_leeway_seconds: int = TOKEN_LEEWAY_SECONDS
    token_issuer: str = TOKEN_ISSUER
    access_audience: str = ACCESS_AUDIENCE
    challenge_audience: str = CHALLENGE_AUDIENCE
    otp_code_length: int = OTP_CODE_LENGTH
    otp_code_alphabet: str = OTP_CODE_ALPHABET
    sms_code_ttl: int = SMS_CODE_TTL_SECONDS
    email_code_ttl: int = EMAIL_CODE_TTL_SECONDS
    backup_code_count: int = BACKUP_CODE_COUNT
    backup_code_length: int = BACKUP_CODE_LENGTH
    hotp_window: int = HOTP_WINDOW
    mfa_issuer_name: str = MFA_ISSUER_NAME

    def __post_init__(self):
        if self.access_audience == self.challenge_audience:
            raise ValueError("Access and challenge audiences must differ")
        if self.hotp_window < 0:
            raise ValueError("HOTP window must be non-negative")
        if self.token_leeway_seconds < 0:
            raise ValueError("Token leeway must be non-negative")

    @classmethod
    def from_mapping(cls, values: Mapping[str, Any]) -> 'AuthConfig':
        """
        Build a config from a loaded mapping, ignoring unknown keys.

        Args:
            values: e.g. a section of a YAML/TOML file parsed by the caller

        Returns:
            AuthConfig with defaults for every key not present
        """
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in values.items() if k in known})

    def with_overrides(self, **kwargs) -> 'AuthConfig':
        """Return a copy with the given fields replaced."""
        return replace(self, **kwargs)

    def as_dict(self) -> Dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self)}


DEFAULT_CONFIG = AuthConfig()
