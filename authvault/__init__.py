# AuthVault
"""
Authentication & multi-factor verification engine.

Sub-packages:
- passwords - Argon2id hashing and the self-describing hash codec
- tokens - AES-GCM access/challenge tokens and refresh token records
- mfa - TOTP, HOTP, SMS/email codes and backup codes
- auth - the login / MFA / refresh orchestrator
- stores - in-memory reference stores
- integration - security audit trail
"""

from .auth import Authenticator, AuthResult, AuthStatus, RejectReason
from .config import AuthConfig, DEFAULT_CONFIG
from .identity import Identity, IdentityStore, MFAMethod

__version__ = "1.0.0"

__all__ = [
    'Authenticator',
    'AuthResult',
    'AuthStatus',
    'RejectReason',
    'AuthConfig',
    'DEFAULT_CONFIG',
    'Identity',
    'IdentityStore',
    'MFAMethod',
]
