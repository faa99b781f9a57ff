# Authentication Module
"""
Authentication flow including:
- Login state machine (credentials -> MFA challenge -> tokens) - orchestrator.py
- Refresh token rotation and revocation - orchestrator.py
- Password change and MFA management entry points - orchestrator.py

Security features:
- Identical rejection for unknown email, wrong password and malformed hash
- Challenge tokens confined to the "mfa-challenge" audience
- Single-use refresh tokens with atomic rotation
"""

from .orchestrator import (
    Authenticator,
    AuthResult,
    AuthStatus,
    RejectReason,
    INVALID_CREDENTIALS_MESSAGE,
    INVALID_MFA_MESSAGE,
)

__all__ = [
    'Authenticator',
    'AuthResult',
    'AuthStatus',
    'RejectReason',
    'INVALID_CREDENTIALS_MESSAGE',
    'INVALID_MFA_MESSAGE',
]
