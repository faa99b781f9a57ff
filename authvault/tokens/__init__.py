# Tokens Module
"""
Token implementations including:
- AES-256-GCM self-contained access/challenge tokens - signer.py
- Persisted refresh token records and store interface - refresh.py

Security features:
- Authenticated encryption (claims confidential and tamper-evident)
- Mandatory audience separation
- Unguessable refresh values, single use per rotation
"""

from .signer import (
    TokenClaims,
    TokenSigner,
    generate_key,
)

from .refresh import (
    TokenKind,
    RefreshTokenRecord,
    RefreshTokenStore,
    generate_token_value,
)

__all__ = [
    # Signer
    'TokenClaims',
    'TokenSigner',
    'generate_key',
    # Refresh
    'TokenKind',
    'RefreshTokenRecord',
    'RefreshTokenStore',
    'generate_token_value',
]
