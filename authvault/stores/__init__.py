# Stores Module
"""
Reference implementations of the external store interfaces:
- InMemoryIdentityStore - identities with atomic conditional updates
- InMemoryRefreshTokenStore - refresh token records with atomic delete
"""

from .memory import (
    InMemoryIdentityStore,
    InMemoryRefreshTokenStore,
)

__all__ = [
    'InMemoryIdentityStore',
    'InMemoryRefreshTokenStore',
]
