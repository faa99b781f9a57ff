"""
Refresh Token Records

Persisted, revocable, single-use-per-rotation token records and the store
interface the engine consumes. Storage itself lives outside the engine;
stores/memory.py holds a reference implementation.

The rotate-on-use protocol is enforced by the Authenticator, not here.
"""

import secrets
import time
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


# 256 bits of randomness, URL-safe
TOKEN_VALUE_BYTES = 32


class TokenKind(Enum):
    """Kinds of persisted tokens."""
    REFRESH = "refresh"
    ACCESS = "access"
    PASSWORD_RESET = "password_reset"


def generate_token_value() -> str:
    """Generate an unguessable opaque token value."""
    return secrets.token_urlsafe(TOKEN_VALUE_BYTES)


@dataclass
class RefreshTokenRecord:
    """A persisted token record."""
    user_id: str
    value: str
    expires_at: float
    kind: TokenKind = TokenKind.REFRESH
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    created_at: float = field(default_factory=time.time)

    @classmethod
    def new(cls, user_id: str, ttl: int,
            kind: TokenKind = TokenKind.REFRESH,
            now: Optional[float] = None) -> 'RefreshTokenRecord':
        """
        Create a record with a fresh random value.

        Args:
            user_id: Owner identity id
            ttl: Lifetime in seconds
            kind: Token kind
            now: Unix timestamp (uses current time if None)
        """
        if now is None:
            now = time.time()
        return cls(
            user_id=user_id,
            value=generate_token_value(),
            expires_at=now + ttl,
            kind=kind,
            created_at=now,
        )

    def is_expired(self, now: Optional[float] = None) -> bool:
        """Check if the record has expired."""
        if now is None:
            now = time.time()
        return now > self.expires_at


class RefreshTokenStore(ABC):
    """
    Storage interface for token records.

    Implementations raise StoreUnavailable on connectivity failures and
    NotFound from find_by_value for unknown values.
    """

    @abstractmethod
    def create(self, record: RefreshTokenRecord) -> RefreshTokenRecord:
        """Persist a new record."""

    @abstractmethod
    def find_by_value(self, value: str) -> RefreshTokenRecord:
        """Look up a record by its opaque value."""

    @abstractmethod
    def delete_by_id(self, record_id: str) -> bool:
        """
        Atomically delete a record.

        Returns:
            True if this call deleted it, False if it was already gone
        """

    @abstractmethod
    def delete_expired(self, now: Optional[float] = None) -> int:
        """Delete every expired record; returns how many were removed."""

    @abstractmethod
    def delete_for_user(self, user_id: str) -> int:
        """Delete every record owned by a user; returns how many."""
