"""
Identity model and the identity store interface.

Identities are owned by the external user store. The engine reads them and
writes specific fields through field-scoped updates; the race-prone writes
(backup-code consumption, HOTP counter advance, one-time code consumption)
are conditional operations the store must perform atomically.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional


class MFAMethod(Enum):
    """Second-factor method selected for an identity."""
    NONE = "none"
    TOTP = "totp"
    HOTP = "hotp"
    SMS = "sms"
    EMAIL = "email"


# Every MFA field and its cleared value
MFA_CLEARED_FIELDS = {
    'mfa_enabled': False,
    'mfa_method': MFAMethod.NONE,
    'mfa_secret': None,
    'mfa_counter': 0,
    'mfa_backup_codes': [],
    'mfa_otp_code': None,
    'mfa_otp_expiry': None,
}


@dataclass
class Identity:
    """An end user as seen by the authentication engine."""
    email: str
    credential_hash: str
    id: Optional[str] = None
    tenant_id: Optional[str] = None
    phone_number: Optional[str] = None
    mfa_enabled: bool = False
    mfa_method: MFAMethod = MFAMethod.NONE
    mfa_secret: Optional[str] = None
    mfa_counter: int = 0
    mfa_backup_codes: List[str] = field(default_factory=list)
    mfa_otp_code: Optional[str] = None
    mfa_otp_expiry: Optional[float] = None
    password_changed_at: Optional[float] = None
    last_login_at: Optional[float] = None

    def __repr__(self) -> str:
        # secrets and codes stay out of logs and tracebacks
        return (
            f"Identity(id={self.id!r}, email={self.email!r}, "
            f"mfa_enabled={self.mfa_enabled}, "
            f"mfa_method={self.mfa_method.value!r})"
        )


class IdentityStore(ABC):
    """
    Storage interface for identities.

    Implementations raise NotFound for unknown ids/emails and
    StoreUnavailable on connectivity failures.
    """

    @abstractmethod
    def create(self, identity: Identity) -> Identity:
        """Persist a new identity and assign its id."""

    @abstractmethod
    def find_by_email(self, email: str) -> Identity:
        """Look up an identity by email."""

    @abstractmethod
    def find_by_id(self, identity_id: str) -> Identity:
        """Look up an identity by id."""

    @abstractmethod
    def update(self, identity_id: str, **fields) -> Identity:
        """
        Atomically write only the given fields.

        Returns:
            The identity after the update
        """

    @abstractmethod
    def remove_backup_code(self, identity_id: str, code: str) -> bool:
        """
        Remove a backup code only if it is still present.

        Returns:
            True if this call removed it
        """

    @abstractmethod
    def advance_hotp_counter(self, identity_id: str, expected: int,
                             new: int) -> bool:
        """
        Compare-and-set the HOTP counter.

        Returns:
            True if the counter was still `expected` and is now `new`
        """

    @abstractmethod
    def consume_otp_code(self, identity_id: str, code: str) -> bool:
        """
        Clear the transient SMS/email code only if it still equals `code`.

        Returns:
            True if this call consumed it
        """
