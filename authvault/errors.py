"""
Error Taxonomy

Every failure raised by the engine derives from AuthVaultError.

Categories:
- Credential / second-factor failures (InvalidCredentials, MFAInvalid)
- Token failures (TokenInvalid, TokenExpired)
- Internal format failures (HashFormatError) - never shown to callers
- Store failures (StoreUnavailable, NotFound, DuplicateIdentity)
- Delivery failures (NotificationFailed)

A pending second factor is not an error; it is reported through
AuthStatus.MFA_REQUIRED on the login result.
"""


class AuthVaultError(Exception):
    """Base class for all engine errors."""
    pass


class InvalidCredentials(AuthVaultError):
    """Raised when the first factor (email + password) does not check out."""
    pass


class MFAInvalid(AuthVaultError):
    """Raised when a second-factor submission fails for any reason."""
    pass


class TokenInvalid(AuthVaultError):
    """Raised for tokens with a bad format, tag, issuer or audience."""
    pass


class TokenExpired(TokenInvalid):
    """Raised for tokens used after expiry or before their not-before time."""
    pass


class HashFormatError(AuthVaultError):
    """Raised when a stored password hash cannot be parsed."""
    pass


class WeakPassword(AuthVaultError, ValueError):
    """Raised when a password does not satisfy the password policy."""

    def __init__(self, errors):
        self.errors = list(errors)
        super().__init__(f"Password too weak: {', '.join(self.errors)}")


class StoreError(AuthVaultError):
    """Base class for identity / token store failures."""
    pass


class StoreUnavailable(StoreError):
    """Raised when a backing store cannot be reached. Never retried here."""
    pass


class NotFound(StoreError):
    """Raised when a looked-up record does not exist."""
    pass


class DuplicateIdentity(StoreError):
    """Raised when creating an identity whose email is already taken."""
    pass


class NotificationFailed(AuthVaultError):
    """Raised when an SMS or email one-time code could not be delivered."""
    pass
