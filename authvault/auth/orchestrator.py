"""
Authentication Orchestrator

Drives the login state machine:

    AwaitingCredentials -> CredentialsValid -> (MFA enabled ? AwaitingMFA)
                        -> Authenticated

Any failure ends in Rejected. Failed logins and failed MFA submissions are
reported with the same message whatever the internal cause (unknown email,
wrong password, malformed stored hash, wrong/expired/consumed code), so the
responses cannot be used as an enumeration or timing oracle. The cause is
logged.

Store errors (StoreUnavailable) are not caught here; they fail the call.
"""

import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional

from ..config import AuthConfig, DEFAULT_CONFIG
from ..errors import (
    HashFormatError,
    InvalidCredentials,
    MFAInvalid,
    NotFound,
    TokenExpired,
    TokenInvalid,
)
from ..identity import Identity, IdentityStore, MFAMethod
from ..integration.audit import AuditLog, EventType
from ..mfa.methods import CodeDispatch, MFAEngine, OTPEnrollment
from ..passwords.hasher import PasswordHasher_
from ..tokens.refresh import RefreshTokenRecord, RefreshTokenStore, TokenKind
from ..tokens.signer import TokenClaims, TokenSigner

logger = logging.getLogger(__name__)


INVALID_CREDENTIALS_MESSAGE = "invalid credentials"
INVALID_MFA_MESSAGE = "invalid MFA token"
CHALLENGE_EXPIRED_MESSAGE = "MFA challenge expired"
INVALID_REFRESH_MESSAGE = "invalid refresh token"
EXPIRED_REFRESH_MESSAGE = "refresh token expired"


class AuthStatus(Enum):
    """Terminal states of an authentication call."""
    AUTHENTICATED = "authenticated"
    MFA_REQUIRED = "mfa_required"
    REJECTED = "rejected"


class RejectReason(Enum):
    """Coarse, caller-safe reason attached to rejected results."""
    INVALID_CREDENTIALS = "invalid_credentials"
    MFA_INVALID = "mfa_invalid"
    TOKEN_INVALID = "token_invalid"
    TOKEN_EXPIRED = "token_expired"


@dataclass
class AuthResult:
    """Outcome of login / verify_mfa / refresh."""
    status: AuthStatus
    message: str = ""
    user_id: Optional[str] = None
    access_token: Optional[str] = None
    refresh_token: Optional[str] = None
    access_expires_at: Optional[int] = None
    mfa_method: Optional[MFAMethod] = None
    challenge_token: Optional[str] = None
    reason: Optional[RejectReason] = None

    @property
    def success(self) -> bool:
        return self.status == AuthStatus.AUTHENTICATED

    def __repr__(self) -> str:
        return (
            f"AuthResult(status={self.status.value!r}, "
            f"user_id={self.user_id!r}, message={self.message!r})"
        )


def _rejected(message: str, reason: RejectReason) -> AuthResult:
    return AuthResult(status=AuthStatus.REJECTED, message=message, reason=reason)


class Authenticator:
    """
    Complete authentication flow: passwords, MFA challenges and tokens.

    Example:
        >>> auth = Authenticator(identity_store, token_store, signer, engine)
        >>> auth.register("alice@example.com", "correcthorsebattery")
        >>> result = auth.login("alice@example.com", "correcthorsebattery")
        >>> if result.status == AuthStatus.MFA_REQUIRED:
        ...     result = auth.verify_mfa(result.challenge_token, code)
        >>> result.access_token
    """

    def __init__(self, identity_store: IdentityStore,
                 token_store: RefreshTokenStore,
                 signer: TokenSigner,
                 mfa_engine: MFAEngine,
                 hasher: Optional[PasswordHasher_] = None,
                 config: Optional[AuthConfig] = None,
                 audit: Optional[AuditLog] = None):
        """
        Initialize the authenticator.

        Args:
            identity_store: External identity persistence
            token_store: External refresh token persistence
            signer: Issues and verifies access/challenge tokens; build it
                with TokenSigner.from_config so issuer and leeway agree
            mfa_engine: Second-factor engine
            hasher: Password hasher (default Argon2id parameters if None)
            config: Engine tunables
            audit: Audit trail (a private one is created if None)

        Raises:
            ValueError: If the signer's issuer or leeway differ from config
        """
        config = config or DEFAULT_CONFIG
        if (signer.issuer != config.token_issuer
                or signer.leeway != config.token_leeway_seconds):
            raise ValueError("Token signer does not match the configured "
                             "issuer and leeway")
        self._identities = identity_store
        self._tokens = token_store
        self._signer = signer
        self._mfa = mfa_engine
        self._hasher = hasher or PasswordHasher_()
        self._config = config
        self._audit = audit or AuditLog()
        self._dummy_hash: Optional[str] = None

    @property
    def audit(self) -> AuditLog:
        return self._audit

    # ========================================================================
    # Registration
    # ========================================================================

    def register(self, email: str, password: str,
                 phone_number: Optional[str] = None,
                 tenant_id: Optional[str] = None,
                 now: Optional[float] = None) -> Identity:
        """
        Create an identity with a hashed password.

        Args:
            email: Login email (unique per store)
            password: Plaintext password
            phone_number: Optional number for SMS codes
            tenant_id: Optional tenant the identity belongs to
            now: Unix timestamp (uses current time if None)

        Returns:
            The stored identity

        Raises:
            ValueError: Malformed email
            WeakPassword: Password violates the policy
            DuplicateIdentity: Email already registered
        """
        email = email.strip() if isinstance(email, str) else ""
        local, _, domain = email.partition('@')
        if not local or '.' not in domain:
            raise ValueError("Invalid email address")

        if now is None:
            now = time.time()
        identity = self._identities.create(Identity(
            email=email,
            credential_hash=self._hasher.hash(password),
            tenant_id=tenant_id,
            phone_number=phone_number,
            password_changed_at=now,
        ))
        logger.info("Registered identity %s", identity.id)
        self._audit.record(EventType.REGISTERED, identity.id)
        return identity

    # ========================================================================
    # Login state machine
    # ========================================================================

    def login(self, email: str, password: str,
              now: Optional[float] = None) -> AuthResult:
        """
        First factor.

        Returns:
            AUTHENTICATED with access + refresh tokens when MFA is off,
            MFA_REQUIRED with a challenge token when it is on, or REJECTED
            with the generic "invalid credentials" message.
        """
        if now is None:
            now = time.time()
        if not isinstance(email, str) or not isinstance(password, str):
            return self._reject_login(None, "non-string input")

        try:
            identity = self._identities.find_by_email(email)
        except NotFound:
            # spend the same hashing work as a real verification
            self._burn_verification(password)
            return self._reject_login(email, "unknown email")

        try:
            password_ok = self._hasher.verify(identity.credential_hash, password)
        except HashFormatError as e:
            logger.warning("Malformed credential hash for identity %s: %s",
                           identity.id, e)
            return self._reject_login(identity.id, "malformed stored hash")

        if not password_ok:
            return self._reject_login(identity.id, "wrong password")

        self._maybe_rehash(identity, password)
        self._identities.update(identity.id, last_login_at=now)

        if identity.mfa_enabled:
            return self._challenge(identity, now)

        self._audit.record(EventType.LOGIN_SUCCESS, identity.id)
        return self._authenticated(identity.id, now)

    def verify_mfa(self, challenge_token: str, code: str,
                   now: Optional[float] = None) -> AuthResult:
        """
        Second factor.

        Returns:
            AUTHENTICATED with access + refresh tokens, or REJECTED
            (reason TOKEN_EXPIRED for an expired challenge, MFA_INVALID
            for everything else).
        """
        if now is None:
            now = time.time()

        try:
            claims = self._signer.verify(
                challenge_token, self._config.challenge_audience, now=now
            )
        except TokenExpired:
            logger.debug("MFA challenge token expired")
            self._audit.record(EventType.MFA_FAILED, reason='challenge_expired')
            return _rejected(CHALLENGE_EXPIRED_MESSAGE, RejectReason.TOKEN_EXPIRED)
        except TokenInvalid as e:
            logger.debug("MFA challenge token rejected: %s", e)
            self._audit.record(EventType.MFA_FAILED, reason='challenge_invalid')
            return _rejected(INVALID_MFA_MESSAGE, RejectReason.MFA_INVALID)

        try:
            identity = self._identities.find_by_id(claims.subject)
        except NotFound:
            logger.debug("MFA challenge subject no longer exists")
            return _rejected(INVALID_MFA_MESSAGE, RejectReason.MFA_INVALID)

        try:
            self._mfa.verify(identity, code, now=now)
        except MFAInvalid:
            return _rejected(INVALID_MFA_MESSAGE, RejectReason.MFA_INVALID)

        self._audit.record(EventType.LOGIN_SUCCESS, identity.id, mfa=True)
        return self._authenticated(identity.id, now)

    # ========================================================================
    # Tokens
    # ========================================================================

    def refresh(self, refresh_token: str,
                now: Optional[float] = None) -> AuthResult:
        """
        Rotate a refresh token.

        The presented value is single use: on success it is deleted and a
        new access + refresh pair is returned. When two calls race on the
        same value only the one whose delete succeeds wins.

        Raises:
            StoreError: If the token store fails while rotating
        """
        if now is None:
            now = time.time()

        try:
            record = self._tokens.find_by_value(refresh_token)
        except NotFound:
            return self._reject_refresh(None, "unknown value",
                                        INVALID_REFRESH_MESSAGE,
                                        RejectReason.TOKEN_INVALID)

        if record.kind != TokenKind.REFRESH:
            return self._reject_refresh(record.user_id, "wrong token kind",
                                        INVALID_REFRESH_MESSAGE,
                                        RejectReason.TOKEN_INVALID)
        if record.is_expired(now):
            return self._reject_refresh(record.user_id, "expired",
                                        EXPIRED_REFRESH_MESSAGE,
                                        RejectReason.TOKEN_EXPIRED)

        access_token, claims = self._signer.mint(
            record.user_id, self._config.access_audience,
            self._config.access_token_ttl, now=now,
        )
        replacement = self._tokens.create(RefreshTokenRecord.new(
            record.user_id, self._config.refresh_token_ttl, now=now
        ))

        try:
            deleted = self._tokens.delete_by_id(record.id)
        except Exception:
            logger.error("Refresh rotation failed for identity %s; "
                         "withdrawing replacement token", record.user_id)
            self._tokens.delete_by_id(replacement.id)
            raise

        if not deleted:
            self._tokens.delete_by_id(replacement.id)
            return self._reject_refresh(record.user_id, "already rotated",
                                        INVALID_REFRESH_MESSAGE,
                                        RejectReason.TOKEN_INVALID)

        self._audit.record(EventType.TOKEN_REFRESHED, record.user_id)
        return AuthResult(
            status=AuthStatus.AUTHENTICATED,
            message="token refreshed",
            user_id=record.user_id,
            access_token=access_token,
            refresh_token=replacement.value,
            access_expires_at=claims.expires_at,
        )

    def validate_access_token(self, token: str,
                              now: Optional[float] = None) -> TokenClaims:
        """
        Check an access token presented to the application.

        Raises:
            TokenInvalid: Bad token or wrong audience (challenge tokens
                are refused here)
            TokenExpired: Token past its expiry
        """
        return self._signer.verify(token, self._config.access_audience, now=now)

    def identity_for_access_token(self, token: str,
                                  now: Optional[float] = None) -> Identity:
        """Resolve the identity behind a valid access token."""
        claims = self.validate_access_token(token, now=now)
        try:
            return self._identities.find_by_id(claims.subject)
        except NotFound:
            raise TokenInvalid("token subject no longer exists")

    def logout(self, refresh_token: str) -> bool:
        """
        Revoke one refresh token.

        Returns:
            True if a token was revoked
        """
        try:
            record = self._tokens.find_by_value(refresh_token)
        except NotFound:
            return False
        revoked = self._tokens.delete_by_id(record.id)
        if revoked:
            self._audit.record(EventType.LOGOUT, record.user_id)
        return revoked

    def logout_everywhere(self, user_id: str) -> int:
        """Revoke every refresh token of a user; returns how many."""
        count = self._tokens.delete_for_user(user_id)
        self._audit.record(EventType.LOGOUT, user_id, everywhere=True,
                           revoked=count)
        return count

    def purge_expired_tokens(self, now: Optional[float] = None) -> int:
        """Delete expired refresh tokens; returns how many."""
        count = self._tokens.delete_expired(now)
        if count:
            logger.info("Purged %d expired refresh tokens", count)
        return count

    # ========================================================================
    # Password management
    # ========================================================================

    def change_password(self, user_id: str, old_password: str,
                        new_password: str,
                        now: Optional[float] = None) -> int:
        """
        Replace a password and sign the user out everywhere.

        Returns:
            Number of refresh tokens revoked

        Raises:
            InvalidCredentials: old_password does not match
            WeakPassword: new_password violates the policy
        """
        identity = self._identities.find_by_id(user_id)
        try:
            old_ok = self._hasher.verify(identity.credential_hash, old_password)
        except HashFormatError as e:
            logger.warning("Malformed credential hash for identity %s: %s",
                           user_id, e)
            old_ok = False
        if not old_ok:
            raise InvalidCredentials(INVALID_CREDENTIALS_MESSAGE)

        if now is None:
            now = time.time()
        self._identities.update(
            user_id,
            credential_hash=self._hasher.hash(new_password),
            password_changed_at=now,
        )
        revoked = self._tokens.delete_for_user(user_id)
        self._audit.record(EventType.PASSWORD_CHANGED, user_id, revoked=revoked)
        return revoked

    # ========================================================================
    # MFA management
    # ========================================================================

    def enroll_totp(self, user_id: str) -> OTPEnrollment:
        return self._mfa.enroll_totp(self._identities.find_by_id(user_id))

    def enroll_hotp(self, user_id: str) -> OTPEnrollment:
        return self._mfa.enroll_hotp(self._identities.find_by_id(user_id))

    def enroll_sms(self, user_id: str, phone_number: Optional[str] = None,
                   now: Optional[float] = None) -> CodeDispatch:
        """Switch a user to SMS codes and send the first one."""
        if phone_number:
            self._identities.update(user_id, phone_number=phone_number)
        return self._mfa.issue_sms_code(self._identities.find_by_id(user_id),
                                        now=now)

    def enroll_email(self, user_id: str,
                     now: Optional[float] = None) -> CodeDispatch:
        """Switch a user to email codes and send the first one."""
        return self._mfa.issue_email_code(self._identities.find_by_id(user_id),
                                          now=now)

    def confirm_mfa(self, user_id: str, code: str,
                    now: Optional[float] = None) -> Identity:
        """
        Verify the enrolled method once, turning MFA on.

        Raises:
            MFAInvalid: Wrong, expired or consumed code
        """
        return self._mfa.verify(self._identities.find_by_id(user_id), code,
                                now=now)

    def generate_backup_codes(self, user_id: str) -> List[str]:
        return self._mfa.generate_backup_codes(self._identities.find_by_id(user_id))

    def revoke_mfa(self, user_id: str) -> Identity:
        """Turn MFA off and clear every MFA field."""
        return self._mfa.revoke(self._identities.find_by_id(user_id))

    def mfa_qr(self, user_id: str, fmt: str = 'ascii'):
        """QR code for the user's TOTP/HOTP enrollment."""
        return self._mfa.provisioning_qr(self._identities.find_by_id(user_id), fmt)

    # ========================================================================
    # Helpers
    # ========================================================================

    def _challenge(self, identity: Identity, now: float) -> AuthResult:
        if identity.mfa_method == MFAMethod.SMS:
            self._mfa.issue_sms_code(identity, now=now)
        elif identity.mfa_method == MFAMethod.EMAIL:
            self._mfa.issue_email_code(identity, now=now)

        challenge, _ = self._signer.mint(
            identity.id, self._config.challenge_audience,
            self._config.challenge_token_ttl, now=now,
        )
        self._audit.record(EventType.MFA_CHALLENGE_ISSUED, identity.id,
                           method=identity.mfa_method.value)
        return AuthResult(
            status=AuthStatus.MFA_REQUIRED,
            message="MFA required",
            user_id=identity.id,
            mfa_method=identity.mfa_method,
            challenge_token=challenge,
        )

    def _authenticated(self, user_id: str, now: float) -> AuthResult:
        access_token, claims = self._signer.mint(
            user_id, self._config.access_audience,
            self._config.access_token_ttl, now=now,
        )
        record = self._tokens.create(RefreshTokenRecord.new(
            user_id, self._config.refresh_token_ttl, now=now
        ))
        return AuthResult(
            status=AuthStatus.AUTHENTICATED,
            message="authenticated",
            user_id=user_id,
            access_token=access_token,
            refresh_token=record.value,
            access_expires_at=claims.expires_at,
        )

    def _maybe_rehash(self, identity: Identity, password: str) -> None:
        try:
            outdated = self._hasher.needs_rehash(identity.credential_hash)
        except HashFormatError:
            return
        if outdated:
            self._identities.update(identity.id,
                                    credential_hash=self._hasher.hash(password))
            logger.info("Re-hashed password for identity %s", identity.id)
            self._audit.record(EventType.PASSWORD_REHASHED, identity.id)

    def _burn_verification(self, password: str) -> None:
        if self._dummy_hash is None:
            self._dummy_hash = self._hasher.hash("Unused!Placeholder1")
        self._hasher.verify(self._dummy_hash, password)

    def _reject_login(self, identifier: Optional[str], cause: str) -> AuthResult:
        logger.debug("Login rejected: %s", cause)
        self._audit.record(EventType.LOGIN_FAILED, identifier)
        return _rejected(INVALID_CREDENTIALS_MESSAGE,
                         RejectReason.INVALID_CREDENTIALS)

    def _reject_refresh(self, user_id: Optional[str], cause: str,
                        message: str, reason: RejectReason) -> AuthResult:
        logger.debug("Refresh rejected: %s", cause)
        self._audit.record(EventType.TOKEN_REFRESH_FAILED, user_id)
        return _rejected(message, reason)
