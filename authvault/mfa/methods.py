"""
MFA Method Engine

Per-method secret/counter/code lifecycle for:
- TOTP (RFC 6238, authenticator apps)
- HOTP (RFC 4226, counter-based tokens)
- SMS one-time codes
- Email one-time codes
- Backup codes

Enrollment and verification are separate operations. Enrollment never
turns MFA on by itself; a successful verification of the enrolled method
does. Every verification failure raises MFAInvalid regardless of whether
the format, the value, the expiry or the enrollment state was wrong.

Race-prone writes go through the identity store's conditional operations:
- backup codes are removed only if still present
- the HOTP counter is compare-and-set
- SMS/email codes are cleared only if they still match
"""

import logging
import secrets
import time
from dataclasses import dataclass
from typing import List, Optional

from ..config import (
    AuthConfig,
    DEFAULT_CONFIG,
    EMAIL_BODY_TEMPLATE,
    EMAIL_SUBJECT_TEMPLATE,
    SMS_MESSAGE_TEMPLATE,
)
from ..errors import MFAInvalid, NotificationFailed
from ..identity import Identity, IdentityStore, MFAMethod, MFA_CLEARED_FIELDS
from ..integration.audit import AuditLog, EventType
from .notifier import Notifier
from .otp import (
    base32_to_secret,
    generate_secret,
    provisioning_uri,
    render_qr_ascii,
    render_qr_svg,
    secret_to_base32,
    verify_hotp,
    verify_totp,
)

logger = logging.getLogger(__name__)


@dataclass
class OTPEnrollment:
    """Result of a TOTP/HOTP enrollment, shown to the user once."""
    method: MFAMethod
    secret: str             # base32
    provisioning_uri: str
    counter: int = 0


@dataclass
class CodeDispatch:
    """Result of sending an SMS/email one-time code."""
    method: MFAMethod
    expires_at: float


def generate_code(length: int, alphabet: str) -> str:
    """Random code drawn uniformly from alphabet."""
    return ''.join(secrets.choice(alphabet) for _ in range(length))


class MFAEngine:
    """
    Second-factor enrollment and verification.

    Example:
        >>> engine = MFAEngine(identity_store, notifier)
        >>> enrollment = engine.enroll_totp(identity)
        >>> engine.verify_totp(identity, code_from_app)
    """

    def __init__(self, identity_store: IdentityStore, notifier: Notifier,
                 config: Optional[AuthConfig] = None,
                 audit: Optional[AuditLog] = None):
        """
        Initialize the engine.

        Args:
            identity_store: Store holding the MFA fields
            notifier: Delivers SMS/email codes
            config: Engine tunables
            audit: Audit trail (a private one is created if None)
        """
        self._store = identity_store
        self._notifier = notifier
        self._config = config or DEFAULT_CONFIG
        self._audit = audit or AuditLog()

    # ========================================================================
    # TOTP
    # ========================================================================

    def enroll_totp(self, identity: Identity) -> OTPEnrollment:
        """
        Start TOTP enrollment with a fresh secret.

        MFA stays disabled until verify_totp() succeeds.
        """
        secret_b32 = secret_to_base32(generate_secret())
        self._store.update(
            identity.id,
            mfa_secret=secret_b32,
            mfa_method=MFAMethod.TOTP,
            mfa_enabled=False,
            mfa_counter=0,
            mfa_otp_code=None,
            mfa_otp_expiry=None,
        )
        self._audit.record(EventType.MFA_ENROLLED, identity.id, method='totp')
        return OTPEnrollment(
            method=MFAMethod.TOTP,
            secret=secret_b32,
            provisioning_uri=provisioning_uri(
                secret_b32, identity.email, self._config.mfa_issuer_name, 'totp'
            ),
        )

    def verify_totp(self, identity: Identity, code: str,
                    now: Optional[float] = None) -> Identity:
        """
        Verify a TOTP code (30 s step, +/- 1 step) and enable MFA.

        Raises:
            MFAInvalid: On any failure
        """
        if identity.mfa_method != MFAMethod.TOTP or not identity.mfa_secret:
            self._fail(identity, "totp not enrolled")
        secret = self._decode_secret(identity)
        if not verify_totp(secret, code, timestamp=now):
            self._fail(identity, "totp code mismatch")
        return self._enable(identity, 'totp')

    # ========================================================================
    # HOTP
    # ========================================================================

    def enroll_hotp(self, identity: Identity) -> OTPEnrollment:
        """Start HOTP enrollment with a fresh secret and counter 0."""
        secret_b32 = secret_to_base32(generate_secret())
        self._store.update(
            identity.id,
            mfa_secret=secret_b32,
            mfa_method=MFAMethod.HOTP,
            mfa_enabled=False,
            mfa_counter=0,
            mfa_otp_code=None,
            mfa_otp_expiry=None,
        )
        self._audit.record(EventType.MFA_ENROLLED, identity.id, method='hotp')
        return OTPEnrollment(
            method=MFAMethod.HOTP,
            secret=secret_b32,
            provisioning_uri=provisioning_uri(
                secret_b32, identity.email, self._config.mfa_issuer_name,
                'hotp', counter=0
            ),
            counter=0,
        )

    def verify_hotp(self, identity: Identity, code: str) -> Identity:
        """
        Verify an HOTP code at the stored counter (plus look-ahead window).

        On success the counter moves past the matched value, so the same
        code can never be accepted twice.

        Raises:
            MFAInvalid: On any failure, including losing a concurrent race
        """
        if identity.mfa_method != MFAMethod.HOTP or not identity.mfa_secret:
            self._fail(identity, "hotp not enrolled")
        secret = self._decode_secret(identity)
        matched = verify_hotp(
            secret, code, identity.mfa_counter, window=self._config.hotp_window
        )
        if matched is None:
            self._fail(identity, "hotp code mismatch")
        if not self._store.advance_hotp_counter(
                identity.id, identity.mfa_counter, matched + 1):
            self._fail(identity, "hotp counter already advanced")
        return self._enable(identity, 'hotp')

    # ========================================================================
    # SMS / Email one-time codes
    # ========================================================================

    def issue_sms_code(self, identity: Identity,
                       now: Optional[float] = None) -> CodeDispatch:
        """
        Generate an SMS code (5 minute expiry) and send it.

        Raises:
            NotificationFailed: No phone number, or delivery failed. The
                stored code is rolled back before raising.
        """
        if not identity.phone_number:
            raise NotificationFailed("no phone number on file")
        return self._issue_code(identity, MFAMethod.SMS,
                                self._config.sms_code_ttl, now)

    def issue_email_code(self, identity: Identity,
                         now: Optional[float] = None) -> CodeDispatch:
        """
        Generate an email code (15 minute expiry) and send it.

        Raises:
            NotificationFailed: Delivery failed (stored code rolled back)
        """
        return self._issue_code(identity, MFAMethod.EMAIL,
                                self._config.email_code_ttl, now)

    def verify_otp_code(self, identity: Identity, code: str,
                        now: Optional[float] = None) -> Identity:
        """
        Verify an SMS/email code. The code is single-use.

        Raises:
            MFAInvalid: On any failure
        """
        if identity.mfa_method not in (MFAMethod.SMS, MFAMethod.EMAIL):
            self._fail(identity, "no sms/email method")
        if not identity.mfa_otp_code or identity.mfa_otp_expiry is None:
            self._fail(identity, "no active code")
        if now is None:
            now = time.time()
        if now > identity.mfa_otp_expiry:
            self._fail(identity, "code expired")
        if not isinstance(code, str):
            self._fail(identity, "code is not a string")
        if not self._store.consume_otp_code(identity.id, code.strip().upper()):
            self._fail(identity, "code mismatch or already used")
        return self._enable(identity, identity.mfa_method.value)

    def _issue_code(self, identity: Identity, method: MFAMethod,
                    ttl: int, now: Optional[float]) -> CodeDispatch:
        if now is None:
            now = time.time()
        code = generate_code(self._config.otp_code_length,
                             self._config.otp_code_alphabet)
        expires_at = now + ttl

        self._store.update(
            identity.id,
            mfa_otp_code=code,
            mfa_otp_expiry=expires_at,
            mfa_method=method,
            mfa_secret=None,
            mfa_counter=0,
        )

        try:
            delivered = self._deliver(identity, method, code)
        except Exception as e:
            logger.warning("%s delivery raised for identity %s: %s",
                           method.value, identity.id, e)
            delivered = False

        if not delivered:
            # roll back so no undeliverable code stays active
            self._store.update(
                identity.id,
                mfa_otp_code=None,
                mfa_otp_expiry=None,
                mfa_method=identity.mfa_method,
                mfa_secret=identity.mfa_secret,
                mfa_counter=identity.mfa_counter,
            )
            self._audit.record(EventType.MFA_CODE_SEND_FAILED, identity.id,
                               method=method.value)
            raise NotificationFailed(f"{method.value} code could not be delivered")

        self._audit.record(EventType.MFA_CODE_SENT, identity.id,
                           method=method.value)
        return CodeDispatch(method=method, expires_at=expires_at)

    def _deliver(self, identity: Identity, method: MFAMethod, code: str) -> bool:
        issuer = self._config.mfa_issuer_name
        if method == MFAMethod.SMS:
            return bool(self._notifier.send_sms(
                identity.phone_number,
                SMS_MESSAGE_TEMPLATE.format(issuer=issuer, code=code),
            ))
        return bool(self._notifier.send_email(
            identity.email,
            EMAIL_SUBJECT_TEMPLATE.format(issuer=issuer),
            EMAIL_BODY_TEMPLATE.format(code=code),
        ))

    # ========================================================================
    # Backup codes
    # ========================================================================

    def generate_backup_codes(self, identity: Identity) -> List[str]:
        """
        Generate a fresh set of backup codes, replacing any prior set.

        Returns:
            The plaintext codes (shown to the user once)
        """
        codes: List[str] = []
        while len(codes) < self._config.backup_code_count:
            code = generate_code(self._config.backup_code_length,
                                 self._config.otp_code_alphabet)
            if code not in codes:
                codes.append(code)
        self._store.update(identity.id, mfa_backup_codes=codes)
        self._audit.record(EventType.BACKUP_CODES_GENERATED, identity.id,
                           count=len(codes))
        return list(codes)

    def verify_backup_code(self, identity: Identity, code: str) -> Identity:
        """
        Consume one backup code. Does not change mfa_enabled.

        Raises:
            MFAInvalid: Unknown or already consumed code
        """
        if not isinstance(code, str) or not code:
            self._fail(identity, "empty backup code")
        if not self._store.remove_backup_code(identity.id, code):
            self._fail(identity, "backup code not present")
        updated = self._store.find_by_id(identity.id)
        self._audit.record(EventType.BACKUP_CODE_USED, identity.id,
                           remaining=len(updated.mfa_backup_codes))
        return updated

    # ========================================================================
    # Dispatch / lifecycle
    # ========================================================================

    def verify(self, identity: Identity, code: str,
               now: Optional[float] = None) -> Identity:
        """
        Verify a second factor with the identity's current method.

        When MFA is already enabled and the method check fails, the code
        is tried as a backup code.

        Raises:
            MFAInvalid: On any failure
        """
        verifiers = {
            MFAMethod.TOTP: lambda: self.verify_totp(identity, code, now),
            MFAMethod.HOTP: lambda: self.verify_hotp(identity, code),
            MFAMethod.SMS: lambda: self.verify_otp_code(identity, code, now),
            MFAMethod.EMAIL: lambda: self.verify_otp_code(identity, code, now),
        }
        verifier = verifiers.get(identity.mfa_method)
        try:
            if verifier is None:
                self._fail(identity, "no mfa method")
            return verifier()
        except MFAInvalid:
            if identity.mfa_enabled and identity.mfa_backup_codes:
                return self.verify_backup_code(identity, code)
            raise

    def revoke(self, identity: Identity) -> Identity:
        """Clear every MFA field in one update."""
        updated = self._store.update(identity.id, **MFA_CLEARED_FIELDS)
        self._audit.record(EventType.MFA_REVOKED, identity.id)
        return updated

    def provisioning_uri(self, identity: Identity) -> str:
        """otpauth:// URI for an identity enrolled in TOTP or HOTP."""
        if identity.mfa_method not in (MFAMethod.TOTP, MFAMethod.HOTP) \
                or not identity.mfa_secret:
            raise ValueError("identity has no TOTP/HOTP secret")
        return provisioning_uri(
            identity.mfa_secret,
            identity.email,
            self._config.mfa_issuer_name,
            identity.mfa_method.value,
            counter=identity.mfa_counter,
        )

    def provisioning_qr(self, identity: Identity, fmt: str = 'ascii'):
        """
        QR code of the provisioning URI.

        Args:
            fmt: 'ascii' (str) or 'svg' (bytes)
        """
        uri = self.provisioning_uri(identity)
        if fmt == 'ascii':
            return render_qr_ascii(uri)
        if fmt == 'svg':
            return render_qr_svg(uri)
        raise ValueError(f"Unknown QR format: {fmt}")

    # ========================================================================
    # Helpers
    # ========================================================================

    def _decode_secret(self, identity: Identity) -> bytes:
        try:
            return base32_to_secret(identity.mfa_secret)
        except ValueError:
            logger.warning("Stored MFA secret for identity %s is not valid base32",
                           identity.id)
            self._fail(identity, "undecodable secret")

    def _enable(self, identity: Identity, method: str) -> Identity:
        updated = self._store.update(identity.id, mfa_enabled=True)
        self._audit.record(EventType.MFA_VERIFIED, identity.id, method=method)
        return updated

    def _fail(self, identity: Identity, cause: str):
        logger.debug("MFA verification failed for identity %s: %s",
                     identity.id, cause)
        self._audit.record(EventType.MFA_FAILED, identity.id,
                           method=identity.mfa_method.value)
        raise MFAInvalid("invalid MFA token")
