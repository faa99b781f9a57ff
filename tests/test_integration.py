"""
Integration tests for AuthVault.

Tests end-to-end workflows combining multiple modules.
"""

import pytest

from authvault import AuthConfig, AuthStatus, Authenticator, MFAMethod
from authvault.errors import NotificationFailed
from authvault.integration.audit import AuditLog, EventType
from authvault.mfa import MFAEngine, RecordingNotifier, base32_to_secret, totp
from authvault.passwords import PasswordHasher_
from authvault.stores import InMemoryIdentityStore, InMemoryRefreshTokenStore
from authvault.tokens import TokenSigner, generate_key

from .conftest import FAST_ARGON2


def build(config=None, notifier=None):
    """Wire a complete engine from the public packages."""
    config = config or AuthConfig()
    identities = InMemoryIdentityStore()
    audit = AuditLog()
    engine = MFAEngine(identities, notifier or RecordingNotifier(),
                       config=config, audit=audit)
    auth = Authenticator(
        identities,
        InMemoryRefreshTokenStore(),
        TokenSigner.from_config(generate_key(), config),
        engine,
        hasher=PasswordHasher_(**FAST_ARGON2),
        config=config,
        audit=audit,
    )
    return auth, audit


class TestAuthWorkflow:
    """Integration tests for authentication workflow."""

    def test_full_registration_login_flow(self):
        """Register -> login -> refresh -> logout."""
        auth, audit = build()
        auth.register("ivan@example.com", "correcthorsebattery")

        result = auth.login("ivan@example.com", "correcthorsebattery")
        assert result.success

        rotated = auth.refresh(result.refresh_token)
        assert rotated.success
        assert auth.validate_access_token(rotated.access_token).subject == result.user_id

        assert auth.logout(rotated.refresh_token)
        assert not auth.refresh(rotated.refresh_token).success

        types = [e.event_type for e in audit.get_all_events()]
        assert types[:2] == [EventType.REGISTERED, EventType.LOGIN_SUCCESS]
        assert EventType.TOKEN_REFRESHED in types
        assert EventType.LOGOUT in types

    def test_totp_enrollment_and_login(self):
        """Enroll TOTP, confirm it, then log in with both factors."""
        auth, audit = build()
        identity = auth.register("judy@example.com", "correcthorsebattery")

        enrollment = auth.enroll_totp(identity.id)
        assert "judy%40example.com" in enrollment.provisioning_uri
        secret = base32_to_secret(enrollment.secret)

        # still single-factor until confirmed
        assert auth.login("judy@example.com", "correcthorsebattery").success

        auth.confirm_mfa(identity.id, totp(secret))
        challenge = auth.login("judy@example.com", "correcthorsebattery")
        assert challenge.status == AuthStatus.MFA_REQUIRED
        assert challenge.mfa_method == MFAMethod.TOTP

        final = auth.verify_mfa(challenge.challenge_token, totp(secret))
        assert final.success
        assert audit.get_events_by_type(EventType.MFA_CHALLENGE_ISSUED)

    def test_lost_device_recovery(self):
        """Backup code login, then revoke and re-enroll."""
        auth, _ = build()
        identity = auth.register("kate@example.com", "correcthorsebattery")
        secret = base32_to_secret(auth.enroll_totp(identity.id).secret)
        auth.confirm_mfa(identity.id, totp(secret))
        codes = auth.generate_backup_codes(identity.id)

        challenge = auth.login("kate@example.com", "correcthorsebattery")
        assert auth.verify_mfa(challenge.challenge_token, codes[3]).success

        auth.revoke_mfa(identity.id)
        assert auth.login("kate@example.com", "correcthorsebattery").success

        new_secret = base32_to_secret(auth.enroll_totp(identity.id).secret)
        auth.confirm_mfa(identity.id, totp(new_secret))
        challenge = auth.login("kate@example.com", "correcthorsebattery")
        assert challenge.status == AuthStatus.MFA_REQUIRED
        # the old backup codes were cleared by revocation
        assert not auth.verify_mfa(challenge.challenge_token, codes[4]).success

    def test_sms_gateway_outage(self):
        """An SMS user cannot get a challenge while the gateway is down."""
        notifier = RecordingNotifier()
        auth, _ = build(notifier=notifier)
        identity = auth.register("liam@example.com", "correcthorsebattery",
                                 phone_number="+15550123")
        auth.enroll_sms(identity.id)
        code = notifier.last('sms').body.rsplit(' ', 1)[-1]
        auth.confirm_mfa(identity.id, code)

        notifier.fail = True
        with pytest.raises(NotificationFailed):
            auth.login("liam@example.com", "correcthorsebattery")

        notifier.fail = False
        result = auth.login("liam@example.com", "correcthorsebattery")
        assert result.status == AuthStatus.MFA_REQUIRED
        code = notifier.last('sms').body.rsplit(' ', 1)[-1]
        assert auth.verify_mfa(result.challenge_token, code).success

    def test_custom_config(self):
        """Configured lifetimes should flow into issued tokens."""
        config = AuthConfig.from_mapping({
            'access_token_ttl': 60,
            'mfa_issuer_name': "Example Corp",
            'unknown_key': "ignored",
        })
        auth, _ = build(config=config)
        identity = auth.register("mona@example.com", "correcthorsebattery")
        result = auth.login("mona@example.com", "correcthorsebattery", now=1000)
        assert result.access_expires_at == 1060
        assert "Example%20Corp" in auth.enroll_totp(identity.id).provisioning_uri

    def test_password_change_signs_out_everywhere(self):
        """All devices should lose their refresh tokens."""
        auth, _ = build()
        identity = auth.register("nina@example.com", "correcthorsebattery")
        laptop = auth.login("nina@example.com", "correcthorsebattery")
        phone = auth.login("nina@example.com", "correcthorsebattery")

        assert auth.change_password(identity.id, "correcthorsebattery",
                                    "batterystaplehorse") == 2
        assert not auth.refresh(laptop.refresh_token).success
        assert not auth.refresh(phone.refresh_token).success
        assert auth.login("nina@example.com", "batterystaplehorse").success
