"""
Unit tests for the authentication orchestrator.

Tests:
- Registration
- Login with and without MFA (all methods)
- MFA challenge verification
- Refresh token rotation, logout, purge
- Access token validation
- Password change and MFA management
"""

import pytest

from authvault.auth import (
    Authenticator,
    INVALID_CREDENTIALS_MESSAGE,
    INVALID_MFA_MESSAGE,
    AuthStatus,
    RejectReason,
)
from authvault.config import AuthConfig
from authvault.errors import (
    DuplicateIdentity,
    InvalidCredentials,
    MFAInvalid,
    TokenExpired,
    TokenInvalid,
    WeakPassword,
)
from authvault.identity import MFAMethod
from authvault.integration.audit import EventType
from authvault.mfa import MFAEngine, RecordingNotifier
from authvault.mfa.otp import base32_to_secret, hotp, totp
from authvault.passwords.hasher import PasswordHasher_
from authvault.tokens import TokenSigner, generate_key

from .conftest import EMAIL, PASSWORD


NOW = 1_700_000_000


def enable_totp(authenticator, user_id, now=NOW):
    """Enroll and confirm TOTP; returns the raw secret."""
    enrollment = authenticator.enroll_totp(user_id)
    secret = base32_to_secret(enrollment.secret)
    authenticator.confirm_mfa(user_id, totp(secret, now), now=now)
    return secret


class TestRegistration:
    """Tests for identity registration."""

    def test_register(self, authenticator, identity_store):
        """Registration should store an Argon2id hash, not the password."""
        identity = authenticator.register("bob@example.com", PASSWORD, now=NOW)
        assert identity.id
        assert identity.credential_hash.startswith("$argon2id$")
        assert PASSWORD not in identity.credential_hash
        assert identity.password_changed_at == NOW
        assert not identity.mfa_enabled
        assert identity_store.find_by_email("bob@example.com").id == identity.id

    def test_duplicate_email(self, authenticator, user):
        """Emails should be unique, case-insensitively."""
        with pytest.raises(DuplicateIdentity):
            authenticator.register(EMAIL.upper(), PASSWORD)

    def test_weak_password(self, authenticator):
        """Short passwords should be refused."""
        with pytest.raises(WeakPassword):
            authenticator.register("carol@example.com", "short")

    @pytest.mark.parametrize("email", ["", "no-at-sign", "@example.com", "a@b"])
    def test_bad_email(self, authenticator, email):
        """Malformed emails should be refused."""
        with pytest.raises(ValueError):
            authenticator.register(email, PASSWORD)


class TestLogin:
    """Tests for the first factor."""

    def test_login_without_mfa(self, authenticator, user):
        """Correct password without MFA should authenticate."""
        result = authenticator.login(EMAIL, PASSWORD, now=NOW)
        assert result.status == AuthStatus.AUTHENTICATED
        assert result.success
        assert result.access_token
        assert result.refresh_token
        assert result.challenge_token is None
        assert result.user_id == user.id
        assert result.access_expires_at == NOW + 900

    def test_login_records_last_login(self, authenticator, identity_store, user):
        """Successful password check should stamp last_login_at."""
        authenticator.login(EMAIL, PASSWORD, now=NOW)
        assert identity_store.find_by_id(user.id).last_login_at == NOW

    def test_email_case_insensitive(self, authenticator, user):
        """Login should not depend on email case."""
        assert authenticator.login(EMAIL.upper(), PASSWORD, now=NOW).success

    def test_wrong_password(self, authenticator, user):
        """Wrong password should be rejected generically."""
        result = authenticator.login(EMAIL, "wrong-password", now=NOW)
        assert result.status == AuthStatus.REJECTED
        assert result.reason == RejectReason.INVALID_CREDENTIALS
        assert result.message == INVALID_CREDENTIALS_MESSAGE
        assert result.access_token is None

    def test_unknown_email_indistinguishable(self, authenticator, user):
        """Unknown email and wrong password should look identical."""
        unknown = authenticator.login("nobody@example.com", PASSWORD, now=NOW)
        wrong = authenticator.login(EMAIL, "wrong-password", now=NOW)
        assert unknown.status == wrong.status
        assert unknown.message == wrong.message
        assert unknown.reason == wrong.reason
        assert unknown.user_id is None and wrong.user_id is None

    def test_malformed_hash_indistinguishable(self, authenticator,
                                              identity_store, user):
        """A corrupted stored hash should look like a wrong password."""
        identity_store.update(user.id, credential_hash="$argon2id$corrupted")
        result = authenticator.login(EMAIL, PASSWORD, now=NOW)
        assert result.status == AuthStatus.REJECTED
        assert result.message == INVALID_CREDENTIALS_MESSAGE

    @pytest.mark.parametrize("stored", [
        "$argon2id$v=19$m=1024,t=1,p=1$AAAA$AAAAAAAA",
        "$argon2id$v=19$m=1,t=1,p=1$c2FsdHNhbHRzYWx0c2FsdA$aGFzaGhhc2g",
    ])
    def test_out_of_range_hash_indistinguishable(self, authenticator,
                                                 identity_store, user, stored):
        """A well-formed hash with impossible Argon2 parameters should look
        like a wrong password."""
        identity_store.update(user.id, credential_hash=stored)
        result = authenticator.login(EMAIL, PASSWORD, now=NOW)
        wrong = authenticator.login(EMAIL, "wrong-password", now=NOW)
        assert result.status == AuthStatus.REJECTED
        assert result.message == wrong.message == INVALID_CREDENTIALS_MESSAGE
        assert result.reason == RejectReason.INVALID_CREDENTIALS

    def test_non_string_input(self, authenticator, user):
        """Non-string credentials should be rejected, not crash."""
        assert authenticator.login(EMAIL, None, now=NOW).status == AuthStatus.REJECTED

    def test_failed_login_audited(self, authenticator, audit, user):
        """Failed logins should be recorded without the email."""
        authenticator.login(EMAIL, "wrong-password", now=NOW)
        events = audit.get_events_by_type(EventType.LOGIN_FAILED)
        assert events
        assert EMAIL not in audit.export_log()

    def test_rehash_on_login(self, identity_store, token_store, signer, engine,
                             config, audit, hasher):
        """Outdated hash parameters should be upgraded on login."""
        old_hasher = PasswordHasher_(memory_cost=2048, time_cost=1, parallelism=1)
        old = Authenticator(identity_store, token_store, signer, engine,
                            hasher=old_hasher, config=config, audit=audit)
        identity = old.register("dave@example.com", PASSWORD)

        current = Authenticator(identity_store, token_store, signer, engine,
                                hasher=hasher, config=config, audit=audit)
        assert current.login("dave@example.com", PASSWORD, now=NOW).success
        stored = identity_store.find_by_id(identity.id)
        assert not hasher.needs_rehash(stored.credential_hash)
        assert audit.get_events_by_type(EventType.PASSWORD_REHASHED)


class TestMFALogin:
    """Tests for the MFA challenge/response flow."""

    def test_totp_challenge(self, authenticator, user):
        """MFA users should get a challenge instead of tokens."""
        enable_totp(authenticator, user.id)
        result = authenticator.login(EMAIL, PASSWORD, now=NOW)
        assert result.status == AuthStatus.MFA_REQUIRED
        assert result.mfa_method == MFAMethod.TOTP
        assert result.challenge_token
        assert result.access_token is None
        assert result.refresh_token is None

    def test_totp_verify(self, authenticator, user):
        """A valid TOTP code should complete the login."""
        secret = enable_totp(authenticator, user.id)
        challenge = authenticator.login(EMAIL, PASSWORD, now=NOW).challenge_token
        result = authenticator.verify_mfa(challenge, totp(secret, NOW + 5),
                                          now=NOW + 5)
        assert result.status == AuthStatus.AUTHENTICATED
        assert result.access_token and result.refresh_token

    def test_wrong_code(self, authenticator, user):
        """A wrong code should be rejected with the generic message."""
        secret = enable_totp(authenticator, user.id)
        challenge = authenticator.login(EMAIL, PASSWORD, now=NOW).challenge_token
        code = totp(secret, NOW)
        wrong = "000000" if code != "000000" else "111111"
        result = authenticator.verify_mfa(challenge, wrong, now=NOW)
        assert result.status == AuthStatus.REJECTED
        assert result.reason == RejectReason.MFA_INVALID
        assert result.message == INVALID_MFA_MESSAGE

    def test_garbage_challenge(self, authenticator, user):
        """A forged challenge token should be rejected."""
        result = authenticator.verify_mfa("v1.local.forged", "123456", now=NOW)
        assert result.status == AuthStatus.REJECTED
        assert result.reason == RejectReason.MFA_INVALID

    def test_access_token_is_not_a_challenge(self, authenticator, user):
        """Access tokens must not be accepted as challenge tokens."""
        secret = enable_totp(authenticator, user.id)
        challenge = authenticator.login(EMAIL, PASSWORD, now=NOW).challenge_token
        access = authenticator.verify_mfa(challenge, totp(secret, NOW),
                                          now=NOW).access_token
        result = authenticator.verify_mfa(access, totp(secret, NOW), now=NOW)
        assert result.status == AuthStatus.REJECTED

    def test_challenge_is_not_an_access_token(self, authenticator, user):
        """Challenge tokens must not pass access-token validation."""
        enable_totp(authenticator, user.id)
        challenge = authenticator.login(EMAIL, PASSWORD, now=NOW).challenge_token
        with pytest.raises(TokenInvalid):
            authenticator.validate_access_token(challenge, now=NOW)

    def test_hotp_login(self, authenticator, user):
        """HOTP users should log in with the next counter code."""
        enrollment = authenticator.enroll_hotp(user.id)
        secret = base32_to_secret(enrollment.secret)
        authenticator.confirm_mfa(user.id, hotp(secret, 0))
        challenge = authenticator.login(EMAIL, PASSWORD, now=NOW).challenge_token
        assert authenticator.verify_mfa(challenge, hotp(secret, 1), now=NOW).success
        again = authenticator.login(EMAIL, PASSWORD, now=NOW).challenge_token
        assert not authenticator.verify_mfa(again, hotp(secret, 1), now=NOW).success

    def test_sms_login(self, authenticator, identity_store, notifier, user):
        """SMS users should receive a fresh code at login."""
        authenticator.enroll_sms(user.id, now=NOW)
        authenticator.confirm_mfa(
            user.id, identity_store.find_by_id(user.id).mfa_otp_code, now=NOW
        )
        sent_before = len(notifier.messages)

        result = authenticator.login(EMAIL, PASSWORD, now=NOW + 100)
        assert result.status == AuthStatus.MFA_REQUIRED
        assert result.mfa_method == MFAMethod.SMS
        assert len(notifier.messages) == sent_before + 1

        code = identity_store.find_by_id(user.id).mfa_otp_code
        assert code in notifier.last('sms').body
        assert authenticator.verify_mfa(result.challenge_token, code,
                                        now=NOW + 120).success

    def test_email_login(self, authenticator, identity_store, notifier, user):
        """Email users should receive a fresh code at login."""
        authenticator.enroll_email(user.id, now=NOW)
        authenticator.confirm_mfa(
            user.id, identity_store.find_by_id(user.id).mfa_otp_code, now=NOW
        )
        result = authenticator.login(EMAIL, PASSWORD, now=NOW + 100)
        assert result.mfa_method == MFAMethod.EMAIL
        code = identity_store.find_by_id(user.id).mfa_otp_code
        assert notifier.last('email').recipient == EMAIL
        assert authenticator.verify_mfa(result.challenge_token, code,
                                        now=NOW + 200).success

    def test_enroll_sms_sets_phone(self, authenticator, identity_store, notifier):
        """enroll_sms should store a newly supplied phone number."""
        identity = authenticator.register("erin@example.com", PASSWORD)
        authenticator.enroll_sms(identity.id, phone_number="+15550199", now=NOW)
        assert identity_store.find_by_id(identity.id).phone_number == "+15550199"
        assert notifier.last('sms').recipient == "+15550199"

    def test_backup_code_login(self, authenticator, user):
        """A backup code should complete an MFA login once."""
        enable_totp(authenticator, user.id)
        codes = authenticator.generate_backup_codes(user.id)
        challenge = authenticator.login(EMAIL, PASSWORD, now=NOW).challenge_token
        assert authenticator.verify_mfa(challenge, codes[0], now=NOW).success
        assert not authenticator.verify_mfa(challenge, codes[0], now=NOW).success

    def test_confirm_wrong_code(self, authenticator, user):
        """confirm_mfa should raise on a wrong code."""
        authenticator.enroll_totp(user.id)
        with pytest.raises(MFAInvalid):
            authenticator.confirm_mfa(user.id, "not-a-code", now=NOW)

    def test_revoke_mfa(self, authenticator, user):
        """After revocation, login should not ask for a second factor."""
        enable_totp(authenticator, user.id)
        authenticator.revoke_mfa(user.id)
        assert authenticator.login(EMAIL, PASSWORD, now=NOW).success

    def test_mfa_qr(self, authenticator, user):
        """QR codes should be available after TOTP enrollment."""
        authenticator.enroll_totp(user.id)
        assert authenticator.mfa_qr(user.id)


class TestTokens:
    """Tests for refresh, validation and logout."""

    def test_refresh_rotates(self, authenticator, user):
        """Refresh should issue new tokens and retire the old value."""
        first = authenticator.login(EMAIL, PASSWORD, now=NOW)
        second = authenticator.refresh(first.refresh_token, now=NOW + 60)
        assert second.success
        assert second.refresh_token != first.refresh_token
        assert second.access_token != first.access_token

        replay = authenticator.refresh(first.refresh_token, now=NOW + 61)
        assert replay.status == AuthStatus.REJECTED
        assert replay.reason == RejectReason.TOKEN_INVALID

        assert authenticator.refresh(second.refresh_token, now=NOW + 62).success

    def test_refresh_expired(self, authenticator, token_store, user):
        """Expired refresh tokens should be rejected."""
        result = authenticator.login(EMAIL, PASSWORD, now=NOW)
        later = NOW + 7 * 24 * 3600 + 1
        rejected = authenticator.refresh(result.refresh_token, now=later)
        assert rejected.status == AuthStatus.REJECTED
        assert rejected.reason == RejectReason.TOKEN_EXPIRED

    def test_refresh_unknown(self, authenticator):
        """Unknown values should be rejected."""
        result = authenticator.refresh("no-such-token", now=NOW)
        assert result.status == AuthStatus.REJECTED

    def test_refresh_withdraws_replacement_on_store_error(
            self, authenticator, token_store, user, monkeypatch):
        """A failing delete should propagate and leave no extra token."""
        result = authenticator.login(EMAIL, PASSWORD, now=NOW)
        original_delete = token_store.delete_by_id
        calls = []

        def flaky_delete(record_id):
            calls.append(record_id)
            if len(calls) == 1:
                raise ConnectionError("store down")
            return original_delete(record_id)

        monkeypatch.setattr(token_store, "delete_by_id", flaky_delete)
        with pytest.raises(ConnectionError):
            authenticator.refresh(result.refresh_token, now=NOW + 1)
        assert len(token_store) == 1
        assert token_store.find_by_value(result.refresh_token)

    def test_validate_access_token(self, authenticator, user):
        """Access tokens should validate until they expire."""
        result = authenticator.login(EMAIL, PASSWORD, now=NOW)
        claims = authenticator.validate_access_token(result.access_token, now=NOW + 10)
        assert claims.subject == user.id
        assert claims.audience == "app"
        with pytest.raises(TokenExpired):
            authenticator.validate_access_token(result.access_token, now=NOW + 901)

    def test_configured_leeway_widens_expiry(self, identity_store, token_store,
                                             hasher, user):
        """Leeway set on the config should apply to access token expiry."""
        config = AuthConfig(token_leeway_seconds=30)
        engine = MFAEngine(identity_store, RecordingNotifier(), config=config)
        authenticator = Authenticator(
            identity_store, token_store,
            TokenSigner.from_config(generate_key(), config), engine,
            hasher=hasher, config=config,
        )
        result = authenticator.login(EMAIL, PASSWORD, now=NOW)
        claims = authenticator.validate_access_token(result.access_token,
                                                     now=NOW + 900 + 10)
        assert claims.subject == user.id
        with pytest.raises(TokenExpired):
            authenticator.validate_access_token(result.access_token,
                                                now=NOW + 900 + 31)

    @pytest.mark.parametrize("overrides", [
        {'token_leeway_seconds': 30},
        {'token_issuer': "someone-else"},
    ])
    def test_signer_must_match_config(self, identity_store, token_store,
                                      engine, signer, overrides):
        """A signer built with other issuer or leeway should be refused."""
        with pytest.raises(ValueError):
            Authenticator(identity_store, token_store, signer, engine,
                          config=AuthConfig(**overrides))

    def test_identity_for_access_token(self, authenticator, user):
        """Access tokens should resolve to their identity."""
        result = authenticator.login(EMAIL, PASSWORD, now=NOW)
        identity = authenticator.identity_for_access_token(result.access_token,
                                                           now=NOW)
        assert identity.id == user.id

    def test_logout(self, authenticator, user):
        """Logout should retire the refresh token once."""
        result = authenticator.login(EMAIL, PASSWORD, now=NOW)
        assert authenticator.logout(result.refresh_token)
        assert not authenticator.logout(result.refresh_token)
        assert not authenticator.refresh(result.refresh_token, now=NOW).success

    def test_logout_everywhere(self, authenticator, token_store, user):
        """All refresh tokens of the user should be revoked."""
        for _ in range(3):
            authenticator.login(EMAIL, PASSWORD, now=NOW)
        assert authenticator.logout_everywhere(user.id) == 3
        assert len(token_store) == 0

    def test_purge_expired(self, authenticator, token_store, user):
        """Only expired refresh tokens should be purged."""
        authenticator.login(EMAIL, PASSWORD, now=NOW)
        authenticator.login(EMAIL, PASSWORD, now=NOW + 8 * 24 * 3600)
        assert authenticator.purge_expired_tokens(now=NOW + 8 * 24 * 3600) == 1
        assert len(token_store) == 1


class TestPasswordChange:
    """Tests for changing passwords."""

    def test_change_password(self, authenticator, token_store, identity_store, user):
        """New password should work, old one not, sessions revoked."""
        authenticator.login(EMAIL, PASSWORD, now=NOW)
        revoked = authenticator.change_password(user.id, PASSWORD,
                                                "a-new-long-password", now=NOW + 5)
        assert revoked == 1
        assert len(token_store) == 0
        assert identity_store.find_by_id(user.id).password_changed_at == NOW + 5
        assert not authenticator.login(EMAIL, PASSWORD, now=NOW + 10).success
        assert authenticator.login(EMAIL, "a-new-long-password", now=NOW + 10).success

    def test_wrong_old_password(self, authenticator, user):
        """The old password must be proven."""
        with pytest.raises(InvalidCredentials):
            authenticator.change_password(user.id, "wrong-password",
                                          "a-new-long-password")

    def test_weak_new_password(self, authenticator, user):
        """The new password must satisfy the policy."""
        with pytest.raises(WeakPassword):
            authenticator.change_password(user.id, PASSWORD, "short")

    def test_out_of_range_stored_hash(self, authenticator, identity_store, user):
        """An unusable stored hash should fail the old-password check."""
        identity_store.update(user.id,
                              credential_hash="$argon2id$v=19$m=1024,t=1,p=1$AAAA$AAAAAAAA")
        with pytest.raises(InvalidCredentials):
            authenticator.change_password(user.id, PASSWORD, "a-new-long-password")


class TestScenarios:
    """End-to-end flows."""

    def test_scenario_password_only(self, authenticator):
        """Register then log in without MFA."""
        authenticator.register("frank@example.com", "correcthorsebattery")
        result = authenticator.login("frank@example.com", "correcthorsebattery")
        assert result.status == AuthStatus.AUTHENTICATED
        assert result.access_token
        assert result.refresh_token

    def test_scenario_totp(self, authenticator):
        """Password then TOTP at the current time."""
        identity = authenticator.register("grace@example.com", "correcthorsebattery")
        enrollment = authenticator.enroll_totp(identity.id)
        secret = base32_to_secret(enrollment.secret)
        authenticator.confirm_mfa(identity.id, totp(secret))

        result = authenticator.login("grace@example.com", "correcthorsebattery")
        assert result.status == AuthStatus.MFA_REQUIRED
        assert result.mfa_method.value == "totp"

        final = authenticator.verify_mfa(result.challenge_token, totp(secret))
        assert final.status == AuthStatus.AUTHENTICATED

    def test_scenario_expired_challenge(self, authenticator):
        """A challenge issued ten minutes ago should be expired."""
        identity = authenticator.register("heidi@example.com", "correcthorsebattery")
        secret = enable_totp(authenticator, identity.id, now=NOW - 600)
        challenge = authenticator.login("heidi@example.com", "correcthorsebattery",
                                        now=NOW - 600).challenge_token

        result = authenticator.verify_mfa(challenge, totp(secret, NOW), now=NOW)
        assert result.status == AuthStatus.REJECTED
        assert result.reason == RejectReason.TOKEN_EXPIRED
