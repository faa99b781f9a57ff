"""
Shared fixtures.

Argon2id runs with minimal cost parameters here so the suite stays fast;
the encoded hashes still carry (and are verified with) those parameters.
"""

import pytest

from authvault.auth import Authenticator
from authvault.config import AuthConfig
from authvault.integration.audit import AuditLog
from authvault.mfa.methods import MFAEngine
from authvault.mfa.notifier import RecordingNotifier
from authvault.passwords.hasher import PasswordHasher_
from authvault.stores.memory import InMemoryIdentityStore, InMemoryRefreshTokenStore
from authvault.tokens.signer import TokenSigner, generate_key


FAST_ARGON2 = {'memory_cost': 1024, 'time_cost': 1, 'parallelism': 1}
PASSWORD = "correcthorsebattery"
EMAIL = "alice@example.com"
PHONE = "+15550100"


@pytest.fixture
def config():
    return AuthConfig()


@pytest.fixture
def hasher():
    return PasswordHasher_(**FAST_ARGON2)


@pytest.fixture
def identity_store():
    return InMemoryIdentityStore()


@pytest.fixture
def token_store():
    return InMemoryRefreshTokenStore()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def audit():
    return AuditLog()


@pytest.fixture
def signer(config):
    return TokenSigner.from_config(generate_key(), config)


@pytest.fixture
def engine(identity_store, notifier, config, audit):
    return MFAEngine(identity_store, notifier, config=config, audit=audit)


@pytest.fixture
def authenticator(identity_store, token_store, signer, engine, hasher,
                  config, audit):
    return Authenticator(
        identity_store, token_store, signer, engine,
        hasher=hasher, config=config, audit=audit,
    )


@pytest.fixture
def user(authenticator):
    """A registered identity without MFA."""
    return authenticator.register(EMAIL, PASSWORD, phone_number=PHONE)
