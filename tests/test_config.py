"""
Unit tests for engine configuration.
"""

from dataclasses import FrozenInstanceError

import pytest

from authvault.config import (
    ACCESS_TOKEN_TTL_SECONDS,
    CHALLENGE_TOKEN_TTL_SECONDS,
    DEFAULT_CONFIG,
    REFRESH_TOKEN_TTL_SECONDS,
    AuthConfig,
)


class TestAuthConfig:
    """Tests for AuthConfig."""

    def test_defaults(self):
        """Defaults should match the documented lifetimes."""
        assert DEFAULT_CONFIG.access_token_ttl == ACCESS_TOKEN_TTL_SECONDS == 900
        assert DEFAULT_CONFIG.challenge_token_ttl == CHALLENGE_TOKEN_TTL_SECONDS == 300
        assert DEFAULT_CONFIG.refresh_token_ttl == REFRESH_TOKEN_TTL_SECONDS == 604800
        assert DEFAULT_CONFIG.sms_code_ttl == 300
        assert DEFAULT_CONFIG.email_code_ttl == 900
        assert DEFAULT_CONFIG.backup_code_count == 10
        assert DEFAULT_CONFIG.hotp_window == 0
        assert DEFAULT_CONFIG.token_leeway_seconds == 0

    def test_frozen(self):
        """Config objects should be immutable."""
        with pytest.raises(FrozenInstanceError):
            DEFAULT_CONFIG.access_token_ttl = 1

    def test_from_mapping(self):
        """Unknown keys should be ignored, known ones applied."""
        config = AuthConfig.from_mapping({'hotp_window': 2, 'nonsense': True})
        assert config.hotp_window == 2
        assert config.access_token_ttl == 900

    def test_with_overrides(self):
        """Overrides should return a modified copy."""
        config = DEFAULT_CONFIG.with_overrides(token_leeway_seconds=5)
        assert config.token_leeway_seconds == 5
        assert DEFAULT_CONFIG.token_leeway_seconds == 0
        assert config.as_dict()['token_leeway_seconds'] == 5

    @pytest.mark.parametrize("overrides", [
        {'access_audience': "same", 'challenge_audience': "same"},
        {'hotp_window': -1},
        {'token_leeway_seconds': -1},
    ])
    def test_validation(self, overrides):
        """Inconsistent settings should be refused."""
        with pytest.raises(ValueError):
            AuthConfig(**overrides)
