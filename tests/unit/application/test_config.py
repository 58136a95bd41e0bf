"""
Tests for authentication settings.
"""

import os
from unittest.mock import patch

import pytest

from feralis_auth.application.config import (
    AuthSettings,
    CacheSettings,
    ConfigurationError,
    Environment,
    JWTSettings,
    PasswordPolicy,
    SessionSettings,
    parse_duration,
)


class TestParseDuration:
    """Test duration strings."""

    @pytest.mark.parametrize(
        "value,expected",
        [("30s", 30), ("15m", 900), ("12h", 43200), ("7d", 604800), (" 5m ", 300)],
    )
    def test_valid(self, value, expected):
        assert parse_duration(value) == expected

    @pytest.mark.parametrize("value", ["", "15", "m15", "1w", "-5m"])
    def test_invalid_falls_back(self, value):
        assert parse_duration(value, default=42) == 42


class TestJWTSettings:
    """Test JWT settings loading."""

    def test_from_env(self):
        env = {
            "JWT_ACCESS_SECRET": "access-" + "x" * 40,
            "JWT_REFRESH_SECRET": "refresh-" + "y" * 40,
            "JWT_ACCESS_EXPIRATION": "5m",
            "JWT_REFRESH_EXPIRATION": "1d",
            "JWT_ISSUER": "issuer-x",
        }
        with patch.dict(os.environ, env):
            settings = JWTSettings.from_env(Environment.DEVELOPMENT)

        assert settings.access_token_ttl == 300
        assert settings.refresh_token_ttl == 86400
        assert settings.issuer == "issuer-x"
        assert settings.algorithm == "HS256"

    def test_missing_secrets_in_production(self):
        with patch.dict(os.environ, {"JWT_ACCESS_SECRET": "", "JWT_REFRESH_SECRET": ""}):
            with pytest.raises(ConfigurationError):
                JWTSettings.from_env(Environment.PRODUCTION)

    def test_missing_secrets_in_development_are_generated(self):
        with patch.dict(os.environ, {"JWT_ACCESS_SECRET": "", "JWT_REFRESH_SECRET": ""}):
            settings = JWTSettings.from_env(Environment.DEVELOPMENT)

        assert settings.access_secret
        assert settings.refresh_secret != settings.access_secret


class TestPasswordPolicy:
    """Test password policy settings."""

    def test_defaults(self):
        policy = PasswordPolicy()

        assert policy.min_length == 12
        assert policy.memory_cost == 65536
        assert policy.time_cost == 3
        assert policy.parallelism == 4
        assert policy.breach_fail_open is True

    def test_from_env(self):
        env = {
            "PASSWORD_MIN_LENGTH": "16",
            "PASSWORD_MIN_SCORE": "3",
            "PASSWORD_BREACH_FAIL_OPEN": "false",
            "PASSWORD_REQUIRE_SPECIAL": "no",
        }
        with patch.dict(os.environ, env):
            policy = PasswordPolicy.from_env()

        assert policy.min_length == 16
        assert policy.min_score == 3
        assert policy.breach_fail_open is False
        assert policy.require_special is False

    @pytest.mark.parametrize("kwargs", [{"min_length": 0}, {"min_score": 5}, {"min_score": -1}])
    def test_invalid(self, kwargs):
        with pytest.raises(ConfigurationError):
            PasswordPolicy(**kwargs)


class TestAuthSettings:
    """Test aggregate settings."""

    def test_from_env(self):
        env = {
            "ENVIRONMENT": "staging",
            "JWT_ACCESS_SECRET": "access-" + "x" * 40,
            "JWT_REFRESH_SECRET": "refresh-" + "y" * 40,
            "SESSION_ABSOLUTE_TIMEOUT_HOURS": "8",
            "REDIS_URL": "redis://cache:6379/2",
            "REDIS_KEY_PREFIX": "auth:",
            "CORS_ORIGINS": "https://a.example, https://b.example",
        }
        with patch.dict(os.environ, env):
            settings = AuthSettings.from_env()

        assert settings.environment == Environment.STAGING
        assert not settings.is_production
        assert settings.session.session_ttl == 8 * 3600
        assert settings.cache == CacheSettings(
            redis_url="redis://cache:6379/2", key_prefix="auth:", socket_timeout=5.0
        )
        assert settings.cors_origins == ("https://a.example", "https://b.example")

    def test_unknown_environment_is_development(self):
        with patch.dict(os.environ, {"ENVIRONMENT": "moon"}):
            settings = AuthSettings.from_env()

        assert settings.environment == Environment.DEVELOPMENT

    def test_session_defaults(self):
        session = SessionSettings()

        assert session.session_ttl == 12 * 3600
        assert session.mfa_challenge_ttl == 300
        assert session.password_reset_ttl == 3600
        assert session.refresh_retention_days == 7
        assert session.token_cleanup_interval == 3600
        assert session.refresh_cookie_enabled is False

    def test_session_retention_from_env(self):
        env = {
            "REFRESH_TOKEN_RETENTION_DAYS": "3",
            "REFRESH_TOKEN_CLEANUP_INTERVAL_SECONDS": "0",
        }
        with patch.dict(os.environ, env):
            session = SessionSettings.from_env()

        assert session.refresh_retention_days == 3
        assert session.token_cleanup_interval == 0
