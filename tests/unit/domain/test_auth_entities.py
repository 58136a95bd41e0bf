"""
Tests for authentication entities, value objects and error kinds.
"""

from datetime import datetime, timedelta

import pytest

from feralis_auth.domain.entities import AccountStatus, RefreshTokenRecord, UserAccount
from feralis_auth.domain.exceptions import (
    AccountUnusableError,
    InvalidCredentialsError,
    ReauthenticationRequiredError,
    WeakPasswordError,
)
from feralis_auth.domain.value_objects import AccessTokenClaims, AuthTokens, TokenType
from feralis_auth.infrastructure.auth.types import AuthState, LoginResult


def _account(**kwargs) -> UserAccount:
    defaults = {
        "id": "u1",
        "email": "ada@feralis.example.com",
        "organization_id": "org",
        "password_hash": "$argon2id$...",
    }
    return UserAccount(**{**defaults, **kwargs})


class TestUserAccount:
    """Test account usability."""

    def test_active_account_is_usable(self):
        assert _account().is_usable()

    @pytest.mark.parametrize(
        "status",
        [
            AccountStatus.PENDING,
            AccountStatus.INACTIVE,
            AccountStatus.SUSPENDED,
            AccountStatus.LOCKED,
        ],
    )
    def test_other_statuses_are_unusable(self, status):
        account = _account(status=status)

        assert not account.is_usable()
        assert account.unusable_reason() == status.value

    def test_deleted_account(self):
        account = _account(deleted_at=datetime(2026, 1, 1))

        assert not account.is_usable()
        assert account.unusable_reason() == "DELETED"

    def test_display_name(self):
        assert _account(first_name="Ada", last_name="Lovelace").display_name == "Ada Lovelace"
        assert _account().display_name == "ada@feralis.example.com"


class TestRefreshTokenRecord:
    """Test ledger record state."""

    def test_live_until_expiry(self):
        now = datetime(2026, 1, 1, 12, 0)
        record = RefreshTokenRecord(
            user_id="u1",
            token_hash="h",
            family="f",
            session_id="s",
            issued_at=now,
            expires_at=now + timedelta(days=7),
        )

        assert record.is_live(now)
        assert not record.is_live(now + timedelta(days=7))
        record.is_revoked = True
        assert not record.is_live(now)


class TestAccessTokenClaims:
    """Test claim serialization."""

    def test_payload_round_trip(self):
        claims = AccessTokenClaims(
            sub="u1",
            email="ada@feralis.example.com",
            organization_id="org",
            session_id="s1",
            type=TokenType.ACCESS,
            mfa_verified=True,
        )

        assert AccessTokenClaims.from_payload(claims.to_payload()) == claims

    def test_malformed_payload(self):
        with pytest.raises(ValueError):
            AccessTokenClaims.from_payload({"sub": "u1", "type": "access"})
        with pytest.raises(ValueError):
            AccessTokenClaims.from_payload({"sub": "u1", "sessionId": "s", "type": "bogus"})


class TestLoginResult:
    """Test the login response shape."""

    def test_mfa_pending(self):
        result = LoginResult(
            state=AuthState.MFA_PENDING, user_id="u1", requires_mfa=True, mfa_challenge_token="c"
        )

        assert result.to_response() == {"requiresMFA": True, "mfaChallengeToken": "c"}

    def test_authenticated(self):
        result = LoginResult(
            state=AuthState.AUTHENTICATED,
            user_id="u1",
            tokens=AuthTokens(access_token="a", refresh_token="r", expires_in=900),
        )

        assert result.to_response() == {
            "requiresMFA": False,
            "accessToken": "a",
            "refreshToken": "r",
            "expiresIn": 900,
            "tokenType": "Bearer",
        }


class TestExceptions:
    """Test the error kinds callers see."""

    def test_codes_are_distinct(self):
        codes = {
            InvalidCredentialsError().code,
            AccountUnusableError("SUSPENDED").code,
            ReauthenticationRequiredError().code,
            WeakPasswordError(["x"]).code,
        }

        assert len(codes) == 4

    def test_reauthentication_does_not_mention_reuse(self):
        assert "reuse" not in ReauthenticationRequiredError().message.lower()

    def test_weak_password_details(self):
        error = WeakPasswordError(["Too short"], ["Add a word"])

        assert error.details == {"errors": ["Too short"], "suggestions": ["Add a word"]}
