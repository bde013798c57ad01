"""
Tests for the Token Issuer.

Covers issuance, verification, expiry boundaries and class separation.
"""

import hashlib
from datetime import UTC, datetime, timedelta
from uuid import uuid4

import jwt
import pytest

from gateway.config import settings
from gateway.exceptions import TokenExpiredError, TokenInvalidError
from gateway.models.domain import TokenClass
from gateway.services.tokens import TokenIssuer

ACCESS_TTL = timedelta(minutes=settings.access_token_expire_minutes)
ACCESS_SECRET = "unit-test-access-secret-0123456789abcdef"
REFRESH_SECRET = "unit-test-refresh-secret-0123456789abcdef"


class TestIssueAndVerify:
    """Tests for the issue/verify round trip."""

    def test_access_token_carries_account_and_issue_time(self, token_issuer: TokenIssuer):
        """Verified claims name the account and the issue second."""
        account_id = uuid4()
        now = datetime.now(UTC)
        token = token_issuer.issue_access(account_id, now)

        claims = token_issuer.verify(token, TokenClass.ACCESS)

        assert claims.account_id == account_id
        assert claims.issued_at == int(now.timestamp())
        assert claims.expires_at == int((now + ACCESS_TTL).timestamp())
        assert claims.token_class == TokenClass.ACCESS

    def test_refresh_token_verifies_as_refresh(self, token_issuer: TokenIssuer):
        """Refresh tokens verify with the refresh class."""
        account_id = uuid4()
        token = token_issuer.issue_refresh(account_id)

        assert token_issuer.verify(token, TokenClass.REFRESH).account_id == account_id

    def test_pair_tokens_are_distinct(self, token_issuer: TokenIssuer):
        """Two pairs issued in the same second still differ."""
        account_id = uuid4()
        now = datetime.now(UTC)
        first = token_issuer.issue_pair(account_id, now)
        second = token_issuer.issue_pair(account_id, now)

        assert first.refresh_token != second.refresh_token
        assert first.access_token != second.access_token


class TestExpiry:
    """Expiry boundary behavior."""

    def test_token_one_second_past_expiry_is_expired(self, token_issuer: TokenIssuer):
        """A token whose expiry passed a second ago fails as expired."""
        issued_at = datetime.now(UTC) - ACCESS_TTL - timedelta(seconds=1)
        token = token_issuer.issue_access(uuid4(), issued_at)

        with pytest.raises(TokenExpiredError):
            token_issuer.verify(token, TokenClass.ACCESS)

    def test_token_just_before_expiry_is_valid(self, token_issuer: TokenIssuer):
        """A token still inside its lifetime verifies."""
        issued_at = datetime.now(UTC) - ACCESS_TTL + timedelta(seconds=2)
        token = token_issuer.issue_access(uuid4(), issued_at)

        claims = token_issuer.verify(token, TokenClass.ACCESS)
        assert claims.expires_at > int(datetime.now(UTC).timestamp())


class TestClassSeparation:
    """Access and refresh tokens are not interchangeable."""

    def test_refresh_token_rejected_as_access(self, token_issuer: TokenIssuer):
        """A refresh token cannot authenticate a request."""
        token = token_issuer.issue_refresh(uuid4())

        with pytest.raises(TokenInvalidError):
            token_issuer.verify(token, TokenClass.ACCESS)

    def test_access_token_rejected_as_refresh(self, token_issuer: TokenIssuer):
        """An access token cannot be exchanged for a new pair."""
        token = token_issuer.issue_access(uuid4())

        with pytest.raises(TokenInvalidError):
            token_issuer.verify(token, TokenClass.REFRESH)

    def test_type_claim_checked_even_with_matching_secret(self):
        """A token signed with the right secret but the wrong type claim is rejected."""
        issuer = TokenIssuer(ACCESS_SECRET, REFRESH_SECRET, ACCESS_TTL, timedelta(days=7))
        now = int(datetime.now(UTC).timestamp())
        forged = jwt.encode(
            {"sub": str(uuid4()), "type": "refresh", "iat": now, "exp": now + 60},
            ACCESS_SECRET,
            algorithm="HS256",
        )

        with pytest.raises(TokenInvalidError):
            issuer.verify(forged, TokenClass.ACCESS)

    def test_identical_secrets_rejected(self):
        """The issuer refuses to sign both classes with one secret."""
        with pytest.raises(ValueError):
            TokenIssuer("same", "same", ACCESS_TTL, timedelta(days=7))


class TestMalformedTokens:
    """Malformed or tampered tokens."""

    def test_garbage_token_is_invalid(self, token_issuer: TokenIssuer):
        with pytest.raises(TokenInvalidError):
            token_issuer.verify("not.a.jwt", TokenClass.ACCESS)

    def test_token_signed_with_other_secret_is_invalid(self, token_issuer: TokenIssuer):
        now = int(datetime.now(UTC).timestamp())
        token = jwt.encode(
            {"sub": str(uuid4()), "type": "access", "iat": now, "exp": now + 60},
            "someone-elses-secret-that-is-long-enough-to-sign",
            algorithm="HS256",
        )

        with pytest.raises(TokenInvalidError):
            token_issuer.verify(token, TokenClass.ACCESS)

    def test_non_uuid_subject_is_invalid(self):
        issuer = TokenIssuer(ACCESS_SECRET, REFRESH_SECRET, ACCESS_TTL, timedelta(days=7))
        now = int(datetime.now(UTC).timestamp())
        token = jwt.encode(
            {"sub": "not-a-uuid", "type": "access", "iat": now, "exp": now + 60},
            ACCESS_SECRET,
            algorithm="HS256",
        )

        with pytest.raises(TokenInvalidError):
            issuer.verify(token, TokenClass.ACCESS)

    def test_missing_issue_time_is_invalid(self):
        issuer = TokenIssuer(ACCESS_SECRET, REFRESH_SECRET, ACCESS_TTL, timedelta(days=7))
        now = int(datetime.now(UTC).timestamp())
        token = jwt.encode(
            {"sub": str(uuid4()), "type": "access", "exp": now + 60},
            ACCESS_SECRET,
            algorithm="HS256",
        )

        with pytest.raises(TokenInvalidError):
            issuer.verify(token, TokenClass.ACCESS)


class TestHashToken:
    """Tests for hash_token()."""

    def test_hash_token_is_sha256(self):
        token = "my_refresh_token"
        assert TokenIssuer.hash_token(token) == hashlib.sha256(token.encode()).hexdigest()

    def test_hash_token_length(self):
        assert len(TokenIssuer.hash_token("any_token")) == 64
