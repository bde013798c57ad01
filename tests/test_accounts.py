"""
Tests for the Account Service.

Covers registration, login, refresh rotation, logout, password changes and
profile updates against a mocked session.
"""

from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest
from conftest import TEST_PASSWORD, bind_account, create_mock_account
from sqlalchemy.exc import IntegrityError

from gateway.config import settings
from gateway.exceptions import (
    AccountDeactivatedError,
    DuplicateEmailError,
    InvalidCredentialsError,
    TokenInvalidError,
    ValidationFailedError,
)
from gateway.models.domain import TokenClass
from gateway.services.accounts import AccountService, normalize_email
from gateway.services.credentials import CredentialVault
from gateway.services.tokens import TokenIssuer


@pytest.fixture
def service(db_session: AsyncMock, token_issuer: TokenIssuer, vault: CredentialVault) -> AccountService:
    """Account service over the mocked session."""
    return AccountService(db_session, token_issuer, vault)


@pytest.fixture
def stored_account(vault: CredentialVault) -> MagicMock:
    """Active account whose stored hash matches TEST_PASSWORD."""
    return create_mock_account(password_hash=vault.hash(TEST_PASSWORD))


class TestNormalizeEmail:
    """Tests for normalize_email()."""

    def test_trims_and_lowercases(self):
        assert normalize_email("  Alice@Example.COM ") == "alice@example.com"


class TestRegister:
    """Tests for register()."""

    async def test_register_creates_free_account(self, service: AccountService, db_session: AsyncMock):
        """New accounts start on the free plan with the signup allowance."""
        result = await service.register("Alice", "Alice@Example.com", TEST_PASSWORD)

        account = result.account
        assert account.email == "alice@example.com"
        assert account.subscription_tier == "free"
        assert account.credits_total == settings.signup_credits
        assert account.credits_used == 0
        assert account.credits_remaining == settings.signup_credits
        assert account.role == "user"
        assert account.is_active is True
        db_session.add.assert_called_once_with(account)
        db_session.commit.assert_awaited_once()

    async def test_register_never_stores_plaintext(self, service: AccountService):
        result = await service.register("Alice", "alice@example.com", TEST_PASSWORD)

        assert TEST_PASSWORD not in result.account.password_hash
        assert service.vault.verify(TEST_PASSWORD, result.account.password_hash)

    async def test_register_fills_refresh_slot(self, service: AccountService, token_issuer: TokenIssuer):
        """The issued refresh token is the one recorded in the slot."""
        result = await service.register("Alice", "alice@example.com", TEST_PASSWORD)

        assert result.account.refresh_token_hash == token_issuer.hash_token(result.tokens.refresh_token)
        claims = token_issuer.verify(result.tokens.access_token, TokenClass.ACCESS)
        assert claims.account_id == result.account.id

    async def test_register_duplicate_email(
        self, service: AccountService, db_session: AsyncMock, active_account: MagicMock
    ):
        bind_account(db_session, active_account)

        with pytest.raises(DuplicateEmailError):
            await service.register("Bob", "USER@example.com", TEST_PASSWORD)

        db_session.add.assert_not_called()

    async def test_register_race_on_unique_index(self, service: AccountService, db_session: AsyncMock):
        """A unique-index violation at flush surfaces as a duplicate email."""
        db_session.flush.side_effect = IntegrityError("INSERT", {}, Exception("duplicate key"))

        with pytest.raises(DuplicateEmailError):
            await service.register("Alice", "alice@example.com", TEST_PASSWORD)

        db_session.rollback.assert_awaited_once()
        db_session.commit.assert_not_awaited()

    async def test_register_short_password(self, service: AccountService):
        with pytest.raises(ValidationFailedError):
            await service.register("Alice", "alice@example.com", "short")


class TestAuthenticate:
    """Tests for authenticate()."""

    async def test_login_success(
        self, service: AccountService, db_session: AsyncMock, stored_account: MagicMock
    ):
        bind_account(db_session, stored_account)

        result = await service.authenticate("user@example.com", TEST_PASSWORD)

        assert result.account is stored_account
        assert stored_account.refresh_token_hash == service.token_issuer.hash_token(
            result.tokens.refresh_token
        )
        db_session.commit.assert_awaited_once()

    async def test_login_unknown_email(self, service: AccountService):
        with pytest.raises(InvalidCredentialsError):
            await service.authenticate("nobody@example.com", TEST_PASSWORD)

    async def test_login_wrong_password(
        self, service: AccountService, db_session: AsyncMock, stored_account: MagicMock
    ):
        bind_account(db_session, stored_account)

        with pytest.raises(InvalidCredentialsError):
            await service.authenticate("user@example.com", "wrong-password")

        db_session.commit.assert_not_awaited()

    async def test_login_deactivated(
        self, service: AccountService, db_session: AsyncMock, stored_account: MagicMock
    ):
        stored_account.is_active = False
        bind_account(db_session, stored_account)

        with pytest.raises(AccountDeactivatedError):
            await service.authenticate("user@example.com", TEST_PASSWORD)

    async def test_login_upgrades_weak_hash(
        self, db_session: AsyncMock, token_issuer: TokenIssuer, vault: CredentialVault
    ):
        """A hash made with older parameters is replaced on successful login."""
        account = create_mock_account(password_hash=vault.hash(TEST_PASSWORD))
        bind_account(db_session, account)
        stronger = CredentialVault(time_cost=2, memory_cost=16, parallelism=1)

        await AccountService(db_session, token_issuer, stronger).authenticate(
            "user@example.com", TEST_PASSWORD
        )

        assert stronger.needs_rehash(account.password_hash) is False


class TestRefresh:
    """Tests for refresh()."""

    async def test_refresh_rotates_slot(
        self, service: AccountService, db_session: AsyncMock, token_issuer: TokenIssuer
    ):
        """A valid refresh yields a new pair and supersedes the old token."""
        account = create_mock_account()
        old_refresh = token_issuer.issue_refresh(account.id)
        account.refresh_token_hash = token_issuer.hash_token(old_refresh)
        bind_account(db_session, account)

        tokens = await service.refresh(old_refresh)

        assert tokens.refresh_token != old_refresh
        assert account.refresh_token_hash == token_issuer.hash_token(tokens.refresh_token)
        db_session.commit.assert_awaited_once()

    async def test_superseded_refresh_token_fails(
        self, service: AccountService, db_session: AsyncMock, token_issuer: TokenIssuer
    ):
        """Reusing a rotated refresh token is rejected."""
        account = create_mock_account()
        old_refresh = token_issuer.issue_refresh(account.id)
        account.refresh_token_hash = token_issuer.hash_token(old_refresh)
        bind_account(db_session, account)

        await service.refresh(old_refresh)

        with pytest.raises(TokenInvalidError):
            await service.refresh(old_refresh)

    async def test_refresh_after_logout_fails(
        self, service: AccountService, db_session: AsyncMock, token_issuer: TokenIssuer
    ):
        account = create_mock_account()
        refresh_token = token_issuer.issue_refresh(account.id)
        account.refresh_token_hash = token_issuer.hash_token(refresh_token)
        bind_account(db_session, account)

        await service.logout(account)

        assert account.refresh_token_hash is None
        with pytest.raises(TokenInvalidError):
            await service.refresh(refresh_token)

    async def test_access_token_cannot_refresh(
        self, service: AccountService, token_issuer: TokenIssuer
    ):
        account = create_mock_account()

        with pytest.raises(TokenInvalidError):
            await service.refresh(token_issuer.issue_access(account.id))

    async def test_refresh_for_missing_account(
        self, service: AccountService, token_issuer: TokenIssuer
    ):
        account = create_mock_account()

        with pytest.raises(TokenInvalidError):
            await service.refresh(token_issuer.issue_refresh(account.id))

    async def test_refresh_for_deactivated_account(
        self, service: AccountService, db_session: AsyncMock, token_issuer: TokenIssuer
    ):
        account = create_mock_account(is_active=False)
        refresh_token = token_issuer.issue_refresh(account.id)
        account.refresh_token_hash = token_issuer.hash_token(refresh_token)
        bind_account(db_session, account)

        with pytest.raises(AccountDeactivatedError):
            await service.refresh(refresh_token)


class TestChangePassword:
    """Tests for change_password()."""

    async def test_change_password_marks_change_time(
        self, service: AccountService, stored_account: MagicMock, token_issuer: TokenIssuer
    ):
        """The change time equals the issue time of the returned access token."""
        before = datetime.now(UTC) - timedelta(seconds=1)

        result = await service.change_password(stored_account, TEST_PASSWORD, "a-brand-new-password")

        changed_at = stored_account.password_changed_at
        assert changed_at >= before
        claims = token_issuer.verify(result.tokens.access_token, TokenClass.ACCESS)
        assert claims.issued_at == int(changed_at.timestamp())
        assert service.vault.verify("a-brand-new-password", stored_account.password_hash)

    async def test_change_password_wrong_current(
        self, service: AccountService, db_session: AsyncMock, stored_account: MagicMock
    ):
        original_hash = stored_account.password_hash

        with pytest.raises(InvalidCredentialsError) as exc_info:
            await service.change_password(stored_account, "wrong-password", "a-brand-new-password")

        assert exc_info.value.message == "Current password is incorrect"
        assert stored_account.password_hash == original_hash
        db_session.commit.assert_not_awaited()

    async def test_change_password_too_short(self, service: AccountService, stored_account: MagicMock):
        with pytest.raises(ValidationFailedError):
            await service.change_password(stored_account, TEST_PASSWORD, "short")


class TestUpdateProfile:
    """Tests for update_profile()."""

    async def test_update_name_and_email(self, service: AccountService, active_account: MagicMock):
        account = await service.update_profile(active_account, name=" New Name ", email="New@Example.com")

        assert account.name == "New Name"
        assert account.email == "new@example.com"

    async def test_update_to_taken_email(
        self, service: AccountService, db_session: AsyncMock, active_account: MagicMock
    ):
        other = create_mock_account(email="taken@example.com")
        bind_account(db_session, other)

        with pytest.raises(DuplicateEmailError):
            await service.update_profile(active_account, email="taken@example.com")

        db_session.commit.assert_not_awaited()

    async def test_same_email_is_not_a_duplicate(
        self, service: AccountService, db_session: AsyncMock, active_account: MagicMock
    ):
        await service.update_profile(active_account, email="USER@example.com")

        db_session.commit.assert_awaited_once()
