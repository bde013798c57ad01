"""
Account Service - registration, login, refresh rotation and password changes.

Every write path calls normalize_before_save() explicitly before flushing;
there are no implicit ORM hooks that rewrite an account on save.
"""

import asyncio
import hmac
from dataclasses import dataclass
from datetime import UTC, datetime
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from gateway.config import settings
from gateway.db.models import Account
from gateway.exceptions import (
    AccountDeactivatedError,
    DuplicateEmailError,
    InvalidCredentialsError,
    TokenInvalidError,
    ValidationFailedError,
)
from gateway.models.api import AccountRole, SubscriptionStatus, SubscriptionTier
from gateway.models.domain import TokenClass, TokenPair
from gateway.observability.metrics import metrics
from gateway.services.credentials import CredentialVault, credential_vault
from gateway.services.tokens import TokenIssuer

logger = get_logger(__name__)


def _utc_now() -> datetime:
    """Get current UTC timestamp."""
    return datetime.now(UTC)


def normalize_email(email: str) -> str:
    """Emails are unique case-insensitively; store them lowercase."""
    return email.strip().lower()


def normalize_before_save(account: Account) -> Account:
    """
    Restore account invariants before any write.

    - email is trimmed and lowercase
    - credits_remaining == credits_total - credits_used
    """
    account.email = normalize_email(account.email)
    account.credits_remaining = account.credits_total - account.credits_used
    return account


async def lock_account_for_update(session: AsyncSession, account_id: UUID) -> Account | None:
    """
    Load an account row under SELECT ... FOR UPDATE.

    populate_existing refreshes an instance already in the identity map, so
    balances read under the lock are the committed ones.
    """
    stmt = (
        select(Account)
        .where(Account.id == account_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


@dataclass(frozen=True)
class AuthResult:
    """Authenticated account plus its freshly issued tokens."""

    account: Account
    tokens: TokenPair


class AccountService:
    """Account lifecycle operations backed by the accounts table."""

    def __init__(
        self,
        session: AsyncSession,
        token_issuer: TokenIssuer,
        vault: CredentialVault = credential_vault,
    ) -> None:
        self.session = session
        self.token_issuer = token_issuer
        self.vault = vault

    async def get(self, account_id: UUID) -> Account | None:
        """Point lookup by id."""
        return await self.session.get(Account, account_id)

    async def find_by_email(self, email: str) -> Account | None:
        """Point lookup by (normalized) email."""
        stmt = select(Account).where(Account.email == normalize_email(email))
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def register(self, name: str, email: str, password: str) -> AuthResult:
        """
        Create an account on the free plan and issue its first token pair.

        Raises:
            DuplicateEmailError: email already registered
            ValidationFailedError: password too short
        """
        self._validate_password(password)
        email = normalize_email(email)

        if await self.find_by_email(email) is not None:
            metrics.record_auth_event("register", success=False)
            raise DuplicateEmailError(email)

        now = _utc_now()
        password_hash = await asyncio.to_thread(self.vault.hash, password)
        account = Account(
            id=uuid4(),
            name=name.strip(),
            email=email,
            password_hash=password_hash,
            subscription_tier=SubscriptionTier.FREE.value,
            subscription_status=SubscriptionStatus.ACTIVE.value,
            subscription_start=now,
            subscription_end=None,
            credits_total=settings.signup_credits,
            credits_used=0,
            credits_remaining=settings.signup_credits,
            total_requests=0,
            last_request_at=None,
            is_active=True,
            role=AccountRole.USER.value,
            created_at=now,
            updated_at=now,
        )
        tokens = self._rotate_refresh_slot(account, now)
        normalize_before_save(account)

        self.session.add(account)
        try:
            await self.session.flush()
        except IntegrityError as exc:
            # Lost a race against a concurrent registration for the same email
            await self.session.rollback()
            metrics.record_auth_event("register", success=False)
            raise DuplicateEmailError(email) from exc
        await self.session.commit()

        metrics.record_auth_event("register", success=True)
        logger.info("user_registered", account_id=str(account.id), email=email)
        return AuthResult(account=account, tokens=tokens)

    async def authenticate(self, email: str, password: str) -> AuthResult:
        """
        Verify credentials and issue a token pair (replacing the refresh slot).

        Raises:
            InvalidCredentialsError: unknown email or wrong password
            AccountDeactivatedError: account disabled
        """
        account = await self.find_by_email(email)
        if account is None or not await asyncio.to_thread(
            self.vault.verify, password, account.password_hash
        ):
            metrics.record_auth_event("login", success=False)
            logger.warning("login_failed", email=normalize_email(email))
            raise InvalidCredentialsError()

        if not account.is_active:
            metrics.record_auth_event("login", success=False)
            logger.warning("inactive_user_login_attempt", account_id=str(account.id))
            raise AccountDeactivatedError(account.id)

        if self.vault.needs_rehash(account.password_hash):
            account.password_hash = await asyncio.to_thread(self.vault.hash, password)
            logger.info("password_rehashed", account_id=str(account.id))

        tokens = self._rotate_refresh_slot(account, _utc_now())
        normalize_before_save(account)
        await self.session.commit()

        metrics.record_auth_event("login", success=True)
        logger.info("user_logged_in", account_id=str(account.id), email=account.email)
        return AuthResult(account=account, tokens=tokens)

    async def refresh(self, refresh_token: str) -> TokenPair:
        """
        Exchange a refresh token for a new pair, rotating the slot.

        Verification against the slot and installation of the replacement
        happen under one row lock, so a concurrent second refresh with the
        same token sees the new slot and fails.

        Raises:
            TokenExpiredError / TokenInvalidError: bad, expired or superseded token
            AccountDeactivatedError: account disabled
        """
        claims = self.token_issuer.verify(refresh_token, TokenClass.REFRESH)

        account = await lock_account_for_update(self.session, claims.account_id)
        presented_hash = self.token_issuer.hash_token(refresh_token)
        if (
            account is None
            or account.refresh_token_hash is None
            or not hmac.compare_digest(account.refresh_token_hash, presented_hash)
        ):
            metrics.record_auth_event("refresh", success=False)
            logger.warning("refresh_token_rejected", account_id=str(claims.account_id))
            raise TokenInvalidError("Invalid refresh token")

        if not account.is_active:
            metrics.record_auth_event("refresh", success=False)
            raise AccountDeactivatedError(account.id)

        tokens = self._rotate_refresh_slot(account, _utc_now())
        normalize_before_save(account)
        await self.session.commit()

        metrics.record_auth_event("refresh", success=True)
        logger.info("refresh_token_rotated", account_id=str(account.id))
        return tokens

    async def logout(self, account: Account) -> None:
        """Clear the refresh slot; outstanding refresh tokens stop working."""
        locked = await lock_account_for_update(self.session, account.id) or account
        locked.refresh_token_hash = None
        normalize_before_save(locked)
        await self.session.commit()

        metrics.record_auth_event("logout", success=True)
        logger.info("user_logged_out", account_id=str(locked.id))

    async def change_password(
        self, account: Account, current_password: str, new_password: str
    ) -> AuthResult:
        """
        Replace the password, invalidating every earlier access token.

        Raises:
            InvalidCredentialsError: current password is wrong
            ValidationFailedError: new password too short
        """
        self._validate_password(new_password)

        if not await asyncio.to_thread(
            self.vault.verify, current_password, account.password_hash
        ):
            metrics.record_auth_event("change_password", success=False)
            raise InvalidCredentialsError("Current password is incorrect")

        now = _utc_now()
        account.password_hash = await asyncio.to_thread(self.vault.hash, new_password)
        account.password_changed_at = now
        tokens = self._rotate_refresh_slot(account, now)
        normalize_before_save(account)
        await self.session.commit()

        metrics.record_auth_event("change_password", success=True)
        logger.info("password_changed", account_id=str(account.id))
        return AuthResult(account=account, tokens=tokens)

    async def update_profile(
        self, account: Account, name: str | None = None, email: str | None = None
    ) -> Account:
        """
        Update display name and/or email.

        Raises:
            DuplicateEmailError: email already used by another account
        """
        if name:
            account.name = name.strip()

        if email and normalize_email(email) != account.email:
            existing = await self.find_by_email(email)
            if existing is not None and existing.id != account.id:
                raise DuplicateEmailError(email)
            account.email = email

        normalize_before_save(account)
        try:
            await self.session.commit()
        except IntegrityError as exc:
            await self.session.rollback()
            raise DuplicateEmailError(email or account.email) from exc

        logger.info("profile_updated", account_id=str(account.id))
        return account

    def _rotate_refresh_slot(self, account: Account, now: datetime) -> TokenPair:
        """Issue a pair and make its refresh token the only valid one."""
        tokens = self.token_issuer.issue_pair(account.id, now)
        account.refresh_token_hash = self.token_issuer.hash_token(tokens.refresh_token)
        return tokens

    @staticmethod
    def _validate_password(password: str) -> None:
        if len(password) < settings.password_min_length:
            raise ValidationFailedError(
                f"Password must be at least {settings.password_min_length} characters"
            )
