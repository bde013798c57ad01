"""
Credit Ledger - Core credit accounting with row locking.

Every mutation takes SELECT ... FOR UPDATE on the account row, mutates,
re-establishes remaining = total - used, and commits before the lock is
released. Two concurrent deductions against one account serialize.
"""

import math
from datetime import UTC, datetime

from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from gateway.db.models import Account
from gateway.exceptions import (
    AccountNotFoundError,
    DataIntegrityError,
    InsufficientCreditsError,
)
from gateway.models.domain import CreditBalance, TokenUsage
from gateway.observability.metrics import metrics
from gateway.services.accounts import lock_account_for_update, normalize_before_save

logger = get_logger(__name__)

TOKENS_PER_CREDIT = 1000


def calculate_credits(usage: TokenUsage | None) -> int:
    """
    Convert provider token usage into a credit cost.

    One credit per started thousand tokens, minimum one. Missing usage
    costs one credit.
    """
    total_tokens = usage.resolved_total if usage is not None else None
    if total_tokens is None:
        logger.warning("provider_usage_missing")
        return 1
    return max(1, math.ceil(total_tokens / TOKENS_PER_CREDIT))


def balance_of(account: Account) -> CreditBalance:
    """Snapshot an account's credit counters."""
    return CreditBalance(
        total=account.credits_total,
        used=account.credits_used,
        remaining=account.credits_remaining,
    )


class CreditLedger:
    """Credit checks, deductions and additions for one unit of work."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    @staticmethod
    def has_credits(account: Account, amount: int = 1) -> bool:
        """Advisory pre-check; deduct() re-checks under the row lock."""
        return account.credits_remaining >= amount

    async def deduct(
        self, account: Account, amount: int, generation_type: str | None = None
    ) -> CreditBalance:
        """
        Charge credits and count one request.

        Raises:
            ValueError: amount is not positive
            AccountNotFoundError: account vanished
            InsufficientCreditsError: remaining < amount (nothing is written)
            DataIntegrityError: invariant broken after the write
        """
        if amount <= 0:
            raise ValueError(f"Deduction amount must be positive: {amount}")

        locked = await self._lock(account)

        if not self.has_credits(locked, amount):
            metrics.credit_rejections_total.inc()
            logger.warning(
                "insufficient_credits",
                account_id=str(locked.id),
                remaining=locked.credits_remaining,
                required=amount,
            )
            raise InsufficientCreditsError(locked.credits_remaining, amount)

        locked.credits_used += amount
        locked.total_requests += 1
        locked.last_request_at = datetime.now(UTC)
        normalize_before_save(locked)

        await self.session.flush()
        balance = self._verified_balance(locked)
        await self.session.commit()

        metrics.record_deduction(generation_type or "unknown", amount)
        logger.info(
            "credits_deducted",
            account_id=str(locked.id),
            amount=amount,
            generation_type=generation_type,
            remaining=balance.remaining,
        )
        return balance

    async def add(self, account: Account, amount: int, operation: str = "grant") -> CreditBalance:
        """
        Add credits to an account's total.

        Raises:
            ValueError: amount is not positive
            AccountNotFoundError: account vanished
        """
        if amount <= 0:
            raise ValueError(f"Credit amount must be positive: {amount}")

        locked = await self._lock(account)
        locked.credits_total += amount
        normalize_before_save(locked)

        await self.session.flush()
        balance = self._verified_balance(locked)
        await self.session.commit()

        metrics.record_credit_addition(operation, amount)
        logger.info(
            "credits_added",
            account_id=str(locked.id),
            amount=amount,
            operation=operation,
            total=balance.total,
            remaining=balance.remaining,
        )
        return balance

    async def _lock(self, account: Account) -> Account:
        locked = await lock_account_for_update(self.session, account.id)
        if locked is None:
            raise AccountNotFoundError(account.id)
        return locked

    @staticmethod
    def _verified_balance(account: Account) -> CreditBalance:
        try:
            return balance_of(account)
        except ValueError as exc:
            logger.error("credit_invariant_violated", account_id=str(account.id), error=str(exc))
            raise DataIntegrityError(str(exc)) from exc
