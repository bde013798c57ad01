"""
Subscription Manager - plan table and tier changes.
"""

from datetime import UTC, datetime, timedelta

from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from gateway.config import settings
from gateway.db.models import Account
from gateway.exceptions import AccountNotFoundError, InvalidTierError
from gateway.models.api import SubscriptionStatus, SubscriptionTier
from gateway.models.domain import SubscriptionPlan
from gateway.observability.metrics import metrics
from gateway.services.accounts import lock_account_for_update, normalize_before_save

logger = get_logger(__name__)

SUBSCRIPTION_PLANS: dict[SubscriptionTier, SubscriptionPlan] = {
    SubscriptionTier.FREE: SubscriptionPlan(tier=SubscriptionTier.FREE, credits=100, price=0),
    SubscriptionTier.PRO: SubscriptionPlan(tier=SubscriptionTier.PRO, credits=1000, price=20),
    SubscriptionTier.ENTERPRISE: SubscriptionPlan(
        tier=SubscriptionTier.ENTERPRISE, credits=10000, price=100
    ),
}


def get_plan(tier: str | None) -> SubscriptionPlan:
    """
    Look up a plan by tier name.

    Raises:
        InvalidTierError: unknown or missing tier
    """
    try:
        return SUBSCRIPTION_PLANS[SubscriptionTier(tier)]
    except ValueError as exc:
        raise InvalidTierError(str(tier)) from exc


class SubscriptionManager:
    """Moves accounts between plans."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def subscribe(self, account: Account, tier: str | None) -> Account:
        """
        Switch the account to a plan for one period.

        Credits are reset to the plan allowance; usage in the previous
        period is discarded. Runs under the same row lock as deductions.

        Raises:
            InvalidTierError: unknown tier
        """
        plan = get_plan(tier)

        locked = await lock_account_for_update(self.session, account.id)
        if locked is None:
            raise AccountNotFoundError(account.id)

        previous_tier = locked.subscription_tier
        now = datetime.now(UTC)
        locked.subscription_tier = plan.tier.value
        locked.subscription_status = SubscriptionStatus.ACTIVE.value
        locked.subscription_start = now
        locked.subscription_end = now + timedelta(days=settings.subscription_period_days)
        locked.credits_total = plan.credits
        locked.credits_used = 0
        normalize_before_save(locked)
        await self.session.commit()

        metrics.record_credit_addition("subscribe", plan.credits)
        logger.info(
            "subscription_changed",
            account_id=str(locked.id),
            previous_tier=previous_tier,
            tier=plan.tier.value,
            credits=plan.credits,
        )
        return locked
