"""
Subscription API routes - plan table and plan changes.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from gateway.api.dependencies import get_current_account
from gateway.api.serializers import credits_info, subscription_info
from gateway.db.models import Account
from gateway.db.session import get_write_db
from gateway.models.api import (
    PlanInfo,
    PlansData,
    SubscribeData,
    SubscribeRequest,
    SuccessEnvelope,
)
from gateway.services.subscriptions import SUBSCRIPTION_PLANS, SubscriptionManager

router = APIRouter(prefix="/subscriptions", tags=["subscriptions"])


@router.get("/plans", response_model=SuccessEnvelope[PlansData])
async def get_plans(
    account: Account = Depends(get_current_account),
) -> SuccessEnvelope[PlansData]:
    """The plan table."""
    return SuccessEnvelope(
        data=PlansData(
            plans={
                tier: PlanInfo(credits=plan.credits, price=plan.price)
                for tier, plan in SUBSCRIPTION_PLANS.items()
            }
        )
    )


@router.post("/subscribe", response_model=SuccessEnvelope[SubscribeData])
async def subscribe(
    body: SubscribeRequest,
    account: Account = Depends(get_current_account),
    db: AsyncSession = Depends(get_write_db),
) -> SuccessEnvelope[SubscribeData]:
    """Switch to a plan; credits reset to the plan allowance."""
    updated = await SubscriptionManager(db).subscribe(account, body.tier)
    return SuccessEnvelope(
        data=SubscribeData(
            subscription=subscription_info(updated),
            credits=credits_info(updated),
        )
    )
