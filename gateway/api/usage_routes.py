"""
Usage API routes - credit balance, per-type stats and daily usage.
"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from gateway.api.dependencies import get_current_account, require_role
from gateway.api.serializers import credits_info, subscription_info, usage_info
from gateway.db.models import Account
from gateway.db.session import get_read_db, get_write_db
from gateway.exceptions import NotFoundError
from gateway.models.api import (
    AccountRole,
    CreditsData,
    CreditsInfo,
    DailyUsage,
    GenerationType,
    GrantCreditsRequest,
    SuccessEnvelope,
    TypeStats,
    UsageHistoryData,
    UsageStatsData,
)
from gateway.services.generations import DEFAULT_HISTORY_DAYS, GenerationService
from gateway.services.ledger import CreditLedger

router = APIRouter(prefix="/usage", tags=["usage"])


@router.get("/credits", response_model=SuccessEnvelope[CreditsData])
async def get_credits(
    account: Account = Depends(get_current_account),
) -> SuccessEnvelope[CreditsData]:
    """Current balance and subscription."""
    return SuccessEnvelope(
        data=CreditsData(credits=credits_info(account), subscription=subscription_info(account))
    )


@router.get("/stats", response_model=SuccessEnvelope[UsageStatsData])
async def get_stats(
    account: Account = Depends(get_current_account),
    db: AsyncSession = Depends(get_read_db),
) -> SuccessEnvelope[UsageStatsData]:
    """Totals and per-type breakdown of the caller's generations."""
    rollups = await GenerationService(db).stats(account.id)
    return SuccessEnvelope(
        data=UsageStatsData(
            total_generations=sum(rollup.count for rollup in rollups),
            by_type=[
                TypeStats(
                    type=GenerationType(rollup.type),
                    count=rollup.count,
                    total_credits=rollup.credits,
                )
                for rollup in rollups
            ],
            credits=credits_info(account),
            usage=usage_info(account),
        )
    )


@router.get("/history", response_model=SuccessEnvelope[UsageHistoryData])
async def get_usage_history(
    days: int = Query(DEFAULT_HISTORY_DAYS, ge=1, le=365),
    account: Account = Depends(get_current_account),
    db: AsyncSession = Depends(get_read_db),
) -> SuccessEnvelope[UsageHistoryData]:
    """Per-day, per-type usage for the last `days` days."""
    rollups = await GenerationService(db).usage_history(account.id, days=days)
    return SuccessEnvelope(
        data=UsageHistoryData(
            history=[
                DailyUsage(
                    date=rollup.date,
                    type=GenerationType(rollup.type),
                    count=rollup.count,
                    credits=rollup.credits,
                )
                for rollup in rollups
            ]
        )
    )


@router.post("/credits/grant", response_model=SuccessEnvelope[CreditsInfo])
async def grant_credits(
    body: GrantCreditsRequest,
    admin: Account = Depends(require_role(AccountRole.ADMIN)),
    db: AsyncSession = Depends(get_write_db),
) -> SuccessEnvelope[CreditsInfo]:
    """
    Add credits to any account.

    Requires: admin role.
    """
    target = await db.get(Account, body.account_id)
    if target is None:
        raise NotFoundError("Account")

    balance = await CreditLedger(db).add(target, body.amount, operation="grant")
    return SuccessEnvelope(
        data=CreditsInfo(total=balance.total, used=balance.used, remaining=balance.remaining)
    )
