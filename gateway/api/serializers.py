"""
ORM to API model conversion.

Account responses never include password_hash or the refresh slot.
"""

from gateway.db.models import Account, Generation
from gateway.models.api import (
    AccountResponse,
    AccountRole,
    CreditsInfo,
    GenerationItem,
    GenerationStatus,
    GenerationType,
    SubscriptionInfo,
    SubscriptionStatus,
    SubscriptionTier,
    UsageInfo,
)


def subscription_info(account: Account) -> SubscriptionInfo:
    return SubscriptionInfo(
        tier=SubscriptionTier(account.subscription_tier),
        status=SubscriptionStatus(account.subscription_status),
        start_date=account.subscription_start,
        end_date=account.subscription_end,
    )


def credits_info(account: Account) -> CreditsInfo:
    return CreditsInfo(
        total=account.credits_total,
        used=account.credits_used,
        remaining=account.credits_remaining,
    )


def usage_info(account: Account) -> UsageInfo:
    return UsageInfo(
        total_requests=account.total_requests,
        last_request_at=account.last_request_at,
    )


def account_response(account: Account) -> AccountResponse:
    """Public view of an account."""
    return AccountResponse(
        id=account.id,
        name=account.name,
        email=account.email,
        avatar=account.avatar,
        role=AccountRole(account.role),
        is_active=account.is_active,
        subscription=subscription_info(account),
        credits=credits_info(account),
        usage=usage_info(account),
        created_at=account.created_at,
    )


def generation_item(generation: Generation) -> GenerationItem:
    return GenerationItem(
        id=generation.id,
        type=GenerationType(generation.type),
        prompt=generation.prompt,
        response=generation.response,
        metadata=generation.generation_metadata or {},
        credits=generation.credits,
        status=GenerationStatus(generation.status),
        error=generation.error,
        created_at=generation.created_at,
    )
