"""
FastAPI Dependencies - Session guard and capability gates.

get_current_account() is the single path every protected route takes to
turn a bearer token into a live account. The gate factories build on it.
"""

from collections.abc import Awaitable, Callable

import structlog
from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from gateway.db.models import Account
from gateway.db.session import get_write_db
from gateway.exceptions import (
    AccountDeactivatedError,
    AccountNotFoundError,
    ForbiddenError,
    InsufficientCreditsError,
    StalePasswordError,
    TierRestrictedError,
    UnauthenticatedError,
)
from gateway.models.api import AccountRole, SubscriptionTier
from gateway.models.domain import TokenClaims, TokenClass
from gateway.services.provider import GenerationProvider
from gateway.services.rate_limit import ai_limiter, normalize_ip
from gateway.services.tokens import TokenIssuer

logger = get_logger(__name__)

# Bearer token scheme; a missing header yields None instead of a 403
bearer_scheme = HTTPBearer(auto_error=False)


# ============================================================================
# Shared services
# ============================================================================


def get_token_issuer(request: Request) -> TokenIssuer:
    """Token issuer built once in the application lifespan."""
    issuer: TokenIssuer = request.app.state.token_issuer
    return issuer


def get_generation_provider(request: Request) -> GenerationProvider:
    """Generation provider built once in the application lifespan."""
    provider: GenerationProvider = request.app.state.generation_provider
    return provider


def get_client_ip(request: Request) -> str:
    """Normalized client address (after proxy header rewriting)."""
    return normalize_ip(request.client.host if request.client else None)


# ============================================================================
# Session Guard
# ============================================================================


def ensure_session_valid(account: Account | None, claims: TokenClaims) -> Account:
    """
    Check a verified token against the account it names.

    Raises:
        AccountNotFoundError: account no longer exists
        AccountDeactivatedError: account disabled
        StalePasswordError: token issued before the last password change
    """
    if account is None:
        raise AccountNotFoundError(claims.account_id)

    if not account.is_active:
        raise AccountDeactivatedError(account.id)

    # JWT iat has whole-second resolution, so the change is truncated to match.
    # A token issued earlier within the same second as the change stays valid.
    if account.password_changed_at is not None:
        changed_at = int(account.password_changed_at.timestamp())
        if changed_at > claims.issued_at:
            raise StalePasswordError()

    return account


async def get_current_account(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    db: AsyncSession = Depends(get_write_db),
    token_issuer: TokenIssuer = Depends(get_token_issuer),
) -> Account:
    """
    FastAPI dependency to authenticate a request by access token.

    Steps:
    1. Bearer token present, else 401
    2. Verified as an access token (signature, expiry, class), else 401
    3. Account exists, else 401
    4. Account is active, else 401
    5. Token not older than the last password change, else 401
    6. Account attached to the request and the log context

    Usage:
        @router.get("/auth/me")
        async def me(account: Account = Depends(get_current_account)):
            ...
    """
    if credentials is None or not credentials.credentials:
        raise UnauthenticatedError()

    claims = token_issuer.verify(credentials.credentials, TokenClass.ACCESS)

    account = await db.get(Account, claims.account_id)
    try:
        account = ensure_session_valid(account, claims)
    except (AccountNotFoundError, AccountDeactivatedError, StalePasswordError) as exc:
        logger.warning(
            "session_rejected", account_id=str(claims.account_id), reason=type(exc).__name__
        )
        raise

    request.state.account = account
    structlog.contextvars.bind_contextvars(account_id=str(account.id))
    return account


# ============================================================================
# Capability gates
# ============================================================================


def require_role(*roles: AccountRole) -> Callable[..., Awaitable[Account]]:
    """
    Dependency factory: account's role must be one of roles.

    Usage:
        @router.post("/usage/credits/grant")
        async def grant(account: Account = Depends(require_role(AccountRole.ADMIN))):
            ...
    """
    allowed = {role.value for role in roles}

    async def check_role(account: Account = Depends(get_current_account)) -> Account:
        if account.role not in allowed:
            logger.warning("role_forbidden", account_id=str(account.id), role=account.role)
            raise ForbiddenError(account.role)
        return account

    return check_role


def require_tier(*tiers: SubscriptionTier) -> Callable[..., Awaitable[Account]]:
    """Dependency factory: account's subscription tier must be one of tiers."""
    allowed = [tier.value for tier in tiers]

    async def check_tier(account: Account = Depends(get_current_account)) -> Account:
        if account.subscription_tier not in allowed:
            raise TierRestrictedError(account.subscription_tier, allowed)
        return account

    return check_tier


def require_credits(amount: int = 1) -> Callable[..., Awaitable[Account]]:
    """
    Dependency factory: account must hold at least `amount` credits.

    Advisory only; the ledger re-checks under the row lock when charging.
    """

    async def check_credits(account: Account = Depends(get_current_account)) -> Account:
        if account.credits_remaining < amount:
            raise InsufficientCreditsError(account.credits_remaining, amount)
        return account

    return check_credits


# ============================================================================
# Rate limiting
# ============================================================================


async def enforce_ai_rate_limit(
    request: Request, account: Account = Depends(get_current_account)
) -> None:
    """Count a generation request against the account's AI window."""
    key = str(account.id) if account is not None else get_client_ip(request)
    await ai_limiter.hit(key)
