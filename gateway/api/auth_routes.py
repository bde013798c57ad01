"""
Auth API routes - registration, login, token refresh and profile.

Login and registration go through the auth rate limiter keyed by client
IP; only failed attempts count against the window.
"""

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from gateway.api.dependencies import get_client_ip, get_current_account, get_token_issuer
from gateway.api.serializers import account_response
from gateway.db.models import Account
from gateway.db.session import get_write_db
from gateway.exceptions import ValidationFailedError
from gateway.models.api import (
    AccountData,
    AuthData,
    ChangePasswordRequest,
    LoginRequest,
    MessageResponse,
    RefreshData,
    RefreshRequest,
    RegisterRequest,
    SuccessEnvelope,
    UpdateProfileRequest,
)
from gateway.services.accounts import AccountService
from gateway.services.rate_limit import auth_limiter
from gateway.services.tokens import TokenIssuer

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post(
    "/register",
    response_model=SuccessEnvelope[AuthData],
    status_code=status.HTTP_201_CREATED,
)
async def register(
    body: RegisterRequest,
    request: Request,
    db: AsyncSession = Depends(get_write_db),
    token_issuer: TokenIssuer = Depends(get_token_issuer),
) -> SuccessEnvelope[AuthData]:
    """Create an account on the free plan and log it in."""
    async with auth_limiter.attempt(get_client_ip(request)):
        result = await AccountService(db, token_issuer).register(
            body.name, body.email, body.password
        )

    return SuccessEnvelope(
        data=AuthData(
            user=account_response(result.account),
            access_token=result.tokens.access_token,
            refresh_token=result.tokens.refresh_token,
        )
    )


@router.post("/login", response_model=SuccessEnvelope[AuthData])
async def login(
    body: LoginRequest,
    request: Request,
    db: AsyncSession = Depends(get_write_db),
    token_issuer: TokenIssuer = Depends(get_token_issuer),
) -> SuccessEnvelope[AuthData]:
    """Exchange email and password for a token pair."""
    async with auth_limiter.attempt(get_client_ip(request)):
        if not body.email or not body.password:
            raise ValidationFailedError("Please provide email and password")

        result = await AccountService(db, token_issuer).authenticate(body.email, body.password)

    return SuccessEnvelope(
        data=AuthData(
            user=account_response(result.account),
            access_token=result.tokens.access_token,
            refresh_token=result.tokens.refresh_token,
        )
    )


@router.post("/refresh", response_model=SuccessEnvelope[RefreshData])
async def refresh(
    body: RefreshRequest,
    db: AsyncSession = Depends(get_write_db),
    token_issuer: TokenIssuer = Depends(get_token_issuer),
) -> SuccessEnvelope[RefreshData]:
    """Exchange a refresh token for a new pair; the old refresh token dies."""
    if not body.refresh_token:
        raise ValidationFailedError("Refresh token is required")

    tokens = await AccountService(db, token_issuer).refresh(body.refresh_token)
    return SuccessEnvelope(
        data=RefreshData(access_token=tokens.access_token, refresh_token=tokens.refresh_token)
    )


@router.post("/logout", response_model=MessageResponse)
async def logout(
    account: Account = Depends(get_current_account),
    db: AsyncSession = Depends(get_write_db),
    token_issuer: TokenIssuer = Depends(get_token_issuer),
) -> MessageResponse:
    """Clear the account's refresh slot."""
    await AccountService(db, token_issuer).logout(account)
    return MessageResponse(message="Logged out successfully")


@router.get("/me", response_model=SuccessEnvelope[AccountData])
async def me(account: Account = Depends(get_current_account)) -> SuccessEnvelope[AccountData]:
    """The authenticated account."""
    return SuccessEnvelope(data=AccountData(user=account_response(account)))


@router.put("/profile", response_model=SuccessEnvelope[AccountData])
async def update_profile(
    body: UpdateProfileRequest,
    account: Account = Depends(get_current_account),
    db: AsyncSession = Depends(get_write_db),
    token_issuer: TokenIssuer = Depends(get_token_issuer),
) -> SuccessEnvelope[AccountData]:
    """Change display name and/or email."""
    updated = await AccountService(db, token_issuer).update_profile(
        account, name=body.name, email=body.email
    )
    return SuccessEnvelope(data=AccountData(user=account_response(updated)))


@router.post("/change-password", response_model=SuccessEnvelope[AuthData])
async def change_password(
    body: ChangePasswordRequest,
    account: Account = Depends(get_current_account),
    db: AsyncSession = Depends(get_write_db),
    token_issuer: TokenIssuer = Depends(get_token_issuer),
) -> SuccessEnvelope[AuthData]:
    """Replace the password and return a fresh token pair."""
    if not body.current_password or not body.new_password:
        raise ValidationFailedError("Please provide current and new password")

    result = await AccountService(db, token_issuer).change_password(
        account, body.current_password, body.new_password
    )
    return SuccessEnvelope(
        data=AuthData(
            user=account_response(result.account),
            access_token=result.tokens.access_token,
            refresh_token=result.tokens.refresh_token,
        )
    )
