"""
API Models - Pydantic models for request/response validation.

NO DICTIONARIES - All data structures are strongly typed.
Wire format is camelCase; Python attributes stay snake_case.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Generic, Literal, TypeVar
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

EMAIL_PATTERN = r"^\S+@\S+\.\S+$"


class SubscriptionTier(str, Enum):
    """Subscription plan tier."""

    FREE = "free"
    PRO = "pro"
    ENTERPRISE = "enterprise"


class SubscriptionStatus(str, Enum):
    """Subscription status enumeration."""

    ACTIVE = "active"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


class AccountRole(str, Enum):
    """Account role enumeration."""

    USER = "user"
    ADMIN = "admin"


class GenerationType(str, Enum):
    """Kind of generation stored in history."""

    TEXT = "text"
    ANALYSIS = "analysis"
    SUMMARY = "summary"
    IMAGE = "image"


class GenerationStatus(str, Enum):
    """Generation lifecycle status."""

    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class CamelModel(BaseModel):
    """Base model serialized with camelCase keys."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


DataT = TypeVar("DataT")


class SuccessEnvelope(CamelModel, Generic[DataT]):
    """Uniform success body: {"status": "success", "data": ...}."""

    status: Literal["success"] = "success"
    data: DataT


class MessageResponse(CamelModel):
    """Uniform acknowledgement body."""

    status: Literal["success"] = "success"
    message: str


# ============================================================================
# Account Models
# ============================================================================


class SubscriptionInfo(CamelModel):
    """Subscription state of an account."""

    tier: SubscriptionTier
    status: SubscriptionStatus
    start_date: datetime | None = None
    end_date: datetime | None = None


class CreditsInfo(CamelModel):
    """Credit balance of an account."""

    total: int
    used: int
    remaining: int


class UsageInfo(CamelModel):
    """Usage counters of an account."""

    total_requests: int
    last_request_at: datetime | None = None


class AccountResponse(CamelModel):
    """Public view of an account (never includes secrets)."""

    id: UUID
    name: str
    email: str
    avatar: str | None = None
    role: AccountRole
    is_active: bool
    subscription: SubscriptionInfo
    credits: CreditsInfo
    usage: UsageInfo
    created_at: datetime | None = None


class AccountData(CamelModel):
    """Body of GET /auth/me and PUT /auth/profile."""

    user: AccountResponse


# ============================================================================
# Auth Models
# ============================================================================


class RegisterRequest(CamelModel):
    """POST /auth/register request body."""

    name: str = Field(..., min_length=1, max_length=100)
    email: str = Field(..., min_length=3, max_length=255, pattern=EMAIL_PATTERN)
    password: str = Field(..., min_length=8, max_length=128)

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        """Names are stored trimmed."""
        v = v.strip()
        if not v:
            raise ValueError("Name is required")
        return v


class LoginRequest(CamelModel):
    """POST /auth/login request body."""

    email: str | None = None
    password: str | None = None


class RefreshRequest(CamelModel):
    """POST /auth/refresh request body."""

    refresh_token: str | None = None


class ChangePasswordRequest(CamelModel):
    """POST /auth/change-password request body."""

    current_password: str | None = None
    new_password: str | None = None


class UpdateProfileRequest(CamelModel):
    """PUT /auth/profile request body."""

    name: str | None = Field(None, min_length=1, max_length=100)
    email: str | None = Field(None, min_length=3, max_length=255, pattern=EMAIL_PATTERN)


class AuthData(CamelModel):
    """Account plus a fresh token pair."""

    user: AccountResponse
    access_token: str
    refresh_token: str


class RefreshData(CamelModel):
    """Rotated token pair."""

    access_token: str
    refresh_token: str


# ============================================================================
# AI Models
# ============================================================================


class GenerationOptionsRequest(CamelModel):
    """Caller-supplied generation options (all optional)."""

    model: str | None = Field(None, max_length=255)
    max_tokens: int | None = Field(None, gt=0, le=8000)
    temperature: float | None = Field(None, ge=0.0, le=2.0)
    system_prompt: str | None = Field(None, max_length=4000)


class SummarizeOptionsRequest(CamelModel):
    """Options for POST /ai/summarize."""

    length: Literal["short", "medium", "long"] = "medium"
    style: Literal["paragraph", "bullet"] = "bullet"


class GenerateTextRequest(CamelModel):
    """POST /ai/generate-text request body."""

    prompt: str | None = None
    options: GenerationOptionsRequest = Field(default_factory=GenerationOptionsRequest)


class AnalyzeDocumentRequest(CamelModel):
    """POST /ai/analyze-document request body."""

    text: str | None = None
    analysis_type: Literal["summary", "sentiment", "keywords", "entities"] = "summary"


class SummarizeRequest(CamelModel):
    """POST /ai/summarize request body."""

    text: str | None = None
    options: SummarizeOptionsRequest = Field(default_factory=SummarizeOptionsRequest)


class GenerateContentRequest(CamelModel):
    """POST /ai/generate-content request body."""

    prompt: str | None = None
    content_type: Literal["article", "blog", "social", "email", "story"] = "article"


class GenerateTextData(CamelModel):
    """POST /ai/generate-text response data."""

    text: str
    generation: UUID
    credits_used: int
    credits_remaining: int


class AnalyzeDocumentData(CamelModel):
    """POST /ai/analyze-document response data."""

    analysis: str
    type: str
    generation: UUID
    credits_used: int
    credits_remaining: int


class SummaryStats(CamelModel):
    """Length statistics for a summary."""

    original_length: int
    summary_length: int
    compression_ratio: float


class SummarizeData(CamelModel):
    """POST /ai/summarize response data."""

    summary: str
    stats: SummaryStats
    generation: UUID
    credits_used: int
    credits_remaining: int


class GenerateContentData(CamelModel):
    """POST /ai/generate-content response data."""

    content: str
    type: str
    word_count: int
    generation: UUID
    credits_used: int
    credits_remaining: int


class GenerationItem(CamelModel):
    """Single generation record in history."""

    id: UUID
    type: GenerationType
    prompt: str
    response: Any
    metadata: dict[str, Any] = Field(default_factory=dict)
    credits: int
    status: GenerationStatus
    error: str | None = None
    created_at: datetime | None = None


class Pagination(CamelModel):
    """Pagination block for list responses."""

    total: int
    pages: int
    current_page: int
    per_page: int


class GenerationListData(CamelModel):
    """GET /ai/history response data."""

    generations: list[GenerationItem]
    pagination: Pagination


class GenerationData(CamelModel):
    """GET /ai/history/{id} response data."""

    generation: GenerationItem


# ============================================================================
# Usage Models
# ============================================================================


class CreditsData(CamelModel):
    """GET /usage/credits response data."""

    credits: CreditsInfo
    subscription: SubscriptionInfo


class TypeStats(CamelModel):
    """Aggregate per generation type."""

    type: GenerationType
    count: int
    total_credits: int


class UsageStatsData(CamelModel):
    """GET /usage/stats response data."""

    total_generations: int
    by_type: list[TypeStats]
    credits: CreditsInfo
    usage: UsageInfo


class DailyUsage(CamelModel):
    """Aggregate per day and generation type."""

    date: str  # YYYY-MM-DD
    type: GenerationType
    count: int
    credits: int


class UsageHistoryData(CamelModel):
    """GET /usage/history response data."""

    history: list[DailyUsage]


class GrantCreditsRequest(CamelModel):
    """POST /usage/credits/grant request body (admin only)."""

    account_id: UUID
    amount: int = Field(..., gt=0, le=1_000_000)


# ============================================================================
# Subscription Models
# ============================================================================


class PlanInfo(CamelModel):
    """One entry of the plan table."""

    credits: int
    price: int


class PlansData(CamelModel):
    """GET /subscriptions/plans response data."""

    plans: dict[SubscriptionTier, PlanInfo]


class SubscribeRequest(CamelModel):
    """POST /subscriptions/subscribe request body."""

    tier: str | None = None


class SubscribeData(CamelModel):
    """POST /subscriptions/subscribe response data."""

    subscription: SubscriptionInfo
    credits: CreditsInfo


# ============================================================================
# Health
# ============================================================================


class HealthResponse(BaseModel):
    """GET /health response."""

    status: str
    database: str
    timestamp: str
