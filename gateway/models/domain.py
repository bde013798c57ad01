"""
Domain Models - Internal business logic models using dataclasses.

NO DICTIONARIES - All data structures are strongly typed immutable dataclasses.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any
from uuid import UUID

from gateway.models.api import SubscriptionTier


class TokenClass(str, Enum):
    """Token classes - each is signed with its own secret."""

    ACCESS = "access"
    REFRESH = "refresh"


@dataclass(frozen=True)
class TokenClaims:
    """Verified claims of an access or refresh token."""

    account_id: UUID
    issued_at: int  # epoch seconds
    expires_at: int  # epoch seconds
    token_class: TokenClass
    token_id: str


@dataclass(frozen=True)
class TokenPair:
    """Freshly issued access + refresh tokens."""

    access_token: str
    refresh_token: str


@dataclass(frozen=True)
class CreditBalance:
    """Immutable credit balance snapshot."""

    total: int
    used: int
    remaining: int

    def __post_init__(self) -> None:
        """Validate the balance invariant."""
        if self.remaining != self.total - self.used:
            raise ValueError(
                f"Credit invariant violated: remaining={self.remaining}, "
                f"total={self.total}, used={self.used}"
            )


@dataclass(frozen=True)
class SubscriptionPlan:
    """One entry of the plan table."""

    tier: SubscriptionTier
    credits: int
    price: int  # whole currency units per period

    def __post_init__(self) -> None:
        """Validate plan constraints."""
        if self.credits <= 0:
            raise ValueError(f"Plan credits must be positive: {self.credits}")
        if self.price < 0:
            raise ValueError(f"Plan price cannot be negative: {self.price}")


@dataclass(frozen=True)
class TokenUsage:
    """Token usage reported by the generation provider."""

    prompt_tokens: int | None = None
    completion_tokens: int | None = None
    total_tokens: int | None = None

    @property
    def resolved_total(self) -> int | None:
        """Total tokens, falling back to prompt + completion."""
        if self.total_tokens:
            return self.total_tokens
        if self.prompt_tokens is None and self.completion_tokens is None:
            return self.total_tokens
        return (self.prompt_tokens or 0) + (self.completion_tokens or 0)

    @classmethod
    def from_payload(cls, payload: Any) -> "TokenUsage | None":
        """Normalize a provider usage block; None when no counts are present."""
        if not isinstance(payload, dict):
            return None

        def _count(key: str) -> int | None:
            value = payload.get(key)
            if isinstance(value, bool) or not isinstance(value, int | float):
                return None
            return max(0, int(value))

        usage = cls(
            prompt_tokens=_count("prompt_tokens"),
            completion_tokens=_count("completion_tokens"),
            total_tokens=_count("total_tokens"),
        )
        if usage.resolved_total is None:
            return None
        return usage


@dataclass(frozen=True)
class GenerationOptions:
    """Options passed to the generation provider."""

    model: str | None = None
    max_tokens: int = 1000
    temperature: float = 0.7
    system_prompt: str = "You are a helpful AI assistant."


@dataclass(frozen=True)
class ProviderResult:
    """Successful provider response."""

    text: str
    model: str
    usage: TokenUsage | None
    duration_ms: int
