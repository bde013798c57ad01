"""
Database Models - SQLAlchemy ORM models with strict typing.

NO DICTIONARIES - All columns use Mapped[] type annotations.
"""

from datetime import UTC, datetime
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


def utc_now() -> datetime:
    """Get current UTC timestamp."""
    return datetime.now(UTC)


class Account(Base):
    """
    ORM model for accounts table.

    Stores identity, password hash, the single refresh-token slot,
    subscription state and the credit balance.
    """

    __tablename__ = "accounts"

    # Primary Key
    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True, default=uuid4)

    # Identity fields
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    avatar: Mapped[str | None] = mapped_column(String(500), nullable=True)

    # Secret
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    password_changed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    # Session state - SHA-256 of the one active refresh token
    refresh_token_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)

    # Subscription
    subscription_tier: Mapped[str] = mapped_column(String(20), nullable=False, default="free")
    subscription_status: Mapped[str] = mapped_column(
        String(20), nullable=False, default="active"
    )
    subscription_start: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    subscription_end: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    # Credits
    credits_total: Mapped[int] = mapped_column(BigInteger, nullable=False, default=100)
    credits_used: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    credits_remaining: Mapped[int] = mapped_column(BigInteger, nullable=False, default=100)

    # Usage counters
    total_requests: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    last_request_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    # Flags
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    role: Mapped[str] = mapped_column(String(20), nullable=False, default="user")

    # Audit timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now
    )

    generations: Mapped[list["Generation"]] = relationship(
        back_populates="account", cascade="all, delete-orphan", passive_deletes=True
    )

    __table_args__ = (
        CheckConstraint(
            "credits_remaining = credits_total - credits_used", name="ck_credits_balanced"
        ),
        CheckConstraint("credits_used >= 0", name="ck_credits_used_non_negative"),
        CheckConstraint("credits_remaining >= 0", name="ck_credits_remaining_non_negative"),
        CheckConstraint("total_requests >= 0", name="ck_total_requests_non_negative"),
        CheckConstraint(
            "subscription_tier IN ('free', 'pro', 'enterprise')", name="ck_subscription_tier"
        ),
        CheckConstraint(
            "subscription_status IN ('active', 'cancelled', 'expired')",
            name="ck_subscription_status",
        ),
        CheckConstraint("role IN ('user', 'admin')", name="ck_account_role"),
        Index("idx_accounts_subscription_tier", "subscription_tier"),
    )

    def __repr__(self) -> str:
        """String representation for debugging."""
        return (
            f"<Account(id={self.id}, email={self.email}, tier={self.subscription_tier}, "
            f"remaining={self.credits_remaining})>"
        )


class Generation(Base):
    """
    ORM model for generations table.

    Append-only record of completed provider calls and the credits charged.
    """

    __tablename__ = "generations"

    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True, default=uuid4)
    account_id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True),
        ForeignKey("accounts.id", ondelete="CASCADE"),
        nullable=False,
    )

    type: Mapped[str] = mapped_column(String(20), nullable=False)
    prompt: Mapped[str] = mapped_column(Text, nullable=False)
    response: Mapped[Any] = mapped_column(JSONB, nullable=False)
    # "metadata" is reserved on declarative classes
    generation_metadata: Mapped[dict[str, Any]] = mapped_column(
        "metadata", JSONB, nullable=False, default=dict
    )
    credits: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="completed")
    error: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )

    account: Mapped[Account] = relationship(back_populates="generations")

    __table_args__ = (
        CheckConstraint("credits >= 0", name="ck_generation_credits_non_negative"),
        CheckConstraint(
            "type IN ('text', 'analysis', 'summary', 'image')", name="ck_generation_type"
        ),
        CheckConstraint(
            "status IN ('pending', 'completed', 'failed')", name="ck_generation_status"
        ),
        Index("idx_generations_account_created", "account_id", "created_at"),
        Index("idx_generations_type", "type"),
        Index("idx_generations_status", "status"),
    )

    def __repr__(self) -> str:
        """String representation for debugging."""
        return (
            f"<Generation(id={self.id}, account_id={self.account_id}, "
            f"type={self.type}, credits={self.credits})>"
        )
