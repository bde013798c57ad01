"""
Generation Service - append-only generation history and usage rollups.

All reads are scoped to the owning account; a record that belongs to
someone else is indistinguishable from one that does not exist.
"""

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from gateway.db.models import Generation
from gateway.exceptions import NotFoundError
from gateway.models.api import GenerationStatus

logger = get_logger(__name__)

DEFAULT_PAGE_SIZE = 10
MAX_PAGE_SIZE = 100
DEFAULT_HISTORY_DAYS = 30


@dataclass(frozen=True)
class GenerationPage:
    """One page of an account's history."""

    items: list[Generation]
    total: int
    page: int
    limit: int

    @property
    def pages(self) -> int:
        return (self.total + self.limit - 1) // self.limit


@dataclass(frozen=True)
class TypeRollup:
    """Count and credits for one generation type."""

    type: str
    count: int
    credits: int


@dataclass(frozen=True)
class DailyRollup:
    """Count and credits for one day and generation type."""

    date: str  # YYYY-MM-DD
    type: str
    count: int
    credits: int


class GenerationService:
    """Persistence and queries over the generations table."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def record(
        self,
        account_id: UUID,
        generation_type: str,
        prompt: str,
        response: Any,
        credits: int,
        metadata: dict[str, Any] | None = None,
    ) -> Generation:
        """Append a completed generation."""
        generation = Generation(
            id=uuid4(),
            account_id=account_id,
            type=generation_type,
            prompt=prompt,
            response=response,
            generation_metadata=metadata or {},
            credits=credits,
            status=GenerationStatus.COMPLETED.value,
            error=None,
            created_at=datetime.now(UTC),
        )
        self.session.add(generation)
        await self.session.commit()

        logger.info(
            "generation_recorded",
            generation_id=str(generation.id),
            account_id=str(account_id),
            type=generation_type,
            credits=credits,
        )
        return generation

    async def list_history(
        self,
        account_id: UUID,
        page: int = 1,
        limit: int = DEFAULT_PAGE_SIZE,
        generation_type: str | None = None,
    ) -> GenerationPage:
        """Newest-first page of the account's generations."""
        page = max(1, page)
        limit = min(max(1, limit), MAX_PAGE_SIZE)

        conditions = [Generation.account_id == account_id]
        if generation_type:
            conditions.append(Generation.type == generation_type)

        count_stmt = select(func.count()).select_from(Generation).where(*conditions)
        total = (await self.session.execute(count_stmt)).scalar_one()

        stmt = (
            select(Generation)
            .where(*conditions)
            .order_by(Generation.created_at.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        items = list(result.scalars().all())

        return GenerationPage(items=items, total=int(total or 0), page=page, limit=limit)

    async def get(self, account_id: UUID, generation_id: UUID) -> Generation:
        """
        Fetch one generation owned by the account.

        Raises:
            NotFoundError: missing or owned by another account
        """
        stmt = select(Generation).where(
            Generation.id == generation_id, Generation.account_id == account_id
        )
        result = await self.session.execute(stmt)
        generation = result.scalar_one_or_none()
        if generation is None:
            raise NotFoundError("Generation")
        return generation

    async def delete(self, account_id: UUID, generation_id: UUID) -> None:
        """
        Delete one generation owned by the account.

        Raises:
            NotFoundError: missing or owned by another account
        """
        stmt = (
            delete(Generation)
            .where(Generation.id == generation_id, Generation.account_id == account_id)
            .returning(Generation.id)
        )
        result = await self.session.execute(stmt)
        if result.scalar_one_or_none() is None:
            await self.session.rollback()
            raise NotFoundError("Generation")
        await self.session.commit()

        logger.info("generation_deleted", generation_id=str(generation_id), account_id=str(account_id))

    async def stats(self, account_id: UUID) -> list[TypeRollup]:
        """Per-type count and credits across the account's whole history."""
        stmt = (
            select(
                Generation.type,
                func.count(Generation.id),
                func.coalesce(func.sum(Generation.credits), 0),
            )
            .where(Generation.account_id == account_id)
            .group_by(Generation.type)
            .order_by(Generation.type)
        )
        result = await self.session.execute(stmt)
        return [
            TypeRollup(type=row[0], count=int(row[1]), credits=int(row[2]))
            for row in result.all()
        ]

    async def usage_history(
        self, account_id: UUID, days: int = DEFAULT_HISTORY_DAYS
    ) -> list[DailyRollup]:
        """Per-day, per-type count and credits for the last `days` days."""
        since = datetime.now(UTC) - timedelta(days=max(1, days))
        day = func.date_trunc("day", Generation.created_at).label("day")
        stmt = (
            select(
                day,
                Generation.type,
                func.count(Generation.id),
                func.coalesce(func.sum(Generation.credits), 0),
            )
            .where(Generation.account_id == account_id, Generation.created_at >= since)
            .group_by(day, Generation.type)
            .order_by(day, Generation.type)
        )
        result = await self.session.execute(stmt)
        return [
            DailyRollup(
                date=row[0].strftime("%Y-%m-%d"),
                type=row[1],
                count=int(row[2]),
                credits=int(row[3]),
            )
            for row in result.all()
        ]
