"""
AI API routes - paid generation endpoints and generation history.

Every paid route follows the same order: session guard, AI rate limit,
advisory credit gate, provider call, then charge and record. Nothing is
charged or recorded when the provider fails.
"""

from collections.abc import Awaitable
from dataclasses import asdict
from typing import Any
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from gateway.api.dependencies import (
    enforce_ai_rate_limit,
    get_current_account,
    get_generation_provider,
    require_credits,
)
from gateway.api.serializers import generation_item
from gateway.db.models import Account, Generation
from gateway.db.session import get_read_db, get_write_db
from gateway.exceptions import InternalError, ProviderFailureError, ValidationFailedError
from gateway.models.api import (
    AnalyzeDocumentData,
    AnalyzeDocumentRequest,
    GenerateContentData,
    GenerateContentRequest,
    GenerateTextData,
    GenerateTextRequest,
    GenerationData,
    GenerationListData,
    GenerationType,
    MessageResponse,
    Pagination,
    SuccessEnvelope,
    SummarizeData,
    SummarizeRequest,
    SummaryStats,
)
from gateway.models.domain import CreditBalance, GenerationOptions, ProviderResult
from gateway.services.generations import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE, GenerationService
from gateway.services.ledger import CreditLedger, calculate_credits
from gateway.services.provider import GenerationProvider

logger = get_logger(__name__)
router = APIRouter(prefix="/ai", tags=["ai"])


async def _charge_and_record(
    db: AsyncSession,
    account: Account,
    generation_type: GenerationType,
    prompt: str,
    result: ProviderResult,
    failure_message: str,
    extra_metadata: dict[str, Any] | None = None,
) -> tuple[Generation, int, CreditBalance]:
    """
    Deduct the usage-based cost, then append the generation record.

    InsufficientCreditsError propagates (402) when the actual cost exceeds
    the balance; persistence faults become InternalError.
    """
    credits = calculate_credits(result.usage)
    metadata: dict[str, Any] = {
        "model": result.model,
        "usage": asdict(result.usage) if result.usage else {},
        "duration": result.duration_ms,
        **(extra_metadata or {}),
    }

    try:
        balance = await CreditLedger(db).deduct(account, credits, generation_type.value)
        generation = await GenerationService(db).record(
            account_id=account.id,
            generation_type=generation_type.value,
            prompt=prompt,
            response=result.text,
            credits=credits,
            metadata=metadata,
        )
    except SQLAlchemyError as exc:
        logger.error(
            "generation_persist_failed",
            account_id=str(account.id),
            type=generation_type.value,
            error=str(exc),
            exc_info=True,
        )
        raise InternalError(failure_message) from exc

    return generation, credits, balance


async def _call_provider(
    db: AsyncSession, call: Awaitable[ProviderResult], failure_message: str, event: str
) -> ProviderResult:
    """
    Await the provider outside any database transaction.

    The session guard's read autobegins a transaction; it is ended here so
    no pooled connection stays checked out for the length of the call.
    The ledger re-reads the account under its row lock afterwards.
    """
    await db.commit()
    try:
        result = await call
    except ProviderFailureError as exc:
        logger.error(event, error=exc.message)
        raise ProviderFailureError(failure_message) from exc
    return result


@router.post("/generate-text", response_model=SuccessEnvelope[GenerateTextData])
async def generate_text(
    body: GenerateTextRequest,
    _rate_limit: None = Depends(enforce_ai_rate_limit),
    account: Account = Depends(require_credits(1)),
    db: AsyncSession = Depends(get_write_db),
    provider: GenerationProvider = Depends(get_generation_provider),
) -> SuccessEnvelope[GenerateTextData]:
    """Free-form text generation."""
    if not body.prompt:
        raise ValidationFailedError("Prompt is required")

    defaults = GenerationOptions()
    options = GenerationOptions(
        model=body.options.model,
        max_tokens=body.options.max_tokens or defaults.max_tokens,
        temperature=(
            body.options.temperature
            if body.options.temperature is not None
            else defaults.temperature
        ),
        system_prompt=body.options.system_prompt or defaults.system_prompt,
    )

    result = await _call_provider(
        db,
        provider.generate(body.prompt, options),
        "Text generation failed",
        "text_generation_failed",
    )
    generation, credits, balance = await _charge_and_record(
        db, account, GenerationType.TEXT, body.prompt, result, "Text generation failed"
    )

    return SuccessEnvelope(
        data=GenerateTextData(
            text=result.text,
            generation=generation.id,
            credits_used=credits,
            credits_remaining=balance.remaining,
        )
    )


@router.post("/analyze-document", response_model=SuccessEnvelope[AnalyzeDocumentData])
async def analyze_document(
    body: AnalyzeDocumentRequest,
    _rate_limit: None = Depends(enforce_ai_rate_limit),
    account: Account = Depends(require_credits(2)),
    db: AsyncSession = Depends(get_write_db),
    provider: GenerationProvider = Depends(get_generation_provider),
) -> SuccessEnvelope[AnalyzeDocumentData]:
    """Summary, sentiment, keyword or entity analysis of a document."""
    if not body.text:
        raise ValidationFailedError("Text content is required")

    result = await _call_provider(
        db,
        provider.analyze_document(body.text, body.analysis_type),
        "Document analysis failed",
        "document_analysis_failed",
    )
    generation, credits, balance = await _charge_and_record(
        db,
        account,
        GenerationType.ANALYSIS,
        f"Analysis type: {body.analysis_type}",
        result,
        "Document analysis failed",
        {"analysisType": body.analysis_type},
    )

    return SuccessEnvelope(
        data=AnalyzeDocumentData(
            analysis=result.text,
            type=body.analysis_type,
            generation=generation.id,
            credits_used=credits,
            credits_remaining=balance.remaining,
        )
    )


@router.post("/summarize", response_model=SuccessEnvelope[SummarizeData])
async def summarize(
    body: SummarizeRequest,
    _rate_limit: None = Depends(enforce_ai_rate_limit),
    account: Account = Depends(require_credits(1)),
    db: AsyncSession = Depends(get_write_db),
    provider: GenerationProvider = Depends(get_generation_provider),
) -> SuccessEnvelope[SummarizeData]:
    """Summarize text at the requested length and style."""
    if not body.text:
        raise ValidationFailedError("Text is required")

    result = await _call_provider(
        db,
        provider.summarize(body.text, body.options.length, body.options.style),
        "Summarization failed",
        "summarization_failed",
    )

    original_length = len(body.text)
    summary_length = len(result.text)
    compression_ratio = round(summary_length / original_length, 2) if original_length else 0.0

    generation, credits, balance = await _charge_and_record(
        db,
        account,
        GenerationType.SUMMARY,
        "Text summarization",
        result,
        "Summarization failed",
        {"compressionRatio": compression_ratio},
    )

    return SuccessEnvelope(
        data=SummarizeData(
            summary=result.text,
            stats=SummaryStats(
                original_length=original_length,
                summary_length=summary_length,
                compression_ratio=compression_ratio,
            ),
            generation=generation.id,
            credits_used=credits,
            credits_remaining=balance.remaining,
        )
    )


@router.post("/generate-content", response_model=SuccessEnvelope[GenerateContentData])
async def generate_content(
    body: GenerateContentRequest,
    _rate_limit: None = Depends(enforce_ai_rate_limit),
    account: Account = Depends(require_credits(2)),
    db: AsyncSession = Depends(get_write_db),
    provider: GenerationProvider = Depends(get_generation_provider),
) -> SuccessEnvelope[GenerateContentData]:
    """Article, blog, social, email or story content."""
    if not body.prompt:
        raise ValidationFailedError("Prompt is required")

    result = await _call_provider(
        db,
        provider.generate_content(body.prompt, body.content_type),
        "Content generation failed",
        "content_generation_failed",
    )
    word_count = len(result.text.split())

    generation, credits, balance = await _charge_and_record(
        db,
        account,
        GenerationType.TEXT,
        body.prompt,
        result,
        "Content generation failed",
        {"contentType": body.content_type, "wordCount": word_count},
    )

    return SuccessEnvelope(
        data=GenerateContentData(
            content=result.text,
            type=body.content_type,
            word_count=word_count,
            generation=generation.id,
            credits_used=credits,
            credits_remaining=balance.remaining,
        )
    )


# ============================================================================
# History
# ============================================================================


@router.get("/history", response_model=SuccessEnvelope[GenerationListData])
async def list_history(
    page: int = Query(1, ge=1),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    type: GenerationType | None = Query(None),
    account: Account = Depends(get_current_account),
    db: AsyncSession = Depends(get_read_db),
) -> SuccessEnvelope[GenerationListData]:
    """Newest-first page of the caller's generations."""
    history = await GenerationService(db).list_history(
        account.id, page=page, limit=limit, generation_type=type.value if type else None
    )
    return SuccessEnvelope(
        data=GenerationListData(
            generations=[generation_item(item) for item in history.items],
            pagination=Pagination(
                total=history.total,
                pages=history.pages,
                current_page=history.page,
                per_page=history.limit,
            ),
        )
    )


@router.get("/history/{generation_id}", response_model=SuccessEnvelope[GenerationData])
async def get_generation(
    generation_id: UUID,
    account: Account = Depends(get_current_account),
    db: AsyncSession = Depends(get_read_db),
) -> SuccessEnvelope[GenerationData]:
    """One of the caller's generations."""
    generation = await GenerationService(db).get(account.id, generation_id)
    return SuccessEnvelope(data=GenerationData(generation=generation_item(generation)))


@router.delete("/history/{generation_id}", response_model=MessageResponse)
async def delete_generation(
    generation_id: UUID,
    account: Account = Depends(get_current_account),
    db: AsyncSession = Depends(get_write_db),
) -> MessageResponse:
    """Delete one of the caller's generations."""
    await GenerationService(db).delete(account.id, generation_id)
    return MessageResponse(message="Generation deleted successfully")
