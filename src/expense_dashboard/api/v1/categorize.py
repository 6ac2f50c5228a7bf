"""Categorization endpoints."""

import logging
from collections import Counter

from fastapi import APIRouter, Depends

from expense_dashboard.api.deps import get_engine
from expense_dashboard.categorization import CATEGORY_DESCRIPTIONS, CategorizationEngine
from expense_dashboard.categorization.engine import FALLBACK_CONFIDENCE
from expense_dashboard.config import settings
from expense_dashboard.core.exceptions import ValidationError
from expense_dashboard.schemas.categorization import (
    BatchCategorizeResponse,
    BatchSummary,
    CategorizationMethod,
    CategorizationResult,
    CategorizeFailureResponse,
    CategorizeRequest,
    CategorizerStatusResponse,
    SingleCategorizeResponse,
    SuggestionsResponse,
    TransactionRef,
)
from expense_dashboard.schemas.transaction import Transaction

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/categorize", tags=["categorize"])


def summarize(results: dict[str, CategorizationResult]) -> BatchSummary:
    """Batch summary. A result counts as successful above the fallback confidence."""
    successful = sum(1 for r in results.values() if r.confidence > FALLBACK_CONFIDENCE)
    return BatchSummary(
        total=len(results),
        successful=successful,
        failed=len(results) - successful,
        byMethod=dict(Counter(r.method for r in results.values())),
        byCategory=dict(Counter(r.category for r in results.values())),
    )


@router.post(
    "",
    response_model=SingleCategorizeResponse | BatchCategorizeResponse | CategorizeFailureResponse,
    summary="Categorize one transaction or a batch",
    description="""
    Body is either `{"transaction": {...}}` or `{"transactions": [...]}`;
    `transaction` wins when both are present. A single transaction that
    could only be given the fallback result comes back as
    `{success: false, error, fallback}`.

    Batches are processed sequentially and hold at most 100 transactions.
    Individual failures never fail the batch; they show up as fallback
    results and in `summary.failed`.
    """,
)
async def categorize(
    body: CategorizeRequest,
    engine: CategorizationEngine = Depends(get_engine),
):
    if body.transaction is not None:
        transaction = body.transaction
        result = await engine.categorize(transaction)
        if result.method == CategorizationMethod.FALLBACK.value:
            logger.error("Single categorization failed", extra={"transaction_id": transaction.id})
            return CategorizeFailureResponse(error="Failed to categorize transaction", fallback=result)
        return SingleCategorizeResponse(
            result=result,
            transaction=TransactionRef(id=transaction.id, merchant=transaction.merchant_name),
        )

    if body.transactions is None:
        raise ValidationError("CAT_001")

    if len(body.transactions) > settings.categorize_max_batch:
        raise ValidationError(
            "CAT_002",
            {"size": len(body.transactions), "max": settings.categorize_max_batch},
        )
    results = await engine.categorize_batch(body.transactions) if body.transactions else {}
    return BatchCategorizeResponse(results=results, summary=summarize(results))


@router.get("", response_model=CategorizerStatusResponse, summary="Categorizer status")
async def categorizer_status(engine: CategorizationEngine = Depends(get_engine)):
    """Engine status and the category descriptions."""
    return CategorizerStatusResponse(
        status=engine.status(has_api_key=bool(settings.openai_api_key)),
        categories=CATEGORY_DESCRIPTIONS,
    )


@router.post("/suggestions", response_model=SuggestionsResponse, summary="Top category suggestions")
async def suggest_categories(
    transaction: Transaction,
    engine: CategorizationEngine = Depends(get_engine),
):
    suggestions = await engine.suggest(transaction)
    return SuggestionsResponse(suggestions=suggestions)
