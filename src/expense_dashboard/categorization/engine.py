"""Categorization engine: remote classifier with deterministic fallbacks.

Cascade, each stage only when the previous one is unavailable or too weak:

1. remote classifier (configured and not cooling down)
2. keyword rules, accepted above 0.7
3. MCC rules, accepted above 0.6
4. the stronger of the two rule candidates

A single categorization never raises: any internal failure degrades to an
Other/0.1 result tagged `fallback`.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from typing import Any

from expense_dashboard.categorization.classifier import (
    ClassifierParseFailure,
    ClassifierVerdict,
    RemoteClassifier,
)
from expense_dashboard.categorization.rules import (
    categorize_by_keywords,
    categorize_by_mcc,
    find_category_mention,
    suggest_alternatives,
)
from expense_dashboard.core.exceptions import RemoteClassifierError
from expense_dashboard.schemas.categorization import (
    CategorizationMethod,
    CategorizationResult,
    CategorizerStatus,
    CategorySuggestion,
    ExpenseCategory,
)
from expense_dashboard.schemas.transaction import Transaction

logger = logging.getLogger(__name__)

KEYWORD_ACCEPT_THRESHOLD = 0.7
MCC_ACCEPT_THRESHOLD = 0.6
LENIENT_PARSE_CONFIDENCE = 0.6
UNPARSEABLE_CONFIDENCE = 0.3
FALLBACK_CONFIDENCE = 0.1
SUGGESTION_ALTERNATIVES_BELOW = 0.8

ProgressCallback = Callable[[int, int], Any]


def fallback_result(reasoning: str = "Categorization failed") -> CategorizationResult:
    return CategorizationResult(
        category=ExpenseCategory.OTHER,
        confidence=FALLBACK_CONFIDENCE,
        reasoning=reasoning,
        method=CategorizationMethod.FALLBACK,
    )


def resolve_classifier_outcome(
    outcome: ClassifierVerdict | ClassifierParseFailure,
) -> CategorizationResult:
    """Turn a classifier outcome into a result.

    Parse failures are scanned for a literal category name (0.6); without
    one the result is Other at 0.3.
    """
    if isinstance(outcome, ClassifierVerdict):
        return CategorizationResult(
            category=outcome.category,
            confidence=outcome.confidence,
            reasoning=outcome.reasoning,
            method=CategorizationMethod.AI,
        )

    mentioned = find_category_mention(outcome.raw)
    if mentioned is not None:
        return CategorizationResult(
            category=mentioned,
            confidence=LENIENT_PARSE_CONFIDENCE,
            reasoning=f'AI response parsing fallback - detected "{mentioned.value}"',
            method=CategorizationMethod.AI,
        )
    return CategorizationResult(
        category=ExpenseCategory.OTHER,
        confidence=UNPARSEABLE_CONFIDENCE,
        reasoning=f"AI response parsing failed ({outcome.reason})",
        method=CategorizationMethod.AI,
    )


class CategorizationEngine:
    """Stateless categorizer apart from the classifier's cooldown."""

    def __init__(
        self,
        classifier: RemoteClassifier | None = None,
        *,
        pacing_delay: float = 0.1,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        """Initialize the engine.

        Args:
            classifier: Remote classifier, or None for rules only
            pacing_delay: Seconds between batch items when the classifier is active
            sleep: Awaitable sleep, injectable for tests
        """
        self.classifier = classifier
        self.pacing_delay = pacing_delay
        self._sleep = sleep

    @property
    def initialized(self) -> bool:
        return self.classifier is not None

    async def categorize(self, transaction: Transaction) -> CategorizationResult:
        """Categorize one transaction. Never raises."""
        try:
            return await self._categorize(transaction)
        except Exception:
            logger.exception(
                "Categorization failed, using fallback",
                extra={"transaction_id": getattr(transaction, "id", None)},
            )
            return fallback_result()

    async def _categorize(self, transaction: Transaction) -> CategorizationResult:
        if self.classifier is not None and self.classifier.available:
            try:
                outcome = await self.classifier.classify(transaction)
            except RemoteClassifierError as exc:
                logger.warning(
                    "AI categorization failed, falling back to rule-based",
                    extra={"error_code": exc.error_code, "reason": exc.reason},
                )
            else:
                return resolve_classifier_outcome(outcome)

        keyword_result = categorize_by_keywords(transaction)
        if keyword_result.confidence > KEYWORD_ACCEPT_THRESHOLD:
            return keyword_result

        mcc_result = categorize_by_mcc(transaction)
        if mcc_result.confidence > MCC_ACCEPT_THRESHOLD:
            return mcc_result

        return keyword_result if keyword_result.confidence > mcc_result.confidence else mcc_result

    async def categorize_batch(
        self,
        transactions: Sequence[Transaction],
        on_progress: ProgressCallback | None = None,
    ) -> dict[str, CategorizationResult]:
        """Categorize transactions one at a time.

        Args:
            transactions: Transactions to categorize
            on_progress: Called with (completed, total) after every item

        Returns:
            Mapping of transaction id to result, one entry per input id
        """
        results: dict[str, CategorizationResult] = {}
        total = len(transactions)

        for index, transaction in enumerate(transactions):
            try:
                results[transaction.id] = await self.categorize(transaction)
            except Exception:
                logger.error(
                    "Failed to categorize transaction",
                    extra={"transaction_id": transaction.id},
                )
                results[transaction.id] = fallback_result()

            if on_progress is not None:
                try:
                    on_progress(index + 1, total)
                except Exception:
                    logger.warning("Progress callback failed", exc_info=True)

            if self.initialized and index < total - 1:
                await self._sleep(self.pacing_delay)

        return results

    async def suggest(self, transaction: Transaction, limit: int = 3) -> list[CategorySuggestion]:
        """Top suggestions: the categorization result plus keyword alternatives."""
        primary = await self.categorize(transaction)
        suggestions = [
            CategorySuggestion(
                category=primary.category,
                confidence=primary.confidence,
                reasoning=primary.reasoning,
            )
        ]
        if primary.confidence < SUGGESTION_ALTERNATIVES_BELOW:
            suggestions += [
                CategorySuggestion(category=category, confidence=confidence, reasoning=reasoning)
                for category, confidence, reasoning in suggest_alternatives(
                    transaction, exclude=primary.category
                )
            ]
        suggestions.sort(key=lambda s: s.confidence, reverse=True)
        return suggestions[:limit]

    def status(self, has_api_key: bool | None = None) -> CategorizerStatus:
        classifier = self.classifier
        return CategorizerStatus(
            initialized=self.initialized,
            hasApiKey=self.initialized if has_api_key is None else has_api_key,
            rateLimited=classifier.is_rate_limited if classifier else False,
            rateLimitedUntil=classifier.rate_limited_until if classifier else None,
        )
