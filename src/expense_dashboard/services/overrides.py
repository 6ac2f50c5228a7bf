"""Session-scoped manual category overrides.

Overrides annotate transactions locally. They are never sent upstream and
disappear with the session.
"""

import logging
from datetime import datetime, timezone

from expense_dashboard.categorization.rules import CATEGORY_TABLE
from expense_dashboard.core.exceptions import ValidationError
from expense_dashboard.schemas.categorization import ExpenseCategory
from expense_dashboard.schemas.session import ManualOverride
from expense_dashboard.schemas.transaction import Transaction

logger = logging.getLogger(__name__)

_CATEGORIES_BY_NAME = {c.value.lower(): c for c in CATEGORY_TABLE}


def parse_category(value: str) -> ExpenseCategory:
    """Resolve a category name (case-insensitive).

    Raises:
        ValidationError: API_007 when the name is not in the enumeration
    """
    category = _CATEGORIES_BY_NAME.get((value or "").strip().lower())
    if category is None:
        raise ValidationError("API_007", {"category": value})
    return category


class OverrideStore:
    """transaction id -> operator-chosen category."""

    def __init__(self):
        self._overrides: dict[str, ManualOverride] = {}

    def set(
        self,
        transaction_id: str,
        category: ExpenseCategory | str,
        transaction: Transaction | None = None,
    ) -> ManualOverride:
        """Record an override, superseding any earlier one for the transaction."""
        if not isinstance(category, ExpenseCategory):
            category = parse_category(category)
        override = ManualOverride(
            transaction_id=transaction_id,
            category=category,
            merchant=transaction.merchant_name if transaction else None,
            original_category=transaction.sk_category_name if transaction else None,
            created_at=datetime.now(timezone.utc),
        )
        self._overrides[transaction_id] = override
        logger.info(
            "Manual override recorded",
            extra={
                "transaction_id": transaction_id,
                "merchant": override.merchant,
                "original_category": override.original_category,
                "new_category": category.value,
            },
        )
        return override

    def get(self, transaction_id: str) -> ManualOverride | None:
        return self._overrides.get(transaction_id)

    def category_for(self, transaction_id: str) -> str | None:
        override = self._overrides.get(transaction_id)
        return override.category if override else None

    def clear(self, transaction_id: str) -> bool:
        removed = self._overrides.pop(transaction_id, None) is not None
        if removed:
            logger.info("Manual override cleared", extra={"transaction_id": transaction_id})
        return removed

    def items(self) -> list[ManualOverride]:
        return list(self._overrides.values())

    def __len__(self) -> int:
        return len(self._overrides)
