"""Client-side merchant search over one over-fetched upstream batch.

The upstream listing only filters merchants by exact name, so substring
search strips the merchant filter, fetches at least `min_fetch` rows,
filters and ranks them locally and returns the first page of the ranking.
Search is single-shot: results beyond the over-fetched batch are not
reachable.
"""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime, timezone

from expense_dashboard.schemas.transaction import (
    PageInfo,
    Transaction,
    TransactionFilters,
    TransactionPage,
)

DEFAULT_PAGE_SIZE = 20

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


@dataclass(frozen=True)
class SearchResult:
    data: list[Transaction]
    page: PageInfo | None
    original_count: int
    filtered_count: int


def _timestamp(transaction: Transaction) -> datetime:
    ts = transaction.user_transaction_time
    if ts is None:
        return _EPOCH
    return ts if ts.tzinfo else ts.replace(tzinfo=timezone.utc)


def matches(transaction: Transaction, query: str) -> bool:
    name = (transaction.merchant_name or "").lower()
    descriptor = (transaction.merchant_descriptor or "").lower()
    return query in name or query in descriptor


def rank_matches(transactions: list[Transaction], query: str) -> list[Transaction]:
    """Filter and rank transactions for a merchant query.

    Order: exact name, exact descriptor, name prefix, then most recent first.
    """
    needle = query.lower().strip()
    if not needle:
        return []
    hits = [t for t in transactions if matches(t, needle)]
    # Newest first, then a stable sort on the match tiers.
    hits.sort(key=_timestamp, reverse=True)
    hits.sort(
        key=lambda t: (
            (t.merchant_name or "").lower() != needle,
            (t.merchant_descriptor or "").lower() != needle,
            not (t.merchant_name or "").lower().startswith(needle),
        )
    )
    return hits


async def search_transactions(
    fetch: Callable[[TransactionFilters], Awaitable[TransactionPage]],
    filters: TransactionFilters,
    *,
    min_fetch: int = 100,
) -> SearchResult:
    """Run a merchant search.

    Args:
        fetch: Upstream listing call
        filters: Filters including merchant_name; limit is the page size
        min_fetch: Minimum upstream batch size

    Returns:
        The first `limit` ranked matches and the batch/match counts
    """
    query = filters.merchant_name or ""
    page_size = filters.limit or DEFAULT_PAGE_SIZE
    upstream = filters.model_copy(
        update={"merchant_name": None, "limit": max(page_size, min_fetch)}
    )
    response = await fetch(upstream)
    ranked = rank_matches(response.data, query)[:page_size]
    return SearchResult(
        data=ranked,
        page=response.page,
        original_count=len(response.data),
        filtered_count=len(ranked),
    )
