"""Transaction passthrough endpoints."""

from fastapi import APIRouter, Depends

from expense_dashboard.api.deps import get_ramp_client, get_transaction_filters
from expense_dashboard.config import settings
from expense_dashboard.schemas.transaction import (
    ListPagination,
    TransactionDetailResponse,
    TransactionFilters,
    TransactionListResponse,
)
from expense_dashboard.services.ramp_client import RampClient
from expense_dashboard.services.search import search_transactions

router = APIRouter(prefix="/transactions", tags=["transactions"])


@router.get(
    "",
    response_model=TransactionListResponse,
    summary="List transactions with filters",
    description="""
    Cursor-paged passthrough to the Ramp transactions listing.

    ## Paging
    - **limit**: items per page (default 20)
    - **start**: the `page.next` cursor of the previous response

    ## Merchant search
    The upstream API has no substring merchant search. When **merchant_name**
    is given, one larger batch is fetched, filtered and ranked here (exact
    name matches first, then prefix matches, newest first within each group)
    and truncated to the requested page size.
    """,
)
async def list_transactions(
    filters: TransactionFilters = Depends(get_transaction_filters),
    client: RampClient = Depends(get_ramp_client),
):
    page_size = filters.limit or settings.pagination_page_size
    filters = filters.model_copy(update={"limit": page_size})
    echoed = filters.model_dump(mode="json", exclude_none=True)

    if filters.merchant_name:
        result = await search_transactions(
            client.list_transactions, filters, min_fetch=settings.search_min_fetch
        )
        return TransactionListResponse(
            data=result.data,
            page=result.page,
            filters=echoed,
            searchApplied=True,
            originalCount=result.original_count,
            filteredCount=result.filtered_count,
            pagination=ListPagination(
                currentPage=1,
                pageSize=page_size,
                totalItems=result.filtered_count,
                hasMore=False,
            ),
        )

    page = await client.list_transactions(filters)
    return TransactionListResponse(
        data=page.data,
        page=page.page,
        filters=echoed,
        searchApplied=False,
        originalCount=len(page.data),
        filteredCount=len(page.data),
        pagination=ListPagination(
            currentPage=1 if filters.start is None else "unknown",
            pageSize=page_size,
            totalItems="unknown",
            hasMore=page.next_cursor is not None,
        ),
    )


@router.get("/{transaction_id}", response_model=TransactionDetailResponse)
async def get_transaction(transaction_id: str, client: RampClient = Depends(get_ramp_client)):
    """Get a single transaction by id. Unknown ids return 404 (API_006)."""
    transaction = await client.get_transaction(transaction_id)
    return TransactionDetailResponse(data=transaction)
