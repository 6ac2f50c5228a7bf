"""UI session endpoints: page-number browsing and manual overrides."""

from fastapi import APIRouter, Depends, Path, Query

from expense_dashboard.api.deps import get_session, get_session_store, get_transaction_filters
from expense_dashboard.schemas.session import (
    OverrideDeleteResponse,
    OverrideListResponse,
    OverrideRequest,
    OverrideResponse,
    SessionDeleteResponse,
    SessionPageResponse,
)
from expense_dashboard.schemas.transaction import TransactionFilters
from expense_dashboard.services.sessions import DashboardSession, SessionStore

router = APIRouter(prefix="/sessions/{session_id}", tags=["sessions"])


@router.get(
    "/transactions",
    response_model=SessionPageResponse,
    summary="Page through transactions",
    description="""
    Page-number view over the cursor-paged upstream listing. Pages are
    served from cached upstream chunks; changing any filter clears the
    cache and returns to page 1. The total count is filled in by a
    background walk and shown as a lower bound (`"n+"`) until exact.

    With **merchant_name** the request goes through merchant search, which
    is single-shot: only page 1 has results.
    """,
)
async def get_transactions_page(
    page: int = Query(1, ge=1, description="Page number (1-indexed)"),
    filters: TransactionFilters = Depends(get_transaction_filters),
    session: DashboardSession = Depends(get_session),
):
    transactions, pagination, search_applied = await session.get_page(filters, page)
    return SessionPageResponse(
        data=transactions,
        overrides=session.overrides_for(transactions),
        searchApplied=search_applied,
        pagination=pagination,
    )


@router.put("/overrides/{transaction_id}", response_model=OverrideResponse)
async def set_override(
    transaction_id: str,
    body: OverrideRequest,
    session: DashboardSession = Depends(get_session),
):
    """Record a manual category for a transaction. Nothing is sent upstream."""
    override = session.overrides.set(transaction_id, body.category, body.transaction)
    return OverrideResponse(override=override)


@router.get("/overrides", response_model=OverrideListResponse)
async def list_overrides(session: DashboardSession = Depends(get_session)):
    return OverrideListResponse(overrides=session.overrides.items())


@router.delete("/overrides/{transaction_id}", response_model=OverrideDeleteResponse)
async def clear_override(transaction_id: str, session: DashboardSession = Depends(get_session)):
    removed = session.overrides.clear(transaction_id)
    return OverrideDeleteResponse(transaction_id=transaction_id, removed=removed)


@router.delete("", response_model=SessionDeleteResponse)
async def end_session(
    session_id: str = Path(min_length=1, max_length=128),
    store: SessionStore = Depends(get_session_store),
):
    """End a UI session, dropping its page cache and overrides."""
    removed = await store.remove(session_id)
    return SessionDeleteResponse(session_id=session_id, removed=removed)
