"""FastAPI dependency injection for the shared services.

Services are built once in the app lifespan and stored on `app.state`;
these helpers hand them to the route functions.
"""

from datetime import datetime

from fastapi import Depends, Path, Query, Request

from expense_dashboard.categorization import CategorizationEngine
from expense_dashboard.core.exceptions import UpstreamNotConfigured
from expense_dashboard.schemas.transaction import TransactionFilters, TransactionState
from expense_dashboard.services.ramp_client import RampClient
from expense_dashboard.services.sessions import DashboardSession, SessionStore


def get_ramp_client(request: Request) -> RampClient:
    """
    Get the shared upstream API client.

    Raises:
        UpstreamNotConfigured: If no client credentials were configured
    """
    client = getattr(request.app.state, "ramp_client", None)
    if client is None:
        raise UpstreamNotConfigured()
    return client


def get_engine(request: Request) -> CategorizationEngine:
    return request.app.state.engine


def get_session_store(request: Request) -> SessionStore:
    store = getattr(request.app.state, "sessions", None)
    if store is None:
        raise UpstreamNotConfigured()
    return store


def get_session(
    session_id: str = Path(min_length=1, max_length=128, description="UI session id"),
    store: SessionStore = Depends(get_session_store),
) -> DashboardSession:
    """
    Get (or create) the UI session named in the path.

    Args:
        session_id: Id chosen by the UI
        store: Session store

    Returns:
        The session's paginator and overrides
    """
    return store.get(session_id)


def get_transaction_filters(
    from_date: datetime | None = Query(None, description="Earliest transaction time (inclusive)"),
    to_date: datetime | None = Query(None, description="Latest transaction time (inclusive)"),
    merchant_name: str | None = Query(None, description="Merchant search (client-side ranking)"),
    sk_category_name: str | None = Query(None, description="Upstream category name"),
    state: TransactionState | None = Query(None),
    card_id: str | None = Query(None),
    user_id: str | None = Query(None),
    amount_greater_than: float | None = Query(None),
    amount_less_than: float | None = Query(None),
    has_receipts: bool | None = Query(None),
    start: str | None = Query(None, description="Opaque cursor from a previous page.next"),
    limit: int | None = Query(None, ge=1, le=100, description="Items per page (1-100)"),
) -> TransactionFilters:
    """Collect the upstream listing filters from the query string."""
    return TransactionFilters(
        from_date=from_date,
        to_date=to_date,
        merchant_name=merchant_name.strip() if merchant_name else None,
        sk_category_name=sk_category_name,
        state=state,
        card_id=card_id,
        user_id=user_id,
        amount_greater_than=amount_greater_than,
        amount_less_than=amount_less_than,
        has_receipts=has_receipts,
        start=start,
        limit=limit,
    )
