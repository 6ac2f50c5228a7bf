"""Per-UI-session state: a paginator and the manual overrides.

Sessions are process-local and keyed by an id the UI picks. Nothing here
outlives the process.
"""

import logging
import math
from collections import OrderedDict

from expense_dashboard.schemas.session import SessionPagination
from expense_dashboard.schemas.transaction import Transaction, TransactionFilters
from expense_dashboard.services.overrides import OverrideStore
from expense_dashboard.services.pagination import CursorPaginator, Fetcher
from expense_dashboard.services.search import search_transactions

logger = logging.getLogger(__name__)


class DashboardSession:
    """One UI session: browsing state plus overrides."""

    def __init__(
        self,
        session_id: str,
        fetch: Fetcher,
        *,
        page_size: int = 20,
        chunk_size: int = 100,
        max_count_calls: int = 20,
        search_min_fetch: int = 100,
    ):
        self.session_id = session_id
        self._fetch = fetch
        self.chunk_size = chunk_size
        self.max_count_calls = max_count_calls
        self.search_min_fetch = search_min_fetch
        self.overrides = OverrideStore()
        self.paginator = self._new_paginator(page_size)

    def _new_paginator(self, page_size: int) -> CursorPaginator:
        # Keep the chunk a multiple of the page size.
        chunk_size = max(self.chunk_size, page_size)
        chunk_size = math.ceil(chunk_size / page_size) * page_size
        return CursorPaginator(
            self._fetch,
            page_size=page_size,
            chunk_size=chunk_size,
            max_count_calls=self.max_count_calls,
        )

    async def get_page(
        self, filters: TransactionFilters, page: int
    ) -> tuple[list[Transaction], SessionPagination, bool]:
        """Serve a UI page for the given filters.

        Returns:
            (transactions, pagination metadata, whether search ranking was applied)
        """
        page_size = filters.limit or self.paginator.page_size
        if page_size != self.paginator.page_size:
            await self.paginator.aclose()
            self.paginator = self._new_paginator(page_size)
            self.paginator.set_filters(filters)

        if filters.merchant_name:
            return await self._search_page(filters.model_copy(update={"limit": page_size}), page)

        if self.paginator.set_filters(filters):
            logger.debug("Filters changed, pagination cache cleared", extra={"session_id": self.session_id})
        transactions = await self.paginator.get_page(page)
        return transactions, self.pagination_meta(), False

    async def _search_page(
        self, filters: TransactionFilters, page: int
    ) -> tuple[list[Transaction], SessionPagination, bool]:
        if page > 1:
            data: list[Transaction] = []
            total = None
        else:
            result = await search_transactions(self._fetch, filters, min_fetch=self.search_min_fetch)
            data = result.data
            total = result.filtered_count
        meta = SessionPagination(
            currentPage=page,
            pageSize=filters.limit,
            totalPages=1,
            totalItems=total if total is not None else 0,
            totalIsExact=total is not None,
            totalDisplay=str(total) if total is not None else None,
            hasNext=False,
            hasPrev=page > 1,
            isCountingTotal=False,
        )
        return data, meta, True

    def pagination_meta(self) -> SessionPagination:
        p = self.paginator
        return SessionPagination(
            currentPage=p.current_page,
            pageSize=p.page_size,
            totalPages=p.total_pages,
            totalItems=p.total_items,
            totalIsExact=p.total_is_exact,
            totalDisplay=p.total_display,
            hasNext=p.has_next,
            hasPrev=p.has_prev,
            isCountingTotal=p.is_counting_total,
        )

    def overrides_for(self, transactions: list[Transaction]) -> dict[str, str]:
        found = {}
        for transaction in transactions:
            category = self.overrides.category_for(transaction.id)
            if category is not None:
                found[transaction.id] = category
        return found

    def discard(self) -> None:
        """Drop cached pages and stop the count walk without waiting for it."""
        self.paginator.invalidate()

    async def aclose(self) -> None:
        await self.paginator.aclose()


class SessionStore:
    """session id -> DashboardSession, created on first use.

    Holds at most `max_sessions`; the least recently used session is dropped
    when a new one would exceed the cap.
    """

    def __init__(self, fetch: Fetcher, *, max_sessions: int = 1000, **session_options):
        if max_sessions < 1:
            raise ValueError("max_sessions must be at least 1")
        self._fetch = fetch
        self.max_sessions = max_sessions
        self._options = session_options
        self._sessions: OrderedDict[str, DashboardSession] = OrderedDict()

    def get(self, session_id: str) -> DashboardSession:
        session = self._sessions.get(session_id)
        if session is not None:
            self._sessions.move_to_end(session_id)
            return session

        session = self._sessions[session_id] = DashboardSession(
            session_id, self._fetch, **self._options
        )
        logger.info("Session created", extra={"session_id": session_id})
        while len(self._sessions) > self.max_sessions:
            evicted_id, evicted = self._sessions.popitem(last=False)
            evicted.discard()
            logger.info("Session evicted", extra={"session_id": evicted_id})
        return session

    async def remove(self, session_id: str) -> bool:
        """End a session. Returns False when no such session exists."""
        session = self._sessions.pop(session_id, None)
        if session is None:
            return False
        await session.aclose()
        logger.info("Session ended", extra={"session_id": session_id})
        return True

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)

    async def aclose(self) -> None:
        for session in self._sessions.values():
            await session.aclose()
        self._sessions.clear()
