"""Page-number view over a cursor-paginated upstream listing.

The upstream API only hands out opaque forward cursors. The paginator
fetches fixed-size chunks (a multiple of the UI page size), caches them by
chunk index and slices UI pages out of them. Chunk i can only be requested
with chunk i-1's next cursor, so missing predecessors are fetched first, in
order.

Each chunk moves through an explicit state machine:

    UNFETCHED -> FETCHING -> READY | FAILED
    FAILED -> FETCHING (on the next request for that chunk)

A background walk estimates the total count with its own cursor chain and
never touches the chunk cache.
"""

import asyncio
import logging
import math
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum

from expense_dashboard.schemas.transaction import (
    Cursor,
    Transaction,
    TransactionFilters,
    TransactionPage,
)

logger = logging.getLogger(__name__)

Fetcher = Callable[[TransactionFilters], Awaitable[TransactionPage]]


class ChunkState(str, Enum):
    UNFETCHED = "unfetched"
    FETCHING = "fetching"
    READY = "ready"
    FAILED = "failed"


@dataclass
class PaginationChunk:
    """One cached upstream block of up to chunk_size transactions."""

    index: int
    state: ChunkState = ChunkState.UNFETCHED
    transactions: list[Transaction] = field(default_factory=list)
    start_cursor: Cursor | None = None
    next_cursor: Cursor | None = None
    # No chunk follows this one.
    complete: bool = False
    error: BaseException | None = None
    task: asyncio.Task | None = field(default=None, repr=False)


class CursorPaginator:
    """Random-access pages over an opaque-cursor upstream listing.

    Single-writer: only this object mutates its chunk cache and total
    estimate. Not safe to share across event loops.
    """

    def __init__(
        self,
        fetch: Fetcher,
        *,
        filters: TransactionFilters | None = None,
        page_size: int = 20,
        chunk_size: int = 100,
        max_count_calls: int = 20,
        estimate_total: bool = True,
    ):
        """Initialize the paginator.

        Args:
            fetch: Upstream call returning one page for the given filters
            filters: Initial filter set (`start`/`limit` are ignored)
            page_size: UI page size
            chunk_size: Upstream request size; a multiple of page_size
            max_count_calls: Upstream call budget of the total-count walk
            estimate_total: Start the background total-count walk
        """
        if page_size < 1 or chunk_size < page_size or chunk_size % page_size:
            raise ValueError("chunk_size must be a positive multiple of page_size")

        self._fetch = fetch
        self.page_size = page_size
        self.chunk_size = chunk_size
        self.max_count_calls = max_count_calls
        self.estimate_total = estimate_total

        self._filters = (filters or TransactionFilters()).without_paging()
        self._chunks: dict[int, PaginationChunk] = {}
        self._generation = 0
        self._total: int | None = None
        self._total_exact = False
        self._estimator: asyncio.Task | None = None
        self.current_page = 1
        self.last_error: BaseException | None = None

    # ====================
    # FILTERS / NAVIGATION
    # ====================

    @property
    def filters(self) -> TransactionFilters:
        return self._filters

    def set_filters(self, filters: TransactionFilters) -> bool:
        """Replace the filter set. Returns True when it changed (cache reset)."""
        filters = filters.without_paging()
        if filters == self._filters:
            return False
        self._filters = filters
        self.invalidate()
        return True

    def invalidate(self) -> None:
        """Drop cached chunks and the total estimate, back to page 1."""
        self._generation += 1
        self._chunks = {}
        self._total = None
        self._total_exact = False
        self.current_page = 1
        self.last_error = None
        if self._estimator is not None and not self._estimator.done():
            self._estimator.cancel()
        self._estimator = None

    def go_to_page(self, page: int) -> None:
        if page < 1:
            return
        if self._total_exact:
            page = min(page, self.total_pages)
        self.current_page = page

    def next_page(self) -> None:
        if self.has_next:
            self.current_page += 1

    def prev_page(self) -> None:
        if self.current_page > 1:
            self.current_page -= 1

    # ====================
    # DERIVED TOTALS
    # ====================

    @property
    def total_items(self) -> int:
        return self._total or 0

    @property
    def total_is_exact(self) -> bool:
        return self._total_exact

    @property
    def total_display(self) -> str | None:
        if self._total is None:
            return None
        return str(self._total) if self._total_exact else f"{self._total}+"

    @property
    def total_pages(self) -> int:
        if self._total_exact:
            return max(math.ceil(self._total / self.page_size), 1)
        if self._total:
            return math.ceil(self._total / self.page_size)
        return max(self.current_page, 1)

    @property
    def has_next(self) -> bool:
        return self.current_page < self.total_pages

    @property
    def has_prev(self) -> bool:
        return self.current_page > 1

    @property
    def is_counting_total(self) -> bool:
        return self._estimator is not None and not self._estimator.done()

    def chunk_state(self, index: int) -> ChunkState:
        chunk = self._chunks.get(index)
        return chunk.state if chunk else ChunkState.UNFETCHED

    def cached_chunks(self) -> dict[int, PaginationChunk]:
        return dict(self._chunks)

    # ====================
    # PAGE ACCESS
    # ====================

    async def get_page(self, page: int | None = None) -> list[Transaction]:
        """Return the transactions of a UI page (the current one by default).

        Once the total is exact, pages past the end are clamped to the last
        page.

        Raises:
            Whatever the fetcher raised for a chunk on the dependency chain.
            The cache keeps every other chunk; re-requesting retries.
        """
        if page is not None:
            self.go_to_page(page)
        offset = (self.current_page - 1) * self.page_size
        chunk_index = offset // self.chunk_size

        try:
            chunk = await self._ensure_chunk(chunk_index)
        except Exception as exc:
            self.last_error = exc
            raise
        self.last_error = None

        if self._total_exact and self.current_page > self.total_pages:
            # The end of the listing was found while resolving this page.
            self.current_page = self.total_pages
            return await self.get_page()

        if chunk is None:
            return []
        start = offset - chunk_index * self.chunk_size
        return chunk.transactions[start : start + self.page_size]

    async def _ensure_chunk(self, index: int) -> PaginationChunk | None:
        """Resolve chunks 0..index in order. None if the chain ends earlier.

        The walk is pinned to the cache, filters and generation current when
        it starts. A filter change mid-walk restarts it against the new cache.
        """
        while True:
            generation = self._generation
            chunks = self._chunks
            filters = self._filters
            chunk = None
            restarted = False
            for i in range(index + 1):
                start_cursor = None if chunk is None else chunk.next_cursor
                try:
                    chunk = await self._resolve(chunks, i, start_cursor, filters, generation)
                except Exception:
                    if generation == self._generation:
                        raise
                    restarted = True
                    break
                if generation != self._generation:
                    restarted = True
                    break
                if i < index and chunk.complete:
                    return None
            if not restarted:
                return chunk
            logger.info("Filters changed during page fetch, restarting", extra={"chunk_index": index})

    async def _resolve(
        self,
        chunks: dict[int, PaginationChunk],
        index: int,
        start_cursor: Cursor | None,
        filters: TransactionFilters,
        generation: int,
    ) -> PaginationChunk:
        chunk = chunks.get(index)
        if chunk is None:
            chunk = chunks[index] = PaginationChunk(index)

        if chunk.state is ChunkState.READY:
            return chunk

        if chunk.state is not ChunkState.FETCHING:
            chunk.start_cursor = start_cursor
            chunk.state = ChunkState.FETCHING
            chunk.error = None
            chunk.task = asyncio.ensure_future(self._fetch_chunk(chunk, filters, generation))

        await asyncio.shield(chunk.task)
        return chunk

    async def _fetch_chunk(
        self, chunk: PaginationChunk, filters: TransactionFilters, generation: int
    ) -> None:
        request = filters.model_copy(update={"start": chunk.start_cursor, "limit": self.chunk_size})
        logger.debug(
            "Fetching chunk",
            extra={"chunk_index": chunk.index, "has_cursor": chunk.start_cursor is not None},
        )
        try:
            page = await self._fetch(request)
        except (Exception, asyncio.CancelledError) as exc:
            chunk.state = ChunkState.FAILED
            chunk.error = exc
            raise

        chunk.transactions = list(page.data)
        chunk.next_cursor = page.next_cursor
        chunk.complete = chunk.next_cursor is None or len(chunk.transactions) < self.chunk_size
        chunk.state = ChunkState.READY

        if generation != self._generation:
            return
        self._record_chunk_total(chunk)
        self._start_estimator()

    def _record_chunk_total(self, chunk: PaginationChunk) -> None:
        if self._total_exact:
            return
        if chunk.complete:
            self._total = chunk.index * self.chunk_size + len(chunk.transactions)
            self._total_exact = True
        else:
            # At least one more item is assumed behind a next cursor.
            lower_bound = (chunk.index + 1) * self.chunk_size + 1
            if self._total is None or lower_bound > self._total:
                self._total = lower_bound

    # ====================
    # TOTAL COUNT ESTIMATION
    # ====================

    def _start_estimator(self) -> None:
        if not self.estimate_total or self._estimator is not None or self._total_exact:
            return
        self._estimator = asyncio.create_task(
            self._estimate_total(self._generation, self._filters)
        )

    async def _estimate_total(self, generation: int, filters: TransactionFilters) -> None:
        count = 0
        cursor: Cursor | None = None
        exact = False
        try:
            for _ in range(self.max_count_calls):
                page = await self._fetch(
                    filters.model_copy(update={"start": cursor, "limit": self.chunk_size})
                )
                count += len(page.data)
                cursor = page.next_cursor
                if cursor is None:
                    exact = True
                    break
        except Exception as exc:
            logger.warning(
                "Total count estimation failed",
                extra={"error_type": type(exc).__name__, "counted": count},
            )
            return

        if generation != self._generation:
            return
        self._apply_estimate(count, exact)

    def _apply_estimate(self, count: int, exact: bool) -> None:
        if self._total_exact:
            return
        if exact:
            self._total = count
            self._total_exact = True
        elif self._total is None or count > self._total:
            self._total = count
        logger.info("Total count estimated", extra={"total": self._total, "exact": self._total_exact})

    async def wait_for_total_count(self) -> None:
        """Wait for the background walk, if one is running."""
        if self._estimator is not None:
            await asyncio.wait({self._estimator})

    async def aclose(self) -> None:
        if self._estimator is not None and not self._estimator.done():
            self._estimator.cancel()
            await asyncio.wait({self._estimator})
        self._estimator = None
