"""Transaction schemas mirroring the Ramp developer API."""

from datetime import date, datetime
from enum import Enum
from typing import Any, NewType

from pydantic import BaseModel, ConfigDict, Field

# Opaque upstream position token. Forwarded verbatim, never parsed.
Cursor = NewType("Cursor", str)


class TransactionState(str, Enum):
    PENDING = "PENDING"
    CLEARED = "CLEARED"
    DECLINED = "DECLINED"
    CANCELLED = "CANCELLED"


class Transaction(BaseModel):
    """Read-only upstream transaction.

    Unknown upstream fields (card, user, receipts, ...) are kept as extras so
    they round-trip to API clients untouched.
    """

    model_config = ConfigDict(frozen=True, extra="allow")

    id: str
    amount: float = Field(description="Amount in currency units")
    merchant_name: str = ""
    merchant_descriptor: str | None = None
    merchant_category_code: str | None = None
    merchant_category_code_description: str | None = None
    state: TransactionState | None = None
    user_transaction_time: datetime | None = None
    memo: str | None = None
    sk_category_id: str | None = None
    sk_category_name: str | None = None
    card_id: str | None = None
    user_id: str | None = None
    currency_code: str | None = None


class TransactionFilters(BaseModel):
    """Filters accepted by the upstream transactions listing."""

    model_config = ConfigDict(frozen=True)

    from_date: date | datetime | None = None
    to_date: date | datetime | None = None
    merchant_name: str | None = None
    sk_category_name: str | None = None
    state: TransactionState | None = None
    card_id: str | None = None
    user_id: str | None = None
    amount_greater_than: float | None = None
    amount_less_than: float | None = None
    has_receipts: bool | None = None
    start: str | None = Field(None, description="Opaque cursor from page.next")
    limit: int | None = Field(None, ge=1)

    def to_query_params(self) -> dict[str, str]:
        """Render non-empty filters as upstream query parameters."""
        params: dict[str, str] = {}
        for key, value in self.model_dump(exclude_none=True).items():
            if value == "":
                continue
            if isinstance(value, bool):
                params[key] = "true" if value else "false"
            elif isinstance(value, Enum):
                params[key] = value.value
            elif isinstance(value, (date, datetime)):
                params[key] = value.isoformat()
            else:
                params[key] = str(value)
        return params

    def without_paging(self) -> "TransactionFilters":
        return self.model_copy(update={"start": None, "limit": None})


class PageInfo(BaseModel):
    next: str | None = None
    prev: str | None = None


class TransactionPage(BaseModel):
    """One upstream page: `{data: [...], page: {next}}`."""

    data: list[Transaction] = Field(default_factory=list)
    page: PageInfo | None = None

    @property
    def next_cursor(self) -> Cursor | None:
        if self.page and self.page.next:
            return Cursor(self.page.next)
        return None


class Business(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str
    business_name: str | None = None
    phone: str | None = None


class ListPagination(BaseModel):
    currentPage: int | str
    pageSize: int
    totalItems: int | str
    hasMore: bool


class TransactionListResponse(BaseModel):
    """Envelope for GET /transactions."""

    success: bool = True
    data: list[Transaction]
    page: PageInfo | None = None
    filters: dict[str, Any]
    searchApplied: bool = False
    originalCount: int
    filteredCount: int
    pagination: ListPagination


class TransactionDetailResponse(BaseModel):
    success: bool = True
    data: Transaction


class BusinessResponse(BaseModel):
    success: bool = True
    data: Business
