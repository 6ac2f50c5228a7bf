"""Schemas for UI session state: page views and manual overrides."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from expense_dashboard.schemas.categorization import ExpenseCategory
from expense_dashboard.schemas.transaction import Transaction


class ManualOverride(BaseModel):
    """Operator-chosen category for one transaction (session only)."""

    model_config = ConfigDict(use_enum_values=True)

    transaction_id: str
    category: ExpenseCategory
    merchant: str | None = None
    original_category: str | None = Field(
        None, description="Upstream category at the time of the override"
    )
    created_at: datetime


class OverrideRequest(BaseModel):
    category: str = Field(description="Category to apply (must be from supported taxonomy)")
    transaction: Transaction | None = Field(
        None, description="Optional transaction snapshot, used for logging context"
    )


class OverrideResponse(BaseModel):
    success: bool = True
    override: ManualOverride


class OverrideListResponse(BaseModel):
    success: bool = True
    overrides: list[ManualOverride]


class OverrideDeleteResponse(BaseModel):
    success: bool = True
    transaction_id: str
    removed: bool


class SessionPagination(BaseModel):
    currentPage: int
    pageSize: int
    totalPages: int
    totalItems: int
    totalIsExact: bool
    totalDisplay: str | None = None
    hasNext: bool
    hasPrev: bool
    isCountingTotal: bool


class SessionPageResponse(BaseModel):
    success: bool = True
    data: list[Transaction]
    overrides: dict[str, str] = Field(default_factory=dict)
    searchApplied: bool = False
    pagination: SessionPagination


class SessionDeleteResponse(BaseModel):
    success: bool = True
    session_id: str
    removed: bool
