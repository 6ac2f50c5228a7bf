"""Categorization request/response schemas."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from expense_dashboard.schemas.transaction import Transaction


class ExpenseCategory(str, Enum):
    """Closed set of business-expense categories."""

    OFFICE_SUPPLIES = "Office Supplies"
    SOFTWARE_SAAS = "Software & SaaS"
    MEALS_ENTERTAINMENT = "Meals & Entertainment"
    TRAVEL_TRANSPORTATION = "Travel & Transportation"
    MARKETING_ADVERTISING = "Marketing & Advertising"
    PROFESSIONAL_SERVICES = "Professional Services"
    EQUIPMENT_HARDWARE = "Equipment & Hardware"
    UTILITIES_INTERNET = "Utilities & Internet"
    INSURANCE = "Insurance"
    TRAINING_EDUCATION = "Training & Education"
    OTHER = "Other"


class CategorizationMethod(str, Enum):
    AI = "ai"
    KEYWORD = "keyword"
    MCC = "mcc"
    FALLBACK = "fallback"


class CategorizationResult(BaseModel):
    """Outcome of one categorization call. Never persisted."""

    model_config = ConfigDict(use_enum_values=True)

    category: ExpenseCategory
    confidence: float = Field(ge=0.0, le=1.0)
    reasoning: str
    method: CategorizationMethod


class CategorizeRequest(BaseModel):
    """Body of POST /categorize: one transaction or a batch."""

    transaction: Transaction | None = None
    transactions: list[Transaction] | None = None


class TransactionRef(BaseModel):
    id: str
    merchant: str


class SingleCategorizeResponse(BaseModel):
    success: bool = True
    result: CategorizationResult
    transaction: TransactionRef


class CategorizeFailureResponse(BaseModel):
    success: bool = False
    error: str
    fallback: CategorizationResult


class BatchSummary(BaseModel):
    total: int = 0
    successful: int = 0
    failed: int = 0
    byMethod: dict[str, int] = Field(default_factory=dict)
    byCategory: dict[str, int] = Field(default_factory=dict)


class BatchCategorizeResponse(BaseModel):
    success: bool = True
    results: dict[str, CategorizationResult]
    summary: BatchSummary


class CategorizerStatus(BaseModel):
    initialized: bool
    hasApiKey: bool
    rateLimited: bool
    rateLimitedUntil: datetime | None = None


class CategorizerStatusResponse(BaseModel):
    success: bool = True
    status: CategorizerStatus
    categories: dict[str, str]


class CategorySuggestion(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    category: ExpenseCategory
    confidence: float
    reasoning: str


class SuggestionsResponse(BaseModel):
    success: bool = True
    suggestions: list[CategorySuggestion]
