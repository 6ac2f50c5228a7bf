"""Deterministic transaction categorization.

Two local rule engines back up the remote classifier:

- keyword rules score every category by the share of its keywords found in
  the merchant name, descriptor, memo and MCC description
- MCC rules map the merchant category code (or its description) onto a
  category

Both are pure functions so the engine can compute them as candidates on
every call without side effects.
"""

from __future__ import annotations

from expense_dashboard.schemas.categorization import (
    CategorizationMethod,
    CategorizationResult,
    ExpenseCategory,
)
from expense_dashboard.schemas.transaction import Transaction

# Public taxonomy. Ordering matters: on equal keyword scores the earlier
# category wins.
CATEGORY_TABLE: dict[ExpenseCategory, dict] = {
    ExpenseCategory.OFFICE_SUPPLIES: {
        "keywords": ["office", "supplies", "staples", "paper", "pen", "folder", "desk"],
        "description": "Office supplies and stationery",
    },
    ExpenseCategory.SOFTWARE_SAAS: {
        "keywords": [
            "software", "saas", "subscription", "license", "cloud",
            "aws", "google", "microsoft", "adobe",
        ],
        "description": "Software licenses and SaaS subscriptions",
    },
    ExpenseCategory.MEALS_ENTERTAINMENT: {
        "keywords": [
            "restaurant", "food", "coffee", "lunch", "dinner",
            "starbucks", "uber eats", "doordash",
        ],
        "description": "Business meals and entertainment",
    },
    ExpenseCategory.TRAVEL_TRANSPORTATION: {
        "keywords": ["hotel", "flight", "uber", "lyft", "taxi", "airbnb", "airline", "rental car"],
        "description": "Business travel and transportation",
    },
    ExpenseCategory.MARKETING_ADVERTISING: {
        "keywords": ["marketing", "advertising", "facebook ads", "google ads", "promotion", "campaign"],
        "description": "Marketing and advertising expenses",
    },
    ExpenseCategory.PROFESSIONAL_SERVICES: {
        "keywords": ["legal", "accounting", "consulting", "lawyer", "accountant", "advisor"],
        "description": "Professional and consulting services",
    },
    ExpenseCategory.EQUIPMENT_HARDWARE: {
        "keywords": ["computer", "laptop", "monitor", "keyboard", "mouse", "hardware", "electronics"],
        "description": "Computer equipment and hardware",
    },
    ExpenseCategory.UTILITIES_INTERNET: {
        "keywords": ["internet", "phone", "electricity", "utilities", "telecom", "wireless"],
        "description": "Utilities and communication services",
    },
    ExpenseCategory.INSURANCE: {
        "keywords": ["insurance", "premium", "coverage", "policy"],
        "description": "Business insurance premiums",
    },
    ExpenseCategory.TRAINING_EDUCATION: {
        "keywords": ["training", "course", "education", "conference", "seminar", "workshop"],
        "description": "Employee training and education",
    },
    ExpenseCategory.OTHER: {
        "keywords": [],
        "description": "Other business expenses",
    },
}

CATEGORY_DESCRIPTIONS: dict[str, str] = {
    category.value: entry["description"] for category, entry in CATEGORY_TABLE.items()
}

KEYWORD_CONFIDENCE_CAP = 0.9

MCC_EXACT_CONFIDENCE = 0.8
MCC_DESCRIPTION_CONFIDENCE = 0.7
MCC_NO_MATCH_CONFIDENCE = 0.3

_MCC_CODES: dict[str, ExpenseCategory] = {
    "5734": ExpenseCategory.SOFTWARE_SAAS,  # Computer Software Stores
    "5943": ExpenseCategory.OFFICE_SUPPLIES,  # Stationery, Office Supplies
    "5814": ExpenseCategory.MEALS_ENTERTAINMENT,  # Fast Food Restaurants
    "5812": ExpenseCategory.MEALS_ENTERTAINMENT,  # Eating Places, Restaurants
    "4121": ExpenseCategory.TRAVEL_TRANSPORTATION,  # Taxicabs and Limousines
    "4411": ExpenseCategory.TRAVEL_TRANSPORTATION,  # Steamship and Cruise Lines
    "3351": ExpenseCategory.TRAVEL_TRANSPORTATION,  # Car Rental Agencies
    "7011": ExpenseCategory.TRAVEL_TRANSPORTATION,  # Hotels, Motels, Resorts
    "5541": ExpenseCategory.TRAVEL_TRANSPORTATION,  # Service Stations
    "7372": ExpenseCategory.SOFTWARE_SAAS,  # Computer Programming Services
    "5045": ExpenseCategory.EQUIPMENT_HARDWARE,  # Computers, Peripheral Equipment
    "4816": ExpenseCategory.UTILITIES_INTERNET,  # Computer Network/Information Services
    "4814": ExpenseCategory.UTILITIES_INTERNET,  # Telecommunication Services
}

# Ordering matters: earlier matches win.
_MCC_DESCRIPTION_RULES: list[tuple[str, ExpenseCategory]] = [
    ("software", ExpenseCategory.SOFTWARE_SAAS),
    ("computer", ExpenseCategory.EQUIPMENT_HARDWARE),
    ("restaurant", ExpenseCategory.MEALS_ENTERTAINMENT),
    ("hotel", ExpenseCategory.TRAVEL_TRANSPORTATION),
    ("office", ExpenseCategory.OFFICE_SUPPLIES),
    ("telecom", ExpenseCategory.UTILITIES_INTERNET),
    ("insurance", ExpenseCategory.INSURANCE),
]


def _text_blob(*parts: str | None) -> str:
    return " ".join(p for p in parts if p).lower()


def categorize_by_keywords(transaction: Transaction) -> CategorizationResult:
    """Score each category by the fraction of its keywords present.

    Confidence is the best normalized score, capped at 0.9.
    """
    text = _text_blob(
        transaction.merchant_name,
        transaction.merchant_descriptor,
        transaction.memo,
        transaction.merchant_category_code_description,
    )

    best_category = ExpenseCategory.OTHER
    best_score = 0.0
    best_matches: list[str] = []

    for category, entry in CATEGORY_TABLE.items():
        keywords = entry["keywords"]
        if not keywords:
            continue
        matched = [kw for kw in keywords if kw.lower() in text]
        score = len(matched) / len(keywords)
        if score > best_score:
            best_category, best_score, best_matches = category, score, matched

    return CategorizationResult(
        category=best_category,
        confidence=min(best_score, KEYWORD_CONFIDENCE_CAP),
        reasoning=(
            f"Keyword match: {', '.join(best_matches)}"
            if best_matches
            else "No keyword matches found"
        ),
        method=CategorizationMethod.KEYWORD,
    )


def categorize_by_mcc(transaction: Transaction) -> CategorizationResult:
    """Map the merchant category code onto a category.

    Exact code match scores 0.8, an MCC description keyword 0.7, and no
    match falls back to Other at 0.3.
    """
    mcc = transaction.merchant_category_code
    mcc_description = transaction.merchant_category_code_description or ""

    if mcc and mcc in _MCC_CODES:
        return CategorizationResult(
            category=_MCC_CODES[mcc],
            confidence=MCC_EXACT_CONFIDENCE,
            reasoning=f"MCC code mapping: {mcc} ({mcc_description or 'N/A'})",
            method=CategorizationMethod.MCC,
        )

    lowered = mcc_description.lower()
    for keyword, category in _MCC_DESCRIPTION_RULES:
        if keyword in lowered:
            return CategorizationResult(
                category=category,
                confidence=MCC_DESCRIPTION_CONFIDENCE,
                reasoning=f'MCC description match: "{keyword}" in "{mcc_description}"',
                method=CategorizationMethod.MCC,
            )

    return CategorizationResult(
        category=ExpenseCategory.OTHER,
        confidence=MCC_NO_MATCH_CONFIDENCE,
        reasoning=f"No MCC mapping found for code: {mcc}",
        method=CategorizationMethod.MCC,
    )


def find_category_mention(text: str) -> ExpenseCategory | None:
    """Return the first category whose name appears literally in text."""
    lowered = (text or "").lower()
    for category in CATEGORY_TABLE:
        if category.value.lower() in lowered:
            return category
    return None


def suggest_alternatives(
    transaction: Transaction, exclude: str | None = None
) -> list[tuple[ExpenseCategory, float, str]]:
    """Alternative categories from loose keyword hits (0.1 per hit, max 0.7).

    Only merchant name, descriptor and memo are searched.
    """
    text = _text_blob(transaction.merchant_name, transaction.merchant_descriptor, transaction.memo)
    alternatives = []
    for category, entry in CATEGORY_TABLE.items():
        if category.value == exclude:
            continue
        hits = sum(1 for kw in entry["keywords"] if kw.lower() in text)
        if hits:
            alternatives.append((category, min(round(hits * 0.1, 2), 0.7), "Alternative keyword match"))
    return alternatives
