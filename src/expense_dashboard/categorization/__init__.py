"""Transaction categorization.

A remote LLM classifier backed by deterministic keyword and MCC rules, so a
result is always available even with no API key configured.
"""

from .engine import CategorizationEngine
from .rules import CATEGORY_DESCRIPTIONS, categorize_by_keywords, categorize_by_mcc

__all__ = [
    "CATEGORY_DESCRIPTIONS",
    "CategorizationEngine",
    "categorize_by_keywords",
    "categorize_by_mcc",
]
