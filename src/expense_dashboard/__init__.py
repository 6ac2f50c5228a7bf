"""Expense dashboard API: Ramp transaction browsing and categorization."""

__version__ = "0.1.0"
