"""Error codes and user-friendly messages.

Each catalog entry has:
- code: Unique identifier
- message: Technical description (for logs and API clients)
- user_message: User-friendly explanation
- suggestion: Actionable guidance for the user
- retry_allowed: Whether the error is retryable
"""

ERROR_CATALOG: dict[str, dict] = {
    # Upstream (Ramp) errors
    "RAMP_001": {
        "code": "RAMP_001",
        "message": "Authentication failed",
        "user_message": "We couldn't sign in to the expense platform.",
        "suggestion": "Check the configured Ramp client ID and secret.",
        "retry_allowed": False,
    },
    "RAMP_002": {
        "code": "RAMP_002",
        "message": "Upstream API unavailable after retries",
        "user_message": "The expense platform is temporarily unavailable.",
        "suggestion": "Please try again in a few moments.",
        "retry_allowed": True,
    },
    "RAMP_003": {
        "code": "RAMP_003",
        "message": "Upstream API rejected the request",
        "user_message": "The expense platform couldn't complete this request.",
        "suggestion": "Check your filters and try again.",
        "retry_allowed": False,
    },
    "RAMP_004": {
        "code": "RAMP_004",
        "message": "Ramp API client ID and secret are required",
        "user_message": "The expense platform connection isn't configured.",
        "suggestion": "Set RAMP_CLIENT_ID and RAMP_CLIENT_SECRET and restart the service.",
        "retry_allowed": False,
    },
    # Categorization errors
    "CAT_001": {
        "code": "CAT_001",
        "message": "Either transaction or transactions array is required",
        "user_message": "Nothing to categorize.",
        "suggestion": "Send a transaction or a list of transactions.",
        "retry_allowed": False,
    },
    "CAT_002": {
        "code": "CAT_002",
        "message": "Maximum batch size is 100 transactions",
        "user_message": "Too many transactions in one request.",
        "suggestion": "Split the batch into requests of at most 100 transactions.",
        "retry_allowed": False,
    },
    "CAT_003": {
        "code": "CAT_003",
        "message": "Remote classifier request failed",
        "user_message": "AI categorization is temporarily unavailable.",
        "suggestion": "Rule-based categorization is used in the meantime.",
        "retry_allowed": True,
    },
    "CAT_004": {
        "code": "CAT_004",
        "message": "Remote classifier is not available",
        "user_message": "AI categorization is disabled or cooling down.",
        "suggestion": "Rule-based categorization is used in the meantime.",
        "retry_allowed": True,
    },
    # Validation
    "VAL_001": {
        "code": "VAL_001",
        "message": "Request data failed validation",
        "user_message": "Invalid input data",
        "suggestion": "Please check your input and try again",
        "retry_allowed": True,
    },
    # API-specific errors
    "API_006": {
        "code": "API_006",
        "message": "Transaction not found",
        "user_message": "We couldn't find this transaction.",
        "suggestion": "Please refresh and try again.",
        "retry_allowed": False,
    },
    "API_007": {
        "code": "API_007",
        "message": "Invalid category",
        "user_message": "That category isn't supported.",
        "suggestion": "Please choose a category from the allowed list.",
        "retry_allowed": False,
    },
}


def get_error(error_code: str) -> dict:
    """Get error definition by code.

    Args:
        error_code: Error code from the catalog

    Returns:
        Dict with error details (a generic entry for unknown codes)
    """
    if error_code not in ERROR_CATALOG:
        return {
            "code": "UNKNOWN",
            "message": f"Unknown error code: {error_code}",
            "user_message": "An unexpected error occurred.",
            "suggestion": "Please try again. Contact support if the problem persists.",
            "retry_allowed": True,
        }
    return ERROR_CATALOG[error_code]


def get_user_message(error_code: str) -> str:
    return get_error(error_code)["user_message"]


def is_retryable(error_code: str) -> bool:
    return get_error(error_code)["retry_allowed"]
