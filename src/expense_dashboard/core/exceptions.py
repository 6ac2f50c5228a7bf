"""Custom exception classes for the dashboard API.

Every exception carries an error_code that maps to the catalog in
errors.py, so the API layer can render a consistent response.
"""

from typing import Any


class DashboardError(Exception):
    """Base exception for all dashboard errors.

    Attributes:
        error_code: Code from the error catalog (e.g., "RAMP_001")
        details: Additional context about the error (for logging)
        http_status: HTTP status code to return (default: 500)
    """

    def __init__(
        self,
        error_code: str,
        details: dict[str, Any] | None = None,
        http_status: int = 500,
        message: str | None = None,
    ):
        self.error_code = error_code
        self.details = details or {}
        self.http_status = http_status
        self.message = message
        super().__init__(message or error_code)


class AuthenticationFailure(DashboardError):
    """Upstream rejected our client credentials (401/403).

    Never retried: the same credentials will be rejected again.
    """

    def __init__(self, details: dict[str, Any] | None = None, http_status: int = 401):
        super().__init__("RAMP_001", details, http_status, "Authentication failed")


class TransientUpstreamError(DashboardError):
    """5xx, 429 or network failure that persisted after every retry."""

    def __init__(self, status: int | None = None, details: dict[str, Any] | None = None):
        self.status = status
        super().__init__(
            "RAMP_002",
            {"status": status, **(details or {})},
            503,
            f"Upstream unavailable (HTTP {status})" if status else "Upstream unreachable",
        )


class UpstreamRequestError(DashboardError):
    """Non-retryable 4xx from the upstream API."""

    def __init__(self, status: int, message: str, upstream_code: str | None = None):
        self.status = status
        self.upstream_code = upstream_code
        super().__init__(
            "API_006" if status == 404 else "RAMP_003",
            {"status": status, "upstream_code": upstream_code},
            status if status in (400, 404, 422) else 502,
            message,
        )


class UpstreamNotConfigured(DashboardError):
    """No Ramp credentials were configured for this process."""

    def __init__(self):
        super().__init__("RAMP_004", http_status=503)


class RemoteClassifierError(DashboardError):
    """Remote classifier call failed after the retry policy gave up.

    Absorbed by the categorization engine, which falls back to local rules.
    """

    def __init__(self, reason: str, details: dict[str, Any] | None = None):
        self.reason = reason
        super().__init__("CAT_003", details, 502, reason)


class ClassifierUnavailable(DashboardError):
    """Classifier has no credential or is cooling down after a 429.

    A routing condition rather than a failure: the engine checks
    availability first and skips the remote stage.
    """

    def __init__(self, details: dict[str, Any] | None = None):
        super().__init__("CAT_004", details, 503)


class ValidationError(DashboardError):
    """Malformed request (e.g. a categorization batch above the cap)."""

    def __init__(self, error_code: str = "VAL_001", details: dict[str, Any] | None = None):
        super().__init__(error_code, details, 400)
