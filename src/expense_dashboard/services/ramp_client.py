"""Async client for the Ramp developer API.

Handles the client-credentials token exchange, bearer token refresh and
retry with exponential backoff. Callers only see typed pages and the
exception hierarchy from core.exceptions.
"""

import asyncio
import logging
import time
from collections.abc import AsyncIterator, Awaitable, Callable
from datetime import datetime, timezone
from typing import Any

import httpx

from expense_dashboard import __version__
from expense_dashboard.config import Settings
from expense_dashboard.core.exceptions import (
    AuthenticationFailure,
    TransientUpstreamError,
    UpstreamRequestError,
)
from expense_dashboard.schemas.transaction import (
    Business,
    Transaction,
    TransactionFilters,
    TransactionPage,
)

logger = logging.getLogger(__name__)

API_VERSION = "v1"
TOKEN_PATH = "/developer/v1/token"
RETRYABLE_STATUSES = frozenset({429, 500, 502, 503, 504})
TOKEN_REFRESH_BUFFER_SECONDS = 300


class RampClient:
    """Ramp developer API client.

    One instance per process, built in the app lifespan and shared through
    dependencies. The token lives on the instance.
    """

    def __init__(
        self,
        base_url: str,
        client_id: str,
        client_secret: str,
        *,
        timeout: float = 30.0,
        retries: int = 3,
        base_delay: float = 1.0,
        scope: str = "transactions:read users:read cards:read business:read",
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        if not client_id or not client_secret:
            raise ValueError("Ramp API client ID and secret are required")

        self.base_url = base_url.rstrip("/")
        self.client_id = client_id
        self._client_secret = client_secret
        self.timeout = timeout
        self.retries = retries
        self.base_delay = base_delay
        self.scope = scope
        self._sleep = sleep
        self._clock = clock

        self._access_token: str | None = None
        self._token_expires_at: float | None = None
        self._token_lock = asyncio.Lock()

        self._http = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout,
            transport=transport,
            headers={"User-Agent": f"Expense-Dashboard/{__version__}"},
        )

    @classmethod
    def from_settings(cls, settings: Settings, **kwargs: Any) -> "RampClient":
        return cls(
            settings.ramp_api_base_url,
            settings.ramp_client_id,
            settings.ramp_client_secret,
            timeout=settings.ramp_timeout_seconds,
            retries=settings.ramp_max_retries,
            scope=settings.ramp_token_scope,
            **kwargs,
        )

    async def aclose(self) -> None:
        await self._http.aclose()

    # ====================
    # AUTHENTICATION
    # ====================

    def _token_valid(self) -> bool:
        return (
            self._access_token is not None
            and self._token_expires_at is not None
            and self._clock() < self._token_expires_at - TOKEN_REFRESH_BUFFER_SECONDS
        )

    async def _authenticate(self) -> str:
        """Return a bearer token, exchanging client credentials when needed."""
        async with self._token_lock:
            if self._token_valid():
                return self._access_token

            response = await self._send(
                "POST",
                TOKEN_PATH,
                authenticated=False,
                auth=(self.client_id, self._client_secret),
                data={"grant_type": "client_credentials", "scope": self.scope},
            )
            payload = response.json()
            self._access_token = payload["access_token"]
            self._token_expires_at = self._clock() + float(payload.get("expires_in", 0))
            logger.info("Authenticated with Ramp API", extra={"expires_in": payload.get("expires_in")})
            return self._access_token

    def reset_auth(self) -> None:
        """Force re-authentication on the next request."""
        self._access_token = None
        self._token_expires_at = None

    # ====================
    # TRANSPORT
    # ====================

    def _backoff(self, attempt: int, response: httpx.Response | None = None) -> float:
        if response is not None:
            retry_after = response.headers.get("retry-after")
            if retry_after:
                try:
                    return max(float(retry_after), 0.0)
                except ValueError:
                    pass
        return self.base_delay * (2**attempt)

    async def _send(
        self,
        method: str,
        url: str,
        *,
        authenticated: bool = True,
        **kwargs: Any,
    ) -> httpx.Response:
        """Send a request, retrying 429/5xx and transport errors.

        Raises:
            AuthenticationFailure: On 401/403 (never retried)
            TransientUpstreamError: When retries are exhausted
            UpstreamRequestError: On any other non-2xx status
        """
        extra_headers = kwargs.pop("headers", None) or {}
        attempt = 0
        while True:
            headers = dict(extra_headers)
            if authenticated:
                headers["Authorization"] = f"Bearer {await self._authenticate()}"

            try:
                response = await self._http.request(method, url, headers=headers, **kwargs)
            except httpx.TransportError as exc:
                if attempt >= self.retries:
                    raise TransientUpstreamError(details={"error_type": type(exc).__name__}) from exc
                delay = self._backoff(attempt)
                logger.warning(
                    "Ramp API transport error, retrying",
                    extra={"error_type": type(exc).__name__, "retry_in_s": delay, "path": url},
                )
            else:
                if response.is_success:
                    return response
                if response.status_code in (401, 403):
                    if authenticated:
                        self.reset_auth()
                    raise AuthenticationFailure(
                        {"status": response.status_code, "path": url},
                        http_status=response.status_code,
                    )
                if response.status_code not in RETRYABLE_STATUSES:
                    raise self._request_error(response)
                if attempt >= self.retries:
                    raise TransientUpstreamError(response.status_code, {"path": url})
                delay = self._backoff(attempt, response)
                logger.warning(
                    "Ramp API returned retryable status",
                    extra={"status_code": response.status_code, "retry_in_s": delay, "path": url},
                )

            await self._sleep(delay)
            attempt += 1

    @staticmethod
    def _request_error(response: httpx.Response) -> UpstreamRequestError:
        message = response.reason_phrase or f"HTTP {response.status_code}"
        upstream_code = None
        try:
            body = response.json()
        except ValueError:
            body = None
        if isinstance(body, dict):
            error = body.get("error")
            if isinstance(error, dict):
                message = error.get("message") or message
            error_v2 = body.get("error_v2")
            if isinstance(error_v2, dict):
                upstream_code = error_v2.get("error_code")
        return UpstreamRequestError(response.status_code, message, upstream_code)

    async def _get_json(self, path: str, params: dict[str, str] | None = None) -> dict:
        response = await self._send("GET", path, params=params or None)
        return response.json()

    # ====================
    # TRANSACTION METHODS
    # ====================

    async def list_transactions(self, filters: TransactionFilters | None = None) -> TransactionPage:
        """Get one page of transactions.

        Args:
            filters: Upstream filters; `start` carries the opaque cursor

        Returns:
            The page with its `next` cursor, if any
        """
        params = (filters or TransactionFilters()).to_query_params()
        payload = await self._get_json(f"/developer/{API_VERSION}/transactions", params)
        return TransactionPage.model_validate(payload)

    async def get_transaction(self, transaction_id: str) -> Transaction:
        payload = await self._get_json(f"/developer/{API_VERSION}/transactions/{transaction_id}")
        return Transaction.model_validate(payload.get("data", payload))

    async def iter_transactions(
        self, filters: TransactionFilters | None = None
    ) -> AsyncIterator[Transaction]:
        """Yield every transaction, following the cursor chain to the end."""
        filters = filters or TransactionFilters()
        while True:
            page = await self.list_transactions(filters)
            for transaction in page.data:
                yield transaction
            if page.next_cursor is None:
                return
            filters = filters.model_copy(update={"start": page.next_cursor})

    # ====================
    # BUSINESS METHODS
    # ====================

    async def get_business(self) -> Business:
        payload = await self._get_json(f"/developer/{API_VERSION}/business")
        return Business.model_validate(payload.get("data", payload))

    # ====================
    # UTILITY METHODS
    # ====================

    async def health_check(self) -> dict[str, str]:
        """Test API connectivity by authenticating and reading the business."""
        try:
            await self.get_business()
            status = "ok"
        except (AuthenticationFailure, TransientUpstreamError, UpstreamRequestError) as exc:
            logger.warning("Ramp API health check failed", extra={"error_code": exc.error_code})
            status = "error"
        return {"status": status, "timestamp": datetime.now(timezone.utc).isoformat()}

    def get_config(self) -> dict[str, Any]:
        """Current configuration without the client secret."""
        return {
            "base_url": self.base_url,
            "client_id": self.client_id,
            "timeout": self.timeout,
            "retries": self.retries,
        }
