import asyncio
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import httpx
import pytest
from httpx import ASGITransport, AsyncClient

sys.path.append(str(Path(__file__).parents[1] / "src"))

from expense_dashboard.categorization import CategorizationEngine
from expense_dashboard.main import app
from expense_dashboard.schemas.transaction import (
    PageInfo,
    Transaction,
    TransactionFilters,
    TransactionPage,
)
from expense_dashboard.services.ramp_client import RampClient
from expense_dashboard.services.sessions import SessionStore

BASE_TIME = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)
RAMP_BASE_URL = "https://ramp.test"


def transaction_payload(index: int, **overrides) -> dict:
    """Upstream-shaped transaction; newer for lower indexes."""
    payload = {
        "id": f"txn-{index:03d}",
        "amount": 10.0 + index,
        "merchant_name": f"Merchant {index}",
        "merchant_descriptor": f"MERCHANT {index}",
        "merchant_category_code": None,
        "merchant_category_code_description": None,
        "state": "CLEARED",
        "user_transaction_time": (BASE_TIME - timedelta(minutes=index)).isoformat(),
        "memo": None,
        "sk_category_name": "General",
        "card_id": "card-1",
    }
    payload.update(overrides)
    return payload


def cursor_offset(cursor: str | None) -> int:
    return int(cursor.removeprefix("cursor-")) if cursor else 0


def page_of(rows: list, offset: int, limit: int) -> tuple[list, str | None]:
    end = offset + limit
    return rows[offset:end], (f"cursor-{end}" if end < len(rows) else None)


class FakeUpstream:
    """In-memory listing with `cursor-<offset>` cursors. Records every call."""

    def __init__(self, count: int):
        self.transactions = [Transaction.model_validate(transaction_payload(i)) for i in range(count)]
        self.calls: list[TransactionFilters] = []
        # start cursor -> exception raised once for that request
        self.failures: dict[str | None, Exception] = {}

    async def __call__(self, filters: TransactionFilters) -> TransactionPage:
        self.calls.append(filters)
        await asyncio.sleep(0)
        exc = self.failures.pop(filters.start, None)
        if exc is not None:
            raise exc
        data, next_cursor = page_of(self.transactions, cursor_offset(filters.start), filters.limit or 20)
        return TransactionPage(data=data, page=PageInfo(next=next_cursor))

    @property
    def cursors(self) -> list[str | None]:
        return [f.start for f in self.calls]


class RampAPIStub:
    """Request handler for httpx.MockTransport emulating the Ramp developer API."""

    def __init__(self, transactions: list[dict]):
        self.transactions = transactions
        self.requests: list[httpx.Request] = []
        # path -> queued responses served before the default behaviour
        self.scripted: dict[str, list[httpx.Response | Exception]] = {}

    def queue(self, path: str, *responses: httpx.Response | Exception) -> None:
        self.scripted.setdefault(path, []).extend(responses)

    def requests_to(self, path: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.path == path]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        queued = self.scripted.get(path)
        if queued:
            item = queued.pop(0)
            if isinstance(item, Exception):
                raise item
            return item

        if path == "/developer/v1/token":
            return httpx.Response(200, json={"access_token": "tok-123", "token_type": "Bearer", "expires_in": 3600})

        if path == "/developer/v1/business":
            return httpx.Response(200, json={"id": "biz-1", "business_name": "Acme Corp"})

        if path == "/developer/v1/transactions":
            params = request.url.params
            rows = self.transactions
            if "merchant_name" in params:
                rows = [t for t in rows if t["merchant_name"] == params["merchant_name"]]
            data, next_cursor = page_of(rows, cursor_offset(params.get("start")), int(params.get("limit", 20)))
            return httpx.Response(200, json={"data": data, "page": {"next": next_cursor}})

        if path.startswith("/developer/v1/transactions/"):
            transaction_id = path.rsplit("/", 1)[-1]
            for row in self.transactions:
                if row["id"] == transaction_id:
                    return httpx.Response(200, json=row)
            return httpx.Response(
                404,
                json={"error": {"message": "Transaction not found"}, "error_v2": {"error_code": "NOT_FOUND"}},
            )

        return httpx.Response(404, json={"error": {"message": "Unknown route"}})


@pytest.fixture
def make_transaction():
    """Factory for Transaction models with sensible defaults."""

    def _make(transaction_id: str = "txn-1", **fields) -> Transaction:
        data = {"id": transaction_id, "amount": 42.0, "merchant_name": "Unknown Vendor"}
        data.update(fields)
        return Transaction.model_validate(data)

    return _make


@pytest.fixture
def upstream_factory():
    """Build an in-memory upstream listing of `count` transactions."""
    return FakeUpstream


@pytest.fixture
def sleeps() -> list[float]:
    return []


@pytest.fixture
def fake_sleep(sleeps):
    """Awaitable sleep that records the requested delay and returns at once."""

    async def _sleep(delay: float) -> None:
        sleeps.append(delay)

    return _sleep


@pytest.fixture
def ramp_api() -> RampAPIStub:
    return RampAPIStub([transaction_payload(i) for i in range(45)])


@pytest.fixture
async def ramp_client(ramp_api, fake_sleep):
    client = RampClient(
        RAMP_BASE_URL,
        "client-id",
        "client-secret",
        transport=httpx.MockTransport(ramp_api),
        sleep=fake_sleep,
    )
    yield client
    await client.aclose()


@pytest.fixture
async def client(ramp_client):
    """HTTP client against the app, wired to the stubbed Ramp API and a rules-only engine."""
    app.state.ramp_client = ramp_client
    app.state.engine = CategorizationEngine(None)
    app.state.sessions = SessionStore(
        ramp_client.list_transactions, page_size=20, chunk_size=40, max_count_calls=20
    )

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    await app.state.sessions.aclose()
    app.state.ramp_client = None
    app.state.sessions = None


@pytest.fixture
async def unconfigured_client():
    """HTTP client against the app with no Ramp credentials configured."""
    app.state.ramp_client = None
    app.state.engine = CategorizationEngine(None)
    app.state.sessions = None

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
