"""Tests for the remote classifier: response validation and retry policy."""

from datetime import datetime, timezone
from types import SimpleNamespace
from unittest.mock import AsyncMock, Mock

import httpx
import pytest
from openai import APIConnectionError, BadRequestError, InternalServerError, RateLimitError

from expense_dashboard.categorization.classifier import (
    SYSTEM_PROMPT,
    ClassifierParseFailure,
    ClassifierVerdict,
    RemoteClassifier,
    build_prompt,
    parse_response,
)
from expense_dashboard.config import Settings
from expense_dashboard.core.exceptions import ClassifierUnavailable, RemoteClassifierError
from expense_dashboard.schemas.categorization import ExpenseCategory

OPENAI_URL = "https://api.openai.com/v1/chat/completions"


def completion(content: str | None):
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])


def status_error(cls, status: int, headers: dict | None = None):
    request = httpx.Request("POST", OPENAI_URL)
    response = httpx.Response(status, headers=headers or {}, request=request)
    return cls(f"HTTP {status}", response=response, body=None)


def connection_error():
    return APIConnectionError(request=httpx.Request("POST", OPENAI_URL))


VALID_REPLY = 'Sure! {"category": "Travel & Transportation", "confidence": 0.92, "reasoning": "Airline"}'


@pytest.fixture
def clock():
    now = [1_000.0]
    fn = lambda: now[0]  # noqa: E731
    fn.now = now
    return fn


@pytest.fixture
def openai_client():
    client = Mock()
    client.chat.completions.create = AsyncMock(return_value=completion(VALID_REPLY))
    return client


@pytest.fixture
def classifier(openai_client, fake_sleep, clock):
    return RemoteClassifier(openai_client, sleep=fake_sleep, clock=clock)


class TestParseResponse:
    def test_valid_object_inside_prose(self):
        outcome = parse_response(VALID_REPLY)
        assert outcome == ClassifierVerdict(
            category=ExpenseCategory.TRAVEL_TRANSPORTATION, confidence=0.92, reasoning="Airline"
        )

    def test_unknown_category(self):
        outcome = parse_response('{"category": "Groceries", "confidence": 0.9, "reasoning": "x"}')
        assert isinstance(outcome, ClassifierParseFailure)
        assert "Groceries" in outcome.raw

    def test_confidence_out_of_range(self):
        outcome = parse_response('{"category": "Insurance", "confidence": 1.5}')
        assert isinstance(outcome, ClassifierParseFailure)

    def test_confidence_numeric_string_accepted(self):
        outcome = parse_response('{"category": "Insurance", "confidence": "0.4", "reasoning": "r"}')
        assert isinstance(outcome, ClassifierVerdict)
        assert outcome.confidence == 0.4

    def test_no_json(self):
        outcome = parse_response("It is probably Insurance.")
        assert outcome == ClassifierParseFailure(raw="It is probably Insurance.", reason="No JSON found in response")

    def test_broken_json(self):
        outcome = parse_response('{"category": "Insurance", }')
        assert isinstance(outcome, ClassifierParseFailure)
        assert outcome.reason.startswith("Invalid JSON")


def test_build_prompt_includes_transaction_and_categories(make_transaction):
    prompt = build_prompt(
        make_transaction(
            merchant_name="Delta Air Lines",
            amount=420.5,
            merchant_descriptor="DELTA 0062",
            merchant_category_code="3058",
            merchant_category_code_description="Airlines",
            memo="Client visit",
        )
    )
    assert "Merchant: Delta Air Lines" in prompt
    assert "Amount: $420.5" in prompt
    assert "MCC: 3058 (Airlines)" in prompt
    assert "Memo: Client visit" in prompt
    for category in ExpenseCategory:
        assert category.value in prompt


@pytest.mark.asyncio
async def test_classify_sends_chat_completion(classifier, openai_client, make_transaction):
    outcome = await classifier.classify(make_transaction(merchant_name="Delta"))

    assert isinstance(outcome, ClassifierVerdict)
    kwargs = openai_client.chat.completions.create.await_args.kwargs
    assert kwargs["model"] == "gpt-3.5-turbo"
    assert kwargs["max_tokens"] == 200
    assert kwargs["temperature"] == 0.3
    assert kwargs["messages"][0] == {"role": "system", "content": SYSTEM_PROMPT}


@pytest.mark.asyncio
async def test_rate_limit_sets_cooldown_from_retry_after(classifier, openai_client, sleeps, clock, make_transaction):
    openai_client.chat.completions.create.side_effect = [
        status_error(RateLimitError, 429, {"retry-after": "5"}),
        completion(VALID_REPLY),
    ]

    outcome = await classifier.classify(make_transaction())

    assert isinstance(outcome, ClassifierVerdict)
    assert sleeps == [5.0]
    assert classifier.is_rate_limited
    assert classifier.rate_limited_until == datetime.fromtimestamp(1_005.0, tz=timezone.utc)
    assert not classifier.available

    clock.now[0] = 1_006.0
    assert not classifier.is_rate_limited
    assert classifier.rate_limited_until is None
    assert classifier.available


@pytest.mark.asyncio
async def test_rate_limit_without_hint_uses_backoff(classifier, openai_client, sleeps, make_transaction):
    openai_client.chat.completions.create.side_effect = [
        status_error(RateLimitError, 429),
        status_error(RateLimitError, 429),
        completion(VALID_REPLY),
    ]

    await classifier.classify(make_transaction())

    assert sleeps == [1.0, 2.0]


@pytest.mark.asyncio
async def test_server_error_is_retried(classifier, openai_client, sleeps, make_transaction):
    openai_client.chat.completions.create.side_effect = [
        status_error(InternalServerError, 500),
        completion(VALID_REPLY),
    ]

    outcome = await classifier.classify(make_transaction())

    assert isinstance(outcome, ClassifierVerdict)
    assert sleeps == [1.0]
    assert not classifier.is_rate_limited


@pytest.mark.asyncio
async def test_connection_errors_exhaust_retries(classifier, openai_client, sleeps, make_transaction):
    openai_client.chat.completions.create.side_effect = [connection_error() for _ in range(4)]

    with pytest.raises(RemoteClassifierError) as exc_info:
        await classifier.classify(make_transaction())

    assert exc_info.value.error_code == "CAT_003"
    assert sleeps == [1.0, 2.0, 4.0]
    assert openai_client.chat.completions.create.await_count == 4


@pytest.mark.asyncio
async def test_client_error_not_retried(classifier, openai_client, sleeps, make_transaction):
    openai_client.chat.completions.create.side_effect = status_error(BadRequestError, 400)

    with pytest.raises(RemoteClassifierError):
        await classifier.classify(make_transaction())

    assert sleeps == []
    assert openai_client.chat.completions.create.await_count == 1


@pytest.mark.asyncio
async def test_empty_content_is_an_error(classifier, openai_client, make_transaction):
    openai_client.chat.completions.create.return_value = completion(None)

    with pytest.raises(RemoteClassifierError, match="No response content"):
        await classifier.classify(make_transaction())


@pytest.mark.asyncio
async def test_classify_refuses_during_cooldown(classifier, openai_client, make_transaction):
    openai_client.chat.completions.create.side_effect = [
        status_error(RateLimitError, 429, {"retry-after": "30"}),
        completion(VALID_REPLY),
    ]
    await classifier.classify(make_transaction())
    openai_client.chat.completions.create.reset_mock()

    with pytest.raises(ClassifierUnavailable):
        await classifier.classify(make_transaction())
    openai_client.chat.completions.create.assert_not_awaited()


def test_from_settings_without_key_disables_classifier():
    assert RemoteClassifier.from_settings(Settings(openai_api_key=None)) is None


def test_from_settings_with_key():
    classifier = RemoteClassifier.from_settings(
        Settings(openai_api_key="sk-test-key-123456", openai_model="gpt-4o-mini")
    )
    assert classifier is not None
    assert classifier.model == "gpt-4o-mini"
    assert classifier.client.max_retries == 0
