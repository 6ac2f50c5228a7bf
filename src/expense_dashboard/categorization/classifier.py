"""Remote (LLM) transaction classifier.

The first stage of the categorization cascade. Responses are treated as
untrusted: the first JSON object in the reply is validated against the
category enumeration and a [0, 1] confidence before use. Validation
failures come back as a ClassifierParseFailure value rather than an
exception, so the engine decides how to degrade.
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable

from openai import (
    APIConnectionError,
    APIStatusError,
    AsyncOpenAI,
    OpenAIError,
    RateLimitError,
)
from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from expense_dashboard.categorization.rules import CATEGORY_TABLE
from expense_dashboard.config import Settings
from expense_dashboard.core.exceptions import ClassifierUnavailable, RemoteClassifierError
from expense_dashboard.schemas.categorization import ExpenseCategory
from expense_dashboard.schemas.transaction import Transaction

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """You are an expert at categorizing business expenses. You must respond with a valid JSON object containing:
{
  "category": "one of the provided categories",
  "confidence": "number between 0 and 1",
  "reasoning": "brief explanation"
}"""

_JSON_OBJECT = re.compile(r"\{[\s\S]*\}")


class _ClassifierPayload(BaseModel):
    category: ExpenseCategory
    confidence: float = Field(ge=0.0, le=1.0)
    reasoning: str = ""


@dataclass(frozen=True)
class ClassifierVerdict:
    """A reply that passed schema validation."""

    category: ExpenseCategory
    confidence: float
    reasoning: str


@dataclass(frozen=True)
class ClassifierParseFailure:
    """A reply that could not be validated; raw text kept for lenient scanning."""

    raw: str
    reason: str


ClassifierOutcome = ClassifierVerdict | ClassifierParseFailure


def build_prompt(transaction: Transaction) -> str:
    """Build the user prompt for a single transaction."""
    categories = ", ".join(c.value for c in CATEGORY_TABLE)
    lines = [
        "Categorize this business transaction:",
        "",
        f"Merchant: {transaction.merchant_name}",
        f"Amount: ${transaction.amount}",
        f"Description: {transaction.merchant_descriptor or 'N/A'}",
        f"MCC: {transaction.merchant_category_code} "
        f"({transaction.merchant_category_code_description})",
    ]
    if transaction.memo:
        lines.append(f"Memo: {transaction.memo}")
    lines += [
        "",
        f"Available categories: {categories}",
        "",
        "Respond with a JSON object containing the category, confidence (0-1), and reasoning.",
    ]
    return "\n".join(lines)


def parse_response(raw: str) -> ClassifierOutcome:
    """Validate a classifier reply.

    Args:
        raw: Text content returned by the model

    Returns:
        ClassifierVerdict when the first JSON object is a valid payload,
        ClassifierParseFailure otherwise
    """
    match = _JSON_OBJECT.search(raw or "")
    if not match:
        return ClassifierParseFailure(raw=raw or "", reason="No JSON found in response")
    try:
        data = json.loads(match.group(0))
    except json.JSONDecodeError as exc:
        return ClassifierParseFailure(raw=raw, reason=f"Invalid JSON: {exc.msg}")
    if not isinstance(data, dict):
        return ClassifierParseFailure(raw=raw, reason="Response JSON is not an object")
    try:
        payload = _ClassifierPayload.model_validate(data)
    except PydanticValidationError as exc:
        return ClassifierParseFailure(raw=raw, reason=f"Invalid response structure: {exc.error_count()} errors")
    return ClassifierVerdict(
        category=payload.category,
        confidence=payload.confidence,
        reasoning=payload.reasoning,
    )


def _is_retryable(exc: OpenAIError) -> bool:
    # APITimeoutError subclasses APIConnectionError.
    if isinstance(exc, APIConnectionError):
        return True
    return isinstance(exc, APIStatusError) and exc.status_code >= 500


def _retry_after_seconds(exc: APIStatusError) -> float | None:
    value = exc.response.headers.get("retry-after") if exc.response is not None else None
    if not value:
        return None
    try:
        return max(float(value), 0.0)
    except ValueError:
        return None


class RemoteClassifier:
    """LLM classifier with exponential backoff and a 429 cooldown.

    The cooldown timestamp is the only mutable state; the engine reads it
    through `available` before each call.
    """

    def __init__(
        self,
        client: Any,
        *,
        model: str = "gpt-3.5-turbo",
        max_tokens: int = 200,
        temperature: float = 0.3,
        max_retries: int = 3,
        base_delay: float = 1.0,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], float] = time.time,
    ):
        """Initialize the classifier.

        Args:
            client: AsyncOpenAI (or anything exposing chat.completions.create)
            model: Chat model name
            max_tokens: Completion token cap
            temperature: Sampling temperature
            max_retries: Retries after the first attempt
            base_delay: Backoff base in seconds (doubles per retry)
            sleep: Awaitable sleep, injectable for tests
            clock: Wall clock in epoch seconds, injectable for tests
        """
        self.client = client
        self.model = model
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.max_retries = max_retries
        self.base_delay = base_delay
        self._sleep = sleep
        self._clock = clock
        self._rate_limited_until: float | None = None

    @classmethod
    def from_settings(cls, settings: Settings) -> RemoteClassifier | None:
        """Build a classifier, or None when no API key is configured."""
        if not settings.openai_api_key:
            logger.warning("OpenAI API key not found. AI categorization will be disabled.")
            return None
        client = AsyncOpenAI(
            api_key=settings.openai_api_key,
            max_retries=0,
            timeout=settings.openai_timeout_seconds,
        )
        return cls(
            client,
            model=settings.openai_model,
            max_tokens=settings.openai_max_tokens,
            temperature=settings.openai_temperature,
        )

    async def aclose(self) -> None:
        close = getattr(self.client, "close", None)
        if close is not None:
            await close()

    @property
    def is_rate_limited(self) -> bool:
        return self._rate_limited_until is not None and self._clock() < self._rate_limited_until

    @property
    def rate_limited_until(self) -> datetime | None:
        if not self.is_rate_limited:
            return None
        return datetime.fromtimestamp(self._rate_limited_until, tz=timezone.utc)

    @property
    def available(self) -> bool:
        return self.client is not None and not self.is_rate_limited

    async def classify(self, transaction: Transaction) -> ClassifierOutcome:
        """Classify one transaction.

        Raises:
            ClassifierUnavailable: If called while unconfigured or cooling down
            RemoteClassifierError: If the request failed after all retries
        """
        if not self.available:
            raise ClassifierUnavailable({"rate_limited_until": self._rate_limited_until})
        raw = await self._complete(build_prompt(transaction))
        return parse_response(raw)

    async def _complete(self, prompt: str) -> str:
        attempt = 0
        while True:
            try:
                completion = await self.client.chat.completions.create(
                    model=self.model,
                    messages=[
                        {"role": "system", "content": SYSTEM_PROMPT},
                        {"role": "user", "content": prompt},
                    ],
                    max_tokens=self.max_tokens,
                    temperature=self.temperature,
                )
            except RateLimitError as exc:
                delay = _retry_after_seconds(exc)
                if delay is None:
                    delay = self.base_delay * (2**attempt)
                self._rate_limited_until = self._clock() + delay
                logger.warning("OpenAI rate limit reached", extra={"retry_in_s": delay})
                if attempt >= self.max_retries:
                    raise RemoteClassifierError(
                        "Rate limited and max retries exceeded", {"status": 429}
                    ) from exc
            except OpenAIError as exc:
                if attempt >= self.max_retries or not _is_retryable(exc):
                    raise RemoteClassifierError(
                        f"OpenAI request failed: {type(exc).__name__}",
                        {"status": getattr(exc, "status_code", None)},
                    ) from exc
                delay = self.base_delay * (2**attempt)
                logger.warning(
                    "OpenAI request failed, retrying",
                    extra={"error_type": type(exc).__name__, "retry_in_s": delay},
                )
            else:
                content = completion.choices[0].message.content if completion.choices else None
                if not content:
                    raise RemoteClassifierError("No response content from OpenAI")
                return content

            await self._sleep(delay)
            attempt += 1
