"""
Unit tests for RetryPolicy.

Transient failures (429/503/504, timeouts, network) are retried with
exponential backoff up to max_retries + 1 attempts; deterministic ones
fail on the first attempt.
"""

import asyncio

import pytest

from workers.extraction.errors import (
    ExtractionServiceError,
    ExtractionTimeoutError,
    NetworkError,
)
from workers.extraction.retry import RetryPolicy, classify_error, is_retryable

pytestmark = pytest.mark.unit


class FlakyOperation:
    """Raises the queued errors in order, then returns 'ok'."""

    def __init__(self, *errors):
        self.errors = list(errors)
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        if self.errors:
            raise self.errors.pop(0)
        return "ok"


@pytest.fixture
def policy(no_sleep):
    return RetryPolicy(max_retries=3, initial_delay=2.0, max_delay=15.0, sleep=no_sleep)


class TestClassification:
    """Tests for mapping exceptions to retryable / not retryable."""

    @pytest.mark.parametrize("status_code", [429, 503, 504])
    def test_transient_statuses_retryable(self, status_code):
        assert is_retryable(ExtractionServiceError("busy", status_code=status_code)) is True

    @pytest.mark.parametrize("status_code", [400, 413, 422, 500, None])
    def test_other_statuses_not_retryable(self, status_code):
        assert is_retryable(ExtractionServiceError("bad", status_code=status_code)) is False

    def test_timeout_and_network_retryable(self):
        assert isinstance(classify_error(asyncio.TimeoutError()), ExtractionTimeoutError)
        assert isinstance(classify_error(ConnectionResetError("reset")), NetworkError)
        assert is_retryable(asyncio.TimeoutError()) is True

    def test_unknown_errors_unclassified(self):
        assert classify_error(ValueError("boom")) is None
        assert is_retryable(KeyError("x")) is False


class TestBackoff:
    """Tests for delay computation."""

    def test_exponential_then_capped(self, policy):
        assert [policy.delay_for(i) for i in range(5)] == [2.0, 4.0, 8.0, 15.0, 15.0]

    def test_max_attempts(self, policy):
        assert policy.max_attempts == 4


class TestExecute:
    """Tests for the retry loop."""

    @pytest.mark.asyncio
    async def test_success_first_attempt(self, policy, no_sleep):
        operation = FlakyOperation()

        assert await policy.execute(operation) == "ok"
        assert operation.calls == 1
        assert no_sleep.delays == []

    @pytest.mark.asyncio
    async def test_retries_transient_then_succeeds(self, policy, no_sleep):
        operation = FlakyOperation(
            ExtractionServiceError("unavailable", status_code=503),
            ExtractionServiceError("slow down", status_code=429),
        )

        assert await policy.execute(operation) == "ok"
        assert operation.calls == 3
        assert no_sleep.delays == [2.0, 4.0]

    @pytest.mark.asyncio
    async def test_gives_up_after_max_attempts(self, policy, no_sleep):
        operation = FlakyOperation(*[ExtractionServiceError("slow down", status_code=429) for _ in range(10)])

        with pytest.raises(ExtractionServiceError) as exc_info:
            await policy.execute(operation)

        assert operation.calls == 4
        assert exc_info.value.attempts == 4
        assert exc_info.value.status_code == 429
        assert no_sleep.delays == [2.0, 4.0, 8.0]
        assert "after 4 attempts" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_deterministic_error_single_attempt(self, policy, no_sleep):
        operation = FlakyOperation(ExtractionServiceError("unparseable", status_code=422))

        with pytest.raises(ExtractionServiceError) as exc_info:
            await policy.execute(operation)

        assert operation.calls == 1
        assert exc_info.value.attempts == 1
        assert no_sleep.delays == []

    @pytest.mark.asyncio
    async def test_asyncio_timeout_converted_and_retried(self, policy):
        operation = FlakyOperation(*[asyncio.TimeoutError() for _ in range(10)])

        with pytest.raises(ExtractionTimeoutError) as exc_info:
            await policy.execute(operation)

        assert operation.calls == 4
        assert exc_info.value.status_code == 504
        assert isinstance(exc_info.value.__cause__, asyncio.TimeoutError)

    @pytest.mark.asyncio
    async def test_network_error_retried(self, policy):
        operation = FlakyOperation(ConnectionError("connection refused"))

        assert await policy.execute(operation) == "ok"
        assert operation.calls == 2

    @pytest.mark.asyncio
    async def test_unclassified_error_reraised_untouched(self, policy):
        operation = FlakyOperation(ValueError("bug"))

        with pytest.raises(ValueError, match="bug"):
            await policy.execute(operation)

        assert operation.calls == 1

    @pytest.mark.asyncio
    async def test_zero_retries(self, no_sleep):
        policy = RetryPolicy(max_retries=0, sleep=no_sleep)
        operation = FlakyOperation(ExtractionServiceError("unavailable", status_code=503))

        with pytest.raises(ExtractionServiceError):
            await policy.execute(operation)

        assert operation.calls == 1
