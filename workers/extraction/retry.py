"""
Retry with exponential backoff for extraction calls.

Only transient conditions are retried: timeouts, 429, 503, 504 and
network failures. Deterministic rejections (413, 422, any other 4xx)
and unclassified errors fail on the first attempt.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional

from backend.core.config import get_settings
from workers.extraction.errors import (
    ExtractionServiceError,
    ExtractionTimeoutError,
    NetworkError,
)

logger = logging.getLogger(__name__)
settings = get_settings()

SleepFn = Callable[[float], Awaitable[Any]]


def classify_error(exc: BaseException) -> Optional[ExtractionServiceError]:
    """Map a raised exception onto the service error hierarchy, if it belongs there."""
    if isinstance(exc, ExtractionServiceError):
        return exc
    if isinstance(exc, asyncio.TimeoutError):
        return ExtractionTimeoutError(str(exc) or "Extraction timed out")
    if isinstance(exc, ConnectionError):
        return NetworkError(str(exc) or exc.__class__.__name__)
    return None


def is_retryable(exc: BaseException) -> bool:
    classified = classify_error(exc)
    return classified is not None and classified.retryable


@dataclass
class RetryPolicy:
    """
    Explicit retry loop with an injectable sleep.

    Usage:
        policy = RetryPolicy(max_retries=3)
        result = await policy.execute(lambda: client.extract(doc), label=doc.file_name)
    """
    max_retries: int = 3
    initial_delay: float = 2.0  # seconds
    max_delay: float = 15.0
    sleep: SleepFn = field(default=asyncio.sleep, repr=False)

    @classmethod
    def from_settings(cls, sleep: Optional[SleepFn] = None) -> "RetryPolicy":
        return cls(
            max_retries=settings.extraction.max_retries,
            initial_delay=settings.extraction.initial_delay,
            max_delay=settings.extraction.max_delay,
            sleep=sleep or asyncio.sleep,
        )

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1

    def delay_for(self, retry_index: int) -> float:
        """Backoff before retry `retry_index` (0-based)."""
        return min(self.initial_delay * (2 ** retry_index), self.max_delay)

    async def execute(
        self,
        operation: Callable[[], Awaitable[Any]],
        label: str = "extraction",
    ) -> Any:
        """
        Run `operation` until it succeeds, fails deterministically or
        exhausts the retry budget.

        Raises:
            ExtractionServiceError: final classified error, with `attempts` set
            Exception: unclassified errors, re-raised untouched after one attempt
        """
        attempt = 0
        while True:
            attempt += 1
            try:
                return await operation()
            except Exception as exc:
                classified = classify_error(exc)
                if classified is None:
                    logger.warning(f"{label}: attempt {attempt} failed with unclassified error: {exc}")
                    raise

                classified.attempts = attempt

                if not classified.retryable:
                    logger.warning(f"{label}: attempt {attempt} failed, not retryable: {classified}")
                    if classified is exc:
                        raise
                    raise classified from exc

                if attempt >= self.max_attempts:
                    logger.warning(f"{label}: attempt {attempt}/{self.max_attempts} failed, giving up: {classified}")
                    if classified is exc:
                        raise
                    raise classified from exc

                delay = self.delay_for(attempt - 1)
                logger.warning(
                    f"{label}: attempt {attempt}/{self.max_attempts} failed: {classified}. "
                    f"Retrying in {delay:.1f}s"
                )
                await self.sleep(delay)
