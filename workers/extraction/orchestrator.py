"""
Extraction Orchestrator.

Drives the extraction service over admitted documents:
- Two concurrency lanes: text-only documents (10 in flight) and
  image-bearing documents (3 in flight, at most 5)
- Per-attempt timeout; a fired timer abandons the call and counts as a
  retryable failure
- Retry with exponential backoff via RetryPolicy
- Batches run strictly one after another with an adaptive pause between them
- Per-file failures never abort siblings; only a run where nothing
  succeeded raises AllFilesFailedError
"""

import asyncio
import logging
import math
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

from backend.core.config import get_settings
from workers.extraction.batch_splitter import Batch, calculate_adaptive_delay
from workers.extraction.errors import (
    AllFilesFailedError,
    ExtractionServiceError,
    ExtractionTimeoutError,
    NetworkError,
)
from workers.extraction.retry import RetryPolicy, SleepFn, classify_error
from workers.extraction.schemas import RawDocument
from workers.extraction.telemetry import (
    TelemetryStore,
    generate_batch_id,
    log_batch_metrics,
)

logger = logging.getLogger(__name__)
settings = get_settings()

MAX_VISION_CONCURRENCY = 5

Processor = Callable[[RawDocument], Awaitable[Any]]

# File status values reported in progress events
PENDING = "pending"
PROCESSING = "processing"
COMPLETED = "completed"
FAILED = "failed"


@dataclass
class ProcessingQueue:
    text_based: List[RawDocument] = field(default_factory=list)
    vision_based: List[RawDocument] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.text_based) + len(self.vision_based)


@dataclass
class ProgressEvent:
    completed: int
    total: int
    batch_label: str
    file_statuses: Dict[str, str]


ProgressCallback = Callable[[ProgressEvent], None]


@dataclass
class ProcessingResult:
    successes: List[Any] = field(default_factory=list)
    failures: List[Dict[str, Any]] = field(default_factory=list)
    processing_time: float = 0.0  # ms


def categorize_documents(docs: List[RawDocument]) -> ProcessingQueue:
    """Assign each document to a lane, once."""
    queue = ProcessingQueue()
    for doc in docs:
        if doc.has_images:
            queue.vision_based.append(doc)
        else:
            queue.text_based.append(doc)

    logger.info(
        f"Categorized {len(docs)} files: {len(queue.text_based)} text-based, "
        f"{len(queue.vision_based)} vision-based"
    )
    return queue


def estimate_processing_time(queue: ProcessingQueue) -> Tuple[int, int, str]:
    """Rough (min_s, max_s, breakdown) for a queue; both lanes run side by side."""
    text_count = len(queue.text_based)
    vision_count = len(queue.vision_based)

    text_time = math.ceil(text_count / 10) * 2.5 if text_count else 0
    vision_time = math.ceil(vision_count / 3) * 12 if vision_count else 0

    estimated_min = max(text_time * 0.8, vision_time * 0.6)
    estimated_max = max(text_time * 1.2, vision_time * 1.4)

    breakdown = (
        f"Text: {text_time:.0f}s ({text_count} files) | "
        f"Vision: {vision_time:.0f}s ({vision_count} files)"
    )
    return round(estimated_min), round(estimated_max), breakdown


async def run_with_timeout(awaitable: Awaitable[Any], timeout: float) -> Any:
    """
    Await `awaitable` for at most `timeout` seconds.

    On expiry the underlying task is cancelled but not awaited, and
    ExtractionTimeoutError is raised.
    """
    task = asyncio.ensure_future(awaitable)
    try:
        done, _ = await asyncio.wait({task}, timeout=timeout)
    except asyncio.CancelledError:
        task.cancel()
        raise

    if task not in done:
        task.cancel()
        raise ExtractionTimeoutError(f"Extraction timed out after {timeout:g}s")
    return task.result()


def describe_failure(exc: BaseException) -> Tuple[Optional[int], str]:
    """(status_code, error_type) used for batch telemetry."""
    classified = classify_error(exc)
    if isinstance(classified, ExtractionTimeoutError):
        return 504, "timeout"
    if isinstance(classified, NetworkError):
        return None, "network"
    if isinstance(classified, ExtractionServiceError):
        if classified.status_code == 429:
            return 429, "rate_limit"
        return classified.status_code, "service_error"
    return None, exc.__class__.__name__


class _ProgressTracker:
    """Per-file status bookkeeping behind the progress callback."""

    def __init__(self, docs: List[RawDocument], on_progress: Optional[ProgressCallback]):
        self.total = len(docs)
        self.completed = 0
        self.batch_label = ""
        self.file_statuses: Dict[str, str] = {doc.file_name: PENDING for doc in docs}
        self._on_progress = on_progress

    def mark(self, file_name: str, status: str) -> None:
        self.file_statuses[file_name] = status
        if status in (COMPLETED, FAILED):
            self.completed += 1
        self.emit()

    def emit(self) -> None:
        if self._on_progress is None:
            return
        self._on_progress(ProgressEvent(
            completed=self.completed,
            total=self.total,
            batch_label=self.batch_label,
            file_statuses=dict(self.file_statuses),
        ))


class ExtractionOrchestrator:
    """
    Runs a processor over documents with lanes, timeouts and retries.

    Usage:
        orchestrator = ExtractionOrchestrator()
        result = await orchestrator.process_batches(batches, client.extract)
    """

    def __init__(
        self,
        retry_policy: Optional[RetryPolicy] = None,
        call_timeout: Optional[float] = None,
        text_concurrency: Optional[int] = None,
        vision_concurrency: Optional[int] = None,
        sleep: Optional[SleepFn] = None,
        telemetry_store: Optional[TelemetryStore] = None,
    ):
        self.sleep = sleep or asyncio.sleep
        self.retry_policy = retry_policy or RetryPolicy.from_settings(sleep=self.sleep)
        self.call_timeout = call_timeout or settings.extraction.call_timeout
        self.text_concurrency = text_concurrency or settings.extraction.text_concurrency

        vision = vision_concurrency or settings.extraction.vision_concurrency
        if vision > MAX_VISION_CONCURRENCY:
            logger.warning(
                f"Vision concurrency {vision} capped at {MAX_VISION_CONCURRENCY}"
            )
            vision = MAX_VISION_CONCURRENCY
        self.vision_concurrency = vision
        self.telemetry_store = telemetry_store

    async def process_in_parallel(
        self,
        queue: ProcessingQueue,
        processor: Processor,
        on_progress: Optional[ProgressCallback] = None,
        batch_label: str = "",
    ) -> ProcessingResult:
        """Run both lanes of one queue concurrently."""
        tracker = _ProgressTracker(queue.text_based + queue.vision_based, on_progress)
        tracker.batch_label = batch_label
        return await self._run_queue(queue, processor, tracker)

    async def process_batches(
        self,
        batches: List[Batch],
        processor: Processor,
        on_progress: Optional[ProgressCallback] = None,
    ) -> ProcessingResult:
        """
        Process batches sequentially.

        Raises:
            AllFilesFailedError: when not a single file succeeded
        """
        start = time.monotonic()
        all_docs = [doc for batch in batches for doc in batch.files]
        tracker = _ProgressTracker(all_docs, on_progress)
        combined = ProcessingResult()

        for index, batch in enumerate(batches, 1):
            tracker.batch_label = f"Batch {index}/{len(batches)}"
            batch_id = generate_batch_id()
            logger.info(
                f"{tracker.batch_label} ({batch_id}): {batch.file_count} files [{batch.batch_type}]"
            )

            batch_start = time.monotonic()
            result = await self._run_queue(categorize_documents(batch.files), processor, tracker)
            duration_ms = (time.monotonic() - batch_start) * 1000

            status_code, error_type = None, None
            if result.failures:
                status_code = result.failures[0].get("status_code")
                error_type = result.failures[0].get("error_type")
            log_batch_metrics(
                batch_id,
                batch.files,
                duration_ms,
                success=not result.failures,
                status_code=status_code,
                error_type=error_type,
                store=self.telemetry_store,
            )

            combined.successes.extend(result.successes)
            combined.failures.extend(result.failures)

            if index < len(batches):
                delay_ms = calculate_adaptive_delay(duration_ms)
                if delay_ms > 0:
                    logger.info(f"Waiting {delay_ms}ms before next batch")
                    await self.sleep(delay_ms / 1000)

        combined.processing_time = (time.monotonic() - start) * 1000

        total = len(all_docs)
        logger.info(
            f"Processed {len(combined.successes)} of {total} files, "
            f"{len(combined.failures)} failed in {combined.processing_time / 1000:.1f}s"
        )

        if total and not combined.successes:
            raise AllFilesFailedError(combined.failures)

        return combined

    async def _run_queue(
        self,
        queue: ProcessingQueue,
        processor: Processor,
        tracker: _ProgressTracker,
    ) -> ProcessingResult:
        start = time.monotonic()
        result = ProcessingResult()

        text_semaphore = asyncio.Semaphore(self.text_concurrency)
        vision_semaphore = asyncio.Semaphore(self.vision_concurrency)

        tasks = [
            self._process_one(doc, "text", text_semaphore, processor, tracker, result)
            for doc in queue.text_based
        ] + [
            self._process_one(doc, "vision", vision_semaphore, processor, tracker, result)
            for doc in queue.vision_based
        ]
        await asyncio.gather(*tasks)

        result.processing_time = (time.monotonic() - start) * 1000
        return result

    async def _process_one(
        self,
        doc: RawDocument,
        lane: str,
        semaphore: asyncio.Semaphore,
        processor: Processor,
        tracker: _ProgressTracker,
        result: ProcessingResult,
    ) -> None:
        async with semaphore:
            tracker.mark(doc.file_name, PROCESSING)
            logger.info(f"[{lane}] Processing: {doc.file_name}")
            try:
                response = await self.retry_policy.execute(
                    lambda: run_with_timeout(processor(doc), self.call_timeout),
                    label=f"[{lane}] {doc.file_name}",
                )
            except Exception as exc:
                status_code, error_type = describe_failure(exc)
                logger.error(f"[{lane}] Failed: {doc.file_name}: {exc}")
                result.failures.append({
                    "file_name": doc.file_name,
                    "error": str(exc),
                    "status_code": status_code,
                    "error_type": error_type,
                })
                tracker.mark(doc.file_name, FAILED)
                return

            result.successes.append(response)
            logger.info(f"[{lane}] Completed: {doc.file_name}")
            tracker.mark(doc.file_name, COMPLETED)
