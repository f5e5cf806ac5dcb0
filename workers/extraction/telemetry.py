"""
Payload Estimation and Batch Telemetry.

Estimates how big a document (or a set of documents) will be once it is
sent to the extraction service, and keeps a bounded in-memory history of
batch outcomes for the adaptive delay and for operator diagnostics.
"""

import logging
import math
import random
import string
import time
from collections import deque
from dataclasses import asdict, dataclass, field
from threading import Lock
from typing import Any, Dict, List, Optional, Tuple

from backend.core.config import get_settings
from workers.extraction.schemas import RawDocument

logger = logging.getLogger(__name__)
settings = get_settings()

MB = 1024 * 1024

MAX_PAYLOAD_BYTES = int(settings.limits.max_payload_mb * MB)
MAX_SINGLE_FILE_BYTES = int(settings.limits.max_single_file_mb * MB)
MAX_ESTIMATED_TOKENS = settings.limits.max_estimated_tokens

# Token estimation constants
CHARS_PER_TOKEN = 4
IMAGE_BASE_TOKENS = 1500
IMAGE_TOKEN_PER_KB = 10

# Per-file JSON metadata added to the request body
JSON_OVERHEAD_PER_FILE = 500


@dataclass
class FileMetrics:
    file_name: str
    text_bytes: int
    image_bytes: int
    total_bytes: int
    estimated_tokens: int


@dataclass
class PayloadEstimate:
    total_bytes: int
    estimated_tokens: int
    has_images: bool
    largest_file_bytes: int
    largest_file_name: str
    exceeds_limit: bool
    limit_type: str = "none"  # payload | tokens | none


@dataclass
class BatchMetrics:
    batch_id: str
    timestamp: float
    file_count: int
    total_payload_bytes: int
    estimated_tokens: int
    duration_ms: float
    success: bool
    status_code: Optional[int] = None
    error_type: Optional[str] = None
    per_file_metrics: List[FileMetrics] = field(default_factory=list)


def base64_decoded_size(payload: str) -> int:
    return math.ceil(len(payload) * 3 / 4)


def calculate_file_metrics(doc: RawDocument) -> FileMetrics:
    """Byte and token footprint of a single document."""
    text = doc.extracted_text or ""
    text_bytes = len(text.encode("utf-8"))
    image_bytes = sum(base64_decoded_size(page) for page in doc.page_images)

    estimated_tokens = math.ceil(len(text) / CHARS_PER_TOKEN)
    if image_bytes > 0:
        image_kb = image_bytes / 1024
        estimated_tokens += math.ceil(IMAGE_BASE_TOKENS + image_kb * IMAGE_TOKEN_PER_KB)

    return FileMetrics(
        file_name=doc.file_name,
        text_bytes=text_bytes,
        image_bytes=image_bytes,
        total_bytes=text_bytes + image_bytes,
        estimated_tokens=estimated_tokens,
    )


def estimate_payload(docs: List[RawDocument]) -> PayloadEstimate:
    """Aggregate footprint of a request carrying all `docs`."""
    total_bytes = 0
    estimated_tokens = 0
    has_images = False
    largest_file_bytes = 0
    largest_file_name = ""

    for doc in docs:
        metrics = calculate_file_metrics(doc)
        total_bytes += metrics.total_bytes
        estimated_tokens += metrics.estimated_tokens

        if metrics.image_bytes > 0:
            has_images = True

        if metrics.total_bytes > largest_file_bytes:
            largest_file_bytes = metrics.total_bytes
            largest_file_name = doc.file_name

    total_bytes += len(docs) * JSON_OVERHEAD_PER_FILE

    limit_type = "none"
    if total_bytes > MAX_PAYLOAD_BYTES:
        limit_type = "payload"
    elif estimated_tokens > MAX_ESTIMATED_TOKENS:
        limit_type = "tokens"

    return PayloadEstimate(
        total_bytes=total_bytes,
        estimated_tokens=estimated_tokens,
        has_images=has_images,
        largest_file_bytes=largest_file_bytes,
        largest_file_name=largest_file_name,
        exceeds_limit=limit_type != "none",
        limit_type=limit_type,
    )


def is_file_too_large(doc: RawDocument) -> Tuple[bool, Optional[str]]:
    """Check one document against the single-file ceilings."""
    metrics = calculate_file_metrics(doc)

    if metrics.total_bytes > MAX_SINGLE_FILE_BYTES:
        return True, (
            f"File size {metrics.total_bytes / MB:.1f} MB exceeds "
            f"{MAX_SINGLE_FILE_BYTES // MB} MB limit"
        )

    if metrics.estimated_tokens > MAX_ESTIMATED_TOKENS:
        return True, (
            f"Estimated {metrics.estimated_tokens} tokens exceeds "
            f"{MAX_ESTIMATED_TOKENS} token limit"
        )

    return False, None


class TelemetryStore:
    """
    Thread-safe ring buffer of recent BatchMetrics.

    Usage:
        store = get_telemetry_store()
        store.add(metrics)
        store.get_success_rate()
    """

    def __init__(self, max_entries: int = 100):
        self.max_entries = max_entries
        self._metrics: deque = deque(maxlen=max_entries)
        self._lock = Lock()

    def add(self, metric: BatchMetrics) -> None:
        with self._lock:
            self._metrics.append(metric)

    def get_recent(self, count: int = 20) -> List[BatchMetrics]:
        with self._lock:
            if count <= 0:
                return []
            return list(self._metrics)[-count:]

    def get_all(self) -> List[BatchMetrics]:
        with self._lock:
            return list(self._metrics)

    def clear(self) -> None:
        with self._lock:
            self._metrics.clear()

    def get_average_duration(self) -> int:
        metrics = self.get_all()
        if not metrics:
            return 0
        return round(sum(m.duration_ms for m in metrics) / len(metrics))

    def get_success_rate(self) -> int:
        """Percentage of successful batches (0-100)."""
        metrics = self.get_all()
        if not metrics:
            return 0
        successful = sum(1 for m in metrics if m.success)
        return round(successful / len(metrics) * 100)

    def get_average_payload_size(self) -> int:
        metrics = self.get_all()
        if not metrics:
            return 0
        return round(sum(m.total_payload_bytes for m in metrics) / len(metrics))

    def get_timeout_count(self) -> int:
        return sum(
            1 for m in self.get_all()
            if not m.success and (m.error_type == "timeout" or m.status_code == 504)
        )

    def get_rate_limit_count(self) -> int:
        return sum(1 for m in self.get_all() if m.status_code == 429)

    def get_stats(self) -> Dict[str, Any]:
        """Snapshot used by the telemetry endpoint."""
        return {
            "total_batches": len(self.get_all()),
            "max_entries": self.max_entries,
            "average_duration_ms": self.get_average_duration(),
            "success_rate": self.get_success_rate(),
            "average_payload_bytes": self.get_average_payload_size(),
            "timeout_count": self.get_timeout_count(),
            "rate_limit_count": self.get_rate_limit_count(),
        }


def generate_batch_id() -> str:
    suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=9))
    return f"batch_{int(time.time() * 1000)}_{suffix}"


def log_batch_metrics(
    batch_id: str,
    docs: List[RawDocument],
    duration_ms: float,
    success: bool,
    status_code: Optional[int] = None,
    error_type: Optional[str] = None,
    store: Optional["TelemetryStore"] = None,
) -> BatchMetrics:
    """Record metrics for a finished batch and log a one-line summary."""
    per_file = [calculate_file_metrics(doc) for doc in docs]
    metrics = BatchMetrics(
        batch_id=batch_id,
        timestamp=time.time(),
        file_count=len(docs),
        total_payload_bytes=sum(m.total_bytes for m in per_file),
        estimated_tokens=sum(m.estimated_tokens for m in per_file),
        duration_ms=duration_ms,
        success=success,
        status_code=status_code,
        error_type=error_type,
        per_file_metrics=per_file,
    )

    (store or get_telemetry_store()).add(metrics)

    status = "success" if success else f"failed ({error_type or status_code or 'unknown'})"
    logger.info(
        f"Batch {batch_id}: {metrics.file_count} files, "
        f"{metrics.total_payload_bytes / MB:.2f} MB, "
        f"~{metrics.estimated_tokens:,} tokens, "
        f"{duration_ms / 1000:.1f}s, {status}"
    )
    return metrics


def metrics_to_dict(metrics: BatchMetrics) -> Dict[str, Any]:
    return asdict(metrics)


# Global telemetry store
_telemetry_store: Optional[TelemetryStore] = None


def get_telemetry_store() -> TelemetryStore:
    """Get or create global telemetry store."""
    global _telemetry_store
    if _telemetry_store is None:
        _telemetry_store = TelemetryStore(max_entries=settings.telemetry.max_entries)
    return _telemetry_store
