"""
Adaptive Batch Splitter.

Packs documents into batches that respect file-count, payload and token
limits. Files are scored (text bytes + 0.75 x image bytes), sorted
heaviest-first and accumulated greedily. A file is never split; single
files that breach a ceiling are rejected by `is_file_too_large` before
they get here.
"""

import logging
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional

from backend.core.config import get_settings
from workers.extraction.schemas import RawDocument
from workers.extraction.telemetry import MB, FileMetrics, calculate_file_metrics

logger = logging.getLogger(__name__)
settings = get_settings()

IMAGE_WEIGHT = 0.75

# Hard limits used by validate_batch
MAX_SAFE_PAYLOAD_BYTES = 15 * MB
MAX_SAFE_TOKENS = 100000
WARN_PAYLOAD_BYTES = 12 * MB
WARN_TOKENS = 75000

# Adaptive delay bounds (ms)
MIN_DELAY_MS = 500
MAX_DELAY_MS = 5000
LONG_REQUEST_THRESHOLD_MS = 90000


@dataclass
class BatchConfig:
    max_files: int
    max_payload_mb: float
    max_estimated_tokens: int

    @property
    def max_payload_bytes(self) -> int:
        return int(self.max_payload_mb * MB)


DEFAULT_CONFIG = BatchConfig(
    max_files=settings.batching.max_files,
    max_payload_mb=settings.batching.max_payload_mb,
    max_estimated_tokens=settings.batching.max_estimated_tokens,
)

# Vision calls tolerate higher fan-out
IMAGE_HEAVY_CONFIG = BatchConfig(
    max_files=settings.batching.image_heavy_max_files,
    max_payload_mb=settings.batching.image_heavy_max_payload_mb,
    max_estimated_tokens=settings.batching.image_heavy_max_estimated_tokens,
)


@dataclass
class ScoredFile:
    doc: RawDocument
    metrics: FileMetrics
    score: float


@dataclass
class Batch:
    files: List[RawDocument]
    total_bytes: int
    estimated_tokens: int
    file_count: int
    batch_type: str  # text-heavy | image-heavy | mixed


@dataclass
class BatchValidation:
    valid: bool
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)


def calculate_file_score(metrics: FileMetrics) -> float:
    return metrics.text_bytes + metrics.image_bytes * IMAGE_WEIGHT


def score_files(docs: List[RawDocument]) -> List[ScoredFile]:
    """Score documents and sort heaviest first (stable for ties)."""
    scored = []
    for doc in docs:
        metrics = calculate_file_metrics(doc)
        scored.append(ScoredFile(doc=doc, metrics=metrics, score=calculate_file_score(metrics)))
    return sorted(scored, key=lambda sf: sf.score, reverse=True)


def determine_batch_type(files: List[ScoredFile]) -> str:
    total_text = sum(f.metrics.text_bytes for f in files)
    total_image = sum(f.metrics.image_bytes for f in files)
    total = total_text + total_image
    if total == 0:
        return "text-heavy"

    image_ratio = total_image / total
    if image_ratio > 0.7:
        return "image-heavy"
    if image_ratio < 0.3:
        return "text-heavy"
    return "mixed"


def resolve_config(
    docs: List[RawDocument],
    overrides: Optional[Dict[str, Any]] = None,
) -> BatchConfig:
    """Pick the base config by content mix, then apply overrides."""
    image_count = sum(1 for doc in docs if doc.has_images)
    base = IMAGE_HEAVY_CONFIG if image_count > len(docs) / 2 else DEFAULT_CONFIG
    if overrides:
        base = replace(base, **overrides)
    return base


def _finalize_batch(files: List[ScoredFile]) -> Batch:
    return Batch(
        files=[f.doc for f in files],
        total_bytes=sum(f.metrics.total_bytes for f in files),
        estimated_tokens=sum(f.metrics.estimated_tokens for f in files),
        file_count=len(files),
        batch_type=determine_batch_type(files),
    )


def create_adaptive_batches(
    docs: List[RawDocument],
    config: Optional[Dict[str, Any]] = None,
) -> List[Batch]:
    """
    Split documents into batches using greedy heaviest-first packing.

    Args:
        docs: Documents already admitted by the filter and size checks
        config: Optional overrides for max_files, max_payload_mb,
            max_estimated_tokens

    Returns:
        List of batches covering every input document exactly once
    """
    if not docs:
        return []

    final_config = resolve_config(docs, config)
    max_payload_bytes = final_config.max_payload_bytes

    batches: List[Batch] = []
    current: List[ScoredFile] = []
    current_bytes = 0
    current_tokens = 0

    for scored in score_files(docs):
        file_bytes = scored.metrics.total_bytes
        file_tokens = scored.metrics.estimated_tokens

        would_exceed = (
            len(current) >= final_config.max_files
            or current_bytes + file_bytes > max_payload_bytes
            or current_tokens + file_tokens > final_config.max_estimated_tokens
        )

        if current and would_exceed:
            batches.append(_finalize_batch(current))
            current = [scored]
            current_bytes = file_bytes
            current_tokens = file_tokens
        else:
            current.append(scored)
            current_bytes += file_bytes
            current_tokens += file_tokens

    if current:
        batches.append(_finalize_batch(current))

    logger.info(f"Created {len(batches)} adaptive batch(es) from {len(docs)} file(s)")
    for i, batch in enumerate(batches, 1):
        logger.info(
            f"  Batch {i}: {batch.file_count} files, {batch.total_bytes / MB:.2f} MB, "
            f"~{batch.estimated_tokens:,} tokens [{batch.batch_type}]"
        )

    return batches


def calculate_adaptive_delay(last_duration_ms: float) -> int:
    """Delay (ms) before the next batch, based on how long the last one took."""
    # Already close to the timeout budget
    if last_duration_ms > LONG_REQUEST_THRESHOLD_MS:
        return 0

    delay = round(last_duration_ms * 0.1)
    return max(MIN_DELAY_MS, min(delay, MAX_DELAY_MS))


def validate_batch(batch: Batch) -> BatchValidation:
    """Check a batch against the absolute service limits."""
    errors = []
    warnings = []

    if batch.total_bytes > MAX_SAFE_PAYLOAD_BYTES:
        errors.append(
            f"Batch payload {batch.total_bytes / MB:.2f} MB exceeds 15 MB limit"
        )
    if batch.estimated_tokens > MAX_SAFE_TOKENS:
        errors.append(
            f"Batch estimated tokens {batch.estimated_tokens:,} exceeds 100k limit"
        )
    if batch.file_count == 0:
        errors.append("Batch contains no files")

    if batch.total_bytes > WARN_PAYLOAD_BYTES:
        warnings.append("Batch payload near limit, may be slow")
    if batch.estimated_tokens > WARN_TOKENS:
        warnings.append("High token count, may take longer to process")

    return BatchValidation(valid=not errors, errors=errors, warnings=warnings)
