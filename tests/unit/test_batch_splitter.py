"""
Unit tests for the adaptive batch splitter.

Every admitted document must land in exactly one batch and no batch may
exceed the file-count or payload ceilings of its config.
"""

import pytest

from workers.extraction.batch_splitter import (
    DEFAULT_CONFIG,
    IMAGE_HEAVY_CONFIG,
    Batch,
    calculate_adaptive_delay,
    create_adaptive_batches,
    determine_batch_type,
    resolve_config,
    score_files,
    validate_batch,
)
from workers.extraction.telemetry import MB

pytestmark = pytest.mark.unit


def _file_names(batches):
    return [doc.file_name for batch in batches for doc in batch.files]


class TestCreateAdaptiveBatches:
    """Tests for greedy heaviest-first packing."""

    def test_empty_input(self):
        assert create_adaptive_batches([]) == []

    def test_single_small_batch(self, mixed_documents):
        batches = create_adaptive_batches(mixed_documents)

        assert len(batches) == 1
        assert batches[0].file_count == 4

    def test_file_count_limit(self, make_text_doc):
        docs = [make_text_doc(f"r{i}.pdf") for i in range(25)]

        batches = create_adaptive_batches(docs)

        assert [b.file_count for b in batches] == [10, 10, 5]

    def test_every_file_exactly_once(self, make_text_doc, make_image_doc):
        docs = [make_text_doc(f"t{i}.pdf", "glucose 95 " * (i + 1) * 500) for i in range(12)]
        docs += [make_image_doc(f"i{i}.png", decoded_bytes=(i + 1) * 300 * 1024) for i in range(7)]

        batches = create_adaptive_batches(docs)

        names = _file_names(batches)
        assert sorted(names) == sorted(d.file_name for d in docs)
        assert len(names) == len(set(names))

    def test_payload_split_with_large_scan(self, make_text_doc, large_scan):
        """Nine ~1 MB text files and a 9 MB scan never share an over-12 MB batch."""
        docs = [make_text_doc(f"text{i}.pdf", "x" * 1_000_000) for i in range(9)] + [large_scan]

        batches = create_adaptive_batches(docs, {"max_estimated_tokens": 10 ** 9})

        assert len(batches) >= 2
        assert sum(b.file_count for b in batches) == 10
        for batch in batches:
            assert batch.total_bytes <= 12 * MB

    def test_heaviest_file_first(self, make_text_doc, large_scan):
        docs = [make_text_doc("small.pdf"), large_scan, make_text_doc("medium.pdf", "x" * 50_000)]

        batches = create_adaptive_batches(docs)

        assert batches[0].files[0].file_name == "big_scan.png"

    def test_oversized_single_file_still_gets_a_batch(self, make_image_doc):
        """Files are never split or dropped; admission rejects them earlier."""
        doc = make_image_doc("huge.png", decoded_bytes=20 * MB)

        batches = create_adaptive_batches([doc])

        assert len(batches) == 1
        assert batches[0].files == [doc]

    def test_token_limit_override(self, make_text_doc):
        docs = [make_text_doc(f"r{i}.pdf", "x" * 4000) for i in range(4)]

        batches = create_adaptive_batches(docs, {"max_estimated_tokens": 2000})

        assert [b.file_count for b in batches] == [2, 2]
        assert all(b.estimated_tokens <= 2000 for b in batches)


class TestConfigResolution:
    """Tests for picking the default or image-heavy config."""

    def test_text_majority_uses_default(self, make_text_doc, make_image_doc):
        docs = [make_text_doc("a.pdf"), make_text_doc("b.pdf"), make_image_doc("c.png")]

        assert resolve_config(docs) == DEFAULT_CONFIG

    def test_image_majority_uses_image_heavy(self, make_text_doc, make_image_doc):
        docs = [make_text_doc("a.pdf"), make_image_doc("b.png"), make_image_doc("c.png")]

        assert resolve_config(docs) == IMAGE_HEAVY_CONFIG

    def test_image_heavy_file_limit(self, make_image_doc):
        docs = [make_image_doc(f"p{i}.png", decoded_bytes=100) for i in range(60)]

        batches = create_adaptive_batches(docs)

        assert [b.file_count for b in batches] == [50, 10]

    def test_overrides_applied(self, make_text_doc):
        config = resolve_config([make_text_doc()], {"max_files": 3})

        assert config.max_files == 3
        assert config.max_payload_mb == DEFAULT_CONFIG.max_payload_mb
        # Shared defaults are never mutated
        assert DEFAULT_CONFIG.max_files == 10


class TestScoringAndTypes:
    """Tests for file scoring and batch classification."""

    def test_images_weighted_below_text(self, make_text_doc, make_image_doc):
        scored = score_files([make_image_doc("img.png", decoded_bytes=1000), make_text_doc("t.pdf", "x" * 800)])

        assert [s.doc.file_name for s in scored] == ["t.pdf", "img.png"]
        assert scored[1].score == pytest.approx(750)

    def test_stable_order_for_ties(self, make_text_doc):
        docs = [make_text_doc(f"r{i}.pdf") for i in range(5)]

        assert [s.doc.file_name for s in score_files(docs)] == [d.file_name for d in docs]

    def test_batch_types(self, make_text_doc, make_image_doc):
        assert determine_batch_type(score_files([make_text_doc()])) == "text-heavy"
        assert determine_batch_type(score_files([make_image_doc()])) == "image-heavy"
        mixed = score_files([make_text_doc("t.pdf", "x" * 1000), make_image_doc("i.png", decoded_bytes=1000)])
        assert determine_batch_type(mixed) == "mixed"


class TestAdaptiveDelay:
    """Tests for the pause between batches."""

    @pytest.mark.parametrize("duration_ms, expected", [
        (1000, 500),
        (20000, 2000),
        (60000, 5000),
        (95000, 0),
    ])
    def test_delay(self, duration_ms, expected):
        assert calculate_adaptive_delay(duration_ms) == expected


class TestValidateBatch:
    """Tests for absolute limit checks."""

    def test_valid_batch(self):
        batch = Batch(files=[], total_bytes=MB, estimated_tokens=1000, file_count=1, batch_type="text-heavy")

        result = validate_batch(batch)

        assert result.valid is True
        assert result.errors == []
        assert result.warnings == []

    def test_limits_exceeded(self):
        batch = Batch(files=[], total_bytes=16 * MB, estimated_tokens=120000, file_count=0, batch_type="mixed")

        result = validate_batch(batch)

        assert result.valid is False
        assert len(result.errors) == 3
        assert len(result.warnings) == 2

    def test_warnings_only(self):
        batch = Batch(files=[], total_bytes=13 * MB, estimated_tokens=80000, file_count=3, batch_type="mixed")

        result = validate_batch(batch)

        assert result.valid is True
        assert len(result.warnings) == 2
