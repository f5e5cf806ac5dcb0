"""
Unit tests for the document filter.

Blank, page-marker and non-lab documents must be skipped before any
extraction call; anything with page images always goes through.
"""

import pytest

from workers.extraction.document_filter import (
    count_lab_indicators,
    filter_documents,
    should_process_document,
)
from workers.extraction.schemas import RawDocument

pytestmark = pytest.mark.unit


class TestShouldProcessDocument:
    """Tests for the per-document decision."""

    def test_image_documents_always_accepted(self, image_document):
        result = should_process_document(image_document)

        assert result.should_process is True
        assert result.confidence == 1.0

    def test_scanned_pdf_with_no_text_accepted(self):
        doc = RawDocument(file_name="scan.pdf", page_images=["QUJD"], is_image=False)

        assert should_process_document(doc).should_process is True

    def test_empty_document_rejected(self, empty_document):
        """A 3-character whitespace-only PDF is skipped as empty."""
        result = should_process_document(empty_document)

        assert result.should_process is False
        assert result.reason.startswith("Empty document")
        assert result.confidence == 1.0

    def test_whitespace_only_document_rejected(self):
        doc = RawDocument(file_name="spaces.pdf", extracted_text=" " * 80)

        result = should_process_document(doc)

        assert result.should_process is False
        assert result.reason == "Document contains only whitespace or page numbers"

    def test_page_marker_only_document_rejected(self):
        doc = RawDocument(file_name="p3.pdf", extracted_text="Page 3" + " " * 60)

        result = should_process_document(doc)

        assert result.should_process is False
        assert result.confidence == 0.95

    def test_non_lab_text_rejected(self):
        doc = RawDocument(
            file_name="plan.pdf",
            extracted_text="Dear team, please see my weekly workout plan below. Thanks so much!",
        )

        result = should_process_document(doc)

        assert result.should_process is False
        assert result.reason.startswith("Insufficient lab indicators")
        assert "0 numbers, 0 keywords" in result.reason

    def test_low_lab_probability_rejected(self):
        doc = RawDocument(
            file_name="note.pdf",
            extracted_text="The glucose meter arrived today, order 12 of 34, no further details were included.",
        )

        result = should_process_document(doc)

        assert result.should_process is False
        assert result.reason.startswith("Low lab probability")
        assert result.confidence == 0.8

    def test_lab_report_accepted(self, text_document):
        result = should_process_document(text_document)

        assert result.should_process is True
        assert result.reason.startswith("Lab indicators present")
        assert 0.9 < result.confidence < 1.0

    def test_multilingual_keywords_counted(self):
        _, keywords = count_lab_indicators("resultado de laboratorio: glucosa 92 mg/dl")

        assert keywords >= 4


class TestFilterDocuments:
    """Tests for splitting a batch into processable and skipped."""

    def test_split_keeps_every_document(self, text_document, empty_document, image_document):
        result = filter_documents([text_document, empty_document, image_document])

        assert [d.file_name for d in result.processable] == ["report.pdf", "scan.png"]
        assert len(result.skipped) == 1
        skipped_doc, reason = result.skipped[0]
        assert skipped_doc.file_name == "blank.pdf"
        assert "Empty document" in reason

    def test_empty_input(self):
        result = filter_documents([])

        assert result.processable == []
        assert result.skipped == []
