"""
Shared pytest fixtures for Lab Extraction System tests.

Provides mocked dependencies to avoid actual API calls and external services.
"""

import base64
import json
import os
import sys
from pathlib import Path
from typing import Any, Dict, List
from unittest.mock import AsyncMock, Mock, patch

import pytest

# Settings are cached on first import, so the environment is set before any
# project module loads
os.environ.setdefault("GEMINI_API_KEY", "test-api-key")
os.environ["TESTING"] = "true"

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from workers.extraction.schemas import RawDocument  # noqa: E402
from workers.extraction.telemetry import MB, TelemetryStore  # noqa: E402


LAB_REPORT_TEXT = """
LABORATORY REPORT
Patient: Jane Doe            Collection Date: 2024-03-12
Test                 Result    Units     Reference Range
Glucose              95        mg/dL     70-99
Total Cholesterol    182       mg/dL     < 200
HDL Cholesterol      58        mg/dL     > 40
Creatinine           0.9       mg/dL     0.6-1.1
TSH                  1.8       mIU/L     0.4-4.0
"""


# =============================================================================
# Document Fixtures
# =============================================================================

def make_text_document(file_name: str = "report.pdf", text: str = LAB_REPORT_TEXT) -> RawDocument:
    return RawDocument(file_name=file_name, extracted_text=text, mime_type="application/pdf")


def make_image_document(file_name: str = "scan.png", decoded_bytes: int = 1024) -> RawDocument:
    """Image document whose base64 payload decodes to roughly `decoded_bytes`."""
    payload = "A" * (decoded_bytes * 4 // 3)
    return RawDocument(
        file_name=file_name,
        page_images=[payload],
        is_image=True,
        mime_type="image/png",
    )


@pytest.fixture
def lab_report_text() -> str:
    return LAB_REPORT_TEXT


@pytest.fixture
def make_text_doc():
    return make_text_document


@pytest.fixture
def make_image_doc():
    return make_image_document


@pytest.fixture
def text_document() -> RawDocument:
    return make_text_document()


@pytest.fixture
def image_document() -> RawDocument:
    return make_image_document()


@pytest.fixture
def real_png_document() -> RawDocument:
    """A tiny but valid base64 payload, for code that decodes it."""
    encoded = base64.b64encode(b"\x89PNG\r\n\x1a\n" + b"\x00" * 64).decode("ascii")
    return RawDocument(file_name="page.png", page_images=[encoded], is_image=True, mime_type="image/png")


@pytest.fixture
def empty_document() -> RawDocument:
    return RawDocument(file_name="blank.pdf", extracted_text="   ")


@pytest.fixture
def mixed_documents() -> List[RawDocument]:
    return [
        make_text_document("a.pdf"),
        make_image_document("b.png"),
        make_text_document("c.pdf"),
        make_image_document("d.jpg"),
    ]


@pytest.fixture
def large_scan() -> RawDocument:
    return make_image_document("big_scan.png", decoded_bytes=9 * MB)


# =============================================================================
# Mock Gemini API
# =============================================================================

@pytest.fixture
def sample_gemini_extraction_response() -> Dict[str, Any]:
    """Sample Gemini API extraction response."""
    return {
        "patientInfo": {
            "name": "JANE DOE",
            "dateOfBirth": "1985-06-02",
            "gender": "Female",
            "testDate": "2024-03-12",
        },
        "biomarkers": [
            {"name": "Glucosa", "value": "95", "unit": "mg/dL"},
            {"name": "Total Cholesterol", "value": "182", "unit": "mg/dL"},
            {"name": "HDL", "value": "58", "unit": "mg/dL"},
            {"name": "Creatinine", "value": "0.9", "unit": "mg/dL"},
            {"name": "TSH", "value": "1.8", "unit": "mIU/L"},
            {"name": "Vitamin K2", "value": "0.4", "unit": "ng/mL"},
        ],
    }


@pytest.fixture
def mock_gemini_model(sample_gemini_extraction_response: Dict[str, Any]):
    """Mock Gemini generative model with an async generate call."""
    mock_model = Mock()
    mock_response = Mock()
    mock_response.text = json.dumps(sample_gemini_extraction_response)
    mock_model.generate_content_async = AsyncMock(return_value=mock_response)
    return mock_model


@pytest.fixture
def mock_gemini_configure(mock_gemini_model):
    """Patch genai.configure and GenerativeModel."""
    with patch('google.generativeai.configure') as mock_configure, \
         patch('google.generativeai.GenerativeModel', return_value=mock_gemini_model):
        yield mock_configure


@pytest.fixture
def gemini_client(mock_gemini_configure):
    """GeminiExtractionClient backed by the mocked model."""
    from workers.extraction.gemini_client import GeminiExtractionClient
    return GeminiExtractionClient(api_key="test-api-key")


# =============================================================================
# Orchestration Fixtures
# =============================================================================

@pytest.fixture
def no_sleep():
    """Sleep replacement that records requested delays without waiting."""
    delays: List[float] = []

    async def sleep(seconds: float) -> None:
        delays.append(seconds)

    sleep.delays = delays
    return sleep


@pytest.fixture
def telemetry_store() -> TelemetryStore:
    return TelemetryStore(max_entries=100)


@pytest.fixture
def orchestrator(no_sleep, telemetry_store):
    from workers.extraction.orchestrator import ExtractionOrchestrator
    from workers.extraction.retry import RetryPolicy

    return ExtractionOrchestrator(
        retry_policy=RetryPolicy(max_retries=3, initial_delay=2.0, max_delay=15.0, sleep=no_sleep),
        call_timeout=5,
        sleep=no_sleep,
        telemetry_store=telemetry_store,
    )


# =============================================================================
# Taxonomy Fixtures
# =============================================================================

@pytest.fixture(scope="session")
def benchmarks():
    from workers.extraction.taxonomy import load_benchmarks
    return load_benchmarks()


@pytest.fixture(scope="session")
def normalizer(benchmarks):
    from workers.extraction.biomarker_normalizer import BiomarkerNormalizer
    return BiomarkerNormalizer(benchmarks)
