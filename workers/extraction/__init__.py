"""
Lab Report Extraction Workers Package.

Pipeline:
- document_filter: Drops blank and non-lab documents
- telemetry: Payload estimation and batch metrics
- batch_splitter: Adaptive request batching under payload/token ceilings
- orchestrator: Concurrent extraction with timeout and retry
- gemini_client: Gemini extraction calls
- biomarker_normalizer: Canonical names, units and conversions
- range_matcher: Optimal-range comparison per benchmark
- pipeline: End-to-end facade
"""

from workers.extraction.batch_splitter import (
    Batch,
    BatchConfig,
    create_adaptive_batches,
    validate_batch,
)
from workers.extraction.biomarker_normalizer import BiomarkerNormalizer, get_biomarker_normalizer
from workers.extraction.document_filter import filter_documents, should_process_document
from workers.extraction.errors import (
    AllFilesFailedError,
    ExtractionServiceError,
    ExtractionTimeoutError,
    LabExtractionError,
    NetworkError,
    NoProcessableDocumentsError,
)
from workers.extraction.orchestrator import ExtractionOrchestrator, ProcessingResult
from workers.extraction.pipeline import LabAnalysisPipeline, PipelineResult
from workers.extraction.range_matcher import (
    find_unmatched_biomarkers,
    generate_summary,
    is_value_in_range,
    match_biomarkers_with_ranges,
)
from workers.extraction.retry import RetryPolicy
from workers.extraction.schemas import (
    AnalysisResult,
    AnalysisSummary,
    ExtractedBiomarker,
    ExtractionResponse,
    RawDocument,
)
from workers.extraction.taxonomy import get_biomarker_display_name, load_benchmarks
from workers.extraction.telemetry import TelemetryStore, estimate_payload, get_telemetry_store

__all__ = [
    # Types
    'RawDocument',
    'ExtractedBiomarker',
    'ExtractionResponse',
    'AnalysisResult',
    'AnalysisSummary',

    # Admission and batching
    'filter_documents',
    'should_process_document',
    'estimate_payload',
    'Batch',
    'BatchConfig',
    'create_adaptive_batches',
    'validate_batch',

    # Extraction
    'ExtractionOrchestrator',
    'ProcessingResult',
    'RetryPolicy',

    # Normalization and matching
    'BiomarkerNormalizer',
    'get_biomarker_normalizer',
    'match_biomarkers_with_ranges',
    'find_unmatched_biomarkers',
    'is_value_in_range',
    'generate_summary',
    'load_benchmarks',
    'get_biomarker_display_name',

    # Telemetry
    'TelemetryStore',
    'get_telemetry_store',

    # Pipeline
    'LabAnalysisPipeline',
    'PipelineResult',

    # Errors
    'LabExtractionError',
    'ExtractionServiceError',
    'ExtractionTimeoutError',
    'NetworkError',
    'NoProcessableDocumentsError',
    'AllFilesFailedError',
]
