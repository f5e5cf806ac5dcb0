"""
Lab analysis pipeline.

Flow:
    documents -> filter -> size admission -> adaptive batches
      -> orchestrated extraction -> normalization -> range matching

Usage:
    pipeline = LabAnalysisPipeline()
    result = await pipeline.analyze(documents, gender="female")
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from workers.extraction.batch_splitter import create_adaptive_batches
from workers.extraction.biomarker_normalizer import BiomarkerNormalizer, get_biomarker_normalizer
from workers.extraction.document_filter import filter_documents
from workers.extraction.errors import NoProcessableDocumentsError
from workers.extraction.orchestrator import ExtractionOrchestrator, ProgressCallback
from workers.extraction.patient_info import consolidate_patient_info, most_recent_date
from workers.extraction.range_matcher import (
    find_unmatched_biomarkers,
    generate_summary,
    match_biomarkers_with_ranges,
    normalize_name,
)
from workers.extraction.schemas import (
    AnalysisResult,
    AnalysisSummary,
    ExtractedBiomarker,
    ExtractionResponse,
    PatientInfo,
    RawDocument,
    UnmatchedBiomarker,
)
from workers.extraction.taxonomy import BenchmarkEntry, load_benchmarks
from workers.extraction.telemetry import is_file_too_large

logger = logging.getLogger(__name__)

SUPPORTED_GENDERS = ("male", "female")


@dataclass
class PipelineResult:
    results: List[AnalysisResult]
    summary: AnalysisSummary
    unmatched: List[UnmatchedBiomarker] = field(default_factory=list)
    skipped: List[Tuple[str, str]] = field(default_factory=list)
    failures: List[Dict[str, Any]] = field(default_factory=list)
    patient_info: PatientInfo = field(default_factory=PatientInfo)
    patient_discrepancies: List[str] = field(default_factory=list)
    patient_confidence: str = "high"
    gender: str = "male"
    panel_names: List[str] = field(default_factory=list)
    batches: int = 0
    processed_files: int = 0
    processing_time: float = 0.0  # ms


def admit_documents(docs: List[RawDocument]) -> Tuple[List[RawDocument], List[Tuple[str, str]]]:
    """Apply the content filter and single-file ceilings."""
    filtered = filter_documents(docs)
    skipped = [(doc.file_name, reason) for doc, reason in filtered.skipped]

    admitted = []
    for doc in filtered.processable:
        too_large, reason = is_file_too_large(doc)
        if too_large:
            logger.warning(f"Rejecting '{doc.file_name}': {reason}")
            skipped.append((doc.file_name, reason))
        else:
            admitted.append(doc)

    return admitted, skipped


def collect_biomarkers(responses: List[ExtractionResponse]) -> List[ExtractedBiomarker]:
    """Flatten responses, stamping each biomarker with its report's test date."""
    biomarkers = []
    for response in responses:
        test_date = response.patient_info.test_date
        for biomarker in response.biomarkers:
            biomarkers.append(ExtractedBiomarker(
                name=biomarker.name,
                value=biomarker.value,
                unit=biomarker.unit,
                test_date=biomarker.test_date or test_date,
            ))
    return biomarkers


def keep_most_recent(biomarkers: List[ExtractedBiomarker]) -> List[ExtractedBiomarker]:
    """One biomarker per name; the most recent test date wins, first seen on ties."""
    chosen: Dict[str, ExtractedBiomarker] = {}
    for biomarker in biomarkers:
        key = normalize_name(biomarker.name)
        current = chosen.get(key)
        if current is None:
            chosen[key] = biomarker
            continue
        if not biomarker.test_date or biomarker.test_date == current.test_date:
            continue
        if not current.test_date:
            chosen[key] = biomarker
        elif most_recent_date([current.test_date, biomarker.test_date]) == biomarker.test_date:
            chosen[key] = biomarker
    return list(chosen.values())


class LabAnalysisPipeline:
    """Runs documents through extraction and analysis."""

    def __init__(
        self,
        client: Optional[Any] = None,
        orchestrator: Optional[ExtractionOrchestrator] = None,
        normalizer: Optional[BiomarkerNormalizer] = None,
        benchmarks: Optional[List[BenchmarkEntry]] = None,
    ):
        self._client = client
        self.orchestrator = orchestrator or ExtractionOrchestrator()
        self.benchmarks = benchmarks if benchmarks is not None else load_benchmarks()
        if normalizer is None:
            normalizer = (
                get_biomarker_normalizer() if benchmarks is None
                else BiomarkerNormalizer(self.benchmarks)
            )
        self.normalizer = normalizer

    @property
    def client(self) -> Any:
        if self._client is None:
            from workers.extraction.gemini_client import GeminiExtractionClient
            self._client = GeminiExtractionClient()
        return self._client

    async def analyze(
        self,
        documents: List[RawDocument],
        gender: Optional[str] = None,
        on_progress: Optional[ProgressCallback] = None,
        batch_config: Optional[Dict[str, Any]] = None,
    ) -> PipelineResult:
        """
        Analyze a set of documents belonging to one patient.

        Raises:
            NoProcessableDocumentsError: every document was rejected at admission
            AllFilesFailedError: extraction failed for every admitted document
        """
        start = time.monotonic()
        logger.info(f"Analyzing {len(documents)} documents")

        admitted, skipped = admit_documents(documents)
        if not admitted:
            raise NoProcessableDocumentsError(skipped)

        batches = create_adaptive_batches(admitted, batch_config)
        processing = await self.orchestrator.process_batches(
            batches, self.client.extract, on_progress
        )
        responses: List[ExtractionResponse] = processing.successes

        consolidation = consolidate_patient_info([r.patient_info for r in responses])
        effective_gender = self._resolve_gender(gender, consolidation.consolidated.gender)

        extracted = keep_most_recent(collect_biomarkers(responses))
        normalized = [
            n.to_extracted(test_date=b.test_date)
            for b, n in zip(extracted, self.normalizer.normalize_batch(extracted))
        ]
        # Two source names can normalize onto the same canonical name
        normalized = keep_most_recent(normalized)

        results = match_biomarkers_with_ranges(normalized, effective_gender, self.benchmarks)
        summary = generate_summary(results)
        unmatched = find_unmatched_biomarkers(normalized, self.benchmarks)

        elapsed_ms = (time.monotonic() - start) * 1000
        logger.info(
            f"Analysis complete: {summary.measured_biomarkers}/{summary.total_biomarkers} measured, "
            f"{summary.out_of_range_count} out of range, {len(processing.failures)} failed files, "
            f"{len(skipped)} skipped in {elapsed_ms / 1000:.1f}s"
        )

        return PipelineResult(
            results=results,
            summary=summary,
            unmatched=unmatched,
            skipped=skipped,
            failures=processing.failures,
            patient_info=consolidation.consolidated,
            patient_discrepancies=consolidation.discrepancies,
            patient_confidence=consolidation.confidence,
            gender=effective_gender,
            panel_names=[r.panel_name for r in responses],
            batches=len(batches),
            processed_files=len(responses),
            processing_time=elapsed_ms,
        )

    @staticmethod
    def _resolve_gender(requested: Optional[str], consolidated: Optional[str]) -> str:
        for candidate in (requested, consolidated):
            if candidate in SUPPORTED_GENDERS:
                return candidate
        return "male"
