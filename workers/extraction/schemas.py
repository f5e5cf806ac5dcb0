"""
Data types shared across the extraction pipeline.

Documents come in, extraction responses come back from the service,
and analysis results go out. Everything here is a plain dataclass so it
can be logged, compared in tests and turned into JSON with `asdict`.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

ValueStatus = str  # "in-range" | "out-of-range" | "unknown"

NOT_AVAILABLE = "N/A"


@dataclass(frozen=True)
class RawDocument:
    """One uploaded file after text extraction / page rasterisation."""
    file_name: str
    extracted_text: str = ""
    page_images: List[str] = field(default_factory=list)  # base64 payloads
    is_image: bool = False
    mime_type: str = "application/pdf"
    page_count: int = 1

    @property
    def has_images(self) -> bool:
        return bool(self.page_images) or self.is_image


@dataclass
class NormalizationInfo:
    """What the normalizer did to a biomarker on its way in."""
    original_name: str
    original_value: str
    original_unit: str
    confidence: float
    conversion_applied: bool


@dataclass
class ExtractedBiomarker:
    name: str
    value: str
    unit: str = ""
    test_date: Optional[str] = None
    normalization: Optional[NormalizationInfo] = None


@dataclass
class PatientInfo:
    name: Optional[str] = None
    date_of_birth: Optional[str] = None
    gender: Optional[str] = None  # "male" | "female" | "other"
    test_date: Optional[str] = None


@dataclass
class ExtractionResponse:
    """Parsed result of one extraction call."""
    file_name: str
    biomarkers: List[ExtractedBiomarker]
    patient_info: PatientInfo = field(default_factory=PatientInfo)
    panel_name: str = ""
    raw: Optional[Dict[str, Any]] = None


@dataclass
class NormalizedBiomarker:
    canonical_name: str
    value: str
    unit: str
    original_name: str
    original_value: str
    original_unit: str
    confidence: float
    conversion_applied: bool
    is_numeric: bool

    def to_extracted(self, test_date: Optional[str] = None) -> ExtractedBiomarker:
        return ExtractedBiomarker(
            name=self.canonical_name,
            value=self.value,
            unit=self.unit,
            test_date=test_date,
            normalization=NormalizationInfo(
                original_name=self.original_name,
                original_value=self.original_value,
                original_unit=self.original_unit,
                confidence=self.confidence,
                conversion_applied=self.conversion_applied,
            ),
        )


@dataclass
class AnalysisResult:
    """One row per benchmark entry."""
    biomarker_name: str
    his_value: str
    unit: str
    optimal_range: str
    status: ValueStatus = "unknown"
    test_date: Optional[str] = None
    normalization: Optional[NormalizationInfo] = None

    @property
    def measured(self) -> bool:
        return self.his_value != NOT_AVAILABLE


@dataclass
class AnalysisSummary:
    total_biomarkers: int = 0
    measured_biomarkers: int = 0
    missing_biomarkers: int = 0
    in_range_count: int = 0
    out_of_range_count: int = 0
    unknown_count: int = 0


@dataclass
class UnmatchedBiomarker:
    """Extracted biomarker that no benchmark entry claimed."""
    name: str
    value: str
    unit: str
    suggestion: Optional[str] = None
    score: float = 0.0
