"""
Parsing of extraction service responses.

The model is asked for a bare JSON object but regularly wraps it in a
markdown code block or adds prose around it; both are tolerated here.
"""

import json
import logging
import re
from typing import Any, Dict, List, Optional

from workers.extraction.errors import ExtractionServiceError
from workers.extraction.schemas import ExtractedBiomarker, ExtractionResponse, PatientInfo

logger = logging.getLogger(__name__)

PARSE_ERROR_MESSAGE = (
    "Failed to parse biomarker data from API response. "
    "The response may not be in the expected format."
)

CODE_BLOCK_PATTERN = re.compile(r"```(?:json)?\s*(\{[\s\S]*\})\s*```")
BIOMARKER_OBJECT_PATTERN = re.compile(r'\{[\s\S]*"biomarkers"[\s\S]*\}')

VALID_GENDERS = {"male", "female", "other"}

# (panel label, substrings that identify it); order defines the label order
PANEL_CATEGORIES = [
    ("CBC", ("wbc", "rbc", "hemoglobin", "hematocrit")),
    ("Lipid Panel", ("cholesterol", "hdl", "ldl", "triglyceride")),
    ("Hormone Panel", ("testosterone", "estrogen", "cortisol", "dhea")),
    ("Metabolic Panel", ("glucose", "sodium", "potassium", "creatinine")),
    ("Thyroid Panel", ("tsh", "t3", "t4", "thyroid")),
    ("Iron Studies", ("iron", "ferritin", "tibc")),
    ("Vitamin Panel", ("vitamin", "b12", "folate")),
    ("Heavy Metals", ("lead", "mercury", "arsenic", "cadmium")),
]


def clean_json_response(text: str) -> str:
    """Pull the JSON object out of a markdown-wrapped or chatty response."""
    json_text = text.strip()

    match = CODE_BLOCK_PATTERN.search(json_text)
    if match:
        json_text = match.group(1)

    match = BIOMARKER_OBJECT_PATTERN.search(json_text)
    if match:
        json_text = match.group(0)

    return json_text


def _as_text(value: Any) -> str:
    if value is None or value == "":
        return ""
    return str(value).strip()


def _optional_text(value: Any) -> Optional[str]:
    text = _as_text(value)
    return text or None


def parse_patient_info(data: Optional[Dict[str, Any]]) -> PatientInfo:
    data = data if isinstance(data, dict) else {}
    gender = _optional_text(data.get("gender"))
    if gender is not None:
        gender = gender.lower()
        if gender not in VALID_GENDERS:
            gender = None

    return PatientInfo(
        name=_optional_text(data.get("name")),
        date_of_birth=_optional_text(data.get("dateOfBirth")),
        gender=gender,
        test_date=_optional_text(data.get("testDate")),
    )


def generate_panel_name(biomarkers: List[ExtractedBiomarker]) -> str:
    """Short label describing which panels a set of biomarkers covers."""
    names = [b.name.lower() for b in biomarkers]
    categories = [
        label for label, needles in PANEL_CATEGORIES
        if any(needle in name for name in names for needle in needles)
    ]

    if not categories:
        return f"Lab Panel ({len(biomarkers)} biomarkers)"
    return " + ".join(categories)


def parse_extraction_response(text: str, file_name: str) -> ExtractionResponse:
    """
    Parse raw model output into an ExtractionResponse.

    Raises:
        ExtractionServiceError: 422 when the output is not the expected JSON
    """
    try:
        parsed = json.loads(clean_json_response(text or ""))
    except json.JSONDecodeError as e:
        logger.warning(f"{file_name}: JSON parse error: {e}")
        logger.debug(f"Raw response: {text}")
        raise ExtractionServiceError(PARSE_ERROR_MESSAGE, status_code=422) from e

    if not isinstance(parsed, dict) or not isinstance(parsed.get("biomarkers"), list):
        logger.warning(f"{file_name}: response is missing the biomarkers array")
        raise ExtractionServiceError(PARSE_ERROR_MESSAGE, status_code=422)

    biomarkers = [
        ExtractedBiomarker(
            name=_as_text(item.get("name")),
            value=_as_text(item.get("value")),
            unit=_as_text(item.get("unit")),
        )
        for item in parsed["biomarkers"]
        if isinstance(item, dict)
    ]

    return ExtractionResponse(
        file_name=file_name,
        biomarkers=biomarkers,
        patient_info=parse_patient_info(parsed.get("patientInfo")),
        panel_name=generate_panel_name(biomarkers),
        raw=parsed,
    )
