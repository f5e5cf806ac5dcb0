"""
Document Filter.

Pre-screens uploaded documents so obviously non-lab content (blank pages,
workout plans, cover letters) never costs an extraction call.

Rules, in order:
1. Anything carrying image payload is accepted; text heuristics can't judge scans.
2. Text under 50 characters is rejected as empty.
3. Text that is only whitespace, a page marker or a bare number is rejected.
4. Otherwise numeric tokens and lab keywords are counted and weighed.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from workers.extraction.schemas import RawDocument

logger = logging.getLogger(__name__)

MIN_TEXT_LENGTH = 50

# Lowercase substrings that indicate lab content
LAB_KEYWORDS = [
    # Units
    'mg/dl', 'mg/l', 'mmol/l', 'µmol/l', 'umol/l', 'pg/ml', 'ng/ml', 'iu/l', 'u/l',
    'g/dl', 'g/l', '%', 'miu/l', 'pmol/l', 'nmol/l', 'fl', 'meq/l',
    'k/µl', 'k/ul', '×10³/µl', '×10¹²/l',

    # Common biomarkers (English)
    'glucose', 'cholesterol', 'hemoglobin', 'creatinine', 'albumin',
    'sodium', 'potassium', 'calcium', 'tsh', 'vitamin',
    'hdl', 'ldl', 'triglyceride', 'bilirubin', 'ferritin',
    'wbc', 'rbc', 'platelet', 'hematocrit', 'ast', 'alt', 'alp',

    # Report terms
    'laboratory', 'lab result', 'test result', 'specimen', 'reference range',
    'normal range', 'optimal range', 'patient', 'collection date', 'result',

    # Spanish
    'glucosa', 'colesterol', 'hemoglobina', 'creatinina', 'albumina',
    'sodio', 'potasio', 'calcio', 'vitamina', 'triglicéridos',
    'laboratorio', 'resultado', 'paciente', 'rango', 'referencia',

    # Portuguese
    'glicose', 'laboratório',

    # French
    'glycémie', 'cholestérol', 'hémoglobine', 'vitamine', 'résultat',

    # German
    'glukose', 'cholesterin', 'hämoglobin', 'ergebnis',
]

EXCLUDE_PATTERNS = [
    re.compile(r'^\s*$'),
    re.compile(r'^\s*page\s+\d+\s*$', re.IGNORECASE),
    re.compile(r'^\s*\d+\s*$'),
]

NUMERIC_TOKEN = re.compile(r'\d+\.?\d*')


@dataclass
class FilterResult:
    should_process: bool
    reason: Optional[str] = None
    confidence: float = 1.0  # how sure we are about the decision


@dataclass
class FilteredDocuments:
    processable: List[RawDocument] = field(default_factory=list)
    skipped: List[Tuple[RawDocument, str]] = field(default_factory=list)


def count_lab_indicators(text: str) -> Tuple[int, int]:
    """Return (numeric token count, lab keyword hits) for lowercase text."""
    numeric_count = len(NUMERIC_TOKEN.findall(text))
    keyword_count = sum(1 for keyword in LAB_KEYWORDS if keyword in text)
    return numeric_count, keyword_count


def should_process_document(doc: RawDocument) -> FilterResult:
    """Decide whether a document is worth an extraction call."""
    if doc.has_images:
        return FilterResult(
            should_process=True,
            reason="Has images (potential scanned lab report)",
            confidence=1.0,
        )

    text = (doc.extracted_text or "").lower()

    if len(text) < MIN_TEXT_LENGTH:
        return FilterResult(
            should_process=False,
            reason="Empty document (< 50 characters, no images)",
            confidence=1.0,
        )

    stripped = text.strip()
    for pattern in EXCLUDE_PATTERNS:
        if pattern.match(stripped):
            return FilterResult(
                should_process=False,
                reason="Document contains only whitespace or page numbers",
                confidence=0.95,
            )

    numbers, keywords = count_lab_indicators(text)

    if numbers < 5 and keywords == 0:
        return FilterResult(
            should_process=False,
            reason=f"Insufficient lab indicators ({numbers} numbers, {keywords} keywords)",
            confidence=0.9,
        )

    if numbers < 3 and keywords < 2:
        return FilterResult(
            should_process=False,
            reason=f"Low lab probability ({numbers} numbers, {keywords} keywords)",
            confidence=0.8,
        )

    return FilterResult(
        should_process=True,
        reason=f"Lab indicators present ({numbers} numbers, {keywords} keywords)",
        confidence=1.0 - (1 / (keywords + numbers + 1)),
    )


def filter_documents(docs: List[RawDocument]) -> FilteredDocuments:
    """Split documents into processable and skipped (with reasons)."""
    result = FilteredDocuments()

    for doc in docs:
        decision = should_process_document(doc)
        if decision.should_process:
            result.processable.append(doc)
        else:
            reason = decision.reason or "Unknown reason"
            result.skipped.append((doc, reason))
            logger.info(f"Skipping '{doc.file_name}': {reason}")

    if result.skipped:
        logger.info(
            f"Filtered {len(docs)} documents: {len(result.processable)} processable, "
            f"{len(result.skipped)} skipped"
        )

    return result
