"""
Unit symbol canonicalization.

Lab reports spell the same unit many ways (mcg/ug/μg, 10^3/uL, mg/dl).
`canonicalize_unit` folds those into one spelling so unit comparisons and
conversion lookups are plain string equality. It is applied to extracted
units and to benchmark units alike.
"""

import re
from functools import lru_cache
from typing import List, Pattern, Tuple

GREEK_MU = "μ"  # μ
MICRO_SIGN = "µ"  # µ

# Ordered; later rules see the output of earlier ones
_SYMBOL_RULES: List[Tuple[Pattern, str]] = [
    # Micro prefix variants
    (re.compile(r"\bmcg\b", re.IGNORECASE), "µg"),
    (re.compile(r"\bug\b", re.IGNORECASE), "µg"),
    (re.compile(r"\bumol\b", re.IGNORECASE), "µmol"),
    (re.compile(r"\buIU\b", re.IGNORECASE), "µIU"),
    (re.compile(r"\buL\b", re.IGNORECASE), "µL"),
    # Milli-units per litre
    (re.compile(r"\bmU/L\b", re.IGNORECASE), "mIU/L"),
    # Powers of ten
    (re.compile(r"(?:[x×]\s*)?10\^3"), "×10³"),
    (re.compile(r"(?:[x×]\s*)?10\^12"), "×10¹²"),
    (re.compile(r"\bK/uL", re.IGNORECASE), "K/µL"),
    (re.compile(r"\bM/uL", re.IGNORECASE), "M/µL"),
    # European "million per microlitre"
    (re.compile(r"\b(?:Mio|Mil)\.?/[uµ]L", re.IGNORECASE), "×10¹²/L"),
]

# Compound units with canonical casing
_CASE_RULES: List[Tuple[Pattern, str]] = [
    (re.compile(r"/l\b"), "/L"),
    (re.compile(r"/dl\b", re.IGNORECASE), "/dL"),
    (re.compile(r"/ml\b", re.IGNORECASE), "/mL"),
    (re.compile(r"\bmmol/l\b", re.IGNORECASE), "mmol/L"),
    (re.compile(r"\bmg/dl\b", re.IGNORECASE), "mg/dL"),
    (re.compile(r"µmol/l\b", re.IGNORECASE), "µmol/L"),
    (re.compile(r"µg/dl\b", re.IGNORECASE), "µg/dL"),
    (re.compile(r"\bg/l\b", re.IGNORECASE), "g/L"),
    (re.compile(r"\bg/dl\b", re.IGNORECASE), "g/dL"),
    (re.compile(r"\bng/ml\b", re.IGNORECASE), "ng/mL"),
    (re.compile(r"\bpg/ml\b", re.IGNORECASE), "pg/mL"),
    (re.compile(r"\bpmol/l\b", re.IGNORECASE), "pmol/L"),
    (re.compile(r"\bnmol/l\b", re.IGNORECASE), "nmol/L"),
    (re.compile(r"\bmiu/l\b", re.IGNORECASE), "mIU/L"),
    (re.compile(r"\biu/l\b", re.IGNORECASE), "IU/L"),
    (re.compile(r"\bu/l\b", re.IGNORECASE), "U/L"),
]


@lru_cache(maxsize=1024)
def canonicalize_unit(unit: str) -> str:
    """Fold a unit string into its canonical spelling."""
    if not unit:
        return ""

    normalized = unit.strip().replace(GREEK_MU, MICRO_SIGN)
    for pattern, replacement in _SYMBOL_RULES:
        normalized = pattern.sub(replacement, normalized)
    for pattern, replacement in _CASE_RULES:
        normalized = pattern.sub(replacement, normalized)
    return normalized


def unit_key(unit: str) -> str:
    """Case-insensitive comparison key for a unit."""
    return canonicalize_unit(unit).casefold()


def unit_alternatives(unit: str) -> frozenset:
    """
    Comparison keys a unit string can stand for.

    Benchmark ranges sometimes list several units joined by '/',
    e.g. "mIU/L/µIU/mL/mU/L"; every adjacent pair of segments is offered
    as a candidate alongside the full string.
    """
    canonical = canonicalize_unit(unit)
    if not canonical:
        return frozenset()

    keys = {canonical.casefold()}
    segments = canonical.split("/")
    for first, second in zip(segments, segments[1:]):
        if first and second:
            keys.add(unit_key(f"{first}/{second}"))
    return frozenset(keys)
