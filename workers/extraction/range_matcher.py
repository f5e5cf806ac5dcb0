"""
Range Matcher.

Produces exactly one AnalysisResult per benchmark entry, matching
extracted biomarkers by primary name and then aliases (earliest alias
wins), and classifies each measured value against the gender-specific
optimal range.
"""

import logging
import re
from typing import Dict, List, Optional, Sequence

from rapidfuzz import fuzz, process

from workers.extraction.range_parser import RangeBound, parse_range
from workers.extraction.schemas import (
    NOT_AVAILABLE,
    AnalysisResult,
    AnalysisSummary,
    ExtractedBiomarker,
    UnmatchedBiomarker,
)
from workers.extraction.taxonomy import BenchmarkEntry, load_benchmarks
from workers.extraction.units import unit_key

logger = logging.getLogger(__name__)

SUGGESTION_THRESHOLD = 70

IN_RANGE = "in-range"
OUT_OF_RANGE = "out-of-range"
UNKNOWN = "unknown"


def normalize_name(name: str) -> str:
    """Matching key: lowercase alphanumerics only."""
    return re.sub(r"[^a-z0-9]", "", name.lower().strip())


def parse_value(value: str) -> Optional[float]:
    """Numeric part of a reported value ('<0.1' -> 0.1); None if not numeric."""
    if not value or value == NOT_AVAILABLE:
        return None
    cleaned = re.sub(r"[^0-9.\-]", "", value)
    match = re.match(r"-?\d*\.?\d+", cleaned)
    if not match:
        return None
    return float(match.group(0))


def _first_bound(bounds: Sequence[RangeBound], kinds: Sequence[str],
                 unit: str = "", parenthesized: Optional[bool] = None) -> Optional[RangeBound]:
    for bound in bounds:
        if bound.kind not in kinds:
            continue
        if parenthesized is not None and bound.parenthesized != parenthesized:
            continue
        if unit and not bound.matches_unit(unit):
            continue
        return bound
    return None


def select_bound(bounds: Sequence[RangeBound], unit: Optional[str] = None) -> Optional[RangeBound]:
    """
    Choose the bound a value should be compared against.

    Unit-specific lookups come first (parenthesized range, inline range,
    then <, >, <= / >= forms); otherwise the first range, then the first
    <, >, <= / >= form.
    """
    key = unit_key(unit or "")
    if key:
        for kinds, parenthesized in (
            (("range",), True),
            (("range",), False),
            (("lt",), None),
            (("gt",), None),
            (("le", "ge"), None),
        ):
            bound = _first_bound(bounds, kinds, unit=key, parenthesized=parenthesized)
            if bound:
                return bound

    for kinds in (("range",), ("lt",), ("gt",), ("le", "ge")):
        bound = _first_bound(bounds, kinds)
        if bound:
            return bound
    return None


def _value_in_bounds(value: str, bounds: Sequence[RangeBound], unit: Optional[str]) -> Optional[bool]:
    number = parse_value(value)
    if number is None:
        return None

    if not unit:
        unit = re.sub(r"[0-9.\-\s]", "", value)

    bound = select_bound(bounds, unit)
    if bound is None:
        return None
    return bound.contains(number)


def is_value_in_range(value: str, optimal_range: str, unit: Optional[str] = None) -> Optional[bool]:
    """
    Check a value against a range string.

    Returns None (unknown) for N/A or non-numeric values and for range
    strings with no recognizable bound; never defaults to in-range.
    """
    return _value_in_bounds(value, parse_range(optimal_range), unit)


def status_from(in_range: Optional[bool]) -> str:
    if in_range is None:
        return UNKNOWN
    return IN_RANGE if in_range else OUT_OF_RANGE


def get_value_status(value: str, optimal_range: str, unit: Optional[str] = None) -> str:
    return status_from(is_value_in_range(value, optimal_range, unit))


def _build_lookup(extracted: List[ExtractedBiomarker]) -> Dict[str, ExtractedBiomarker]:
    lookup: Dict[str, ExtractedBiomarker] = {}
    for biomarker in extracted:
        # First occurrence is kept
        lookup.setdefault(normalize_name(biomarker.name), biomarker)
    return lookup


def match_biomarkers_with_ranges(
    extracted: List[ExtractedBiomarker],
    gender: str = "male",
    benchmarks: Optional[List[BenchmarkEntry]] = None,
) -> List[AnalysisResult]:
    """One result row per benchmark entry, sorted by benchmark name."""
    benchmarks = benchmarks if benchmarks is not None else load_benchmarks()
    lookup = _build_lookup(extracted)
    results = []

    for entry in benchmarks:
        match = None
        for name in entry.names:
            match = lookup.get(normalize_name(name))
            if match:
                break

        optimal_range = entry.range_for(gender)
        bounds = entry.bounds_for(gender)

        if match:
            results.append(AnalysisResult(
                biomarker_name=entry.name,
                his_value=match.value,
                unit=match.unit,
                optimal_range=optimal_range,
                status=status_from(_value_in_bounds(match.value, bounds, match.unit)),
                test_date=match.test_date,
                normalization=match.normalization,
            ))
        else:
            results.append(AnalysisResult(
                biomarker_name=entry.name,
                his_value=NOT_AVAILABLE,
                unit=entry.preferred_unit,
                optimal_range=optimal_range,
                status=UNKNOWN,
            ))

    results.sort(key=lambda r: r.biomarker_name.lower())

    matched = sum(1 for r in results if r.measured)
    logger.info(f"Matched {matched}/{len(results)} benchmarks ({gender} ranges)")
    return results


def find_unmatched_biomarkers(
    extracted: List[ExtractedBiomarker],
    benchmarks: Optional[List[BenchmarkEntry]] = None,
) -> List[UnmatchedBiomarker]:
    """
    Extracted biomarkers no benchmark name or alias claims.

    Each carries the closest known name as a suggestion, which is what
    drives growth of the alias table.
    """
    benchmarks = benchmarks if benchmarks is not None else load_benchmarks()

    known: Dict[str, str] = {}
    for entry in benchmarks:
        for name in entry.names:
            known.setdefault(name, entry.name)
    known_keys = {normalize_name(name) for name in known}
    choices = list(known.keys())

    unmatched = []
    seen = set()
    for biomarker in extracted:
        key = normalize_name(biomarker.name)
        if key in known_keys or key in seen:
            continue
        seen.add(key)

        suggestion = None
        score = 0.0
        match = process.extractOne(
            biomarker.name,
            choices,
            scorer=fuzz.token_set_ratio,
            score_cutoff=SUGGESTION_THRESHOLD,
        )
        if match:
            matched_name, score, _ = match
            suggestion = known[matched_name]

        unmatched.append(UnmatchedBiomarker(
            name=biomarker.name,
            value=biomarker.value,
            unit=biomarker.unit,
            suggestion=suggestion,
            score=float(score),
        ))

    if unmatched:
        logger.info(f"{len(unmatched)} extracted biomarkers matched no benchmark")
    return unmatched


def generate_summary(results: List[AnalysisResult]) -> AnalysisSummary:
    summary = AnalysisSummary(total_biomarkers=len(results))

    for result in results:
        if not result.measured:
            summary.unknown_count += 1
            continue

        summary.measured_biomarkers += 1
        status = get_value_status(result.his_value, result.optimal_range, result.unit)
        if status == IN_RANGE:
            summary.in_range_count += 1
        elif status == OUT_OF_RANGE:
            summary.out_of_range_count += 1
        else:
            summary.unknown_count += 1

    summary.missing_biomarkers = summary.total_biomarkers - summary.measured_biomarkers
    return summary
