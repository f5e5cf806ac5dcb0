"""
Unit tests for the range matcher.

Every benchmark yields exactly one result row; unknown values are never
reported as in range.
"""

import pytest

from workers.extraction.range_matcher import (
    IN_RANGE,
    OUT_OF_RANGE,
    UNKNOWN,
    find_unmatched_biomarkers,
    generate_summary,
    get_value_status,
    is_value_in_range,
    match_biomarkers_with_ranges,
    normalize_name,
    parse_value,
    select_bound,
)
from workers.extraction.range_parser import parse_range
from workers.extraction.schemas import NOT_AVAILABLE, AnalysisResult, ExtractedBiomarker

pytestmark = pytest.mark.unit

GLUCOSE_RANGE = "4.44-5.0 mmol/L (80-90 mg/dL)"


class TestIsValueInRange:
    """Tests for value classification against range strings."""

    def test_unit_selects_parenthesized_range(self):
        assert is_value_in_range("85", GLUCOSE_RANGE, "mg/dL") is True
        assert is_value_in_range("95", GLUCOSE_RANGE, "mg/dL") is False

    def test_unit_selects_inline_range(self):
        assert is_value_in_range("4.8", GLUCOSE_RANGE, "mmol/L") is True
        assert is_value_in_range("5.27", GLUCOSE_RANGE, "mmol/L") is False

    def test_unit_compared_case_insensitively(self):
        assert is_value_in_range("85", GLUCOSE_RANGE, "MG/DL") is True

    def test_unit_taken_from_value(self):
        assert is_value_in_range("85 mg/dL", GLUCOSE_RANGE) is True

    def test_unknown_unit_falls_back_to_first_range(self):
        assert is_value_in_range("4.8", GLUCOSE_RANGE, "furlongs") is True

    def test_less_than(self):
        assert is_value_in_range("12.5", "< 13 %", "%") is True
        assert is_value_in_range("13", "< 13 %", "%") is False

    def test_less_or_equal(self):
        assert is_value_in_range("0.09", "≤ 0.09 ×10³/µL", "×10³/µL") is True
        assert is_value_in_range("0.1", "≤ 0.09 ×10³/µL", "×10³/µL") is False

    def test_greater_than(self):
        egfr = "> 90 mL/min/m² (> 60 if high muscle mass)"
        assert is_value_in_range("95", egfr, "mL/min/m²") is True
        assert is_value_in_range("75", egfr, "mL/min/m²") is False

    def test_joined_unit_alternatives(self):
        tsh = "1.0-2.5 mIU/L/µIU/mL/mU/L"
        assert is_value_in_range("1.8", tsh, "µIU/mL") is True
        assert is_value_in_range("1.8", tsh, "mIU/L") is True
        assert is_value_in_range("3.1", tsh, "mIU/L") is False

    @pytest.mark.parametrize("value", [NOT_AVAILABLE, "", "Negative", "see note"])
    def test_non_numeric_unknown(self, value):
        assert is_value_in_range(value, GLUCOSE_RANGE, "mg/dL") is None

    def test_unparseable_range_unknown(self):
        assert is_value_in_range("12", "Refer to lab specific range", "IU/mL") is None
        assert get_value_status("12", "Refer to lab specific range") == UNKNOWN

    def test_comparator_value_parsed(self):
        assert parse_value("<0.1") == 0.1
        assert parse_value("N/A") is None

    def test_select_bound_fallback_order(self):
        bounds = parse_range("< 5 g/L (> 1 mg/L)")
        assert select_bound(bounds).kind == "lt"
        assert select_bound(bounds, "mg/L").kind == "gt"


class TestMatchBiomarkersWithRanges:
    """Tests for the per-benchmark result table."""

    def test_one_row_per_benchmark(self, benchmarks):
        results = match_biomarkers_with_ranges([], "male", benchmarks)

        assert len(results) == len(benchmarks)
        assert all(r.his_value == NOT_AVAILABLE and r.status == UNKNOWN for r in results)

    def test_sorted_by_name(self, benchmarks):
        results = match_biomarkers_with_ranges([], "female", benchmarks)

        names = [r.biomarker_name for r in results]
        assert names == sorted(names, key=str.lower)

    def test_missing_rows_use_preferred_unit(self, benchmarks):
        results = {r.biomarker_name: r for r in match_biomarkers_with_ranges([], "male", benchmarks)}

        assert results["Fasting Glucose"].unit == "mmol/L"
        assert results["Fasting Glucose"].optimal_range == GLUCOSE_RANGE

    def test_gender_specific_ranges(self, benchmarks):
        extracted = [ExtractedBiomarker(name="Hemoglobin", value="140", unit="g/L")]

        male = {r.biomarker_name: r for r in match_biomarkers_with_ranges(extracted, "male", benchmarks)}
        female = {r.biomarker_name: r for r in match_biomarkers_with_ranges(extracted, "female", benchmarks)}

        assert male["Hemoglobin"].status == OUT_OF_RANGE
        assert female["Hemoglobin"].status == IN_RANGE
        assert female["Hemoglobin"].optimal_range.startswith("135-145")

    def test_alias_match(self, benchmarks):
        extracted = [ExtractedBiomarker(name="Glucose", value="85", unit="mg/dL", test_date="2024-03-12")]

        results = {r.biomarker_name: r for r in match_biomarkers_with_ranges(extracted, "male", benchmarks)}

        row = results["Fasting Glucose"]
        assert row.his_value == "85"
        assert row.status == IN_RANGE
        assert row.test_date == "2024-03-12"

    def test_first_occurrence_wins(self, benchmarks):
        extracted = [
            ExtractedBiomarker(name="TSH", value="1.8", unit="mIU/L"),
            ExtractedBiomarker(name="T.S.H.", value="9.9", unit="mIU/L"),
            ExtractedBiomarker(name="tsh", value="4.0", unit="mIU/L"),
        ]

        results = {r.biomarker_name: r for r in match_biomarkers_with_ranges(extracted, "male", benchmarks)}

        assert results["TSH"].his_value == "1.8"

    @pytest.mark.parametrize("gender", ["male", "female"])
    def test_every_range_parses(self, benchmarks, gender):
        """Each benchmark range either yields bounds or is explicitly lab-specific."""
        for entry in benchmarks:
            if "lab specific" in entry.range_for(gender).lower():
                continue
            assert entry.bounds_for(gender), f"{entry.name}: {entry.range_for(gender)!r}"

    def test_normalize_name(self):
        assert normalize_name(" T.S.H. ") == "tsh"
        assert normalize_name("HDL-Cholesterol") == normalize_name("HDL Cholesterol")


class TestUnmatched:
    """Tests for unmatched biomarker reporting."""

    def test_unknown_names_reported(self, benchmarks):
        extracted = [
            ExtractedBiomarker(name="Glucose", value="85", unit="mg/dL"),
            ExtractedBiomarker(name="Vitamin K2", value="0.4", unit="ng/mL"),
            ExtractedBiomarker(name="Vitamin K2", value="0.5", unit="ng/mL"),
        ]

        unmatched = find_unmatched_biomarkers(extracted, benchmarks)

        assert [u.name for u in unmatched] == ["Vitamin K2"]
        assert unmatched[0].value == "0.4"

    def test_suggestion_for_near_miss(self, benchmarks):
        unmatched = find_unmatched_biomarkers(
            [ExtractedBiomarker(name="Hemoglobinn", value="14", unit="g/dL")], benchmarks
        )

        assert unmatched[0].suggestion == "Hemoglobin"
        assert unmatched[0].score >= 70

    def test_no_suggestion_for_unrelated(self, benchmarks):
        unmatched = find_unmatched_biomarkers(
            [ExtractedBiomarker(name="Qwxz", value="1", unit="")], benchmarks
        )

        assert unmatched[0].suggestion is None


class TestGenerateSummary:
    """Tests for summary counts."""

    def test_counts(self):
        results = [
            AnalysisResult("A", "85", "mg/dL", GLUCOSE_RANGE, IN_RANGE),
            AnalysisResult("B", "95", "mg/dL", GLUCOSE_RANGE, OUT_OF_RANGE),
            AnalysisResult("C", "12", "IU/mL", "Refer to lab specific range", UNKNOWN),
            AnalysisResult("D", NOT_AVAILABLE, "g/L", "40-50 g/L", UNKNOWN),
        ]

        summary = generate_summary(results)

        assert summary.total_biomarkers == 4
        assert summary.measured_biomarkers == 3
        assert summary.missing_biomarkers == 1
        assert summary.in_range_count == 1
        assert summary.out_of_range_count == 1
        assert summary.unknown_count == 2
