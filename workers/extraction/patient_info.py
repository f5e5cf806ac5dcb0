"""
Patient info consolidation across documents of one upload.

A batch upload belongs to a single client, but each report is read
independently, so names, birth dates and genders can disagree. The most
common value wins and every disagreement is reported.
"""

import re
from collections import Counter
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import List, Optional

from workers.extraction.schemas import PatientInfo


@dataclass
class ConsolidatedPatientInfo:
    consolidated: PatientInfo
    discrepancies: List[str] = field(default_factory=list)
    confidence: str = "high"  # high | medium | low


def to_title_case(name: str) -> str:
    """'ASHLEY LEBEDEV' -> 'Ashley Lebedev'."""
    return re.sub(r"\b[a-z]", lambda m: m.group(0).upper(), name.lower())


def _parse_date(value: str) -> Optional[date]:
    try:
        return datetime.strptime(value.strip()[:10], "%Y-%m-%d").date()
    except ValueError:
        return None


def most_recent_date(dates: List[str]) -> Optional[str]:
    """Latest of YYYY-MM-DD strings; unparseable entries never win over parseable ones."""
    latest = None
    latest_parsed = None
    for value in dates:
        parsed = _parse_date(value)
        if latest is None:
            latest, latest_parsed = value, parsed
        elif parsed is not None and (latest_parsed is None or parsed > latest_parsed):
            latest, latest_parsed = value, parsed
    return latest


def _most_common(values: List[str]) -> str:
    return Counter(values).most_common(1)[0][0]


def consolidate_patient_info(infos: List[PatientInfo]) -> ConsolidatedPatientInfo:
    discrepancies = []

    names = [p.name for p in infos if p.name]
    dobs = [p.date_of_birth for p in infos if p.date_of_birth]
    genders = [p.gender for p in infos if p.gender]
    test_dates = [p.test_date for p in infos if p.test_date]

    consolidated_name = None
    if names:
        normalized = [n.lower().strip() for n in names]
        winner = _most_common(normalized)
        original = next(n for n in names if n.lower().strip() == winner)
        consolidated_name = to_title_case(original)

        unique_names = set(normalized)
        if len(unique_names) > 1:
            discrepancies.append(
                f'Name: Found {len(unique_names)} variations → Using "{consolidated_name}"'
            )

    consolidated_dob = None
    if dobs:
        consolidated_dob = _most_common(dobs)
        unique_dobs = set(dobs)
        if len(unique_dobs) > 1:
            discrepancies.append(
                f"Date of Birth: Found {len(unique_dobs)} different dates → Using {consolidated_dob}"
            )

    consolidated_gender = _most_common(genders) if genders else None

    consolidated_test_date = None
    if test_dates:
        consolidated_test_date = most_recent_date(test_dates)
        unique_dates = set(test_dates)
        if len(unique_dates) > 1:
            discrepancies.append(
                f"Test Dates: Found {len(unique_dates)} different dates (multiple lab visits)"
            )

    if len(discrepancies) > 2:
        confidence = "low"
    elif discrepancies:
        confidence = "medium"
    else:
        confidence = "high"

    return ConsolidatedPatientInfo(
        consolidated=PatientInfo(
            name=consolidated_name,
            date_of_birth=consolidated_dob,
            gender=consolidated_gender,
            test_date=consolidated_test_date,
        ),
        discrepancies=discrepancies,
        confidence=confidence,
    )
