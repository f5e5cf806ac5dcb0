"""
Canonical biomarker taxonomy.

Loads the versioned benchmark table from config/biomarkers.yaml once per
process. Range strings are pre-parsed at load time.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml

from backend.core.config import get_settings, project_root
from workers.extraction.range_parser import RangeBound, parse_range

logger = logging.getLogger(__name__)
settings = get_settings()


@dataclass
class BenchmarkEntry:
    name: str
    male_range: str
    female_range: str
    units: List[str]
    aliases: List[str] = field(default_factory=list)
    category: str = ""
    male_bounds: Tuple[RangeBound, ...] = field(default=(), repr=False)
    female_bounds: Tuple[RangeBound, ...] = field(default=(), repr=False)

    def __post_init__(self):
        self.male_bounds = parse_range(self.male_range)
        self.female_bounds = parse_range(self.female_range)

    @property
    def preferred_unit(self) -> str:
        return self.units[0] if self.units else ""

    @property
    def names(self) -> List[str]:
        """Primary name followed by aliases, in declaration order."""
        return [self.name] + list(self.aliases)

    def range_for(self, gender: str) -> str:
        if gender == "female" and self.female_range:
            return self.female_range
        return self.male_range

    def bounds_for(self, gender: str) -> Tuple[RangeBound, ...]:
        if gender == "female" and self.female_range:
            return self.female_bounds
        return self.male_bounds

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "male_range": self.male_range,
            "female_range": self.female_range,
            "units": list(self.units),
            "aliases": list(self.aliases),
            "category": self.category,
        }


@dataclass
class Taxonomy:
    version: str
    benchmarks: List[BenchmarkEntry]
    full_names: Dict[str, str] = field(default_factory=dict)

    def get(self, name: str) -> Optional[BenchmarkEntry]:
        lowered = name.lower()
        for entry in self.benchmarks:
            if entry.name.lower() == lowered:
                return entry
        return None

    def display_name(self, name: str) -> str:
        """'TSH' -> 'TSH (Thyroid Stimulating Hormone)'; full names pass through."""
        full_name = self.full_names.get(name)
        if full_name and full_name != name:
            return f"{name} ({full_name})"
        return name


def _resolve_path(path: Optional[str]) -> Path:
    resolved = Path(path or settings.taxonomy.benchmarks_path)
    if not resolved.is_absolute():
        resolved = project_root / resolved
    return resolved


def load_taxonomy(path: Optional[str] = None) -> Taxonomy:
    """Read and validate the taxonomy YAML."""
    taxonomy_path = _resolve_path(path)
    with open(taxonomy_path, encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}

    benchmarks = []
    for item in data.get("benchmarks", []):
        benchmarks.append(BenchmarkEntry(
            name=item["name"],
            male_range=item.get("male_range", ""),
            female_range=item.get("female_range", ""),
            units=list(item.get("units", [])),
            aliases=list(item.get("aliases") or []),
            category=item.get("category", ""),
        ))

    taxonomy = Taxonomy(
        version=str(data.get("version", "unknown")),
        benchmarks=benchmarks,
        full_names=dict(data.get("full_names") or {}),
    )
    logger.info(
        f"Loaded biomarker taxonomy v{taxonomy.version}: "
        f"{len(benchmarks)} benchmarks from {taxonomy_path}"
    )
    return taxonomy


# Global taxonomy instance
_taxonomy: Optional[Taxonomy] = None


def get_taxonomy() -> Taxonomy:
    """Get or create the process-wide taxonomy."""
    global _taxonomy
    if _taxonomy is None:
        _taxonomy = load_taxonomy()
    return _taxonomy


def load_benchmarks() -> List[BenchmarkEntry]:
    return get_taxonomy().benchmarks


def get_biomarker_display_name(name: str) -> str:
    return get_taxonomy().display_name(name)
