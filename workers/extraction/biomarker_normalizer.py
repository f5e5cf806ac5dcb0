"""
Biomarker Normalizer.

Maps free-text biomarker names onto canonical taxonomy names and brings
units (and, where a factor is known, values) to the benchmark's preferred
unit.

Name resolution:
1. Exact alias match on the normalized key      -> confidence 1.0
2. Strip serum/plasma/blood/total/free prefixes
   and serum/level/count suffixes, retry          -> confidence 0.8
3. Unresolved: keep the original name             -> confidence 0.3

Unit resolution:
- Canonicalize symbols, then apply domain corrections for units that are
  categorically wrong for a biomarker (Albumin in %, RBC in Mio/µL,
  WBC differentials in %)
- If the unit still differs from the preferred unit, convert with the
  biomarker-specific factor, or relabel without converting when no factor
  is registered
"""

import logging
import math
import re
from typing import Dict, List, Optional, Tuple

from workers.extraction.schemas import ExtractedBiomarker, NormalizedBiomarker
from workers.extraction.taxonomy import BenchmarkEntry, load_benchmarks
from workers.extraction.units import canonicalize_unit

logger = logging.getLogger(__name__)

CONFIDENCE_EXACT = 1.0
CONFIDENCE_STRIPPED = 0.8
CONFIDENCE_UNRESOLVED = 0.3

_PREFIX_PATTERN = re.compile(r"^(serum|plasma|blood|total|free)\s+", re.IGNORECASE)
_SUFFIX_PATTERN = re.compile(r"\s+(serum|level|count)$", re.IGNORECASE)
_LEADING_FLOAT = re.compile(r"^\s*[-+]?(?:\d+\.?\d*|\.\d+)(?:[eE][-+]?\d+)?")

# biomarker (lowercase canonical name) -> from unit -> to unit -> factor
# new_value = old_value * factor
BIOMARKER_CONVERSIONS: Dict[str, Dict[str, Dict[str, float]]] = {
    # 1 µmol/L = 5.585 µg/dL
    "serum iron": {
        "µg/dL": {"µmol/L": 0.179},
        "µmol/L": {"µg/dL": 5.585},
        "mg/dL": {"µmol/L": 17.9},
    },
    "tibc": {
        "µg/dL": {"µmol/L": 0.179},
        "µmol/L": {"µg/dL": 5.585, "mg/dL": 0.05585},
        "mg/dL": {"µmol/L": 17.9},
    },
    # 1 mg/dL = 88.4 µmol/L
    "creatinine": {
        "mg/dL": {"µmol/L": 88.4},
        "µmol/L": {"mg/dL": 0.0113},
    },
    # 1 mmol/L = 18.02 mg/dL
    "fasting glucose": {
        "mg/dL": {"mmol/L": 0.0555},
        "mmol/L": {"mg/dL": 18.02},
    },
    "glucose": {
        "mg/dL": {"mmol/L": 0.0555},
        "mmol/L": {"mg/dL": 18.02},
    },
    # Urea nitrogen: 1 mmol/L = 2.8 mg/dL
    "bun": {
        "mg/dL": {"mmol/L": 0.357},
        "mmol/L": {"mg/dL": 2.8},
    },
    "calcium": {
        "mg/dL": {"mmol/L": 0.25},
        "mmol/L": {"mg/dL": 4.0},
    },
    "serum magnesium": {
        "mg/dL": {"mmol/L": 0.411},
        "mmol/L": {"mg/dL": 2.43},
    },
    "triglycerides": {
        "mg/dL": {"mmol/L": 0.0113},
        "mmol/L": {"mg/dL": 88.57},
    },
    # Cholesterol family: 1 mmol/L = 38.67 mg/dL
    "total cholesterol": {
        "mg/dL": {"mmol/L": 0.0259},
        "mmol/L": {"mg/dL": 38.67},
    },
    "hdl cholesterol": {
        "mg/dL": {"mmol/L": 0.0259},
        "mmol/L": {"mg/dL": 38.67},
    },
    "ldl cholesterol": {
        "mg/dL": {"mmol/L": 0.0259},
        "mmol/L": {"mg/dL": 38.67},
    },
    "uric acid": {
        "mg/dL": {"µmol/L": 59.48},
        "µmol/L": {"mg/dL": 0.0168},
    },
    # 1 mg/dL = 17.1 µmol/L
    "total bilirubin": {
        "mg/dL": {"µmol/L": 17.1},
        "µmol/L": {"mg/dL": 0.0585},
    },
    "direct bilirubin": {
        "mg/dL": {"µmol/L": 17.1},
        "µmol/L": {"mg/dL": 0.0585},
    },
}

WBC_DIFFERENTIALS = ("NEUTROPHILS", "LYMPHOCYTES", "MONOCYTES", "EOSINOPHILS", "BASOPHILS")


def normalize_key(text: str) -> str:
    """Lookup key: lowercase, trimmed, single-spaced, ASCII dashes."""
    key = re.sub(r"\s+", " ", text.lower().strip())
    return re.sub(r"[–—]", "-", key)


def parse_leading_float(value: str) -> Optional[float]:
    """Parse the numeric prefix of a value ('95 mg' -> 95.0); None if there is none."""
    match = _LEADING_FLOAT.match(value or "")
    if not match:
        return None
    number = float(match.group(0))
    return number if math.isfinite(number) else None


def format_value(number: float) -> str:
    """Two decimals, trailing zeros dropped: 5.2725 -> '5.27', 100.0 -> '100'."""
    return f"{number:.2f}".rstrip("0").rstrip(".")


def apply_domain_corrections(canonical_name: str, unit: str) -> Tuple[str, bool]:
    """Fix units that are categorically wrong for a biomarker."""
    upper = canonical_name.upper()

    if "ALBUMIN" in upper and "GLOBULIN" not in upper and "%" in unit:
        return "g/L", True

    if upper in ("RBC", "RED BLOOD CELL COUNT") and re.search(r"mio|mil", unit, re.IGNORECASE):
        return "×10¹²/L", True

    if any(name in upper for name in WBC_DIFFERENTIALS) and "%" in unit:
        return "×10³/µL", True

    return unit, False


class BiomarkerNormalizer:
    """
    Name and unit normalization against the taxonomy.

    The alias map is built once in __init__ and never mutated afterwards,
    so one instance can be shared across concurrent tasks.
    """

    def __init__(self, benchmarks: Optional[List[BenchmarkEntry]] = None):
        self.benchmarks = benchmarks if benchmarks is not None else load_benchmarks()
        self._alias_map: Dict[str, str] = {}
        self._target_units: Dict[str, str] = {}

        # Canonical names first so an alias can never shadow one
        for entry in self.benchmarks:
            self._alias_map[normalize_key(entry.name)] = entry.name
        for entry in self.benchmarks:
            for alias in entry.aliases:
                # First writer wins so declaration order decides collisions
                self._alias_map.setdefault(normalize_key(alias), entry.name)
            if entry.units:
                self._target_units[entry.name.lower()] = canonicalize_unit(entry.preferred_unit)

        logger.info(f"Loaded {len(self._alias_map)} biomarker aliases")

    @property
    def alias_count(self) -> int:
        return len(self._alias_map)

    def normalize_biomarker_name(self, name: str) -> Tuple[str, float]:
        """Return (canonical_name, confidence) for an extracted name."""
        canonical = self._alias_map.get(normalize_key(name))
        if canonical:
            return canonical, CONFIDENCE_EXACT

        cleaned = _SUFFIX_PATTERN.sub("", _PREFIX_PATTERN.sub("", name.strip()))
        canonical = self._alias_map.get(normalize_key(cleaned))
        if canonical:
            return canonical, CONFIDENCE_STRIPPED

        return name, CONFIDENCE_UNRESOLVED

    def get_target_unit(self, canonical_name: str) -> Optional[str]:
        return self._target_units.get(canonical_name.lower())

    def try_convert_value(
        self,
        canonical_name: str,
        value: str,
        from_unit: str,
        to_unit: str,
    ) -> Tuple[str, bool]:
        if from_unit == to_unit:
            return value, False

        number = parse_leading_float(value)
        if number is None:
            return value, False

        factor = (
            BIOMARKER_CONVERSIONS.get(canonical_name.lower(), {})
            .get(from_unit, {})
            .get(to_unit)
        )
        if factor is None:
            return value, False

        return format_value(number * factor), True

    def normalize_unit(self, canonical_name: str, unit: str, value: str) -> Tuple[str, str, bool]:
        """Return (unit, value, conversion_applied)."""
        normalized_unit = canonicalize_unit(unit)
        normalized_unit, conversion_applied = apply_domain_corrections(canonical_name, normalized_unit)
        normalized_value = value

        target_unit = self.get_target_unit(canonical_name)
        if target_unit and normalized_unit != target_unit:
            converted_value, converted = self.try_convert_value(
                canonical_name, normalized_value, normalized_unit, target_unit
            )
            if converted:
                normalized_value = converted_value
                conversion_applied = True
            else:
                # Relabel only; the value is kept as reported
                logger.debug(
                    f"No conversion factor for {canonical_name} {normalized_unit} -> {target_unit}, relabelling"
                )
            normalized_unit = target_unit

        return normalized_unit, normalized_value, conversion_applied

    def normalize(self, biomarker: ExtractedBiomarker) -> NormalizedBiomarker:
        canonical_name, confidence = self.normalize_biomarker_name(biomarker.name)
        unit, value, conversion_applied = self.normalize_unit(
            canonical_name, biomarker.unit, biomarker.value
        )
        return NormalizedBiomarker(
            canonical_name=canonical_name,
            value=value,
            unit=unit,
            original_name=biomarker.name,
            original_value=biomarker.value,
            original_unit=biomarker.unit,
            confidence=confidence,
            conversion_applied=conversion_applied,
            is_numeric=parse_leading_float(biomarker.value) is not None,
        )

    def normalize_batch(self, biomarkers: List[ExtractedBiomarker]) -> List[NormalizedBiomarker]:
        normalized = [self.normalize(b) for b in biomarkers]

        unresolved = [n.original_name for n in normalized if n.confidence == CONFIDENCE_UNRESOLVED]
        converted = sum(1 for n in normalized if n.conversion_applied)
        logger.info(
            f"Normalized {len(normalized)} biomarkers: {converted} unit corrections, "
            f"{len(unresolved)} unresolved"
        )
        if unresolved:
            logger.debug(f"Unresolved biomarker names: {unresolved}")
        return normalized


# Global normalizer instance
_normalizer: Optional[BiomarkerNormalizer] = None


def get_biomarker_normalizer() -> BiomarkerNormalizer:
    """Get or create global normalizer."""
    global _normalizer
    if _normalizer is None:
        _normalizer = BiomarkerNormalizer()
    return _normalizer
